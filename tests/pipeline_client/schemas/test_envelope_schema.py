"""
Tests for envelope and request schemas.
"""

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from pipeline_client.schemas.envelope import (
    Envelope,
    EnvelopeOrError,
    EnvelopeType,
    Message,
)
from pipeline_client.schemas.requests import ReceiveRequest, Reset


DATA_ENVELOPE = {
    "envelopeType": "DATA",
    "partition": 3,
    "key": "k1",
    "offset": 1042,
    "topic": "events",
    "createTime": 1571152456000,
    "pipelineMessage": {
        "imsOrg": "org@AdobeOrg",
        "key": "k1",
        "locations": ["va6", "nld2"],
        "source": "svc",
        "value": {"id": 1, "tags": ["a"]},
    },
}


class TestEnvelope:
    """Tests for Envelope decoding."""

    def test_data_envelope(self):
        env = Envelope.model_validate_json(json.dumps(DATA_ENVELOPE))

        assert env.envelope_type == EnvelopeType.DATA
        assert env.partition == 3
        assert env.offset == 1042
        assert env.topic == "events"
        assert env.message.ims_org == "org@AdobeOrg"
        assert env.message.locations == ("va6", "nld2")
        assert env.message.value == {"id": 1, "tags": ["a"]}
        assert env.created_at == datetime(2019, 10, 15, 15, 14, 16, tzinfo=UTC)

    def test_missing_fields_take_zero_values(self):
        env = Envelope.model_validate_json('{"envelopeType": "PING"}')

        assert env.is_ping
        assert env.partition == 0
        assert env.key == ""
        assert env.sync_marker == ""
        assert env.message == Message()
        assert env.created_at is None

    def test_unknown_fields_ignored(self):
        env = Envelope.model_validate_json('{"envelopeType": "SYNC", "syncMarker": "m", "extra": 1}')
        assert env.sync_marker == "m"

    def test_unknown_type_passed_through(self):
        env = Envelope.model_validate_json('{"envelopeType": "REBALANCE"}')
        assert env.envelope_type == "REBALANCE"
        assert not env.is_ping
        assert not env.is_end_of_stream

    @pytest.mark.parametrize(
        "payload",
        [
            '{"envelopeType": 1}',
            '{"partition": "3"}',
            '{"offset": 1.5}',
            '{"pipelineMessage": {"locations": "va6"}}',
            '{"syncMarker": null}',
        ],
    )
    def test_wrong_json_type_rejected(self, payload):
        with pytest.raises(ValidationError):
            Envelope.model_validate_json(payload)

    def test_frozen(self):
        env = Envelope(envelope_type="PING")
        with pytest.raises(ValidationError):
            env.offset = 5

    def test_payload_round_trip(self):
        env = Envelope.model_validate_json(json.dumps(DATA_ENVELOPE))
        again = Envelope.model_validate_json(json.dumps(env.to_payload()))
        assert again == env

    def test_construct_by_field_name(self):
        env = Envelope(envelope_type="SYNC", sync_marker="abc")
        assert env.to_payload()["syncMarker"] == "abc"


class TestMessage:
    def test_payload_omits_empty_optional_fields(self):
        assert Message(value=None).to_payload() == {"value": None}

    def test_payload_with_all_fields(self):
        msg = Message(ims_org="o", key="k", locations=["l1"], source="s", value=[1])
        assert msg.to_payload() == {
            "imsOrg": "o",
            "key": "k",
            "locations": ["l1"],
            "source": "s",
            "value": [1],
        }


class TestEnvelopeOrError:
    def test_envelope_only(self):
        item = EnvelopeOrError(envelope=Envelope(envelope_type="PING"))
        assert not item.is_error

    def test_error_only(self):
        item = EnvelopeOrError(error=RuntimeError("x"))
        assert item.is_error

    def test_both_rejected(self):
        with pytest.raises(ValueError):
            EnvelopeOrError(envelope=Envelope(), error=RuntimeError("x"))

    def test_neither_rejected(self):
        with pytest.raises(ValueError):
            EnvelopeOrError()


class TestReceiveRequest:
    def test_defaults(self):
        req = ReceiveRequest()
        assert req.ping_timeout == 90.0
        assert req.reconnection_delay == 5.0
        assert req.sync_interval is None
        assert req.sync_interval_ms is None
        assert req.reset is None

    def test_sync_interval_in_milliseconds(self):
        assert ReceiveRequest(sync_interval=5).sync_interval_ms == 5000
        assert ReceiveRequest(sync_interval=7.5).sync_interval_ms == 7500

    def test_sync_interval_minimum(self):
        with pytest.raises(ValidationError, match="at least 5"):
            ReceiveRequest(sync_interval=4.9)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            ReceiveRequest(reconnection_delay=-1)

    def test_zero_ping_timeout_rejected(self):
        with pytest.raises(ValidationError):
            ReceiveRequest(ping_timeout=0)

    def test_lists_become_tuples(self):
        req = ReceiveRequest(organizations=["a", "b"], reset="earliest")
        assert req.organizations == ("a", "b")
        assert req.reset is Reset.EARLIEST
