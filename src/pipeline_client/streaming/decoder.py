"""
Incremental decoding of a concatenated-JSON envelope body.

The receive endpoint writes envelopes back to back with optional whitespace in
between and no other delimiter. Chunks arrive with arbitrary boundaries, so
frames are located with a small scanner that tracks object depth and string
state across chunks; each complete frame is then validated as an Envelope.
"""

import asyncio
import logging
from typing import Iterator

from pydantic import ValidationError

from pipeline_client.errors.exceptions import BodyReadError, DecodeError
from pipeline_client.schemas.envelope import Envelope, EnvelopeOrError
from pipeline_client.types import ByteStream

logger = logging.getLogger(__name__)

_WHITESPACE = frozenset(b" \t\r\n")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
_OPENERS = frozenset(b"{[")
_CLOSERS = frozenset(b"}]")
_OBJECT_START = ord("{")


class FrameScanner:
    """
    Splits a byte stream of concatenated JSON objects into one frame per object.

    Only structure is tracked here (depth, strings, escapes). Whether a frame
    is valid JSON is decided by the parser that receives it.
    """

    def __init__(self):
        self._buffer = bytearray()
        self._pos = 0
        self._start: int | None = None
        self._depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def pending(self) -> bool:
        """True while a frame has started but not yet ended."""
        return self._start is not None

    def feed(self, chunk: bytes) -> Iterator[bytes]:
        """
        Add a chunk and yield every frame it completes.

        Raises:
            DecodeError: A top-level value is not an object
        """
        buf = self._buffer
        buf.extend(chunk)
        i = self._pos
        n = len(buf)

        while i < n:
            b = buf[i]
            if self._start is None:
                if b in _WHITESPACE:
                    i += 1
                    continue
                if b != _OBJECT_START:
                    raise DecodeError(
                        f"invalid character {chr(b)!r} looking for beginning of object"
                    )
                self._start = i
                self._depth = 1
            elif self._in_string:
                if self._escaped:
                    self._escaped = False
                elif b == _BACKSLASH:
                    self._escaped = True
                elif b == _QUOTE:
                    self._in_string = False
            elif b == _QUOTE:
                self._in_string = True
            elif b in _OPENERS:
                self._depth += 1
            elif b in _CLOSERS:
                self._depth -= 1
                if self._depth == 0:
                    frame = bytes(buf[self._start : i + 1])
                    self._start = None
                    yield frame
            i += 1

        if self._start is None:
            del buf[:i]
            self._pos = 0
        else:
            del buf[: self._start]
            self._pos = i - self._start
            self._start = 0

    def finish(self) -> None:
        """
        Signal end of input.

        Raises:
            DecodeError: Input ended in the middle of an object
        """
        if self._start is not None:
            raise DecodeError("unexpected EOF")


def parse_envelope(frame: bytes) -> Envelope:
    """Validate one JSON frame as an Envelope."""
    try:
        return Envelope.model_validate_json(frame)
    except ValidationError as e:
        raise DecodeError("invalid envelope", cause=e) from e


async def decode_envelopes(
    body: ByteStream,
    queue: asyncio.Queue,
) -> None:
    """
    Decode envelopes from ``body`` into ``queue`` until the body ends.

    Puts one EnvelopeOrError per envelope. On malformed input or a failed
    read, puts a single error item and stops. Always finishes with a None
    sentinel unless cancelled. The body is closed on every exit path.

    Args:
        body: Raw response body, owned by this coroutine from now on
        queue: Bounded queue read by the envelope stream
    """
    scanner = FrameScanner()
    try:
        try:
            async for chunk in body:
                for frame in scanner.feed(chunk):
                    await queue.put(EnvelopeOrError(envelope=parse_envelope(frame)))
            scanner.finish()
        except DecodeError as e:
            await queue.put(EnvelopeOrError(error=e))
        except Exception as e:
            logger.debug("Envelope body read failed: %s", e)
            await queue.put(EnvelopeOrError(error=BodyReadError("read body", cause=e)))
        await queue.put(None)
    finally:
        await body.aclose()


__all__ = [
    "FrameScanner",
    "parse_envelope",
    "decode_envelopes",
]
