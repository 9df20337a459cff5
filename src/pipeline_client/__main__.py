"""Pipeline client command line. Use --help for usage."""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import TextIO

from dotenv import load_dotenv

from pipeline_client.auth import StaticTokenProvider
from pipeline_client.client import ClientConfig, PipelineClient
from pipeline_client.config import ClientSettings, load_settings
from pipeline_client.errors.exceptions import ConfigurationError, PipelineError
from pipeline_client.logging.context import set_log_context
from pipeline_client.logging.setup import setup_logging
from pipeline_client.logging.utilities import log_exception
from pipeline_client.metrics import start_metrics_server
from pipeline_client.schemas.envelope import EnvelopeType
from pipeline_client.schemas.requests import Reset
from pipeline_client.streaming.reconnect import ReconnectingStream

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m pipeline_client",
        description="Read envelopes from a pipeline topic or acknowledge sync markers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Tail a topic, printing one JSON envelope per line
    python -m pipeline_client receive --topic events

    # Tail from the earliest position and acknowledge SYNC markers
    python -m pipeline_client receive --topic events --reset earliest --auto-sync

    # Acknowledge one marker
    python -m pipeline_client sync "<marker>"
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file with a 'pipeline:' section (default: ./config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Also write JSON logs to this directory",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    receive = subparsers.add_parser("receive", help="Print envelopes from a topic")
    receive.add_argument("--topic", default=None, help="Topic to read")
    receive.add_argument(
        "--org",
        action="append",
        dest="organizations",
        default=None,
        help="Only receive messages for this organization (repeatable)",
    )
    receive.add_argument(
        "--source",
        action="append",
        dest="sources",
        default=None,
        help="Only receive messages from this source (repeatable)",
    )
    receive.add_argument(
        "--reset",
        choices=[r.value for r in Reset],
        default=None,
        help="Starting position when the group has no committed position",
    )
    receive.add_argument(
        "--sync-interval",
        type=float,
        default=None,
        help="Seconds between SYNC envelopes (minimum 5)",
    )
    receive.add_argument(
        "--ping-timeout",
        type=float,
        default=None,
        help="Seconds without PING before reconnecting (default: 90)",
    )
    receive.add_argument(
        "--reconnection-delay",
        type=float,
        default=None,
        help="Seconds to wait between connections (default: 5)",
    )
    receive.add_argument(
        "--auto-sync",
        action="store_true",
        default=None,
        help="Acknowledge every SYNC marker as it arrives",
    )
    receive.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port",
    )

    sync = subparsers.add_parser("sync", help="Acknowledge a sync marker")
    sync.add_argument("marker", help="Marker from a SYNC envelope")

    return parser.parse_args(argv)


def _overrides_from_args(args: argparse.Namespace) -> dict:
    if args.command != "receive":
        return {}
    return {
        "topic": args.topic,
        "organizations": args.organizations,
        "sources": args.sources,
        "reset": args.reset,
        "sync_interval_seconds": args.sync_interval,
        "ping_timeout_seconds": args.ping_timeout,
        "reconnection_delay_seconds": args.reconnection_delay,
        "auto_sync": args.auto_sync,
    }


def build_client(settings: ClientSettings) -> PipelineClient:
    return PipelineClient(
        ClientConfig(
            pipeline_url=settings.url,
            group=settings.group,
            token_provider=StaticTokenProvider(settings.token),
        )
    )


def setup_signal_handlers(loop: asyncio.AbstractEventLoop, shutdown_event: asyncio.Event):
    """Set the shutdown event on SIGINT/SIGTERM.

    Signal handlers are not supported on Windows; KeyboardInterrupt applies there.
    """

    def handle_signal(sig):
        logger.info("Received %s, shutting down", sig.name)
        shutdown_event.set()

    if sys.platform == "win32":
        return

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))


async def consume(
    client: PipelineClient,
    stream: ReconnectingStream,
    auto_sync: bool,
    out: TextIO,
) -> None:
    """Write each envelope as a JSON line; errors go to the log."""
    async for item in stream:
        if item.is_error:
            log_exception(
                logger,
                item.error,
                "Envelope stream error",
                level=logging.WARNING,
                include_traceback=False,
            )
            continue

        envelope = item.envelope
        out.write(json.dumps(envelope.to_payload()) + "\n")
        out.flush()

        if auto_sync and envelope.envelope_type == EnvelopeType.SYNC:
            try:
                await client.sync(envelope.sync_marker)
            except PipelineError as e:
                log_exception(
                    logger, e, "Failed to acknowledge sync marker", level=logging.WARNING
                )


async def run_receive(settings: ClientSettings, out: TextIO = sys.stdout) -> None:
    shutdown_event = asyncio.Event()
    setup_signal_handlers(asyncio.get_running_loop(), shutdown_event)
    set_log_context(topic=settings.topic, group=settings.group)

    async with build_client(settings) as client:
        async with client.receive(settings.topic, settings.to_receive_request()) as stream:
            consumer = asyncio.create_task(
                consume(client, stream, settings.auto_sync, out), name="consumer"
            )
            stopper = asyncio.create_task(shutdown_event.wait(), name="shutdown")
            done, pending = await asyncio.wait(
                {consumer, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            if consumer in done:
                consumer.result()

    logger.info("Receive stopped")


async def run_sync(settings: ClientSettings, marker: str) -> None:
    set_log_context(group=settings.group)
    async with build_client(settings) as client:
        await client.sync(marker)
    logger.info("Marker acknowledged")


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    setup_logging(
        name="pipeline_client",
        log_dir=args.log_dir,
        console_level=getattr(logging, args.log_level),
    )

    try:
        settings = load_settings(args.config, _overrides_from_args(args))
        settings.validate(require_topic=args.command == "receive")
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    try:
        if args.command == "receive":
            if args.metrics_port:
                start_metrics_server(args.metrics_port)
            asyncio.run(run_receive(settings))
        else:
            asyncio.run(run_sync(settings, args.marker))
    except PipelineError as e:
        log_exception(logger, e, f"{args.command} failed", include_traceback=False)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.info("Interrupted")

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
