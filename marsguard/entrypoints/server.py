"""MarsGuard service entrypoint.

Serves the nullifier registry, score ledger, validator message board and
risk view over HTTP, and polls validator telemetry in the background.
"""

import asyncio
import os
import signal

import bittensor as bt
from dotenv import load_dotenv

from marsguard.attestation.registry import FilesystemRegistry, InMemoryRegistry
from marsguard.base.config import ServiceSettings, check_config, config
from marsguard.channel import MessageBoard, SecureChannel, generate_key
from marsguard.scoring.telemetry import TelemetryFeed
from marsguard.server import RegistryHTTPServer


def build_components(settings: ServiceSettings) -> tuple[RegistryHTTPServer, TelemetryFeed]:
    """Wire registry, board, channel and feed into a server."""
    if settings.registry_backend == "memory":
        registry = InMemoryRegistry()
    else:
        registry = FilesystemRegistry(os.path.expanduser(settings.registry_data_dir))

    board_path = os.path.expanduser(settings.board_path) if settings.board_path else None
    board = MessageBoard(board_path)

    if settings.channel_key_hex:
        channel = SecureChannel.from_hex(settings.channel_key_hex, board=board)
    else:
        # Ephemeral key: messages posted under it cannot be revealed after restart.
        bt.logging.warning({"marsguard": {"channel": "ephemeral_key"}})
        channel = SecureChannel(generate_key(), board=board)

    feed = TelemetryFeed(
        url=settings.telemetry_url,
        poll_interval=settings.telemetry_poll_interval,
        stale_after=settings.telemetry_stale_after,
    )

    server = RegistryHTTPServer(
        registry=registry,
        board=board,
        channel=channel,
        feed=feed,
        host=settings.server_host,
        port=settings.server_port,
    )
    return server, feed


async def _run(server: RegistryHTTPServer, feed: TelemetryFeed, stop_event: asyncio.Event) -> None:
    await server.start()
    poller = asyncio.create_task(feed.run())
    try:
        await stop_event.wait()
    finally:
        feed.stop()
        poller.cancel()
        await asyncio.gather(poller, return_exceptions=True)
        await server.stop()
        await feed.close()


def main() -> None:
    # Load .env if not in test mode
    if os.environ.get("MARSGUARD_TEST_MODE") != "true":
        load_dotenv()

    settings = config()
    check_config(settings)

    bt.logging.info({
        "marsguard_config": {
            "host": settings.server_host,
            "port": settings.server_port,
            "registry_backend": settings.registry_backend,
            "telemetry_url": settings.telemetry_url or "sample",
            "poll_interval": settings.telemetry_poll_interval,
        }
    })

    server, feed = build_components(settings)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    stop_event = asyncio.Event()

    def _signal_handler(sig, frame):
        bt.logging.info({"marsguard": "shutdown_signal_received"})
        loop.call_soon_threadsafe(stop_event.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        loop.run_until_complete(_run(server, feed, stop_event))
    except KeyboardInterrupt:
        bt.logging.info({"marsguard": "keyboard_interrupt"})
    finally:
        loop.close()
        bt.logging.info({"marsguard": "stopped"})


if __name__ == "__main__":
    main()
