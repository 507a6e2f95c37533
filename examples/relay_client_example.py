"""Example: Push a media file through the stream relay.

This example demonstrates how to:
1. Check that a relay is reachable and has ffmpeg installed
2. Start a relay session for a stream key
3. Send a pre-encoded media file in chunks once the relay reports live
4. Stop the stream and disconnect

Usage:
    # Health check only
    python examples/relay_client_example.py --health --endpoint http://localhost:3000

    # Stream a WebM file
    python examples/relay_client_example.py --endpoint http://localhost:3000 \
        --stream-key FB-123456789 --file capture.webm

The relay applies no backpressure, so chunks are paced here with --interval.
"""

import argparse
import asyncio
import os
from pathlib import Path

from dotenv import load_dotenv

from streamrelay.app_config import RelayClientSettings
from streamrelay.services.relay_client.relay_client_schemas import ControllerEvent
from streamrelay.services.relay_client.relay_controller import RelayConnectionController

# Optional local override (do not commit)
load_dotenv("env.local", override=False)

RELAY_ENDPOINT = os.getenv("RELAY_CLIENT_USER_ENDPOINT", "http://localhost:3000")
STREAM_KEY = os.getenv("STREAM_KEY", "")


def print_event(event: ControllerEvent) -> None:
    print(f"  [{event.kind}] {event.message}")


async def check_health(controller: RelayConnectionController) -> bool:
    reachable = await controller.check_endpoint_health()
    health = controller.last_health

    if not reachable or health is None:
        print("✗ Relay is not reachable")
        return False

    print("✓ Relay is reachable:")
    print(f"  Base URL: {health.base_url}")
    print(f"  Socket URL: {health.ws_url}")
    print(f"  FFmpeg: {health.ffmpeg_status}")
    print(f"  Active streams: {health.active_streams}")
    return True


async def stream_file(
    controller: RelayConnectionController,
    stream_key: str,
    path: Path,
    chunk_size: int,
    interval: float,
) -> None:
    if not await controller.start_stream(stream_key):
        print(f"✗ Could not start stream: {controller.state.error}")
        return

    for _ in range(50):
        if controller.state.is_streaming:
            break
        await asyncio.sleep(0.1)
    else:
        print(f"✗ Relay did not go live: {controller.state.error}")
        return

    print(f"✓ Streaming {path} ({controller.state.stats.mode} mode)")

    with path.open("rb") as f:
        while chunk := f.read(chunk_size):
            if not await controller.send_chunk(chunk):
                print(f"✗ Stream interrupted: {controller.state.error}")
                break
            await asyncio.sleep(interval)

    stats = controller.state.stats
    print("✓ Upload finished:")
    print(f"  Chunks: {stats.chunk_count} (acked {stats.acked_chunks})")
    print(f"  Bytes: {stats.bytes_sent}")
    print(f"  Duration: {stats.duration}s")
    print(f"  Latency: {stats.measured_latency_ms} ms")

    await controller.stop_stream()


async def main():
    parser = argparse.ArgumentParser(description="Stream relay client example")
    parser.add_argument("--endpoint", default=RELAY_ENDPOINT, help="Relay base URL")
    parser.add_argument("--stream-key", default=STREAM_KEY, help="Destination stream key")
    parser.add_argument("--file", type=Path, help="Pre-encoded media file to send")
    parser.add_argument("--chunk-size", type=int, default=64 * 1024)
    parser.add_argument("--interval", type=float, default=0.1, help="Seconds between chunks")
    parser.add_argument("--health", action="store_true", help="Only run the health check")
    args = parser.parse_args()

    settings = RelayClientSettings.from_environ().model_copy(update={"user_endpoint": args.endpoint})
    controller = RelayConnectionController(settings)
    controller.add_listener(print_event)

    try:
        if not await check_health(controller) or args.health:
            return

        if not args.stream_key or args.file is None:
            print("Error: --stream-key and --file are required to stream")
            return

        await stream_file(controller, args.stream_key, args.file, args.chunk_size, args.interval)
    finally:
        await controller.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
