"""Run the realtime safety monitor against a local camera."""
import argparse
import asyncio

from sessionguard.monitor.client import MonitorClient
from sessionguard.monitor.config import monitor_settings
from sessionguard.monitor.logger import logger
from sessionguard.monitor.media import CameraSource
from sessionguard.monitor.supervisor import start_safety_monitor


async def run(args: argparse.Namespace) -> None:
    source = CameraSource(args.camera_index, has_audio=not args.no_audio)
    source.open()
    kicked = asyncio.Event()

    def on_kick(reason: str) -> None:
        logger.warning(f"Session {args.session_id} kicked: {reason}")
        kicked.set()

    stop = await start_safety_monitor(
        args.session_id,
        source,
        interval_ms=args.interval_ms,
        on_flag=lambda flags: logger.info(f"Flags: {[f.kind.value for f in flags if f.fired]}"),
        on_warning=lambda message: logger.warning(message),
        on_kick=on_kick,
        client=MonitorClient(base_url=args.api_base_url),
    )
    try:
        await kicked.wait()
    finally:
        stop()
        source.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Realtime safety monitor for a session")
    parser.add_argument("--session-id", required=True, help="Session to report events for")
    parser.add_argument("--camera-index", type=int, default=monitor_settings.camera_index)
    parser.add_argument("--interval-ms", type=int, default=monitor_settings.interval_ms)
    parser.add_argument("--api-base-url", default=monitor_settings.api_base_url)
    parser.add_argument("--no-audio", action="store_true", help="Skip microphone capture")
    args = parser.parse_args()

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Monitor interrupted")


if __name__ == "__main__":
    main()
