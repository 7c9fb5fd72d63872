"""
Command-line entry point.

    rec-watch serve            run the control server (HTTP + WebSocket)
    rec-watch check            run a single check with alerts, print JSON
    rec-watch listen           print live events from a running server
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

import uvicorn
import websockets

from .config import Settings, load_settings
from .monitor import Monitor
from .server import create_app

logger = logging.getLogger("rec_watch")

RECONNECT_DELAY = 5


def setup_logging(level: str) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=level,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("telegram.ext").setLevel(logging.WARNING)


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def build_arg_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="rec-watch", description="Rec center enrollment availability watcher"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the control server")
    serve.add_argument("--host", help="Bind address (env HOST, default 127.0.0.1)")
    serve.add_argument("--port", type=int, help="Port (env PORT, default 3001)")
    serve.add_argument("--url", help="Activity page to watch (env TARGET_URL)")
    serve.add_argument(
        "--interval", type=_positive_int, help="Polling interval in seconds (env POLL_INTERVAL)"
    )
    serve.add_argument("--start", action="store_true", help="Start polling immediately")

    check = sub.add_parser("check", help="Check availability once and exit")
    check.add_argument("--url", help="Activity page to check (env TARGET_URL)")
    check.add_argument("--no-open", action="store_true", help="Do not open the page when available")
    check.add_argument("--no-notify", action="store_true", help="No desktop notification")

    listen = sub.add_parser("listen", help="Print live events from a running server")
    listen.add_argument("--ws", help="WebSocket URI (default ws://HOST:PORT/ws)")

    return parser


async def run_check(settings: Settings) -> int:
    monitor = Monitor(settings)
    try:
        result = await monitor.checker.check(monitor.config.target_url)
        await monitor.checker.wait_for_alerts()
    finally:
        monitor.fetcher.close()
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0 if result.ok else 1


async def listen(uri: str) -> None:
    """Print every event pushed by the server, reconnecting on failure."""
    logger.info("Listening on WS %s", uri)
    retry = 0
    while True:
        try:
            retry += 1
            logger.info("Connection attempt #%d to %s", retry, uri)
            async with websockets.connect(uri) as ws:
                retry = 0
                async for msg in ws:
                    print(json.dumps(json.loads(msg), ensure_ascii=False), flush=True)
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning("WS closed: %s - reconnecting...", e)
        except OSError as e:
            logger.warning("WS error: %s - reconnecting...", e)
        await asyncio.sleep(RECONNECT_DELAY)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = build_arg_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    setup_logging("DEBUG" if args.verbose else settings.log_level)

    if args.command == "serve":
        settings = settings.with_overrides(
            host=args.host, port=args.port, target_url=args.url, poll_interval=args.interval
        )
        app = create_app(settings, start_polling=args.start)
        logger.info("🏀 Rec Center Watch running at http://%s:%d", settings.host, settings.port)
        uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")
        return 0

    if args.command == "check":
        overrides = {"target_url": args.url}
        if args.no_open:
            overrides["auto_open"] = False
        if args.no_notify:
            overrides["desktop_notify"] = False
        return asyncio.run(run_check(settings.with_overrides(**overrides)))

    uri = args.ws or f"ws://{settings.host}:{settings.port}/ws"
    try:
        asyncio.run(listen(uri))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
