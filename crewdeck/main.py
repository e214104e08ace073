#!/usr/bin/env python3
"""
CREWDECK - Crew Execution Console
Serves the execution API and WebSocket feed, or watches a running server's
feed from the terminal.
"""

import argparse
import asyncio
import sys

import uvicorn
from loguru import logger

from . import __version__
from .config import Settings
from .exceptions import ConfigError

def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)

def serve(settings: Settings) -> None:
    """Run the API under uvicorn"""
    from .api import create_app

    logger.info("Starting CREWDECK - Crew Execution Console...")

    config = uvicorn.Config(
        app=create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False
    )
    server = uvicorn.Server(config)

    try:
        logger.info(f"CREWDECK API starting on http://{settings.host}:{settings.port}")
        server.run()
    except KeyboardInterrupt:
        logger.info("Shutting down CREWDECK...")
    except Exception as e:
        logger.error(f"Error running server: {e}")
        raise

async def watch(url: str, capacity: int) -> None:
    """Print each observed execution event as it arrives"""
    from .client import ObserverClient
    from .observer import ObserverSession

    observer = ObserverClient(url=url, session=ObserverSession(capacity=capacity))

    def print_latest(message):
        entries = observer.session.entries
        if entries:
            entry = entries[0]
            metrics = observer.session.metrics
            print(f"[{entry.timestamp}] {entry.classification.value:<7} {entry.message} "
                  f"({observer.session.progress}%, {metrics.tokensUsed} tokens, ${metrics.estimatedCost:.2f})")

    for message_type in ("execution_update", "execution_completed", "execution_stopped"):
        observer.on_message(message_type, print_latest)

    await observer.run()

def main():
    """Main entry point for CREWDECK"""
    parser = argparse.ArgumentParser(
        description="CREWDECK - start simulated crew executions and stream their progress"
    )
    parser.add_argument("--version", action="version", version=__version__)
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the API server (default)")
    serve_parser.add_argument("--host", help="Bind address (default: CREWDECK_HOST or 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port (default: CREWDECK_PORT or 8000)")
    serve_parser.add_argument("--log-level", help="Log level (default: CREWDECK_LOG_LEVEL or INFO)")

    watch_parser = subparsers.add_parser("watch", help="Follow the live execution feed")
    watch_parser.add_argument(
        "--url",
        default="ws://localhost:8000/ws",
        help="WebSocket URL of the feed (default: ws://localhost:8000/ws)"
    )
    watch_parser.add_argument("--capacity", type=int, default=1000, help="Log entries kept in memory")

    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.command == "watch":
        configure_logging(settings.log_level)
        try:
            asyncio.run(watch(args.url, args.capacity))
        except KeyboardInterrupt:
            print("\nStopped watching.")
        return

    overrides = {}
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    if getattr(args, "log_level", None):
        overrides["log_level"] = args.log_level.upper()
    settings = settings.model_copy(update=overrides)

    configure_logging(settings.log_level)
    serve(settings)

if __name__ == "__main__":
    main()
