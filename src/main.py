#!/usr/bin/env python3
"""
Main entry point for the FriendFind match engine service
"""

import asyncio
import signal
import sys

from dotenv import load_dotenv
from loguru import logger

# Load .env before settings are read by the imports below
load_dotenv()

from src.core.config import get_settings
from src.core.diagnostics import reset_metrics


def configure_logging(level: str, log_file: str) -> None:
    """Send logs to stderr and to a rotating file."""
    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_file:
        logger.add(log_file, rotation="10 MB", level="DEBUG")


async def main():
    """Start storage, the engine and the health endpoint, then wait for a signal."""
    from src.db.base import get_engine, async_session_factory, init_models
    from src.health import start_health_server
    from src.matchmaking.engine import MatchEngine

    settings = get_settings()
    reset_metrics()

    await init_models(get_engine())
    engine = MatchEngine(async_session_factory)
    runner = await start_health_server(engine, settings.HEALTH_HOST, settings.HEALTH_PORT)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info(f"{settings.app_name} ready")
    try:
        await stop.wait()
    finally:
        logger.info("Initiating shutdown sequence...")
        await engine.close()
        await runner.cleanup()
        await get_engine().dispose()
        logger.info("Shutdown sequence complete.")


if __name__ == "__main__":
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped by keyboard interrupt")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
