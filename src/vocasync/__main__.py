"""Main entry point for the sync agent."""
import asyncio
import logging
import signal

from vocasync.app import VocaSync
from vocasync.logging_config import setup_logging

logger = logging.getLogger("vocasync")


async def main() -> None:
    """Run the sync agent until SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    agent = VocaSync()
    try:
        logger.info("Starting sync agent...")
        await agent.start()
        logger.info("Pending records: %s", await agent.status())
        await stop_event.wait()
        logger.info("Received exit signal, shutting down...")
    finally:
        logger.info("Cleaning up...")
        await agent.stop()


if __name__ == "__main__":
    setup_logging("Starting VocaSync agent ...")

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
