"""
Consumer process: one stage, one connection, one message at a time.

Runs until SIGTERM/SIGINT or until the broker connection fails. Scale
out by starting more processes for the same stage.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Optional

from pipeline.broker.connection import open_channel
from pipeline.consumer.registry import build_consumer
from pipeline.consumer.runtime import ConsumerRuntime
from pipeline.db.session import close_db
from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

shutdown_event = asyncio.Event()


async def run_worker(stage_name: str, exchange: Optional[str] = None, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    logger.info("Worker starting", stage=stage_name, exchange=exchange or settings.default_exchange)

    try:
        async with open_channel(settings) as channel:
            consumer = build_consumer(stage_name, channel, exchange, settings)
            runtime = ConsumerRuntime(consumer, channel)
            await runtime.start()

            consumer_task = asyncio.create_task(runtime.run())
            shutdown_task = asyncio.create_task(shutdown_event.wait())

            done, _ = await asyncio.wait(
                {consumer_task, shutdown_task},
                return_when=asyncio.FIRST_COMPLETED,
            )

            if consumer_task in done:
                # consuming only ends on a broker failure; re-raise it
                shutdown_task.cancel()
                try:
                    await shutdown_task
                except asyncio.CancelledError:
                    pass
                consumer_task.result()
            else:
                logger.info("Shutdown signal received, stopping consumer")
                consumer_task.cancel()
                try:
                    await consumer_task
                except asyncio.CancelledError:
                    pass
    finally:
        await close_db()

    logger.info("Worker stopped", stage=stage_name)


def handle_signals() -> None:
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(signum, frame):
        logger.info("Received signal", signal=signum)
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def main(stage_name: str, exchange: Optional[str] = None) -> int:
    """Run one consumer process; returns the process exit status."""
    handle_signals()

    try:
        asyncio.run(run_worker(stage_name, exchange))
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    except Exception as e:
        logger.error("Worker crashed", stage=stage_name, error=str(e), exc_info=e)
        return 1
    return 0
