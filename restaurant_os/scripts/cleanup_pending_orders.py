"""
Background job to cancel abandoned orders

Run periodically by an external scheduler (cron, Kubernetes CronJob), e.g.
every 5 minutes:

    python -m restaurant_os.scripts.cleanup_pending_orders
"""

import asyncio
import sys

import structlog

from restaurant_os.core.database import async_engine, async_session_maker
from restaurant_os.core.logging_config import configure_logging
from restaurant_os.services.sweeper import SweepResult, sweep_abandoned_orders

logger = structlog.get_logger(__name__)


async def run() -> SweepResult:
    try:
        return await sweep_abandoned_orders(async_session_maker)
    finally:
        await async_engine.dispose()


def main():
    """Main entry point for cleanup job"""
    configure_logging()
    logger.info("Starting abandoned order cleanup job")

    try:
        results = asyncio.run(run())
    except Exception as e:
        logger.error("Fatal error in cleanup job", error=str(e), exc_info=True)
        sys.exit(1)

    logger.info("Abandoned order cleanup complete", **results.to_dict())
    if results.failed:
        sys.exit(2)


if __name__ == "__main__":
    main()
