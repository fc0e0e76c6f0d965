import asyncio
import logging
import os

from catcafe_booking.database.engine import AsyncSessionLocal
from catcafe_booking.packages.repository import PackageRepository

PACKAGE_CLEANUP_INTERVAL_SECONDS = int(os.getenv("PACKAGE_CLEANUP_INTERVAL_SECONDS", "3600"))

logger = logging.getLogger(__name__)


async def clear_expired_packages_worker(poll_interval_seconds: int = PACKAGE_CLEANUP_INTERVAL_SECONDS) -> None:
    """Periodically zero package balances whose expiry has passed."""
    while True:
        try:
            async with AsyncSessionLocal() as session:
                repo = PackageRepository(session)
                cleared = await repo.clear_expired_packages()
                if cleared:
                    logger.info("Cleared expired packages for %d users", len(cleared))
        except Exception as exc:
            logger.error("Expired package cleanup failed: %s", exc)
            await asyncio.sleep(10)
            continue

        await asyncio.sleep(poll_interval_seconds)
