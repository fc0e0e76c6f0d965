import asyncio
import logging
import selectors
import sys

from catcafe_booking.bookings.models import Booking, OutboxEvent  # noqa: F401
from catcafe_booking.database.engine import Base, engine
from catcafe_booking.packages.models import PackageHistory, User  # noqa: F401
from catcafe_booking.rooms.models import AvailableDate, Room  # noqa: F401

logger = logging.getLogger("create_tables")


async def main():
    logger.info("Connecting to %s", engine.url.render_as_string(hide_password=True))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if sys.platform == "win32":
        asyncio.run(main(), loop_factory=lambda: asyncio.SelectorEventLoop(selectors.SelectSelector()))
    else:
        asyncio.run(main())
