import logging
from datetime import date, timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from catcafe_booking.bookings.models import INACTIVE_STATUSES, Booking
from catcafe_booking.database.engine import get_async_session
from catcafe_booking.exceptions import DateAlreadyOpenError, RoomNotFoundError
from catcafe_booking.rooms.models import AvailableDate, Room
from catcafe_booking.timeutils import local_day_bounds

logger = logging.getLogger(__name__)


class RoomRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_all(self, include_hidden: bool = False):
        query = select(Room).order_by(Room.id)
        if not include_hidden:
            query = query.where(Room.hidden.is_(False))
        result = await self.db.execute(query)
        return result.scalars().all()

    async def get_room(self, room_id: int) -> Room:
        room = await self.db.get(Room, room_id)
        if room is None:
            raise RoomNotFoundError()
        return room

    async def update_room(self, room_id: int, **fields) -> Room:
        room = await self.get_room(room_id)
        for key, value in fields.items():
            if value is not None:
                setattr(room, key, value)
        await self.db.commit()
        await self.db.refresh(room)
        return room


class AvailableDateRepository:
    """Dates are closed unless an available_dates row opens them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_bookable(self, room_id: int, day: date) -> bool:
        query = (
            select(AvailableDate.id)
            .where(
                AvailableDate.available_date == day,
                or_(AvailableDate.room_id.is_(None), AvailableDate.room_id == room_id),
            )
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none() is not None

    async def find_all(self):
        query = select(AvailableDate).order_by(AvailableDate.available_date)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def date_strings(self, room_id: int | None = None) -> list[str]:
        query = select(AvailableDate.available_date).distinct().order_by(AvailableDate.available_date)
        if room_id is not None:
            query = query.where(or_(AvailableDate.room_id.is_(None), AvailableDate.room_id == room_id))
        result = await self.db.execute(query)
        return [d.isoformat() for d in result.scalars().all()]

    async def _exists(self, day: date, room_id: int | None) -> bool:
        room_clause = AvailableDate.room_id.is_(None) if room_id is None else AvailableDate.room_id == room_id
        query = select(AvailableDate.id).where(AvailableDate.available_date == day, room_clause)
        result = await self.db.execute(query)
        return result.first() is not None

    async def open_date(self, day: date, reason: str | None = None, room_id: int | None = None,
                        created_by: UUID | None = None) -> AvailableDate:
        if await self._exists(day, room_id):
            if room_id is not None:
                raise DateAlreadyOpenError("This date is already open for this room.")
            raise DateAlreadyOpenError()

        row = AvailableDate(available_date=day, reason=reason, room_id=room_id, created_by=created_by)
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        logger.info("Opened %s for %s", day, f"room {room_id}" if room_id else "all rooms")
        return row

    async def open_range(self, start: date, end: date, reason: str | None = None,
                         room_id: int | None = None, created_by: UUID | None = None) -> int:
        """Open every day in [start, end]; days already open are skipped."""
        added = 0
        day = start
        while day <= end:
            if not await self._exists(day, room_id):
                self.db.add(AvailableDate(available_date=day, reason=reason, room_id=room_id,
                                          created_by=created_by))
                added += 1
            day += timedelta(days=1)
        await self.db.commit()
        return added

    async def close_date(self, day: date) -> None:
        await self.db.execute(delete(AvailableDate).where(AvailableDate.available_date == day))
        await self.db.commit()

    async def close_range(self, start: date, end: date) -> None:
        await self.db.execute(
            delete(AvailableDate).where(
                AvailableDate.available_date >= start,
                AvailableDate.available_date <= end,
            )
        )
        await self.db.commit()

    async def count_bookings_on_date(self, day: date) -> int:
        """Active bookings starting on a local day; shown before an admin closes it."""
        day_start, day_end = local_day_bounds(day)
        query = select(func.count(Booking.id)).where(
            Booking.start_time >= day_start,
            Booking.start_time < day_end,
            Booking.status.not_in(INACTIVE_STATUSES),
        )
        result = await self.db.execute(query)
        return result.scalar_one()


async def get_room_repository(db: AsyncSession = Depends(get_async_session)):
    return RoomRepository(db)


async def get_available_date_repository(db: AsyncSession = Depends(get_async_session)):
    return AvailableDateRepository(db)
