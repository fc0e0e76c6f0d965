from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from catcafe_booking.packages.repository import PackageRepository, get_package_repository
from catcafe_booking.rooms.repository import (
    AvailableDateRepository, RoomRepository, get_available_date_repository, get_room_repository,
)
from catcafe_booking.rooms.schemas import (
    AvailableDateSchema, DateRangeSchema, OpenDateSchema, RoomSchema, RoomUpdateSchema,
)

router = APIRouter(prefix="/rooms", tags=["Rooms"])
dates_router = APIRouter(prefix="/available-dates", tags=["Available dates"])


@router.get("")
async def get_rooms(
    include_hidden: bool = False,
    repo: RoomRepository = Depends(get_room_repository),
) -> list[RoomSchema]:
    return await repo.find_all(include_hidden)


@router.get("/{room_id}")
async def get_room(
    room_id: int,
    repo: RoomRepository = Depends(get_room_repository),
) -> RoomSchema:
    return await repo.get_room(room_id)


@router.patch("/{room_id}")
async def update_room(
    room_id: int,
    data: RoomUpdateSchema,
    repo: RoomRepository = Depends(get_room_repository),
    packages: PackageRepository = Depends(get_package_repository),
):
    await packages.require_admin(data.admin_id)
    fields = data.model_dump(exclude={"admin_id"}, exclude_none=True)
    room = await repo.update_room(room_id, **fields)
    return {"success": True, "room": RoomSchema.model_validate(room)}


@dates_router.get("")
async def list_available_dates(
    repo: AvailableDateRepository = Depends(get_available_date_repository),
) -> list[AvailableDateSchema]:
    return await repo.find_all()


@dates_router.get("/dates")
async def list_date_strings(
    room_id: Optional[int] = None,
    repo: AvailableDateRepository = Depends(get_available_date_repository),
) -> list[str]:
    """ISO dates open for the room (or for any room when omitted)."""
    return await repo.date_strings(room_id)


@dates_router.get("/check")
async def check_date(
    room_id: int,
    available_date: date,
    repo: AvailableDateRepository = Depends(get_available_date_repository),
):
    return {"success": True, "bookable": await repo.is_bookable(room_id, available_date)}


@dates_router.post("", status_code=201)
async def open_date(
    data: OpenDateSchema,
    repo: AvailableDateRepository = Depends(get_available_date_repository),
    packages: PackageRepository = Depends(get_package_repository),
):
    await packages.require_admin(data.admin_id)
    row = await repo.open_date(data.available_date, data.reason, data.room_id, data.admin_id)
    return {"success": True, "available_date": AvailableDateSchema.model_validate(row)}


@dates_router.post("/range", status_code=201)
async def open_date_range(
    data: DateRangeSchema,
    repo: AvailableDateRepository = Depends(get_available_date_repository),
    packages: PackageRepository = Depends(get_package_repository),
):
    await packages.require_admin(data.admin_id)
    added = await repo.open_range(data.start_date, data.end_date, data.reason, data.room_id, data.admin_id)
    return {"success": True, "count": added}


@dates_router.post("/close-range")
async def close_date_range(
    data: DateRangeSchema,
    repo: AvailableDateRepository = Depends(get_available_date_repository),
    packages: PackageRepository = Depends(get_package_repository),
):
    await packages.require_admin(data.admin_id)
    await repo.close_range(data.start_date, data.end_date)
    return {"success": True}


@dates_router.get("/{available_date}/bookings-count")
async def count_bookings(
    available_date: date,
    repo: AvailableDateRepository = Depends(get_available_date_repository),
):
    return {"success": True, "count": await repo.count_bookings_on_date(available_date)}


@dates_router.delete("/{available_date}")
async def close_date(
    available_date: date,
    admin_id: UUID,
    repo: AvailableDateRepository = Depends(get_available_date_repository),
    packages: PackageRepository = Depends(get_package_repository),
):
    await packages.require_admin(admin_id)
    await repo.close_date(available_date)
    return {"success": True}
