from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, String,
    UniqueConstraint, Uuid, func,
)

from catcafe_booking.database.engine import Base


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    capacity = Column(Integer, nullable=False, default=1)
    # {"cash": {"hourly": 100, "daily": 600, "monthly": 8000}}
    prices = Column(JSON, nullable=False, default=dict)
    # subset of "token", "cash", "dp20"
    booking_options = Column(JSON, nullable=False, default=list)
    hidden = Column(Boolean, nullable=False, default=False)


class AvailableDate(Base):
    __tablename__ = "available_dates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    available_date = Column(Date, nullable=False, index=True)
    # NULL opens the date for every room
    room_id = Column(ForeignKey("rooms.id"), nullable=True)
    reason = Column(String)
    created_by = Column(Uuid)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("available_date", "room_id", name="uq_available_date_room"),
    )
