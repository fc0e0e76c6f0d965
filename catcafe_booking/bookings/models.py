import enum
import uuid

from sqlalchemy import (
    DDL, JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric,
    String, Text, Uuid, event, func,
)

from catcafe_booking.database.engine import Base


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    TO_BE_CONFIRMED = "to_be_confirmed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    TOKEN = "token"
    BR15 = "br15"
    BR30 = "br30"
    DP20 = "dp20"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class BookingType(str, enum.Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"


# Statuses that no longer hold the room
INACTIVE_STATUSES = (BookingStatus.CANCELLED.value, BookingStatus.RESCHEDULED.value)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)

    booking_type = Column(String, nullable=False, default=BookingType.HOURLY.value)
    payment_method = Column(String, nullable=False)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    status = Column(String, nullable=False, default=BookingStatus.PENDING.value)
    # Cash amount, or hours for token/BR bookings
    total_cost = Column(Numeric(10, 2), nullable=False, default=0)

    purpose = Column(Text, nullable=False)
    guests = Column(Integer, nullable=False, default=1)
    equipment = Column(JSON, nullable=False, default=list)
    special_requests = Column(Text)
    wants_projector = Column(Boolean, nullable=False, default=False)
    created_by_admin = Column(Boolean, nullable=False, default=False)

    receipt_path = Column(String)
    receipt_uploaded_at = Column(DateTime)
    payment_confirmed_at = Column(DateTime)
    payment_confirmed_by = Column(Uuid)
    admin_notes = Column(Text)

    cancelled_at = Column(DateTime)
    cancelled_by = Column(Uuid)
    cancellation_hours_before = Column(Integer)
    cancellation_reason = Column(Text)
    cancellation_reviewed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_bookings_room_window", room_id, start_time, end_time),
        Index("idx_bookings_status_payment", status, payment_status),
    )


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String, nullable=False)  # e.g. "booking_cancelled"
    payload = Column(JSON, nullable=False)
    status = Column(String, default="PENDING")   # PENDING, PROCESSED, FAILED
    created_at = Column(DateTime, server_default=func.now())


# Overlap guard for concurrent inserts; Postgres only, the repository pre-check covers other backends
event.listen(
    Booking.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        "ALTER TABLE bookings ADD CONSTRAINT no_overlapping_bookings "
        "EXCLUDE USING gist (room_id WITH =, tsrange(start_time, end_time) WITH &&) "
        "WHERE (status NOT IN ('cancelled', 'rescheduled'))"
    ).execute_if(dialect="postgresql"),
)
