import logging
import os
import uuid
from dataclasses import dataclass
from datetime import date, datetime

from dotenv import load_dotenv
from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catcafe_booking.bookings.models import (
    INACTIVE_STATUSES, Booking, BookingStatus, OutboxEvent, PaymentMethod, PaymentStatus,
)
from catcafe_booking.bookings.schemas import AdminBookingCreateSchema, BookingCreateSchema, BookingUpdateSchema
from catcafe_booking.bookings.settlement import settle, validate_duration
from catcafe_booking.database.engine import get_async_session
from catcafe_booking.exceptions import (
    BookingAlreadyCancelledError, BookingConflictError, BookingException, BookingNotFoundError,
    BookingValidationError, DateUnavailableError, InvalidStatusTransitionError, NotBookingOwnerError,
    PersistenceError,
)
from catcafe_booking.packages.repository import PackageRepository
from catcafe_booking.rooms.repository import AvailableDateRepository, RoomRepository
from catcafe_booking.timeutils import hours_before, local_day_bounds, local_to_utc, utc_to_local, utcnow

load_dotenv()
# Prepaid bookings skip admin review unless this is switched off
AUTO_CONFIRM_PREPAID = os.getenv("AUTO_CONFIRM_PREPAID", "true").lower() == "true"

OVERLAP_CONSTRAINT = "no_overlapping_bookings"
EXCLUSION_VIOLATION = "23P01"

logger = logging.getLogger(__name__)


def is_overlap_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "sqlstate", None) == EXCLUSION_VIOLATION:
        return True
    return OVERLAP_CONSTRAINT in str(exc)


@dataclass
class CancellationResult:
    booking: Booking
    hours_before: int
    refunded: bool = False
    refund_error: str | None = None


class BookingRepository:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.rooms = RoomRepository(db)
        self.dates = AvailableDateRepository(db)
        self.packages = PackageRepository(db)

    @staticmethod
    def _event(event_type: str, booking: Booking, **extra) -> OutboxEvent:
        return OutboxEvent(
            event_type=event_type,
            payload={
                "booking_id": str(booking.id),
                "user_id": str(booking.user_id),
                "room_id": booking.room_id,
                "start_time": booking.start_time.isoformat(),
                "end_time": booking.end_time.isoformat(),
                "status": booking.status,
                "payment_method": booking.payment_method,
                "total_cost": str(booking.total_cost),
                "timestamp": utcnow().isoformat(),
                **extra,
            },
        )

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_overlap_violation(e):
                raise BookingConflictError() from e
            raise PersistenceError(str(e.orig)) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(str(e)) from e

    async def check_availability(self, room_id: int, start: datetime, end: datetime,
                                 exclude_booking_id: uuid.UUID | None = None) -> bool:
        """True when no active booking of the room overlaps [start, end)."""
        query = select(Booking.id).where(
            Booking.room_id == room_id,
            Booking.status.not_in(INACTIVE_STATUSES),
            Booking.start_time < end,
            Booking.end_time > start,
        )
        if exclude_booking_id is not None:
            query = query.where(Booking.id != exclude_booking_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none() is None

    async def has_conflict(self, room_id: int, start: datetime, end: datetime,
                           exclude_booking_id: uuid.UUID | None = None) -> bool:
        return not await self.check_availability(room_id, start, end, exclude_booking_id)

    async def _ensure_slot(self, room_id: int, day: date, start: datetime, end: datetime,
                           exclude_booking_id: uuid.UUID | None = None) -> None:
        if not await self.dates.is_bookable(room_id, day):
            raise DateUnavailableError()
        if await self.has_conflict(room_id, start, end, exclude_booking_id):
            raise BookingConflictError()

    @staticmethod
    def _check_payment_option(room, method: PaymentMethod) -> None:
        options = room.booking_options or []
        if not options:
            return
        option = "token" if method in (PaymentMethod.BR15, PaymentMethod.BR30) else method.value
        if option not in options:
            raise BookingValidationError(f"{method.value.upper()} payment is not available for this room.")

    async def create_booking(self, data: BookingCreateSchema) -> Booking:
        room = await self.rooms.get_room(data.room_id)
        self._check_payment_option(room, data.payment_method)
        settlement = settle(
            room.id, room.prices, data.booking_type, data.payment_method,
            data.start_time, data.end_time, data.guests, data.wants_projector,
        )

        start = local_to_utc(data.booking_date, data.start_time)
        end = local_to_utc(data.booking_date, data.end_time)
        await self._ensure_slot(room.id, data.booking_date, start, end)

        user = await self.packages.get_user(data.user_id, lock=settlement.is_prepaid)
        if settlement.is_prepaid:
            self.packages.ensure_balance(user, settlement.package, settlement.required_units)
            status = BookingStatus.CONFIRMED if AUTO_CONFIRM_PREPAID else BookingStatus.TO_BE_CONFIRMED
            payment_status = PaymentStatus.COMPLETED
        else:
            status = BookingStatus.PENDING
            payment_status = PaymentStatus.PENDING

        booking = Booking(
            id=uuid.uuid4(),
            user_id=user.id,
            room_id=room.id,
            start_time=start,
            end_time=end,
            booking_type=data.booking_type.value,
            payment_method=data.payment_method.value,
            payment_status=payment_status.value,
            status=status.value,
            total_cost=settlement.total_cost,
            purpose=data.purpose_text(),
            guests=data.guests,
            equipment=[item.model_dump() for item in data.equipment],
            special_requests=data.special_requests,
            wants_projector=data.wants_projector,
        )
        self.db.add(booking)
        try:
            # Booking row must exist before the ledger entry referencing it
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            if is_overlap_violation(e):
                raise BookingConflictError() from e
            raise PersistenceError(str(e.orig)) from e

        if settlement.is_prepaid:
            self.packages.debit(user, settlement.package, settlement.required_units, booking.id)
        self.db.add(self._event("booking_created", booking))
        await self._commit()
        await self.db.refresh(booking)

        logger.info(
            "Booking %s created: room %s, %s-%s, %s %s",
            booking.id, room.id, start, end, booking.payment_method, booking.total_cost,
        )
        return booking

    async def admin_create_booking(self, data: AdminBookingCreateSchema) -> Booking:
        """Admin bookings are confirmed and paid on creation; no balance is debited."""
        room = await self.rooms.get_room(data.room_id)
        validate_duration(data.start_time, data.end_time)
        try:
            settlement = settle(
                room.id, room.prices, data.booking_type, data.payment_method,
                data.start_time, data.end_time, data.guests, data.wants_projector,
            )
            total_cost = settlement.total_cost
        except BookingValidationError:
            if data.payment_method is PaymentMethod.CASH:
                raise
            # Outside the DP20 window an admin may still book; the value is informational
            total_cost = 0

        start = local_to_utc(data.booking_date, data.start_time)
        end = local_to_utc(data.booking_date, data.end_time)
        await self._ensure_slot(room.id, data.booking_date, start, end)
        await self.packages.get_user(data.user_id)

        booking = Booking(
            id=uuid.uuid4(),
            user_id=data.user_id,
            room_id=room.id,
            start_time=start,
            end_time=end,
            booking_type=data.booking_type.value,
            payment_method=data.payment_method.value,
            payment_status=PaymentStatus.COMPLETED.value,
            status=BookingStatus.CONFIRMED.value,
            total_cost=total_cost,
            purpose=data.purpose,
            guests=data.guests,
            equipment=[item.model_dump() for item in data.equipment],
            special_requests=data.special_requests,
            wants_projector=data.wants_projector,
            created_by_admin=True,
            admin_notes=data.admin_notes,
            payment_confirmed_at=utcnow(),
            payment_confirmed_by=data.admin_id,
        )
        self.db.add(booking)
        self.db.add(self._event("booking_created", booking, created_by_admin=True))
        await self._commit()
        await self.db.refresh(booking)
        logger.info("Admin %s created booking %s for user %s", data.admin_id, booking.id, data.user_id)
        return booking

    async def get_booking(self, booking_id: uuid.UUID, lock: bool = False) -> Booking:
        query = select(Booking).where(Booking.id == booking_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        booking = result.scalar_one_or_none()
        if booking is None:
            raise BookingNotFoundError()
        return booking

    async def user_bookings(self, user_id: uuid.UUID, status: str | None = None, limit: int | None = None):
        query = select(Booking).where(Booking.user_id == user_id).order_by(Booking.start_time.desc())
        if status:
            query = query.where(Booking.status == status)
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def all_bookings(self, status: str | None = None, start_date: date | None = None,
                           end_date: date | None = None, limit: int | None = None):
        query = select(Booking).order_by(Booking.start_time.desc())
        if status:
            query = query.where(Booking.status == status)
        if start_date:
            query = query.where(Booking.start_time >= local_day_bounds(start_date)[0])
        if end_date:
            query = query.where(Booking.start_time < local_day_bounds(end_date)[1])
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def room_bookings(self, room_id: int):
        query = (
            select(Booking)
            .where(Booking.room_id == room_id, Booking.status.not_in(INACTIVE_STATUSES))
            .order_by(Booking.start_time)
        )
        result = await self.db.execute(query)
        return result.scalars().all()

    async def bookings_in_range(self, start_date: date, end_date: date, room_id: int | None = None):
        """Active bookings overlapping the local days [start_date, end_date]."""
        range_start = local_day_bounds(start_date)[0]
        range_end = local_day_bounds(end_date)[1]
        query = (
            select(Booking)
            .where(
                Booking.status.not_in(INACTIVE_STATUSES),
                Booking.start_time < range_end,
                Booking.end_time > range_start,
            )
            .order_by(Booking.start_time)
        )
        if room_id is not None:
            query = query.where(Booking.room_id == room_id)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def pending_payments(self):
        query = (
            select(Booking)
            .where(
                Booking.payment_status == PaymentStatus.PENDING.value,
                Booking.status.not_in(INACTIVE_STATUSES),
            )
            .order_by(Booking.created_at)
        )
        result = await self.db.execute(query)
        return result.scalars().all()

    async def update_booking(self, booking_id: uuid.UUID, data: BookingUpdateSchema) -> Booking:
        booking = await self.get_booking(booking_id, lock=True)
        if booking.status in INACTIVE_STATUSES:
            raise InvalidStatusTransitionError("Cancelled bookings cannot be edited.")

        if data.booking_date or data.start_time or data.end_time:
            local_start = utc_to_local(booking.start_time)
            local_end = utc_to_local(booking.end_time)
            day = data.booking_date or local_start.date()
            start_hhmm = data.start_time or local_start.strftime("%H:%M")
            end_hhmm = data.end_time or local_end.strftime("%H:%M")
            validate_duration(start_hhmm, end_hhmm)

            start = local_to_utc(day, start_hhmm)
            end = local_to_utc(day, end_hhmm)
            await self._ensure_slot(booking.room_id, day, start, end, exclude_booking_id=booking.id)
            booking.start_time = start
            booking.end_time = end

        if data.guests is not None:
            booking.guests = data.guests
        if data.special_requests is not None:
            booking.special_requests = data.special_requests
        if data.admin_notes is not None:
            booking.admin_notes = data.admin_notes

        self.db.add(self._event("booking_updated", booking, updated_by=str(data.admin_id)))
        await self._commit()
        await self.db.refresh(booking)
        return booking

    async def mark_as_paid(self, booking_id: uuid.UUID, admin_id: uuid.UUID, admin_notes: str | None = None) -> Booking:
        booking = await self.get_booking(booking_id, lock=True)
        if booking.status in INACTIVE_STATUSES:
            raise InvalidStatusTransitionError("Cancelled bookings cannot be marked as paid.")
        if (booking.status == BookingStatus.CONFIRMED.value
                and booking.payment_status == PaymentStatus.COMPLETED.value):
            raise InvalidStatusTransitionError("This booking is already paid and confirmed.")

        booking.status = BookingStatus.CONFIRMED.value
        booking.payment_status = PaymentStatus.COMPLETED.value
        booking.payment_confirmed_at = utcnow()
        booking.payment_confirmed_by = admin_id
        if admin_notes:
            booking.admin_notes = admin_notes

        self.db.add(self._event("payment_confirmed", booking, confirmed_by=str(admin_id)))
        await self._commit()
        await self.db.refresh(booking)
        logger.info("Booking %s marked as paid by %s", booking.id, admin_id)
        return booking

    async def attach_receipt(self, booking_id: uuid.UUID, path: str) -> Booking:
        booking = await self.get_booking(booking_id, lock=True)
        if booking.status in INACTIVE_STATUSES:
            raise InvalidStatusTransitionError("Receipts cannot be uploaded for cancelled bookings.")

        booking.receipt_path = path
        booking.receipt_uploaded_at = utcnow()
        if booking.status == BookingStatus.PENDING.value:
            booking.status = BookingStatus.TO_BE_CONFIRMED.value

        self.db.add(self._event("receipt_uploaded", booking, receipt_path=path))
        await self._commit()
        await self.db.refresh(booking)
        return booking

    async def ensure_can_view(self, booking: Booking, actor_id: uuid.UUID) -> None:
        actor = await self.packages.get_user(actor_id)
        if booking.user_id != actor.id and not actor.is_admin:
            raise NotBookingOwnerError("You can only access your own bookings.")

    async def cancel_booking(self, booking_id: uuid.UUID, actor_id: uuid.UUID, reason: str | None = None,
                             should_refund: bool = True) -> CancellationResult:
        """Cancel, commit, then refund prepaid units in a second transaction.

        A refund failure leaves the booking cancelled and is reported on the
        result instead of being raised.
        """
        booking = await self.get_booking(booking_id, lock=True)
        actor = await self.packages.get_user(actor_id)
        if booking.user_id != actor.id and not actor.is_admin:
            raise NotBookingOwnerError()
        if booking.status == BookingStatus.CANCELLED.value:
            raise BookingAlreadyCancelledError()
        if booking.status == BookingStatus.RESCHEDULED.value:
            raise InvalidStatusTransitionError("Rescheduled bookings cannot be cancelled.")

        # Recorded for audit only; no fee or eligibility rule depends on it
        hours = hours_before(booking.start_time)
        booking.status = BookingStatus.CANCELLED.value
        booking.cancelled_at = utcnow()
        booking.cancelled_by = actor.id
        booking.cancellation_reason = reason
        booking.cancellation_hours_before = hours
        self.db.add(self._event("booking_cancelled", booking, cancelled_by=str(actor.id), hours_before=hours))
        await self._commit()
        await self.db.refresh(booking)
        logger.info("Booking %s cancelled by %s (%s h before start)", booking.id, actor.id, hours)

        result = CancellationResult(booking=booking, hours_before=hours)
        if not should_refund or booking.payment_method == PaymentMethod.CASH.value:
            return result

        try:
            await self.packages.refund_booking(booking)
            result.refunded = True
        except (SQLAlchemyError, BookingException) as e:
            await self.db.rollback()
            await self.db.refresh(booking)
            result.refund_error = getattr(e, "message", None) or str(e)
            logger.error("Refund for cancelled booking %s failed: %s", booking.id, result.refund_error)
        return result

    async def mark_cancellation_reviewed(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.get_booking(booking_id, lock=True)
        if booking.status != BookingStatus.CANCELLED.value:
            raise InvalidStatusTransitionError("Only cancelled bookings can be reviewed.")
        booking.cancellation_reviewed = True
        await self._commit()
        await self.db.refresh(booking)
        return booking


async def get_booking_repository(db: AsyncSession = Depends(get_async_session)):
    return BookingRepository(db)
