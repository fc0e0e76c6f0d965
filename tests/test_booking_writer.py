import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from catcafe_booking.bookings.models import Booking, OutboxEvent
from catcafe_booking.bookings.repository import BookingRepository
from catcafe_booking.bookings.schemas import AdminBookingCreateSchema, BookingUpdateSchema
from catcafe_booking.exceptions import (
    BookingConflictError, BookingNotFoundError, BookingValidationError, InsufficientBalanceError,
    InvalidStatusTransitionError, PackageExpiredError,
)
from catcafe_booking.packages.models import PackageHistory


async def _count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def test_cash_booking_waits_for_payment(db, open_day, make_request):
    booking = await BookingRepository(db).create_booking(make_request())

    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert booking.total_cost == Decimal("200")
    assert booking.purpose == "remote work"
    assert booking.equipment == [{"type": "monitor", "quantity": 1}]
    assert await _count(db, OutboxEvent) == 1


async def test_local_times_are_stored_as_utc(db, open_day, make_request):
    booking = await BookingRepository(db).create_booking(make_request())
    # Hong Kong is UTC+8 all year
    assert booking.start_time == datetime(2030, 1, 15, 2, 0)
    assert booking.end_time == datetime(2030, 1, 15, 4, 0)


async def test_projector_fee_added_to_cash_total(db, open_day, make_request):
    booking = await BookingRepository(db).create_booking(make_request(room_id=2, wants_projector=True))
    assert booking.total_cost == Decimal("220")


async def test_token_booking_debits_balance(db, open_day, guest, make_request):
    booking = await BookingRepository(db).create_booking(make_request(payment_method="token"))
    await db.refresh(guest)

    assert booking.status == "confirmed"
    assert booking.payment_status == "completed"
    assert booking.total_cost == Decimal("2")
    assert guest.tokens == Decimal("3")

    result = await db.execute(select(PackageHistory).where(PackageHistory.booking_id == booking.id))
    entry = result.scalar_one()
    assert entry.reason == "booking_debit"
    assert entry.amount == Decimal("-2")


async def test_dp20_without_balance_writes_nothing(db, open_day, make_request):
    repo = BookingRepository(db)
    with pytest.raises(InsufficientBalanceError) as exc:
        await repo.create_booking(make_request(payment_method="dp20", booking_type="daily",
                                               start_time="10:00", end_time="18:00"))

    assert exc.value.status_code == 402
    assert exc.value.detail["package"] == "dp20"
    assert exc.value.detail["shortfall"] == 1.0
    assert await _count(db, Booking) == 0
    assert await _count(db, PackageHistory) == 0


async def test_dp20_booking_uses_one_visit(db, open_day, guest, make_request):
    guest.dp20_balance = 3
    guest.dp20_expiry = datetime(2031, 1, 1)
    await db.commit()

    booking = await BookingRepository(db).create_booking(
        make_request(payment_method="dp20", booking_type="daily", start_time="10:00", end_time="18:30")
    )
    await db.refresh(guest)
    assert guest.dp20_balance == 2
    assert booking.total_cost == Decimal("300")


async def test_expired_package_is_rejected(db, open_day, guest, make_request):
    guest.br15_balance = Decimal("10")
    guest.br15_expiry = datetime(2020, 1, 1)
    await db.commit()

    with pytest.raises(PackageExpiredError) as exc:
        await BookingRepository(db).create_booking(make_request(payment_method="br15"))
    assert exc.value.detail["expired"] is True


async def test_dp20_without_expiry_is_rejected(db, open_day, guest, make_request):
    guest.dp20_balance = 3
    await db.commit()

    with pytest.raises(PackageExpiredError):
        await BookingRepository(db).create_booking(
            make_request(payment_method="dp20", booking_type="daily", start_time="10:00", end_time="18:00")
        )
    await db.refresh(guest)
    assert guest.dp20_balance == 3


async def test_token_booking_beyond_balance_is_rejected(db, open_day, make_request):
    with pytest.raises(InsufficientBalanceError) as exc:
        await BookingRepository(db).create_booking(
            make_request(payment_method="token", start_time="10:00", end_time="16:00")
        )
    assert exc.value.detail["required"] == 6.0
    assert exc.value.detail["available"] == 5.0


async def test_payment_method_must_be_offered_by_room(db, open_day, make_request):
    with pytest.raises(BookingValidationError):
        await BookingRepository(db).create_booking(make_request(room_id=9, payment_method="token"))


async def test_short_booking_is_rejected(db, open_day, make_request):
    with pytest.raises(BookingValidationError):
        await BookingRepository(db).create_booking(make_request(start_time="10:00", end_time="10:45"))
    assert await _count(db, Booking) == 0


async def test_prepaid_waits_for_review_when_auto_confirm_is_off(db, open_day, make_request, monkeypatch):
    monkeypatch.setattr("catcafe_booking.bookings.repository.AUTO_CONFIRM_PREPAID", False)
    booking = await BookingRepository(db).create_booking(make_request(payment_method="token"))
    assert booking.status == "to_be_confirmed"
    assert booking.payment_status == "completed"


async def test_admin_booking_is_confirmed_without_debit(db, open_day, guest, admin):
    data = AdminBookingCreateSchema(
        admin_id=admin.id, user_id=guest.id, room_id=1, booking_date=open_day,
        start_time="10:00", end_time="12:00", payment_method="token", purpose="Team day",
    )
    booking = await BookingRepository(db).admin_create_booking(data)
    await db.refresh(guest)

    assert booking.status == "confirmed"
    assert booking.payment_status == "completed"
    assert booking.created_by_admin is True
    assert guest.tokens == Decimal("5")
    assert await _count(db, PackageHistory) == 0


async def test_mark_as_paid_confirms_cash_booking(db, open_day, admin, make_request):
    repo = BookingRepository(db)
    booking = await repo.create_booking(make_request())

    paid = await repo.mark_as_paid(booking.id, admin.id, "Paid at the counter")
    assert paid.status == "confirmed"
    assert paid.payment_status == "completed"
    assert paid.payment_confirmed_by == admin.id
    assert paid.admin_notes == "Paid at the counter"

    with pytest.raises(InvalidStatusTransitionError):
        await repo.mark_as_paid(booking.id, admin.id)


async def test_attach_receipt_moves_to_review(db, open_day, make_request):
    repo = BookingRepository(db)
    booking = await repo.create_booking(make_request())
    updated = await repo.attach_receipt(booking.id, f"{booking.id}/1700000000000.png")

    assert updated.status == "to_be_confirmed"
    assert updated.receipt_path.endswith(".png")
    assert updated.receipt_uploaded_at is not None


async def test_reschedule_excludes_the_booking_itself(db, open_day, admin, make_request):
    repo = BookingRepository(db)
    booking = await repo.create_booking(make_request(start_time="10:00", end_time="12:00"))
    await repo.create_booking(make_request(start_time="14:00", end_time="16:00"))

    moved = await repo.update_booking(
        booking.id, BookingUpdateSchema(admin_id=admin.id, start_time="11:00", end_time="13:00", guests=2)
    )
    assert moved.start_time == datetime(2030, 1, 15, 3, 0)
    assert moved.guests == 2

    with pytest.raises(BookingConflictError):
        await repo.update_booking(
            booking.id, BookingUpdateSchema(admin_id=admin.id, start_time="13:00", end_time="15:00")
        )


async def test_queries(db, open_day, guest, other_guest, make_request):
    repo = BookingRepository(db)
    first = await repo.create_booking(make_request(start_time="10:00", end_time="11:00"))
    await repo.create_booking(make_request(user_id=other_guest.id, start_time="12:00", end_time="13:00"))
    await repo.cancel_booking(first.id, guest.id)

    assert [b.id for b in await repo.user_bookings(guest.id)] == [first.id]
    assert await repo.user_bookings(guest.id, status="pending") == []
    assert len(await repo.all_bookings()) == 2
    assert len(await repo.all_bookings(status="cancelled")) == 1
    assert len(await repo.room_bookings(1)) == 1
    assert len(await repo.bookings_in_range(open_day, open_day)) == 1
    assert len(await repo.bookings_in_range(open_day + timedelta(days=1), open_day + timedelta(days=2))) == 0
    assert len(await repo.pending_payments()) == 1


async def test_unknown_booking_is_not_found(db):
    with pytest.raises(BookingNotFoundError):
        await BookingRepository(db).get_booking(uuid.uuid4())
