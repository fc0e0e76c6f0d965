import uuid
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from catcafe_booking.bookings.models import Booking, BookingStatus
from catcafe_booking.bookings.repository import BookingRepository, get_booking_repository
from catcafe_booking.bookings.schemas import (
    HHMM, AdminActionSchema, AdminBookingCreateSchema, BookingCancelSchema, BookingCreateSchema,
    BookingSchema, BookingUpdateSchema, MarkPaidSchema,
)
from catcafe_booking.bookings.settlement import validate_duration
from catcafe_booking.exceptions import BookingException, NotFoundError, ReceiptValidationError
from catcafe_booking.notifications.dispatcher import NotificationDispatcher, get_notification_dispatcher
from catcafe_booking.storage.receipts import MAX_FILE_SIZE, ReceiptStorage, get_receipt_storage
from catcafe_booking.timeutils import local_to_utc

router = APIRouter(prefix="/bookings", tags=["Bookings"])


async def _notify(kind: str, booking: Booking, repo: BookingRepository, notifier: NotificationDispatcher,
                  language: str | None, **extra) -> dict:
    """Send one email; a failure turns into a `warning` on the response."""
    user = await repo.packages.get_user(booking.user_id)
    room = await repo.rooms.get_room(booking.room_id)
    sent = await notifier.notify(kind, booking, user, room.name, language, **extra)
    if sent.success:
        return {}
    return {"warning": f"Email notification failed: {sent.error}"}


def _booking_response(booking: Booking, **extra) -> dict:
    return {"success": True, "booking": BookingSchema.model_validate(booking), **extra}


@router.post("", status_code=201)
async def create_booking(
    data: BookingCreateSchema,
    repo: BookingRepository = Depends(get_booking_repository),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """
    Create a guest booking. Cash bookings wait for payment; prepaid bookings
    debit the balance in the same transaction.
    """
    booking = await repo.create_booking(data)
    kind = "confirmation" if booking.status == BookingStatus.CONFIRMED.value else "booking_created"
    warning = await _notify(kind, booking, repo, notifier, data.language)
    return _booking_response(booking, **warning)


@router.post("/admin", status_code=201)
async def admin_create_booking(
    data: AdminBookingCreateSchema,
    repo: BookingRepository = Depends(get_booking_repository),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    await repo.packages.require_admin(data.admin_id)
    booking = await repo.admin_create_booking(data)
    warning = {}
    if data.send_email:
        warning = await _notify("confirmation", booking, repo, notifier, data.language)
    return _booking_response(booking, **warning)


@router.get("")
async def list_bookings(
    admin_id: uuid.UUID,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = None,
    repo: BookingRepository = Depends(get_booking_repository),
):
    await repo.packages.require_admin(admin_id)
    bookings = await repo.all_bookings(status, start_date, end_date, limit)
    return {"success": True, "bookings": [BookingSchema.model_validate(b) for b in bookings]}


@router.get("/pending-payments")
async def list_pending_payments(
    admin_id: uuid.UUID,
    repo: BookingRepository = Depends(get_booking_repository),
):
    await repo.packages.require_admin(admin_id)
    bookings = await repo.pending_payments()
    return {"success": True, "bookings": [BookingSchema.model_validate(b) for b in bookings]}


@router.get("/availability")
async def check_availability(
    room_id: int,
    booking_date: date,
    start_time: str = Query(pattern=HHMM),
    end_time: str = Query(pattern=HHMM),
    repo: BookingRepository = Depends(get_booking_repository),
):
    validate_duration(start_time, end_time)
    date_open = await repo.dates.is_bookable(room_id, booking_date)
    slot_free = await repo.check_availability(
        room_id, local_to_utc(booking_date, start_time), local_to_utc(booking_date, end_time),
    )
    return {"success": True, "available": date_open and slot_free, "date_open": date_open, "slot_free": slot_free}


@router.get("/range")
async def list_bookings_in_range(
    start_date: date,
    end_date: date,
    room_id: Optional[int] = None,
    repo: BookingRepository = Depends(get_booking_repository),
):
    bookings = await repo.bookings_in_range(start_date, end_date, room_id)
    return {"success": True, "bookings": [BookingSchema.model_validate(b) for b in bookings]}


@router.get("/user/{user_id}")
async def list_user_bookings(
    user_id: uuid.UUID,
    status: Optional[str] = None,
    limit: Optional[int] = None,
    repo: BookingRepository = Depends(get_booking_repository),
):
    bookings = await repo.user_bookings(user_id, status, limit)
    return {"success": True, "bookings": [BookingSchema.model_validate(b) for b in bookings]}


@router.get("/room/{room_id}")
async def list_room_bookings(
    room_id: int,
    repo: BookingRepository = Depends(get_booking_repository),
):
    bookings = await repo.room_bookings(room_id)
    return {"success": True, "bookings": [BookingSchema.model_validate(b) for b in bookings]}


@router.get("/{booking_id}")
async def get_booking(
    booking_id: uuid.UUID,
    repo: BookingRepository = Depends(get_booking_repository),
):
    return _booking_response(await repo.get_booking(booking_id))


@router.patch("/{booking_id}")
async def update_booking(
    booking_id: uuid.UUID,
    data: BookingUpdateSchema,
    repo: BookingRepository = Depends(get_booking_repository),
):
    await repo.packages.require_admin(data.admin_id)
    return _booking_response(await repo.update_booking(booking_id, data))


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: uuid.UUID,
    data: BookingCancelSchema,
    repo: BookingRepository = Depends(get_booking_repository),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    result = await repo.cancel_booking(booking_id, data.actor_id, data.reason, data.should_refund)
    response = _booking_response(
        result.booking,
        refunded=result.refunded,
        hours_before=result.hours_before,
    )
    if result.refund_error:
        response["refund_error"] = result.refund_error
    response.update(await _notify(
        "cancellation", result.booking, repo, notifier, data.language,
        refunded="Yes" if result.refunded else "No",
    ))
    return response


@router.post("/{booking_id}/review-cancellation")
async def review_cancellation(
    booking_id: uuid.UUID,
    data: AdminActionSchema,
    repo: BookingRepository = Depends(get_booking_repository),
):
    await repo.packages.require_admin(data.admin_id)
    return _booking_response(await repo.mark_cancellation_reviewed(booking_id))


@router.post("/{booking_id}/mark-paid")
async def mark_as_paid(
    booking_id: uuid.UUID,
    data: MarkPaidSchema,
    repo: BookingRepository = Depends(get_booking_repository),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    await repo.packages.require_admin(data.admin_id)
    booking = await repo.mark_as_paid(booking_id, data.admin_id, data.admin_notes)
    warning = await _notify("payment_confirmed", booking, repo, notifier, data.language)
    return _booking_response(booking, **warning)


@router.post("/{booking_id}/resend-confirmation")
async def resend_confirmation(
    booking_id: uuid.UUID,
    data: AdminActionSchema,
    repo: BookingRepository = Depends(get_booking_repository),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    await repo.packages.require_admin(data.admin_id)
    booking = await repo.get_booking(booking_id)
    warning = await _notify("confirmation", booking, repo, notifier, data.language)
    return {"success": not warning, **warning}


@router.post("/{booking_id}/receipt")
async def upload_receipt(
    booking_id: uuid.UUID,
    actor_id: uuid.UUID = Form(...),
    language: Literal["en", "zh"] = Form("zh"),
    file: UploadFile = File(...),
    repo: BookingRepository = Depends(get_booking_repository),
    storage: ReceiptStorage = Depends(get_receipt_storage),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Store a payment receipt and move a pending booking to admin review."""
    booking = await repo.get_booking(booking_id)
    await repo.ensure_can_view(booking, actor_id)

    if file.size is not None and file.size > MAX_FILE_SIZE:
        raise ReceiptValidationError("File size exceeds 5MB limit.")
    content = await file.read(MAX_FILE_SIZE + 1)
    path = await storage.upload(booking.id, content, file.content_type, file.filename)
    try:
        booking = await repo.attach_receipt(booking.id, path)
    except BookingException:
        await storage.delete(path)
        raise
    warning = await _notify("receipt_received", booking, repo, notifier, language)
    return _booking_response(booking, **warning)


@router.get("/{booking_id}/receipt-url")
async def get_receipt_url(
    booking_id: uuid.UUID,
    actor_id: uuid.UUID,
    repo: BookingRepository = Depends(get_booking_repository),
    storage: ReceiptStorage = Depends(get_receipt_storage),
):
    booking = await repo.get_booking(booking_id)
    await repo.ensure_can_view(booking, actor_id)
    if not booking.receipt_path:
        raise NotFoundError("No receipt uploaded for this booking.")
    return {"success": True, "url": await storage.signed_url(booking.receipt_path)}
