import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from catcafe_booking.notifications.mailer import SmtpMailer
from catcafe_booking.notifications.templates import render
from catcafe_booking.timeutils import utc_to_local

logger = logging.getLogger(__name__)

# Kinds that also copy the admin inbox
ADMIN_COPY_KINDS = frozenset({"booking_created", "confirmation", "cancellation", "receipt_received"})


@dataclass
class NotificationResult:
    success: bool
    error: str | None = None


def _format_money(booking) -> str:
    amount = Decimal(booking.total_cost or 0).normalize()
    if booking.payment_method == "cash":
        return f"HK${amount:f}"
    if booking.payment_method == "dp20":
        return "1 DP20"
    return f"{amount:f} {booking.payment_method.upper()} h"


def booking_context(booking, user, room_name: str | None = None) -> dict:
    start = utc_to_local(booking.start_time)
    end = utc_to_local(booking.end_time)
    return {
        "name": user.full_name or user.email,
        "booking_id": str(booking.id),
        "room_name": room_name or f"Room {booking.room_id}",
        "date": start.strftime("%Y-%m-%d"),
        "time": f"{start:%H:%M} - {end:%H:%M}",
        "payment_method": booking.payment_method.upper(),
        "total_cost": _format_money(booking),
        "guests": booking.guests,
        "purpose": booking.purpose,
        "special_requests": booking.special_requests,
        "cancellation_reason": booking.cancellation_reason,
        "confirmed_at": (
            utc_to_local(booking.payment_confirmed_at).strftime("%Y-%m-%d")
            if booking.payment_confirmed_at else None
        ),
    }


class NotificationDispatcher:
    """Best-effort email delivery; failures are logged and returned, never raised."""

    def __init__(self, mailer: SmtpMailer):
        self.mailer = mailer

    async def _deliver(self, kind: str, to: str | None, context: dict, language: str | None) -> NotificationResult:
        try:
            subject, html = render(kind, context, language)
            await self.mailer.send(to, subject, html, bcc=kind in ADMIN_COPY_KINDS)
        except Exception as e:
            logger.warning("Notification '%s' to %s failed: %s", kind, to, e)
            return NotificationResult(success=False, error=str(e))
        return NotificationResult(success=True)

    async def notify(self, kind: str, booking, user, room_name: str | None = None,
                     language: str | None = None, **extra) -> NotificationResult:
        try:
            context = booking_context(booking, user, room_name)
        except Exception as e:
            logger.warning("Could not build '%s' email for booking %s: %s", kind, booking.id, e)
            return NotificationResult(success=False, error=str(e))
        context.update(extra)
        return await self._deliver(kind, user.email, context, language)

    async def notify_package(self, user, package_type: str, amount, expiry: datetime | None = None,
                             language: str | None = None) -> NotificationResult:
        context = {
            "name": user.full_name or user.email,
            "package_type": package_type.upper(),
            "amount": f"{Decimal(amount).normalize():f}",
            "expiry": utc_to_local(expiry).strftime("%Y-%m-%d") if expiry else None,
        }
        return await self._deliver("package_assigned", user.email, context, language)


dispatcher = NotificationDispatcher(SmtpMailer())


def get_notification_dispatcher() -> NotificationDispatcher:
    return dispatcher
