"""Price and balance-unit calculation for a requested booking.

Cash bookings are priced from the room's price table. Prepaid bookings
(token, BR15, BR30) cost one unit per hour; a DP20 booking costs one visit
and must sit inside the day-pass operating window.
"""
from dataclasses import dataclass
from decimal import Decimal

from catcafe_booking.bookings.models import BookingType, PaymentMethod
from catcafe_booking.exceptions import BookingValidationError
from catcafe_booking.packages.models import PackageType

PROJECTOR_FEE = Decimal("20")
# Room C and Room E carry a projector
PROJECTOR_ROOM_IDS = frozenset({2, 4})
# Lobby seat is priced per guest
LOBBY_SEAT_ROOM_ID = 9
MIN_BOOKING_MINUTES = 60
DP20_OPENING = "10:00"
DP20_CLOSING = "18:30"
DP20_VISITS_PER_BOOKING = Decimal(1)

PACKAGE_FOR_METHOD = {
    PaymentMethod.TOKEN: PackageType.TOKEN,
    PaymentMethod.BR15: PackageType.BR15,
    PaymentMethod.BR30: PackageType.BR30,
    PaymentMethod.DP20: PackageType.DP20,
}


@dataclass(frozen=True)
class Settlement:
    total_cost: Decimal
    required_units: Decimal
    package: PackageType | None = None

    @property
    def is_prepaid(self) -> bool:
        return self.package is not None


def _minutes(hhmm: str) -> int:
    hour, minute = hhmm.split(":")
    return int(hour) * 60 + int(minute)


def duration_minutes(start: str, end: str) -> int:
    return _minutes(end) - _minutes(start)


def duration_hours(start: str, end: str) -> Decimal:
    minutes = max(0, duration_minutes(start, end))
    return (Decimal(minutes) / Decimal(60)).quantize(Decimal("0.01"))


def validate_duration(start: str, end: str) -> None:
    if duration_minutes(start, end) < MIN_BOOKING_MINUTES:
        raise BookingValidationError("Minimum booking duration is 1 hour.")


def projector_fee(room_id: int, wants_projector: bool) -> Decimal:
    if wants_projector and room_id in PROJECTOR_ROOM_IDS:
        return PROJECTOR_FEE
    return Decimal(0)


def _price(cash_prices: dict, key: str) -> Decimal:
    value = cash_prices.get(key)
    if value is None:
        raise BookingValidationError(f"No cash price configured for {key} bookings in this room.")
    return Decimal(str(value))


def cash_price(room_id: int, prices: dict, booking_type: BookingType, start: str, end: str,
               guests: int = 1, wants_projector: bool = False) -> Decimal:
    cash_prices = (prices or {}).get("cash") or {}
    booking_type = BookingType(booking_type)

    if booking_type is BookingType.HOURLY:
        minutes = max(0, duration_minutes(start, end))
        base = (Decimal(minutes) * _price(cash_prices, "hourly") / Decimal(60)).quantize(Decimal("0.01"))
    elif booking_type is BookingType.DAILY:
        base = _price(cash_prices, "daily")
        if room_id == LOBBY_SEAT_ROOM_ID:
            base *= max(1, guests)
    else:
        base = _price(cash_prices, "monthly")

    return base + projector_fee(room_id, wants_projector)


def within_dp20_window(start: str, end: str) -> bool:
    return _minutes(start) >= _minutes(DP20_OPENING) and _minutes(end) <= _minutes(DP20_CLOSING)


def settle(room_id: int, prices: dict, booking_type: BookingType, payment_method: PaymentMethod,
           start: str, end: str, guests: int = 1, wants_projector: bool = False) -> Settlement:
    validate_duration(start, end)
    payment_method = PaymentMethod(payment_method)

    if payment_method is PaymentMethod.CASH:
        total = cash_price(room_id, prices, booking_type, start, end, guests, wants_projector)
        return Settlement(total_cost=total, required_units=Decimal(0))

    if payment_method is PaymentMethod.DP20:
        if not within_dp20_window(start, end):
            raise BookingValidationError(
                f"DP20 bookings must fall between {DP20_OPENING} and {DP20_CLOSING}."
            )
        # Cash-equivalent value kept for reporting; the debit is one visit
        daily = ((prices or {}).get("cash") or {}).get("daily")
        total = Decimal(str(daily)) if daily is not None else Decimal(0)
        if room_id == LOBBY_SEAT_ROOM_ID:
            total *= max(1, guests)
        return Settlement(
            total_cost=total,
            required_units=DP20_VISITS_PER_BOOKING,
            package=PackageType.DP20,
        )

    hours = duration_hours(start, end)
    return Settlement(total_cost=hours, required_units=hours, package=PACKAGE_FOR_METHOD[payment_method])
