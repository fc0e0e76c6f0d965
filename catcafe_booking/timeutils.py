import math
import os
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

# Wall-clock times entered by guests are in the café's local zone
VENUE_TIMEZONE = ZoneInfo(os.getenv("VENUE_TIMEZONE", "Asia/Hong_Kong"))


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores this form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_hhmm(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def local_to_utc(day: date, hhmm: str) -> datetime:
    local = datetime.combine(day, parse_hhmm(hhmm), tzinfo=VENUE_TIMEZONE)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def utc_to_local(moment: datetime) -> datetime:
    return moment.replace(tzinfo=timezone.utc).astimezone(VENUE_TIMEZONE)


def local_day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) of a local calendar day."""
    start = local_to_utc(day, "00:00")
    return start, start + timedelta(days=1)


def hours_before(start: datetime, now: datetime | None = None) -> int:
    now = now or utcnow()
    return math.floor((start - now).total_seconds() / 3600)
