"""Calendar helpers shared by the slot and booking services.

Dates arrive either as ISO strings (``YYYY-MM-DD`` or a full timestamp) or as
epoch milliseconds (number or digit string). Everything is normalized to
``datetime.date`` before it touches the database.
"""

from datetime import UTC, date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import settings
from app.core.exceptions import InvalidInputError

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
MINUTES_PER_DAY = 24 * 60


def local_tz() -> tzinfo:
    if settings.timezone.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(settings.timezone)
    except ZoneInfoNotFoundError:
        return UTC


def utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def today() -> date:
    return datetime.now(local_tz()).date()


def normalize_date(value: date | datetime | str | int | float) -> date:
    """Return the canonical calendar date for any accepted input form."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise InvalidInputError("Malformed date", details={"value": value})
    if isinstance(value, (int, float)):
        return _from_epoch_ms(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidInputError("Malformed date", details={"value": value})
        # 8 digits is the ISO basic form, not a timestamp
        if text.isdigit() and len(text) > 8:
            return _from_epoch_ms(int(text))
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            raise InvalidInputError("Malformed date", details={"value": value}) from None
    raise InvalidInputError("Malformed date", details={"value": repr(value)})


def _from_epoch_ms(ms: float) -> date:
    try:
        return datetime.fromtimestamp(ms / 1000, tz=local_tz()).date()
    except (OverflowError, OSError, ValueError):
        raise InvalidInputError("Malformed date", details={"value": ms}) from None


def weekday_name(d: date) -> str:
    return WEEKDAYS[d.weekday()]


def normalize_weekday(value: str) -> str:
    for name in WEEKDAYS:
        if value.strip().lower() == name.lower():
            return name
    raise InvalidInputError(f"Invalid day of week: {value}", details={"weekday": value})


def validate_start_times(times: list[int]) -> list[int]:
    """Start times must be minutes since midnight, unique and ascending."""
    previous = -1
    for t in times:
        if isinstance(t, bool) or not isinstance(t, int):
            raise InvalidInputError("Start times must be integers", details={"value": t})
        if t < 0 or t >= MINUTES_PER_DAY:
            raise InvalidInputError("Start time out of range", details={"value": t})
        if t <= previous:
            raise InvalidInputError(
                "Start times must be unique and ascending", details={"value": t}
            )
        previous = t
    return list(times)


def dates_between(start: date, end: date) -> list[date]:
    """Inclusive range of dates."""
    days = (end - start).days
    return [start + timedelta(days=i) for i in range(days + 1)]


def format_minutes(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    period = "PM" if hours >= 12 else "AM"
    display = hours % 12 or 12
    return f"{display}:{mins:02d} {period}"
