from __future__ import annotations

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DELIVERY_TIME = time(hour=9, minute=0)
ALLOWED_LEAP_DAY_RULES = {"feb28", "mar1", "leap_only"}

# Upper bound on year advances; a leap_only birthday can wait up to 8 years (e.g. 2096 -> 2104).
_MAX_YEAR_ADVANCE = 9


class InvalidBirthdayError(ValueError):
    pass


class InvalidTimezoneError(ValueError):
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def validate_month_day(month: int, day: int, *, allow_feb_29: bool = True) -> None:
    if month < 1 or month > 12:
        raise InvalidBirthdayError(f"Invalid month: {month}")

    if day < 1 or day > 31:
        raise InvalidBirthdayError(f"Invalid day: {day}")

    year = 2000 if allow_feb_29 else 2001
    try:
        date(year, month, day)
    except ValueError as exc:
        raise InvalidBirthdayError(f"Invalid month/day combination: {month:02d}-{day:02d}") from exc


def validate_timezone(name: str) -> ZoneInfo:
    cleaned = name.strip()
    if not cleaned:
        raise InvalidTimezoneError("Timezone must not be empty")
    try:
        return ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise InvalidTimezoneError(f"Unknown timezone: {cleaned}") from exc


def occurrence_date_for_year(month: int, day: int, year: int, leap_day_rule: str) -> date | None:
    """Civil date a birthday is observed on in ``year``, or None when it is skipped."""
    if month == 2 and day == 29 and not is_leap_year(year):
        if leap_day_rule == "feb28":
            return date(year, 2, 28)
        if leap_day_rule == "mar1":
            return date(year, 3, 1)
        if leap_day_rule == "leap_only":
            return None
        raise InvalidBirthdayError(f"Unsupported leap day rule: {leap_day_rule}")
    return date(year, month, day)


def resolve_local_datetime(day: date, at: time, tz: ZoneInfo) -> datetime:
    """Attach ``tz`` to a local wall-clock time and normalize it.

    Wall times that fall in a spring-forward gap do not exist; they are
    pushed forward by the length of the gap (02:30 on a 02:00 -> 03:00
    transition becomes 03:30). Ambiguous fall-back times resolve to the
    first of the two instants.
    """
    local = datetime.combine(day, at, tzinfo=tz).replace(fold=0)
    return local.astimezone(timezone.utc).astimezone(tz)


def next_occurrence(
    month: int,
    day: int,
    timezone_name: str,
    reference: datetime,
    leap_day_rule: str = "feb28",
) -> datetime:
    """Next 09:00 local delivery instant for a birthday, strictly after ``reference``.

    The zone is consulted for each candidate year rather than reusing the
    reference's UTC offset, so daylight-saving differences between the
    reference and the anniversary are honoured. Returns an aware UTC datetime.
    """
    if reference.tzinfo is None or reference.utcoffset() is None:
        raise ValueError("reference must be a timezone-aware datetime")

    validate_month_day(month, day, allow_feb_29=True)
    if leap_day_rule not in ALLOWED_LEAP_DAY_RULES:
        raise InvalidBirthdayError(f"Unsupported leap day rule: {leap_day_rule}")
    tz = validate_timezone(timezone_name)

    year = reference.astimezone(tz).year
    for _ in range(_MAX_YEAR_ADVANCE):
        observed = occurrence_date_for_year(month, day, year, leap_day_rule)
        if observed is not None:
            candidate = resolve_local_datetime(observed, DELIVERY_TIME, tz)
            if candidate > reference:
                return candidate.astimezone(timezone.utc)
        year += 1

    raise InvalidBirthdayError(f"No occurrence found for {month:02d}-{day:02d}")


def local_delivery_time(instant: datetime, timezone_name: str) -> datetime:
    return instant.astimezone(validate_timezone(timezone_name))
