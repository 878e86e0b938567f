from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from birthday_notifier.date_logic import (
    InvalidBirthdayError,
    InvalidTimezoneError,
    next_occurrence,
    occurrence_date_for_year,
    resolve_local_datetime,
)


def _local(tz_name: str, *args: int) -> datetime:
    return datetime(*args, tzinfo=ZoneInfo(tz_name))


def test_before_nine_on_birthday_schedules_same_day() -> None:
    tz = "America/New_York"
    reference = _local(tz, 2025, 10, 1, 8, 0)

    result = next_occurrence(10, 1, tz, reference)
    local = result.astimezone(ZoneInfo(tz))

    assert (local.year, local.month, local.day, local.hour, local.minute) == (2025, 10, 1, 9, 0)
    assert result == datetime(2025, 10, 1, 13, 0, tzinfo=timezone.utc)
    assert result.tzinfo == timezone.utc


def test_after_nine_on_birthday_schedules_next_year() -> None:
    tz = "Australia/Melbourne"
    reference = _local(tz, 2025, 10, 1, 10, 0)

    result = next_occurrence(10, 1, tz, reference)
    local = result.astimezone(ZoneInfo(tz))

    assert (local.year, local.month, local.day, local.hour) == (2026, 10, 1, 9)


def test_exactly_nine_is_not_strictly_later() -> None:
    tz = "Europe/London"
    reference = _local(tz, 2025, 6, 15, 9, 0)

    result = next_occurrence(6, 15, tz, reference)

    assert result.astimezone(ZoneInfo(tz)).year == 2026


def test_one_microsecond_before_nine_stays_same_year() -> None:
    tz = "Europe/London"
    reference = _local(tz, 2025, 6, 15, 8, 59, 59, 999999)

    result = next_occurrence(6, 15, tz, reference)

    assert result - reference == timedelta(microseconds=1)


def test_local_year_is_taken_in_target_zone() -> None:
    # 2025-12-31 20:00 in New York is already 2026-01-01 in Tokyo.
    reference = _local("America/New_York", 2025, 12, 31, 20, 0)

    result = next_occurrence(1, 1, "Asia/Tokyo", reference)
    local = result.astimezone(ZoneInfo("Asia/Tokyo"))

    assert (local.year, local.month, local.day, local.hour) == (2027, 1, 1, 9)


def test_offset_resolved_on_anniversary_not_reference_date() -> None:
    tz = "America/New_York"
    # Reference is in winter (EST, -05:00); the birthday falls in summer (EDT, -04:00).
    reference = _local(tz, 2025, 1, 10, 12, 0)

    result = next_occurrence(7, 4, tz, reference)

    assert result == datetime(2025, 7, 4, 13, 0, tzinfo=timezone.utc)


def test_birth_year_is_irrelevant_and_result_is_nine_local() -> None:
    reference = datetime(2030, 3, 1, tzinfo=timezone.utc)
    for tz in ("UTC", "Asia/Kolkata", "America/Los_Angeles", "Pacific/Auckland"):
        result = next_occurrence(11, 30, tz, reference)
        local = result.astimezone(ZoneInfo(tz))
        assert result > reference
        assert (local.month, local.day) == (11, 30)
        assert local.time() == time(9, 0)


def test_naive_reference_rejected() -> None:
    with pytest.raises(ValueError):
        next_occurrence(3, 14, "UTC", datetime(2025, 3, 1, 12, 0))


def test_unknown_timezone_rejected() -> None:
    with pytest.raises(InvalidTimezoneError):
        next_occurrence(3, 14, "Mars/Olympus_Mons", datetime(2025, 3, 1, tzinfo=timezone.utc))


def test_invalid_month_day_rejected() -> None:
    with pytest.raises(InvalidBirthdayError):
        next_occurrence(4, 31, "UTC", datetime(2025, 3, 1, tzinfo=timezone.utc))


def test_feb_29_maps_to_feb_28_on_non_leap_year() -> None:
    reference = datetime(2025, 1, 1, tzinfo=timezone.utc)

    result = next_occurrence(2, 29, "UTC", reference, "feb28")

    assert result == datetime(2025, 2, 28, 9, 0, tzinfo=timezone.utc)


def test_feb_29_maps_to_mar_1_when_configured() -> None:
    reference = datetime(2025, 1, 1, tzinfo=timezone.utc)

    result = next_occurrence(2, 29, "UTC", reference, "mar1")

    assert result == datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_feb_29_leap_only_waits_for_leap_year() -> None:
    reference = datetime(2025, 1, 1, tzinfo=timezone.utc)

    result = next_occurrence(2, 29, "UTC", reference, "leap_only")

    assert result == datetime(2028, 2, 29, 9, 0, tzinfo=timezone.utc)


def test_feb_29_leap_only_skips_century_non_leap_year() -> None:
    reference = datetime(2096, 3, 1, tzinfo=timezone.utc)

    result = next_occurrence(2, 29, "UTC", reference, "leap_only")

    assert result == datetime(2104, 2, 29, 9, 0, tzinfo=timezone.utc)


def test_feb_29_keeps_date_on_leap_year() -> None:
    assert occurrence_date_for_year(2, 29, 2028, "feb28") == date(2028, 2, 29)
    assert occurrence_date_for_year(2, 29, 2027, "leap_only") is None


def test_unknown_leap_day_rule_rejected() -> None:
    with pytest.raises(InvalidBirthdayError):
        next_occurrence(2, 29, "UTC", datetime(2025, 1, 1, tzinfo=timezone.utc), "feb30")


def test_spring_forward_gap_moves_forward() -> None:
    tz = ZoneInfo("America/New_York")

    resolved = resolve_local_datetime(date(2025, 3, 9), time(2, 30), tz)

    assert (resolved.hour, resolved.minute) == (3, 30)
    assert resolved.utcoffset() == timedelta(hours=-4)
    assert resolved.astimezone(timezone.utc) == datetime(2025, 3, 9, 7, 30, tzinfo=timezone.utc)


def test_ambiguous_fall_back_time_uses_first_instant() -> None:
    tz = ZoneInfo("America/New_York")

    resolved = resolve_local_datetime(date(2025, 11, 2), time(1, 30), tz)

    assert resolved.utcoffset() == timedelta(hours=-4)
