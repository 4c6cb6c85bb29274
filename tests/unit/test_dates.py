from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from workos.utils.dates import (
    InvalidDateRangeError,
    is_same_utc_day,
    parse_date_string,
    parse_iso_datetime,
    to_utc_day_bounds,
    validate_date_range,
)


@pytest.mark.parametrize(
    "value",
    [
        datetime(2025, 7, 25, 14, 30, 12, 999, tzinfo=UTC),
        datetime(2025, 7, 25, 0, 0),
        date(2025, 7, 25),
        "2025-07-25T23:59:59Z",
        "2025-07-25",
    ],
)
def test_day_bounds_span_exactly_one_utc_day(value):
    start, end = to_utc_day_bounds(value)

    assert start == datetime(2025, 7, 25, tzinfo=UTC)
    assert end - start == timedelta(hours=24)
    assert (start.hour, start.minute, start.second, start.microsecond) == (0, 0, 0, 0)


def test_day_bounds_use_utc_day_not_local_day():
    # 2025-07-25 22:00 in UTC-5 is already 2025-07-26 in UTC
    late_evening = datetime(2025, 7, 25, 22, 0, tzinfo=timezone(timedelta(hours=-5)))

    start, end = to_utc_day_bounds(late_evening)

    assert start == datetime(2025, 7, 26, tzinfo=UTC)
    assert end == datetime(2025, 7, 27, tzinfo=UTC)


@pytest.mark.parametrize("value", [None, "", "not a date", "2025-13-45", 12345])
def test_day_bounds_reject_invalid_values(value):
    assert to_utc_day_bounds(value) is None


def test_parse_iso_datetime_accepts_z_suffix():
    assert parse_iso_datetime("2025-07-25T10:00:00Z") == datetime(2025, 7, 25, 10, tzinfo=UTC)
    assert parse_iso_datetime("garbage") is None


def test_parse_date_string_falls_back_to_rfc_2822():
    parsed = parse_date_string("Fri, 25 Jul 2025 10:00:00 +0200")

    assert parsed == datetime(2025, 7, 25, 8, tzinfo=UTC)


def test_is_same_utc_day():
    a = datetime(2025, 7, 25, 0, 0, tzinfo=UTC)
    b = datetime(2025, 7, 25, 23, 59, tzinfo=UTC)

    assert is_same_utc_day(a, b)
    assert not is_same_utc_day(a, b + timedelta(minutes=1))


def test_validate_date_range_rejects_inverted_and_empty_ranges():
    start = datetime(2025, 7, 25, tzinfo=UTC)

    with pytest.raises(InvalidDateRangeError):
        validate_date_range(start, start)
    with pytest.raises(InvalidDateRangeError):
        validate_date_range(start, start - timedelta(seconds=1))

    validate_date_range(start, start + timedelta(seconds=1))
    validate_date_range(start, None)
    validate_date_range(None, start)
