from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from workclock.clock import elapsed_seconds, local_day_key, parse_iso_utc, to_utc, week_bounds


def test_parse_iso_utc_normalizes_values() -> None:
    assert parse_iso_utc(None) is None
    assert parse_iso_utc("") is None
    assert parse_iso_utc("2026-02-01T11:30:00") == datetime(2026, 2, 1, 11, 30, tzinfo=timezone.utc)
    assert parse_iso_utc("2026-02-01T12:30:00+01:00") == datetime(2026, 2, 1, 11, 30, tzinfo=timezone.utc)


def test_elapsed_seconds_never_negative() -> None:
    start = datetime(2026, 2, 1, 11, 30, tzinfo=timezone.utc)
    end = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)

    assert elapsed_seconds(start, end) == 1800
    assert elapsed_seconds(end, start) == 0


def test_naive_datetimes_are_rejected() -> None:
    with pytest.raises(ValueError):
        to_utc(datetime(2026, 2, 1, 12, 0))


def test_local_day_key_uses_timezone() -> None:
    moment = datetime(2026, 1, 2, 3, 0, tzinfo=timezone.utc)

    assert local_day_key(moment, ZoneInfo("UTC")) == "2026-01-02"
    assert local_day_key(moment, ZoneInfo("America/New_York")) == "2026-01-01"


def test_week_bounds_run_monday_to_sunday() -> None:
    assert week_bounds(date(2026, 2, 4)) == (date(2026, 2, 2), date(2026, 2, 8))
    assert week_bounds(date(2026, 2, 8)) == (date(2026, 2, 2), date(2026, 2, 8))
