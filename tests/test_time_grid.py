from datetime import datetime, timedelta, timezone

import pytest

from services.time_grid import (
    InvalidTimestamp,
    floor_to_interval,
    model_run_hour,
    parse_timestamp,
    stamp_to_datetime,
    step,
    to_stamp,
)


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def test_floor_to_interval_snaps_to_six_hour_runs():
    floored = floor_to_interval(_ts("2024-03-18T14:37:12.345"), 6)
    assert floored == _ts("2024-03-18T12:00:00")
    assert floored.minute == 0 and floored.second == 0 and floored.microsecond == 0


@pytest.mark.parametrize(
    "value, expected_hour",
    [("2024-03-18T00:00:00", 0), ("2024-03-18T05:59:59", 0), ("2024-03-18T06:00:00", 6), ("2024-03-18T23:10:00", 18)],
)
def test_floor_to_interval_hour_boundaries(value, expected_hour):
    assert floor_to_interval(_ts(value), 6).hour == expected_hour


def test_floor_to_interval_is_idempotent():
    moment = _ts("2024-02-29T19:45:00")
    once = floor_to_interval(moment, 6)
    assert floor_to_interval(once, 6) == once
    assert to_stamp(floor_to_interval(once, 6)) == to_stamp(once)


def test_floor_to_interval_remains_parametric():
    assert floor_to_interval(_ts("2024-03-18T14:37:00"), 3).hour == 12
    assert floor_to_interval(_ts("2024-03-18T14:37:00"), 1).hour == 14
    with pytest.raises(ValueError):
        floor_to_interval(_ts("2024-03-18T14:37:00"), 0)


def test_floor_to_interval_normalizes_offsets_to_utc():
    local = datetime(2024, 3, 18, 2, 30, tzinfo=timezone(timedelta(hours=5)))
    assert floor_to_interval(local, 6) == _ts("2024-03-17T18:00:00")


def test_parse_timestamp_accepts_iso_strings():
    assert parse_timestamp("2024-03-18T12:00:00Z") == _ts("2024-03-18T12:00:00")
    assert parse_timestamp("2024-03-18T12:00:00+02:00") == _ts("2024-03-18T10:00:00")
    naive = parse_timestamp("2024-03-18T12:00:00")
    assert naive.tzinfo is timezone.utc


@pytest.mark.parametrize("value", ["", "yesterday", "2024-13-45T00:00:00", 42])
def test_parse_timestamp_rejects_garbage(value):
    with pytest.raises(InvalidTimestamp):
        parse_timestamp(value)


def test_to_stamp_pads_run_hour():
    assert to_stamp(_ts("2024-03-18T06:00:00")) == "2024031806"
    assert to_stamp(_ts("2024-03-18T18:00:00")) == "2024031818"
    assert model_run_hour(_ts("2024-03-18T00:00:00")) == "00"


def test_stamp_round_trips_to_grid_time():
    grid_time = _ts("2023-12-31T18:00:00")
    assert stamp_to_datetime(to_stamp(grid_time)) == grid_time
    with pytest.raises(InvalidTimestamp):
        stamp_to_datetime("2023123")


@pytest.mark.parametrize("stamp", ["2024031899", "2024130100", "2024023012", "20240318123", "0000010100", " 024031812"])
def test_stamp_to_datetime_rejects_impossible_stamps(stamp):
    with pytest.raises(InvalidTimestamp):
        stamp_to_datetime(stamp)


def test_stamps_keep_four_digit_years():
    grid_time = datetime(1, 1, 1, 6, tzinfo=timezone.utc)
    assert to_stamp(grid_time) == "0001010106"
    assert stamp_to_datetime("0001010106") == grid_time


def test_step_crosses_day_boundaries():
    assert step(_ts("2024-03-01T00:00:00"), -1) == _ts("2024-02-29T18:00:00")
    assert step(_ts("2024-12-31T18:00:00"), 1) == _ts("2025-01-01T00:00:00")
