"""Quantize timestamps onto the GFS model-run grid and name the resulting snapshots."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

DEFAULT_INTERVAL_HOURS = 6
STAMP_FORMAT = "%Y%m%d%H"
STAMP_PATTERN = re.compile(r"^\d{10}$")


class InvalidTimestamp(ValueError):
    """Raised when a client-supplied time cannot be parsed."""


def parse_timestamp(value: str | datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive values are taken as UTC. Strings may use a trailing ``Z``.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            raise InvalidTimestamp("Empty timestamp")
        if cleaned.endswith(("Z", "z")):
            cleaned = cleaned[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(cleaned)
        except ValueError as exc:
            raise InvalidTimestamp(f"Unparseable timestamp: {value!r}") from exc
    else:
        raise InvalidTimestamp(f"Unsupported timestamp type: {type(value).__name__}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError as exc:
        raise InvalidTimestamp(f"Timestamp out of range: {value!r}") from exc


def floor_to_interval(timestamp: str | datetime, interval_hours: int = DEFAULT_INTERVAL_HOURS) -> datetime:
    if interval_hours <= 0:
        raise ValueError("interval_hours must be positive")
    moment = parse_timestamp(timestamp)
    hour = (moment.hour // interval_hours) * interval_hours
    return moment.replace(hour=hour, minute=0, second=0, microsecond=0)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_iso(value: datetime | None) -> str | None:
    """Render ``value`` as second-precision ISO-8601 with a ``Z`` suffix."""
    if value is None:
        return None
    iso = value.astimezone(timezone.utc).isoformat(timespec="seconds")
    return iso[:-6] + "Z" if iso.endswith("+00:00") else iso


def model_run_hour(grid_time: datetime) -> str:
    return f"{grid_time.hour:02d}"


def to_stamp(grid_time: datetime) -> str:
    return f"{grid_time.year:04d}{grid_time.month:02d}{grid_time.day:02d}" + model_run_hour(grid_time)


def stamp_to_datetime(stamp: str) -> datetime:
    if not isinstance(stamp, str) or not STAMP_PATTERN.fullmatch(stamp):
        raise InvalidTimestamp(f"Malformed stamp: {stamp!r}")
    try:
        parsed = datetime.strptime(stamp, STAMP_FORMAT)
    except ValueError as exc:
        raise InvalidTimestamp(f"Malformed stamp: {stamp!r}") from exc
    if to_stamp(parsed) != stamp:
        raise InvalidTimestamp(f"Malformed stamp: {stamp!r}")
    return parsed.replace(tzinfo=timezone.utc)


def step(grid_time: datetime, steps: int = 1, interval_hours: int = DEFAULT_INTERVAL_HOURS) -> datetime:
    """Move ``steps`` grid points forward (negative: backward)."""
    return grid_time + timedelta(hours=interval_hours * steps)


__all__ = [
    "DEFAULT_INTERVAL_HOURS",
    "InvalidTimestamp",
    "STAMP_PATTERN",
    "floor_to_interval",
    "format_iso",
    "model_run_hour",
    "parse_timestamp",
    "stamp_to_datetime",
    "step",
    "to_stamp",
    "utc_now",
]
