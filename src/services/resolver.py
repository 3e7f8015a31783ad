from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

from config import settings
from services.snapshot_store import SnapshotStore, snapshot_store
from services.time_grid import floor_to_interval, parse_timestamp, step, to_stamp

logger = logging.getLogger("windhub.resolver")

# Caps how many grid points one lookup may check.
MAX_SEARCH_LIMIT_DAYS = 366


class SnapshotNotFound(LookupError):
    """Base class for lookups that found no converted snapshot."""


class NoDataAvailable(SnapshotNotFound):
    """No snapshot exists within the harvest horizon."""


class NoDataWithinLimit(SnapshotNotFound):
    """No snapshot exists within the caller's search limit."""


@dataclass(frozen=True, slots=True)
class JsonArtifact:
    stamp: str
    grid_time: datetime
    path: Path


class SnapshotResolver:
    """Answers "which converted snapshot serves time T" by walking the grid outward."""

    def __init__(self, store: SnapshotStore, *, interval_hours: int = 6, horizon_days: int = 30) -> None:
        self._store = store
        self._interval_hours = max(1, int(interval_hours))
        self._horizon = timedelta(days=max(0, int(horizon_days)))

    def latest(self, now: str | datetime | None = None) -> JsonArtifact:
        """Newest snapshot at or before ``now``, looking back no further than the horizon."""
        moment = parse_timestamp(now) if now is not None else datetime.now(timezone.utc)
        artifact = self._first_cached(self._walk(moment, -1, self._horizon))
        if artifact is None:
            origin = floor_to_interval(moment, self._interval_hours)
            raise NoDataAvailable(f"No wind data within {self._horizon.days} days of {to_stamp(origin)}")
        return artifact

    def nearest(self, target: str | datetime, search_limit_days: int | None = None) -> JsonArtifact:
        """Snapshot closest to ``target``.

        With a limit the search runs backward until it would leave the
        window, then switches once and runs forward over the same window.
        Snapshots exactly ``search_limit_days`` away on either side are in
        range. Without a limit only the backward search runs, bounded by the
        harvest horizon.
        """
        moment = parse_timestamp(target)
        if search_limit_days is None:
            artifact = self._first_cached(self._walk(moment, -1, self._horizon))
            if artifact is None:
                raise NoDataAvailable(f"No wind data within {self._horizon.days} days before {moment.isoformat()}")
            return artifact

        if search_limit_days < 0:
            raise ValueError("search_limit_days must not be negative")
        limit = timedelta(days=min(search_limit_days, MAX_SEARCH_LIMIT_DAYS))
        artifact = self._first_cached(self._walk(moment, -1, limit))
        if artifact is None:
            logger.debug("Nothing within %s before %s, searching forwards", limit, moment.isoformat())
            artifact = self._first_cached(self._walk(moment, 1, limit))
        if artifact is None:
            raise NoDataWithinLimit("No data within searchLimit")
        return artifact

    def _walk(self, moment: datetime, direction: int, window: timedelta) -> Iterator[datetime]:
        """Yield grid points from ``moment`` in ``direction`` while within ``window`` of it."""
        origin = floor_to_interval(moment, self._interval_hours)
        try:
            current = origin if direction < 0 else step(origin, 1, self._interval_hours)
        except OverflowError:
            return
        interval = timedelta(hours=self._interval_hours)
        max_steps = int(window / interval) + 2
        for _ in range(max_steps):
            if abs(current - moment) > window:
                return
            yield current
            try:
                current = step(current, direction, self._interval_hours)
            except OverflowError:
                # walked off the end of the datetime range
                return

    def _first_cached(self, candidates: Iterator[datetime]) -> JsonArtifact | None:
        for grid_time in candidates:
            stamp = to_stamp(grid_time)
            if self._store.has_json(stamp):
                return JsonArtifact(stamp=stamp, grid_time=grid_time, path=self._store.json_path(stamp))
            logger.debug("%s doesnt exist yet, trying next interval..", stamp)
        return None


snapshot_resolver = SnapshotResolver(
    snapshot_store,
    interval_hours=settings.grid_interval_hours,
    horizon_days=settings.harvest_horizon_days,
)

__all__ = [
    "JsonArtifact",
    "MAX_SEARCH_LIMIT_DAYS",
    "NoDataAvailable",
    "NoDataWithinLimit",
    "SnapshotNotFound",
    "SnapshotResolver",
    "snapshot_resolver",
]
