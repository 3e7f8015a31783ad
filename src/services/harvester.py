from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Literal, Optional

from config import settings
from services.converter import ConversionError, SnapshotConverter, grib2json_converter
from services.gfs_fetcher import FetchOutcome, GfsFetcher, gfs_fetcher
from services.harvest_log import HarvestLog, harvest_log
from services.snapshot_store import StorageUnavailable
from services.time_grid import floor_to_interval, format_iso, parse_timestamp, step, to_stamp, utc_now

logger = logging.getLogger("windhub.harvest")

StopReason = Literal[
    "cached",
    "pending",
    "up_to_date",
    "horizon",
    "conversion_failed",
    "storage_error",
    "step_limit",
]


@dataclass(slots=True)
class HarvestReport:
    target: datetime
    started_at: datetime
    stop_reason: StopReason | None = None
    attempts: list[FetchOutcome] = field(default_factory=list)
    converted: list[str] = field(default_factory=list)
    finished_at: datetime | None = None

    @property
    def requests(self) -> int:
        """Number of attempts that went to the network."""
        return sum(1 for outcome in self.attempts if outcome.status in ("fetched", "unavailable"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": format_iso(self.target),
            "started_at": format_iso(self.started_at),
            "finished_at": format_iso(self.finished_at),
            "stop_reason": self.stop_reason,
            "requests": self.requests,
            "converted": list(self.converted),
            "attempts": [
                {"stamp": outcome.stamp, "status": outcome.status, "detail": outcome.detail}
                for outcome in self.attempts
            ],
        }


class HarvestScheduler:
    """Polls NOMADS for new GFS runs and backfills older gaps.

    A chain starts at a grid point and walks backward one run at a time:
    unavailable runs are skipped, fetched runs are converted and followed by
    their predecessor until a cached run, a conversion failure or the
    horizon ends the chain.
    """

    def __init__(
        self,
        fetcher: GfsFetcher,
        converter: SnapshotConverter,
        *,
        log: HarvestLog | None = None,
        interval_hours: int = 6,
        horizon_days: int = 30,
        poll_minutes: float = 15.0,
    ) -> None:
        self._fetcher = fetcher
        self._store = fetcher.store
        self._converter = converter
        self._log = log or HarvestLog()
        self._interval_hours = max(1, int(interval_hours))
        self._horizon_days = max(0, int(horizon_days))
        self._poll_seconds = max(1.0, float(poll_minutes) * 60.0)
        self._cycle_lock = asyncio.Lock()
        self._stamp_locks: dict[str, asyncio.Lock] = {}
        self._stamp_users: dict[str, int] = {}
        self._scheduler_task: Optional[asyncio.Task[None]] = None
        self._scheduler_stop: Optional[asyncio.Event] = None
        self._manual_tasks: set[asyncio.Task[Any]] = set()
        self._last_cycle_started: datetime | None = None
        self._last_cycle_finished: datetime | None = None
        self._last_report: HarvestReport | None = None

    @property
    def running(self) -> bool:
        return self._scheduler_task is not None and not self._scheduler_task.done()

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def last_report(self) -> HarvestReport | None:
        return self._last_report

    @property
    def log(self) -> HarvestLog:
        return self._log

    def max_steps(self) -> int:
        # whole-day comparison admits points up to horizon_days + 1 days old
        return ((self._horizon_days + 1) * 24) // self._interval_hours + 1

    async def harvest(
        self,
        target: str | datetime | None = None,
        *,
        now: str | datetime | None = None,
    ) -> HarvestReport:
        """Run one harvest chain starting at ``target`` (default: now)."""
        effective_now = parse_timestamp(now) if now is not None else utc_now()
        current = floor_to_interval(target if target is not None else effective_now, self._interval_hours)
        newest = floor_to_interval(effective_now, self._interval_hours)
        if current > newest:
            logger.debug("Target %s is ahead of %s; starting from the newest run", to_stamp(current), to_stamp(newest))
            current = newest
        report = HarvestReport(target=current, started_at=utc_now())

        for _ in range(self.max_steps()):
            if (effective_now - current).days > self._horizon_days:
                logger.debug("hit limit, harvest complete or there is a big gap in data..")
                report.stop_reason = "horizon"
                break
            try:
                reason = await self._harvest_point(current, report)
                if reason is None:
                    previous = step(current, -1, self._interval_hours)
                    if report.attempts[-1].fetched and self._store.has_json(to_stamp(previous)):
                        logger.debug("got older, no need to harvest further")
                        reason = "up_to_date"
                    elif report.attempts[-1].fetched:
                        logger.debug("attempting to harvest older data %s", to_stamp(previous))
                    current = previous
            except StorageUnavailable as exc:
                logger.error("Snapshot storage unavailable during harvest: %s", exc)
                await self._log.record(to_stamp(current), "storage_error", detail=str(exc))
                reason = "storage_error"
            if reason is not None:
                report.stop_reason = reason
                break
        else:
            report.stop_reason = "step_limit"

        report.finished_at = utc_now()
        return report

    async def _harvest_point(self, grid_time: datetime, report: HarvestReport) -> StopReason | None:
        stamp = to_stamp(grid_time)
        async with self._stamp_lock(stamp):
            started = time.perf_counter()
            outcome = await self._fetcher.fetch(grid_time)
            report.attempts.append(outcome)
            if outcome.status == "cached":
                await self._log.record(stamp, "cached", duration_s=time.perf_counter() - started)
                return "cached"
            if outcome.status == "pending":
                logger.warning("Raw data for %s is present without JSON; leaving it for inspection", stamp)
                await self._log.record(stamp, "pending", detail="raw data awaiting inspection")
                return "pending"
            if outcome.status == "unavailable":
                await self._log.record(
                    stamp,
                    "unavailable",
                    detail=outcome.detail,
                    duration_s=time.perf_counter() - started,
                )
                return None

            error = await self._convert(stamp)
            duration = time.perf_counter() - started
            if error is not None:
                await self._log.record(stamp, "conversion_failed", detail=error, duration_s=duration)
                return "conversion_failed"
            report.converted.append(stamp)
            await self._log.record(
                stamp,
                "converted",
                detail=f"{outcome.bytes_written} bytes",
                duration_s=duration,
            )
            return None

    @asynccontextmanager
    async def _stamp_lock(self, stamp: str) -> AsyncIterator[None]:
        """Serialize work on ``stamp``; the lock is dropped once nobody holds or awaits it."""
        lock = self._stamp_locks.setdefault(stamp, asyncio.Lock())
        self._stamp_users[stamp] = self._stamp_users.get(stamp, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._stamp_users[stamp] - 1
            if remaining:
                self._stamp_users[stamp] = remaining
            else:
                del self._stamp_users[stamp]
                del self._stamp_locks[stamp]

    async def _convert(self, stamp: str) -> str | None:
        raw_path = self._store.raw_path(stamp)
        staging = self._store.prepare_json(stamp)
        try:
            await self._converter.convert(raw_path, staging)
            self._store.commit_json(stamp)
        except (ConversionError, StorageUnavailable) as exc:
            self._store.discard_staged_json(stamp)
            logger.warning("Conversion of %s failed: %s", stamp, exc)
            return str(exc)
        self._store.delete_raw_data(raw_path.name)
        logger.info("Harvested %s", stamp)
        return None

    async def run_cycle(self, *, now: str | datetime | None = None) -> HarvestReport | None:
        """Harvest from the current grid point unless a cycle is already running."""
        if self._cycle_lock.locked():
            logger.info("Harvest cycle still in flight; skipping trigger")
            await self._log.record(None, "skipped", detail="cycle in flight")
            return None
        async with self._cycle_lock:
            self._last_cycle_started = utc_now()
            try:
                report = await self.harvest(now=now)
            finally:
                self._last_cycle_finished = utc_now()
            self._last_report = report
            logger.info(
                "Harvest cycle from %s stopped (%s): %d request(s), %d converted",
                to_stamp(report.target),
                report.stop_reason,
                report.requests,
                len(report.converted),
            )
            return report

    def trigger(self) -> bool:
        """Schedule a background cycle; returns False when one is already running."""
        if self._cycle_lock.locked():
            return False
        task = asyncio.create_task(self.run_cycle(), name="gfs-harvest-manual")
        self._manual_tasks.add(task)
        task.add_done_callback(self._manual_tasks.discard)
        return True

    async def start(self) -> None:
        if self.running:
            return
        self._scheduler_stop = asyncio.Event()
        self._scheduler_task = asyncio.create_task(self._scheduler_loop(), name="gfs-harvest")
        logger.info("Harvest scheduler started (interval=%.1fs)", self._poll_seconds)

    async def stop(self) -> None:
        if self._scheduler_task is None:
            return
        stop_event = self._scheduler_stop
        if stop_event is not None:
            stop_event.set()
        task = self._scheduler_task
        self._scheduler_task = None
        self._scheduler_stop = None
        try:
            await task
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            pass
        except Exception as exc:  # pragma: no cover - defensive logging
            logger.warning("Harvest scheduler terminated with error: %s", exc)
        else:
            logger.info("Harvest scheduler stopped")

    async def close(self) -> None:
        await self.stop()
        if self._manual_tasks:
            await asyncio.gather(*self._manual_tasks, return_exceptions=True)
        await self._fetcher.close()

    async def _scheduler_loop(self) -> None:
        assert self._scheduler_stop is not None
        stop_event = self._scheduler_stop
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception as exc:  # pragma: no cover - defensive logging
                logger.warning("Harvest cycle failed: %s", exc)
            if stop_event.is_set():
                break
            next_tick += self._poll_seconds
            overdue = loop.time() - next_tick
            if overdue > 0:
                missed = int(overdue // self._poll_seconds) + 1
                logger.info("Harvest cycle overran; skipping %d trigger(s)", missed)
                next_tick += missed * self._poll_seconds
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=next_tick - loop.time())
            except asyncio.TimeoutError:
                continue
        logger.debug("Harvest scheduler loop exiting")

    async def status(self, *, history_limit: int = 10) -> dict[str, Any]:
        return {
            "enabled": settings.harvest_enabled,
            "scheduler_running": self.running,
            "cycle_in_flight": self.cycle_in_flight,
            "poll_minutes": self._poll_seconds / 60.0,
            "interval_hours": self._interval_hours,
            "horizon_days": self._horizon_days,
            "last_cycle_started": format_iso(self._last_cycle_started),
            "last_cycle_finished": format_iso(self._last_cycle_finished),
            "last_report": self._last_report.to_dict() if self._last_report else None,
            "pending_stamps": [
                stamp for stamp in self._store.list_raw_stamps() if not self._store.has_json(stamp)
            ],
            "storage": self._store.stats(),
            "recent_events": await self._log.history(limit=history_limit),
        }


harvest_scheduler = HarvestScheduler(
    gfs_fetcher,
    grib2json_converter,
    log=harvest_log,
    interval_hours=settings.grid_interval_hours,
    horizon_days=settings.harvest_horizon_days,
    poll_minutes=settings.harvest_poll_minutes,
)

__all__ = ["HarvestReport", "HarvestScheduler", "StopReason", "harvest_scheduler"]
