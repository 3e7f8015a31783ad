from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Dict, Optional

from fastapi import APIRouter, Request

from config import settings
from services.harvester import harvest_scheduler
from services.snapshot_store import StorageUnavailable, snapshot_store
from services.time_grid import format_iso, stamp_to_datetime, utc_now

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger("windhub.health")

# GFS publishes every 6 h; two missed runs is a warning, four is critical.
SNAPSHOT_AGE_WARN_S = 12 * 3600.0
SNAPSHOT_AGE_CRITICAL_S = 24 * 3600.0
FREE_SPACE_WARN_PCT = 20.0
FREE_SPACE_CRITICAL_PCT = 10.0

SEVERITY = ("unknown", "ok", "warning", "critical")


def _worst(*statuses: str) -> str:
    known = [status for status in statuses if status in SEVERITY]
    return max(known, key=SEVERITY.index, default="unknown")


def _grade_age(age_seconds: Optional[float]) -> str:
    if age_seconds is None:
        return "unknown"
    if age_seconds >= SNAPSHOT_AGE_CRITICAL_S:
        return "critical"
    if age_seconds >= SNAPSHOT_AGE_WARN_S:
        return "warning"
    return "ok"


def _grade_free_space(free_pct: float) -> str:
    if free_pct < FREE_SPACE_CRITICAL_PCT:
        return "critical"
    if free_pct < FREE_SPACE_WARN_PCT:
        return "warning"
    return "ok"


def _existing_ancestor(path: Path) -> Path:
    """The data directory may not exist before the first harvest."""
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return Path.cwd()


@router.get("")
async def health_summary(request: Request) -> Dict[str, object]:
    snapshots = await health_snapshots()
    storage = await health_storage()
    started_at = getattr(request.app.state, "started_at", None)
    return {
        "status": _worst(snapshots["status"], storage["status"]),
        "version": settings.app_version,
        "uptime": {
            "started_at": format_iso(started_at),
            "seconds": (utc_now() - started_at).total_seconds() if started_at else None,
        },
        "snapshots": snapshots,
        "storage": storage,
        "harvester": {
            "enabled": settings.harvest_enabled,
            "scheduler_running": harvest_scheduler.running,
            "cycle_in_flight": harvest_scheduler.cycle_in_flight,
        },
    }


@router.get("/snapshots")
async def health_snapshots() -> Dict[str, object]:
    """Freshness of the converted snapshot cache."""
    try:
        stamps = await asyncio.to_thread(snapshot_store.list_json_stamps)
        raw_stamps = await asyncio.to_thread(snapshot_store.list_raw_stamps)
    except StorageUnavailable as exc:
        logger.warning("Snapshot directory scan failed: %s", exc)
        return {"status": "critical", "json_dir": str(snapshot_store.json_dir), "detail": str(exc)}

    converted = set(stamps)
    newest = stamp_to_datetime(stamps[-1]) if stamps else None
    age_seconds = (utc_now() - newest).total_seconds() if newest else None
    return {
        "status": _grade_age(age_seconds),
        "json_dir": str(snapshot_store.json_dir),
        "snapshot_count": len(stamps),
        "newest_stamp": stamps[-1] if stamps else None,
        "oldest_stamp": stamps[0] if stamps else None,
        "newest_grid_time": format_iso(newest),
        "age_seconds": age_seconds,
        "pending_raw": [stamp for stamp in raw_stamps if stamp not in converted],
    }


@router.get("/storage")
async def health_storage() -> Dict[str, object]:
    """Free space on the volume that holds the snapshot directories."""
    checked = _existing_ancestor(snapshot_store.root)
    usage = await asyncio.to_thread(shutil.disk_usage, checked)
    free_pct = (usage.free / usage.total) * 100.0 if usage.total else 0.0
    return {
        "status": _grade_free_space(free_pct),
        "path_checked": str(checked),
        "total_bytes": usage.total,
        "free_bytes": usage.free,
        "free_percent": round(free_pct, 2),
    }


__all__ = ["router"]
