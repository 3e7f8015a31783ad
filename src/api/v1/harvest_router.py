from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from services.harvester import harvest_scheduler
from services.snapshot_store import StorageUnavailable, snapshot_store
from services.time_grid import format_iso, stamp_to_datetime

router = APIRouter(prefix="/harvest", tags=["harvest"])

EVENT_STATUSES = {"cached", "pending", "unavailable", "converted", "conversion_failed", "storage_error", "skipped"}


class HarvestEventModel(BaseModel):
	timestamp: str
	stamp: str | None = None
	status: str
	detail: str | None = None
	duration_s: float | None = Field(default=None, ge=0.0)


class HarvestAttemptModel(BaseModel):
	stamp: str
	status: Literal["fetched", "cached", "pending", "unavailable"]
	detail: str | None = None


class HarvestReportModel(BaseModel):
	target: str
	started_at: str
	finished_at: str | None = None
	stop_reason: str | None = None
	requests: int = Field(ge=0)
	converted: list[str] = Field(default_factory=list)
	attempts: list[HarvestAttemptModel] = Field(default_factory=list)


class StorageAreaModel(BaseModel):
	dir: str
	file_count: int = Field(ge=0)
	bytes: int = Field(ge=0)


class StorageStatsModel(BaseModel):
	root: str
	raw: StorageAreaModel
	json_: StorageAreaModel = Field(alias="json")


class HarvestStatusResponse(BaseModel):
	enabled: bool
	scheduler_running: bool
	cycle_in_flight: bool
	poll_minutes: float
	interval_hours: int
	horizon_days: int
	last_cycle_started: str | None = None
	last_cycle_finished: str | None = None
	last_report: HarvestReportModel | None = None
	pending_stamps: list[str] = Field(
		default_factory=list,
		description="Stamps whose raw download failed to convert and awaits inspection",
	)
	storage: StorageStatsModel
	recent_events: list[HarvestEventModel] = Field(default_factory=list)


class HarvestTriggerResponse(BaseModel):
	accepted: bool
	message: str


class SnapshotEntry(BaseModel):
	stamp: str
	grid_time: str


class SnapshotListResponse(BaseModel):
	count: int
	snapshots: list[SnapshotEntry]


@router.get("/status", response_model=HarvestStatusResponse)
async def get_harvest_status(history: int = Query(10, ge=1, le=200)) -> dict[str, Any]:
	try:
		return await harvest_scheduler.status(history_limit=history)
	except StorageUnavailable as exc:
		raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post("/run", response_model=HarvestTriggerResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_harvest() -> HarvestTriggerResponse:
	if not harvest_scheduler.trigger():
		raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Harvest cycle already in flight")
	return HarvestTriggerResponse(accepted=True, message="Harvest cycle scheduled")


@router.get("/events", response_model=list[HarvestEventModel])
async def get_harvest_events(
	limit: int = Query(50, ge=1, le=500),
	event_status: str | None = Query(None, alias="status"),
) -> list[dict[str, object]]:
	if event_status is not None and event_status not in EVENT_STATUSES:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported status: {event_status}")
	return await harvest_scheduler.log.history(limit=limit, status=event_status)


@router.get("/snapshots", response_model=SnapshotListResponse)
async def list_snapshots(limit: int = Query(120, ge=1, le=2000)) -> SnapshotListResponse:
	try:
		stamps = snapshot_store.list_json_stamps()
	except StorageUnavailable as exc:
		raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
	newest_first = list(reversed(stamps))[:limit]
	entries = [
		SnapshotEntry(stamp=stamp, grid_time=format_iso(stamp_to_datetime(stamp)))
		for stamp in newest_first
	]
	return SnapshotListResponse(count=len(stamps), snapshots=entries)
