from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import FileResponse, PlainTextResponse

from config import settings
from services.resolver import JsonArtifact, SnapshotNotFound, snapshot_resolver
from services.snapshot_store import StorageUnavailable
from services.time_grid import InvalidTimestamp

router = APIRouter(prefix="/wind", tags=["wind"])
logger = logging.getLogger("windhub.api.wind")

INVALID_PARAMS_DETAIL = "Invalid params, expecting: timeIso=ISO_TIME_STRING"


def server_name() -> str:
    return f"{settings.app_name}, version {settings.app_version}"


def _artifact_response(artifact: JsonArtifact) -> FileResponse:
    return FileResponse(
        artifact.path,
        media_type="application/json",
        headers={"X-Wind-Stamp": artifact.stamp},
    )


@router.get("", response_class=PlainTextResponse)
async def index() -> str:
    return server_name()


@router.get("/alive", response_class=PlainTextResponse)
async def alive() -> str:
    return f"{int(time.time() * 1000)} {server_name()}"


@router.get("/latest")
async def latest() -> FileResponse:
    try:
        artifact = snapshot_resolver.latest()
    except SnapshotNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageUnavailable as exc:
        logger.error("Snapshot storage unavailable: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _artifact_response(artifact)


@router.get("/nearest")
async def nearest(
    time_iso: Optional[str] = Query(None, alias="timeIso", description="ISO-8601 target time"),
    search_limit: Optional[int] = Query(
        None,
        alias="searchLimit",
        ge=0,
        description="Search window in days on either side of timeIso (capped at one year)",
    ),
) -> FileResponse:
    if not time_iso:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_PARAMS_DETAIL)
    try:
        artifact = snapshot_resolver.nearest(time_iso, search_limit)
    except InvalidTimestamp as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_PARAMS_DETAIL) from exc
    except SnapshotNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageUnavailable as exc:
        logger.error("Snapshot storage unavailable: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _artifact_response(artifact)
