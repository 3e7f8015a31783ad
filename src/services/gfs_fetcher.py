from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Optional

import httpx

from config import settings
from services.snapshot_store import SnapshotStore, snapshot_store
from services.time_grid import floor_to_interval, model_run_hour, to_stamp

logger = logging.getLogger("windhub.fetcher")

FetchStatus = Literal["fetched", "cached", "pending", "unavailable"]

# Surface temperature plus 10 m U/V wind components.
GFS_LEVELS = ("lev_10_m_above_ground", "lev_surface")
GFS_VARIABLES = ("var_TMP", "var_UGRD", "var_VGRD")


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    status: FetchStatus
    stamp: str
    grid_time: datetime
    detail: str | None = None
    bytes_written: int = 0

    @property
    def fetched(self) -> bool:
        return self.status == "fetched"


class GfsFetcher:
    """Downloads one GFS analysis (f000) GRIB2 file per call from the NOMADS filter.

    The fetcher never retries: stepping to an older model run is the
    harvester's job.
    """

    def __init__(
        self,
        store: SnapshotStore,
        *,
        base_url: str,
        user_agent: str,
        timeout: float,
        bbox: tuple[float, float, float, float] = (0.0, 360.0, 90.0, -90.0),
        interval_hours: int = 6,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._store = store
        self._base_url = base_url
        self._user_agent = user_agent
        self._timeout = timeout
        self._bbox = bbox
        self._interval_hours = interval_hours
        self._client = client
        self._owns_client = client is None

    @property
    def store(self) -> SnapshotStore:
        return self._store

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"User-Agent": self._user_agent}
            self._client = httpx.AsyncClient(headers=headers, timeout=self._timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def build_params(self, grid_time: datetime) -> dict[str, Any]:
        run_hour = model_run_hour(grid_time)
        left_lon, right_lon, top_lat, bottom_lat = self._bbox
        params: dict[str, Any] = {"file": f"gfs.t{run_hour}z.pgrb2.1p00.f000"}
        for flag in (*GFS_LEVELS, *GFS_VARIABLES):
            params[flag] = "on"
        params.update(
            {
                "leftlon": _format_coord(left_lon),
                "rightlon": _format_coord(right_lon),
                "toplat": _format_coord(top_lat),
                "bottomlat": _format_coord(bottom_lat),
                "dir": f"/gfs.{to_stamp(grid_time)}",
            }
        )
        return params

    async def fetch(self, grid_time: datetime) -> FetchOutcome:
        grid_time = floor_to_interval(grid_time, self._interval_hours)
        stamp = to_stamp(grid_time)
        if self._store.has_json(stamp):
            logger.debug("already have %s, not looking further", stamp)
            return FetchOutcome(status="cached", stamp=stamp, grid_time=grid_time)
        if self._store.has_raw_data(stamp):
            logger.debug("raw data for %s awaits conversion, not fetching", stamp)
            return FetchOutcome(status="pending", stamp=stamp, grid_time=grid_time)

        client = await self._get_client()
        params = self.build_params(grid_time)
        written = 0
        try:
            async with client.stream("GET", self._base_url, params=params) as response:
                logger.debug("response %s | %s", response.status_code, stamp)
                if response.status_code != 200:
                    return FetchOutcome(
                        status="unavailable",
                        stamp=stamp,
                        grid_time=grid_time,
                        detail=f"HTTP {response.status_code}",
                    )
                logger.debug("piping %s", stamp)
                with self._store.open_raw_writer(stamp) as sink:
                    async for chunk in response.aiter_bytes():
                        sink.write(chunk)
                        written += len(chunk)
        except httpx.HTTPError as exc:
            logger.info("GFS request for %s failed: %s", stamp, exc)
            return FetchOutcome(
                status="unavailable",
                stamp=stamp,
                grid_time=grid_time,
                detail=str(exc) or exc.__class__.__name__,
            )
        return FetchOutcome(status="fetched", stamp=stamp, grid_time=grid_time, bytes_written=written)


def _format_coord(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


gfs_fetcher = GfsFetcher(
    snapshot_store,
    base_url=settings.gfs_base_url,
    user_agent=settings.gfs_user_agent,
    timeout=settings.gfs_request_timeout,
    bbox=(settings.gfs_left_lon, settings.gfs_right_lon, settings.gfs_top_lat, settings.gfs_bottom_lat),
    interval_hours=settings.grid_interval_hours,
)

__all__ = ["FetchOutcome", "FetchStatus", "GfsFetcher", "gfs_fetcher"]
