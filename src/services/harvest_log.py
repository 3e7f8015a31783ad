from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Deque, Dict, List, Optional

from config import settings
from services.time_grid import format_iso, utc_now

logger = logging.getLogger("windhub.harvest.log")


@dataclass(slots=True)
class HarvestEvent:
    timestamp: str
    stamp: str | None
    status: str
    detail: str | None = None
    duration_s: float | None = None

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class HarvestLog:
    """Bounded record of harvest steps, optionally mirrored to a JSONL file."""

    def __init__(self, *, history_limit: int = 200, log_path: Path | str | None = None) -> None:
        self._history_limit = max(10, history_limit)
        self._events: Deque[HarvestEvent] = deque(maxlen=self._history_limit)
        self._lock = asyncio.Lock()
        self._log_path = Path(log_path).expanduser().resolve() if log_path else None

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    async def record(
        self,
        stamp: str | None,
        status: str,
        *,
        detail: str | None = None,
        duration_s: float | None = None,
    ) -> HarvestEvent:
        event = HarvestEvent(
            timestamp=format_iso(utc_now()),
            stamp=stamp,
            status=status,
            detail=detail,
            duration_s=round(duration_s, 3) if duration_s is not None else None,
        )
        async with self._lock:
            self._events.append(event)
        await self._persist_event(event)
        return event

    async def history(self, *, limit: int = 50, status: Optional[str] = None) -> List[Dict[str, object]]:
        async with self._lock:
            snapshot = list(self._events)
        if status:
            snapshot = [event for event in snapshot if event.status == status]
        if limit > 0:
            snapshot = snapshot[-limit:]
        return [event.to_dict() for event in snapshot]

    async def clear(self) -> None:
        async with self._lock:
            self._events.clear()

    async def _persist_event(self, event: HarvestEvent) -> None:
        path = self._log_path
        if path is None:
            return
        payload = json.dumps(event.to_dict(), separators=(",", ":"))
        try:
            await asyncio.to_thread(self._append_log_entry, path, payload)
        except OSError as exc:  # pragma: no cover - persistence failures are non-fatal
            logger.debug("Harvest log append failed: %s", exc)

    @staticmethod
    def _append_log_entry(path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(payload + "\n")


harvest_log = HarvestLog(history_limit=settings.harvest_history_limit, log_path=settings.harvest_event_log)

__all__ = ["HarvestEvent", "HarvestLog", "harvest_log"]
