from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from api.v1 import harvest_router
from services.harvester import harvest_scheduler


class _StubScheduler:
    def __init__(self, accept: bool) -> None:
        self._accept = accept
        self.triggered = 0

    def trigger(self) -> bool:
        self.triggered += 1
        return self._accept


def test_harvest_status_reports_storage_and_pending(client: TestClient, wired_store, seed_json) -> None:
    seed_json("2024031800")
    with wired_store.open_raw_writer("2024031806") as sink:
        sink.write(b"GRIB")

    response = client.get("/api/v1/harvest/status")

    assert response.status_code == 200
    payload = response.json()
    assert payload["enabled"] is False
    assert payload["scheduler_running"] is False
    assert payload["cycle_in_flight"] is False
    assert payload["interval_hours"] == 6
    assert payload["pending_stamps"] == ["2024031806"]
    assert payload["storage"]["json"]["file_count"] == 1
    assert payload["storage"]["raw"]["file_count"] == 1
    assert payload["last_report"] is None


def test_harvest_events_filter_by_status(client: TestClient) -> None:
    log = harvest_scheduler.log
    asyncio.run(log.record("2024031812", "unavailable", detail="HTTP 404"))
    asyncio.run(log.record("2024031806", "converted", detail="1024 bytes", duration_s=1.25))

    response = client.get("/api/v1/harvest/events", params={"status": "converted"})

    assert response.status_code == 200
    events = response.json()
    assert len(events) == 1
    assert events[0]["stamp"] == "2024031806"
    assert events[0]["duration_s"] == 1.25

    everything = client.get("/api/v1/harvest/events").json()
    assert [event["status"] for event in everything] == ["unavailable", "converted"]


def test_harvest_events_reject_unknown_status(client: TestClient) -> None:
    response = client.get("/api/v1/harvest/events", params={"status": "exploded"})
    assert response.status_code == 400


def test_harvest_snapshots_newest_first(client: TestClient, seed_json) -> None:
    for stamp in ("2024031700", "2024031806", "2024031812"):
        seed_json(stamp)

    response = client.get("/api/v1/harvest/snapshots", params={"limit": 2})

    assert response.status_code == 200
    payload = response.json()
    assert payload["count"] == 3
    assert [entry["stamp"] for entry in payload["snapshots"]] == ["2024031812", "2024031806"]
    assert payload["snapshots"][0]["grid_time"] == "2024-03-18T12:00:00Z"


@pytest.mark.parametrize("accept, expected", [(True, 202), (False, 409)])
def test_harvest_run_trigger(client: TestClient, monkeypatch: pytest.MonkeyPatch, accept: bool, expected: int) -> None:
    stub = _StubScheduler(accept)
    monkeypatch.setattr(harvest_router, "harvest_scheduler", stub)

    response = client.post("/api/v1/harvest/run")

    assert response.status_code == expected
    assert stub.triggered == 1
    if accept:
        assert response.json()["accepted"] is True


def test_root_and_info(client: TestClient) -> None:
    root = client.get("/").json()
    assert root["name"] == "WindHub GRIB2 server"
    assert "/wind/latest" in root["endpoints"]
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["harvest_enabled"] is False
    info = client.get("/api/v1/info").json()
    assert info["grid_interval_hours"] == 6
    assert info["harvest_enabled"] is False


def test_harvest_snapshots_skip_malformed_names(client: TestClient, wired_store, seed_json) -> None:
    seed_json("2024031806")
    seed_json("2024031899")
    with wired_store.open_raw_writer("2024031399") as sink:
        sink.write(b"GRIB")

    snapshots = client.get("/api/v1/harvest/snapshots")
    status = client.get("/api/v1/harvest/status")

    assert snapshots.status_code == 200
    assert [entry["stamp"] for entry in snapshots.json()["snapshots"]] == ["2024031806"]
    assert status.status_code == 200
    assert status.json()["pending_stamps"] == []
