import sys
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fastapi.testclient import TestClient  # noqa: E402

from config import settings  # noqa: E402
from main import create_app  # noqa: E402
from services.harvest_log import HarvestLog  # noqa: E402
from services.resolver import SnapshotResolver  # noqa: E402
from services.snapshot_store import SnapshotStore  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings_override() -> Callable[..., None]:
    original: Dict[str, Any] = {}

    def _apply(**overrides: Any) -> None:
        for key, value in overrides.items():
            if key not in original:
                original[key] = getattr(settings, key)
            setattr(settings, key, value)

    yield _apply

    for key, value in original.items():
        setattr(settings, key, value)


@pytest.fixture
def store(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "data")


@pytest.fixture
def seed_json(store: SnapshotStore) -> Callable[..., Path]:
    def _seed(stamp: str, payload: str = '[{"header":{},"data":[]}]') -> Path:
        store.ensure_dir("json-data")
        path = store.json_path(stamp)
        path.write_text(payload, encoding="utf-8")
        return path

    return _seed


@pytest.fixture
def disable_harvest(settings_override: Callable[..., None]) -> None:
    settings_override(harvest_enabled=False)
    yield


@pytest.fixture
def wired_store(
    store: SnapshotStore,
    monkeypatch: pytest.MonkeyPatch,
) -> SnapshotStore:
    """Point the HTTP layer's store and resolver at a temporary directory."""
    from api import wind_router
    from api.v1 import harvest_router, health_router
    from services import harvester

    resolver = SnapshotResolver(store, interval_hours=6, horizon_days=30)
    monkeypatch.setattr(wind_router, "snapshot_resolver", resolver)
    monkeypatch.setattr(harvest_router, "snapshot_store", store)
    monkeypatch.setattr(health_router, "snapshot_store", store)
    monkeypatch.setattr(harvester.harvest_scheduler, "_store", store)
    monkeypatch.setattr(harvester.harvest_scheduler, "_log", HarvestLog(history_limit=50))
    return store


@pytest.fixture
def client(disable_harvest: None, wired_store: SnapshotStore) -> TestClient:
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
