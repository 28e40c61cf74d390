import pathlib
import sys

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from partner_portal.config import PortalSettings
from partner_portal.kv_backend import InMemoryKVBackend
from partner_portal.main import create_app
from partner_portal.portal import Portal, create_portal


class ManualClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def portal_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PORTAL_STORE_BACKEND", "memory")
    monkeypatch.delenv("REDIS_DSN", raising=False)
    monkeypatch.delenv("PORTAL_REQUIRE_TRUESTACK", raising=False)
    monkeypatch.delenv("PORTAL_KEY_PREFIX", raising=False)
    yield


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def kv(clock: ManualClock) -> InMemoryKVBackend:
    return InMemoryKVBackend(clock=clock)


@pytest.fixture
def portal(kv: InMemoryKVBackend) -> Portal:
    return create_portal(kv, settings=PortalSettings())


@pytest.fixture
def client(portal: Portal) -> TestClient:
    return TestClient(create_app(portal))
