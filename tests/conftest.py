from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from versionboard.core.deps import get_storage
from versionboard.main import app
from versionboard.storage.base import Storage
from versionboard.storage.memory import MemoryStorage
from versionboard.storage.sql import SqlStorage

AUTH_SERVICE = {
    "name": "auth-service",
    "description": "Authentication & Authorization",
    "icon": "shield-alt",
    "icon_color": "blue",
    "available_versions": ["1.1.0", "1.2.0", "1.3.0"],
    "bau_version": "1.2.0",
    "uat_version": "1.3.0",
    "prod_version": "1.1.0",
}


class FakeClock:
    """Deterministic clock; advances by ``step`` on every call."""

    def __init__(self, step: timedelta = timedelta(seconds=1)):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        value = self.now
        self.now = self.now + self.step
        return value


def make_storage(backend: str, clock) -> Storage:
    if backend == "memory":
        return MemoryStorage(clock=clock)
    return SqlStorage("sqlite://", clock=clock)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "sql"])
def storage(request, clock) -> Generator[Storage, None, None]:
    """Every storage contract test runs against both backends."""
    store = make_storage(request.param, clock)
    yield store
    store.close()


@pytest.fixture
def seeded_storage(storage: Storage) -> Storage:
    storage.create_service(AUTH_SERVICE)
    return storage


@pytest.fixture
def api_storage(clock) -> MemoryStorage:
    store = MemoryStorage(clock=clock)
    store.create_user({"username": "admin", "role": "admin"})
    store.create_user({"username": "alice", "role": "user"})
    return store


@pytest.fixture
def client(api_storage: MemoryStorage) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_storage] = lambda: api_storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def login(client: TestClient, username: str) -> None:
    response = client.post("/auth/login", json={"username": username})
    assert response.status_code == 200, response.text


@pytest.fixture
def admin_client(client: TestClient) -> TestClient:
    login(client, "admin")
    return client


@pytest.fixture
def user_client(client: TestClient) -> TestClient:
    login(client, "alice")
    return client
