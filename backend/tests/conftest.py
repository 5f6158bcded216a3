"""
Pytest fixtures and configuration for the ingest backend tests.

Provides:
- In-memory repository with the same merge-upsert contract as `EventRepo`
- Test client wired to that repository through dependency overrides
- A configured shared key and request helpers
"""

import itertools

import pytest
from fastapi.testclient import TestClient

from main import app, get_service
from repo_events import EVENTS, LATEST_STATE, SERVER_TIMESTAMP
from service_events import EventService
from settings import settings


TEST_API_KEY = "test-ingest-key"


class FakeRepo:
    """Dict-backed stand-in for `EventRepo`.

    `tables[table][key]` holds the stored row. Upserts merge the given
    fields onto the existing row; `SERVER_TIMESTAMP` becomes an increasing
    integer so write order is observable. `writes` records every call.
    """

    def __init__(self):
        self.tables = {EVENTS: {}, LATEST_STATE: {}}
        self.writes = []
        self._clock = itertools.count(1)
        self.fail_on = None

    def upsert(self, table, key_field, key, fields):
        if self.fail_on == table:
            raise RuntimeError(f"store unavailable for {table}")
        resolved = {
            name: next(self._clock) if value is SERVER_TIMESTAMP else value
            for name, value in fields.items()
        }
        row = self.tables[table].setdefault(key, {key_field: key})
        row.update(resolved)
        self.writes.append((table, key, dict(fields)))

    def upsert_event(self, tx_id, doc):
        self.upsert(EVENTS, "tx_id", tx_id, doc)

    def upsert_latest_state(self, device, doc):
        self.upsert(LATEST_STATE, "device", device, doc)

    def ping(self):
        if self.fail_on == "ping":
            raise RuntimeError("connection refused")


@pytest.fixture
def api_key(monkeypatch):
    """Configure the shared secret for the duration of a test."""
    monkeypatch.setattr(settings, "ingest_api_key", TEST_API_KEY)
    return TEST_API_KEY


@pytest.fixture
def repo():
    return FakeRepo()


@pytest.fixture
def service(repo):
    return EventService(repo)


@pytest.fixture
def client(service, api_key):
    """Test client backed by the fake repository."""
    app.dependency_overrides[get_service] = lambda: service

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(api_key):
    """Headers a correctly configured device sends."""
    return {"x-api-key": api_key}


# ============================================================
# Test Data Fixtures
# ============================================================

@pytest.fixture
def blinds_event():
    """Confirmed blinds open, as sent by the blinds node."""
    return {
        "device": "blinds",
        "action": "OPEN",
        "tx_id": "abc123",
        "confirmed_state": "open",
    }
