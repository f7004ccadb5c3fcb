import asyncio

import pytest

from propagation_tracker.exceptions import LabApiError
from propagation_tracker.models import EntityStatus, SummaryRecord
from propagation_tracker.utils.logging import reset_warnings

_EMPTY = object()


class DummyResp:
    def __init__(self, status, data=_EMPTY):
        self.status = status
        self._data = {} if data is _EMPTY else data

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if isinstance(self._data, Exception):
            raise self._data
        return self._data


class DummySession:
    """Replays canned responses and records every request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def request(self, method, url, headers=None, params=None, json=None):
        self.calls.append({"method": method, "url": url, "headers": headers, "params": params, "json": json})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeLabApi:
    """In-memory stand-in for the lab API used by feed and form tests."""

    def __init__(self):
        self.entities = {}
        self.notifications = []
        self.fetch_calls = []
        self.mutations = []
        self.failing = set()
        self.gate = None

    def _maybe_fail(self, name):
        if name in self.failing:
            raise LabApiError(f"{name} refused", status=500, reason="http")

    async def fetch_entity(self, kind, entity_id):
        self.fetch_calls.append((kind, entity_id))
        self._maybe_fail(f"fetch:{entity_id}")
        return self.entities[(kind, entity_id)]

    async def mutate_entity_status(self, kind, entity_id, new_status, extra_payload=None):
        self.mutations.append((kind, entity_id, new_status, dict(extra_payload or {})))
        if self.gate is not None:
            await self.gate.wait()
        self._maybe_fail("mutate")
        status = EntityStatus(entity_id=entity_id, status=new_status, kind=kind)
        self.entities[(kind, entity_id)] = status
        return status

    async def list_notifications(self, filters=None):
        self._maybe_fail("list")
        return [SummaryRecord.from_payload(item) for item in self.notifications]

    async def mark_notification_read(self, notification_id):
        self._maybe_fail("mark_read")

    async def mark_all_notifications_read(self):
        self._maybe_fail("mark_all_read")
        return 0

    async def toggle_notification_favorite(self, notification_id):
        self._maybe_fail("favorite")
        return True

    async def archive_notification(self, notification_id):
        self._maybe_fail("archive")


def notification(ident, *, germination=None, pollination=None, estado=None, leida=False, **extra):
    details = {}
    if germination is not None:
        details["germinacion_id"] = germination
    if pollination is not None:
        details["polinizacion_id"] = pollination
    if estado is not None:
        details["estado"] = estado
    return {"id": ident, "leida": leida, "titulo": f"aviso {ident}", "detalles_adicionales": details, **extra}


async def settle(scheduler, seconds):
    """Let debounce timers fire and wait for the work they started."""

    await asyncio.sleep(seconds)
    await scheduler.async_wait_idle()


@pytest.fixture(autouse=True)
def _reset_rate_limited_warnings():
    reset_warnings()
    yield
    reset_warnings()


@pytest.fixture
def fake_api():
    return FakeLabApi()


@pytest.fixture
def sleeps(monkeypatch):
    calls = []

    async def fake_sleep(delay):
        calls.append(delay)

    monkeypatch.setattr("propagation_tracker.api.asyncio.sleep", fake_sleep)
    return calls
