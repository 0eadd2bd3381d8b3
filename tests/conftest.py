from __future__ import annotations

from pathlib import Path
import json
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))


class FakeResponse:
    """Stands in for an aiohttp response inside `async with session.get(...)`."""

    def __init__(self, status: int = 200, payload=None, body: bytes = None):
        self.status = status
        self._payload = payload
        self._body = body
        self.read_called = False

    async def json(self, content_type=None):
        if self._body is not None:
            return json.loads(self._body.decode("utf-8"))
        return self._payload

    async def read(self) -> bytes:
        self.read_called = True
        if self._body is not None:
            return self._body
        return json.dumps(self._payload).encode("utf-8")

    async def text(self) -> str:
        return (await self.read()).decode("utf-8")


class _RequestContext:
    def __init__(self, outcome):
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Minimal aiohttp.ClientSession replacement keyed by URL (query ignored)."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.closed = False

    def get(self, url, params=None, timeout=None, **kwargs):
        self.calls.append((url, params))
        outcome = self.routes.get(url, FakeResponse(status=404, body=b"not found"))
        return _RequestContext(outcome)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession
