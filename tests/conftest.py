"""Shared fixtures for the ChaosLab tests."""

from __future__ import annotations

import asyncio
import json
from typing import Dict, List, Optional

import pytest

from chaoslab.config import ChaosLabConfig, reset_config
from chaoslab.faults.network import FetchResponse, FetchTransport

SAMPLE_HTML = (
    "<html><body><h1>Herman Melville - Moby-Dick</h1>"
    "<p>Availing himself of the mild, summer-cool weather.</p></body></html>"
)

SAMPLE_USERS = [
    {"id": 1, "name": "Leanne Graham", "email": "Sincere@april.biz"},
    {"id": 2, "name": "Ervin Howell", "email": "Shanna@melissa.tv"},
]


class FakeTransport(FetchTransport):
    """Serves canned bodies by URL and records every call."""

    def __init__(self, bodies: Optional[Dict[str, str]] = None, status: int = 200, error: Optional[Exception] = None):
        self.bodies = bodies or {}
        self.status = status
        self.error = error
        self.calls: List[str] = []

    async def fetch(self, url: str) -> FetchResponse:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return FetchResponse(status=self.status, body=self.bodies.get(url, ""), url=url)


class SlowTransport(FetchTransport):
    """Never answers within a test-sized timeout."""

    async def fetch(self, url: str) -> FetchResponse:
        await asyncio.sleep(5)
        return FetchResponse(status=200, url=url)


class FakeSleep:
    """Records requested suspensions instead of waiting."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(autouse=True)
def _reset_global_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> ChaosLabConfig:
    return ChaosLabConfig()


@pytest.fixture
def sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def transport(config: ChaosLabConfig) -> FakeTransport:
    return FakeTransport({
        config.targets.fetch_url: SAMPLE_HTML,
        config.targets.json_url: json.dumps(SAMPLE_USERS),
    })
