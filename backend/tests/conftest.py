"""Shared test fixtures and configuration for backend tests."""
import asyncio

import pytest
from fastapi.testclient import TestClient

from roomchat.config import AppSettings, ReplySettings, StorageSettings, WindowSettings
from roomchat.main import create_app
from roomchat.messages import DuckDBRecordStorage, MessageStore


class FakeClock:
    """Millisecond clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: int = 0) -> None:
        self.now = start
        self.sleeps = []

    def __call__(self) -> int:
        return self.now

    async def sleep(self, seconds: float) -> None:
        ms = int(round(seconds * 1000))
        self.sleeps.append(ms)
        self.now += ms
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    """A FakeClock starting at t=0."""
    return FakeClock()


@pytest.fixture
def storage():
    """In-memory DuckDB record storage."""
    s = DuckDBRecordStorage(":memory:")
    yield s
    s.close()


@pytest.fixture
def store(storage, clock):
    """MessageStore over in-memory storage with the fake clock."""
    return MessageStore(storage, clock=clock)


@pytest.fixture
def test_settings():
    """Settings with in-memory databases and no artificial delays."""
    return AppSettings(
        storage=StorageSettings(messages_db=":memory:", rooms_db=":memory:"),
        window=WindowSettings(page_size=20, extend_delay_ms=0),
        replies=ReplySettings(throttle_ms=0, base_delay_ms=0, jitter_ms=0),
    )


@pytest.fixture
def api_client(test_settings):
    """Provide a TestClient with the lifespan (and its services) running."""
    app = create_app(test_settings)
    with TestClient(app) as client:
        yield client
