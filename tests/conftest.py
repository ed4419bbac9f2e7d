"""Shared fixtures.

Both services run against throwaway SQLite files and a stub bus that keeps
published events in memory. Environment overrides must be in place before
any service module is imported, since settings and engines are created at
import time.
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone

_TEST_DIR = tempfile.mkdtemp(prefix="carsties-tests-")
os.environ["AUCTION_DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/auction.db"
os.environ["AUCTION_SEED_DATA"] = "false"
os.environ["SEARCH_DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/search.db"
os.environ["SEARCH_SYNC_ON_STARTUP"] = "false"
os.environ["SEARCH_CONSUMER_RETRY_INTERVAL_SECONDS"] = "0"

import httpx
import pytest

from auction_service.db import database as auction_database
from auction_service.main import app as auction_app
from auction_service.services.publisher import EventPublisher
from search_service.db import database as search_database
from search_service.main import app as search_app
from common.bus import BusMessage
from common.errors import TransientTransportError
from common.events import AuctionEvent, AuctionSnapshot

import auction_service.db.models  # noqa: F401
import search_service.db.models  # noqa: F401


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: Tests going through the HTTP surface")


class StubBus:
    """In-memory stand-in for RedisStreamBus.

    Messages handed out by read() stay in `delivered` until acked, like a
    consumer's pending list.
    """

    def __init__(self):
        self.published: list[AuctionEvent] = []
        self.pending: list[BusMessage] = []
        self.delivered: dict[str, BusMessage] = {}
        self.acked: list[tuple[str, str]] = []
        self.dead_letters: list[dict] = []
        self.fail_publish = False
        self.failing_acks = 0
        self._next_id = 1

    async def publish(self, event: AuctionEvent) -> str:
        if self.fail_publish:
            raise TransientTransportError("redis is down")
        self.published.append(event)
        return f"{len(self.published)}-0"

    def topics(self) -> list[str]:
        return [e.topic for e in self.published]

    def enqueue(self, event: AuctionEvent) -> BusMessage:
        message = BusMessage(
            topic=event.topic,
            message_id=f"{self._next_id}-0",
            fields={"type": event.topic, "data": event.model_dump_json()},
        )
        self._next_id += 1
        self.pending.append(message)
        return message

    async def ensure_group(self, topics, group):
        return None

    async def read(self, topics, group, consumer, count=10, block_ms=5000, start_id=">"):
        if start_id != ">":
            return list(self.delivered.values())[:count]
        batch, self.pending = self.pending[:count], self.pending[count:]
        for message in batch:
            self.delivered[message.message_id] = message
        return batch

    async def ack(self, topic, group, message_id):
        if self.failing_acks:
            self.failing_acks -= 1
            raise TransientTransportError("redis is down")
        self.delivered.pop(message_id, None)
        self.acked.append((topic, message_id))

    async def dead_letter(self, group, message, error, attempts):
        self.dead_letters.append({"message": message, "error": error, "attempts": attempts})
        return f"{len(self.dead_letters)}-0"


@pytest.fixture
def bus() -> StubBus:
    return StubBus()


@pytest.fixture
def publisher(bus: StubBus) -> EventPublisher:
    return EventPublisher(bus)


async def _reset(module):
    async with module.engine.begin() as conn:
        await conn.run_sync(module.Base.metadata.drop_all)
        await conn.run_sync(module.Base.metadata.create_all)


@pytest.fixture
async def auction_db():
    await _reset(auction_database)
    async with auction_database.async_session() as session:
        yield session
    # pooled aiosqlite connections are bound to this test's event loop
    await auction_database.engine.dispose()


@pytest.fixture
async def search_db():
    await _reset(search_database)
    async with search_database.async_session() as session:
        yield session
    await search_database.engine.dispose()


@pytest.fixture
async def auction_client(auction_db, publisher):
    auction_app.state.publisher = publisher
    transport = httpx.ASGITransport(app=auction_app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def search_client(search_db):
    transport = httpx.ASGITransport(app=search_app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_snapshot():
    """Build an AuctionSnapshot, overriding any field by keyword."""

    def _make(**overrides) -> AuctionSnapshot:
        now = datetime.now(timezone.utc)
        data = {
            "id": uuid.uuid4(),
            "version": 1,
            "reserve_price": 10,
            "seller": "bob",
            "status": "Live",
            "auction_end": now + timedelta(days=10),
            "make": "Ford",
            "model": "GT",
            "color": "White",
            "mileage": 50000,
            "year": 2020,
            "created_at": now,
            "updated_at": now,
        }
        data.update(overrides)
        return AuctionSnapshot(**data)

    return _make
