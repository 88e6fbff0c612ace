"""
Unit tests for the ChangeFeedAdapter.

Polling is driven synchronously through ``poll_once`` except in the lifecycle test.
"""

from __future__ import annotations

import threading
from decimal import Decimal

import pytest

from src.core.database import get_db_connection
from src.domain.models import FeedSnapshot, Restaurant
from src.integrations.change_feed import ChangeFeedAdapter
from src.repositories.feed_repository import FeedRepository


class FakeSource:
    """Snapshot source whose token only moves when ``bump`` is called."""

    def __init__(self):
        self.token = 0
        self.loads = 0

    def bump(self):
        self.token += 1

    def change_token(self):
        return self.token

    def load_snapshot(self):
        self.loads += 1
        return FeedSnapshot.from_collections(
            restaurants=[Restaurant(id=f"r{i}") for i in range(self.token + 1)]
        )


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def feed(source):
    adapter = ChangeFeedAdapter(source, poll_interval=0.01)
    yield adapter
    adapter.stop(timeout=1)


def test_first_poll_always_emits(feed, source):
    received = []
    feed.subscribe(received.append)

    assert feed.poll_once() is True
    assert len(received) == 1
    assert feed.latest is received[0]


def test_unchanged_token_does_not_emit(feed, source):
    received = []
    feed.subscribe(received.append)
    feed.poll_once()

    assert feed.poll_once() is False
    assert source.loads == 1
    assert len(received) == 1


def test_each_change_emits_full_snapshot(feed, source):
    received = []
    feed.subscribe(received.append)
    feed.poll_once()
    source.bump()
    source.bump()
    feed.poll_once()

    assert len(received) == 2
    assert set(received[-1].restaurants) == {"r0", "r1", "r2"}


def test_late_subscriber_gets_latest_immediately(feed, source):
    feed.poll_once()
    received = []

    feed.subscribe(received.append)

    assert received == [feed.latest]


def test_unsubscribe_stops_delivery(feed, source):
    received = []
    unsubscribe = feed.subscribe(received.append)
    unsubscribe()

    feed.poll_once()

    assert received == []


def test_failing_subscriber_does_not_block_others(feed, source):
    received = []

    def broken(snapshot):
        raise RuntimeError("boom")

    feed.subscribe(broken)
    feed.subscribe(received.append)

    feed.poll_once()

    assert len(received) == 1


def test_background_polling_lifecycle(source):
    delivered = threading.Event()
    adapter = ChangeFeedAdapter(source, poll_interval=0.01)
    adapter.subscribe(lambda snapshot: delivered.set())

    with adapter:
        assert adapter.running
        assert delivered.wait(timeout=2)

    assert not adapter.running


def test_feed_repository_token_tracks_writes():
    conn = get_db_connection(":memory:")
    try:
        repo = FeedRepository(conn)
        adapter = ChangeFeedAdapter(repo)
        received = []
        adapter.subscribe(received.append)

        adapter.poll_once()
        assert received[-1].restaurants == {}
        assert adapter.poll_once() is False

        repo.upsert_restaurant(Restaurant(id="r1", name="Spice Route", commission_rate=Decimal("15")))

        assert adapter.poll_once() is True
        assert received[-1].restaurants["r1"].commission_rate == Decimal("15")
    finally:
        conn.close()
