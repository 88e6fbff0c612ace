"""
Change Feed Adapter - deliver full-collection snapshots to subscribers.

The adapter polls a snapshot source for a change token and, whenever the token
moves (and once on the first poll), loads a complete FeedSnapshot and hands it
to every subscriber. There is no delta path: each emission is the whole state.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Hashable, Optional, Protocol

from src.core.config import Config
from src.domain.models import FeedSnapshot
from src.utils.logging_config import get_logger

logger = get_logger(__name__)

SnapshotCallback = Callable[[FeedSnapshot], None]


class SnapshotSource(Protocol):
    """Anything that can report a change token and load a full snapshot."""

    def change_token(self) -> Hashable: ...

    def load_snapshot(self) -> FeedSnapshot: ...


class ChangeFeedAdapter:
    """Polling change feed with an explicit start/stop lifecycle."""

    def __init__(
        self,
        source: SnapshotSource,
        *,
        poll_interval: Optional[float] = None,
    ) -> None:
        self.source = source
        self.poll_interval = (
            poll_interval if poll_interval is not None else Config.FEED_POLL_INTERVAL_SECONDS
        )
        self._subscribers: Dict[int, SnapshotCallback] = {}
        self._next_token = 0
        self._lock = threading.Lock()
        self._poll_lock = threading.Lock()
        self._last_change_token: Optional[Hashable] = None
        self._latest: Optional[FeedSnapshot] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Register a callback for every emitted snapshot.

        The latest snapshot, if any, is delivered immediately.

        Returns:
            A callable that removes the subscription.
        """
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            latest = self._latest

        if latest is not None:
            self._deliver(callback, latest)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    @property
    def latest(self) -> Optional[FeedSnapshot]:
        return self._latest

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background polling thread (no-op if already running)."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="change-feed-poller", daemon=True
        )
        self._thread.start()
        logger.info("change_feed_started", poll_interval=self.poll_interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling and wait for the background thread to exit."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None
        logger.info("change_feed_stopped")

    def __enter__(self) -> "ChangeFeedAdapter":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------ #
    # Polling
    # ------------------------------------------------------------------ #

    def poll_once(self) -> bool:
        """
        Check the source once and emit a snapshot if it changed.

        Returns:
            True when a snapshot was emitted.
        """
        with self._poll_lock:
            token = self.source.change_token()
            if self._latest is not None and token == self._last_change_token:
                return False

            snapshot = self.source.load_snapshot()
            self._last_change_token = token
        self.publish(snapshot)
        return True

    def publish(self, snapshot: FeedSnapshot) -> None:
        """Emit a snapshot to every subscriber."""
        with self._lock:
            self._latest = snapshot
            subscribers = list(self._subscribers.values())

        logger.debug(
            "feed_snapshot_emitted",
            orders=len(snapshot.orders),
            restaurants=len(snapshot.restaurants),
            partners=len(snapshot.partners),
            settlement_events=len(snapshot.settlement_events),
            subscribers=len(subscribers),
        )
        for callback in subscribers:
            self._deliver(callback, snapshot)

    def _deliver(self, callback: SnapshotCallback, snapshot: FeedSnapshot) -> None:
        try:
            callback(snapshot)
        except Exception as exc:
            logger.error(
                "feed_subscriber_failed",
                subscriber=getattr(callback, "__qualname__", repr(callback)),
                error=str(exc),
                exc_info=True,
            )

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception as exc:
                logger.error("change_feed_poll_failed", error=str(exc), exc_info=True)
            self._stop_event.wait(self.poll_interval)
