"""
Reconciliation service - the entry point presentation and reporting code uses.

Keeps the latest FeedSnapshot delivered by a ChangeFeedAdapter and recomputes
windowed aggregates and lifetime ledger statements from it on demand.
Settlement writes go through the LedgerService so they stay atomic per payee.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional, Union

from src.core.config import Config
from src.domain.models import FeedSnapshot, OrderStatus, PayeeKind, SettlementEvent
from src.integrations.change_feed import ChangeFeedAdapter
from src.services.financial_aggregator import AggregateResult, aggregate
from src.services.ledger_service import (
    LedgerBalance,
    LedgerService,
    compute_balance,
    outstanding_balances,
)
from src.utils.logging_config import get_logger

logger = get_logger(__name__)


class ReconciliationService:
    """
    Facade over the aggregator and ledger, driven by a change feed.

    The feed polls from its own thread, so its source must read through a
    different connection than the ledger writes through.
    """

    def __init__(
        self,
        ledger: LedgerService,
        feed: Optional[ChangeFeedAdapter] = None,
        *,
        default_window: Optional[str] = None,
    ) -> None:
        if feed is not None and getattr(feed.source, "db", None) is ledger.db:
            raise ValueError("Change feed source must use its own connection, not the ledger's")
        self.ledger = ledger
        self.feed = feed
        self.default_window = default_window or Config.DEFAULT_WINDOW
        self._snapshot = FeedSnapshot()
        self._unsubscribe: Optional[Callable[[], None]] = None
        if feed is not None:
            self._unsubscribe = feed.subscribe(self.on_snapshot)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------ #
    # Feed handling
    # ------------------------------------------------------------------ #

    def on_snapshot(self, snapshot: FeedSnapshot) -> None:
        """Replace the working snapshot; every view is recomputed from it."""
        self._snapshot = snapshot
        logger.debug("reconciliation_snapshot_updated", orders=len(snapshot.orders))

    @property
    def snapshot(self) -> FeedSnapshot:
        return self._snapshot

    # ------------------------------------------------------------------ #
    # Windowed views
    # ------------------------------------------------------------------ #

    def aggregate(
        self,
        window: Optional[str] = None,
        statuses: Optional[Iterable[Union[str, OrderStatus]]] = None,
        *,
        now: Optional[datetime] = None,
    ) -> AggregateResult:
        snapshot = self._snapshot
        return aggregate(
            snapshot.orders.values(),
            snapshot.restaurants,
            snapshot.settings,
            window or self.default_window,
            statuses,
            partners=snapshot.partners,
            now=now,
        )

    # ------------------------------------------------------------------ #
    # Lifetime ledger views
    # ------------------------------------------------------------------ #

    def balance(self, payee_kind: PayeeKind, payee_id: str) -> LedgerBalance:
        return compute_balance(self._snapshot, payee_kind, payee_id)

    def balances(self, payee_kind: PayeeKind) -> Mapping[str, LedgerBalance]:
        return outstanding_balances(self._snapshot, payee_kind)

    def lifetime_earnings(self, payee_kind: PayeeKind, payee_id: str) -> Decimal:
        return self.balance(payee_kind, payee_id).lifetime_earnings

    def total_settled(self, payee_kind: PayeeKind, payee_id: str) -> Decimal:
        return self.balance(payee_kind, payee_id).total_settled

    def outstanding(self, payee_kind: PayeeKind, payee_id: str) -> Decimal:
        return self.balance(payee_kind, payee_id).outstanding

    # ------------------------------------------------------------------ #
    # Settlement
    # ------------------------------------------------------------------ #

    def record_settlement(
        self,
        payee_kind: PayeeKind,
        payee_id: str,
        amount: object,
        *,
        expected_version: int,
        note: Optional[str] = None,
    ) -> SettlementEvent:
        event = self.ledger.record_settlement(
            payee_kind, payee_id, amount, expected_version=expected_version, note=note
        )
        self._refresh()
        return event

    def settle_outstanding(
        self,
        payee_kind: PayeeKind,
        payee_id: str,
        *,
        expected_version: Optional[int] = None,
        note: Optional[str] = None,
    ) -> SettlementEvent:
        event = self.ledger.settle_outstanding(
            payee_kind, payee_id, expected_version=expected_version, note=note
        )
        self._refresh()
        return event

    def _refresh(self) -> None:
        # Pull the write through the feed right away instead of waiting a poll cycle.
        if self.feed is not None:
            self.feed.poll_once()
