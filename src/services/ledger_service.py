"""
Ledger Service - lifetime earnings, settled totals and outstanding balances
per payee, plus transaction-protected settlement recording.

This service handles:
- Lifetime earnings over the full order history (no reporting window)
- Total settled from SUCCESS settlement events only
- Outstanding = lifetime earnings - total settled (never clamped)
- Atomic read-then-append settlement with an optimistic version check
"""

from __future__ import annotations

import sqlite3
import threading
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Tuple

from src.core.config import Config
from src.core.database import get_db_connection
from src.domain.models import (
    FeedSnapshot,
    Order,
    PayeeKind,
    SettlementEvent,
    SettlementStatus,
)
from src.repositories.feed_repository import FeedRepository
from src.repositories.settlement_event_repository import SettlementEventRepository
from src.services import rate_resolver
from src.services.order_financials import compute
from src.utils.database_utils import TransactionError, transactional
from src.utils.datetime_helpers import now_ms
from src.utils.logging_config import get_logger
from src.utils.money import ZERO, parse_decimal, to_currency

logger = get_logger(__name__)


class SettlementError(Exception):
    """Base class for failed settlement attempts."""

    pass


class InvalidSettlementAmountError(SettlementError, ValueError):
    """Raised when the settlement amount is missing or not positive."""

    pass


class StaleBalanceError(SettlementError):
    """Raised when the payee's ledger moved since the caller read its balance."""

    def __init__(self, payee_kind: PayeeKind, payee_id: str, expected: int, actual: int):
        super().__init__(
            f"Stale balance for {payee_kind.value} {payee_id}: read at version "
            f"{expected}, ledger is at version {actual}; re-read the balance and retry"
        )
        self.payee_kind = payee_kind
        self.payee_id = payee_id
        self.expected_version = expected
        self.actual_version = actual


class SettlementWriteError(SettlementError):
    """Raised when the settlement event could not be persisted."""

    pass


@dataclass(frozen=True)
class LedgerBalance:
    """
    Lifetime ledger statement for one payee.

    Attributes:
        lifetime_earnings: Everything ever owed to the payee
        total_settled: Sum of SUCCESS settlement events
        outstanding: lifetime_earnings - total_settled (may be negative)
        eligible_order_count: Orders counted (deliveries, for partners)
        version: Number of settlement events recorded for the payee; pass it
            back as ``expected_version`` to settle against this statement
        settlements: The payee's settlement events, newest first
    """

    payee_kind: PayeeKind
    payee_id: str
    lifetime_earnings: Decimal
    total_settled: Decimal
    outstanding: Decimal
    eligible_order_count: int
    version: int
    settlements: Tuple[SettlementEvent, ...] = ()


def _targets(event: SettlementEvent, payee_kind: PayeeKind, payee_id: str) -> bool:
    if payee_kind == PayeeKind.RESTAURANT:
        return event.restaurant_id == payee_id
    return event.partner_id == payee_id


def eligible_orders(
    orders: Iterable[Order], payee_kind: PayeeKind, payee_id: str
) -> List[Order]:
    """
    Orders that count toward a payee's lifetime earnings.

    Restaurants earn on every non-cancelled order they own; delivery partners
    earn on DELIVERED orders assigned to them.
    """
    if payee_kind == PayeeKind.RESTAURANT:
        return [o for o in orders if o.restaurant_id == payee_id and not o.is_cancelled]
    return [o for o in orders if o.delivery_partner_id == payee_id and o.is_delivered]


def lifetime_earnings(snapshot: FeedSnapshot, payee_kind: PayeeKind, payee_id: str) -> Decimal:
    """Total owed to the payee across the full order history."""
    total = ZERO
    for order in eligible_orders(snapshot.orders.values(), payee_kind, payee_id):
        rates = rate_resolver.resolve(
            order, snapshot.restaurants.get(order.restaurant_id), snapshot.settings
        )
        breakdown = compute(order, rates)
        if payee_kind == PayeeKind.RESTAURANT:
            total += breakdown.total_restaurant_payable
        else:
            total += breakdown.total_partner_payouts
    return total


def total_settled(
    events: Iterable[SettlementEvent], payee_kind: PayeeKind, payee_id: str
) -> Decimal:
    """Sum of SUCCESS settlement events targeting the payee."""
    return sum(
        (e.amount for e in events if e.is_success and _targets(e, payee_kind, payee_id)),
        ZERO,
    )


def compute_balance(snapshot: FeedSnapshot, payee_kind: PayeeKind, payee_id: str) -> LedgerBalance:
    """Build the full ledger statement for a payee from one snapshot."""
    payee_kind = PayeeKind(payee_kind)
    events = [
        e for e in snapshot.settlement_events.values() if _targets(e, payee_kind, payee_id)
    ]
    earned = lifetime_earnings(snapshot, payee_kind, payee_id)
    settled = total_settled(events, payee_kind, payee_id)
    history = sorted(events, key=lambda e: (e.timestamp_ms, e.id), reverse=True)

    return LedgerBalance(
        payee_kind=payee_kind,
        payee_id=payee_id,
        lifetime_earnings=earned,
        total_settled=settled,
        outstanding=earned - settled,
        eligible_order_count=len(
            eligible_orders(snapshot.orders.values(), payee_kind, payee_id)
        ),
        version=len(events),
        settlements=tuple(history),
    )


def outstanding_balances(
    snapshot: FeedSnapshot, payee_kind: PayeeKind
) -> Mapping[str, LedgerBalance]:
    """Ledger statements for every known payee of one kind."""
    payee_kind = PayeeKind(payee_kind)
    ids = snapshot.restaurants if payee_kind == PayeeKind.RESTAURANT else snapshot.partners
    return {payee_id: compute_balance(snapshot, payee_kind, payee_id) for payee_id in sorted(ids)}


class LedgerService:
    """
    Reads payee balances from the store and appends settlement events.

    All writes through one service instance are serialized by a lock, and each
    settlement runs in a ``BEGIN IMMEDIATE`` transaction so writers on other
    connections or processes are serialized by SQLite as well.
    """

    def __init__(
        self, db: sqlite3.Connection | None = None, *, created_by: Optional[str] = None
    ) -> None:
        self._owns_connection = db is None
        self.db = db or get_db_connection()
        self.created_by = created_by or Config.SETTLEMENT_CREATED_BY
        self.feed = FeedRepository(self.db)
        self.events = SettlementEventRepository(self.db)
        self._write_lock = threading.RLock()

    def close(self) -> None:
        """Close the managed database connection if owned by the service."""
        if not self._owns_connection:
            return
        try:
            self.db.close()
        except Exception:  # pragma: no cover
            pass

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_balance(self, payee_kind: PayeeKind, payee_id: str) -> LedgerBalance:
        with self._write_lock:
            snapshot = self.feed.load_snapshot()
        return compute_balance(snapshot, payee_kind, payee_id)

    def lifetime_earnings(self, payee_kind: PayeeKind, payee_id: str) -> Decimal:
        return self.get_balance(payee_kind, payee_id).lifetime_earnings

    def total_settled(self, payee_kind: PayeeKind, payee_id: str) -> Decimal:
        return self.get_balance(payee_kind, payee_id).total_settled

    def outstanding(self, payee_kind: PayeeKind, payee_id: str) -> Decimal:
        return self.get_balance(payee_kind, payee_id).outstanding

    # ------------------------------------------------------------------ #
    # Writes
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
        """
        Append a SUCCESS settlement event for the payee.

        Args:
            payee_kind: RESTAURANT or DELIVERY_PARTNER
            payee_id: Target identifier
            amount: Positive amount; partial and over-settlement are allowed
            expected_version: ``LedgerBalance.version`` the caller based the
                amount on. The append only happens if no settlement was
                recorded for the payee since that read.
            note: Optional free-text note

        Returns:
            The persisted SettlementEvent.

        Raises:
            InvalidSettlementAmountError: amount missing or not positive
            ValueError: expected_version not supplied
            StaleBalanceError: the payee's ledger moved since expected_version
            SettlementWriteError: the store rejected the write
        """
        payee_kind = PayeeKind(payee_kind)
        if expected_version is None:
            raise ValueError("expected_version is required; read it from get_balance()")
        settle_amount = self._validate_amount(payee_kind, payee_id, amount)

        with self._write_lock:
            try:
                with transactional(self.db, immediate=True):
                    self._check_version(payee_kind, payee_id, expected_version)
                    event = self._append(payee_kind, payee_id, settle_amount, note)
            except TransactionError as exc:
                logger.error(
                    "settlement_write_failed",
                    payee_kind=payee_kind.value,
                    payee_id=payee_id,
                    amount=str(settle_amount),
                    error=str(exc.__cause__ or exc),
                )
                raise SettlementWriteError("Failed to record settlement.") from exc

        logger.info(
            "settlement_recorded",
            payee_kind=payee_kind.value,
            payee_id=payee_id,
            settlement_id=event.id,
            amount=str(event.amount),
        )
        return event

    def settle_outstanding(
        self,
        payee_kind: PayeeKind,
        payee_id: str,
        *,
        expected_version: Optional[int] = None,
        note: Optional[str] = None,
    ) -> SettlementEvent:
        """
        Settle the payee's full outstanding balance in one atomic step.

        The balance is computed inside the same write transaction that appends
        the event, so concurrent callers cannot both pay the same balance.

        Raises:
            InvalidSettlementAmountError: nothing is outstanding
            StaleBalanceError: the payee's ledger moved since expected_version
            SettlementWriteError: the store rejected the write
        """
        payee_kind = PayeeKind(payee_kind)

        with self._write_lock:
            try:
                with transactional(self.db, immediate=True):
                    self._check_version(payee_kind, payee_id, expected_version)
                    balance = compute_balance(self.feed.load_snapshot(), payee_kind, payee_id)
                    settle_amount = self._validate_amount(
                        payee_kind, payee_id, balance.outstanding
                    )
                    event = self._append(payee_kind, payee_id, settle_amount, note)
            except TransactionError as exc:
                logger.error(
                    "settlement_write_failed",
                    payee_kind=payee_kind.value,
                    payee_id=payee_id,
                    error=str(exc.__cause__ or exc),
                )
                raise SettlementWriteError("Failed to record settlement.") from exc

        logger.info(
            "outstanding_settled",
            payee_kind=payee_kind.value,
            payee_id=payee_id,
            settlement_id=event.id,
            amount=str(event.amount),
        )
        return event

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_amount(payee_kind: PayeeKind, payee_id: str, amount: object) -> Decimal:
        parsed = parse_decimal(amount)
        settle_amount = to_currency(parsed)
        if settle_amount is None or settle_amount <= ZERO:
            logger.warning(
                "settlement_rejected",
                payee_kind=payee_kind.value,
                payee_id=payee_id,
                amount=str(amount),
                reason="non_positive_amount",
            )
            raise InvalidSettlementAmountError(
                f"Settlement amount must be positive, got {amount!r}"
            )
        return settle_amount

    def _check_version(
        self, payee_kind: PayeeKind, payee_id: str, expected_version: Optional[int]
    ) -> None:
        if expected_version is None:
            return
        actual = self.events.count_for_payee(payee_kind, payee_id)
        if actual != expected_version:
            logger.warning(
                "settlement_stale_balance",
                payee_kind=payee_kind.value,
                payee_id=payee_id,
                expected_version=expected_version,
                actual_version=actual,
            )
            raise StaleBalanceError(payee_kind, payee_id, expected_version, actual)

    def _append(
        self,
        payee_kind: PayeeKind,
        payee_id: str,
        amount: Decimal,
        note: Optional[str],
    ) -> SettlementEvent:
        event = SettlementEvent(
            id=str(uuid.uuid4()),
            timestamp_ms=now_ms(),
            amount=amount,
            restaurant_id=payee_id if payee_kind == PayeeKind.RESTAURANT else None,
            partner_id=payee_id if payee_kind == PayeeKind.DELIVERY_PARTNER else None,
            status=SettlementStatus.SUCCESS,
            created_by=self.created_by,
            note=note,
        )
        self.events.append(event, commit=False)
        return event
