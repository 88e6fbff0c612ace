"""
Repository layer for the append-only settlement_events (payout log) table.

Rows are only ever inserted; UPDATE and DELETE are rejected by triggers.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional

from src.core.database import get_db_connection
from src.domain.models import PayeeKind, SettlementEvent, SettlementStatus


def _target_column(payee_kind: PayeeKind) -> str:
    # Column names are fixed here; caller strings are never interpolated.
    if payee_kind == PayeeKind.RESTAURANT:
        return "restaurant_id"
    if payee_kind == PayeeKind.DELIVERY_PARTNER:
        return "partner_id"
    raise ValueError(f"Unknown payee kind: {payee_kind!r}")


class SettlementEventRepository:
    """Data access helpers for settlement events."""

    def __init__(self, db: sqlite3.Connection | None = None) -> None:
        self._owns_connection = db is None
        self.db = db or get_db_connection()

    def close(self) -> None:
        """Close the managed database connection if owned by the repository."""
        if not self._owns_connection:
            return
        try:
            self.db.close()
        except Exception:  # pragma: no cover
            pass

    def append(self, event: SettlementEvent, *, commit: bool = True) -> None:
        """
        Insert one settlement event.

        Args:
            event: Event to persist
            commit: Commit immediately; pass False when the caller owns the transaction.
        """
        self.db.execute(
            """
            INSERT INTO settlement_events (
                id, timestamp_ms, amount, restaurant_id, partner_id, status, created_by, note
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.timestamp_ms,
                str(event.amount),
                event.restaurant_id,
                event.partner_id,
                event.status.value,
                event.created_by or "operator",
                event.note,
            ),
        )
        if commit:
            self.db.commit()

    def list_for_payee(self, payee_kind: PayeeKind, payee_id: str) -> List[SettlementEvent]:
        """Return every event for the payee, oldest first."""
        column = _target_column(payee_kind)
        rows = self.db.execute(
            f"SELECT * FROM settlement_events WHERE {column} = ? ORDER BY seq",
            (payee_id,),
        ).fetchall()
        return [SettlementEvent.from_record(dict(row)) for row in rows]

    def count_for_payee(self, payee_kind: PayeeKind, payee_id: str) -> int:
        """Number of events (any status) recorded for the payee."""
        column = _target_column(payee_kind)
        row = self.db.execute(
            f"SELECT COUNT(*) FROM settlement_events WHERE {column} = ?",
            (payee_id,),
        ).fetchone()
        return int(row[0])

    def get(self, event_id: str) -> Optional[SettlementEvent]:
        row = self.db.execute(
            "SELECT * FROM settlement_events WHERE id = ?", (event_id,)
        ).fetchone()
        return SettlementEvent.from_record(dict(row)) if row else None

    def list_all(self, status: Optional[SettlementStatus] = None) -> List[SettlementEvent]:
        if status is None:
            rows = self.db.execute("SELECT * FROM settlement_events ORDER BY seq").fetchall()
        else:
            rows = self.db.execute(
                "SELECT * FROM settlement_events WHERE status = ? ORDER BY seq",
                (status.value,),
            ).fetchall()
        return [SettlementEvent.from_record(dict(row)) for row in rows]
