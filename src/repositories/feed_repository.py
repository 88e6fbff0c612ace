"""
Repository layer for the read-only feed collections.

Loads orders, restaurants, delivery partners, platform settings and
settlement events into a single FeedSnapshot, and provides the UPSERT
helpers the feed ingestion and dev seeding use to keep the store current.
"""

from __future__ import annotations

import sqlite3
from decimal import Decimal
from typing import Dict, Optional, Tuple

from src.core.database import get_db_connection
from src.domain.models import (
    DeliveryPartner,
    FeedSnapshot,
    Order,
    PlatformSettings,
    Restaurant,
    SettlementEvent,
)


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


class FeedRepository:
    """Data access helpers for the collections supplied by the change feed."""

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

    # --------------------------------------------------------------------- #
    # Read helpers
    # --------------------------------------------------------------------- #

    def load_orders(self) -> Dict[str, Order]:
        rows = self.db.execute("SELECT * FROM orders ORDER BY created_at_ms, id").fetchall()
        return {row["id"]: Order.from_record(dict(row)) for row in rows}

    def load_restaurants(self) -> Dict[str, Restaurant]:
        rows = self.db.execute("SELECT * FROM restaurants ORDER BY id").fetchall()
        return {row["id"]: Restaurant.from_record(dict(row)) for row in rows}

    def load_partners(self) -> Dict[str, DeliveryPartner]:
        rows = self.db.execute("SELECT * FROM delivery_partners ORDER BY id").fetchall()
        return {row["id"]: DeliveryPartner.from_record(dict(row)) for row in rows}

    def load_settings(self) -> PlatformSettings:
        row = self.db.execute("SELECT * FROM platform_settings WHERE id = 1").fetchone()
        return PlatformSettings.from_record(dict(row) if row else None)

    def load_settlement_events(self) -> Dict[str, SettlementEvent]:
        rows = self.db.execute("SELECT * FROM settlement_events ORDER BY seq").fetchall()
        return {row["id"]: SettlementEvent.from_record(dict(row)) for row in rows}

    def load_snapshot(self) -> FeedSnapshot:
        """
        Read every collection as one snapshot.

        Reads run inside a single read transaction when the connection is idle,
        so the snapshot reflects one committed state of the store.
        The connection must not be shared with writers on other threads.
        """
        own_txn = not self.db.in_transaction
        if own_txn:
            self.db.execute("BEGIN")
        try:
            return FeedSnapshot(
                orders=self.load_orders(),
                restaurants=self.load_restaurants(),
                partners=self.load_partners(),
                settings=self.load_settings(),
                settlement_events=self.load_settlement_events(),
            )
        finally:
            if own_txn:
                self.db.commit()

    def change_token(self) -> Tuple[int, int]:
        """
        Opaque token that changes whenever the store changes.

        ``data_version`` moves on commits from other connections;
        ``total_changes`` covers writes made through this connection.
        """
        data_version = self.db.execute("PRAGMA data_version").fetchone()[0]
        return int(data_version), int(self.db.total_changes)

    # --------------------------------------------------------------------- #
    # Write helpers
    # --------------------------------------------------------------------- #

    def upsert_restaurant(self, restaurant: Restaurant) -> None:
        self.db.execute(
            """
            INSERT INTO restaurants (
                id, name, custom_tax_rate, commission_rate, custom_delivery_fee, upi_id
            )
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                custom_tax_rate = excluded.custom_tax_rate,
                commission_rate = excluded.commission_rate,
                custom_delivery_fee = excluded.custom_delivery_fee,
                upi_id = excluded.upi_id,
                updated_at_utc = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
            """,
            (
                restaurant.id,
                restaurant.name,
                _money(restaurant.custom_tax_rate),
                _money(restaurant.commission_rate),
                _money(restaurant.custom_delivery_fee),
                restaurant.upi_id,
            ),
        )
        self.db.commit()

    def upsert_partner(self, partner: DeliveryPartner) -> None:
        self.db.execute(
            """
            INSERT INTO delivery_partners (id, name, phone, vehicle_type, is_approved, upi_id)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                phone = excluded.phone,
                vehicle_type = excluded.vehicle_type,
                is_approved = excluded.is_approved,
                upi_id = excluded.upi_id,
                updated_at_utc = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
            """,
            (
                partner.id,
                partner.name,
                partner.phone,
                partner.vehicle_type,
                partner.is_approved,
                partner.upi_id,
            ),
        )
        self.db.commit()

    def save_settings(self, settings: PlatformSettings) -> None:
        self.db.execute(
            """
            INSERT INTO platform_settings (
                id, tax_rate, platform_commission, delivery_base_fee,
                delivery_per_km, free_delivery_order_value
            )
            VALUES (1, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                tax_rate = excluded.tax_rate,
                platform_commission = excluded.platform_commission,
                delivery_base_fee = excluded.delivery_base_fee,
                delivery_per_km = excluded.delivery_per_km,
                free_delivery_order_value = excluded.free_delivery_order_value,
                updated_at_utc = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
            """,
            (
                _money(settings.tax_rate),
                _money(settings.platform_commission),
                _money(settings.delivery_base_fee),
                _money(settings.delivery_per_km),
                _money(settings.free_delivery_order_value),
            ),
        )
        self.db.commit()

    def upsert_order(self, order: Order) -> None:
        self.db.execute(
            """
            INSERT INTO orders (
                id, restaurant_id, restaurant_name, total_amount, payment_method,
                status, created_at_ms, delivery_partner_id, delivery_partner_name,
                partner_payout
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                restaurant_id = excluded.restaurant_id,
                restaurant_name = excluded.restaurant_name,
                total_amount = excluded.total_amount,
                payment_method = excluded.payment_method,
                status = excluded.status,
                created_at_ms = excluded.created_at_ms,
                delivery_partner_id = excluded.delivery_partner_id,
                delivery_partner_name = excluded.delivery_partner_name,
                partner_payout = excluded.partner_payout
            """,
            (
                order.id,
                order.restaurant_id,
                order.restaurant_name,
                _money(order.total_amount),
                order.payment_method.value,
                getattr(order.status, "value", order.status),
                order.created_at_ms,
                order.delivery_partner_id,
                order.delivery_partner_name,
                _money(order.partner_payout),
            ),
        )
        self.db.commit()
