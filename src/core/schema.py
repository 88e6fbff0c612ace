"""
Database schema definition for the Marketplace Reconciliation Core.

This module defines the five collections the core reads and appends to:
restaurants, delivery partners, platform settings, orders and settlement events.
"""

import sqlite3


def create_schema(conn: sqlite3.Connection) -> None:
    """
    Create all database tables with proper constraints and indexes.

    Args:
        conn: SQLite database connection.
    """
    create_restaurants_table(conn)
    create_delivery_partners_table(conn)
    create_platform_settings_table(conn)
    create_orders_table(conn)
    create_settlement_events_table(conn)

    # Create triggers for data integrity
    create_settlement_append_only_trigger(conn)

    conn.commit()


def create_restaurants_table(conn: sqlite3.Connection) -> None:
    """Create the restaurants table (rate overrides are nullable)."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS restaurants (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL DEFAULT '',
            custom_tax_rate TEXT,
            commission_rate TEXT,
            custom_delivery_fee TEXT,
            upi_id TEXT,
            updated_at_utc TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
        )
    """
    )


def create_delivery_partners_table(conn: sqlite3.Connection) -> None:
    """Create the delivery_partners table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS delivery_partners (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL DEFAULT '',
            phone TEXT,
            vehicle_type TEXT,
            is_approved BOOLEAN NOT NULL DEFAULT FALSE,
            upi_id TEXT,
            joined_at_ms INTEGER,
            updated_at_utc TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
        )
    """
    )


def create_platform_settings_table(conn: sqlite3.Connection) -> None:
    """Create the singleton platform_settings table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS platform_settings (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            tax_rate TEXT,
            platform_commission TEXT,
            delivery_base_fee TEXT,
            delivery_per_km TEXT,
            free_delivery_order_value TEXT,
            updated_at_utc TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
        )
    """
    )


def create_orders_table(conn: sqlite3.Connection) -> None:
    """
    Create the orders table.

    No foreign key to restaurants: the feed delivers collections independently
    and an order may arrive before (or outlive) its restaurant record.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS orders (
            id TEXT PRIMARY KEY,
            restaurant_id TEXT NOT NULL,
            restaurant_name TEXT,
            total_amount TEXT,
            payment_method TEXT NOT NULL DEFAULT 'CASH',
            status TEXT NOT NULL DEFAULT 'PLACED',
            created_at_ms INTEGER NOT NULL,
            delivery_partner_id TEXT,
            delivery_partner_name TEXT,
            partner_payout TEXT
        )
    """
    )

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_orders_restaurant ON orders(restaurant_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_orders_partner ON orders(delivery_partner_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_orders_created ON orders(created_at_ms)"
    )


def create_settlement_events_table(conn: sqlite3.Connection) -> None:
    """Create the append-only settlement_events (payout log) table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS settlement_events (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            timestamp_ms INTEGER NOT NULL,
            amount TEXT NOT NULL CHECK (CAST(amount AS REAL) > 0),
            restaurant_id TEXT,
            partner_id TEXT,
            status TEXT NOT NULL DEFAULT 'SUCCESS' CHECK (status IN ('SUCCESS', 'FAILED')),
            created_by TEXT NOT NULL DEFAULT 'operator',
            note TEXT,
            CHECK ((restaurant_id IS NULL) <> (partner_id IS NULL))
        )
    """
    )

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_settlements_restaurant ON settlement_events(restaurant_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_settlements_partner ON settlement_events(partner_id)"
    )


def create_settlement_append_only_trigger(conn: sqlite3.Connection) -> None:
    """Create triggers that prevent UPDATE/DELETE on settlement_events."""
    conn.execute(
        """
        CREATE TRIGGER IF NOT EXISTS prevent_settlement_update
        BEFORE UPDATE ON settlement_events
        BEGIN
            SELECT RAISE(ABORT, 'Cannot update settlement_events - append-only table');
        END
    """
    )

    conn.execute(
        """
        CREATE TRIGGER IF NOT EXISTS prevent_settlement_delete
        BEFORE DELETE ON settlement_events
        BEGIN
            SELECT RAISE(ABORT, 'Cannot delete from settlement_events - append-only table');
        END
    """
    )
