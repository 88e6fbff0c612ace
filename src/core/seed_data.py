"""
Seed data insertion for the Marketplace Reconciliation Core.

This module inserts a small demo data set for local development: platform
defaults, two restaurants (one with overrides), two delivery partners and a
handful of orders spread over the last few days.
"""

import sqlite3
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List

from src.domain.models import (
    DeliveryPartner,
    Order,
    OrderStatus,
    PaymentMethod,
    PlatformSettings,
    Restaurant,
)
from src.repositories.feed_repository import FeedRepository
from src.utils.datetime_helpers import to_epoch_ms
from src.utils.logging_config import get_logger

logger = get_logger(__name__)


def insert_seed_data(conn: sqlite3.Connection) -> None:
    """
    Insert all seed data into the database.

    Args:
        conn: SQLite database connection.
    """
    repo = FeedRepository(conn)

    repo.save_settings(
        PlatformSettings(
            tax_rate=Decimal("5"),
            platform_commission=Decimal("20"),
            delivery_base_fee=Decimal("40"),
            delivery_per_km=Decimal("10"),
        )
    )
    for restaurant in seed_restaurants():
        repo.upsert_restaurant(restaurant)
    for partner in seed_partners():
        repo.upsert_partner(partner)
    for order in seed_orders():
        repo.upsert_order(order)

    logger.info("seed_data_inserted")


def seed_restaurants() -> List[Restaurant]:
    return [
        Restaurant(id="rest-spice", name="Spice Route"),
        Restaurant(
            id="rest-green",
            name="Green Bowl",
            custom_tax_rate=Decimal("12"),
            commission_rate=Decimal("15"),
            custom_delivery_fee=Decimal("0"),
        ),
    ]


def seed_partners() -> List[DeliveryPartner]:
    return [
        DeliveryPartner(id="dp-ravi", name="Ravi", vehicle_type="Bike", is_approved=True),
        DeliveryPartner(id="dp-meera", name="Meera", vehicle_type="Scooter", is_approved=True),
    ]


def seed_orders() -> List[Order]:
    now = datetime.now()
    specs = [
        ("ord-1001", "rest-spice", "500", PaymentMethod.ONLINE, OrderStatus.DELIVERED, 0, "dp-ravi", "45"),
        ("ord-1002", "rest-spice", "320", PaymentMethod.CASH, OrderStatus.DELIVERED, 1, "dp-meera", None),
        ("ord-1003", "rest-green", "200", PaymentMethod.CASH, OrderStatus.DELIVERED, 2, "dp-ravi", "30"),
        ("ord-1004", "rest-green", "640", PaymentMethod.ONLINE, OrderStatus.PREPARING, 0, None, None),
        ("ord-1005", "rest-spice", "410", PaymentMethod.ONLINE, OrderStatus.CANCELLED, 3, None, None),
    ]
    restaurant_names = {r.id: r.name for r in seed_restaurants()}
    partner_names = {p.id: p.name for p in seed_partners()}

    return [
        Order(
            id=order_id,
            restaurant_id=restaurant_id,
            restaurant_name=restaurant_names[restaurant_id],
            total_amount=Decimal(amount),
            payment_method=method,
            status=status.value,
            created_at_ms=to_epoch_ms(now - timedelta(days=days_ago)),
            delivery_partner_id=partner_id,
            delivery_partner_name=partner_names.get(partner_id) if partner_id else None,
            partner_payout=Decimal(payout) if payout is not None else None,
        )
        for order_id, restaurant_id, amount, method, status, days_ago, partner_id, payout in specs
    ]
