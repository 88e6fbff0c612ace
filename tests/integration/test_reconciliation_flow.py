"""
Integration tests for the complete reconciliation workflow.

Seeds a file-backed store, drives the ReconciliationService from a change feed
and checks windowed totals, lifetime balances and settlement round trips.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from src.core.database import get_db_connection, initialize_database
from src.domain.models import Order, OrderStatus, PayeeKind, PaymentMethod
from src.integrations.change_feed import ChangeFeedAdapter
from src.jobs.outstanding_balances_report import build_report
from src.repositories.feed_repository import FeedRepository
from src.services.ledger_service import LedgerService, StaleBalanceError
from src.services.reconciliation_service import ReconciliationService
from src.utils.datetime_helpers import now_ms


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "reconciliation.db")
    initialize_database(path).close()
    return path


@pytest.fixture
def seeded_db(db_path):
    conn = get_db_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def recon(seeded_db, db_path):
    feed_conn = get_db_connection(db_path)
    feed = ChangeFeedAdapter(FeedRepository(feed_conn))
    service = ReconciliationService(LedgerService(seeded_db), feed)
    feed.poll_once()
    yield service
    service.close()
    feed_conn.close()


def test_windowed_totals_from_seed(recon):
    result = recon.aggregate("allTime")
    totals = result.global_metrics

    assert totals.total_including_gst == Decimal("1660.00")
    assert totals.total_including_gst == (
        totals.total_excluding_gst + totals.total_gst + totals.total_delivery_fees
    )
    assert totals.total_online_revenue + totals.total_cash_revenue == totals.total_including_gst
    assert result.restaurant("rest-spice").order_count == 2
    assert result.restaurant("rest-green").order_count == 2
    assert {p.partner_id for p in result.partners} == {"dp-meera", "dp-ravi"}


def test_lifetime_balances_from_seed(recon):
    assert recon.lifetime_earnings(PayeeKind.RESTAURANT, "rest-spice") == Decimal("563.82")
    assert recon.lifetime_earnings(PayeeKind.RESTAURANT, "rest-green") == Decimal("637.50")
    assert recon.lifetime_earnings(PayeeKind.DELIVERY_PARTNER, "dp-ravi") == Decimal("75.00")
    assert recon.lifetime_earnings(PayeeKind.DELIVERY_PARTNER, "dp-meera") == Decimal("40.00")

    balances = recon.balances(PayeeKind.RESTAURANT)
    assert list(balances) == ["rest-green", "rest-spice"]


def test_settlement_flows_back_through_feed(recon):
    before = recon.balance(PayeeKind.RESTAURANT, "rest-spice")

    recon.record_settlement(
        PayeeKind.RESTAURANT,
        "rest-spice",
        "200",
        expected_version=before.version,
    )

    after = recon.balance(PayeeKind.RESTAURANT, "rest-spice")
    assert after.total_settled == Decimal("200.00")
    assert after.outstanding == Decimal("363.82")
    assert after.version == before.version + 1

    with pytest.raises(StaleBalanceError):
        recon.record_settlement(
            PayeeKind.RESTAURANT, "rest-spice", "100", expected_version=before.version
        )

    event = recon.settle_outstanding(PayeeKind.RESTAURANT, "rest-spice")
    assert event.amount == Decimal("363.82")
    assert recon.outstanding(PayeeKind.RESTAURANT, "rest-spice") == Decimal("0.00")


def test_order_changes_reach_ledger_and_aggregates(recon, seeded_db):
    repo = FeedRepository(seeded_db)
    repo.upsert_order(
        Order(
            id="ord-2001",
            restaurant_id="rest-spice",
            total_amount=Decimal("500"),
            payment_method=PaymentMethod.ONLINE,
            status=OrderStatus.DELIVERED.value,
            created_at_ms=now_ms(),
            delivery_partner_id="dp-meera",
        )
    )
    recon.feed.poll_once()

    assert recon.lifetime_earnings(PayeeKind.RESTAURANT, "rest-spice") == Decimal("914.30")
    assert recon.lifetime_earnings(PayeeKind.DELIVERY_PARTNER, "dp-meera") == Decimal("80.00")

    cancelled = recon.snapshot.orders["ord-1002"]
    repo.upsert_order(
        Order(
            id=cancelled.id,
            restaurant_id=cancelled.restaurant_id,
            total_amount=cancelled.total_amount,
            payment_method=cancelled.payment_method,
            status=OrderStatus.CANCELLED.value,
            created_at_ms=cancelled.created_at_ms,
            delivery_partner_id=cancelled.delivery_partner_id,
        )
    )
    recon.feed.poll_once()

    assert recon.lifetime_earnings(PayeeKind.RESTAURANT, "rest-spice") == Decimal("700.96")
    assert recon.lifetime_earnings(PayeeKind.DELIVERY_PARTNER, "dp-meera") == Decimal("40.00")
    assert recon.aggregate("allTime").restaurant("rest-spice").order_count == 2


def test_outstanding_balances_report(seeded_db):
    LedgerService(seeded_db).record_settlement(
        PayeeKind.DELIVERY_PARTNER, "dp-ravi", "75", expected_version=0
    )

    report = build_report(FeedRepository(seeded_db))

    partners = {b.payee_id: b for b in report[PayeeKind.DELIVERY_PARTNER.value]}
    assert partners["dp-ravi"].outstanding == Decimal("0.00")
    assert partners["dp-meera"].outstanding == Decimal("40.00")
    assert len(report[PayeeKind.RESTAURANT.value]) == 2


def test_feed_sharing_the_ledger_connection_rejected(seeded_db):
    feed = ChangeFeedAdapter(FeedRepository(seeded_db))

    with pytest.raises(ValueError):
        ReconciliationService(LedgerService(seeded_db), feed)
