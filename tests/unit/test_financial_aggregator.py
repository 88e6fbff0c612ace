"""
Unit tests for the Aggregator.

Covers window and status filtering, cancelled-order exclusion, pre-seeded
restaurant buckets, partner buckets, additivity, idempotence and the
incremental aggregator cross-check.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from src.domain.models import (
    DeliveryPartner,
    Order,
    OrderStatus,
    PaymentMethod,
    PlatformSettings,
    Restaurant,
)
from src.services.financial_aggregator import (
    IncrementalAggregator,
    active_restaurants,
    aggregate,
    metric_value,
    metrics_frame,
    sort_metrics,
)
from src.services.order_financials import FinancialBreakdown
from src.utils.datetime_helpers import to_epoch_ms

NOW = datetime(2025, 6, 15, 14, 30)
SETTINGS = PlatformSettings(
    tax_rate=Decimal("5"),
    platform_commission=Decimal("20"),
    delivery_base_fee=Decimal("40"),
)
RESTAURANTS = {
    "r1": Restaurant(id="r1", name="Spice Route"),
    "r2": Restaurant(id="r2", name="Green Bowl", custom_delivery_fee=Decimal("0")),
    "r3": Restaurant(id="r3", name="Quiet Kitchen"),
}
PARTNERS = {"p1": DeliveryPartner(id="p1", name="Ravi")}


def make_order(
    order_id,
    restaurant_id="r1",
    amount="500",
    status=OrderStatus.DELIVERED,
    method=PaymentMethod.ONLINE,
    created=NOW - timedelta(hours=1),
    partner_id=None,
    payout=None,
):
    return Order(
        id=order_id,
        restaurant_id=restaurant_id,
        total_amount=Decimal(amount),
        payment_method=method,
        status=status.value,
        created_at_ms=to_epoch_ms(created),
        delivery_partner_id=partner_id,
        partner_payout=Decimal(payout) if payout is not None else None,
    )


def run(orders, window="allTime", statuses=None):
    return aggregate(
        orders, RESTAURANTS, SETTINGS, window, statuses, partners=PARTNERS, now=NOW
    )


@pytest.fixture
def orders():
    return [
        make_order("o1", "r1", "500", partner_id="p1", payout="45"),
        make_order("o2", "r1", "320", method=PaymentMethod.CASH, status=OrderStatus.PREPARING),
        make_order("o3", "r2", "200", method=PaymentMethod.CASH, partner_id="p1"),
        make_order("o4", "r1", "410", status=OrderStatus.CANCELLED, partner_id="p1"),
        make_order("o5", "r1", "260", created=NOW - timedelta(days=1, hours=3)),
        make_order("o6", "r2", "150", created=NOW - timedelta(days=12)),
    ]


def test_cancelled_orders_never_contribute(orders):
    result = run(orders)
    changed = [
        make_order("o4", "r1", "99999", status=OrderStatus.CANCELLED, partner_id="p1")
        if o.id == "o4"
        else o
        for o in orders
    ]

    assert run(changed) == result
    assert result.restaurant("r1").order_count == 3


def test_restaurant_buckets_preseeded_with_zero_entries(orders):
    result = run(orders)

    quiet = result.restaurant("r3")
    assert quiet is not None
    assert quiet.order_count == 0
    assert quiet.breakdown == FinancialBreakdown()
    assert [r.restaurant_id for r in active_restaurants(result.restaurants)] == ["r1", "r2"]


def test_cash_order_with_zero_delivery_fee_override():
    result = run([make_order("c1", "r2", "200", method=PaymentMethod.CASH)])

    totals = result.global_metrics
    assert totals.total_cash_revenue == Decimal("200.00")
    assert totals.total_online_revenue == Decimal("0.00")
    assert totals.total_delivery_fees == Decimal("0.00")
    assert totals.total_including_gst == totals.total_excluding_gst + totals.total_gst


def test_partner_buckets_only_for_delivered_orders_with_partner(orders):
    result = run(orders)

    assert len(result.partners) == 1
    ravi = result.partner("p1")
    assert ravi.name == "Ravi"
    assert ravi.deliveries_count == 2
    # o1 stored payout 45, o3 falls back to r2's delivery fee of 0
    assert ravi.total_fees == Decimal("45.00")


def test_global_partner_payouts_include_delivered_orders_without_partner(orders):
    result = run(orders)

    # o1 (45), o3 (fallback 0), o5 (fallback 40), o6 (fallback 0); o2 not delivered
    assert result.global_metrics.total_partner_payouts == Decimal("85.00")
    assert result.global_metrics.estimated_partner_payouts == Decimal("40.00")


def test_today_window(orders):
    result = run(orders, "today")

    assert sorted(r.restaurant_id for r in active_restaurants(result.restaurants)) == ["r1", "r2"]
    assert result.restaurant("r1").order_count == 2
    assert result.global_metrics.total_including_gst == Decimal("1020.00")


def test_yesterday_window_is_half_open(orders):
    midnight = datetime(2025, 6, 15)
    boundary_orders = orders + [
        make_order("edge-start", "r3", "100", created=midnight - timedelta(days=1)),
        make_order("edge-end", "r3", "100", created=midnight),
    ]

    result = run(boundary_orders, "yesterday")

    assert result.restaurant("r1").order_count == 1  # o5
    assert result.restaurant("r3").order_count == 1  # edge-start only
    assert result.start_ms == to_epoch_ms(midnight - timedelta(days=1))
    assert result.end_ms == to_epoch_ms(midnight)


def test_rolling_windows(orders):
    assert run(orders, "last7days").global_metrics.total_including_gst == Decimal("1280.00")
    assert run(orders, "last30days").global_metrics.total_including_gst == Decimal("1430.00")
    assert run(orders, "7days") == run(orders, "last7days")


def test_unknown_window_rejected(orders):
    with pytest.raises(ValueError):
        run(orders, "fortnight")


def test_status_filter(orders):
    result = run(orders, statuses=[OrderStatus.PREPARING])

    assert result.global_metrics.total_including_gst == Decimal("320.00")
    assert result.partners == []


def test_status_filter_never_readmits_cancelled(orders):
    result = run(orders, statuses=["CANCELLED", "DELIVERED"])

    assert result.restaurant("r1").order_count == 2  # o1, o5


def test_aggregation_is_additive(orders):
    part_a, part_b = orders[:3], orders[3:]
    whole = run(orders)
    a = run(part_a)
    b = run(part_b)

    assert whole.global_metrics == a.global_metrics + b.global_metrics
    for restaurant_id in RESTAURANTS:
        assert whole.restaurant(restaurant_id).breakdown == (
            a.restaurant(restaurant_id).breakdown + b.restaurant(restaurant_id).breakdown
        )
        assert whole.restaurant(restaurant_id).order_count == (
            a.restaurant(restaurant_id).order_count + b.restaurant(restaurant_id).order_count
        )


def test_aggregate_is_idempotent(orders):
    first = run(orders)
    second = run(list(reversed(orders)))

    assert first == second
    assert repr(first) == repr(second)


def test_unknown_restaurant_gets_named_bucket():
    order = Order(
        id="x1",
        restaurant_id="ghost",
        restaurant_name="Closed Diner",
        total_amount=Decimal("300"),
        payment_method=PaymentMethod.CASH,
        status=OrderStatus.PLACED.value,
        created_at_ms=to_epoch_ms(NOW),
    )

    result = run([order])

    ghost = result.restaurant("ghost")
    assert ghost.name == "Closed Diner"
    assert ghost.order_count == 1


def test_sort_and_frame_helpers(orders):
    result = run(orders)

    by_gross = sort_metrics(result.restaurants, "total_including_gst")
    assert [r.restaurant_id for r in by_gross] == ["r1", "r2", "r3"]

    ascending = sort_metrics(result.restaurants, "order_count", descending=False)
    assert ascending[0].restaurant_id == "r3"

    frame = metrics_frame(result.restaurants)
    assert list(frame["restaurant_id"]) == ["r1", "r2", "r3"]
    assert "total_commission" in frame.columns


def test_incremental_matches_full_recompute(orders):
    incremental = IncrementalAggregator(
        RESTAURANTS, SETTINGS, "allTime", partners=PARTNERS, now=NOW
    )
    incremental.extend(orders)

    assert incremental.result() == run(orders)


def test_incremental_status_transition(orders):
    incremental = IncrementalAggregator(
        RESTAURANTS, SETTINGS, "last7days", partners=PARTNERS, now=NOW
    )
    incremental.extend(orders)

    delivered = make_order("o2", "r1", "320", method=PaymentMethod.CASH, partner_id="p1", payout="35")
    incremental.apply(delivered)
    cancelled = make_order("o3", "r2", "200", status=OrderStatus.CANCELLED, partner_id="p1")
    incremental.apply(cancelled)

    updated = [delivered if o.id == "o2" else cancelled if o.id == "o3" else o for o in orders]
    assert incremental.result() == run(updated, "last7days")


def test_incremental_remove_drops_empty_buckets():
    incremental = IncrementalAggregator(RESTAURANTS, SETTINGS, partners=PARTNERS, now=NOW)
    order = make_order("solo", "ghost", "100", partner_id="p1")
    incremental.apply(order)
    incremental.remove("solo")

    result = incremental.result()
    assert result.restaurant("ghost") is None
    assert result.partners == []
    assert result.global_metrics == FinancialBreakdown()
    assert len(incremental) == 0


def test_oversized_order_amount_does_not_break_aggregation(orders):
    oversized = make_order("huge", "r1", "1e30", status=OrderStatus.PREPARING)

    result = run(orders + [oversized])

    assert result.restaurant("r1").order_count == 4
    assert result.global_metrics.total_including_gst == run(orders).global_metrics.total_including_gst


def test_sort_by_breakdown_field_and_unknown_field(orders):
    result = run(orders)

    by_commission = sort_metrics(result.restaurants, "total_commission")
    assert [r.restaurant_id for r in by_commission] == ["r1", "r2", "r3"]
    assert metric_value(result.restaurant("r1"), "total_commission") == (
        result.restaurant("r1").breakdown.total_commission
    )
    assert not hasattr(result.restaurant("r1"), "total_commission")

    with pytest.raises(AttributeError):
        sort_metrics(result.restaurants, "no_such_field")
    with pytest.raises(AttributeError):
        sort_metrics(result.partners, "total_commission")
