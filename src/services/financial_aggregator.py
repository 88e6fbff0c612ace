"""
Aggregator - fold per-order breakdowns into windowed global, per-restaurant
and per-delivery-partner metrics.

This module handles:
- Window and status filtering (CANCELLED orders are always excluded)
- Global totals across every included order
- Per-restaurant buckets, pre-seeded for every known restaurant
- Per-partner buckets for DELIVERED orders with an assigned partner
- Incremental maintenance of the same views for single-order changes
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from typing import (
    Any,
    Collection,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import pandas as pd

from src.domain.models import DeliveryPartner, Order, OrderStatus, PlatformSettings, Restaurant
from src.services import rate_resolver
from src.services.order_financials import FinancialBreakdown, compute
from src.utils.datetime_helpers import in_window, normalize_window, window_bounds
from src.utils.logging_config import get_logger
from src.utils.money import ZERO

logger = get_logger(__name__)

UNKNOWN_RESTAURANT_NAME = "Unknown"

RestaurantsArg = Union[Mapping[str, Restaurant], Iterable[Restaurant]]
PartnersArg = Union[Mapping[str, DeliveryPartner], Iterable[DeliveryPartner], None]


@dataclass(frozen=True)
class RestaurantMetrics:
    """Windowed totals for one restaurant."""

    restaurant_id: str
    name: str
    order_count: int
    breakdown: FinancialBreakdown


@dataclass(frozen=True)
class PartnerMetrics:
    """Windowed delivery totals for one delivery partner."""

    partner_id: str
    name: str
    deliveries_count: int
    total_fees: Decimal
    estimated_fees: Decimal = ZERO


@dataclass(frozen=True)
class AggregateResult:
    """Output of one aggregation pass."""

    global_metrics: FinancialBreakdown
    restaurants: List[RestaurantMetrics]
    partners: List[PartnerMetrics]
    window: str = "allTime"
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None

    def restaurant(self, restaurant_id: str) -> Optional[RestaurantMetrics]:
        return next((r for r in self.restaurants if r.restaurant_id == restaurant_id), None)

    def partner(self, partner_id: str) -> Optional[PartnerMetrics]:
        return next((p for p in self.partners if p.partner_id == partner_id), None)


@dataclass
class _RestaurantBucket:
    name: str
    seeded: bool
    order_count: int = 0
    breakdown: FinancialBreakdown = field(default_factory=FinancialBreakdown)


@dataclass
class _PartnerBucket:
    name: str
    deliveries_count: int = 0
    total_fees: Decimal = ZERO
    estimated_fees: Decimal = ZERO


def _as_mapping(items: Union[Mapping[str, Any], Iterable[Any], None]) -> Dict[str, Any]:
    if items is None:
        return {}
    if isinstance(items, Mapping):
        return dict(items)
    return {item.id: item for item in items}


def is_included(
    order: Order,
    bounds: Tuple[Optional[int], Optional[int]],
    statuses: Optional[Collection[str]] = None,
) -> bool:
    """Return True when the order passes the cancellation, status and window filters."""
    if order.is_cancelled:
        return False
    if statuses is not None and order.status not in statuses:
        return False
    return in_window(order.created_at_ms, bounds)


def order_contribution(
    order: Order,
    restaurant: Optional[Restaurant],
    settings: Optional[PlatformSettings],
) -> FinancialBreakdown:
    """
    Breakdown an included order adds to the aggregates.

    Partner payouts only accrue once the order is DELIVERED.
    """
    rates = rate_resolver.resolve(order, restaurant, settings)
    breakdown = compute(order, rates)
    if not order.is_delivered:
        breakdown = breakdown.without_partner_payout()
    return breakdown


def _normalize_statuses(statuses: Optional[Iterable[Union[str, OrderStatus]]]) -> Optional[frozenset]:
    if statuses is None:
        return None
    return frozenset(str(getattr(s, "value", s)).upper() for s in statuses)


def _seed_restaurant_buckets(restaurants: Mapping[str, Restaurant]) -> Dict[str, _RestaurantBucket]:
    return {
        rid: _RestaurantBucket(name=restaurant.name, seeded=True)
        for rid, restaurant in restaurants.items()
    }


def _partner_name(order: Order, partners: Mapping[str, DeliveryPartner]) -> str:
    partner = partners.get(order.delivery_partner_id)
    if partner is not None and partner.name:
        return partner.name
    return order.delivery_partner_name or ""


def _build_result(
    global_metrics: FinancialBreakdown,
    restaurant_buckets: Mapping[str, _RestaurantBucket],
    partner_buckets: Mapping[str, _PartnerBucket],
    window: str,
    bounds: Tuple[Optional[int], Optional[int]],
) -> AggregateResult:
    restaurants = [
        RestaurantMetrics(
            restaurant_id=rid,
            name=bucket.name,
            order_count=bucket.order_count,
            breakdown=bucket.breakdown,
        )
        for rid, bucket in sorted(restaurant_buckets.items())
    ]
    partners = [
        PartnerMetrics(
            partner_id=pid,
            name=bucket.name,
            deliveries_count=bucket.deliveries_count,
            total_fees=bucket.total_fees,
            estimated_fees=bucket.estimated_fees,
        )
        for pid, bucket in sorted(partner_buckets.items())
    ]
    return AggregateResult(
        global_metrics=global_metrics,
        restaurants=restaurants,
        partners=partners,
        window=window,
        start_ms=bounds[0],
        end_ms=bounds[1],
    )


def aggregate(
    orders: Iterable[Order],
    restaurants: RestaurantsArg,
    settings: Optional[PlatformSettings],
    window: Optional[str] = "allTime",
    statuses: Optional[Iterable[Union[str, OrderStatus]]] = None,
    *,
    partners: PartnersArg = None,
    now: Optional[datetime] = None,
) -> AggregateResult:
    """
    Aggregate order financials for a reporting window.

    Args:
        orders: Orders from the current snapshot
        restaurants: Known restaurants (mapping by id or iterable)
        settings: Platform defaults
        window: today | yesterday | last7days | last30days | allTime
        statuses: Optional whitelist of statuses to include
        partners: Known delivery partners, used for display names
        now: Reference wall-clock time for the window (defaults to now)

    Returns:
        AggregateResult with global, per-restaurant and per-partner metrics.
    """
    canonical_window = normalize_window(window)
    bounds = window_bounds(canonical_window, now)
    status_filter = _normalize_statuses(statuses)
    restaurant_map = _as_mapping(restaurants)
    partner_map = _as_mapping(partners)

    global_metrics = FinancialBreakdown()
    restaurant_buckets = _seed_restaurant_buckets(restaurant_map)
    partner_buckets: Dict[str, _PartnerBucket] = {}
    included = 0

    for order in orders:
        if not is_included(order, bounds, status_filter):
            continue
        included += 1

        restaurant = restaurant_map.get(order.restaurant_id)
        contribution = order_contribution(order, restaurant, settings)
        global_metrics += contribution

        bucket = restaurant_buckets.get(order.restaurant_id)
        if bucket is None:
            bucket = _RestaurantBucket(
                name=order.restaurant_name or UNKNOWN_RESTAURANT_NAME, seeded=False
            )
            restaurant_buckets[order.restaurant_id] = bucket
        bucket.order_count += 1
        bucket.breakdown += contribution

        if order.is_delivered and order.delivery_partner_id:
            partner_bucket = partner_buckets.get(order.delivery_partner_id)
            if partner_bucket is None:
                partner_bucket = _PartnerBucket(name=_partner_name(order, partner_map))
                partner_buckets[order.delivery_partner_id] = partner_bucket
            partner_bucket.deliveries_count += 1
            partner_bucket.total_fees += contribution.total_partner_payouts
            partner_bucket.estimated_fees += contribution.estimated_partner_payouts

    logger.debug(
        "orders_aggregated",
        window=canonical_window,
        included_orders=included,
        gross=str(global_metrics.total_including_gst),
    )
    return _build_result(
        global_metrics, restaurant_buckets, partner_buckets, canonical_window, bounds
    )


class IncrementalAggregator:
    """
    Running-sum variant of ``aggregate`` for a fixed window, rate set and filter.

    ``apply`` inserts or replaces an order (e.g. on a status transition) by
    retracting its previous contribution before adding the new one. Window
    bounds are frozen at construction; rebuild when restaurants, settings or
    the reference time change.
    """

    def __init__(
        self,
        restaurants: RestaurantsArg,
        settings: Optional[PlatformSettings],
        window: Optional[str] = "allTime",
        statuses: Optional[Iterable[Union[str, OrderStatus]]] = None,
        *,
        partners: PartnersArg = None,
        now: Optional[datetime] = None,
    ) -> None:
        self.window = normalize_window(window)
        self.bounds = window_bounds(self.window, now)
        self.statuses = _normalize_statuses(statuses)
        self.settings = settings
        self._restaurants = _as_mapping(restaurants)
        self._partners = _as_mapping(partners)

        self._global = FinancialBreakdown()
        self._restaurant_buckets = _seed_restaurant_buckets(self._restaurants)
        self._partner_buckets: Dict[str, _PartnerBucket] = {}
        self._applied: Dict[str, Tuple[Order, FinancialBreakdown]] = {}

    def __len__(self) -> int:
        return len(self._applied)

    def extend(self, orders: Iterable[Order]) -> None:
        for order in orders:
            self.apply(order)

    def apply(self, order: Order) -> None:
        """Insert or replace one order's contribution."""
        self.remove(order.id)
        if not is_included(order, self.bounds, self.statuses):
            return

        contribution = order_contribution(
            order, self._restaurants.get(order.restaurant_id), self.settings
        )
        self._applied[order.id] = (order, contribution)
        self._global += contribution

        bucket = self._restaurant_buckets.get(order.restaurant_id)
        if bucket is None:
            bucket = _RestaurantBucket(
                name=order.restaurant_name or UNKNOWN_RESTAURANT_NAME, seeded=False
            )
            self._restaurant_buckets[order.restaurant_id] = bucket
        bucket.order_count += 1
        bucket.breakdown += contribution

        if order.is_delivered and order.delivery_partner_id:
            partner_bucket = self._partner_buckets.get(order.delivery_partner_id)
            if partner_bucket is None:
                partner_bucket = _PartnerBucket(name=_partner_name(order, self._partners))
                self._partner_buckets[order.delivery_partner_id] = partner_bucket
            partner_bucket.deliveries_count += 1
            partner_bucket.total_fees += contribution.total_partner_payouts
            partner_bucket.estimated_fees += contribution.estimated_partner_payouts

    def remove(self, order_id: str) -> None:
        """Retract an order's contribution, if it was applied."""
        applied = self._applied.pop(order_id, None)
        if applied is None:
            return
        order, contribution = applied
        self._global -= contribution

        bucket = self._restaurant_buckets[order.restaurant_id]
        bucket.order_count -= 1
        bucket.breakdown -= contribution
        if bucket.order_count == 0 and not bucket.seeded:
            del self._restaurant_buckets[order.restaurant_id]

        if order.is_delivered and order.delivery_partner_id:
            partner_bucket = self._partner_buckets[order.delivery_partner_id]
            partner_bucket.deliveries_count -= 1
            partner_bucket.total_fees -= contribution.total_partner_payouts
            partner_bucket.estimated_fees -= contribution.estimated_partner_payouts
            if partner_bucket.deliveries_count == 0:
                del self._partner_buckets[order.delivery_partner_id]

    def result(self) -> AggregateResult:
        return _build_result(
            self._global,
            self._restaurant_buckets,
            self._partner_buckets,
            self.window,
            self.bounds,
        )


# --------------------------------------------------------------------- #
# Caller-side filtering and sorting helpers
# --------------------------------------------------------------------- #


def active_restaurants(items: Iterable[RestaurantMetrics]) -> List[RestaurantMetrics]:
    """Drop pre-seeded restaurants with no matching orders."""
    return [item for item in items if item.order_count > 0]


def sort_metrics(
    items: Iterable[Union[RestaurantMetrics, PartnerMetrics]],
    field_name: str,
    descending: bool = True,
) -> List[Union[RestaurantMetrics, PartnerMetrics]]:
    """
    Sort metrics rows by any numeric field (ties broken by identifier).

    Raises:
        AttributeError: If a row does not expose ``field_name``.
    """
    rows = list(items)
    rows.sort(key=lambda row: _row_id(row))
    rows.sort(key=lambda row: metric_value(row, field_name), reverse=descending)
    return rows


def metric_value(row: Union[RestaurantMetrics, PartnerMetrics], field_name: str) -> Any:
    """Read a field from a metrics row, falling back to a restaurant's breakdown."""
    if hasattr(row, field_name):
        return getattr(row, field_name)
    if isinstance(row, RestaurantMetrics) and hasattr(row.breakdown, field_name):
        return getattr(row.breakdown, field_name)
    raise AttributeError(f"{type(row).__name__} has no field {field_name!r}")


def _row_id(row: Union[RestaurantMetrics, PartnerMetrics]) -> str:
    return getattr(row, "restaurant_id", None) or getattr(row, "partner_id", "")


def metrics_frame(items: Sequence[Union[RestaurantMetrics, PartnerMetrics]]) -> pd.DataFrame:
    """Flatten metrics rows into a DataFrame for reporting consumers."""
    records = []
    for item in items:
        if isinstance(item, RestaurantMetrics):
            record = {
                "restaurant_id": item.restaurant_id,
                "name": item.name,
                "order_count": item.order_count,
            }
            record.update(item.breakdown.as_dict())
        else:
            record = {f.name: getattr(item, f.name) for f in fields(item)}
        records.append(record)
    return pd.DataFrame.from_records(records)
