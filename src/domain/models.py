"""
Domain records consumed by the reconciliation core.

Records arrive from the change feed either as SQLite rows (snake_case columns)
or as raw feed documents (camelCase keys). Each ``from_record`` constructor
accepts both shapes and never raises for missing optional data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from src.utils.money import parse_decimal


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PLACED = "PLACED"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    """How the customer paid. ``COD`` is the legacy spelling of ``CASH``."""

    CASH = "CASH"
    ONLINE = "ONLINE"

    @classmethod
    def parse(cls, value: Optional[object]) -> "PaymentMethod":
        if isinstance(value, cls):
            return value
        if str(value or "").strip().upper() == cls.ONLINE.value:
            return cls.ONLINE
        return cls.CASH


class PayeeKind(str, Enum):
    """The two kinds of settlement target."""

    RESTAURANT = "RESTAURANT"
    DELIVERY_PARTNER = "DELIVERY_PARTNER"


class SettlementStatus(str, Enum):
    """Outcome recorded on a payout log entry."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


def _pick(record: Mapping[str, Any], *keys: str) -> Any:
    """Return the first non-None value among ``keys``."""
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Order:
    """
    Order fields relevant to financial reconciliation.

    Attributes:
        id: Order identifier
        restaurant_id: Owning restaurant reference
        total_amount: Gross, customer-facing total (tax and delivery fee included)
        payment_method: CASH or ONLINE
        status: Lifecycle status (unknown strings are carried through)
        created_at_ms: Creation timestamp in epoch milliseconds
        delivery_partner_id: Assigned delivery partner, if any
        partner_payout: Stored payout for the partner, if recorded at assignment
    """

    id: str
    restaurant_id: str
    total_amount: Optional[Decimal]
    payment_method: PaymentMethod
    status: str
    created_at_ms: int
    restaurant_name: Optional[str] = None
    delivery_partner_id: Optional[str] = None
    delivery_partner_name: Optional[str] = None
    partner_payout: Optional[Decimal] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED

    @property
    def is_delivered(self) -> bool:
        return self.status == OrderStatus.DELIVERED

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Order":
        partner = record.get("deliveryPartner") or {}
        status = str(_pick(record, "status") or OrderStatus.PLACED.value).strip().upper()
        return cls(
            id=str(_pick(record, "id")),
            restaurant_id=str(_pick(record, "restaurant_id", "restaurantId") or ""),
            total_amount=parse_decimal(_pick(record, "total_amount", "totalAmount")),
            payment_method=PaymentMethod.parse(
                _pick(record, "payment_method", "paymentMethod")
            ),
            status=status,
            created_at_ms=_as_int(_pick(record, "created_at_ms", "createdAt")),
            restaurant_name=_as_str(_pick(record, "restaurant_name", "restaurantName")),
            delivery_partner_id=_as_str(
                _pick(record, "delivery_partner_id", "deliveryPartnerId")
                or partner.get("id")
            ),
            delivery_partner_name=_as_str(
                _pick(record, "delivery_partner_name") or partner.get("name")
            ),
            partner_payout=parse_decimal(_pick(record, "partner_payout", "partnerPayout")),
        )


@dataclass(frozen=True)
class Restaurant:
    """Restaurant record with optional financial overrides."""

    id: str
    name: str = ""
    custom_tax_rate: Optional[Decimal] = None
    commission_rate: Optional[Decimal] = None
    custom_delivery_fee: Optional[Decimal] = None
    upi_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Restaurant":
        return cls(
            id=str(_pick(record, "id")),
            name=str(_pick(record, "name") or ""),
            custom_tax_rate=parse_decimal(_pick(record, "custom_tax_rate", "customTaxRate")),
            commission_rate=parse_decimal(_pick(record, "commission_rate", "commissionRate")),
            custom_delivery_fee=parse_decimal(
                _pick(record, "custom_delivery_fee", "customDeliveryFee")
            ),
            upi_id=_as_str(_pick(record, "upi_id", "upiId")),
        )


@dataclass(frozen=True)
class DeliveryPartner:
    """Delivery partner record."""

    id: str
    name: str = ""
    phone: Optional[str] = None
    vehicle_type: Optional[str] = None
    is_approved: bool = False
    upi_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "DeliveryPartner":
        return cls(
            id=str(_pick(record, "id")),
            name=str(_pick(record, "name") or ""),
            phone=_as_str(_pick(record, "phone")),
            vehicle_type=_as_str(_pick(record, "vehicle_type", "vehicleType")),
            is_approved=bool(_pick(record, "is_approved", "isApproved") or False),
            upi_id=_as_str(_pick(record, "upi_id", "upiId")),
        )


@dataclass(frozen=True)
class PlatformSettings:
    """Platform-wide defaults. Every field may be missing."""

    tax_rate: Optional[Decimal] = None
    platform_commission: Optional[Decimal] = None
    delivery_base_fee: Optional[Decimal] = None
    delivery_per_km: Optional[Decimal] = None
    free_delivery_order_value: Optional[Decimal] = None

    @classmethod
    def from_record(cls, record: Optional[Mapping[str, Any]]) -> "PlatformSettings":
        if not record:
            return cls()
        return cls(
            tax_rate=parse_decimal(_pick(record, "tax_rate", "taxRate")),
            platform_commission=parse_decimal(
                _pick(record, "platform_commission", "platformCommission")
            ),
            delivery_base_fee=parse_decimal(
                _pick(record, "delivery_base_fee", "deliveryBaseFee")
            ),
            delivery_per_km=parse_decimal(_pick(record, "delivery_per_km", "deliveryPerKm")),
            free_delivery_order_value=parse_decimal(
                _pick(record, "free_delivery_order_value", "freeDeliveryOrderValue")
            ),
        )


@dataclass(frozen=True)
class SettlementEvent:
    """
    Immutable payout log entry against exactly one payee.

    Attributes:
        id: Unique identifier
        timestamp_ms: When the settlement was recorded
        amount: Positive settled amount
        restaurant_id: Target restaurant (exclusive with partner_id)
        partner_id: Target delivery partner (exclusive with restaurant_id)
        status: SUCCESS or FAILED
    """

    id: str
    timestamp_ms: int
    amount: Decimal
    restaurant_id: Optional[str] = None
    partner_id: Optional[str] = None
    status: SettlementStatus = SettlementStatus.SUCCESS
    created_by: Optional[str] = None
    note: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.restaurant_id is None) == (self.partner_id is None):
            raise ValueError(
                "Settlement event must target exactly one of restaurant_id or partner_id"
            )

    @property
    def is_success(self) -> bool:
        return self.status == SettlementStatus.SUCCESS

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "SettlementEvent":
        status_raw = str(_pick(record, "status") or SettlementStatus.SUCCESS.value).upper()
        return cls(
            id=str(_pick(record, "id")),
            timestamp_ms=_as_int(_pick(record, "timestamp_ms", "timestamp")),
            amount=parse_decimal(_pick(record, "amount")) or Decimal("0"),
            restaurant_id=_as_str(_pick(record, "restaurant_id", "restaurantId")),
            partner_id=_as_str(_pick(record, "partner_id", "partnerId")),
            status=(
                SettlementStatus.SUCCESS
                if status_raw == SettlementStatus.SUCCESS.value
                else SettlementStatus.FAILED
            ),
            created_by=_as_str(_pick(record, "created_by")),
            note=_as_str(_pick(record, "note")),
        )


@dataclass(frozen=True)
class FeedSnapshot:
    """One fully-observed state of every collection the core reads."""

    orders: Dict[str, Order] = field(default_factory=dict)
    restaurants: Dict[str, Restaurant] = field(default_factory=dict)
    partners: Dict[str, DeliveryPartner] = field(default_factory=dict)
    settings: PlatformSettings = field(default_factory=PlatformSettings)
    settlement_events: Dict[str, SettlementEvent] = field(default_factory=dict)

    @classmethod
    def from_collections(
        cls,
        *,
        orders=(),
        restaurants=(),
        partners=(),
        settings: Optional[PlatformSettings] = None,
        settlement_events=(),
    ) -> "FeedSnapshot":
        """Build a snapshot from iterables of records keyed by their ``id``."""
        return cls(
            orders={o.id: o for o in orders},
            restaurants={r.id: r for r in restaurants},
            partners={p.id: p for p in partners},
            settings=settings or PlatformSettings(),
            settlement_events={e.id: e for e in settlement_events},
        )
