"""
Rate resolution for per-order financial derivation.

Each rate is resolved independently through the same ordered chain:
restaurant override -> platform default -> hard-coded fallback.
Only ``None`` counts as "absent"; an explicit zero override is honoured.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from src.domain.models import Order, PlatformSettings, Restaurant

FALLBACK_TAX_RATE_PCT = Decimal("5")
FALLBACK_COMMISSION_RATE_PCT = Decimal("20")
FALLBACK_DELIVERY_FEE = Decimal("40")


@dataclass(frozen=True)
class ResolvedRates:
    """Effective rates applied to a single order."""

    tax_rate_pct: Decimal
    commission_rate_pct: Decimal
    delivery_fee: Decimal


def first_present(*candidates: Optional[Decimal]) -> Decimal:
    """Return the first candidate that is not None (the last one must be)."""
    for candidate in candidates:
        if candidate is not None:
            return candidate
    raise ValueError("No rate candidate supplied")


def resolve_tax_rate(
    restaurant: Optional[Restaurant], settings: Optional[PlatformSettings]
) -> Decimal:
    return first_present(
        restaurant.custom_tax_rate if restaurant else None,
        settings.tax_rate if settings else None,
        FALLBACK_TAX_RATE_PCT,
    )


def resolve_commission_rate(
    restaurant: Optional[Restaurant], settings: Optional[PlatformSettings]
) -> Decimal:
    return first_present(
        restaurant.commission_rate if restaurant else None,
        settings.platform_commission if settings else None,
        FALLBACK_COMMISSION_RATE_PCT,
    )


def resolve_delivery_fee(
    restaurant: Optional[Restaurant], settings: Optional[PlatformSettings]
) -> Decimal:
    return first_present(
        restaurant.custom_delivery_fee if restaurant else None,
        settings.delivery_base_fee if settings else None,
        FALLBACK_DELIVERY_FEE,
    )


def resolve(
    order: Optional[Order],
    restaurant: Optional[Restaurant],
    settings: Optional[PlatformSettings],
) -> ResolvedRates:
    """
    Resolve the effective tax rate, commission rate and delivery fee.

    ``order`` is accepted for contract symmetry; no rate currently depends on
    order-level data. Missing restaurant or settings never raise.
    """
    return ResolvedRates(
        tax_rate_pct=resolve_tax_rate(restaurant, settings),
        commission_rate_pct=resolve_commission_rate(restaurant, settings),
        delivery_fee=resolve_delivery_fee(restaurant, settings),
    )
