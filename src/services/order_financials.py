"""
Order Financial Calculator - split a gross order amount into its components.

Tax is modelled as inclusive: the delivery fee is carved out of the gross
total first, then the remaining food portion is divided by (1 + tax%) to
recover the tax-exclusive base. Commission is charged on that base only.

Every component is quantized to cents as it is derived, and the dependent
components are computed by subtraction from the quantized values, so

    total_including_gst == total_excluding_gst + total_gst + total_delivery_fees
    total_restaurant_payable == total_excluding_gst - total_commission

hold exactly (the first whenever the gross covers the delivery fee).
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from decimal import Decimal

from src.domain.models import Order, PaymentMethod
from src.services.rate_resolver import ResolvedRates
from src.utils.money import ZERO, to_currency

HUNDRED = Decimal("100")
ONE = Decimal("1")


@dataclass(frozen=True)
class FinancialBreakdown:
    """
    Financial components for one order or an aggregate of orders.

    Attributes:
        total_including_gst: Gross amount charged (GMV)
        total_excluding_gst: Tax-exclusive food value (base amount)
        total_gst: Tax embedded in the food portion
        total_commission: Platform cut of the base amount
        total_delivery_fees: Delivery fees carved out of the gross
        total_restaurant_payable: Base amount minus commission
        total_partner_payouts: Amount owed to delivery partners
        total_online_revenue: Gross received through online payments
        total_cash_revenue: Gross received as cash on delivery
        estimated_partner_payouts: Part of total_partner_payouts that came from
            the delivery-fee fallback rather than a stored payout
    """

    total_including_gst: Decimal = ZERO
    total_excluding_gst: Decimal = ZERO
    total_gst: Decimal = ZERO
    total_commission: Decimal = ZERO
    total_delivery_fees: Decimal = ZERO
    total_restaurant_payable: Decimal = ZERO
    total_partner_payouts: Decimal = ZERO
    total_online_revenue: Decimal = ZERO
    total_cash_revenue: Decimal = ZERO
    estimated_partner_payouts: Decimal = ZERO

    def __add__(self, other: "FinancialBreakdown") -> "FinancialBreakdown":
        if not isinstance(other, FinancialBreakdown):
            return NotImplemented
        return FinancialBreakdown(
            **{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)}
        )

    def __sub__(self, other: "FinancialBreakdown") -> "FinancialBreakdown":
        if not isinstance(other, FinancialBreakdown):
            return NotImplemented
        return FinancialBreakdown(
            **{f.name: getattr(self, f.name) - getattr(other, f.name) for f in fields(self)}
        )

    def without_partner_payout(self) -> "FinancialBreakdown":
        """Copy with the partner payout zeroed (orders not yet delivered)."""
        return replace(self, total_partner_payouts=ZERO, estimated_partner_payouts=ZERO)

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def compute(order: Order, rates: ResolvedRates) -> FinancialBreakdown:
    """
    Derive the financial breakdown of a single order.

    Args:
        order: Order to split
        rates: Effective rates from the rate resolver

    Returns:
        FinancialBreakdown for this order (partner payout always populated;
        callers decide whether the order's status makes it payable).
    """
    # Amounts too large to carry cents are treated like a missing amount.
    gross = max(ZERO, to_currency(order.total_amount, ZERO))
    delivery_fee = to_currency(rates.delivery_fee, ZERO)

    food_portion_with_tax = max(ZERO, gross - delivery_fee)

    divisor = ONE + rates.tax_rate_pct / HUNDRED
    if divisor > 0:
        base_amount = to_currency(food_portion_with_tax / divisor, food_portion_with_tax)
    else:
        base_amount = food_portion_with_tax
    tax_amount = food_portion_with_tax - base_amount

    commission = to_currency(base_amount * rates.commission_rate_pct / HUNDRED, ZERO)
    restaurant_payable = base_amount - commission

    stored_payout = to_currency(order.partner_payout)
    if stored_payout is not None:
        partner_payout = stored_payout
        estimated_payout = ZERO
    else:
        # Legacy orders predate payout tracking; approximate with the delivery fee.
        partner_payout = delivery_fee
        estimated_payout = delivery_fee

    is_online = order.payment_method == PaymentMethod.ONLINE

    return FinancialBreakdown(
        total_including_gst=gross,
        total_excluding_gst=base_amount,
        total_gst=tax_amount,
        total_commission=commission,
        total_delivery_fees=delivery_fee,
        total_restaurant_payable=restaurant_payable,
        total_partner_payouts=partner_payout,
        total_online_revenue=gross if is_online else ZERO,
        total_cash_revenue=ZERO if is_online else gross,
        estimated_partner_payouts=estimated_payout,
    )
