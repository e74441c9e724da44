# Overview: Pure money rules for orders: line totals, GST, order total, outstanding and refundable deposit.

"""
Order Pricing Rules

Every function here is pure: numbers in, number out, no store access. The
services call them after each mutation and persist the result.

ORDER TOTAL:
    base  = subtotal                 if GST is tax-inclusive
          = subtotal + gst_amount    otherwise
    total = base + damage_fee_total + late_fee - discount_amount

LINE TOTAL:
    quantity x price_per_day (days are NOT multiplied in)

All amounts are Decimal rounded to 2 places; absent values count as zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..errors import ValidationError
from ..models.payments import TXN_DEPOSIT_COLLECTED, TXN_DEPOSIT_REFUND
from ..money import MONEY_TOLERANCE, ZERO, to_money

DEFAULT_GST_RATE = Decimal("5")


@dataclass(frozen=True)
class GstSettings:
    """GST policy applied to one order (rate in percent)."""
    rate: Decimal
    included: bool

    @property
    def enabled(self) -> bool:
        return self.rate > 0


NO_GST = GstSettings(rate=ZERO, included=False)


# =============================================================================
# ORDER TOTAL
# =============================================================================

def calculate_total(
    subtotal=None,
    gst_amount=None,
    gst_included: bool = False,
    damage_fee_total=None,
    late_fee=None,
    discount_amount=None,
) -> Decimal:
    """
    Derive total_amount from its components.

    Not floored at zero: callers reject inputs that would make it negative
    (see ensure_non_negative_total) so the stored total always satisfies the
    formula exactly.
    """
    base = to_money(subtotal)
    if not gst_included:
        base += to_money(gst_amount)
    return base + to_money(damage_fee_total) + to_money(late_fee) - to_money(discount_amount)


def order_total(order, **overrides) -> Decimal:
    """calculate_total() over an order's stored fields, with keyword overrides."""
    values = {
        "subtotal": order.subtotal,
        "gst_amount": order.gst_amount,
        "gst_included": bool(order.gst_included),
        "damage_fee_total": order.damage_fee_total,
        "late_fee": order.late_fee,
        "discount_amount": order.discount_amount,
    }
    values.update(overrides)
    return calculate_total(**values)


def ensure_non_negative_total(total: Decimal) -> Decimal:
    if total < ZERO:
        raise ValidationError(
            f"Discount exceeds order charges (total would be {total}); reduce the discount"
        )
    return total


# =============================================================================
# LINE ITEMS AND GST
# =============================================================================

def calculate_line_total(quantity: int, price_per_day) -> Decimal:
    return to_money(Decimal(int(quantity or 0)) * to_money(price_per_day))


def calculate_subtotal(line_totals: Iterable) -> Decimal:
    return sum((to_money(v) for v in line_totals), ZERO)


def resolve_gst_settings(profile, super_admin=None, default_rate=DEFAULT_GST_RATE) -> GstSettings:
    """
    GST policy for an order created by `profile`.

    Staff and branch admins bill under the super admin's GST registration
    when one exists. GST counts as enabled when gst_enabled is set, or (when
    it was never set) when the profile carries a rate or a GST number.
    """
    source = profile
    if profile is not None and not profile.is_super_admin and super_admin is not None:
        source = super_admin
    if source is None:
        return NO_GST

    if source.gst_enabled is not None:
        enabled = bool(source.gst_enabled)
    else:
        enabled = bool(source.gst_rate and source.gst_rate > 0) or bool(source.gst_number)
    if not enabled:
        return NO_GST

    rate = to_money(source.gst_rate) if source.gst_rate else to_money(default_rate)
    return GstSettings(rate=rate, included=bool(source.gst_included))


def calculate_gst_amount(subtotal, settings: GstSettings) -> Decimal:
    """
    Inclusive GST is extracted from the subtotal; exclusive GST is added on top.
    """
    if not settings.enabled:
        return ZERO
    amount = to_money(subtotal)
    r = settings.rate / Decimal(100)
    if settings.included:
        return to_money(amount * r / (1 + r))
    return to_money(amount * r)


# =============================================================================
# DEPOSIT AND OUTSTANDING
# =============================================================================

def calculate_outstanding(order) -> Decimal:
    """
    Charges not yet covered by the security deposit or earlier collections:

        max(0, (subtotal + gst + damage + late_fee)
               - security_deposit_amount - additional_amount_collected)
    """
    charges = (
        to_money(order.subtotal)
        + to_money(order.gst_amount)
        + to_money(order.damage_fee_total)
        + to_money(order.late_fee)
    )
    remaining = charges - to_money(order.security_deposit_amount) - to_money(order.additional_amount_collected)
    return max(ZERO, remaining)


def refundable_deposit(order) -> Decimal:
    """
    Effective deposit balance a refund is checked against.

    1. the stored deposit_balance when positive
    2. else security_deposit_amount - security_deposit_refunded_amount (>= 0)
    3. else, when a deposit exists and nothing was ever refunded, the full
       deposit (balance was never computed for this order)
    """
    balance = to_money(order.deposit_balance)
    if balance > ZERO:
        return balance

    deposit = to_money(order.security_deposit_amount)
    refunded = to_money(order.security_deposit_refunded_amount)
    fallback = max(ZERO, deposit - refunded)
    if fallback > ZERO:
        return fallback
    if deposit > ZERO and refunded <= ZERO:
        return deposit
    return ZERO


def exceeds(amount: Decimal, ceiling: Decimal, tolerance: Decimal = MONEY_TOLERANCE) -> bool:
    return to_money(amount) > to_money(ceiling) + tolerance


def local_deposit_balance(order, transactions) -> tuple[Decimal, Decimal]:
    """
    (deposit_balance, refunded_amount) from a transaction list, for stores
    without an atomic recompute. Mirrors OrderRepository.recalculate_balances.
    """
    collected = sum((to_money(t.amount) for t in transactions if t.transaction_type == TXN_DEPOSIT_COLLECTED), ZERO)
    refunded = sum((to_money(t.amount) for t in transactions if t.transaction_type == TXN_DEPOSIT_REFUND), ZERO)
    if collected <= ZERO:
        collected = to_money(order.security_deposit_amount)
    return max(ZERO, collected - refunded), refunded

