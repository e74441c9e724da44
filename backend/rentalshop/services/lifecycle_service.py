# Overview: Order status rules: status resolution after returns, creation seeding, cancellation window.

"""
Rental Order Lifecycle

================================================================================
PURPOSE: Decide which status an order is in. Nothing here touches the store.
================================================================================

STATE MACHINE:
    scheduled -> active -> pending_return -> partially_returned
                                          -> completed | completed_with_issues | flagged
    scheduled | active -> cancelled

    scheduled:      start date is in the future
    active:         items are out with the customer
    pending_return: end time passed, nothing returned yet
    flagged:        needs staff attention (damage, short return, missing items)

TERMINAL: cancelled, completed, completed_with_issues
flagged is final once no item is still out; until then it takes further
returns but never moves back to partially_returned.

STATUS RESOLUTION (first match wins):
1. every item fully returned, nothing missing, no damage   -> completed
2. any damage, any missing item, any item closed short     -> flagged
   (policy "completed_with_issues": fully returned + damaged
    resolves to completed_with_issues instead)
3. some quantity back, rest still out                      -> partially_returned
4. nothing touched                                         -> None (no change)

An item is "closed short" when it was marked returned with fewer units
than were rented. An item still marked not_yet_returned with some units
back is an ordinary partial return.
================================================================================
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from ..models.orders import (
    ORDER_STATUS_ACTIVE,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_COMPLETED_WITH_ISSUES,
    ORDER_STATUS_FLAGGED,
    ORDER_STATUS_PARTIALLY_RETURNED,
    ORDER_STATUS_PENDING_RETURN,
    ORDER_STATUS_SCHEDULED,
    RETURN_STATUS_MISSING,
    RETURN_STATUS_NOT_YET_RETURNED,
    RETURN_STATUS_RETURNED,
)
from ..money import ZERO, to_money
from ..time_utils import as_utc_naive


POLICY_FLAGGED = "flagged"
POLICY_COMPLETED_WITH_ISSUES = "completed_with_issues"
ISSUE_POLICIES = (POLICY_FLAGGED, POLICY_COMPLETED_WITH_ISSUES)

TERMINAL_STATUSES = frozenset({
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_COMPLETED_WITH_ISSUES,
})

# Statuses in which returns may be recorded; flagged only while an item is still out
RETURNABLE_STATUSES = frozenset({
    ORDER_STATUS_ACTIVE,
    ORDER_STATUS_PENDING_RETURN,
    ORDER_STATUS_PARTIALLY_RETURNED,
    ORDER_STATUS_FLAGGED,
})

DEFAULT_CANCEL_WINDOW_MINUTES = 10


def validate_policy(policy: str) -> str:
    if policy not in ISSUE_POLICIES:
        raise ValueError(
            f"Invalid issue policy '{policy}'. Must be one of: {', '.join(ISSUE_POLICIES)}"
        )
    return policy


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


# =============================================================================
# STATUS RESOLUTION
# =============================================================================

def _has_damage(item) -> bool:
    fee = to_money(item.damage_fee) if item.damage_fee is not None else ZERO
    description = (item.damage_description or "").strip()
    return fee > ZERO or bool(description)


def _fully_returned(item) -> bool:
    return (item.returned_quantity or 0) >= (item.quantity or 0)


def _closed_short(item) -> bool:
    return item.return_status == RETURN_STATUS_RETURNED and not _fully_returned(item)


def resolve_order_status(items: Iterable, policy: str = POLICY_FLAGGED) -> Optional[str]:
    """
    Status an order should move to given its complete item set.

    Args:
        items: every item on the order, freshly read (objects with quantity,
               returned_quantity, return_status, damage_fee, damage_description)
        policy: "flagged" or "completed_with_issues"

    Returns:
        The new status, or None when no item has been touched.

    Pure: the same item snapshot always yields the same answer.
    """
    validate_policy(policy)
    items = list(items)
    if not items:
        return None

    any_missing = any(item.return_status == RETURN_STATUS_MISSING for item in items)
    any_damage = any(_has_damage(item) for item in items)
    any_short = any(_closed_short(item) for item in items)
    all_returned = all(_fully_returned(item) for item in items)

    if all_returned and not (any_missing or any_damage or any_short):
        return ORDER_STATUS_COMPLETED

    if any_damage or any_missing or any_short:
        if policy == POLICY_COMPLETED_WITH_ISSUES and all_returned and not any_missing:
            return ORDER_STATUS_COMPLETED_WITH_ISSUES
        return ORDER_STATUS_FLAGGED

    if any((item.returned_quantity or 0) > 0 for item in items):
        return ORDER_STATUS_PARTIALLY_RETURNED

    return None


def has_items_out(items: Iterable) -> bool:
    return any(item.return_status == RETURN_STATUS_NOT_YET_RETURNED for item in items)


def accepts_returns(order) -> bool:
    """Whether return decisions may still be recorded against the order."""
    if order.status not in RETURNABLE_STATUSES:
        return False
    if order.status == ORDER_STATUS_FLAGGED:
        return has_items_out(order.items)
    return True


def next_status(current: str, resolved: Optional[str]) -> str:
    """
    Status to store after a return. Keeps the current one when nothing
    resolved, and never moves a flagged order back to partially_returned.
    """
    if resolved is None:
        return current
    if current == ORDER_STATUS_FLAGGED and resolved == ORDER_STATUS_PARTIALLY_RETURNED:
        return current
    return resolved


# =============================================================================
# CREATION AND START
# =============================================================================

def seed_status(start_date: date, today: date) -> str:
    """scheduled when the rental starts after today (date-only), else active."""
    if isinstance(start_date, datetime):
        start_date = start_date.date()
    return ORDER_STATUS_SCHEDULED if start_date > today else ORDER_STATUS_ACTIVE


def can_start(order) -> bool:
    return order.status == ORDER_STATUS_SCHEDULED


def is_overdue(order, now: datetime) -> bool:
    """Active order whose end time has passed."""
    if order.status != ORDER_STATUS_ACTIVE:
        return False
    end = order.end_datetime
    if end is None:
        return order.end_date is not None and order.end_date < now.date()
    return as_utc_naive(end) < as_utc_naive(now)


# =============================================================================
# CANCELLATION
# =============================================================================

def active_since(order) -> Optional[datetime]:
    return order.start_datetime or order.created_at


def can_cancel(order, now: datetime, window_minutes: int = DEFAULT_CANCEL_WINDOW_MINUTES) -> bool:
    """
    Whether the order may still be cancelled.

    - cancelled / completed states: never
    - scheduled: always
    - active: only within `window_minutes` of going active
    - anything else: never
    """
    status = order.status
    if is_terminal(status):
        return False
    if status == ORDER_STATUS_SCHEDULED:
        return True
    if status != ORDER_STATUS_ACTIVE:
        return False

    since = active_since(order)
    if since is None:
        return False
    return as_utc_naive(now) - as_utc_naive(since) <= timedelta(minutes=window_minutes)

