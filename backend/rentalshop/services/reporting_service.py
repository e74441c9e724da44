# Overview: Service-layer operations for reporting; dashboard counts and collections.

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional

from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_COMPLETED_WITH_ISSUES,
    ORDER_STATUS_PARTIALLY_RETURNED,
    ORDER_STATUSES,
)
from ..money import ZERO, money_to_json, to_money
from ..time_utils import as_utc_naive, utcnow

# Orders in these states cannot be running late
_NOT_LATE = (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_COMPLETED_WITH_ISSUES,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PARTIALLY_RETURNED,
)
_COLLECTED = (ORDER_STATUS_COMPLETED, ORDER_STATUS_COMPLETED_WITH_ISSUES)


def _day_range(start: Optional[date], end: Optional[date]) -> tuple[Optional[datetime], Optional[datetime]]:
    """Whole-day bounds; both or neither."""
    if start is None or end is None:
        return None, None
    return datetime.combine(start, time.min), datetime.combine(end, time.min) + timedelta(days=1) - timedelta(microseconds=1)


def _is_late(order, now: datetime) -> bool:
    if order.status in _NOT_LATE:
        return False
    if order.end_datetime is not None:
        return now > as_utc_naive(order.end_datetime)
    return order.end_date is not None and now.date() > order.end_date


def dashboard_stats(
    repository,
    *,
    branch_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Order counts by status, late returns and completed collection.

    start/end filter on created_at (whole days, inclusive); without both,
    all time is used. The customer count is never branch-filtered.
    """
    now = as_utc_naive(now) if now else utcnow()
    created_from, created_to = _day_range(start, end)
    orders = repository.find_orders(branch_id=branch_id, created_from=created_from, created_to=created_to)

    by_status = {status: 0 for status in ORDER_STATUSES}
    collection = ZERO
    late = 0
    for order in orders:
        by_status[order.status] = by_status.get(order.status, 0) + 1
        if order.status in _COLLECTED:
            collection += to_money(order.total_amount)
        if _is_late(order, now):
            late += 1

    return {
        "by_status": by_status,
        "total_orders": len(orders),
        "total_customers": repository.count_customers(),
        "late_returns": late,
        "collection": money_to_json(collection),
    }
