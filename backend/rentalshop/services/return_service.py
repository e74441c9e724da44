# Overview: Service-layer operations for rental returns; item updates, status resolution and totals in one unit.

"""
Rental Return Processing

WHY: A return touches several rows (each item, then the order) and the order's
status and total depend on the full item set afterwards. Doing this in
pieces leaves orders whose total disagrees with their damage fees.

PROCESS (one database transaction, all-or-nothing):
1. Lock the order row, check expected_version
2. Validate every item decision and the projected total (no writes yet)
3. Update each item's return fields, append one audit event per item
4. Re-read ALL items; damage_fee_total = sum of every item's damage fee
5. Resolve the order status from the re-read item set
6. Recompute total_amount (explicit late fee / discount override stored ones)
7. Persist the order; a rejected status is retried once as "completed"

FAILURES:
- unknown item                          -> NotFoundError
- bad quantity / amount / order state   -> ValidationError
  (completed, completed_with_issues, cancelled and scheduled orders take
  no returns; flagged ones only while an item is still out)
- version mismatch                      -> ConflictError
- status rejected even after fallback   -> PersistenceError
- store timeout                         -> retried, then StoreTimeoutError
Nothing is written when any of these is raised.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from ..errors import ConflictError, ConstraintError, NotFoundError, PersistenceError, ValidationError
from ..models import OrderAuditEvent
from ..models.orders import (
    ORDER_STATUS_COMPLETED,
    RETURN_STATUS_MISSING,
    RETURN_STATUS_RETURNED,
)
from ..money import ZERO, to_money
from ..schemas import ItemReturn
from ..time_utils import as_utc_naive, utcnow
from .concurrency import run_with_retry
from .lifecycle_service import POLICY_FLAGGED, accepts_returns, next_status, resolve_order_status, validate_policy
from .pricing_service import ensure_non_negative_total, order_total

logger = logging.getLogger(__name__)

AUDIT_ITEM_RETURNED = "item_returned"
AUDIT_ITEM_MISSING = "item_missing"
AUDIT_ITEM_UPDATED = "item_updated"
AUDIT_STATUS_CHANGED = "status_changed"

class ReturnProcessor:
    """Applies a batch of item return decisions to one order."""

    def __init__(self, repository, issue_policy: str = POLICY_FLAGGED, retry_attempts: int = 3):
        self.repository = repository
        self.issue_policy = validate_policy(issue_policy)
        self.retry_attempts = retry_attempts

    def process_return(
        self,
        order_id: int,
        item_returns: Iterable[ItemReturn],
        actor_id: str,
        late_fee: Optional[Decimal] = None,
        discount: Optional[Decimal] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ):
        """
        Record returns for some or all items of an order.

        Args:
            order_id: Order being returned against
            item_returns: One decision per item (item ids must be unique)
            actor_id: Who processed the return (audit attribution)
            late_fee: Replaces the stored late fee when given
            discount: Replaces the stored discount when given
            expected_version: Order version the caller last read, if known
            now: Clock override for tests

        Returns:
            The updated Order (committed).
        """
        decisions = list(item_returns)

        def _op():
            with self.repository.transaction():
                return self._apply(order_id, decisions, actor_id, late_fee, discount, expected_version, now or utcnow())

        return run_with_retry(_op, attempts=self.retry_attempts)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _apply(self, order_id, decisions, actor_id, late_fee, discount, expected_version, now):
        repo = self.repository
        order = repo.get_order(order_id, lock=True)

        if expected_version is not None and order.version_id != expected_version:
            raise ConflictError(
                f"Order {order_id} is at version {order.version_id}, expected {expected_version}; reload and retry"
            )
        if not accepts_returns(order):
            raise ValidationError(f"Cannot process returns for a {order.status} order")

        planned = self._plan(order, decisions, now)

        new_late_fee = to_money(late_fee) if late_fee is not None else to_money(order.late_fee)
        new_discount = to_money(discount) if discount is not None else to_money(order.discount_amount)
        if new_late_fee < ZERO or new_discount < ZERO:
            raise ValidationError("late_fee and discount cannot be negative")

        projected_damage = sum(
            (planned[item.id]["damage_fee"] if item.id in planned else _fee(item.damage_fee) for item in order.items),
            ZERO,
        )
        ensure_non_negative_total(
            order_total(order, damage_fee_total=projected_damage, late_fee=new_late_fee, discount_amount=new_discount)
        )

        # Validation done; writes start here
        for item in order.items:
            if item.id not in planned:
                continue
            previous_status = item.return_status
            changes = planned[item.id]
            repo.update_item(item, changes)
            repo.append_audit_event(OrderAuditEvent(
                order_id=order.id,
                order_item_id=item.id,
                action=_item_action(changes["return_status"]),
                previous_status=previous_status,
                new_status=changes["return_status"],
                actor_id=actor_id,
                notes=_item_notes(item),
                created_at=now,
            ))

        items = repo.list_items(order.id)
        damage_total = sum((_fee(item.damage_fee) for item in items), ZERO)
        resolved = resolve_order_status(items, self.issue_policy)
        total = order_total(
            order,
            damage_fee_total=damage_total,
            late_fee=new_late_fee,
            discount_amount=new_discount,
        )

        changes = {
            "damage_fee_total": damage_total,
            "late_fee": new_late_fee,
            "discount_amount": new_discount,
            "total_amount": total,
        }
        previous_status = order.status
        new_status = next_status(previous_status, resolved)
        if new_status != previous_status:
            changes["status"] = new_status

        self._persist_order(order, changes)

        if order.status != previous_status:
            repo.append_audit_event(OrderAuditEvent(
                order_id=order.id,
                action=AUDIT_STATUS_CHANGED,
                previous_status=previous_status,
                new_status=order.status,
                actor_id=actor_id,
                notes=f"Return processed; total {total}",
                created_at=now,
            ))

        logger.info(
            "Return processed for order %s: %s item(s), status %s -> %s, total %s",
            order.id, len(planned), previous_status, order.status, total,
        )
        return order

    def _plan(self, order, decisions, now) -> dict[int, dict]:
        """Validated item changes keyed by item id. Raises before anything is written."""
        if not decisions:
            raise ValidationError("At least one item return is required")

        items_by_id = {item.id: item for item in order.items}
        planned: dict[int, dict] = {}
        for decision in decisions:
            item = items_by_id.get(decision.item_id)
            if item is None:
                raise NotFoundError(f"Item {decision.item_id} not found on order {order.id}")
            if decision.item_id in planned:
                raise ValidationError(f"Item {decision.item_id} appears more than once")

            returned_quantity = _returned_quantity(item, decision)
            if returned_quantity < 0 or returned_quantity > item.quantity:
                raise ValidationError(
                    f"returned_quantity for item {item.id} must be between 0 and {item.quantity}"
                )

            damage_fee = _fee(item.damage_fee) if decision.damage_cost is None else to_money(decision.damage_cost)
            if damage_fee < ZERO:
                raise ValidationError(f"damage_cost for item {item.id} cannot be negative")

            return_date = decision.actual_return_date
            if return_date is None and decision.return_status == RETURN_STATUS_RETURNED:
                return_date = now

            late_return = decision.late_return
            if late_return is None and return_date is not None and order.end_datetime is not None:
                late_return = as_utc_naive(return_date) > as_utc_naive(order.end_datetime)

            changes = {
                "return_status": decision.return_status,
                "returned_quantity": returned_quantity,
                "damage_fee": damage_fee,
            }
            if return_date is not None:
                changes["actual_return_date"] = return_date
            if late_return is not None:
                changes["late_return"] = late_return
            if decision.description is not None:
                changes["damage_description"] = decision.description
            if decision.missing_note is not None:
                changes["missing_note"] = decision.missing_note
            planned[item.id] = changes
        return planned

    def _persist_order(self, order, changes: dict) -> None:
        """
        Write the order partial. When the store rejects the resolved status,
        retry exactly once with "completed"; a second rejection is fatal.
        """
        try:
            self.repository.update_order(order, changes)
            return
        except ConstraintError as exc:
            rejected = changes.get("status")
            if rejected is None or rejected == ORDER_STATUS_COMPLETED:
                raise PersistenceError(f"Order {order.id} update rejected: {exc.message}") from exc
            logger.warning(
                "Order %s: status '%s' rejected by store, falling back to '%s'",
                order.id, rejected, ORDER_STATUS_COMPLETED,
            )

        fallback = dict(changes, status=ORDER_STATUS_COMPLETED)
        try:
            self.repository.update_order(order, fallback)
        except ConstraintError as exc:
            raise PersistenceError(
                f"Order {order.id} update rejected after status fallback: {exc.message}"
            ) from exc


def _fee(value) -> Decimal:
    return to_money(value) if value is not None else ZERO


def _returned_quantity(item, decision: ItemReturn) -> int:
    if decision.returned_quantity is not None:
        return decision.returned_quantity
    if decision.return_status == RETURN_STATUS_RETURNED:
        return item.quantity
    return item.returned_quantity or 0


def _item_action(return_status: str) -> str:
    if return_status == RETURN_STATUS_RETURNED:
        return AUDIT_ITEM_RETURNED
    if return_status == RETURN_STATUS_MISSING:
        return AUDIT_ITEM_MISSING
    return AUDIT_ITEM_UPDATED


def _item_notes(item) -> str:
    parts = [f"returned {item.returned_quantity}/{item.quantity}"]
    if item.damage_fee:
        parts.append(f"damage fee {to_money(item.damage_fee)}")
    if item.damage_description:
        parts.append(f"damage: {item.damage_description}")
    if item.missing_note:
        parts.append(f"missing: {item.missing_note}")
    return "; ".join(parts)
