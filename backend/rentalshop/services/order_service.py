# Overview: Service-layer operations for rental orders; creation, edits, status moves and reads.

"""
Rental Order Service

WHY: Every write that changes an order's money fields has to leave
total_amount consistent with its components. This service owns all order
writes other than returns (return_service) and deposit movements
(deposit_service), and recomputes the total after each one.

DESIGN PRINCIPLES:
- Each public write is one transaction, retried on store timeouts only
- Validation runs before the first write
- GST rate and inclusivity are snapshotted on the order at creation; later
  recomputes use the snapshot, never the current staff profile
- Every status move appends an audit event

STATUS MOVES OWNED HERE:
    (create)  -> scheduled | active       start date after today => scheduled
    scheduled -> active                   start_rental
    scheduled | active -> cancelled       cancel_order (window applies to active)
    active    -> pending_return           mark_overdue_orders
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from ..errors import ConflictError, ValidationError
from ..models import Order, OrderAuditEvent, OrderItem
from ..models.orders import (
    ORDER_STATUS_ACTIVE,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PENDING_RETURN,
    ORDER_STATUS_SCHEDULED,
    RETURN_STATUS_MISSING,
)
from ..money import ZERO, money_to_json, to_money
from ..schemas import OrderInput
from ..time_utils import business_today, utcnow
from .concurrency import run_with_retry
from .deposit_service import DepositLedger
from .document_service import allocate_invoice_number
from .lifecycle_service import (
    DEFAULT_CANCEL_WINDOW_MINUTES,
    can_cancel,
    can_start,
    is_overdue,
    is_terminal,
    seed_status,
)
from .pricing_service import (
    DEFAULT_GST_RATE,
    GstSettings,
    calculate_gst_amount,
    calculate_line_total,
    calculate_outstanding,
    calculate_subtotal,
    calculate_total,
    ensure_non_negative_total,
    order_total,
    resolve_gst_settings,
)

logger = logging.getLogger(__name__)

AUDIT_ORDER_CREATED = "order_created"
AUDIT_ORDER_UPDATED = "order_updated"
AUDIT_RENTAL_STARTED = "rental_started"
AUDIT_ORDER_CANCELLED = "order_cancelled"
AUDIT_CHARGES_UPDATED = "charges_updated"
AUDIT_ITEM_QUANTITY_UPDATED = "item_quantity_updated"
AUDIT_ITEM_DAMAGE_UPDATED = "item_damage_updated"
AUDIT_MARKED_OVERDUE = "marked_overdue"


class OrderService:
    """Order writes and reads over an injected OrderRepository."""

    def __init__(
        self,
        repository,
        *,
        invoice_prefix: str = "GLAORD",
        business_timezone: str = "UTC",
        cancel_window_minutes: int = DEFAULT_CANCEL_WINDOW_MINUTES,
        default_gst_rate=DEFAULT_GST_RATE,
        retry_attempts: int = 3,
    ):
        self.repository = repository
        self.invoice_prefix = invoice_prefix
        self.business_timezone = business_timezone
        self.cancel_window_minutes = cancel_window_minutes
        self.default_gst_rate = to_money(default_gst_rate)
        self.retry_attempts = retry_attempts
        self.ledger = DepositLedger(repository, retry_attempts=retry_attempts)

    def _run(self, func):
        def _op():
            with self.repository.transaction():
                return func()
        return run_with_retry(_op, attempts=self.retry_attempts)

    # =========================================================================
    # CREATION AND EDITS
    # =========================================================================

    def create_order(self, data: OrderInput, actor_id: str, now: Optional[datetime] = None) -> Order:
        """
        Create an order with its items.

        Derived on the way in: line totals, subtotal, GST (from the staff
        profile, or the super admin's for other roles), total, initial status
        and, when not supplied, the invoice number. A deposit marked as
        collected is written to the ledger in the same transaction.
        """
        now = now or utcnow()

        def _create():
            repo = self.repository
            repo.get_customer(data.customer_id)
            repo.get_branch(data.branch_id)
            staff = repo.get_profile(data.staff_id)
            super_admin = None if staff.is_super_admin else repo.find_super_admin()
            gst = resolve_gst_settings(staff, super_admin, self.default_gst_rate)

            items = _build_items(data.items)
            subtotal = calculate_subtotal(item.line_total for item in items)
            gst_amount = calculate_gst_amount(subtotal, gst)
            total = ensure_non_negative_total(calculate_total(
                subtotal=subtotal,
                gst_amount=gst_amount,
                gst_included=gst.included,
                late_fee=data.late_fee,
                discount_amount=data.discount_amount,
            ))

            invoice_number = data.invoice_number
            if invoice_number:
                if repo.invoice_number_exists(invoice_number):
                    raise ValidationError(f"Invoice number {invoice_number} is already in use")
            else:
                invoice_number = allocate_invoice_number(repo, self.invoice_prefix, now)

            status = seed_status(data.start_date, business_today(self.business_timezone, now))
            order = repo.insert(Order(
                invoice_number=invoice_number,
                branch_id=data.branch_id,
                staff_id=data.staff_id,
                customer_id=data.customer_id,
                booking_date=data.booking_date or now,
                start_date=data.start_date,
                end_date=data.end_date,
                start_datetime=data.start_datetime,
                end_datetime=data.end_datetime,
                status=status,
                subtotal=subtotal,
                gst_amount=gst_amount,
                gst_rate=gst.rate,
                gst_included=gst.included,
                late_fee=data.late_fee,
                discount_amount=data.discount_amount,
                damage_fee_total=ZERO,
                total_amount=total,
                security_deposit_amount=data.security_deposit_amount,
                items=items,
                created_at=now,
                updated_at=now,
            ))

            repo.append_audit_event(OrderAuditEvent(
                order_id=order.id,
                action=AUDIT_ORDER_CREATED,
                new_status=status,
                actor_id=actor_id,
                notes=f"Invoice {invoice_number}; total {total}",
                created_at=now,
            ))

            deposit = to_money(data.security_deposit_amount)
            if data.security_deposit_collected and deposit > ZERO:
                self.ledger.record_collection(order, deposit, actor_id, method=data.deposit_method, now=now)
            else:
                self.ledger.refresh_balance(order)

            logger.info("Order %s created (%s, status %s, total %s)", order.id, invoice_number, status, total)
            return order

        return self._run(_create)

    def update_order(
        self,
        order_id: int,
        data: OrderInput,
        actor_id: str,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Edit an order before any return is recorded; items are replaced wholesale.

        GST is recomputed with the order's own snapshot rate. A scheduled
        order is re-seeded from its (possibly moved) start date.
        """
        now = now or utcnow()

        def _update():
            repo = self.repository
            order = self._load(order_id, expected_version)
            if is_terminal(order.status):
                raise ValidationError(f"Cannot edit a {order.status} order")
            if any((item.returned_quantity or 0) > 0 or item.return_status == RETURN_STATUS_MISSING for item in order.items):
                raise ValidationError("Cannot edit an order after returns have been recorded")
            if data.customer_id != order.customer_id:
                repo.get_customer(data.customer_id)
            if data.invoice_number and data.invoice_number != order.invoice_number:
                if repo.invoice_number_exists(data.invoice_number):
                    raise ValidationError(f"Invoice number {data.invoice_number} is already in use")

            items = _build_items(data.items)
            subtotal = calculate_subtotal(item.line_total for item in items)
            gst_amount = calculate_gst_amount(subtotal, _snapshot_gst(order))
            total = ensure_non_negative_total(calculate_total(
                subtotal=subtotal,
                gst_amount=gst_amount,
                gst_included=bool(order.gst_included),
                late_fee=data.late_fee,
                discount_amount=data.discount_amount,
            ))

            previous_status = order.status
            changes = {
                "customer_id": data.customer_id,
                "start_date": data.start_date,
                "end_date": data.end_date,
                "start_datetime": data.start_datetime,
                "end_datetime": data.end_datetime,
                "subtotal": subtotal,
                "gst_amount": gst_amount,
                "late_fee": data.late_fee,
                "discount_amount": data.discount_amount,
                "damage_fee_total": ZERO,
                "total_amount": total,
                "security_deposit_amount": data.security_deposit_amount,
                "updated_at": now,
            }
            if data.invoice_number:
                changes["invoice_number"] = data.invoice_number
            if previous_status == ORDER_STATUS_SCHEDULED:
                changes["status"] = seed_status(data.start_date, business_today(self.business_timezone, now))

            repo.replace_items(order, items)
            repo.update_order(order, changes)
            self.ledger.refresh_balance(order)
            repo.append_audit_event(OrderAuditEvent(
                order_id=order.id,
                action=AUDIT_ORDER_UPDATED,
                previous_status=previous_status,
                new_status=order.status,
                actor_id=actor_id,
                notes=f"{len(items)} item(s); total {total}",
                created_at=now,
            ))
            return order

        return self._run(_update)

    # =========================================================================
    # STATUS MOVES
    # =========================================================================

    def start_rental(self, order_id: int, actor_id: str, now: Optional[datetime] = None) -> Order:
        """scheduled -> active; start_datetime becomes now."""
        now = now or utcnow()

        def _start():
            order = self.repository.get_order(order_id, lock=True)
            if not can_start(order):
                raise ValidationError(f"Only scheduled orders can be started (order is {order.status})")
            self.repository.update_order(order, {
                "status": ORDER_STATUS_ACTIVE,
                "start_datetime": now,
                "updated_at": now,
            })
            self._audit(order, AUDIT_RENTAL_STARTED, ORDER_STATUS_SCHEDULED, actor_id, None, now)
            return order

        return self._run(_start)

    def cancel_order(self, order_id: int, actor_id: str, now: Optional[datetime] = None) -> Order:
        now = now or utcnow()

        def _cancel():
            order = self.repository.get_order(order_id, lock=True)
            if not can_cancel(order, now, self.cancel_window_minutes):
                raise ValidationError(
                    f"Order {order_id} can no longer be cancelled (status {order.status})"
                )
            previous_status = order.status
            self.repository.update_order(order, {"status": ORDER_STATUS_CANCELLED, "updated_at": now})
            self._audit(order, AUDIT_ORDER_CANCELLED, previous_status, actor_id, None, now)
            logger.info("Order %s cancelled by %s", order.id, actor_id)
            return order

        return self._run(_cancel)

    def mark_overdue_orders(self, now: Optional[datetime] = None, actor_id: str = "system") -> list[int]:
        """Move active orders past their end time to pending_return. Returns the moved ids."""
        now = now or utcnow()

        def _mark():
            moved = []
            for order in self.repository.find_orders(statuses=[ORDER_STATUS_ACTIVE]):
                if not is_overdue(order, now):
                    continue
                self.repository.update_order(order, {"status": ORDER_STATUS_PENDING_RETURN, "updated_at": now})
                self._audit(order, AUDIT_MARKED_OVERDUE, ORDER_STATUS_ACTIVE, actor_id, None, now)
                moved.append(order.id)
            return moved

        moved = self._run(_mark)
        if moved:
            logger.info("Marked %s order(s) pending_return", len(moved))
        return moved

    # =========================================================================
    # CHARGES AND ITEMS
    # =========================================================================

    def update_charges(
        self,
        order_id: int,
        actor_id: str,
        late_fee: Optional[Decimal] = None,
        discount: Optional[Decimal] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Set the late fee and/or discount; total is recomputed."""
        now = now or utcnow()

        def _charges():
            order = self._load(order_id, expected_version)
            if order.status == ORDER_STATUS_CANCELLED:
                raise ValidationError("Cannot change charges on a cancelled order")
            new_late_fee = to_money(order.late_fee) if late_fee is None else to_money(late_fee)
            new_discount = to_money(order.discount_amount) if discount is None else to_money(discount)
            if new_late_fee < ZERO or new_discount < ZERO:
                raise ValidationError("late_fee and discount cannot be negative")
            total = ensure_non_negative_total(
                order_total(order, late_fee=new_late_fee, discount_amount=new_discount)
            )
            self.repository.update_order(order, {
                "late_fee": new_late_fee,
                "discount_amount": new_discount,
                "total_amount": total,
                "updated_at": now,
            })
            self._audit(
                order, AUDIT_CHARGES_UPDATED, order.status, actor_id,
                f"late fee {new_late_fee}; discount {new_discount}; total {total}", now,
            )
            return order

        return self._run(_charges)

    def update_item_quantity(self, item_id: int, quantity: int, actor_id: str, now: Optional[datetime] = None) -> Order:
        """
        Change an item's quantity; line total, subtotal, GST and total follow.

        GST uses the order's snapshot rate.
        """
        now = now or utcnow()

        def _quantity():
            repo = self.repository
            item = repo.get_item(item_id)
            order = repo.get_order(item.order_id, lock=True)
            if is_terminal(order.status):
                raise ValidationError(f"Cannot change items on a {order.status} order")
            if quantity is None or int(quantity) <= 0:
                raise ValidationError("quantity must be positive")
            if int(quantity) < (item.returned_quantity or 0):
                raise ValidationError(
                    f"quantity cannot be below the {item.returned_quantity} unit(s) already returned"
                )

            previous = item.quantity
            repo.update_item(item, {
                "quantity": int(quantity),
                "line_total": calculate_line_total(int(quantity), item.price_per_day),
            })
            items = repo.list_items(order.id)
            subtotal = calculate_subtotal(i.line_total for i in items)
            gst_amount = calculate_gst_amount(subtotal, _snapshot_gst(order))
            total = ensure_non_negative_total(order_total(order, subtotal=subtotal, gst_amount=gst_amount))
            repo.update_order(order, {
                "subtotal": subtotal,
                "gst_amount": gst_amount,
                "total_amount": total,
                "updated_at": now,
            })
            self._audit(
                order, AUDIT_ITEM_QUANTITY_UPDATED, order.status, actor_id,
                f"item {item.id}: quantity {previous} -> {quantity}", now, item_id=item.id,
            )
            return order

        return self._run(_quantity)

    def update_item_damage(
        self,
        item_id: int,
        actor_id: str,
        damage_cost: Optional[Decimal] = None,
        damage_description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Set or clear an item's damage. A cost of None or 0 clears the fee.

        damage_fee_total is re-summed over all items; status is left alone.
        """
        now = now or utcnow()

        def _damage():
            repo = self.repository
            item = repo.get_item(item_id)
            order = repo.get_order(item.order_id, lock=True)
            if order.status == ORDER_STATUS_CANCELLED:
                raise ValidationError("Cannot record damage on a cancelled order")
            fee = to_money(damage_cost) if damage_cost is not None else ZERO
            if fee < ZERO:
                raise ValidationError("damage_cost cannot be negative")
            description = (damage_description or "").strip() or None

            repo.update_item(item, {
                "damage_fee": fee if fee > ZERO else None,
                "damage_description": description,
            })
            items = repo.list_items(order.id)
            damage_total = sum((to_money(i.damage_fee) for i in items if i.damage_fee is not None), ZERO)
            total = ensure_non_negative_total(order_total(order, damage_fee_total=damage_total))
            repo.update_order(order, {
                "damage_fee_total": damage_total,
                "total_amount": total,
                "updated_at": now,
            })
            self._audit(
                order, AUDIT_ITEM_DAMAGE_UPDATED, order.status, actor_id,
                f"item {item.id}: damage fee {fee}", now, item_id=item.id,
            )
            return order

        return self._run(_damage)

    def recalculate_totals(self, order_id: int) -> bool:
        """
        Re-derive line totals, subtotal, GST (snapshot rate), damage total and
        total from the items.

        Returns True when anything had drifted and was rewritten.
        """
        def _recalc():
            repo = self.repository
            order = repo.get_order(order_id, lock=True)
            items = repo.list_items(order.id)
            for item in items:
                expected = calculate_line_total(item.quantity, item.price_per_day)
                if to_money(item.line_total) != expected:
                    repo.update_item(item, {"line_total": expected})
            subtotal = calculate_subtotal(i.line_total for i in items)
            gst_amount = calculate_gst_amount(subtotal, _snapshot_gst(order))
            damage_total = sum((to_money(i.damage_fee) for i in items if i.damage_fee is not None), ZERO)
            total = order_total(order, subtotal=subtotal, gst_amount=gst_amount, damage_fee_total=damage_total)

            changes = {}
            if to_money(order.subtotal) != subtotal:
                changes["subtotal"] = subtotal
            if to_money(order.gst_amount) != gst_amount:
                changes["gst_amount"] = gst_amount
            if to_money(order.damage_fee_total) != damage_total:
                changes["damage_fee_total"] = damage_total
            if to_money(order.total_amount) != total:
                changes["total_amount"] = total
            if changes:
                repo.update_order(order, changes)
                logger.warning("Order %s totals drifted; rewrote %s", order.id, ", ".join(sorted(changes)))
            return bool(changes)

        return self._run(_recalc)

    # =========================================================================
    # READS
    # =========================================================================

    def get_order(self, order_id: int) -> Order:
        return self.repository.get_order(order_id)

    def list_orders(
        self,
        *,
        branch_id: Optional[int] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[Order]:
        return self.repository.find_orders(
            branch_id=branch_id,
            statuses=[status] if status else None,
            created_from=start,
            created_to=end,
            search=search,
            limit=limit,
            offset=offset,
        )

    def get_customer_orders(self, customer_id: int) -> list[Order]:
        self.repository.get_customer(customer_id)
        return self.repository.find_orders(customer_id=customer_id)

    def get_order_timeline(self, order_id: int) -> list[dict]:
        """
        Audit events oldest first. Orders created before the audit trail
        existed get a synthetic order_created entry.
        """
        order = self.repository.get_order(order_id)
        events = [event.to_dict() for event in self.repository.list_audit_events(order_id)]
        if not any(event["action"] == AUDIT_ORDER_CREATED for event in events):
            created = order.to_dict(include_items=False)
            events.append({
                "id": f"created-{order.id}",
                "order_id": order.id,
                "order_item_id": None,
                "action": AUDIT_ORDER_CREATED,
                "previous_status": None,
                "new_status": order.status,
                "actor_id": str(order.staff_id),
                "notes": None,
                "created_at": created["created_at"],
            })
        events.sort(key=lambda event: event["created_at"] or "")
        return events

    def build_order_snapshot(self, order_id: int, now: Optional[datetime] = None) -> dict:
        """
        Read-only bundle handed to the invoice renderer: order with items,
        customer, staff, branch and billing identity.
        """
        now = now or utcnow()
        repo = self.repository
        order = repo.get_order(order_id)
        staff = order.staff
        billing = staff
        if staff is not None and not staff.is_super_admin:
            billing = repo.find_super_admin() or staff

        return {
            "order": order.to_dict(),
            "customer": order.customer.to_dict() if order.customer else None,
            "staff": staff.to_dict() if staff else None,
            "branch": order.branch.to_dict() if order.branch else None,
            "billing": {
                "company_name": billing.company_name if billing else None,
                "company_address": billing.company_address if billing else None,
                "gst_number": billing.gst_number if billing else None,
                "upi_id": billing.upi_id if billing else None,
                "show_invoice_terms": bool(billing.show_invoice_terms) if billing else False,
                "show_invoice_qr": bool(billing.show_invoice_qr) if billing else False,
            },
            "outstanding_amount": money_to_json(calculate_outstanding(order)),
            "can_cancel": can_cancel(order, now, self.cancel_window_minutes),
        }

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _load(self, order_id: int, expected_version: Optional[int]) -> Order:
        order = self.repository.get_order(order_id, lock=True)
        if expected_version is not None and order.version_id != expected_version:
            raise ConflictError(
                f"Order {order_id} is at version {order.version_id}, expected {expected_version}; reload and retry"
            )
        return order

    def _audit(self, order, action, previous_status, actor_id, notes, now, item_id=None):
        self.repository.append_audit_event(OrderAuditEvent(
            order_id=order.id,
            order_item_id=item_id,
            action=action,
            previous_status=previous_status,
            new_status=order.status,
            actor_id=actor_id,
            notes=notes,
            created_at=now,
        ))


def _build_items(inputs: Iterable) -> list[OrderItem]:
    items = [
        OrderItem(
            product_name=entry.product_name,
            photo_url=entry.photo_url or "",
            quantity=entry.quantity,
            price_per_day=to_money(entry.price_per_day),
            days=entry.days,
            line_total=calculate_line_total(entry.quantity, entry.price_per_day),
        )
        for entry in inputs
    ]
    if not items:
        raise ValidationError("An order needs at least one item")
    return items


def _snapshot_gst(order) -> GstSettings:
    return GstSettings(rate=to_money(order.gst_rate), included=bool(order.gst_included))
