"""
Order creation, edits, status moves and reads.
"""

import dataclasses
import re
from datetime import timedelta
from decimal import Decimal

import pytest

from rentalshop.errors import ConflictError, NotFoundError, ValidationError
from rentalshop.models import Order, OrderAuditEvent, PaymentTransaction
from rentalshop.schemas import ItemReturn
from rentalshop.services.return_service import ReturnProcessor

from factories import ACTOR, NOW, order_input

INVOICE_PATTERN = re.compile(r"^GLAORD-20261018-\d{4}$")


# =============================================================================
# CREATION
# =============================================================================

def test_create_order_derives_totals_and_status(order, db_session):
    assert INVOICE_PATTERN.match(order.invoice_number)
    assert order.status == "active"
    assert order.subtotal == Decimal("2000.00")
    assert order.gst_rate == Decimal("5.00")
    assert order.gst_amount == Decimal("100.00")
    assert order.total_amount == Decimal("2100.00")
    assert order.items[0].line_total == Decimal("2000.00")
    assert order.deposit_balance == Decimal("1000.00")

    txn = db_session.query(PaymentTransaction).filter_by(order_id=order.id).one()
    assert txn.transaction_type == "deposit_collected"
    assert txn.amount == Decimal("1000.00")
    assert txn.method == "cash"


def test_start_tomorrow_creates_scheduled_order(make_order):
    order = make_order(start_date=NOW.date() + timedelta(days=1), end_datetime=NOW + timedelta(days=3))
    assert order.status == "scheduled"


def test_super_admin_uses_own_gst(order_service, branch, owner, customer):
    owner.gst_included = True
    data = order_input(branch, owner, customer, items=((1, "1050"),))
    order = order_service.create_order(data, ACTOR, now=NOW)
    assert order.gst_included is True
    assert order.gst_amount == Decimal("50.00")
    assert order.total_amount == Decimal("1050.00")


def test_duplicate_invoice_number_is_rejected(make_order, db_session):
    make_order(invoice_number="GLAORD-20261018-0001")
    with pytest.raises(ValidationError):
        make_order(invoice_number="GLAORD-20261018-0001")
    assert db_session.query(Order).count() == 1


def test_discount_above_charges_is_rejected(make_order, db_session):
    with pytest.raises(ValidationError):
        make_order(discount="5000")
    assert db_session.query(Order).count() == 0


def test_unknown_customer_is_not_found(order_service, branch, staff, customer):
    data = dataclasses.replace(order_input(branch, staff, customer), customer_id=424242)
    with pytest.raises(NotFoundError):
        order_service.create_order(data, ACTOR, now=NOW)


def test_creation_is_audited(order, order_service):
    events = order_service.get_order_timeline(order.id)
    assert events[0]["action"] == "order_created"
    assert events[0]["new_status"] == "active"
    assert [e["action"] for e in events].count("order_created") == 1


# =============================================================================
# EDITS
# =============================================================================

def test_update_order_replaces_items(order, order_service, branch, staff, customer):
    data = order_input(branch, staff, customer, items=((1, "800"), (3, "100")), deposit="500")
    updated = order_service.update_order(order.id, data, ACTOR, now=NOW)

    assert len(updated.items) == 2
    assert updated.subtotal == Decimal("1100.00")
    assert updated.gst_amount == Decimal("55.00")
    assert updated.total_amount == Decimal("1155.00")
    assert updated.security_deposit_amount == Decimal("500.00")


def test_update_order_blocked_after_returns(order, order_service, repository, branch, staff, customer):
    item = order.items[0]
    ReturnProcessor(repository).process_return(
        order.id, [ItemReturn(item_id=item.id, return_status="not_yet_returned", returned_quantity=1)], ACTOR, now=NOW,
    )
    with pytest.raises(ValidationError):
        order_service.update_order(order.id, order_input(branch, staff, customer), ACTOR, now=NOW)


def test_update_order_checks_version(order, order_service, branch, staff, customer):
    with pytest.raises(ConflictError):
        order_service.update_order(
            order.id, order_input(branch, staff, customer), ACTOR, expected_version=order.version_id - 1, now=NOW,
        )


def test_item_quantity_uses_order_gst_snapshot(order, order_service, owner, db_session):
    owner.gst_rate = Decimal("18")
    db_session.commit()

    updated = order_service.update_item_quantity(order.items[0].id, 3, ACTOR, now=NOW)
    assert updated.items[0].line_total == Decimal("3000.00")
    assert updated.subtotal == Decimal("3000.00")
    assert updated.gst_amount == Decimal("150.00")
    assert updated.total_amount == Decimal("3150.00")


def test_item_quantity_must_be_positive(order, order_service):
    with pytest.raises(ValidationError):
        order_service.update_item_quantity(order.items[0].id, 0, ACTOR, now=NOW)


def test_update_charges_recomputes_total(order, order_service):
    updated = order_service.update_charges(order.id, ACTOR, late_fee=Decimal("200"), discount=Decimal("50"), now=NOW)
    assert updated.total_amount == Decimal("2250.00")

    updated = order_service.update_charges(order.id, ACTOR, discount=Decimal("0"), now=NOW)
    assert updated.late_fee == Decimal("200.00")
    assert updated.total_amount == Decimal("2300.00")


def test_item_damage_set_and_cleared(order, order_service):
    item_id = order.items[0].id
    updated = order_service.update_item_damage(item_id, ACTOR, damage_cost=Decimal("300"), damage_description="zip broken", now=NOW)
    assert updated.damage_fee_total == Decimal("300.00")
    assert updated.total_amount == Decimal("2400.00")
    assert updated.status == "active"

    updated = order_service.update_item_damage(item_id, ACTOR, damage_cost=Decimal("0"), now=NOW)
    assert updated.items[0].damage_fee is None
    assert updated.damage_fee_total == Decimal("0")
    assert updated.total_amount == Decimal("2100.00")


def test_recalculate_totals_repairs_drift(order, order_service, db_session):
    order.total_amount = Decimal("1.00")
    db_session.commit()

    assert order_service.recalculate_totals(order.id) is True
    assert order_service.get_order(order.id).total_amount == Decimal("2100.00")
    assert order_service.recalculate_totals(order.id) is False


def test_recalculate_totals_rederives_gst_from_snapshot_rate(order, order_service, db_session):
    order.subtotal = Decimal("1500.00")
    order.gst_amount = Decimal("75.00")
    order.total_amount = Decimal("1575.00")
    db_session.commit()

    assert order_service.recalculate_totals(order.id) is True
    repaired = order_service.get_order(order.id)
    assert repaired.gst_rate == Decimal("5.00")
    assert repaired.subtotal == Decimal("2000.00")
    assert repaired.gst_amount == Decimal("100.00")
    assert repaired.total_amount == Decimal("2100.00")


# =============================================================================
# STATUS MOVES
# =============================================================================

def test_start_rental_activates_scheduled_order(make_order, order_service, db_session):
    order = make_order(start_date=NOW.date() + timedelta(days=1), end_datetime=NOW + timedelta(days=3))
    started_at = NOW + timedelta(days=1)
    started = order_service.start_rental(order.id, ACTOR, now=started_at)

    assert started.status == "active"
    assert started.start_datetime == started_at
    with pytest.raises(ValidationError):
        order_service.start_rental(order.id, ACTOR, now=started_at)


def test_cancel_active_order_within_window(order, order_service):
    cancelled = order_service.cancel_order(order.id, ACTOR, now=NOW + timedelta(minutes=5))
    assert cancelled.status == "cancelled"


def test_cancel_active_order_after_window_is_rejected(order, order_service):
    with pytest.raises(ValidationError):
        order_service.cancel_order(order.id, ACTOR, now=NOW + timedelta(minutes=15))
    assert order_service.get_order(order.id).status == "active"


def test_scheduled_order_can_be_cancelled_any_time(make_order, order_service):
    order = make_order(start_date=NOW.date() + timedelta(days=10), end_datetime=NOW + timedelta(days=12))
    cancelled = order_service.cancel_order(order.id, ACTOR, now=NOW + timedelta(days=5))
    assert cancelled.status == "cancelled"


def test_mark_overdue_moves_only_late_active_orders(make_order, order_service, db_session):
    late = make_order()
    later = make_order(end_datetime=NOW + timedelta(days=10))

    moved = order_service.mark_overdue_orders(now=NOW + timedelta(days=3))
    assert moved == [late.id]
    assert order_service.get_order(late.id).status == "pending_return"
    assert order_service.get_order(later.id).status == "active"

    actions = [e.action for e in db_session.query(OrderAuditEvent).filter_by(order_id=late.id)]
    assert "marked_overdue" in actions


# =============================================================================
# READS
# =============================================================================

def test_list_orders_filters(make_order, order_service, branch):
    first = make_order(invoice_number="GLAORD-20261018-1111")
    make_order(invoice_number="GLAORD-20261018-2222")

    assert len(order_service.list_orders(branch_id=branch.id)) == 2
    found = order_service.list_orders(search="1111")
    assert [o.id for o in found] == [first.id]
    assert order_service.list_orders(status="completed") == []
    assert len(order_service.list_orders(limit=1)) == 1


def test_customer_orders(order, order_service, customer):
    assert [o.id for o in order_service.get_customer_orders(customer.id)] == [order.id]
    with pytest.raises(NotFoundError):
        order_service.get_customer_orders(424242)


def test_timeline_synthesizes_creation_event(order, order_service, db_session):
    db_session.query(OrderAuditEvent).filter_by(order_id=order.id).delete()
    db_session.commit()

    events = order_service.get_order_timeline(order.id)
    assert len(events) == 1
    assert events[0]["id"] == f"created-{order.id}"
    assert events[0]["action"] == "order_created"


def test_snapshot_bills_under_super_admin(order, order_service):
    snapshot = order_service.build_order_snapshot(order.id, now=NOW + timedelta(minutes=1))

    assert snapshot["order"]["invoice_number"] == order.invoice_number
    assert snapshot["customer"]["name"] == "Asha Rao"
    assert snapshot["staff"]["username"] == "counter"
    assert snapshot["branch"]["name"] == "Main Branch"
    assert snapshot["billing"]["company_name"] == "Glamour Rentals"
    assert snapshot["billing"]["gst_number"] == "29ABCDE1234F1Z5"
    assert snapshot["outstanding_amount"] == 1100.0
    assert snapshot["can_cancel"] is True
