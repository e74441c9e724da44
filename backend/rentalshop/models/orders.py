from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z


ORDER_STATUS_SCHEDULED = "scheduled"
ORDER_STATUS_ACTIVE = "active"
ORDER_STATUS_PENDING_RETURN = "pending_return"
ORDER_STATUS_PARTIALLY_RETURNED = "partially_returned"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_COMPLETED_WITH_ISSUES = "completed_with_issues"
ORDER_STATUS_FLAGGED = "flagged"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_SCHEDULED,
    ORDER_STATUS_ACTIVE,
    ORDER_STATUS_PENDING_RETURN,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_COMPLETED_WITH_ISSUES,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PARTIALLY_RETURNED,
    ORDER_STATUS_FLAGGED,
)

RETURN_STATUS_NOT_YET_RETURNED = "not_yet_returned"
RETURN_STATUS_RETURNED = "returned"
RETURN_STATUS_MISSING = "missing"

RETURN_STATUSES = (
    RETURN_STATUS_NOT_YET_RETURNED,
    RETURN_STATUS_RETURNED,
    RETURN_STATUS_MISSING,
)


def _in_list(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class Order(db.Model):
    """
    Rental order: one per rental transaction.

    total_amount and deposit_balance are derived values persisted for reads;
    the services recompute them on every mutation.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint(_in_list("status", ORDER_STATUSES), name="orders_status_check"),
        db.CheckConstraint("deposit_balance >= 0", name="orders_deposit_balance_check"),
        db.Index("ix_orders_branch_status_created", "branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Date-only fields are legacy; the datetimes are authoritative
    booking_date = db.Column(db.DateTime(timezone=True), nullable=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    start_datetime = db.Column(db.DateTime(timezone=True), nullable=True)
    end_datetime = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.String(32), nullable=False, default=ORDER_STATUS_ACTIVE, index=True)

    # Charges
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    gst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    gst_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)  # percent, snapshot at creation
    gst_included = db.Column(db.Boolean, nullable=False, default=False)
    late_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    damage_fee_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Security deposit
    security_deposit_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    security_deposit_collected = db.Column(db.Boolean, nullable=False, default=False)
    security_deposit_refunded = db.Column(db.Boolean, nullable=False, default=False)
    security_deposit_refunded_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    security_deposit_refund_date = db.Column(db.DateTime(timezone=True), nullable=True)
    additional_amount_collected = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    deposit_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy=True,
    )
    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    staff = db.relationship("UserProfile", backref=db.backref("orders", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} invoice={self.invoice_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "branch_id": self.branch_id,
            "staff_id": self.staff_id,
            "customer_id": self.customer_id,
            "booking_date": to_utc_z(self.booking_date),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "start_datetime": to_utc_z(self.start_datetime),
            "end_datetime": to_utc_z(self.end_datetime),
            "status": self.status,
            "subtotal": money_to_json(self.subtotal),
            "gst_amount": money_to_json(self.gst_amount),
            "gst_rate": money_to_json(self.gst_rate),
            "gst_included": self.gst_included,
            "late_fee": money_to_json(self.late_fee),
            "discount_amount": money_to_json(self.discount_amount),
            "damage_fee_total": money_to_json(self.damage_fee_total),
            "total_amount": money_to_json(self.total_amount),
            "security_deposit_amount": money_to_json(self.security_deposit_amount),
            "security_deposit_collected": self.security_deposit_collected,
            "security_deposit_refunded": self.security_deposit_refunded,
            "security_deposit_refunded_amount": money_to_json(self.security_deposit_refunded_amount),
            "security_deposit_refund_date": to_utc_z(self.security_deposit_refund_date),
            "additional_amount_collected": money_to_json(self.additional_amount_collected),
            "deposit_balance": money_to_json(self.deposit_balance),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """One rented product line within an order. Owned by exactly one order."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint(_in_list("return_status", RETURN_STATUSES), name="order_items_return_status_check"),
        db.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="order_items_returned_quantity_check",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    photo_url = db.Column(db.String(512), nullable=False, default="")
    product_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_per_day = db.Column(db.Numeric(12, 2), nullable=False)
    days = db.Column(db.Integer, nullable=False, default=1)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    # Return tracking
    return_status = db.Column(db.String(32), nullable=False, default=RETURN_STATUS_NOT_YET_RETURNED)
    returned_quantity = db.Column(db.Integer, nullable=False, default=0)
    actual_return_date = db.Column(db.DateTime(timezone=True), nullable=True)
    late_return = db.Column(db.Boolean, nullable=True)
    damage_fee = db.Column(db.Numeric(12, 2), nullable=True)
    damage_description = db.Column(db.Text, nullable=True)
    missing_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", back_populates="items")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def pending_quantity(self) -> int:
        return max(0, (self.quantity or 0) - (self.returned_quantity or 0))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "photo_url": self.photo_url,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price_per_day": money_to_json(self.price_per_day),
            "days": self.days,
            "line_total": money_to_json(self.line_total),
            "return_status": self.return_status,
            "returned_quantity": self.returned_quantity,
            "pending_quantity": self.pending_quantity,
            "actual_return_date": to_utc_z(self.actual_return_date),
            "late_return": self.late_return,
            "damage_fee": money_to_json(self.damage_fee),
            "damage_description": self.damage_description,
            "missing_note": self.missing_note,
            "version_id": self.version_id,
        }


class OrderAuditEvent(db.Model):
    """
    Append-only order timeline (creation, returns, status changes, money).

    No updates or deletes; rows are written in the same transaction as the
    change they describe.
    """
    __tablename__ = "order_return_audit"
    __table_args__ = (
        db.Index("ix_order_return_audit_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    order_item_id = db.Column(db.Integer, nullable=True)
    action = db.Column(db.String(64), nullable=False)
    previous_status = db.Column(db.String(32), nullable=True)
    new_status = db.Column(db.String(32), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_item_id": self.order_item_id,
            "action": self.action,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "actor_id": self.actor_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
