from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z
from .orders import _in_list


TXN_DEPOSIT_COLLECTED = "deposit_collected"
TXN_DEPOSIT_REFUND = "deposit_refund"
TXN_OUTSTANDING_COLLECTED = "outstanding_collected"

TRANSACTION_TYPES = (
    TXN_DEPOSIT_COLLECTED,
    TXN_DEPOSIT_REFUND,
    TXN_OUTSTANDING_COLLECTED,
)


class PaymentTransaction(db.Model):
    """
    Immutable money movement against an order.

    Amounts are always positive; transaction_type carries the direction.
    Deposit balance is derived from these rows:
        sum(deposit_collected) - sum(deposit_refund)
    Outstanding collections are kept apart so they never become refundable
    deposit.
    """
    __tablename__ = "payment_transactions"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="payment_transactions_amount_check"),
        db.CheckConstraint(_in_list("transaction_type", TRANSACTION_TYPES), name="payment_transactions_type_check"),
        db.Index("ix_payment_transactions_order_type", "order_id", "transaction_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_type = db.Column(db.String(32), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    method = db.Column(db.String(32), nullable=True)  # cash, upi, card, bank_transfer
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "transaction_type": self.transaction_type,
            "amount": money_to_json(self.amount),
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
