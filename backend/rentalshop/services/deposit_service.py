# Overview: Service-layer operations for security deposits and outstanding collections.

"""
Deposit / Outstanding Ledger

Money received or paid back against an order is recorded as an append-only
PaymentTransaction; the order's deposit_balance and
security_deposit_refunded_amount are derived from those rows after every
movement.

TRANSACTION TYPES:
    deposit_collected       deposit handed over by the customer
    deposit_refund          deposit paid back
    outstanding_collected   extra charges settled; never refundable

BALANCE RULES:
- refunds are capped by the effective deposit balance (+0.01 tolerance)
- collections are capped by the current outstanding amount (+0.01 tolerance)
- deposit_balance >= 0 always
- a balance below 0.01 after a refund marks the deposit as refunded
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..errors import ConflictError, ValidationError
from ..models import OrderAuditEvent, PaymentTransaction
from ..models.payments import (
    TXN_DEPOSIT_COLLECTED,
    TXN_DEPOSIT_REFUND,
    TXN_OUTSTANDING_COLLECTED,
)
from ..money import MONEY_TOLERANCE, ZERO, to_money
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .pricing_service import (
    calculate_outstanding,
    exceeds,
    local_deposit_balance,
    refundable_deposit,
)

logger = logging.getLogger(__name__)


class DepositLedger:
    """Deposit refunds, deposit collection and outstanding collection for orders."""

    def __init__(self, repository, retry_attempts: int = 3):
        self.repository = repository
        self.retry_attempts = retry_attempts

    # =========================================================================
    # REFUNDS
    # =========================================================================

    def refund_security_deposit(
        self,
        order_id: int,
        amount,
        actor_id: str,
        method: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ):
        """
        Pay back part or all of the security deposit.

        Raises:
            ValidationError: amount <= 0, or above the effective balance + 0.01
            NotFoundError: order missing
            ConflictError: expected_version does not match
        """
        amount = _positive_amount(amount)

        def _op():
            with self.repository.transaction():
                order = self._load(order_id, expected_version)
                ceiling = refundable_deposit(order)
                if exceeds(amount, ceiling):
                    raise ValidationError(
                        f"Refund amount {amount} exceeds available deposit balance {ceiling}"
                    )

                stamp = now or utcnow()
                self._append(order, TXN_DEPOSIT_REFUND, amount, actor_id, method, reference, notes, stamp)
                self.refresh_balance(order)

                if to_money(order.deposit_balance) < MONEY_TOLERANCE:
                    self.repository.update_order(order, {
                        "security_deposit_refunded": True,
                        "security_deposit_refund_date": stamp,
                    })

                self._audit(order, "deposit_refunded", actor_id, f"Refunded {amount}; balance {order.deposit_balance}", stamp)
                logger.info("Refunded %s on order %s (balance now %s)", amount, order.id, order.deposit_balance)
                return order

        return run_with_retry(_op, attempts=self.retry_attempts)

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def collect_outstanding_amount(
        self,
        order_id: int,
        amount,
        actor_id: str,
        method: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ):
        """
        Settle charges the deposit does not cover.

        The amount is added to additional_amount_collected and the order is
        marked as deposit-collected; the ledger row is typed
        outstanding_collected so it never counts toward a refund.
        """
        amount = _positive_amount(amount)

        def _op():
            with self.repository.transaction():
                order = self._load(order_id, expected_version)
                outstanding = calculate_outstanding(order)
                if exceeds(amount, outstanding):
                    raise ValidationError(
                        f"Amount {amount} exceeds outstanding amount {outstanding}"
                    )

                stamp = now or utcnow()
                self._append(order, TXN_OUTSTANDING_COLLECTED, amount, actor_id, method, reference, notes, stamp)
                self.repository.update_order(order, {
                    "additional_amount_collected": to_money(order.additional_amount_collected) + amount,
                    "security_deposit_collected": True,
                })
                self._audit(order, "outstanding_collected", actor_id, f"Collected {amount} of {outstanding} outstanding", stamp)
                logger.info("Collected %s outstanding on order %s", amount, order.id)
                return order

        return run_with_retry(_op, attempts=self.retry_attempts)

    def record_deposit_collection(
        self,
        order_id: int,
        actor_id: str,
        amount=None,
        method: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ):
        """
        Record the customer handing over the security deposit.

        amount defaults to whatever part of security_deposit_amount has not
        been collected yet.
        """
        def _op():
            with self.repository.transaction():
                order = self._load(order_id, expected_version)
                deposit = to_money(order.security_deposit_amount)
                already = sum(
                    (to_money(t.amount) for t in self.repository.list_transactions(order.id)
                     if t.transaction_type == TXN_DEPOSIT_COLLECTED),
                    ZERO,
                )
                remaining = max(ZERO, deposit - already)
                value = _positive_amount(remaining if amount is None else amount)
                if exceeds(value, remaining):
                    raise ValidationError(
                        f"Deposit amount {value} exceeds uncollected deposit {remaining}"
                    )

                stamp = now or utcnow()
                self.record_collection(order, value, actor_id, method, reference, notes, stamp)
                return order

        return run_with_retry(_op, attempts=self.retry_attempts)

    def record_collection(self, order, amount: Decimal, actor_id, method=None, reference=None, notes=None, now=None):
        """
        Append a deposit_collected row inside the caller's transaction.

        Used by order creation when the deposit is taken at the counter.
        """
        stamp = now or utcnow()
        self._append(order, TXN_DEPOSIT_COLLECTED, amount, actor_id, method, reference, notes, stamp)
        self.repository.update_order(order, {"security_deposit_collected": True})
        self.refresh_balance(order)
        self._audit(order, "deposit_collected", actor_id, f"Deposit collected {amount}", stamp)
        return order

    # =========================================================================
    # READS AND RECOMPUTE
    # =========================================================================

    def get_transactions(self, order_id: int) -> list[PaymentTransaction]:
        self.repository.get_order(order_id)
        return self.repository.list_transactions(order_id)

    def recalculate_balance(self, order_id: int):
        """Re-derive deposit_balance from the ledger (repair / operator use)."""
        def _op():
            with self.repository.transaction():
                order = self.repository.get_order(order_id, lock=True)
                self.refresh_balance(order)
                return order

        return run_with_retry(_op, attempts=self.retry_attempts)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _load(self, order_id, expected_version):
        order = self.repository.get_order(order_id, lock=True)
        if expected_version is not None and order.version_id != expected_version:
            raise ConflictError(
                f"Order {order_id} is at version {order.version_id}, expected {expected_version}; reload and retry"
            )
        return order

    def _append(self, order, transaction_type, amount, actor_id, method, reference, notes, stamp):
        self.repository.append_transaction(PaymentTransaction(
            order_id=order.id,
            transaction_type=transaction_type,
            amount=amount,
            method=method,
            reference=reference,
            notes=notes,
            actor_id=actor_id,
            occurred_at=stamp,
        ))

    def _audit(self, order, action, actor_id, notes, stamp):
        self.repository.append_audit_event(OrderAuditEvent(
            order_id=order.id,
            action=action,
            actor_id=actor_id,
            notes=notes,
            created_at=stamp,
        ))

    def refresh_balance(self, order):
        """Server-side aggregate when the store has one, else from the transaction list."""
        if self.repository.supports_balance_recalculation:
            return self.repository.recalculate_balances(order)

        balance, refunded = local_deposit_balance(order, self.repository.list_transactions(order.id))
        return self.repository.update_order(order, {
            "deposit_balance": balance,
            "security_deposit_refunded_amount": refunded,
        })


def _positive_amount(value) -> Decimal:
    try:
        amount = to_money(value)
    except ValueError as exc:
        raise ValidationError(str(exc))
    if amount <= ZERO:
        raise ValidationError("Amount must be greater than zero")
    return amount
