# Overview: Record store for orders, items, payment transactions and audit events.

"""
Order Repository

The only object in the service layer that talks to the database. Every
service receives one in its constructor, so tests can hand in a subclass
that rejects a status, disables the server-side balance recompute, or
simulates a timeout.

CONTRACT:
- read-one raises NotFoundError; read-many returns lists
- writes flush immediately so store errors surface at the call site
- update_order() applies its partial inside a SAVEPOINT: a rejected value
  (CHECK constraint) leaves earlier writes in the transaction intact, which
  is what the status fallback relies on
- transaction() commits on success and rolls back everything on any error
- all SQLAlchemy exceptions leave this module as typed OrderErrors
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError
from ..models import (
    Branch,
    Customer,
    Order,
    OrderAuditEvent,
    OrderItem,
    PaymentTransaction,
    UserProfile,
)
from ..models.directory import ROLE_SUPER_ADMIN
from ..models.payments import TXN_DEPOSIT_COLLECTED, TXN_DEPOSIT_REFUND
from .concurrency import lock_for_update, store_errors, translate_store_error


class OrderRepository:
    """SQLAlchemy-backed record store over a single session."""

    # Set False in stores that have no atomic balance procedure; the deposit
    # ledger then recomputes the balance from the transaction list itself.
    supports_balance_recalculation = True

    def __init__(self, session):
        self.session = session

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @contextmanager
    def transaction(self):
        """All-or-nothing unit: commit on success, roll back on any error."""
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise translate_store_error(exc) from exc
        except Exception:
            self.session.rollback()
            raise

    # =========================================================================
    # READS
    # =========================================================================

    def get_order(self, order_id: int, *, lock: bool = False) -> Order:
        with store_errors():
            query = self.session.query(Order).filter(Order.id == order_id)
            if lock:
                query = lock_for_update(query)
            order = query.first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def find_orders(
        self,
        *,
        branch_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        statuses: Optional[Iterable[str]] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[Order]:
        with store_errors():
            query = self.session.query(Order)
            if branch_id is not None:
                query = query.filter(Order.branch_id == branch_id)
            if customer_id is not None:
                query = query.filter(Order.customer_id == customer_id)
            if statuses:
                query = query.filter(Order.status.in_(list(statuses)))
            if created_from is not None:
                query = query.filter(Order.created_at >= created_from)
            if created_to is not None:
                query = query.filter(Order.created_at <= created_to)
            if search:
                query = query.filter(Order.invoice_number.ilike(f"%{search}%"))
            query = query.order_by(Order.created_at.desc(), Order.id.desc())
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

    def invoice_number_exists(self, invoice_number: str) -> bool:
        with store_errors():
            return self.session.query(Order.id).filter_by(invoice_number=invoice_number).first() is not None

    def get_item(self, item_id: int) -> OrderItem:
        with store_errors():
            item = self.session.get(OrderItem, item_id)
        if not item:
            raise NotFoundError(f"Order item {item_id} not found")
        return item

    def list_items(self, order_id: int) -> list[OrderItem]:
        """Fresh read of every item on the order (pending changes are flushed first)."""
        with store_errors():
            return (
                self.session.query(OrderItem)
                .filter(OrderItem.order_id == order_id)
                .order_by(OrderItem.id)
                .populate_existing()
                .all()
            )

    def list_transactions(self, order_id: int) -> list[PaymentTransaction]:
        with store_errors():
            return (
                self.session.query(PaymentTransaction)
                .filter_by(order_id=order_id)
                .order_by(PaymentTransaction.occurred_at, PaymentTransaction.id)
                .all()
            )

    def list_audit_events(self, order_id: int) -> list[OrderAuditEvent]:
        with store_errors():
            return (
                self.session.query(OrderAuditEvent)
                .filter_by(order_id=order_id)
                .order_by(OrderAuditEvent.created_at, OrderAuditEvent.id)
                .all()
            )

    def get_customer(self, customer_id: int) -> Customer:
        with store_errors():
            customer = self.session.get(Customer, customer_id)
        if not customer:
            raise NotFoundError(f"Customer {customer_id} not found")
        return customer

    def find_customers(self, *, search: Optional[str] = None) -> list[Customer]:
        with store_errors():
            query = self.session.query(Customer)
            if search and search.strip():
                pattern = f"%{search.strip()}%"
                query = query.filter(or_(Customer.name.ilike(pattern), Customer.phone.ilike(pattern)))
            return query.order_by(Customer.created_at.desc(), Customer.id.desc()).all()

    def latest_customer_number(self, prefix: str) -> Optional[str]:
        """Highest number under the prefix; longer numbers rank above shorter ones."""
        with store_errors():
            return (
                self.session.query(Customer.customer_number)
                .filter(Customer.customer_number.like(f"{prefix}-%"))
                .order_by(func.length(Customer.customer_number).desc(), Customer.customer_number.desc())
                .limit(1)
                .scalar()
            )

    def count_customers(self) -> int:
        with store_errors():
            return self.session.query(func.count(Customer.id)).scalar() or 0

    def dues_by_customer(self, statuses: Iterable[str]) -> dict[int, object]:
        """Sum of total_amount per customer over orders in the given statuses."""
        with store_errors():
            rows = (
                self.session.query(Order.customer_id, func.coalesce(func.sum(Order.total_amount), 0))
                .filter(Order.status.in_(list(statuses)))
                .group_by(Order.customer_id)
                .all()
            )
        return {customer_id: total for customer_id, total in rows}

    def get_profile(self, profile_id: int) -> UserProfile:
        with store_errors():
            profile = self.session.get(UserProfile, profile_id)
        if not profile:
            raise NotFoundError(f"Staff profile {profile_id} not found")
        return profile

    def find_super_admin(self) -> Optional[UserProfile]:
        with store_errors():
            return (
                self.session.query(UserProfile)
                .filter_by(role=ROLE_SUPER_ADMIN)
                .order_by(UserProfile.id)
                .first()
            )

    def get_branch(self, branch_id: int) -> Branch:
        with store_errors():
            branch = self.session.get(Branch, branch_id)
        if not branch:
            raise NotFoundError(f"Branch {branch_id} not found")
        return branch

    def find_branches(self) -> list[Branch]:
        with store_errors():
            return self.session.query(Branch).order_by(Branch.name).all()

    def branch_name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        with store_errors():
            query = self.session.query(Branch.id).filter(func.lower(Branch.name) == name.lower())
            if exclude_id is not None:
                query = query.filter(Branch.id != exclude_id)
            return query.first() is not None

    def branch_in_use(self, branch_id: int) -> bool:
        """True while any order or staff profile still points at the branch."""
        with store_errors():
            if self.session.query(Order.id).filter_by(branch_id=branch_id).first() is not None:
                return True
            return self.session.query(UserProfile.id).filter_by(branch_id=branch_id).first() is not None

    def find_profiles(self, *, branch_id: Optional[int] = None) -> list[UserProfile]:
        with store_errors():
            query = self.session.query(UserProfile)
            if branch_id is not None:
                query = query.filter(UserProfile.branch_id == branch_id)
            return query.order_by(UserProfile.username).all()

    def username_taken(self, username: str, exclude_id: Optional[int] = None) -> bool:
        with store_errors():
            query = self.session.query(UserProfile.id).filter(UserProfile.username == username)
            if exclude_id is not None:
                query = query.filter(UserProfile.id != exclude_id)
            return query.first() is not None

    def profile_in_use(self, profile_id: int) -> bool:
        with store_errors():
            return self.session.query(Order.id).filter_by(staff_id=profile_id).first() is not None

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert(self, record):
        with store_errors():
            self.session.add(record)
            self.session.flush()
        return record

    def delete(self, record) -> None:
        with store_errors():
            self.session.delete(record)
            self.session.flush()

    def update(self, record, changes: dict):
        with store_errors():
            for key, value in changes.items():
                setattr(record, key, value)
            self.session.flush()
        return record

    def update_item(self, item: OrderItem, changes: dict) -> OrderItem:
        return self.update(item, changes)

    def update_order(self, order: Order, changes: dict) -> Order:
        """
        Apply a partial update to the order row inside a savepoint.

        On rejection the savepoint is rolled back (the order's attributes are
        expired back to their stored values) and ConstraintError is raised;
        the caller may retry with a different partial.
        """
        with store_errors():
            with self.session.begin_nested():
                for key, value in changes.items():
                    setattr(order, key, value)
                self.session.flush()
        return order

    def replace_items(self, order: Order, items: Iterable[OrderItem]) -> Order:
        """Swap the order's item set; removed items are deleted (delete-orphan)."""
        with store_errors():
            order.items = list(items)
            self.session.flush()
        return order

    def append_transaction(self, txn: PaymentTransaction) -> PaymentTransaction:
        """Append-only: transactions are never updated or deleted."""
        return self.insert(txn)

    def append_audit_event(self, event: OrderAuditEvent) -> OrderAuditEvent:
        return self.insert(event)

    def recalculate_balances(self, order: Order) -> Order:
        """
        Atomic in-database recompute of deposit_balance and
        security_deposit_refunded_amount from payment_transactions.

        collected = sum(deposit_collected), or security_deposit_amount when the
                    order predates the ledger and has no collection rows
        balance   = max(0, collected - sum(deposit_refund))
        """
        collected_sum = _transaction_sum(TXN_DEPOSIT_COLLECTED)
        refunded_sum = _transaction_sum(TXN_DEPOSIT_REFUND)
        collected = case((collected_sum > 0, collected_sum), else_=Order.security_deposit_amount)
        remaining = collected - refunded_sum
        stmt = (
            update(Order)
            .where(Order.id == order.id)
            .values(
                security_deposit_refunded_amount=refunded_sum,
                deposit_balance=case((remaining > 0, remaining), else_=0),
                version_id=Order.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        with store_errors():
            self.session.flush()
            self.session.execute(stmt)
            self.session.refresh(order)
        return order


def _transaction_sum(transaction_type: str):
    return (
        select(func.coalesce(func.sum(PaymentTransaction.amount), 0))
        .where(
            PaymentTransaction.order_id == Order.id,
            PaymentTransaction.transaction_type == transaction_type,
        )
        .scalar_subquery()
    )
