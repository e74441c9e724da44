# Overview: Service-layer operations for customers; records, numbering and dues.

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from ..models import Customer
from ..models.orders import ORDER_STATUS_ACTIVE, ORDER_STATUS_PENDING_RETURN
from ..money import ZERO, to_money
from ..schemas import CustomerInput
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .document_service import next_customer_number

logger = logging.getLogger(__name__)

# A customer owes the full total of every order still out
DUE_STATUSES = (ORDER_STATUS_ACTIVE, ORDER_STATUS_PENDING_RETURN)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class CustomerService:
    def __init__(self, repository, number_prefix: str = "GLA", retry_attempts: int = 3):
        self.repository = repository
        self.number_prefix = number_prefix
        self.retry_attempts = retry_attempts

    def _run(self, func):
        def _op():
            with self.repository.transaction():
                return func()
        return run_with_retry(_op, attempts=self.retry_attempts)

    def create_customer(self, data: CustomerInput) -> Customer:
        def _create():
            customer = self.repository.insert(Customer(
                customer_number=next_customer_number(self.repository, self.number_prefix),
                created_at=utcnow(),
                **_fields(data),
            ))
            logger.info("Customer %s created (%s)", customer.id, customer.customer_number)
            return customer

        return self._run(_create)

    def update_customer(self, customer_id: int, data: CustomerInput) -> Customer:
        def _update():
            customer = self.repository.get_customer(customer_id)
            return self.repository.update(customer, _fields(data))

        return self._run(_update)

    def get_customer(self, customer_id: int) -> tuple[Customer, Decimal]:
        """The customer and their current due amount."""
        customer = self.repository.get_customer(customer_id)
        dues = self.repository.dues_by_customer(DUE_STATUSES)
        return customer, to_money(dues.get(customer.id))

    def list_customers(
        self,
        *,
        search: Optional[str] = None,
        dues_only: bool = False,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> dict:
        """
        One page of customers, newest first, each with due_amount.

        dues_only keeps customers whose due amount is above zero; filtering
        happens before paging so page sizes stay exact.
        """
        page = max(1, int(page or 1))
        page_size = min(MAX_PAGE_SIZE, max(1, int(page_size or DEFAULT_PAGE_SIZE)))

        customers = self.repository.find_customers(search=search)
        dues = self.repository.dues_by_customer(DUE_STATUSES)
        rows = [(customer, to_money(dues.get(customer.id))) for customer in customers]
        if dues_only:
            rows = [(customer, due) for customer, due in rows if due > ZERO]

        start = (page - 1) * page_size
        window = rows[start:start + page_size]
        return {
            "customers": [customer.to_dict(due_amount=due) for customer, due in window],
            "total": len(rows),
            "page": page,
            "page_size": page_size,
            "has_more": start + page_size < len(rows),
        }

    def customer_stats(self, search: Optional[str] = None) -> dict:
        customers = self.repository.find_customers(search=search)
        dues = self.repository.dues_by_customer(DUE_STATUSES)
        owing = [to_money(dues.get(c.id)) for c in customers if to_money(dues.get(c.id)) > ZERO]
        return {
            "total": len(customers),
            "with_dues": len(owing),
            "total_dues": float(sum(owing, ZERO)),
        }


def _fields(data: CustomerInput) -> dict:
    return {
        "name": data.name,
        "phone": data.phone,
        "email": data.email,
        "address": data.address,
        "id_proof_type": data.id_proof_type,
        "id_proof_number": data.id_proof_number,
        "id_proof_front_url": data.id_proof_front_url,
        "id_proof_back_url": data.id_proof_back_url,
    }
