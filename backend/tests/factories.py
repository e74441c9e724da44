"""
Shared builders for rental order tests.

Used by the pytest fixtures in conftest.py and by the unittest-style
modules, which cannot take fixtures.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from rentalshop.models import Branch, Customer, UserProfile
from rentalshop.models.directory import ROLE_STAFF, ROLE_SUPER_ADMIN
from rentalshop.schemas import OrderInput, OrderItemInput

# Fixed clock for every test: 18 Oct 2026, 09:00 UTC
NOW = datetime(2026, 10, 18, 9, 0, 0)
ACTOR = "counter-staff"


def seed_directory(session):
    """Branch, GST-registered super admin, counter staff and one customer."""
    branch = Branch(name="Main Branch", address="12 MG Road")
    session.add(branch)
    session.flush()

    owner = UserProfile(
        username="owner",
        full_name="Shop Owner",
        role=ROLE_SUPER_ADMIN,
        branch_id=branch.id,
        gst_enabled=True,
        gst_rate=Decimal("5"),
        gst_included=False,
        gst_number="29ABCDE1234F1Z5",
        company_name="Glamour Rentals",
        company_address="12 MG Road",
        upi_id="glamour@upi",
    )
    staff = UserProfile(username="counter", full_name="Counter Staff", role=ROLE_STAFF, branch_id=branch.id)
    customer = Customer(customer_number="GLA-00001", name="Asha Rao", phone="9876543210", created_at=NOW)
    session.add_all([owner, staff, customer])
    session.commit()
    return branch, owner, staff, customer


def order_input(branch, staff, customer, *, items=((2, "1000"),), start_date=None, end_datetime=None,
                deposit="1000", collected=True, discount="0", late_fee="0", invoice_number=None):
    """
    OrderInput for a rental starting today and due back in two days.

    items is a sequence of (quantity, price_per_day) pairs.
    """
    start_date = start_date or NOW.date()
    end_datetime = end_datetime or (NOW + timedelta(days=2))
    return OrderInput(
        branch_id=branch.id,
        staff_id=staff.id,
        customer_id=customer.id,
        start_date=start_date,
        end_date=end_datetime.date(),
        end_datetime=end_datetime,
        items=[
            OrderItemInput(quantity=quantity, price_per_day=Decimal(price), product_name=f"Outfit {i + 1}")
            for i, (quantity, price) in enumerate(items)
        ],
        security_deposit_amount=Decimal(deposit),
        security_deposit_collected=collected,
        deposit_method="cash",
        discount_amount=Decimal(discount),
        late_fee=Decimal(late_fee),
        invoice_number=invoice_number,
    )
