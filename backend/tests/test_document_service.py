"""
Invoice and customer numbering.
"""

import random

import pytest

from rentalshop.errors import PersistenceError
from rentalshop.services.document_service import (
    allocate_invoice_number,
    format_customer_number,
    generate_invoice_number,
    next_customer_number,
)

from factories import NOW


class FixedRandom:
    def __init__(self, *values):
        self.values = list(values)

    def randrange(self, stop):
        return self.values.pop(0)


class InvoiceBook:
    """Stand-in repository that knows a set of taken numbers."""

    def __init__(self, taken=(), latest=None):
        self.taken = set(taken)
        self.latest = latest
        self.lookups = 0

    def invoice_number_exists(self, number):
        self.lookups += 1
        return number in self.taken

    def latest_customer_number(self, prefix):
        return self.latest


def test_invoice_number_format():
    assert generate_invoice_number("GLAORD", NOW, FixedRandom(42)) == "GLAORD-20261018-0042"
    assert generate_invoice_number("GLAORD", NOW, FixedRandom(9999)) == "GLAORD-20261018-9999"


def test_allocation_skips_taken_numbers():
    book = InvoiceBook(taken={"GLAORD-20261018-0001", "GLAORD-20261018-0002"})
    number = allocate_invoice_number(book, "GLAORD", NOW, FixedRandom(1, 2, 3))
    assert number == "GLAORD-20261018-0003"
    assert book.lookups == 3


def test_allocation_gives_up_after_five_attempts():
    book = InvoiceBook(taken={"GLAORD-20261018-0007"})
    with pytest.raises(PersistenceError):
        allocate_invoice_number(book, "GLAORD", NOW, FixedRandom(7, 7, 7, 7, 7, 7))
    assert book.lookups == 5


def test_allocation_with_real_random_source():
    number = allocate_invoice_number(InvoiceBook(), "GLAORD", NOW, random.Random(7))
    assert number.startswith("GLAORD-20261018-")
    assert len(number.rsplit("-", 1)[-1]) == 4


def test_customer_numbers():
    assert format_customer_number("GLA", 7) == "GLA-00007"
    assert next_customer_number(InvoiceBook(), "GLA") == "GLA-00001"
    assert next_customer_number(InvoiceBook(latest="GLA-00041"), "GLA") == "GLA-00042"
    assert next_customer_number(InvoiceBook(latest="GLA-legacy"), "GLA") == "GLA-00001"
