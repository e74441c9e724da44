# Overview: Service-layer operations for document numbers; invoice and customer numbering.

from __future__ import annotations

import random
from datetime import datetime
from typing import Optional

from ..errors import PersistenceError
from ..time_utils import utcnow

INVOICE_RANDOM_DIGITS = 4
CUSTOMER_NUMBER_PAD = 5
INVOICE_ATTEMPTS = 5


def generate_invoice_number(prefix: str, now: Optional[datetime] = None, rng=None) -> str:
    """
    PREFIX-YYYYMMDD-RRRR with a random 4-digit suffix.

    Uniqueness is advisory only (10,000 numbers per day); the unique column
    on orders.invoice_number is the real guard.
    """
    now = now or utcnow()
    rng = rng or random
    suffix = str(rng.randrange(10 ** INVOICE_RANDOM_DIGITS)).zfill(INVOICE_RANDOM_DIGITS)
    return f"{prefix}-{now:%Y%m%d}-{suffix}"


def allocate_invoice_number(repository, prefix: str, now: Optional[datetime] = None, rng=None) -> str:
    """Draw invoice numbers until one is not already taken."""
    for _ in range(INVOICE_ATTEMPTS):
        candidate = generate_invoice_number(prefix, now, rng)
        if not repository.invoice_number_exists(candidate):
            return candidate
    raise PersistenceError(f"Could not allocate a free invoice number after {INVOICE_ATTEMPTS} attempts")


def format_customer_number(prefix: str, sequence: int) -> str:
    return f"{prefix}-{str(sequence).zfill(CUSTOMER_NUMBER_PAD)}"


def next_customer_number(repository, prefix: str) -> str:
    """
    Next sequential customer number (GLA-00001, GLA-00002, ...).

    Numbers that do not parse are ignored rather than treated as an error.
    """
    latest = repository.latest_customer_number(prefix)
    sequence = 0
    if latest:
        tail = latest.rsplit("-", 1)[-1]
        if tail.isdigit():
            sequence = int(tail)
    return format_customer_number(prefix, sequence + 1)
