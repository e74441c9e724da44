# Overview: Typed request shapes for the order services, validated once at the HTTP boundary.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from .errors import ValidationError
from .models.directory import ID_PROOF_TYPES, ROLES
from .models.orders import RETURN_STATUSES
from .money import ZERO, optional_money, to_money
from .time_utils import parse_iso_date, parse_iso_datetime

PHONE_PATTERN = re.compile(r"^\d{10}$")


def _to_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    text = str(value).strip()
    if not text.lstrip("-").isdigit():
        raise ValidationError(f"{field_name} must be an integer")
    return int(text)


def _required_int(value: Any, field_name: str) -> int:
    parsed = _to_int(value, field_name)
    if parsed is None:
        raise ValidationError(f"{field_name} is required")
    return parsed


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _money(value: Any, field_name: str) -> Optional[Decimal]:
    try:
        return optional_money(value, field_name)
    except ValueError as exc:
        raise ValidationError(str(exc))


def _datetime(value: Any, field_name: str) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an ISO-8601 datetime")


def _date(value: Any, field_name: str) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an ISO-8601 date")


def _object(payload: Any, what: str) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError(f"{what} must be a JSON object")
    return payload


# =============================================================================
# RETURNS
# =============================================================================

@dataclass(frozen=True)
class ItemReturn:
    """Return decision for one order item."""
    item_id: int
    return_status: str
    returned_quantity: Optional[int] = None
    actual_return_date: Optional[datetime] = None
    damage_cost: Optional[Decimal] = None
    description: Optional[str] = None
    missing_note: Optional[str] = None
    late_return: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ItemReturn":
        data = _object(data, "item return")
        status = _to_text(data.get("return_status"))
        if status not in RETURN_STATUSES:
            raise ValidationError(f"return_status must be one of: {', '.join(RETURN_STATUSES)}")
        late = data.get("late_return")
        return cls(
            item_id=_required_int(data.get("item_id"), "item_id"),
            return_status=status,
            returned_quantity=_to_int(data.get("returned_quantity"), "returned_quantity"),
            actual_return_date=_datetime(data.get("actual_return_date"), "actual_return_date"),
            damage_cost=_money(data.get("damage_cost"), "damage_cost"),
            description=_to_text(data.get("description")),
            missing_note=_to_text(data.get("missing_note")),
            late_return=bool(late) if late is not None else None,
        )


def parse_item_returns(payload: Any) -> list[ItemReturn]:
    if not isinstance(payload, list) or not payload:
        raise ValidationError("items must be a non-empty list")
    return [ItemReturn.from_dict(entry) for entry in payload]


# =============================================================================
# ORDERS
# =============================================================================

@dataclass(frozen=True)
class OrderItemInput:
    quantity: int
    price_per_day: Decimal
    product_name: Optional[str] = None
    photo_url: str = ""
    days: int = 1

    @classmethod
    def from_dict(cls, data: Any) -> "OrderItemInput":
        data = _object(data, "order item")
        quantity = _required_int(data.get("quantity"), "quantity")
        if quantity <= 0:
            raise ValidationError("quantity must be positive")
        price = _money(data.get("price_per_day"), "price_per_day")
        if price is None:
            raise ValidationError("price_per_day is required")
        if price < ZERO:
            raise ValidationError("price_per_day cannot be negative")
        days = _to_int(data.get("days"), "days") or 1
        if days <= 0:
            raise ValidationError("days must be positive")
        return cls(
            quantity=quantity,
            price_per_day=price,
            product_name=_to_text(data.get("product_name")),
            photo_url=_to_text(data.get("photo_url")) or "",
            days=days,
        )


@dataclass(frozen=True)
class OrderInput:
    """Fields shared by order creation and wholesale order edits."""
    branch_id: int
    staff_id: int
    customer_id: int
    start_date: date
    end_date: date
    items: list[OrderItemInput] = field(default_factory=list)
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    booking_date: Optional[datetime] = None
    security_deposit_amount: Decimal = ZERO
    security_deposit_collected: bool = False
    deposit_method: Optional[str] = None
    discount_amount: Decimal = ZERO
    late_fee: Decimal = ZERO
    invoice_number: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "OrderInput":
        data = _object(data, "order")
        start_datetime = _datetime(data.get("start_datetime"), "start_datetime")
        end_datetime = _datetime(data.get("end_datetime"), "end_datetime")
        start_date = _date(data.get("start_date"), "start_date") or (start_datetime.date() if start_datetime else None)
        end_date = _date(data.get("end_date"), "end_date") or (end_datetime.date() if end_datetime else None)
        if start_date is None:
            raise ValidationError("start_date is required")
        if end_date is None:
            raise ValidationError("end_date is required")
        if end_date < start_date:
            raise ValidationError("end_date cannot be before start_date")
        if start_datetime and end_datetime and end_datetime < start_datetime:
            raise ValidationError("end_datetime cannot be before start_datetime")

        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("items must be a non-empty list")

        return cls(
            branch_id=_required_int(data.get("branch_id"), "branch_id"),
            staff_id=_required_int(data.get("staff_id"), "staff_id"),
            customer_id=_required_int(data.get("customer_id"), "customer_id"),
            start_date=start_date,
            end_date=end_date,
            items=[OrderItemInput.from_dict(entry) for entry in raw_items],
            start_datetime=start_datetime,
            end_datetime=end_datetime,
            booking_date=_datetime(data.get("booking_date"), "booking_date"),
            security_deposit_amount=_non_negative(data.get("security_deposit_amount"), "security_deposit_amount"),
            security_deposit_collected=bool(data.get("security_deposit_collected", False)),
            deposit_method=_to_text(data.get("deposit_method")),
            discount_amount=_non_negative(data.get("discount_amount"), "discount_amount"),
            late_fee=_non_negative(data.get("late_fee"), "late_fee"),
            invoice_number=_to_text(data.get("invoice_number")),
        )


def _non_negative(value: Any, field_name: str) -> Decimal:
    amount = _money(value, field_name) or ZERO
    if amount < ZERO:
        raise ValidationError(f"{field_name} cannot be negative")
    return amount


def parse_optional_charge(value: Any, field_name: str) -> Optional[Decimal]:
    """None when absent; a non-negative amount otherwise."""
    if value is None or value == "":
        return None
    return _non_negative(value, field_name)


def parse_expected_version(payload: dict) -> Optional[int]:
    return _to_int(payload.get("expected_version"), "expected_version")


# =============================================================================
# PAYMENTS
# =============================================================================

@dataclass(frozen=True)
class PaymentInput:
    amount: Decimal
    method: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, *, amount_required: bool = True) -> "PaymentInput":
        data = _object(data, "payment")
        amount = _money(data.get("amount"), "amount")
        if amount is None and amount_required:
            raise ValidationError("amount is required")
        return cls(
            amount=amount,
            method=_to_text(data.get("method")),
            reference=_to_text(data.get("reference")),
            notes=_to_text(data.get("notes")),
        )


# =============================================================================
# CUSTOMERS
# =============================================================================

@dataclass(frozen=True)
class CustomerInput:
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    id_proof_type: Optional[str] = None
    id_proof_number: Optional[str] = None
    id_proof_front_url: Optional[str] = None
    id_proof_back_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "CustomerInput":
        data = _object(data, "customer")
        name = _to_text(data.get("name"))
        if not name:
            raise ValidationError("name is required")
        phone = validate_phone(data.get("phone"))
        proof_type = _to_text(data.get("id_proof_type"))
        if proof_type is not None:
            proof_type = proof_type.lower()
            if proof_type not in ID_PROOF_TYPES:
                raise ValidationError(f"id_proof_type must be one of: {', '.join(ID_PROOF_TYPES)}")
        return cls(
            name=name,
            phone=phone,
            email=_to_text(data.get("email")),
            address=_to_text(data.get("address")),
            id_proof_type=proof_type,
            id_proof_number=_to_text(data.get("id_proof_number")),
            id_proof_front_url=_to_text(data.get("id_proof_front_url")),
            id_proof_back_url=_to_text(data.get("id_proof_back_url")),
        )


def validate_phone(value: Any) -> str:
    phone = _to_text(value)
    if not phone:
        raise ValidationError("phone is required")
    if not PHONE_PATTERN.match(phone):
        raise ValidationError("phone must be exactly 10 digits")
    return phone


# =============================================================================
# BRANCHES AND STAFF
# =============================================================================

def _flag(value: Any, field_name: str) -> Optional[bool]:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{field_name} must be true or false")
    return value


@dataclass(frozen=True)
class BranchInput:
    name: str
    address: str = ""
    phone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "BranchInput":
        data = _object(data, "branch")
        name = _to_text(data.get("name"))
        if not name:
            raise ValidationError("name is required")
        return cls(
            name=name,
            address=_to_text(data.get("address")) or "",
            phone=_to_text(data.get("phone")),
        )


@dataclass(frozen=True)
class StaffInput:
    username: str
    full_name: str
    phone: str = ""
    role: Optional[str] = None
    branch_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "StaffInput":
        data = _object(data, "staff")
        username = _to_text(data.get("username"))
        if not username:
            raise ValidationError("username is required")
        role = _to_text(data.get("role"))
        if role is not None and role not in ROLES:
            raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
        return cls(
            username=username,
            full_name=_to_text(data.get("full_name")) or "",
            phone=_to_text(data.get("phone")) or "",
            role=role,
            branch_id=_to_int(data.get("branch_id"), "branch_id"),
        )


@dataclass(frozen=True)
class InvoiceSettingsInput:
    """
    GST and invoicing settings for one profile.

    The GST fields replace what is stored; the company and invoice-layout
    fields keep their stored value when omitted.
    """
    gst_enabled: bool
    gst_included: bool
    gst_rate: Optional[Decimal] = None
    gst_number: Optional[str] = None
    upi_id: Optional[str] = None
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    show_invoice_terms: Optional[bool] = None
    show_invoice_qr: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Any) -> "InvoiceSettingsInput":
        data = _object(data, "invoice settings")
        enabled = _flag(data.get("gst_enabled"), "gst_enabled")
        if enabled is None:
            raise ValidationError("gst_enabled is required")
        rate = _money(data.get("gst_rate"), "gst_rate")
        if rate is not None and not (ZERO <= rate <= Decimal("100")):
            raise ValidationError("gst_rate must be between 0 and 100")
        return cls(
            gst_enabled=enabled,
            gst_included=bool(_flag(data.get("gst_included"), "gst_included")),
            gst_rate=rate,
            gst_number=_to_text(data.get("gst_number")),
            upi_id=_to_text(data.get("upi_id")),
            company_name=_to_text(data.get("company_name")),
            company_address=_to_text(data.get("company_address")),
            show_invoice_terms=_flag(data.get("show_invoice_terms"), "show_invoice_terms"),
            show_invoice_qr=_flag(data.get("show_invoice_qr"), "show_invoice_qr"),
        )
