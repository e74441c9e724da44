"""
Branches, staff profiles and the GST/invoice settings that feed new orders.
"""

from decimal import Decimal

import pytest

from rentalshop.errors import NotFoundError, ValidationError
from rentalshop.schemas import BranchInput, InvoiceSettingsInput, StaffInput
from rentalshop.services.directory_service import DirectoryService


@pytest.fixture
def directory_service(repository):
    return DirectoryService(repository)


def _settings(**overrides):
    body = {"gst_enabled": True, "gst_rate": 18, "gst_included": True, "gst_number": "29XYZ", "upi_id": "shop@upi"}
    body.update(overrides)
    return InvoiceSettingsInput.from_dict(body)


# =============================================================================
# BRANCHES
# =============================================================================

def test_create_and_update_branch(directory_service, branch):
    created = directory_service.create_branch(BranchInput.from_dict({"name": "Jayanagar", "address": "4th Block"}))
    assert created.id is not None

    updated = directory_service.update_branch(created.id, BranchInput.from_dict({"name": "Jayanagar East", "phone": "080123"}))
    assert updated.name == "Jayanagar East"
    assert updated.phone == "080123"
    assert [b.name for b in directory_service.list_branches()] == ["Jayanagar East", "Main Branch"]


def test_branch_names_are_unique_ignoring_case(directory_service, branch):
    with pytest.raises(ValidationError):
        directory_service.create_branch(BranchInput.from_dict({"name": "main branch"}))


def test_branch_with_staff_cannot_be_deleted(directory_service, branch):
    with pytest.raises(ValidationError):
        directory_service.delete_branch(branch.id)


def test_unused_branch_can_be_deleted(directory_service, branch):
    spare = directory_service.create_branch(BranchInput.from_dict({"name": "Pop-up"}))
    directory_service.delete_branch(spare.id)
    with pytest.raises(NotFoundError):
        directory_service.get_branch(spare.id)


# =============================================================================
# STAFF
# =============================================================================

def test_create_staff_defaults_to_staff_role(directory_service, branch):
    profile = directory_service.create_staff(StaffInput.from_dict({
        "username": "priya", "full_name": "Priya", "branch_id": branch.id,
    }))
    assert profile.role == "staff"
    assert profile.branch_id == branch.id
    assert {p.username for p in directory_service.list_staff(branch_id=branch.id)} == {"owner", "counter", "priya"}


def test_duplicate_username_rejected(directory_service, staff):
    with pytest.raises(ValidationError):
        directory_service.create_staff(StaffInput.from_dict({"username": "counter"}))


def test_staff_on_unknown_branch_rejected(directory_service, branch):
    with pytest.raises(NotFoundError):
        directory_service.create_staff(StaffInput.from_dict({"username": "ghost", "branch_id": 9999}))


def test_update_staff_keeps_role_when_omitted(directory_service, staff):
    updated = directory_service.update_staff(staff.id, StaffInput.from_dict({
        "username": "counter", "full_name": "Front Counter", "phone": "9000000009",
    }))
    assert updated.full_name == "Front Counter"
    assert updated.role == "staff"


def test_unknown_role_rejected():
    with pytest.raises(ValidationError):
        StaffInput.from_dict({"username": "x", "role": "manager"})


def test_staff_with_orders_cannot_be_deleted(directory_service, staff, order):
    with pytest.raises(ValidationError):
        directory_service.delete_staff(staff.id)


# =============================================================================
# GST / INVOICE SETTINGS
# =============================================================================

def test_invoice_settings_drive_new_orders_only(directory_service, owner, order, make_order):
    directory_service.update_invoice_settings(owner.id, _settings())

    # Existing order keeps its 5% exclusive snapshot
    assert order.gst_rate == Decimal("5.00")
    assert order.total_amount == Decimal("2100.00")

    fresh = make_order()
    assert fresh.gst_rate == Decimal("18.00")
    assert fresh.gst_included is True
    assert fresh.gst_amount == Decimal("305.08")
    assert fresh.total_amount == Decimal("2000.00")


def test_disabling_gst_clears_rate(directory_service, owner, make_order):
    profile = directory_service.update_invoice_settings(owner.id, _settings(gst_enabled=False, gst_number="", upi_id=None))
    assert profile.gst_enabled is False
    assert profile.gst_rate is None
    assert profile.gst_number is None
    assert profile.upi_id is None
    assert profile.company_name == "Glamour Rentals"

    fresh = make_order()
    assert fresh.gst_amount == Decimal("0")
    assert fresh.total_amount == Decimal("2000.00")


def test_invoice_settings_validation():
    with pytest.raises(ValidationError):
        InvoiceSettingsInput.from_dict({"gst_included": False})
    with pytest.raises(ValidationError):
        InvoiceSettingsInput.from_dict({"gst_enabled": True, "gst_rate": 150})
    with pytest.raises(ValidationError):
        InvoiceSettingsInput.from_dict({"gst_enabled": "yes"})
