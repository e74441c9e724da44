# Overview: Service-layer operations for branches, staff profiles and their GST/invoice settings.

"""
Branch and Staff Directory

WHY: Order creation reads GST policy from the creating staff profile (or the
super admin's), and the invoice snapshot reads company and UPI details from
the same profile. This service is where those records are kept.

RULES:
- Branch names are unique (case-insensitive); usernames are unique
- A branch with orders or staff, or a profile with orders, cannot be deleted
- GST settings follow the counter screen: rate is stored only while GST is
  enabled, blank GST number / UPI id clear the stored value
- Existing orders are never touched; they keep their own GST snapshot
"""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import ValidationError
from ..models import Branch, UserProfile
from ..models.directory import ROLE_STAFF
from ..schemas import BranchInput, InvoiceSettingsInput, StaffInput
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)


class DirectoryService:
    def __init__(self, repository, retry_attempts: int = 3):
        self.repository = repository
        self.retry_attempts = retry_attempts

    def _run(self, func):
        def _op():
            with self.repository.transaction():
                return func()
        return run_with_retry(_op, attempts=self.retry_attempts)

    # =========================================================================
    # BRANCHES
    # =========================================================================

    def list_branches(self) -> list[Branch]:
        return self.repository.find_branches()

    def get_branch(self, branch_id: int) -> Branch:
        return self.repository.get_branch(branch_id)

    def create_branch(self, data: BranchInput) -> Branch:
        def _create():
            if self.repository.branch_name_taken(data.name):
                raise ValidationError(f"Branch '{data.name}' already exists")
            branch = self.repository.insert(Branch(name=data.name, address=data.address, phone=data.phone))
            logger.info("Branch %s created (%s)", branch.id, branch.name)
            return branch

        return self._run(_create)

    def update_branch(self, branch_id: int, data: BranchInput) -> Branch:
        def _update():
            branch = self.repository.get_branch(branch_id)
            if self.repository.branch_name_taken(data.name, exclude_id=branch.id):
                raise ValidationError(f"Branch '{data.name}' already exists")
            return self.repository.update(branch, {
                "name": data.name,
                "address": data.address,
                "phone": data.phone,
            })

        return self._run(_update)

    def delete_branch(self, branch_id: int) -> None:
        def _delete():
            branch = self.repository.get_branch(branch_id)
            if self.repository.branch_in_use(branch.id):
                raise ValidationError(f"Branch {branch.id} still has orders or staff")
            self.repository.delete(branch)
            logger.info("Branch %s deleted", branch_id)

        self._run(_delete)

    # =========================================================================
    # STAFF
    # =========================================================================

    def list_staff(self, branch_id: Optional[int] = None) -> list[UserProfile]:
        return self.repository.find_profiles(branch_id=branch_id)

    def get_staff(self, profile_id: int) -> UserProfile:
        return self.repository.get_profile(profile_id)

    def create_staff(self, data: StaffInput) -> UserProfile:
        def _create():
            repo = self.repository
            if repo.username_taken(data.username):
                raise ValidationError(f"Username '{data.username}' is already in use")
            if data.branch_id is not None:
                repo.get_branch(data.branch_id)
            profile = repo.insert(UserProfile(
                username=data.username,
                full_name=data.full_name,
                phone=data.phone,
                role=data.role or ROLE_STAFF,
                branch_id=data.branch_id,
            ))
            logger.info("Staff profile %s created (%s, %s)", profile.id, profile.username, profile.role)
            return profile

        return self._run(_create)

    def update_staff(self, profile_id: int, data: StaffInput) -> UserProfile:
        """Role and branch keep their stored values when omitted."""
        def _update():
            repo = self.repository
            profile = repo.get_profile(profile_id)
            if repo.username_taken(data.username, exclude_id=profile.id):
                raise ValidationError(f"Username '{data.username}' is already in use")
            changes = {
                "username": data.username,
                "full_name": data.full_name,
                "phone": data.phone,
            }
            if data.role is not None:
                changes["role"] = data.role
            if data.branch_id is not None:
                repo.get_branch(data.branch_id)
                changes["branch_id"] = data.branch_id
            return repo.update(profile, changes)

        return self._run(_update)

    def delete_staff(self, profile_id: int) -> None:
        def _delete():
            profile = self.repository.get_profile(profile_id)
            if self.repository.profile_in_use(profile.id):
                raise ValidationError(f"Staff profile {profile.id} has orders and cannot be deleted")
            self.repository.delete(profile)

        self._run(_delete)

    # =========================================================================
    # GST / INVOICE SETTINGS
    # =========================================================================

    def update_invoice_settings(self, profile_id: int, data: InvoiceSettingsInput) -> UserProfile:
        """
        Replace the profile's GST settings; company name/address and the
        invoice terms/QR switches change only when supplied.

        Only new orders pick up the result.
        """
        def _update():
            profile = self.repository.get_profile(profile_id)
            changes = {
                "gst_enabled": data.gst_enabled,
                "gst_included": data.gst_included,
                "gst_rate": data.gst_rate if data.gst_enabled else None,
                "gst_number": data.gst_number,
                "upi_id": data.upi_id,
            }
            optional = {
                "company_name": data.company_name,
                "company_address": data.company_address,
                "show_invoice_terms": data.show_invoice_terms,
                "show_invoice_qr": data.show_invoice_qr,
            }
            changes.update({key: value for key, value in optional.items() if value is not None})
            self.repository.update(profile, changes)
            logger.info(
                "Invoice settings updated for profile %s (GST %s, rate %s, included %s)",
                profile.id, data.gst_enabled, profile.gst_rate, data.gst_included,
            )
            return profile

        return self._run(_update)
