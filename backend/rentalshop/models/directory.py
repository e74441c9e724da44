from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z


ROLE_SUPER_ADMIN = "super_admin"
ROLE_BRANCH_ADMIN = "branch_admin"
ROLE_STAFF = "staff"
ROLES = (ROLE_SUPER_ADMIN, ROLE_BRANCH_ADMIN, ROLE_STAFF)

ID_PROOF_TYPES = ("aadhar", "passport", "voter", "others")


class Branch(db.Model):
    """Rental branch location."""
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    address = db.Column(db.String(255), nullable=False, default="")
    phone = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }


class UserProfile(db.Model):
    """
    Staff profile with role and per-staff invoicing/GST configuration.

    GST settings here feed order creation; the order keeps its own snapshot
    (gst_rate, gst_included) so later profile edits never move old totals.
    """
    __tablename__ = "profiles"
    __table_args__ = (
        db.CheckConstraint("role IN ('super_admin', 'branch_admin', 'staff')", name="profiles_role_check"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    full_name = db.Column(db.String(128), nullable=False, default="")
    phone = db.Column(db.String(32), nullable=False, default="")
    role = db.Column(db.String(32), nullable=False, default=ROLE_STAFF)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    # Invoicing / GST
    gst_number = db.Column(db.String(32), nullable=True)
    gst_enabled = db.Column(db.Boolean, nullable=True)
    gst_rate = db.Column(db.Numeric(5, 2), nullable=True)
    gst_included = db.Column(db.Boolean, nullable=True)
    upi_id = db.Column(db.String(128), nullable=True)
    company_name = db.Column(db.String(255), nullable=True)
    company_address = db.Column(db.String(255), nullable=True)
    show_invoice_terms = db.Column(db.Boolean, nullable=True)
    show_invoice_qr = db.Column(db.Boolean, nullable=True)

    branch = db.relationship("Branch", backref=db.backref("staff", lazy=True))

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
            "branch_id": self.branch_id,
            "gst_number": self.gst_number,
            "gst_enabled": self.gst_enabled,
            "gst_rate": money_to_json(self.gst_rate),
            "gst_included": self.gst_included,
            "upi_id": self.upi_id,
            "company_name": self.company_name,
            "company_address": self.company_address,
            "show_invoice_terms": self.show_invoice_terms,
            "show_invoice_qr": self.show_invoice_qr,
        }


class Customer(db.Model):
    """
    Rental customer with optional ID proof.

    due_amount is not stored; customer_service computes it per query.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_number = db.Column(db.String(32), nullable=True, unique=True)
    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(10), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    id_proof_type = db.Column(db.String(16), nullable=True)
    id_proof_number = db.Column(db.String(64), nullable=True)
    id_proof_front_url = db.Column(db.String(512), nullable=True)
    id_proof_back_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self, due_amount=None) -> dict:
        data = {
            "id": self.id,
            "customer_number": self.customer_number,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "id_proof_type": self.id_proof_type,
            "id_proof_number": self.id_proof_number,
            "id_proof_front_url": self.id_proof_front_url,
            "id_proof_back_url": self.id_proof_back_url,
            "created_at": to_utc_z(self.created_at),
        }
        if due_amount is not None:
            data["due_amount"] = money_to_json(due_amount)
        return data
