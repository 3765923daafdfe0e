from __future__ import annotations

from datetime import date

from ..extensions import db
from backoffice.time_utils import to_iso_date, to_utc_z


WARRANTY_STATUSES = ("ACTIVE", "EXPIRED", "VOIDED", "CLAIMED")
# Warranties in these states are frozen: no edits, claims or extensions
FROZEN_WARRANTY_STATUSES = ("VOIDED", "CLAIMED")
CLAIM_STATUSES = ("PENDING", "APPROVED", "REJECTED", "PROCESSED", "CANCELLED")
CLAIM_TYPES = ("REPAIR", "REPLACEMENT", "REFUND", "OTHER")


class Warranty(db.Model):
    """
    Product warranty, optionally tied to the customer and sale it came from.

    ACTIVE and EXPIRED are derived from end_date (see derive_status());
    VOIDED and CLAIMED are set explicitly and stick.
    """
    __tablename__ = "warranties"
    __table_args__ = (
        db.UniqueConstraint("org_id", "warranty_number", name="uq_warranties_org_number"),
        db.Index("ix_warranties_org_status_end", "org_id", "status", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    warranty_number = db.Column(db.String(64), nullable=True)
    serial_number = db.Column(db.String(64), nullable=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    coverage = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    extendable = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    claims = db.relationship("WarrantyClaim", backref="warranty", lazy=True, order_by="WarrantyClaim.id")
    extensions = db.relationship(
        "WarrantyExtension",
        backref="warranty",
        lazy=True,
        order_by="WarrantyExtension.id",
        cascade="all, delete-orphan",
    )

    def derive_status(self, today: date) -> str:
        if self.status in FROZEN_WARRANTY_STATUSES:
            return self.status
        return "EXPIRED" if self.end_date < today else "ACTIVE"

    def to_dict(self, include_children: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "warranty_number": self.warranty_number,
            "serial_number": self.serial_number,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "coverage": self.coverage,
            "terms": self.terms,
            "notes": self.notes,
            "extendable": self.extendable,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_children:
            data["claims"] = [c.to_dict() for c in self.claims]
            data["extensions"] = [e.to_dict() for e in self.extensions]
        return data


class WarrantyClaim(db.Model):
    __tablename__ = "warranty_claims"
    __table_args__ = (
        db.Index("ix_warranty_claims_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    warranty_id = db.Column(db.Integer, db.ForeignKey("warranties.id"), nullable=False, index=True)

    claim_type = db.Column(db.String(16), nullable=False)
    claim_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING")
    contact_name = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(32), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    resolution_notes = db.Column(db.Text, nullable=True)
    resolution_cost_cents = db.Column(db.Integer, nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "warranty_id": self.warranty_id,
            "claim_type": self.claim_type,
            "claim_date": to_iso_date(self.claim_date),
            "description": self.description,
            "status": self.status,
            "contact_name": self.contact_name,
            "contact_phone": self.contact_phone,
            "contact_email": self.contact_email,
            "notes": self.notes,
            "resolution_notes": self.resolution_notes,
            "resolution_cost_cents": self.resolution_cost_cents,
            "resolved_at": to_utc_z(self.resolved_at),
            "resolved_by_user_id": self.resolved_by_user_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WarrantyExtension(db.Model):
    """Append-only record of an end_date extension."""
    __tablename__ = "warranty_extensions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    warranty_id = db.Column(db.Integer, db.ForeignKey("warranties.id"), nullable=False, index=True)
    original_end_date = db.Column(db.Date, nullable=False)
    new_end_date = db.Column(db.Date, nullable=False)
    extension_months = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.Text, nullable=True)
    payment_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warranty_id": self.warranty_id,
            "original_end_date": to_iso_date(self.original_end_date),
            "new_end_date": to_iso_date(self.new_end_date),
            "extension_months": self.extension_months,
            "reason": self.reason,
            "payment_amount_cents": self.payment_amount_cents,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
