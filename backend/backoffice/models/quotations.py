from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


QUOTATION_STATUSES = ("DRAFT", "SENT", "ACCEPTED", "REJECTED", "EXPIRED", "CONVERTED")
# No edits once the customer answered or the quote became a sale
FROZEN_QUOTATION_STATUSES = ("ACCEPTED", "REJECTED", "CONVERTED")
CONVERTIBLE_QUOTATION_STATUSES = ("DRAFT", "SENT", "ACCEPTED")


class Quotation(db.Model):
    """Priced offer to a customer; same totals math as a sale."""
    __tablename__ = "quotations"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "document_number", name="uq_quotations_outlet_docnum"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    document_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    valid_until = db.Column(db.Date, nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    converted_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    items = db.relationship("QuotationItem", backref="quotation", lazy=True, cascade="all, delete-orphan", order_by="QuotationItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "outlet_id": self.outlet_id,
            "customer_id": self.customer_id,
            "document_number": self.document_number,
            "status": self.status,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "converted_sale_id": self.converted_sale_id,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class QuotationItem(db.Model):
    __tablename__ = "quotation_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
        }
