from __future__ import annotations

from datetime import date

from ..extensions import db
from backoffice.time_utils import to_utc_z


INSTALLMENT_STATUSES = ("PENDING", "PAID", "OVERDUE", "CANCELLED")


class Installment(db.Model):
    """
    Scheduled part-payment of a sale.

    status is stored for filtering but is a function of (paid, cancelled,
    due_date): derive_status() is the single source of the rule and the
    service writes its result back on every read and write path.
    """
    __tablename__ = "installments"
    __table_args__ = (
        db.Index("ix_installments_org_status_due", "org_id", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    sequence = db.Column(db.Integer, nullable=False, default=1)
    due_date = db.Column(db.Date, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING")
    paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)
    cancelled = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    sale = db.relationship("Sale", backref=db.backref("installments", lazy=True, order_by="Installment.sequence"))

    def derive_status(self, today: date) -> str:
        if self.paid:
            return "PAID"
        if self.cancelled:
            return "CANCELLED"
        if self.due_date < today:
            return "OVERDUE"
        return "PENDING"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "sequence": self.sequence,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "paid": self.paid,
            "paid_at": to_utc_z(self.paid_at),
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
