from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")


class Booking(db.Model):
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_org_date", "org_id", "booked_for"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True)

    booked_for = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("bookings", lazy=True))

    def to_dict(self) -> dict:
        customer = self.customer
        return {
            "id": self.id,
            "org_id": self.org_id,
            "customer_id": self.customer_id,
            "customer_name": customer.full_name if customer else None,
            "outlet_id": self.outlet_id,
            "booked_for": to_utc_z(self.booked_for),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
