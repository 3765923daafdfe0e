from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Transfer(db.Model):
    """
    Stock moved from one outlet to another of the same organization.

    Transfers are immutable once written; the two InventoryTransaction rows
    (TRANSFER_OUT at the source, TRANSFER_IN at the destination) reference it.
    """
    __tablename__ = "transfers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    from_outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    to_outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    transferred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "from_outlet_id": self.from_outlet_id,
            "to_outlet_id": self.to_outlet_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "notes": self.notes,
            "transferred_at": to_utc_z(self.transferred_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
