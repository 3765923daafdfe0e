from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_iso_date, to_utc_z


DAMAGE_STATUSES = (
    "REPORTED",
    "INSPECTED",
    "REPAIRABLE",
    "PARTIALLY_REPAIRED",
    "REPAIRED",
    "SCRAPPED",
    "RESOLVED",
)
# Closed reports accept no further actions
CLOSED_DAMAGE_STATUSES = ("REPAIRED", "SCRAPPED", "RESOLVED")
DAMAGE_SEVERITIES = ("MINOR", "MODERATE", "SEVERE", "CRITICAL", "DESTROYED")
DAMAGE_TYPES = ("PHYSICAL", "WATER", "FIRE", "ELECTRICAL", "CONTAMINATION", "EXPIRED", "DEFECTIVE", "OTHER")
DAMAGE_ACTIONS = ("REPAIR", "SCRAP", "RESOLVE")


class Damage(db.Model):
    """
    Damaged stock at one outlet.

    Reporting takes the units out of sellable stock (a DAMAGE movement).
    Repairs put units back; scrapping writes them off for good. Units still
    out of stock and not yet repaired or scrapped are ``outstanding_quantity``.
    """
    __tablename__ = "damages"
    __table_args__ = (
        db.Index("ix_damages_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    repaired_quantity = db.Column(db.Integer, nullable=False, default=0)
    scrapped_quantity = db.Column(db.Integer, nullable=False, default=0)

    damage_date = db.Column(db.Date, nullable=False)
    damage_type = db.Column(db.String(16), nullable=False)
    severity = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(24), nullable=False, default="REPORTED")
    description = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(255), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    serial_number = db.Column(db.String(64), nullable=True)

    estimated_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    repair_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    recovery_value_cents = db.Column(db.Integer, nullable=False, default=0)

    inspection_notes = db.Column(db.Text, nullable=True)
    inspected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    action_taken = db.Column(db.Text, nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    reported_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    actions = db.relationship(
        "DamageAction",
        backref="damage",
        lazy=True,
        order_by="DamageAction.id",
        cascade="all, delete-orphan",
    )

    @property
    def outstanding_quantity(self) -> int:
        return self.quantity - (self.repaired_quantity or 0) - (self.scrapped_quantity or 0)

    @property
    def net_loss_cents(self) -> int:
        return (self.estimated_cost_cents or 0) + (self.repair_cost_cents or 0) - (self.recovery_value_cents or 0)

    def to_dict(self, include_actions: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "outlet_id": self.outlet_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "repaired_quantity": self.repaired_quantity,
            "scrapped_quantity": self.scrapped_quantity,
            "outstanding_quantity": self.outstanding_quantity,
            "damage_date": to_iso_date(self.damage_date),
            "damage_type": self.damage_type,
            "severity": self.severity,
            "status": self.status,
            "description": self.description,
            "location": self.location,
            "batch_number": self.batch_number,
            "serial_number": self.serial_number,
            "estimated_cost_cents": self.estimated_cost_cents,
            "repair_cost_cents": self.repair_cost_cents,
            "recovery_value_cents": self.recovery_value_cents,
            "net_loss_cents": self.net_loss_cents,
            "inspection_notes": self.inspection_notes,
            "inspected_at": to_utc_z(self.inspected_at),
            "action_taken": self.action_taken,
            "resolved_at": to_utc_z(self.resolved_at),
            "reported_by_user_id": self.reported_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_actions:
            data["actions"] = [a.to_dict() for a in self.actions]
        return data


class DamageAction(db.Model):
    """One repair, scrap or resolution applied to a damage report."""
    __tablename__ = "damage_actions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    damage_id = db.Column(db.Integer, db.ForeignKey("damages.id"), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    recovery_value_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    from_status = db.Column(db.String(24), nullable=False)
    to_status = db.Column(db.String(24), nullable=False)

    acted_at = db.Column(db.DateTime(timezone=True), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "damage_id": self.damage_id,
            "action": self.action,
            "quantity": self.quantity,
            "cost_cents": self.cost_cents,
            "recovery_value_cents": self.recovery_value_cents,
            "notes": self.notes,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "acted_at": to_utc_z(self.acted_at),
            "user_id": self.user_id,
        }
