from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


PARTNER_STATUSES = ("ACTIVE", "INACTIVE", "PENDING", "SUSPENDED")
SHIPPING_METHODS = ("ROAD", "AIR", "SEA", "RAIL", "EXPRESS", "STANDARD", "ECONOMY")
SHIPMENT_STATUSES = (
    "PENDING",
    "PROCESSING",
    "IN_TRANSIT",
    "OUT_FOR_DELIVERY",
    "DELIVERED",
    "FAILED",
    "RETURNED",
    "CANCELLED",
)
# Shipments in these states no longer hold a partner in use
TERMINAL_SHIPMENT_STATUSES = ("DELIVERED", "CANCELLED")
# Shipments in these states have left the building and cannot be deleted
LOCKED_SHIPMENT_STATUSES = ("IN_TRANSIT", "OUT_FOR_DELIVERY", "DELIVERED")

MASKED_SECRET = "********"


class DeliveryPartner(db.Model):
    """
    Carrier profile.

    api_key/api_secret are write-only: to_dict always masks them.
    """
    __tablename__ = "delivery_partners"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_delivery_partners_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    website = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)
    supported_methods = db.Column(db.JSON, nullable=True)
    tracking_url_template = db.Column(db.String(512), nullable=True)

    api_key = db.Column(db.String(255), nullable=True)
    api_secret = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    rates = db.relationship("ShippingRate", backref="delivery_partner", lazy=True, order_by="ShippingRate.id")

    def tracking_url_for(self, tracking_number: str | None) -> str | None:
        if not self.tracking_url_template or not tracking_number:
            return None
        return self.tracking_url_template.replace("{trackingNumber}", tracking_number)

    def to_dict(self, include_rates: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "website": self.website,
            "status": self.status,
            "supported_methods": self.supported_methods or [],
            "tracking_url_template": self.tracking_url_template,
            "api_key": MASKED_SECRET if self.api_key else None,
            "api_secret": MASKED_SECRET if self.api_secret else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_rates:
            data["rates"] = [rate.to_dict() for rate in self.rates]
        return data


class ShippingRate(db.Model):
    """
    Price sheet row for a partner.

    min_weight/max_weight (kg) bound the window inclusively; NULL means
    unbounded on that side. to_location/from_location NULL means "any".
    """
    __tablename__ = "shipping_rates"
    __table_args__ = (
        db.Index("ix_shipping_rates_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    delivery_partner_id = db.Column(db.Integer, db.ForeignKey("delivery_partners.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    method = db.Column(db.String(16), nullable=False)

    base_rate_cents = db.Column(db.Integer, nullable=False)
    per_kg_rate_cents = db.Column(db.Integer, nullable=True)
    min_weight = db.Column(db.Float, nullable=True)
    max_weight = db.Column(db.Float, nullable=True)

    from_location = db.Column(db.String(255), nullable=True)
    to_location = db.Column(db.String(255), nullable=True)

    estimated_delivery_days = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "delivery_partner_id": self.delivery_partner_id,
            "name": self.name,
            "description": self.description,
            "method": self.method,
            "base_rate_cents": self.base_rate_cents,
            "per_kg_rate_cents": self.per_kg_rate_cents,
            "min_weight": self.min_weight,
            "max_weight": self.max_weight,
            "from_location": self.from_location,
            "to_location": self.to_location,
            "estimated_delivery_days": self.estimated_delivery_days,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Shipment(db.Model):
    """
    Parcel handed to a delivery partner.

    tracking_history is append-only: entries are added by the status
    service, never edited or removed. actual_delivery is set on the first
    transition into DELIVERED and kept afterwards.
    """
    __tablename__ = "shipments"
    __table_args__ = (
        db.Index("ix_shipments_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    delivery_partner_id = db.Column(db.Integer, db.ForeignKey("delivery_partners.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    tracking_number = db.Column(db.String(128), nullable=True, index=True)
    reference_number = db.Column(db.String(128), nullable=True)

    sender_name = db.Column(db.String(255), nullable=True)
    sender_address = db.Column(db.String(512), nullable=True)
    recipient_name = db.Column(db.String(255), nullable=False)
    recipient_address = db.Column(db.String(512), nullable=False)
    recipient_phone = db.Column(db.String(64), nullable=True)

    weight = db.Column(db.Float, nullable=True)
    shipping_method = db.Column(db.String(16), nullable=True)
    shipping_cost_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)
    tracking_history = db.Column(db.JSON, nullable=False, default=list)

    estimated_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    delivery_partner = db.relationship("DeliveryPartner", backref=db.backref("shipments", lazy=True))

    def to_dict(self) -> dict:
        partner = self.delivery_partner
        return {
            "id": self.id,
            "org_id": self.org_id,
            "delivery_partner_id": self.delivery_partner_id,
            "delivery_partner_name": partner.name if partner else None,
            "sale_id": self.sale_id,
            "tracking_number": self.tracking_number,
            "tracking_url": partner.tracking_url_for(self.tracking_number) if partner else None,
            "reference_number": self.reference_number,
            "sender_name": self.sender_name,
            "sender_address": self.sender_address,
            "recipient_name": self.recipient_name,
            "recipient_address": self.recipient_address,
            "recipient_phone": self.recipient_phone,
            "weight": self.weight,
            "shipping_method": self.shipping_method,
            "shipping_cost_cents": self.shipping_cost_cents,
            "status": self.status,
            "tracking_history": list(self.tracking_history or []),
            "estimated_delivery": to_utc_z(self.estimated_delivery),
            "actual_delivery": to_utc_z(self.actual_delivery),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
