from __future__ import annotations

from datetime import datetime

from ..extensions import db
from backoffice.time_utils import to_utc_z, utcnow


class Promotion(db.Model):
    """
    Promotions and discounts.

    discount_value is basis points when is_percentage (2000 = 20%), cents
    otherwise. Whether a promotion is active is derived from its window
    (start_at <= now <= end_at, both ends inclusive) and never stored.
    Empty scoping lists mean "no restriction".
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_promotions_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    code = db.Column(db.String(64), nullable=True, index=True)  # stored upper-case

    is_percentage = db.Column(db.Boolean, nullable=False, default=True)
    discount_value = db.Column(db.Integer, nullable=False, default=0)

    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    end_at = db.Column(db.DateTime(timezone=True), nullable=False)

    min_purchase_cents = db.Column(db.Integer, nullable=True)
    max_discount_cents = db.Column(db.Integer, nullable=True)
    limit_per_customer = db.Column(db.Integer, nullable=True)

    product_ids = db.Column(db.JSON, nullable=True)
    category_ids = db.Column(db.JSON, nullable=True)
    customer_group_ids = db.Column(db.JSON, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def is_active_at(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.start_at <= now <= self.end_at

    def to_dict(self, now: datetime | None = None) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "description": self.description,
            "code": self.code,
            "is_percentage": self.is_percentage,
            "discount_value": self.discount_value,
            "start_at": to_utc_z(self.start_at),
            "end_at": to_utc_z(self.end_at),
            "is_active": self.is_active_at(now),
            "min_purchase_cents": self.min_purchase_cents,
            "max_discount_cents": self.max_discount_cents,
            "limit_per_customer": self.limit_per_customer,
            "product_ids": self.product_ids or [],
            "category_ids": self.category_ids or [],
            "customer_group_ids": self.customer_group_ids or [],
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class PromotionUsage(db.Model):
    """One row per completed sale that applied a promotion; drives per-customer limits."""
    __tablename__ = "promotion_usages"
    __table_args__ = (
        db.UniqueConstraint("promotion_id", "sale_id", name="uq_promotion_usages_promo_sale"),
        db.Index("ix_promotion_usages_promo_customer", "promotion_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "promotion_id": self.promotion_id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "discount_cents": self.discount_cents,
            "used_at": to_utc_z(self.used_at),
        }
