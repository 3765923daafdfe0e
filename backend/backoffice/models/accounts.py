from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


ACCOUNT_TYPES = ("ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE")


class Account(db.Model):
    """
    Chart-of-accounts entry for an organization.

    balance_cents is a signed running figure maintained by hand; no journal
    posts into it.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_accounts_org_name"),
        db.Index("ix_accounts_org_type", "org_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    description = db.Column(db.Text, nullable=True)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "type": self.type,
            "code": self.code,
            "description": self.description,
            "balance_cents": self.balance_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
