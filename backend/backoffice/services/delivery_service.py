# Overview: Delivery partners, their shipping rates, and the rate calculation engine.

"""
Delivery Service

calculate_rates() prices a parcel against every matching active rate of
the organization:

    cost = base_rate_cents + round_half_up(per_kg_rate_cents * weight)

A rate matches when its partner/method equal the requested ones (if
given), its to_location equals the destination or is unset, and
min_weight <= weight <= max_weight with unset bounds open. When an origin
is given, from_location must equal it; rates without an origin drop out.
Results are sorted cheapest first; ties go to the faster rate, then the
older one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DeliveryPartner, Shipment, ShippingRate
from ..models.delivery import PARTNER_STATUSES, SHIPPING_METHODS, TERMINAL_SHIPMENT_STATUSES
from backoffice.schemas import RateQuery
from backoffice.validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    enforce_rules_shipping_rate,
    validate_payload,
)
from . import entity_validators as ev
from .concurrency import begin_immediate, run_with_retry
from .ledger_service import append_ledger_event
from .pricing import round_half_up


PARTNER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "code", "description", "contact_person", "email", "phone",
        "address", "website", "status", "supported_methods",
        "tracking_url_template", "api_key", "api_secret",
    },
    required_on_create={"name"},
    choices={"status": PARTNER_STATUSES, "supported_methods": SHIPPING_METHODS},
)

RATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "method", "base_rate_cents", "per_kg_rate_cents",
        "min_weight", "max_weight", "from_location", "to_location",
        "estimated_delivery_days", "is_active",
    },
    required_on_create={"name", "method", "base_rate_cents"},
    choices={"method": SHIPPING_METHODS},
)


def generate_partner_code(name: str) -> str:
    """Upper-cased alphanumerics of the name, at most 10 chars, padded to 3 with X."""
    code = re.sub(r"[^A-Z0-9]", "", name.upper())[:10]
    return code.ljust(3, "X")


# ---------------------------------------------------------------------------
# Partners
# ---------------------------------------------------------------------------

def list_partners(
    org_id: int,
    *,
    status: str | None = None,
    search: str | None = None,
) -> list[DeliveryPartner]:
    query = db.session.query(DeliveryPartner).filter(DeliveryPartner.org_id == org_id)
    if status:
        query = query.filter(DeliveryPartner.status == status.upper())
    if search:
        term = f"%{search}%"
        query = query.filter(db.or_(
            DeliveryPartner.name.ilike(term),
            DeliveryPartner.code.ilike(term),
            DeliveryPartner.contact_person.ilike(term),
        ))
    return query.order_by(DeliveryPartner.name.asc()).all()


def get_partner(org_id: int, partner_id: int) -> DeliveryPartner:
    return ev.check_delivery_partner(partner_id, org_id).unwrap()


def _unique_code(org_id: int, base: str, exclude_id: int | None = None) -> str:
    query = db.session.query(DeliveryPartner.id).filter(DeliveryPartner.org_id == org_id, DeliveryPartner.code == base)
    if exclude_id is not None:
        query = query.filter(DeliveryPartner.id != exclude_id)
    if query.first():
        raise ConflictError(f"Delivery partner code '{base}' already exists in this organization")
    return base


def create_partner(org_id: int, payload: dict, *, user_id: int | None = None) -> DeliveryPartner:
    patch = validate_payload(model=DeliveryPartner, payload=payload, policy=PARTNER_POLICY, partial=False)
    patch["code"] = (patch.get("code") or generate_partner_code(patch["name"])).upper()

    def _op():
        _unique_code(org_id, patch["code"])
        partner = DeliveryPartner(org_id=org_id, **patch)
        db.session.add(partner)
        db.session.flush()
        append_ledger_event(
            org_id=org_id,
            event_type="delivery_partner.created",
            event_category="delivery",
            entity_type="delivery_partner",
            entity_id=partner.id,
            actor_user_id=user_id,
        )
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Delivery partner code already exists in this organization")
        return partner

    return run_with_retry(_op)


def update_partner(org_id: int, partner_id: int, payload: dict, *, user_id: int | None = None) -> DeliveryPartner:
    patch = validate_payload(model=DeliveryPartner, payload=payload, policy=PARTNER_POLICY, partial=True)

    def _op():
        partner = ev.check_delivery_partner(partner_id, org_id, lock=True).unwrap()
        if patch.get("code"):
            patch["code"] = _unique_code(org_id, patch["code"].upper(), exclude_id=partner.id)
        elif "code" in patch:
            patch["code"] = generate_partner_code(patch.get("name") or partner.name)

        old_status = partner.status
        for key, value in patch.items():
            setattr(partner, key, value)

        if "status" in patch and patch["status"] != old_status:
            append_ledger_event(
                org_id=org_id,
                event_type="delivery_partner.status_changed",
                event_category="delivery",
                entity_type="delivery_partner",
                entity_id=partner.id,
                actor_user_id=user_id,
                payload={"from": old_status, "to": partner.status},
            )
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Delivery partner code already exists in this organization")
        return partner

    return run_with_retry(_op)


def count_open_shipments(partner_id: int) -> int:
    return int(
        db.session.query(func.count(Shipment.id))
        .filter(
            Shipment.delivery_partner_id == partner_id,
            Shipment.status.notin_(TERMINAL_SHIPMENT_STATUSES),
        )
        .scalar() or 0
    )


def delete_partner(org_id: int, partner_id: int, *, user_id: int | None = None) -> None:
    """
    Refused while any of the partner's shipments is not DELIVERED or
    CANCELLED. The check and the delete (rates first) run under the same lock.
    """
    def _op():
        begin_immediate()
        partner = ev.check_delivery_partner(partner_id, org_id, lock=True).unwrap()

        open_shipments = count_open_shipments(partner.id)
        if open_shipments:
            raise ConflictError(
                "Cannot delete delivery partner with active shipments",
                details={"active_shipments": open_shipments},
            )

        # Finished shipments keep their history without the partner.
        db.session.query(Shipment).filter_by(delivery_partner_id=partner.id).update(
            {Shipment.delivery_partner_id: None}, synchronize_session=False
        )
        db.session.query(ShippingRate).filter_by(delivery_partner_id=partner.id).delete(synchronize_session=False)
        append_ledger_event(
            org_id=org_id,
            event_type="delivery_partner.deleted",
            event_category="delivery",
            entity_type="delivery_partner",
            entity_id=partner.id,
            actor_user_id=user_id,
            note=partner.name,
        )
        db.session.delete(partner)
        db.session.commit()

    run_with_retry(_op)


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------

def list_rates(org_id: int, partner_id: int, *, include_inactive: bool = True) -> list[ShippingRate]:
    partner = get_partner(org_id, partner_id)
    query = db.session.query(ShippingRate).filter(ShippingRate.delivery_partner_id == partner.id)
    if not include_inactive:
        query = query.filter(ShippingRate.is_active.is_(True))
    return query.order_by(ShippingRate.id.asc()).all()


def get_rate(org_id: int, partner_id: int, rate_id: int) -> ShippingRate:
    rate = db.session.query(ShippingRate).filter_by(
        id=rate_id, delivery_partner_id=partner_id, org_id=org_id
    ).first()
    if not rate:
        raise NotFoundError("ShippingRate", rate_id)
    return rate


def create_rate(org_id: int, partner_id: int, payload: dict) -> ShippingRate:
    patch = validate_payload(model=ShippingRate, payload=payload, policy=RATE_POLICY, partial=False)
    enforce_rules_shipping_rate(patch)

    def _op():
        partner = ev.check_delivery_partner(partner_id, org_id, lock=True).unwrap()
        rate = ShippingRate(org_id=org_id, delivery_partner_id=partner.id, **patch)
        db.session.add(rate)
        db.session.commit()
        return rate

    return run_with_retry(_op)


def update_rate(org_id: int, partner_id: int, rate_id: int, payload: dict) -> ShippingRate:
    patch = validate_payload(model=ShippingRate, payload=payload, policy=RATE_POLICY, partial=True)

    def _op():
        rate = get_rate(org_id, partner_id, rate_id)
        merged = {
            key: getattr(rate, key)
            for key in ("base_rate_cents", "per_kg_rate_cents", "min_weight", "max_weight", "estimated_delivery_days")
        }
        merged.update({k: v for k, v in patch.items() if k in merged})
        enforce_rules_shipping_rate(merged)
        for key, value in patch.items():
            setattr(rate, key, value)
        db.session.commit()
        return rate

    return run_with_retry(_op)


def delete_rate(org_id: int, partner_id: int, rate_id: int) -> None:
    def _op():
        rate = get_rate(org_id, partner_id, rate_id)
        db.session.delete(rate)
        db.session.commit()

    run_with_retry(_op)


# ---------------------------------------------------------------------------
# Rate calculation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RateQuote:
    rate: ShippingRate
    partner: DeliveryPartner
    cost_cents: int

    def to_dict(self) -> dict:
        return {
            "rate_id": self.rate.id,
            "delivery_partner": {
                "id": self.partner.id,
                "name": self.partner.name,
                "code": self.partner.code,
                "status": self.partner.status,
            },
            "method": self.rate.method,
            "name": self.rate.name,
            "estimated_delivery_days": self.rate.estimated_delivery_days,
            "base_rate_cents": self.rate.base_rate_cents,
            "per_kg_rate_cents": self.rate.per_kg_rate_cents,
            "calculated_rate_cents": self.cost_cents,
        }


def rate_matches_weight(rate: ShippingRate, weight: float) -> bool:
    if rate.min_weight is not None and weight < rate.min_weight:
        return False
    if rate.max_weight is not None and weight > rate.max_weight:
        return False
    return True


def price_rate(rate: ShippingRate, weight: float) -> int:
    per_kg = Decimal(rate.per_kg_rate_cents or 0) * Decimal(str(weight))
    return rate.base_rate_cents + round_half_up(per_kg)


def calculate_rates(org_id: int, query: RateQuery) -> list[RateQuote]:
    q = (
        db.session.query(ShippingRate, DeliveryPartner)
        .join(DeliveryPartner, DeliveryPartner.id == ShippingRate.delivery_partner_id)
        .filter(
            ShippingRate.org_id == org_id,
            DeliveryPartner.org_id == org_id,
            ShippingRate.is_active.is_(True),
            db.or_(ShippingRate.to_location == query.to_location, ShippingRate.to_location.is_(None)),
        )
    )
    if query.delivery_partner_id is not None:
        q = q.filter(ShippingRate.delivery_partner_id == query.delivery_partner_id)
    if query.method:
        q = q.filter(ShippingRate.method == query.method)
    if query.from_location:
        q = q.filter(ShippingRate.from_location == query.from_location)

    quotes = [
        RateQuote(rate=rate, partner=partner, cost_cents=price_rate(rate, query.weight))
        for rate, partner in q.all()
        if rate_matches_weight(rate, query.weight)
    ]
    quotes.sort(key=lambda quote: (
        quote.cost_cents,
        quote.rate.estimated_delivery_days if quote.rate.estimated_delivery_days is not None else 1 << 30,
        quote.rate.id,
    ))
    return quotes
