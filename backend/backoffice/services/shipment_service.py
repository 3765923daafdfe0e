# Overview: Shipment lifecycle with an append-only tracking history.

"""
Shipment Service

Shipments move freely between their eight states, always through
change_shipment_status() (or update_shipment() when the status field is
part of a larger edit). Rules:

- every status change appends exactly one tracking_history entry
  {timestamp, status, location?, description?};
- the first DELIVERED sets actual_delivery; later DELIVERED keeps it;
- delete is refused while IN_TRANSIT, OUT_FOR_DELIVERY or DELIVERED.

tracking_history is a JSON column, so it is always reassigned as a new list
rather than mutated in place; in-place appends would not be flushed.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Shipment
from ..models.delivery import LOCKED_SHIPMENT_STATUSES, SHIPMENT_STATUSES, SHIPPING_METHODS
from ..time_utils import to_utc_z, utcnow
from backoffice.schemas import ShipmentStatusChange
from backoffice.validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_money,
    validate_payload,
)
from . import entity_validators as ev
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event


SHIPMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "delivery_partner_id", "sale_id", "tracking_number", "reference_number",
        "sender_name", "sender_address", "recipient_name", "recipient_address",
        "recipient_phone", "weight", "shipping_method", "shipping_cost_cents",
        "status", "estimated_delivery", "notes",
    },
    required_on_create={"delivery_partner_id", "recipient_name", "recipient_address"},
    choices={"status": SHIPMENT_STATUSES, "shipping_method": SHIPPING_METHODS},
)


def history_entry(
    status: str,
    *,
    at: datetime | None = None,
    location: str | None = None,
    description: str | None = None,
) -> dict:
    entry = {"timestamp": to_utc_z(at or utcnow()), "status": status}
    if location:
        entry["location"] = location
    if description:
        entry["description"] = description
    return entry


def apply_status(
    shipment: Shipment,
    new_status: str,
    *,
    location: str | None = None,
    description: str | None = None,
    now: datetime | None = None,
) -> None:
    """Set status, append one history entry, stamp actual_delivery once."""
    now = now or utcnow()
    shipment.status = new_status
    shipment.tracking_history = list(shipment.tracking_history or []) + [
        history_entry(new_status, at=now, location=location, description=description)
    ]
    if new_status == "DELIVERED" and shipment.actual_delivery is None:
        shipment.actual_delivery = now


def _check_references(org_id: int, patch: dict) -> None:
    if patch.get("delivery_partner_id") is not None:
        ev.check_delivery_partner(patch["delivery_partner_id"], org_id).unwrap()
    if patch.get("sale_id") is not None:
        ev.check_sale(patch["sale_id"], org_id).unwrap()
    if patch.get("weight") is not None and patch["weight"] <= 0:
        raise ValidationError("weight must be > 0")
    enforce_money("shipping_cost_cents", patch.get("shipping_cost_cents"))


def _load_locked(org_id: int, shipment_id: int) -> Shipment:
    return ev.find_in_org(Shipment, shipment_id, org_id, label="Shipment", lock=True).unwrap()


def list_shipments(
    org_id: int,
    *,
    status: str | None = None,
    delivery_partner_id: int | None = None,
    sale_id: int | None = None,
    tracking_number: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Shipment], int]:
    query = db.session.query(Shipment).filter(Shipment.org_id == org_id)
    if status:
        query = query.filter(Shipment.status == status.upper())
    if delivery_partner_id is not None:
        query = query.filter(Shipment.delivery_partner_id == delivery_partner_id)
    if sale_id is not None:
        query = query.filter(Shipment.sale_id == sale_id)
    if tracking_number:
        query = query.filter(Shipment.tracking_number == tracking_number)
    if search:
        term = f"%{search}%"
        query = query.filter(db.or_(
            Shipment.tracking_number.ilike(term),
            Shipment.reference_number.ilike(term),
            Shipment.recipient_name.ilike(term),
        ))

    total = query.count()
    rows = (
        query.order_by(Shipment.created_at.desc(), Shipment.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return rows, total


def get_shipment(org_id: int, shipment_id: int) -> Shipment:
    return ev.find_in_org(Shipment, shipment_id, org_id, label="Shipment").unwrap()


def list_sale_shipments(org_id: int, sale_id: int) -> list[Shipment]:
    sale = ev.check_sale(sale_id, org_id).unwrap()
    return (
        db.session.query(Shipment)
        .filter(Shipment.org_id == org_id, Shipment.sale_id == sale.id)
        .order_by(Shipment.id.asc())
        .all()
    )


def create_shipment(org_id: int, payload: dict, *, user_id: int | None = None) -> Shipment:
    patch = validate_payload(model=Shipment, payload=payload, policy=SHIPMENT_POLICY, partial=False)
    _check_references(org_id, patch)
    initial_status = patch.pop("status", None) or "PENDING"

    def _op():
        partner = ev.check_delivery_partner(patch["delivery_partner_id"], org_id, lock=True).unwrap()
        shipment = Shipment(org_id=org_id, tracking_history=[], **patch)
        apply_status(shipment, initial_status, description="Shipment created")
        db.session.add(shipment)
        db.session.flush()

        append_ledger_event(
            org_id=org_id,
            event_type="shipment.created",
            event_category="delivery",
            entity_type="shipment",
            entity_id=shipment.id,
            actor_user_id=user_id,
            payload={"delivery_partner_id": partner.id, "status": shipment.status},
        )
        db.session.commit()
        return shipment

    return run_with_retry(_op)


def update_shipment(org_id: int, shipment_id: int, payload: dict, *, user_id: int | None = None) -> Shipment:
    """Field edit. A changed status is routed through apply_status; an unchanged one adds no entry."""
    patch = validate_payload(model=Shipment, payload=payload, policy=SHIPMENT_POLICY, partial=True)
    _check_references(org_id, patch)
    new_status = patch.pop("status", None)

    def _op():
        shipment = _load_locked(org_id, shipment_id)
        for key, value in patch.items():
            setattr(shipment, key, value)

        old_status = shipment.status
        if new_status and new_status != old_status:
            apply_status(shipment, new_status)
            append_ledger_event(
                org_id=org_id,
                event_type="shipment.status_changed",
                event_category="delivery",
                entity_type="shipment",
                entity_id=shipment.id,
                actor_user_id=user_id,
                payload={"from": old_status, "to": new_status},
            )
        db.session.commit()
        return shipment

    return run_with_retry(_op)


def change_shipment_status(
    org_id: int,
    shipment_id: int,
    change: ShipmentStatusChange,
    *,
    user_id: int | None = None,
) -> Shipment:
    """
    Explicit status event. Always appends a history entry, even when the
    status is unchanged (a carrier scan at a new location is still news).
    """
    def _op():
        shipment = _load_locked(org_id, shipment_id)
        old_status = shipment.status
        apply_status(shipment, change.status, location=change.location, description=change.description)
        append_ledger_event(
            org_id=org_id,
            event_type="shipment.status_changed",
            event_category="delivery",
            entity_type="shipment",
            entity_id=shipment.id,
            actor_user_id=user_id,
            payload={"from": old_status, "to": change.status, "location": change.location},
        )
        db.session.commit()
        return shipment

    return run_with_retry(_op)


def delete_shipment(org_id: int, shipment_id: int, *, user_id: int | None = None) -> None:
    def _op():
        shipment = _load_locked(org_id, shipment_id)
        if shipment.status in LOCKED_SHIPMENT_STATUSES:
            raise ConflictError(
                f"Cannot delete a shipment that is {shipment.status}",
                details={"status": shipment.status},
            )
        append_ledger_event(
            org_id=org_id,
            event_type="shipment.deleted",
            event_category="delivery",
            entity_type="shipment",
            entity_id=shipment.id,
            actor_user_id=user_id,
            payload={"status": shipment.status},
        )
        db.session.delete(shipment)
        db.session.commit()

    run_with_retry(_op)

