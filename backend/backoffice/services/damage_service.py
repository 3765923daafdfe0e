# Overview: Damaged-stock reports, their repair/scrap/resolve lifecycle and loss stats.

"""
Damage Service

Stock effect of each step:

- report: DAMAGE movement of -quantity (units leave sellable stock);
- repair: DAMAGE_REPAIR of +repaired units (they come back);
- scrap: no movement, the units already left at report time and are now
  written off for good;
- quantity decrease or delete: DAMAGE_RELEASE of +released units.

Every status change goes through _transition(), which checks
DAMAGE_TRANSITIONS and appends a DamageAction row when an action caused it.
Once outstanding_quantity reaches zero the report closes as REPAIRED (all
repaired), SCRAPPED (all scrapped) or RESOLVED (a mix).
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Damage, DamageAction, Product
from ..models.damage import (
    CLOSED_DAMAGE_STATUSES,
    DAMAGE_SEVERITIES,
    DAMAGE_STATUSES,
    DAMAGE_TYPES,
)
from backoffice.schemas import DamageActionRequest
from backoffice.time_utils import utc_today, utcnow
from backoffice.validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_money,
    require_choice,
    validate_payload,
)
from . import entity_validators as ev
from .concurrency import begin_immediate, run_with_retry
from .inventory_service import ensure_available, post_movement
from .ledger_service import append_ledger_event


DAMAGE_TRANSITIONS = {
    "REPORTED": {"INSPECTED", "RESOLVED"},
    "INSPECTED": {"REPAIRABLE", "PARTIALLY_REPAIRED", "REPAIRED", "SCRAPPED", "RESOLVED"},
    "REPAIRABLE": {"PARTIALLY_REPAIRED", "REPAIRED", "SCRAPPED", "RESOLVED"},
    "PARTIALLY_REPAIRED": {"REPAIRED", "SCRAPPED", "RESOLVED"},
    "REPAIRED": set(),
    "SCRAPPED": set(),
    "RESOLVED": set(),
}
# Statuses a report can be moved to by a plain edit; the rest need an action
EDITABLE_STATUSES = ("INSPECTED", "REPAIRABLE")
ACTIONABLE_STATUSES = ("INSPECTED", "REPAIRABLE", "PARTIALLY_REPAIRED")
DELETABLE_STATUSES = ("REPORTED", "INSPECTED")
TOP_PRODUCTS = 5

_DETAIL_FIELDS = {
    "damage_type", "severity", "damage_date", "description", "location",
    "batch_number", "serial_number", "estimated_cost_cents", "inspection_notes",
}

CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_DETAIL_FIELDS | {"outlet_id", "product_id", "quantity"},
    required_on_create={"outlet_id", "product_id", "quantity", "damage_type", "severity"},
    choices={"damage_type": DAMAGE_TYPES, "severity": DAMAGE_SEVERITIES},
)

UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=_DETAIL_FIELDS | {"quantity", "status"},
    choices={"damage_type": DAMAGE_TYPES, "severity": DAMAGE_SEVERITIES, "status": EDITABLE_STATUSES},
)


def _load_locked(org_id: int, damage_id: int) -> Damage:
    return ev.find_in_org(Damage, damage_id, org_id, label="Damage", lock=True).unwrap()


def _closing_status(damage: Damage) -> str:
    if damage.scrapped_quantity == 0:
        return "REPAIRED"
    if damage.repaired_quantity == 0:
        return "SCRAPPED"
    return "RESOLVED"


def _transition(
    damage: Damage,
    new_status: str,
    *,
    action: str | None = None,
    quantity: int = 0,
    cost_cents: int = 0,
    recovery_value_cents: int = 0,
    notes: str | None = None,
    user_id: int | None = None,
    now: datetime | None = None,
) -> None:
    """Single entry point for status changes; validates the move and logs the action."""
    now = now or utcnow()
    old_status = damage.status
    if new_status != old_status and new_status not in DAMAGE_TRANSITIONS.get(old_status, set()):
        raise ConflictError(
            f"Cannot change damage status from {old_status} to {new_status}",
            details={"from": old_status, "to": new_status},
        )

    damage.status = new_status
    if new_status == "INSPECTED" and damage.inspected_at is None:
        damage.inspected_at = now
    if new_status in CLOSED_DAMAGE_STATUSES and damage.resolved_at is None:
        damage.resolved_at = now

    if action:
        damage.actions.append(DamageAction(
            action=action,
            quantity=quantity,
            cost_cents=cost_cents,
            recovery_value_cents=recovery_value_cents,
            notes=notes,
            from_status=old_status,
            to_status=new_status,
            acted_at=now,
            user_id=user_id,
        ))

    if new_status != old_status:
        append_ledger_event(
            org_id=damage.org_id,
            outlet_id=damage.outlet_id,
            event_type="damage.status_changed",
            event_category="inventory",
            entity_type="damage",
            entity_id=damage.id,
            actor_user_id=user_id,
            occurred_at=now,
            payload={"from": old_status, "to": new_status, "action": action},
        )


def _require_actionable(damage: Damage, action: str) -> None:
    if damage.status not in ACTIONABLE_STATUSES:
        raise ConflictError(
            f"Cannot {action.lower()} a damage report in status {damage.status}",
            details={"status": damage.status, "allowed": list(ACTIONABLE_STATUSES)},
        )


def _action_quantity(damage: Damage, requested: int | None) -> int:
    outstanding = damage.outstanding_quantity
    quantity = outstanding if requested is None else requested
    if quantity > outstanding:
        raise ValidationError(
            "quantity exceeds the outstanding damaged quantity",
            details={"requested_quantity": quantity, "outstanding_quantity": outstanding},
        )
    return quantity


def _release(damage: Damage, quantity: int, note: str, now: datetime) -> None:
    post_movement(
        org_id=damage.org_id,
        outlet_id=damage.outlet_id,
        product_id=damage.product_id,
        tx_type="DAMAGE_RELEASE",
        quantity_delta=quantity,
        reference_type="damage",
        reference_id=damage.id,
        note=note,
        occurred_at=now,
    )


def _filtered(
    org_id: int,
    *,
    status: str | None = None,
    severity: str | None = None,
    damage_type: str | None = None,
    outlet_id: int | None = None,
    product_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str | None = None,
):
    query = db.session.query(Damage).filter(Damage.org_id == org_id)
    if status:
        query = query.filter(Damage.status == require_choice("status", status, DAMAGE_STATUSES))
    if severity:
        query = query.filter(Damage.severity == require_choice("severity", severity, DAMAGE_SEVERITIES))
    if damage_type:
        query = query.filter(Damage.damage_type == require_choice("damage_type", damage_type, DAMAGE_TYPES))
    if outlet_id is not None:
        query = query.filter(Damage.outlet_id == outlet_id)
    if product_id is not None:
        query = query.filter(Damage.product_id == product_id)
    if date_from is not None:
        query = query.filter(Damage.damage_date >= date_from)
    if date_to is not None:
        query = query.filter(Damage.damage_date <= date_to)
    if search:
        term = f"%{search}%"
        query = query.filter(db.or_(
            Damage.description.ilike(term),
            Damage.batch_number.ilike(term),
            Damage.serial_number.ilike(term),
        ))
    return query


def list_damages(org_id: int, *, limit: int = 50, offset: int = 0, **filters) -> tuple[list[Damage], int, dict]:
    """Page of reports plus a summary over the whole filtered set."""
    query = _filtered(org_id, **filters)
    total = query.count()
    rows = (
        query.order_by(Damage.damage_date.desc(), Damage.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    quantity, estimated = query.with_entities(
        func.coalesce(func.sum(Damage.quantity), 0),
        func.coalesce(func.sum(Damage.estimated_cost_cents), 0),
    ).one()
    summary = {"total_quantity": int(quantity), "estimated_cost_cents": int(estimated)}
    return rows, total, summary


def get_damage(org_id: int, damage_id: int) -> Damage:
    return ev.find_in_org(Damage, damage_id, org_id, label="Damage").unwrap()


def report_damage(org_id: int, payload: dict, *, user_id: int | None = None) -> Damage:
    patch = validate_payload(model=Damage, payload=payload, policy=CREATE_POLICY, partial=False)
    if patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")
    enforce_money("estimated_cost_cents", patch.get("estimated_cost_cents"))

    def _op():
        begin_immediate()
        outlet = ev.check_outlet(patch["outlet_id"], org_id, lock=True).unwrap()
        product = ev.check_product(patch["product_id"], org_id).unwrap()
        if not product.track_stock:
            raise ValidationError("Product does not track stock", details={"product_id": product.id})
        ensure_available(outlet.id, {product.id: patch["quantity"]}, {product.id: product})

        now = utcnow()
        fields = dict(patch)
        fields["damage_date"] = fields.get("damage_date") or utc_today()
        damage = Damage(org_id=org_id, status="REPORTED", reported_by_user_id=user_id, **fields)
        db.session.add(damage)
        db.session.flush()

        post_movement(
            org_id=org_id,
            outlet_id=outlet.id,
            product_id=product.id,
            tx_type="DAMAGE",
            quantity_delta=-damage.quantity,
            reference_type="damage",
            reference_id=damage.id,
            note=f"Damage reported ({damage.damage_type.lower()})",
            occurred_at=now,
        )
        append_ledger_event(
            org_id=org_id,
            outlet_id=outlet.id,
            event_type="damage.reported",
            event_category="inventory",
            entity_type="damage",
            entity_id=damage.id,
            actor_user_id=user_id,
            occurred_at=now,
            payload={"product_id": product.id, "quantity": damage.quantity, "severity": damage.severity},
        )
        db.session.commit()
        return damage

    return run_with_retry(_op)


def update_damage(org_id: int, damage_id: int, payload: dict, *, user_id: int | None = None) -> Damage:
    """
    Edit report details. quantity may only shrink, and only before any
    repair or scrap; the difference goes back to stock. status accepts the
    manual steps INSPECTED and REPAIRABLE.
    """
    patch = validate_payload(model=Damage, payload=payload, policy=UPDATE_POLICY, partial=True)
    enforce_money("estimated_cost_cents", patch.get("estimated_cost_cents"))
    new_status = patch.pop("status", None)
    new_quantity = patch.pop("quantity", None)

    def _op():
        begin_immediate()
        damage = _load_locked(org_id, damage_id)
        if damage.status in CLOSED_DAMAGE_STATUSES:
            raise ConflictError(f"Damage report is {damage.status} and can no longer be edited")
        now = utcnow()

        if new_quantity is not None and new_quantity != damage.quantity:
            if new_quantity <= 0:
                raise ValidationError("quantity must be > 0")
            if new_quantity > damage.quantity:
                raise ValidationError(
                    "quantity cannot be increased; report the extra units separately",
                    details={"quantity": damage.quantity, "requested_quantity": new_quantity},
                )
            if damage.repaired_quantity or damage.scrapped_quantity:
                raise ConflictError("quantity cannot change after units were repaired or scrapped")
            released = damage.quantity - new_quantity
            damage.quantity = new_quantity
            _release(damage, released, "Damage quantity reduced", now)

        for key, value in patch.items():
            setattr(damage, key, value)
        if new_status:
            _transition(damage, new_status, user_id=user_id, now=now)
        db.session.commit()
        return damage

    return run_with_retry(_op)


def delete_damage(org_id: int, damage_id: int, *, user_id: int | None = None) -> None:
    """Remove a report nobody has acted on yet and return its units to stock."""
    def _op():
        begin_immediate()
        damage = _load_locked(org_id, damage_id)
        if damage.status not in DELETABLE_STATUSES or damage.actions:
            raise ConflictError(
                "Only REPORTED or INSPECTED damage reports without actions can be deleted",
                details={"status": damage.status},
            )
        now = utcnow()
        _release(damage, damage.quantity, "Damage report deleted", now)
        append_ledger_event(
            org_id=org_id,
            outlet_id=damage.outlet_id,
            event_type="damage.deleted",
            event_category="inventory",
            entity_type="damage",
            entity_id=damage.id,
            actor_user_id=user_id,
            occurred_at=now,
            payload={"product_id": damage.product_id, "quantity": damage.quantity},
        )
        db.session.delete(damage)
        db.session.commit()

    run_with_retry(_op)


def repair_damage(org_id: int, damage_id: int, req: DamageActionRequest, *, user_id: int | None = None) -> Damage:
    def _op():
        begin_immediate()
        damage = _load_locked(org_id, damage_id)
        _require_actionable(damage, "REPAIR")
        quantity = _action_quantity(damage, req.quantity)
        if quantity == 0:
            raise ValidationError("Nothing left to repair")

        now = utcnow()
        damage.repaired_quantity += quantity
        damage.repair_cost_cents += req.cost_cents
        post_movement(
            org_id=org_id,
            outlet_id=damage.outlet_id,
            product_id=damage.product_id,
            tx_type="DAMAGE_REPAIR",
            quantity_delta=quantity,
            reference_type="damage",
            reference_id=damage.id,
            note="Repaired units returned to stock",
            occurred_at=now,
        )
        new_status = "PARTIALLY_REPAIRED" if damage.outstanding_quantity else _closing_status(damage)
        _transition(
            damage,
            new_status,
            action="REPAIR",
            quantity=quantity,
            cost_cents=req.cost_cents,
            notes=req.notes,
            user_id=user_id,
            now=now,
        )
        if req.notes:
            damage.action_taken = req.notes
        db.session.commit()
        return damage

    return run_with_retry(_op)


def scrap_damage(org_id: int, damage_id: int, req: DamageActionRequest, *, user_id: int | None = None) -> Damage:
    """Write units off. A partial scrap keeps the report open in its current status."""
    def _op():
        begin_immediate()
        damage = _load_locked(org_id, damage_id)
        _require_actionable(damage, "SCRAP")
        quantity = _action_quantity(damage, req.quantity)
        if quantity == 0:
            raise ValidationError("Nothing left to scrap")

        now = utcnow()
        damage.scrapped_quantity += quantity
        damage.recovery_value_cents += req.recovery_value_cents
        new_status = damage.status if damage.outstanding_quantity else _closing_status(damage)
        _transition(
            damage,
            new_status,
            action="SCRAP",
            quantity=quantity,
            recovery_value_cents=req.recovery_value_cents,
            notes=req.notes,
            user_id=user_id,
            now=now,
        )
        if req.notes:
            damage.action_taken = req.notes
        db.session.commit()
        return damage

    return run_with_retry(_op)


def resolve_damage(org_id: int, damage_id: int, req: DamageActionRequest, *, user_id: int | None = None) -> Damage:
    """Close the report as-is; outstanding units stay out of stock."""
    def _op():
        begin_immediate()
        damage = _load_locked(org_id, damage_id)
        if damage.status in CLOSED_DAMAGE_STATUSES:
            raise ConflictError(f"Damage report is already {damage.status}", details={"status": damage.status})
        _transition(
            damage,
            "RESOLVED",
            action="RESOLVE",
            quantity=damage.outstanding_quantity,
            notes=req.notes,
            user_id=user_id,
        )
        damage.action_taken = req.notes
        db.session.commit()
        return damage

    return run_with_retry(_op)


def damage_stats(
    org_id: int,
    *,
    outlet_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> dict:
    """Counts per status, type and severity (every value present), top products and money totals."""
    query = _filtered(org_id, outlet_id=outlet_id, date_from=date_from, date_to=date_to)

    def _counts(column, values) -> dict[str, int]:
        rows = query.with_entities(column, func.count(Damage.id)).group_by(column).all()
        counts = {value: 0 for value in values}
        counts.update({key: int(n) for key, n in rows})
        return counts

    top = (
        query.join(Product, Product.id == Damage.product_id)
        .with_entities(
            Product.id,
            Product.sku,
            Product.name,
            func.sum(Damage.quantity),
            func.count(Damage.id),
        )
        .group_by(Product.id, Product.sku, Product.name)
        .order_by(func.sum(Damage.quantity).desc(), Product.id.asc())
        .limit(TOP_PRODUCTS)
        .all()
    )

    reports, quantity, estimated, repair, recovery = query.with_entities(
        func.count(Damage.id),
        func.coalesce(func.sum(Damage.quantity), 0),
        func.coalesce(func.sum(Damage.estimated_cost_cents), 0),
        func.coalesce(func.sum(Damage.repair_cost_cents), 0),
        func.coalesce(func.sum(Damage.recovery_value_cents), 0),
    ).one()

    return {
        "by_status": _counts(Damage.status, DAMAGE_STATUSES),
        "by_type": _counts(Damage.damage_type, DAMAGE_TYPES),
        "by_severity": _counts(Damage.severity, DAMAGE_SEVERITIES),
        "top_products": [
            {"product_id": pid, "sku": sku, "name": name, "quantity": int(qty), "reports": int(n)}
            for pid, sku, name, qty, n in top
        ],
        "totals": {
            "reports": int(reports),
            "quantity": int(quantity),
            "estimated_cost_cents": int(estimated),
            "repair_cost_cents": int(repair),
            "recovery_value_cents": int(recovery),
            "net_loss_cents": int(estimated) + int(repair) - int(recovery),
        },
    }
