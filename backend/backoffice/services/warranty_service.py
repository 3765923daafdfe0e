# Overview: Warranties, their claims and extensions, and the expiry sweep.

"""
Warranty Service

Warranty.status is stored so it can be filtered on. ACTIVE/EXPIRED follow
end_date and are re-derived on every read and by expire_warranties();
VOIDED and CLAIMED are set here and never change again.

Claims move only through change_claim_status():

    PENDING  -> APPROVED | REJECTED | CANCELLED
    APPROVED -> PROCESSED | CANCELLED

Processing a claim marks its warranty CLAIMED.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable

from sqlalchemy import func

from ..extensions import db
from ..models import SaleItem, Warranty, WarrantyClaim, WarrantyExtension
from ..models.warranty import CLAIM_STATUSES, CLAIM_TYPES, FROZEN_WARRANTY_STATUSES, WARRANTY_STATUSES
from backoffice.schemas import ClaimStatusChange, WarrantyClaimRequest, WarrantyExtensionRequest
from backoffice.time_utils import add_months, utc_today, utcnow
from backoffice.validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    require_choice,
    validate_payload,
)
from . import entity_validators as ev
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event


CLAIM_TRANSITIONS = {
    "PENDING": {"APPROVED", "REJECTED", "CANCELLED"},
    "APPROVED": {"PROCESSED", "CANCELLED"},
    "REJECTED": set(),
    "PROCESSED": set(),
    "CANCELLED": set(),
}
# Claim statuses that close the claim
FINAL_CLAIM_STATUSES = ("REJECTED", "PROCESSED", "CANCELLED")

_EDITABLE = {
    "customer_id", "warranty_number", "serial_number", "start_date", "end_date",
    "coverage", "terms", "notes", "extendable",
}

CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_EDITABLE | {"product_id", "sale_id"},
    required_on_create={"product_id", "start_date", "end_date"},
)

UPDATE_POLICY = ModelValidationPolicy(writable_fields=_EDITABLE)


def sync_statuses(warranties: Iterable[Warranty], today: date | None = None) -> int:
    """Re-derive ACTIVE/EXPIRED in place; returns how many rows changed."""
    today = today or utc_today()
    changed = 0
    for warranty in warranties:
        derived = warranty.derive_status(today)
        if warranty.status != derived:
            warranty.status = derived
            changed += 1
    return changed


def _check_dates(start: date, end: date) -> None:
    if end < start:
        raise ValidationError("end_date must be on or after start_date")


def _check_number_free(org_id: int, number: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Warranty.id).filter(
        Warranty.org_id == org_id,
        Warranty.warranty_number == number,
    )
    if exclude_id is not None:
        query = query.filter(Warranty.id != exclude_id)
    if query.first():
        raise ConflictError(f"Warranty number '{number}' already exists")


def _check_references(org_id: int, patch: dict, product_id: int) -> None:
    if patch.get("customer_id") is not None:
        ev.check_customer(patch["customer_id"], org_id).unwrap()
    if patch.get("sale_id") is None:
        return
    sale = ev.check_sale(patch["sale_id"], org_id).unwrap()
    on_sale = db.session.query(SaleItem.id).filter(
        SaleItem.sale_id == sale.id,
        SaleItem.product_id == product_id,
    ).first()
    if not on_sale:
        raise ValidationError(
            "Product is not on the referenced sale",
            details={"sale_id": sale.id, "product_id": product_id},
        )
    if patch.get("customer_id") is None:
        patch["customer_id"] = sale.customer_id
    elif sale.customer_id is not None and patch["customer_id"] != sale.customer_id:
        raise ValidationError(
            "customer_id does not match the sale's customer",
            details={"sale_id": sale.id, "customer_id": sale.customer_id},
        )


def _load_locked(org_id: int, warranty_id: int) -> Warranty:
    return ev.find_in_org(Warranty, warranty_id, org_id, label="Warranty", lock=True).unwrap()


def _log(warranty: Warranty, event_type: str, user_id: int | None, **payload) -> None:
    append_ledger_event(
        org_id=warranty.org_id,
        event_type=event_type,
        event_category="warranty",
        entity_type="warranty",
        entity_id=warranty.id,
        actor_user_id=user_id,
        payload=payload or None,
    )


def list_warranties(
    org_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    product_id: int | None = None,
    sale_id: int | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Warranty], int]:
    # Refresh first so a status filter sees current values.
    expire_warranties(org_id)

    query = db.session.query(Warranty).filter(Warranty.org_id == org_id)
    if status:
        query = query.filter(Warranty.status == require_choice("status", status, WARRANTY_STATUSES))
    if customer_id is not None:
        query = query.filter(Warranty.customer_id == customer_id)
    if product_id is not None:
        query = query.filter(Warranty.product_id == product_id)
    if sale_id is not None:
        query = query.filter(Warranty.sale_id == sale_id)
    if search:
        term = f"%{search}%"
        query = query.filter(db.or_(
            Warranty.warranty_number.ilike(term),
            Warranty.serial_number.ilike(term),
        ))
    total = query.count()
    rows = query.order_by(Warranty.end_date.asc(), Warranty.id.asc()).limit(limit).offset(offset).all()
    return rows, total


def get_warranty(org_id: int, warranty_id: int) -> Warranty:
    warranty = ev.find_in_org(Warranty, warranty_id, org_id, label="Warranty").unwrap()
    if sync_statuses([warranty]):
        db.session.commit()
    return warranty


def create_warranty(org_id: int, payload: dict, *, user_id: int | None = None) -> Warranty:
    patch = validate_payload(model=Warranty, payload=payload, policy=CREATE_POLICY, partial=False)
    _check_dates(patch["start_date"], patch["end_date"])

    def _op():
        product = ev.check_product(patch["product_id"], org_id).unwrap()
        fields = dict(patch)
        _check_references(org_id, fields, product.id)
        if fields.get("warranty_number"):
            _check_number_free(org_id, fields["warranty_number"])

        warranty = Warranty(org_id=org_id, created_by_user_id=user_id, status="ACTIVE", **fields)
        sync_statuses([warranty])
        db.session.add(warranty)
        db.session.flush()
        if not warranty.warranty_number:
            warranty.warranty_number = f"WR-{warranty.id:06d}"
        _log(warranty, "warranty.created", user_id, product_id=product.id, customer_id=warranty.customer_id)
        db.session.commit()
        return warranty

    return run_with_retry(_op)


def update_warranty(org_id: int, warranty_id: int, payload: dict, *, user_id: int | None = None) -> Warranty:
    patch = validate_payload(model=Warranty, payload=payload, policy=UPDATE_POLICY, partial=True)

    def _op():
        warranty = _load_locked(org_id, warranty_id)
        if warranty.status in FROZEN_WARRANTY_STATUSES:
            raise ConflictError(f"Cannot edit a {warranty.status} warranty", details={"status": warranty.status})
        fields = dict(patch)
        if fields.get("customer_id") is not None:
            ev.check_customer(fields["customer_id"], org_id).unwrap()
        if fields.get("warranty_number"):
            _check_number_free(org_id, fields["warranty_number"], exclude_id=warranty.id)
        if "warranty_number" in fields and not fields["warranty_number"]:
            raise ValidationError("warranty_number cannot be blank")
        _check_dates(fields.get("start_date", warranty.start_date), fields.get("end_date", warranty.end_date))

        for key, value in fields.items():
            setattr(warranty, key, value)
        sync_statuses([warranty])
        _log(warranty, "warranty.updated", user_id, fields=sorted(fields))
        db.session.commit()
        return warranty

    return run_with_retry(_op)


def delete_warranty(org_id: int, warranty_id: int, *, user_id: int | None = None) -> None:
    def _op():
        warranty = _load_locked(org_id, warranty_id)
        if warranty.claims:
            raise ConflictError(
                "Cannot delete a warranty that has claims",
                details={"claim_count": len(warranty.claims)},
            )
        _log(warranty, "warranty.deleted", user_id, warranty_number=warranty.warranty_number)
        db.session.delete(warranty)
        db.session.commit()

    run_with_retry(_op)


def void_warranty(org_id: int, warranty_id: int, *, reason: str | None = None, user_id: int | None = None) -> Warranty:
    def _op():
        warranty = _load_locked(org_id, warranty_id)
        sync_statuses([warranty])
        if warranty.status != "ACTIVE":
            raise ConflictError(
                f"Only ACTIVE warranties can be voided (status is {warranty.status})",
                details={"status": warranty.status},
            )
        warranty.status = "VOIDED"
        if reason:
            warranty.notes = f"{warranty.notes}\nVoid reason: {reason}" if warranty.notes else f"Void reason: {reason}"
        _log(warranty, "warranty.voided", user_id, reason=reason)
        db.session.commit()
        return warranty

    return run_with_retry(_op)


def file_claim(org_id: int, warranty_id: int, req: WarrantyClaimRequest, *, user_id: int | None = None) -> WarrantyClaim:
    """Open a PENDING claim against an ACTIVE warranty; the claim date must fall inside its term."""
    def _op():
        warranty = _load_locked(org_id, warranty_id)
        today = utc_today()
        sync_statuses([warranty], today)
        if warranty.status != "ACTIVE":
            # Persist a freshly derived EXPIRED before refusing
            db.session.commit()
            raise ConflictError(
                f"Cannot claim against a {warranty.status} warranty",
                details={"status": warranty.status},
            )
        claim_date = req.claim_date or today
        if not warranty.start_date <= claim_date <= warranty.end_date:
            raise ValidationError(
                "claim_date must fall within the warranty term",
                details={"start_date": warranty.start_date.isoformat(), "end_date": warranty.end_date.isoformat()},
            )
        claim = WarrantyClaim(
            org_id=org_id,
            warranty_id=warranty.id,
            claim_type=req.claim_type,
            claim_date=claim_date,
            description=req.description,
            status="PENDING",
            contact_name=req.contact_name,
            contact_phone=req.contact_phone,
            contact_email=req.contact_email,
            notes=req.notes,
            created_by_user_id=user_id,
        )
        db.session.add(claim)
        db.session.flush()
        _log(warranty, "warranty.claim_filed", user_id, claim_id=claim.id, claim_type=claim.claim_type)
        db.session.commit()
        return claim

    return run_with_retry(_op)


def list_claims(
    org_id: int,
    *,
    warranty_id: int | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[WarrantyClaim], int]:
    query = db.session.query(WarrantyClaim).filter(WarrantyClaim.org_id == org_id)
    if warranty_id is not None:
        query = query.filter(WarrantyClaim.warranty_id == warranty_id)
    if status:
        query = query.filter(WarrantyClaim.status == require_choice("status", status, CLAIM_STATUSES))
    total = query.count()
    rows = query.order_by(WarrantyClaim.claim_date.desc(), WarrantyClaim.id.desc()).limit(limit).offset(offset).all()
    return rows, total


def change_claim_status(
    org_id: int,
    claim_id: int,
    change: ClaimStatusChange,
    *,
    user_id: int | None = None,
) -> WarrantyClaim:
    """The only way a claim changes status."""
    def _op():
        claim = ev.find_in_org(WarrantyClaim, claim_id, org_id, label="WarrantyClaim", lock=True).unwrap()
        old_status = claim.status
        if change.status not in CLAIM_TRANSITIONS.get(old_status, set()):
            raise ConflictError(
                f"Cannot change claim status from {old_status} to {change.status}",
                details={"from": old_status, "to": change.status},
            )

        warranty = _load_locked(org_id, claim.warranty_id)
        if change.status in ("APPROVED", "PROCESSED") and warranty.status in FROZEN_WARRANTY_STATUSES:
            raise ConflictError(
                f"Warranty is {warranty.status}; the claim can only be rejected or cancelled",
                details={"warranty_status": warranty.status},
            )

        claim.status = change.status
        if change.resolution_notes is not None:
            claim.resolution_notes = change.resolution_notes
        if change.resolution_cost_cents is not None:
            claim.resolution_cost_cents = change.resolution_cost_cents
        if change.status in FINAL_CLAIM_STATUSES:
            claim.resolved_at = utcnow()
            claim.resolved_by_user_id = user_id
        if change.status == "PROCESSED":
            warranty.status = "CLAIMED"

        _log(warranty, "warranty.claim_status_changed", user_id, claim_id=claim.id, **{"from": old_status, "to": change.status})
        db.session.commit()
        return claim

    return run_with_retry(_op)


def extend_warranty(
    org_id: int,
    warranty_id: int,
    req: WarrantyExtensionRequest,
    *,
    user_id: int | None = None,
) -> Warranty:
    def _op():
        warranty = _load_locked(org_id, warranty_id)
        sync_statuses([warranty])
        if warranty.status != "ACTIVE":
            raise ConflictError(
                f"Only ACTIVE warranties can be extended (status is {warranty.status})",
                details={"status": warranty.status},
            )
        if not warranty.extendable:
            raise ConflictError("Warranty is not extendable")

        original_end = warranty.end_date
        new_end = req.new_end_date or add_months(original_end, req.months)
        if new_end <= original_end:
            raise ValidationError(
                "new_end_date must be after the current end_date",
                details={"end_date": original_end.isoformat()},
            )
        warranty.extensions.append(WarrantyExtension(
            original_end_date=original_end,
            new_end_date=new_end,
            extension_months=req.months,
            reason=req.reason,
            payment_amount_cents=req.payment_amount_cents,
            created_by_user_id=user_id,
        ))
        warranty.end_date = new_end
        _log(warranty, "warranty.extended", user_id, original_end_date=original_end.isoformat(), new_end_date=new_end.isoformat())
        db.session.commit()
        return warranty

    return run_with_retry(_op)


def expire_warranties(org_id: int | None = None, *, today: date | None = None) -> int:
    """Flip ACTIVE warranties past end_date to EXPIRED (and back, if end_date moved). Returns rows touched."""
    today = today or utc_today()

    def _op():
        query = db.session.query(Warranty).filter(Warranty.status.in_(("ACTIVE", "EXPIRED")))
        if org_id is not None:
            query = query.filter(Warranty.org_id == org_id)
        changed = sync_statuses(query.all(), today)
        if changed:
            db.session.commit()
        return changed

    return run_with_retry(_op)


def claim_stats(org_id: int, *, date_from: date | None = None, date_to: date | None = None) -> dict:
    """Claim counts per status and type (every value present) and total resolution cost."""
    query = db.session.query(WarrantyClaim).filter(WarrantyClaim.org_id == org_id)
    if date_from is not None:
        query = query.filter(WarrantyClaim.claim_date >= date_from)
    if date_to is not None:
        query = query.filter(WarrantyClaim.claim_date <= date_to)

    def _counts(column, values) -> dict[str, int]:
        counts = {value: 0 for value in values}
        rows = query.with_entities(column, func.count(WarrantyClaim.id)).group_by(column).all()
        counts.update({key: int(n) for key, n in rows})
        return counts

    total, cost = query.with_entities(
        func.count(WarrantyClaim.id),
        func.coalesce(func.sum(WarrantyClaim.resolution_cost_cents), 0),
    ).one()
    return {
        "total_claims": int(total),
        "by_status": _counts(WarrantyClaim.status, CLAIM_STATUSES),
        "by_type": _counts(WarrantyClaim.claim_type, CLAIM_TYPES),
        "total_resolution_cost_cents": int(cost),
    }
