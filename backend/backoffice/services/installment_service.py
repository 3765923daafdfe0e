# Overview: Installment schedule reads, payments, cancellation and overdue sweeps.

"""
Installment Service

Installment.status is stored so it can be filtered on, but it is a pure
function of (paid, cancelled, due_date, today). Every path here writes
derive_status() back before returning rows:

- reads call sync_statuses() and commit only when something changed;
- pay/cancel set the underlying flags and re-derive;
- refresh_overdue() is the bulk sweep run from the CLI.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable

from ..extensions import db
from ..models import Installment
from ..models.installments import INSTALLMENT_STATUSES
from ..models.sales import PAYMENT_METHODS
from backoffice.time_utils import utc_today, utcnow
from backoffice.validation import ConflictError, NotFoundError, require_choice
from . import entity_validators as ev
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event


def sync_statuses(installments: Iterable[Installment], today: date | None = None) -> int:
    """Re-derive stored status in place; returns how many rows changed."""
    today = today or utc_today()
    changed = 0
    for installment in installments:
        derived = installment.derive_status(today)
        if installment.status != derived:
            installment.status = derived
            changed += 1
    return changed


def _synced(rows: list[Installment]) -> list[Installment]:
    if sync_statuses(rows):
        db.session.commit()
    return rows


def list_installments(
    org_id: int,
    *,
    status: str | None = None,
    sale_id: int | None = None,
    customer_id: int | None = None,
    due_before: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Installment], int]:
    # Refresh first so a status filter sees current values.
    refresh_overdue(org_id)

    query = db.session.query(Installment).filter(Installment.org_id == org_id)
    if status:
        query = query.filter(Installment.status == require_choice("status", status, INSTALLMENT_STATUSES))
    if sale_id is not None:
        query = query.filter(Installment.sale_id == sale_id)
    if customer_id is not None:
        query = query.filter(Installment.customer_id == customer_id)
    if due_before is not None:
        query = query.filter(Installment.due_date <= due_before)

    total = query.count()
    rows = (
        query.order_by(Installment.due_date.asc(), Installment.sale_id.asc(), Installment.sequence.asc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return _synced(rows), total


def list_sale_installments(org_id: int, sale_id: int) -> list[Installment]:
    sale = ev.check_sale(sale_id, org_id).unwrap()
    return _synced(list(sale.installments))


def get_installment(org_id: int, installment_id: int) -> Installment:
    installment = ev.find_in_org(Installment, installment_id, org_id, label="Installment").unwrap()
    return _synced([installment])[0]


def _load_locked(org_id: int, installment_id: int) -> Installment:
    query = db.session.query(Installment).filter(
        Installment.id == installment_id,
        Installment.org_id == org_id,
    )
    installment = lock_for_update(query).first()
    if installment is None:
        raise NotFoundError("Installment", installment_id)
    return installment


def pay_installment(
    org_id: int,
    installment_id: int,
    *,
    payment_method: str = "CASH",
    notes: str | None = None,
    user_id: int | None = None,
) -> Installment:
    method = require_choice("payment_method", payment_method, PAYMENT_METHODS)

    def _op():
        installment = _load_locked(org_id, installment_id)
        if installment.paid:
            raise ConflictError("Installment is already paid")
        if installment.cancelled:
            raise ConflictError("Installment is cancelled")

        now = utcnow()
        installment.paid = True
        installment.paid_at = now
        installment.payment_method = method
        if notes is not None:
            installment.notes = notes
        installment.status = installment.derive_status(now.date())

        append_ledger_event(
            org_id=org_id,
            event_type="installment.paid",
            event_category="payments",
            entity_type="installment",
            entity_id=installment.id,
            actor_user_id=user_id,
            occurred_at=now,
            payload={"sale_id": installment.sale_id, "amount_cents": installment.amount_cents, "method": method},
        )
        db.session.commit()
        return installment

    return run_with_retry(_op)


def cancel_installment(
    org_id: int,
    installment_id: int,
    *,
    reason: str | None = None,
    user_id: int | None = None,
) -> Installment:
    def _op():
        installment = _load_locked(org_id, installment_id)
        if installment.paid:
            raise ConflictError("Cannot cancel a paid installment")
        if installment.cancelled:
            return installment

        installment.cancelled = True
        if reason:
            installment.notes = reason
        installment.status = installment.derive_status(utc_today())

        append_ledger_event(
            org_id=org_id,
            event_type="installment.cancelled",
            event_category="payments",
            entity_type="installment",
            entity_id=installment.id,
            actor_user_id=user_id,
            note=reason,
            payload={"sale_id": installment.sale_id},
        )
        db.session.commit()
        return installment

    return run_with_retry(_op)


def refresh_overdue(org_id: int | None = None, *, today: date | None = None) -> int:
    """Flip unpaid, uncancelled installments past due to OVERDUE. Returns rows touched."""
    today = today or utc_today()

    def _op():
        query = db.session.query(Installment).filter(
            Installment.paid.is_(False),
            Installment.cancelled.is_(False),
            Installment.status.in_(("PENDING", "OVERDUE")),
        )
        if org_id is not None:
            query = query.filter(Installment.org_id == org_id)
        changed = sync_statuses(query.all(), today)
        if changed:
            db.session.commit()
        return changed

    return run_with_retry(_op)
