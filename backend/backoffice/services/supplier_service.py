# Overview: Suppliers, supplier payments and the supplier balance.

"""
Supplier Service

Balance owed to a supplier is never stored:

    balance = sum(purchase.total_cents) - sum(payment.amount_cents)

It is recomputed from the two ledgers each time it is read, so it cannot
drift from the documents that produce it.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Purchase, Supplier, SupplierPayment
from ..models.sales import PAYMENT_METHODS
from backoffice.time_utils import utcnow
from backoffice.validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_positive_amount,
    validate_payload,
)
from . import entity_validators as ev
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event


SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "code", "contact_name", "email", "phone", "address", "notes", "is_active"},
    required_on_create={"name"},
)

PAYMENT_POLICY = ModelValidationPolicy(
    writable_fields={"amount_cents", "payment_method", "purchase_id", "reference", "notes", "paid_at"},
    required_on_create={"amount_cents"},
    choices={"payment_method": PAYMENT_METHODS},
)


@dataclass(frozen=True)
class SupplierBalance:
    supplier_id: int
    purchases_total_cents: int
    payments_total_cents: int

    @property
    def balance_cents(self) -> int:
        return self.purchases_total_cents - self.payments_total_cents

    def to_dict(self) -> dict:
        return {
            "supplier_id": self.supplier_id,
            "purchases_total_cents": self.purchases_total_cents,
            "payments_total_cents": self.payments_total_cents,
            "balance_cents": self.balance_cents,
        }


def balances_for(org_id: int, supplier_ids: list[int]) -> dict[int, SupplierBalance]:
    """Balances for the given suppliers; suppliers with no activity get zeros."""
    if not supplier_ids:
        return {}
    purchased = dict(
        db.session.query(Purchase.supplier_id, func.coalesce(func.sum(Purchase.total_cents), 0))
        .filter(Purchase.org_id == org_id, Purchase.supplier_id.in_(supplier_ids))
        .group_by(Purchase.supplier_id)
        .all()
    )
    paid = dict(
        db.session.query(SupplierPayment.supplier_id, func.coalesce(func.sum(SupplierPayment.amount_cents), 0))
        .filter(SupplierPayment.org_id == org_id, SupplierPayment.supplier_id.in_(supplier_ids))
        .group_by(SupplierPayment.supplier_id)
        .all()
    )
    return {
        sid: SupplierBalance(
            supplier_id=sid,
            purchases_total_cents=int(purchased.get(sid, 0)),
            payments_total_cents=int(paid.get(sid, 0)),
        )
        for sid in supplier_ids
    }


def get_balance(org_id: int, supplier_id: int) -> SupplierBalance:
    supplier = ev.check_supplier(supplier_id, org_id).unwrap()
    return balances_for(org_id, [supplier.id])[supplier.id]


def list_suppliers(
    org_id: int,
    *,
    search: str | None = None,
    active: bool | None = None,
) -> list[tuple[Supplier, SupplierBalance]]:
    query = db.session.query(Supplier).filter(Supplier.org_id == org_id)
    if active is not None:
        query = query.filter(Supplier.is_active.is_(active))
    if search:
        term = f"%{search}%"
        query = query.filter(db.or_(Supplier.name.ilike(term), Supplier.code.ilike(term)))
    suppliers = query.order_by(Supplier.name.asc()).all()
    balances = balances_for(org_id, [s.id for s in suppliers])
    return [(s, balances[s.id]) for s in suppliers]


def get_supplier(org_id: int, supplier_id: int) -> Supplier:
    return ev.check_supplier(supplier_id, org_id).unwrap()


def create_supplier(org_id: int, payload: dict, *, user_id: int | None = None) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    if patch.get("code"):
        patch["code"] = patch["code"].strip().upper()

    def _op():
        supplier = Supplier(org_id=org_id, **patch)
        db.session.add(supplier)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Supplier code '{patch.get('code')}' already exists")
        append_ledger_event(
            org_id=org_id,
            event_type="supplier.created",
            event_category="purchasing",
            entity_type="supplier",
            entity_id=supplier.id,
            actor_user_id=user_id,
            note=supplier.name,
        )
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def update_supplier(org_id: int, supplier_id: int, payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    if patch.get("code"):
        patch["code"] = patch["code"].strip().upper()

    def _op():
        supplier = ev.check_supplier(supplier_id, org_id, lock=True).unwrap()
        for key, value in patch.items():
            setattr(supplier, key, value)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Supplier code '{patch.get('code')}' already exists")
        return supplier

    return run_with_retry(_op)


def delete_supplier(org_id: int, supplier_id: int) -> None:
    """Suppliers with purchases or payments on file are kept; deactivate them instead."""
    def _op():
        supplier = ev.check_supplier(supplier_id, org_id, lock=True).unwrap()
        purchases = db.session.query(func.count(Purchase.id)).filter(Purchase.supplier_id == supplier.id).scalar()
        payments = db.session.query(func.count(SupplierPayment.id)).filter(SupplierPayment.supplier_id == supplier.id).scalar()
        if purchases or payments:
            raise ConflictError(
                "Cannot delete a supplier with purchases or payments; set is_active to false instead",
                details={"purchases": int(purchases or 0), "payments": int(payments or 0)},
            )
        db.session.delete(supplier)
        db.session.commit()

    run_with_retry(_op)


def list_payments(org_id: int, supplier_id: int) -> list[SupplierPayment]:
    supplier = ev.check_supplier(supplier_id, org_id).unwrap()
    return (
        db.session.query(SupplierPayment)
        .filter(SupplierPayment.org_id == org_id, SupplierPayment.supplier_id == supplier.id)
        .order_by(SupplierPayment.paid_at.desc(), SupplierPayment.id.desc())
        .all()
    )


def record_payment(org_id: int, supplier_id: int, payload: dict, *, user_id: int | None = None) -> SupplierPayment:
    patch = validate_payload(model=SupplierPayment, payload=payload, policy=PAYMENT_POLICY, partial=False)
    enforce_positive_amount("amount_cents", patch["amount_cents"])

    def _op():
        supplier = ev.check_supplier(supplier_id, org_id, lock=True).unwrap()
        if patch.get("purchase_id") is not None:
            purchase = ev.check_purchase(patch["purchase_id"], org_id).unwrap()
            if purchase.supplier_id != supplier.id:
                raise ValidationError(
                    "Purchase belongs to a different supplier",
                    details={"purchase_id": purchase.id, "supplier_id": purchase.supplier_id},
                )

        payment = SupplierPayment(
            org_id=org_id,
            supplier_id=supplier.id,
            created_by_user_id=user_id,
            **{"paid_at": utcnow(), **patch},
        )
        db.session.add(payment)
        db.session.flush()

        append_ledger_event(
            org_id=org_id,
            event_type="supplier.payment_recorded",
            event_category="payments",
            entity_type="supplier_payment",
            entity_id=payment.id,
            actor_user_id=user_id,
            occurred_at=payment.paid_at,
            payload={"supplier_id": supplier.id, "amount_cents": payment.amount_cents},
        )
        db.session.commit()
        return payment

    return run_with_retry(_op)
