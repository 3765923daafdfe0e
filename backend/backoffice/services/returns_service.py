# Overview: Sale returns (refund + restock) and purchase returns (credit + de-stock).

"""
Returns Service

A return records money handed back against a parent document, and
optionally the goods that came with it. Two bounds hold per parent:

- sum(return.amount_cents) <= parent.total_cents
- returned quantity per product <= quantity on the parent document

Sale returns restock at the sale's outlet (SALE_RETURN); purchase returns
take stock out of the purchase's outlet (PURCHASE_RETURN) and fail with a
Conflict when the outlet no longer holds it.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Sequence

from sqlalchemy import func

from ..extensions import db
from ..models import (
    Product,
    PurchaseReturn,
    PurchaseReturnItem,
    SaleReturn,
    SaleReturnItem,
)
from backoffice.schemas import ReturnItemInput, ReturnRequest
from backoffice.time_utils import utcnow
from backoffice.validation import ConflictError, ValidationError
from . import entity_validators as ev
from .concurrency import begin_immediate, run_with_retry
from .inventory_service import ensure_available, post_movement
from .ledger_service import append_ledger_event


def _check_amount(amount_cents: int, total_cents: int, already_returned: int) -> None:
    remaining = total_cents - already_returned
    if amount_cents > remaining:
        raise ValidationError(
            "Return amount exceeds the remaining returnable total",
            details={"amount_cents": amount_cents, "remaining_cents": remaining},
        )


def _check_quantities(
    requested: Sequence[ReturnItemInput],
    original: Iterable,
    previous: Iterable,
) -> Counter:
    """Returned quantity per product may not exceed what the parent document carried."""
    sold = Counter()
    for item in original:
        sold[item.product_id] += item.quantity
    done = Counter()
    for item in previous:
        done[item.product_id] += item.quantity

    wanted = Counter()
    for item in requested:
        wanted[item.product_id] += item.quantity

    for product_id, qty in wanted.items():
        if product_id not in sold:
            raise ValidationError("Product is not part of the original document", details={"product_id": product_id})
        if qty > sold[product_id] - done[product_id]:
            raise ValidationError(
                "Return quantity exceeds the quantity left to return",
                details={"product_id": product_id, "requested": qty, "remaining": sold[product_id] - done[product_id]},
            )
    return wanted


def _tracked(product_ids: Iterable[int]) -> dict[int, Product]:
    ids = list(product_ids)
    if not ids:
        return {}
    return {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()}


# ---------------------------------------------------------------------------
# Sale returns
# ---------------------------------------------------------------------------

def create_sale_return(org_id: int, req: ReturnRequest, *, user_id: int | None = None) -> SaleReturn:
    def _op():
        begin_immediate()
        sale = ev.check_sale(req.parent_id, org_id, lock=True).unwrap()
        if sale.status != "COMPLETED":
            raise ConflictError("Only COMPLETED sales can be returned", details={"status": sale.status})

        already = sum(r.amount_cents for r in sale.returns)
        _check_amount(req.amount_cents, sale.total_cents, already)
        previous = [item for r in sale.returns for item in r.items]
        wanted = _check_quantities(req.items, sale.items, previous)

        sale_return = SaleReturn(
            org_id=org_id,
            sale_id=sale.id,
            reason=req.reason,
            amount_cents=req.amount_cents,
            created_by_user_id=user_id,
        )
        for product_id, qty in wanted.items():
            sale_return.items.append(SaleReturnItem(product_id=product_id, quantity=qty))
        db.session.add(sale_return)
        db.session.flush()

        now = utcnow()
        products = _tracked(wanted)
        for product_id, qty in wanted.items():
            if not products[product_id].track_stock:
                continue
            post_movement(
                org_id=org_id,
                outlet_id=sale.outlet_id,
                product_id=product_id,
                tx_type="SALE_RETURN",
                quantity_delta=qty,
                reference_type="sale_return",
                reference_id=sale_return.id,
                note=f"Return against sale {sale.document_number}",
                occurred_at=now,
            )

        append_ledger_event(
            org_id=org_id,
            outlet_id=sale.outlet_id,
            event_type="sale.returned",
            event_category="sales",
            entity_type="sale_return",
            entity_id=sale_return.id,
            actor_user_id=user_id,
            occurred_at=now,
            note=req.reason,
            payload={"sale_id": sale.id, "amount_cents": req.amount_cents},
        )
        db.session.commit()
        return sale_return

    return run_with_retry(_op)


def list_sale_returns(org_id: int, *, sale_id: int | None = None) -> list[SaleReturn]:
    query = db.session.query(SaleReturn).filter(SaleReturn.org_id == org_id)
    if sale_id is not None:
        query = query.filter(SaleReturn.sale_id == sale_id)
    return query.order_by(SaleReturn.created_at.desc(), SaleReturn.id.desc()).all()


def get_sale_return(org_id: int, return_id: int) -> SaleReturn:
    return ev.find_in_org(SaleReturn, return_id, org_id, label="SaleReturn").unwrap()


# ---------------------------------------------------------------------------
# Purchase returns
# ---------------------------------------------------------------------------

def create_purchase_return(org_id: int, req: ReturnRequest, *, user_id: int | None = None) -> PurchaseReturn:
    def _op():
        begin_immediate()
        purchase = ev.check_purchase(req.parent_id, org_id, lock=True).unwrap()

        already = int(
            db.session.query(func.coalesce(func.sum(PurchaseReturn.amount_cents), 0))
            .filter(PurchaseReturn.purchase_id == purchase.id)
            .scalar() or 0
        )
        _check_amount(req.amount_cents, purchase.total_cents, already)
        previous = [item for r in purchase.returns for item in r.items]
        wanted = _check_quantities(req.items, purchase.items, previous)

        products = _tracked(wanted)
        ensure_available(purchase.outlet_id, dict(wanted), products)

        purchase_return = PurchaseReturn(
            org_id=org_id,
            purchase_id=purchase.id,
            reason=req.reason,
            amount_cents=req.amount_cents,
            created_by_user_id=user_id,
        )
        for product_id, qty in wanted.items():
            purchase_return.items.append(PurchaseReturnItem(product_id=product_id, quantity=qty))
        db.session.add(purchase_return)
        db.session.flush()

        now = utcnow()
        for product_id, qty in wanted.items():
            if not products[product_id].track_stock:
                continue
            post_movement(
                org_id=org_id,
                outlet_id=purchase.outlet_id,
                product_id=product_id,
                tx_type="PURCHASE_RETURN",
                quantity_delta=-qty,
                reference_type="purchase_return",
                reference_id=purchase_return.id,
                note=f"Return against purchase {purchase.document_number}",
                occurred_at=now,
            )

        append_ledger_event(
            org_id=org_id,
            outlet_id=purchase.outlet_id,
            event_type="purchase.returned",
            event_category="purchasing",
            entity_type="purchase_return",
            entity_id=purchase_return.id,
            actor_user_id=user_id,
            occurred_at=now,
            note=req.reason,
            payload={"purchase_id": purchase.id, "amount_cents": req.amount_cents},
        )
        db.session.commit()
        return purchase_return

    return run_with_retry(_op)


def list_purchase_returns(org_id: int, *, purchase_id: int | None = None) -> list[PurchaseReturn]:
    query = db.session.query(PurchaseReturn).filter(PurchaseReturn.org_id == org_id)
    if purchase_id is not None:
        query = query.filter(PurchaseReturn.purchase_id == purchase_id)
    return query.order_by(PurchaseReturn.created_at.desc(), PurchaseReturn.id.desc()).all()


def get_purchase_return(org_id: int, return_id: int) -> PurchaseReturn:
    return ev.find_in_org(PurchaseReturn, return_id, org_id, label="PurchaseReturn").unwrap()
