# Overview: Purchases from suppliers (receives stock, feeds the supplier balance).

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Purchase, PurchaseItem
from backoffice.schemas import CreatePurchaseRequest
from backoffice.time_utils import utcnow
from backoffice.validation import ValidationError
from . import entity_validators as ev
from .concurrency import begin_immediate, run_with_retry
from .document_service import next_document_number
from .inventory_service import post_movement
from .ledger_service import append_ledger_event
from .pricing import compute_totals


def create_purchase(org_id: int, req: CreatePurchaseRequest, *, user_id: int | None = None) -> Purchase:
    """
    Record a supplier purchase and receive every stock-tracked line at the
    outlet, all in one transaction. Uses the sale totals math with
    unit_cost_cents as the line price and no promotion.
    """
    def _op():
        begin_immediate()
        outlet = ev.check_outlet(req.outlet_id, org_id, lock=True).unwrap()
        supplier = ev.check_supplier(req.supplier_id, org_id).unwrap()
        if not supplier.is_active:
            raise ValidationError("Supplier is inactive", details={"supplier_id": supplier.id})
        products = ev.check_products([line.product_id for line in req.items], org_id).unwrap()

        totals = compute_totals(req.items, discount_cents=req.discount_cents, tax_rate_bps=req.tax_rate_bps)
        purchased_at = req.purchased_at or utcnow()

        purchase = Purchase(
            org_id=org_id,
            outlet_id=outlet.id,
            supplier_id=supplier.id,
            document_number=next_document_number(outlet_id=outlet.id, document_type="PURCHASE", prefix="P"),
            reference=req.reference,
            subtotal_cents=totals.subtotal_cents,
            discount_cents=totals.discount_cents,
            tax_rate_bps=totals.tax_rate_bps,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            notes=req.notes,
            purchased_at=purchased_at,
            created_by_user_id=user_id,
        )
        for line in totals.lines:
            purchase.items.append(PurchaseItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_cost_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                line_total_cents=line.line_total_cents,
            ))
        db.session.add(purchase)
        db.session.flush()

        for line in totals.lines:
            if not products[line.product_id].track_stock:
                continue
            post_movement(
                org_id=org_id,
                outlet_id=outlet.id,
                product_id=line.product_id,
                tx_type="RECEIVE",
                quantity_delta=line.quantity,
                unit_cost_cents=line.unit_price_cents,
                reference_type="purchase",
                reference_id=purchase.id,
                note=f"Purchase {purchase.document_number}",
                occurred_at=purchased_at,
            )

        append_ledger_event(
            org_id=org_id,
            outlet_id=outlet.id,
            event_type="purchase.created",
            event_category="purchasing",
            entity_type="purchase",
            entity_id=purchase.id,
            actor_user_id=user_id,
            occurred_at=purchased_at,
            payload={"supplier_id": supplier.id, "total_cents": purchase.total_cents},
        )
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def get_purchase(org_id: int, purchase_id: int) -> Purchase:
    return ev.check_purchase(purchase_id, org_id).unwrap()


def list_purchases(
    org_id: int,
    *,
    supplier_id: int | None = None,
    outlet_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Purchase], int]:
    query = db.session.query(Purchase).filter(Purchase.org_id == org_id)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if outlet_id is not None:
        query = query.filter(Purchase.outlet_id == outlet_id)
    if date_from is not None:
        query = query.filter(Purchase.purchased_at >= date_from)
    if date_to is not None:
        query = query.filter(Purchase.purchased_at <= date_to)

    total = query.count()
    rows = query.order_by(Purchase.purchased_at.desc(), Purchase.id.desc()).offset(offset).limit(limit).all()
    return rows, total
