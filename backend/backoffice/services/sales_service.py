"""
Sales Service - transaction assembly for sales

A sale is assembled in one transaction: header, items, promotion usage,
stock movements (COMPLETED only), installment schedule and ledger event
either all land or none do. On SQLite the database write lock is taken
before the first read so stock checks and the decrement cannot interleave
with another writer.

Lifecycle:
    DRAFT -> COMPLETED   posts stock, records promotion usage
    DRAFT -> VOIDED      nothing to reverse
    COMPLETED -> VOIDED  returns stock, releases promotion usage,
                         cancels unpaid installments
    VOIDED is final. Only DRAFT sales can be repriced or deleted.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Sequence

from ..extensions import db
from ..models import Customer, Installment, Product, Promotion, PromotionUsage, Sale, SaleItem
from backoffice.schemas import CreateSaleRequest, InstallmentInput, UpdateSaleRequest
from backoffice.time_utils import utc_today, utcnow
from backoffice.validation import ConflictError, NotFoundError, ValidationError
from . import entity_validators as ev
from .concurrency import begin_immediate, run_with_retry
from .document_service import next_document_number
from .inventory_service import ensure_available, post_movement
from .ledger_service import append_ledger_event
from .pricing import LineInput, Totals, compute_totals, subtotal_of
from .promotion_service import evaluate_promotion, record_usage, resolve_promotion


SALE_TRANSITIONS = {
    "DRAFT": {"COMPLETED", "VOIDED"},
    "COMPLETED": {"VOIDED"},
    "VOIDED": set(),
}


def _load_products(org_id: int, lines: Sequence[LineInput]) -> dict[int, Product]:
    products = ev.check_products([line.product_id for line in lines], org_id).unwrap()
    inactive = [pid for pid, product in products.items() if not product.is_active]
    if inactive:
        raise ValidationError("Product is inactive", details={"product_ids": inactive})
    return products


def _apply_promotion(
    *,
    org_id: int,
    promotion: Promotion | None,
    lines: Sequence[LineInput],
    products: dict[int, Product],
    customer: Customer | None,
) -> int:
    """Run the promotion engine on the pre-tax subtotal; reject the sale on any failure."""
    if promotion is None:
        return 0
    result = evaluate_promotion(
        promotion,
        org_id=org_id,
        total_cents=subtotal_of(lines),
        customer=customer,
        items=lines,
        products=products,
    )
    if not result.valid:
        raise ValidationError(result.message, details={"reason": result.reason, "promotion_id": promotion.id})
    return result.discount_cents


def _resolve_requested_promotion(org_id: int, req: CreateSaleRequest) -> Promotion | None:
    if req.promotion_id is None and not req.promotion_code:
        return None
    promotion, in_scope = resolve_promotion(
        org_id,
        promotion_id=req.promotion_id,
        promotion_code=req.promotion_code,
    )
    if promotion is None or not in_scope:
        raise NotFoundError("Promotion", req.promotion_id or req.promotion_code)
    return promotion


def _price(
    sale: Sale,
    *,
    lines: Sequence[LineInput],
    products: dict[int, Product],
    customer: Customer | None,
    promotion: Promotion | None,
    discount_cents: int,
    tax_rate_bps: int,
) -> Totals:
    promotion_discount = _apply_promotion(
        org_id=sale.org_id,
        promotion=promotion,
        lines=lines,
        products=products,
        customer=customer,
    )
    totals = compute_totals(
        lines,
        discount_cents=discount_cents,
        promotion_discount_cents=promotion_discount,
        tax_rate_bps=tax_rate_bps,
    )
    sale.subtotal_cents = totals.subtotal_cents
    sale.discount_cents = totals.discount_cents
    sale.promotion_id = promotion.id if promotion else None
    sale.promotion_discount_cents = totals.promotion_discount_cents
    sale.tax_rate_bps = totals.tax_rate_bps
    sale.tax_cents = totals.tax_cents
    sale.total_cents = totals.total_cents
    return totals


def _replace_items(sale: Sale, totals: Totals) -> None:
    sale.items.clear()
    for line in totals.lines:
        sale.items.append(SaleItem(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            discount_cents=line.discount_cents,
            line_total_cents=line.line_total_cents,
        ))


def _lines_of(sale: Sale) -> list[LineInput]:
    return [
        LineInput(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            discount_cents=item.discount_cents,
        )
        for item in sale.items
    ]


def _schedule_installments(sale: Sale, schedule: Sequence[InstallmentInput]) -> None:
    if not schedule:
        return
    scheduled = sum(entry.amount_cents for entry in schedule)
    if scheduled != sale.total_cents:
        raise ValidationError(
            "Installment amounts must add up to the sale total",
            details={"total_cents": sale.total_cents, "scheduled_cents": scheduled},
        )
    today = utc_today()
    for sequence, entry in enumerate(sorted(schedule, key=lambda e: e.due_date), start=1):
        installment = Installment(
            org_id=sale.org_id,
            sale_id=sale.id,
            customer_id=sale.customer_id,
            sequence=sequence,
            due_date=entry.due_date,
            amount_cents=entry.amount_cents,
            paid=False,
            cancelled=False,
        )
        installment.status = installment.derive_status(today)
        db.session.add(installment)


def _complete_locked(sale: Sale, *, actor_user_id: int | None) -> None:
    """DRAFT -> COMPLETED inside the caller's transaction."""
    lines = _lines_of(sale)
    if not lines:
        raise ValidationError("Cannot complete a sale with no items")
    products = _load_products(sale.org_id, lines)

    if sale.promotion_id is not None:
        promotion = db.session.get(Promotion, sale.promotion_id)
        _price(
            sale,
            lines=lines,
            products=products,
            customer=sale.customer,
            promotion=promotion,
            discount_cents=sale.discount_cents,
            tax_rate_bps=sale.tax_rate_bps,
        )

    requested = Counter()
    for line in lines:
        requested[line.product_id] += line.quantity
    ensure_available(sale.outlet_id, dict(requested), products)

    now = utcnow()
    for product_id, qty in requested.items():
        if not products[product_id].track_stock:
            continue
        post_movement(
            org_id=sale.org_id,
            outlet_id=sale.outlet_id,
            product_id=product_id,
            tx_type="SALE",
            quantity_delta=-qty,
            reference_type="sale",
            reference_id=sale.id,
            note=f"Sale {sale.document_number}",
            occurred_at=now,
        )

    if sale.promotion_id is not None:
        record_usage(
            promotion=db.session.get(Promotion, sale.promotion_id),
            sale_id=sale.id,
            customer_id=sale.customer_id,
            discount_cents=sale.promotion_discount_cents,
        )

    sale.status = "COMPLETED"
    sale.completed_at = now

    append_ledger_event(
        org_id=sale.org_id,
        outlet_id=sale.outlet_id,
        event_type="sale.completed",
        event_category="sales",
        entity_type="sale",
        entity_id=sale.id,
        actor_user_id=actor_user_id,
        occurred_at=now,
        note=f"Sale {sale.document_number} completed",
        payload={"total_cents": sale.total_cents},
    )


def _void_locked(sale: Sale, *, actor_user_id: int | None, reason: str | None) -> None:
    if sale.returns:
        raise ConflictError("Cannot void a sale that has returns", details={"returns": len(sale.returns)})
    now = utcnow()

    if sale.status == "COMPLETED":
        returned = Counter()
        for item in sale.items:
            returned[item.product_id] += item.quantity
        products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(list(returned))).all()}
        for product_id, qty in returned.items():
            product = products.get(product_id)
            if product is not None and not product.track_stock:
                continue
            post_movement(
                org_id=sale.org_id,
                outlet_id=sale.outlet_id,
                product_id=product_id,
                tx_type="SALE_VOID",
                quantity_delta=qty,
                reference_type="sale",
                reference_id=sale.id,
                note=f"Void of sale {sale.document_number}",
                occurred_at=now,
            )
        db.session.query(PromotionUsage).filter_by(sale_id=sale.id).delete(synchronize_session=False)

    today = utc_today()
    for installment in sale.installments:
        if not installment.paid:
            installment.cancelled = True
            installment.status = installment.derive_status(today)

    sale.status = "VOIDED"
    sale.voided_at = now
    sale.voided_by_user_id = actor_user_id
    sale.void_reason = reason

    append_ledger_event(
        org_id=sale.org_id,
        outlet_id=sale.outlet_id,
        event_type="sale.voided",
        event_category="sales",
        entity_type="sale",
        entity_id=sale.id,
        actor_user_id=actor_user_id,
        occurred_at=now,
        note=reason or f"Sale {sale.document_number} voided",
    )


def _transition_locked(sale: Sale, new_status: str, *, actor_user_id: int | None, reason: str | None = None) -> None:
    if new_status == sale.status:
        return
    if new_status not in SALE_TRANSITIONS.get(sale.status, set()):
        raise ConflictError(
            f"Cannot change sale status from {sale.status} to {new_status}",
            details={"from": sale.status, "to": new_status},
        )
    if new_status == "COMPLETED":
        _complete_locked(sale, actor_user_id=actor_user_id)
    elif new_status == "VOIDED":
        _void_locked(sale, actor_user_id=actor_user_id, reason=reason)


def _reassign_customer(sale: Sale, customer: Customer | None) -> None:
    """
    Point the sale, its promotion usage and its unpaid installments at a new
    customer. A posted promotion is re-checked as of completion time; if the
    new customer would not have qualified the change is refused.
    """
    if sale.promotion_id is not None and sale.status != "DRAFT":
        promotion = db.session.get(Promotion, sale.promotion_id)
        lines = _lines_of(sale)
        result = evaluate_promotion(
            promotion,
            org_id=sale.org_id,
            total_cents=subtotal_of(lines),
            customer=customer,
            items=lines,
            products=ev.check_products([line.product_id for line in lines], sale.org_id).unwrap(),
            now=sale.completed_at or utcnow(),
        )
        if not result.valid:
            raise ConflictError(
                "New customer is not eligible for the promotion applied to this sale",
                details={"reason": result.reason, "promotion_id": promotion.id},
            )

    new_customer_id = customer.id if customer else None
    sale.customer_id = new_customer_id
    (
        db.session.query(PromotionUsage)
        .filter(PromotionUsage.sale_id == sale.id)
        .update({PromotionUsage.customer_id: new_customer_id}, synchronize_session=False)
    )
    for installment in sale.installments:
        if not installment.paid:
            installment.customer_id = new_customer_id
    db.session.flush()
    db.session.expire(sale, ["customer"])


def build_sale(org_id: int, req: CreateSaleRequest, *, user_id: int | None = None) -> Sale:
    """
    Assemble and flush a sale inside the caller's transaction (no commit).
    Used directly by quotation conversion.
    """
    outlet = ev.check_outlet(req.outlet_id, org_id, lock=True).unwrap()
    customer = None
    if req.customer_id is not None:
        customer = ev.check_customer(req.customer_id, org_id).unwrap()
    products = _load_products(org_id, req.items)
    promotion = _resolve_requested_promotion(org_id, req)

    sale = Sale(
        org_id=org_id,
        outlet_id=outlet.id,
        customer_id=customer.id if customer else None,
        document_number=next_document_number(outlet_id=outlet.id, document_type="SALE", prefix="S"),
        status="DRAFT",
        payment_method=req.payment_method,
        notes=req.notes,
        created_by_user_id=user_id,
    )
    totals = _price(
        sale,
        lines=req.items,
        products=products,
        customer=customer,
        promotion=promotion,
        discount_cents=req.discount_cents,
        tax_rate_bps=req.tax_rate_bps if req.tax_rate_bps is not None else outlet.tax_rate_bps,
    )
    _replace_items(sale, totals)
    db.session.add(sale)
    db.session.flush()

    append_ledger_event(
        org_id=org_id,
        outlet_id=outlet.id,
        event_type="sale.created",
        event_category="sales",
        entity_type="sale",
        entity_id=sale.id,
        actor_user_id=user_id,
        note=f"Sale {sale.document_number} created",
    )

    if req.status == "COMPLETED":
        _complete_locked(sale, actor_user_id=user_id)

    _schedule_installments(sale, req.installments)
    db.session.flush()
    return sale


def create_sale(org_id: int, req: CreateSaleRequest, *, user_id: int | None = None) -> Sale:
    def _op():
        begin_immediate()
        sale = build_sale(org_id, req, user_id=user_id)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def get_sale(org_id: int, sale_id: int) -> Sale:
    return ev.check_sale(sale_id, org_id).unwrap()


def list_sales(
    org_id: int,
    *,
    outlet_id: int | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    query = db.session.query(Sale).filter(Sale.org_id == org_id)
    if outlet_id is not None:
        query = query.filter(Sale.outlet_id == outlet_id)
    if status:
        query = query.filter(Sale.status == status)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if date_from is not None:
        query = query.filter(Sale.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Sale.created_at <= date_to)

    total = query.count()
    rows = query.order_by(Sale.created_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def update_sale(org_id: int, sale_id: int, req: UpdateSaleRequest, *, user_id: int | None = None) -> Sale:
    """
    Partial update. Totals are recomputed only when items, discount_cents
    or tax_rate_bps are supplied, and only DRAFT sales can be repriced.
    A status change in the same request runs after the other fields.
    Changing the customer carries the promotion usage and unpaid
    installments along; a draft with a promotion is repriced for the new
    customer.
    """
    def _op():
        begin_immediate()
        sale = ev.check_sale(sale_id, org_id, lock=True).unwrap()
        if sale.status == "VOIDED":
            raise ConflictError("VOIDED sales cannot be modified")

        customer_changed = False
        if req.has("customer_id"):
            customer = None
            if req.customer_id is not None:
                customer = ev.check_customer(req.customer_id, org_id).unwrap()
            customer_changed = (customer.id if customer else None) != sale.customer_id
            if customer_changed:
                _reassign_customer(sale, customer)

        reprice = any(req.has(key) for key in ("items", "discount_cents", "tax_rate_bps"))
        if reprice or (customer_changed and sale.promotion_id is not None and sale.status == "DRAFT"):
            if sale.status != "DRAFT":
                raise ConflictError("Only DRAFT sales can be repriced", details={"status": sale.status})
            if reprice and sale.installments:
                raise ConflictError("Cannot reprice a sale with an installment schedule")
            previous_total = sale.total_cents
            lines = list(req.items) if req.has("items") else _lines_of(sale)
            products = _load_products(org_id, lines)
            promotion = db.session.get(Promotion, sale.promotion_id) if sale.promotion_id else None
            totals = _price(
                sale,
                lines=lines,
                products=products,
                customer=sale.customer,
                promotion=promotion,
                discount_cents=req.discount_cents if req.has("discount_cents") else sale.discount_cents,
                tax_rate_bps=req.tax_rate_bps if req.has("tax_rate_bps") else sale.tax_rate_bps,
            )
            if req.has("items"):
                _replace_items(sale, totals)
            if sale.installments and totals.total_cents != previous_total:
                raise ConflictError(
                    "Customer change alters the total of a sale with an installment schedule",
                    details={"total_cents": previous_total, "new_total_cents": totals.total_cents},
                )

        if req.has("payment_method"):
            sale.payment_method = req.payment_method
        if req.has("notes"):
            sale.notes = req.notes

        if req.has("status") and req.status != sale.status:
            _transition_locked(sale, req.status, actor_user_id=user_id, reason=req.void_reason)

        append_ledger_event(
            org_id=org_id,
            outlet_id=sale.outlet_id,
            event_type="sale.updated",
            event_category="sales",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=user_id,
            payload={"fields": sorted(req.fields)},
        )
        db.session.commit()
        return sale

    return run_with_retry(_op)


def change_sale_status(
    org_id: int,
    sale_id: int,
    new_status: str,
    *,
    user_id: int | None = None,
    reason: str | None = None,
) -> Sale:
    def _op():
        begin_immediate()
        sale = ev.check_sale(sale_id, org_id, lock=True).unwrap()
        _transition_locked(sale, new_status, actor_user_id=user_id, reason=reason)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def void_sale(org_id: int, sale_id: int, *, user_id: int | None = None, reason: str | None = None) -> Sale:
    return change_sale_status(org_id, sale_id, "VOIDED", user_id=user_id, reason=reason)


def delete_sale(org_id: int, sale_id: int, *, user_id: int | None = None) -> None:
    """Hard delete. Completed and voided sales are kept for the record; void instead."""
    def _op():
        begin_immediate()
        sale = ev.check_sale(sale_id, org_id, lock=True).unwrap()
        if sale.status != "DRAFT":
            raise ConflictError(
                f"Cannot delete a {sale.status} sale",
                details={"status": sale.status},
            )
        for installment in list(sale.installments):
            db.session.delete(installment)
        append_ledger_event(
            org_id=org_id,
            outlet_id=sale.outlet_id,
            event_type="sale.deleted",
            event_category="sales",
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=user_id,
            note=f"Draft sale {sale.document_number} deleted",
        )
        db.session.delete(sale)
        db.session.commit()

    run_with_retry(_op)
