# Overview: Quotations and their one-time conversion into a sale.

"""
Quotation Service

A quotation is priced exactly like a sale (no promotion, no stock). Its
content can be replaced while it is DRAFT, SENT or EXPIRED; once the
customer answered (ACCEPTED / REJECTED) or it became a sale (CONVERTED) it
is frozen.

convert_quotation() builds the sale through the sale assembler and marks
the quotation CONVERTED in the same transaction, so a quotation yields at
most one sale.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Quotation, QuotationItem, Sale
from ..models.quotations import (
    CONVERTIBLE_QUOTATION_STATUSES,
    FROZEN_QUOTATION_STATUSES,
    QUOTATION_STATUSES,
)
from ..models.sales import PAYMENT_METHODS
from backoffice.schemas import CreateSaleRequest, QuotationRequest
from backoffice.time_utils import utc_today
from backoffice.validation import ConflictError, ValidationError, require_choice
from . import entity_validators as ev
from .concurrency import begin_immediate, run_with_retry
from .document_service import next_document_number
from .ledger_service import append_ledger_event
from .pricing import LineInput, compute_totals
from .sales_service import build_sale


def _apply_request(quotation: Quotation, req: QuotationRequest, org_id: int) -> None:
    outlet = ev.check_outlet(req.outlet_id, org_id).unwrap()
    if req.customer_id is not None:
        ev.check_customer(req.customer_id, org_id).unwrap()
    ev.check_products([line.product_id for line in req.items], org_id).unwrap()

    tax_rate_bps = req.tax_rate_bps if req.tax_rate_bps is not None else outlet.tax_rate_bps
    totals = compute_totals(req.items, discount_cents=req.discount_cents, tax_rate_bps=tax_rate_bps)

    quotation.outlet_id = outlet.id
    quotation.customer_id = req.customer_id
    quotation.valid_until = req.valid_until
    quotation.notes = req.notes
    quotation.subtotal_cents = totals.subtotal_cents
    quotation.discount_cents = totals.discount_cents
    quotation.tax_rate_bps = totals.tax_rate_bps
    quotation.tax_cents = totals.tax_cents
    quotation.total_cents = totals.total_cents

    quotation.items.clear()
    for line in totals.lines:
        quotation.items.append(QuotationItem(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            discount_cents=line.discount_cents,
            line_total_cents=line.line_total_cents,
        ))


def _load_locked(org_id: int, quotation_id: int) -> Quotation:
    return ev.find_in_org(Quotation, quotation_id, org_id, label="Quotation", lock=True).unwrap()


def list_quotations(
    org_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    outlet_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Quotation], int]:
    query = db.session.query(Quotation).filter(Quotation.org_id == org_id)
    if status:
        query = query.filter(Quotation.status == require_choice("status", status, QUOTATION_STATUSES))
    if customer_id is not None:
        query = query.filter(Quotation.customer_id == customer_id)
    if outlet_id is not None:
        query = query.filter(Quotation.outlet_id == outlet_id)
    total = query.count()
    rows = query.order_by(Quotation.created_at.desc(), Quotation.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def get_quotation(org_id: int, quotation_id: int) -> Quotation:
    return ev.find_in_org(Quotation, quotation_id, org_id, label="Quotation").unwrap()


def create_quotation(org_id: int, req: QuotationRequest, *, user_id: int | None = None) -> Quotation:
    def _op():
        begin_immediate()
        quotation = Quotation(org_id=org_id, status="DRAFT", created_by_user_id=user_id)
        _apply_request(quotation, req, org_id)
        quotation.document_number = next_document_number(
            outlet_id=quotation.outlet_id, document_type="QUOTATION", prefix="Q"
        )
        db.session.add(quotation)
        db.session.flush()
        append_ledger_event(
            org_id=org_id,
            outlet_id=quotation.outlet_id,
            event_type="quotation.created",
            event_category="sales",
            entity_type="quotation",
            entity_id=quotation.id,
            actor_user_id=user_id,
            payload={"total_cents": quotation.total_cents},
        )
        db.session.commit()
        return quotation

    return run_with_retry(_op)


def update_quotation(org_id: int, quotation_id: int, req: QuotationRequest, *, user_id: int | None = None) -> Quotation:
    """Replace the quotation's content and reprice it."""
    def _op():
        quotation = _load_locked(org_id, quotation_id)
        if quotation.status in FROZEN_QUOTATION_STATUSES:
            raise ConflictError(
                f"Cannot modify a {quotation.status} quotation",
                details={"status": quotation.status},
            )
        if req.outlet_id != quotation.outlet_id:
            raise ValidationError("outlet_id of a quotation cannot change")
        _apply_request(quotation, req, org_id)
        append_ledger_event(
            org_id=org_id,
            outlet_id=quotation.outlet_id,
            event_type="quotation.updated",
            event_category="sales",
            entity_type="quotation",
            entity_id=quotation.id,
            actor_user_id=user_id,
            payload={"total_cents": quotation.total_cents},
        )
        db.session.commit()
        return quotation

    return run_with_retry(_op)


def change_quotation_status(org_id: int, quotation_id: int, status: str, *, user_id: int | None = None) -> Quotation:
    new_status = require_choice("status", status, QUOTATION_STATUSES)
    if new_status == "CONVERTED":
        raise ValidationError("Use the convert operation to turn a quotation into a sale")

    def _op():
        quotation = _load_locked(org_id, quotation_id)
        if quotation.status == "CONVERTED":
            raise ConflictError("A converted quotation cannot change status")
        if quotation.status == new_status:
            return quotation
        old_status = quotation.status
        quotation.status = new_status
        append_ledger_event(
            org_id=org_id,
            outlet_id=quotation.outlet_id,
            event_type="quotation.status_changed",
            event_category="sales",
            entity_type="quotation",
            entity_id=quotation.id,
            actor_user_id=user_id,
            payload={"from": old_status, "to": new_status},
        )
        db.session.commit()
        return quotation

    return run_with_retry(_op)


def convert_quotation(
    org_id: int,
    quotation_id: int,
    *,
    payment_method: str = "CASH",
    status: str = "COMPLETED",
    user_id: int | None = None,
) -> tuple[Quotation, Sale]:
    method = require_choice("payment_method", payment_method, PAYMENT_METHODS)
    sale_status = require_choice("status", status, ("DRAFT", "COMPLETED"))

    def _op():
        begin_immediate()
        quotation = _load_locked(org_id, quotation_id)
        if quotation.status not in CONVERTIBLE_QUOTATION_STATUSES:
            raise ConflictError(
                f"Cannot convert a {quotation.status} quotation",
                details={"status": quotation.status},
            )
        if quotation.valid_until is not None and quotation.valid_until < utc_today():
            raise ConflictError(
                "Quotation has expired",
                details={"valid_until": quotation.valid_until.isoformat()},
            )

        sale = build_sale(
            org_id,
            CreateSaleRequest(
                outlet_id=quotation.outlet_id,
                customer_id=quotation.customer_id,
                items=tuple(
                    LineInput(
                        product_id=item.product_id,
                        quantity=item.quantity,
                        unit_price_cents=item.unit_price_cents,
                        discount_cents=item.discount_cents,
                    )
                    for item in quotation.items
                ),
                discount_cents=quotation.discount_cents,
                tax_rate_bps=quotation.tax_rate_bps,
                payment_method=method,
                status=sale_status,
                notes=f"From quotation {quotation.document_number}",
            ),
            user_id=user_id,
        )
        quotation.status = "CONVERTED"
        quotation.converted_sale_id = sale.id

        append_ledger_event(
            org_id=org_id,
            outlet_id=quotation.outlet_id,
            event_type="quotation.converted",
            event_category="sales",
            entity_type="quotation",
            entity_id=quotation.id,
            actor_user_id=user_id,
            payload={"sale_id": sale.id},
        )
        db.session.commit()
        return quotation, sale

    return run_with_retry(_op)


def delete_quotation(org_id: int, quotation_id: int) -> None:
    def _op():
        quotation = _load_locked(org_id, quotation_id)
        if quotation.status == "CONVERTED":
            raise ConflictError("Cannot delete a converted quotation")
        db.session.delete(quotation)
        db.session.commit()

    run_with_retry(_op)
