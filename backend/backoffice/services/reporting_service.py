# Overview: Read-only grouped reports with one row per dimension value.

"""
Reporting Service

Every report seeds a zero bucket for each dimension value of the
organization (income item, expense category, product, supplier) and then
adds the matching records, so a value with no activity in the range still
appears with zeros. Rows come back in dimension-name order.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import (
    Expense,
    ExpenseCategory,
    Income,
    IncomeItem,
    Product,
    Sale,
    SaleItem,
    Supplier,
)
from backoffice.time_utils import to_utc_z
from backoffice.validation import ValidationError
from . import entity_validators as ev
from .supplier_service import balances_for


def _check_range(date_from: datetime | None, date_to: datetime | None) -> None:
    if date_from and date_to and date_to < date_from:
        raise ValidationError("date_to must be on or after date_from")


def _envelope(rows: list[dict], date_from: datetime | None, date_to: datetime | None, **totals) -> dict:
    return {
        "date_from": to_utc_z(date_from),
        "date_to": to_utc_z(date_to),
        "rows": rows,
        "count": len(rows),
        **totals,
    }


def income_by_item(
    org_id: int,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    _check_range(date_from, date_to)
    items = db.session.query(IncomeItem).filter(IncomeItem.org_id == org_id).order_by(IncomeItem.name.asc()).all()
    buckets = {
        item.id: {"item_id": item.id, "item_name": item.name, "total_cents": 0, "entries": 0}
        for item in items
    }

    query = db.session.query(
        Income.item_id,
        func.coalesce(func.sum(Income.amount_cents), 0),
        func.count(Income.id),
    ).filter(Income.org_id == org_id)
    if date_from:
        query = query.filter(Income.received_at >= date_from)
    if date_to:
        query = query.filter(Income.received_at <= date_to)

    for item_id, total, entries in query.group_by(Income.item_id).all():
        bucket = buckets.get(item_id)
        if bucket is not None:
            bucket["total_cents"] += int(total)
            bucket["entries"] += int(entries)

    rows = list(buckets.values())
    return _envelope(rows, date_from, date_to, total_cents=sum(r["total_cents"] for r in rows))


def expenses_by_category(
    org_id: int,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    _check_range(date_from, date_to)
    categories = (
        db.session.query(ExpenseCategory)
        .filter(ExpenseCategory.org_id == org_id)
        .order_by(ExpenseCategory.name.asc())
        .all()
    )
    buckets = {
        c.id: {"category_id": c.id, "category_name": c.name, "total_cents": 0, "entries": 0}
        for c in categories
    }

    query = db.session.query(
        Expense.category_id,
        func.coalesce(func.sum(Expense.amount_cents), 0),
        func.count(Expense.id),
    ).filter(Expense.org_id == org_id)
    if date_from:
        query = query.filter(Expense.spent_at >= date_from)
    if date_to:
        query = query.filter(Expense.spent_at <= date_to)

    for category_id, total, entries in query.group_by(Expense.category_id).all():
        bucket = buckets.get(category_id)
        if bucket is not None:
            bucket["total_cents"] += int(total)
            bucket["entries"] += int(entries)

    rows = list(buckets.values())
    return _envelope(rows, date_from, date_to, total_cents=sum(r["total_cents"] for r in rows))


def sales_by_product(
    org_id: int,
    *,
    outlet_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    """Quantity and line revenue of COMPLETED sales per product."""
    _check_range(date_from, date_to)
    if outlet_id is not None:
        ev.check_outlet(outlet_id, org_id).unwrap()

    products = db.session.query(Product).filter(Product.org_id == org_id).order_by(Product.name.asc()).all()
    buckets = {
        p.id: {"product_id": p.id, "sku": p.sku, "product_name": p.name, "quantity": 0, "revenue_cents": 0}
        for p in products
    }

    sale_time = func.coalesce(Sale.completed_at, Sale.created_at)
    query = (
        db.session.query(
            SaleItem.product_id,
            func.coalesce(func.sum(SaleItem.quantity), 0),
            func.coalesce(func.sum(SaleItem.line_total_cents), 0),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(Sale.org_id == org_id, Sale.status == "COMPLETED")
    )
    if outlet_id is not None:
        query = query.filter(Sale.outlet_id == outlet_id)
    if date_from:
        query = query.filter(sale_time >= date_from)
    if date_to:
        query = query.filter(sale_time <= date_to)

    for product_id, quantity, revenue in query.group_by(SaleItem.product_id).all():
        bucket = buckets.get(product_id)
        if bucket is not None:
            bucket["quantity"] += int(quantity)
            bucket["revenue_cents"] += int(revenue)

    rows = list(buckets.values())
    return _envelope(
        rows,
        date_from,
        date_to,
        outlet_id=outlet_id,
        total_quantity=sum(r["quantity"] for r in rows),
        total_revenue_cents=sum(r["revenue_cents"] for r in rows),
    )


def supplier_balances(org_id: int) -> dict:
    suppliers = db.session.query(Supplier).filter(Supplier.org_id == org_id).order_by(Supplier.name.asc()).all()
    balances = balances_for(org_id, [s.id for s in suppliers])
    rows = [
        {"supplier_name": s.name, **balances[s.id].to_dict()}
        for s in suppliers
    ]
    return {
        "rows": rows,
        "count": len(rows),
        "total_balance_cents": sum(r["balance_cents"] for r in rows),
    }
