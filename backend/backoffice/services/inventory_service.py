# Overview: Stock movements and on-hand quantities per outlet.

"""
Inventory Service

On-hand quantity is SUM(quantity_delta) over a product's movements at an
outlet, computed on every read. Callers post movements inside their own
transaction (commit is theirs) after checking availability with the
outlet's write lock held.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryTransaction, Product
from backoffice.time_utils import utcnow
from backoffice.validation import ConflictError, ValidationError


def get_quantity_on_hand(outlet_id: int, product_id: int, as_of: datetime | None = None) -> int:
    q = db.session.query(
        func.coalesce(func.sum(InventoryTransaction.quantity_delta), 0)
    ).filter(
        InventoryTransaction.outlet_id == outlet_id,
        InventoryTransaction.product_id == product_id,
    )
    if as_of is not None:
        q = q.filter(InventoryTransaction.occurred_at <= as_of)

    return int(q.scalar() or 0)


def ensure_available(outlet_id: int, requested: dict[int, int], products: dict[int, Product]) -> None:
    """
    Raise ConflictError listing every stock-tracked product whose on-hand
    quantity at the outlet is below the requested quantity.
    """
    insufficient = []
    for product_id, qty in requested.items():
        product = products.get(product_id)
        if product is not None and not product.track_stock:
            continue
        on_hand = get_quantity_on_hand(outlet_id, product_id)
        if on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "on_hand": on_hand,
            })

    if insufficient:
        raise ConflictError("Insufficient inventory", details={"items": insufficient})


def post_movement(
    *,
    org_id: int,
    outlet_id: int,
    product_id: int,
    tx_type: str,
    quantity_delta: int,
    unit_cost_cents: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    note: str | None = None,
    occurred_at: datetime | None = None,
) -> InventoryTransaction:
    if tx_type not in InventoryTransaction.TYPES:
        raise ValidationError(f"Unknown inventory transaction type: {tx_type}")
    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be non-zero")

    tx = InventoryTransaction(
        org_id=org_id,
        outlet_id=outlet_id,
        product_id=product_id,
        type=tx_type,
        quantity_delta=quantity_delta,
        unit_cost_cents=unit_cost_cents,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(tx)
    return tx


def list_inventory_transactions(*, outlet_id: int, product_id: int, limit: int = 200) -> list[InventoryTransaction]:
    return (
        db.session.query(InventoryTransaction)
        .filter_by(outlet_id=outlet_id, product_id=product_id)
        .order_by(InventoryTransaction.occurred_at.desc(), InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )
