# Overview: Outlet-to-outlet stock transfers.

from __future__ import annotations

from ..extensions import db
from ..models import Transfer
from backoffice.schemas import TransferRequest
from backoffice.time_utils import utcnow
from backoffice.validation import ValidationError
from . import entity_validators as ev
from .concurrency import begin_immediate, run_with_retry
from .inventory_service import ensure_available, post_movement
from .ledger_service import append_ledger_event


def create_transfer(org_id: int, req: TransferRequest, *, user_id: int | None = None) -> Transfer:
    """
    Move stock between two outlets of the organization. Writes the transfer
    and its TRANSFER_OUT / TRANSFER_IN pair in one transaction.
    """
    def _op():
        begin_immediate()
        source = ev.check_outlet(req.from_outlet_id, org_id, lock=True).unwrap()
        target = ev.check_outlet(req.to_outlet_id, org_id, lock=True).unwrap()
        product = ev.check_product(req.product_id, org_id).unwrap()
        if not product.track_stock:
            raise ValidationError("Product does not track stock", details={"product_id": product.id})

        ensure_available(source.id, {product.id: req.quantity}, {product.id: product})

        now = utcnow()
        transfer = Transfer(
            org_id=org_id,
            from_outlet_id=source.id,
            to_outlet_id=target.id,
            product_id=product.id,
            quantity=req.quantity,
            notes=req.notes,
            transferred_at=now,
            created_by_user_id=user_id,
        )
        db.session.add(transfer)
        db.session.flush()

        post_movement(
            org_id=org_id,
            outlet_id=source.id,
            product_id=product.id,
            tx_type="TRANSFER_OUT",
            quantity_delta=-req.quantity,
            reference_type="transfer",
            reference_id=transfer.id,
            note=f"Transfer to {target.name}",
            occurred_at=now,
        )
        post_movement(
            org_id=org_id,
            outlet_id=target.id,
            product_id=product.id,
            tx_type="TRANSFER_IN",
            quantity_delta=req.quantity,
            reference_type="transfer",
            reference_id=transfer.id,
            note=f"Transfer from {source.name}",
            occurred_at=now,
        )

        append_ledger_event(
            org_id=org_id,
            outlet_id=source.id,
            event_type="transfer.created",
            event_category="inventory",
            entity_type="transfer",
            entity_id=transfer.id,
            actor_user_id=user_id,
            occurred_at=now,
            payload={"to_outlet_id": target.id, "product_id": product.id, "quantity": req.quantity},
        )
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def list_transfers(
    org_id: int,
    *,
    outlet_id: int | None = None,
    product_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Transfer], int]:
    query = db.session.query(Transfer).filter(Transfer.org_id == org_id)
    if outlet_id is not None:
        query = query.filter(db.or_(Transfer.from_outlet_id == outlet_id, Transfer.to_outlet_id == outlet_id))
    if product_id is not None:
        query = query.filter(Transfer.product_id == product_id)
    total = query.count()
    rows = query.order_by(Transfer.transferred_at.desc(), Transfer.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def get_transfer(org_id: int, transfer_id: int) -> Transfer:
    return ev.find_in_org(Transfer, transfer_id, org_id, label="Transfer").unwrap()
