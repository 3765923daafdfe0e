# Overview: Per-outlet document numbering (S-001-0001 style).

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import lock_for_update


def next_document_number(
    *,
    outlet_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for an outlet/type.

    Runs inside the caller's transaction: the sequence row is locked, and a
    concurrent first insert is resolved through a savepoint so the outer
    transaction survives.
    """
    seq = lock_for_update(
        db.session.query(DocumentSequence).filter_by(outlet_id=outlet_id, document_type=document_type)
    ).first()

    if seq is None:
        try:
            with db.session.begin_nested():
                seq = DocumentSequence(outlet_id=outlet_id, document_type=document_type, next_number=1)
                db.session.add(seq)
        except IntegrityError:
            seq = lock_for_update(
                db.session.query(DocumentSequence).filter_by(outlet_id=outlet_id, document_type=document_type)
            ).one()

    number = seq.next_number
    seq.next_number = number + 1
    db.session.flush()
    return f"{prefix}-{outlet_id:03d}-{number:0{pad}d}"
