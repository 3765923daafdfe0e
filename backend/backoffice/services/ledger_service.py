# Overview: Append-only audit trail writer.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import LedgerEvent
from backoffice.time_utils import utcnow


def append_ledger_event(
    *,
    org_id: int,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    outlet_id: int | None = None,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Never commits: the caller's transaction owns the write.
    """
    ev = LedgerEvent(
        org_id=org_id,
        outlet_id=outlet_id,
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(
    org_id: int,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> list[LedgerEvent]:
    query = db.session.query(LedgerEvent).filter(LedgerEvent.org_id == org_id)
    if entity_type:
        query = query.filter(LedgerEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(LedgerEvent.entity_id == entity_id)
    return query.order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc()).limit(limit).all()
