# Overview: Customer bookings (appointments) and their status changes.

from __future__ import annotations

from datetime import date, datetime, timedelta

from ..extensions import db
from ..models import Booking
from ..models.bookings import BOOKING_STATUSES
from backoffice.time_utils import utcnow
from backoffice.validation import ModelValidationPolicy, ValidationError, require_choice, validate_payload
from . import entity_validators as ev
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event


BOOKING_POLICY = ModelValidationPolicy(
    writable_fields={"customer_id", "outlet_id", "booked_for", "status", "notes"},
    required_on_create={"customer_id", "booked_for"},
    choices={"status": BOOKING_STATUSES},
)


def _check_references(org_id: int, patch: dict) -> None:
    if patch.get("customer_id") is not None:
        ev.check_customer(patch["customer_id"], org_id).unwrap()
    if patch.get("outlet_id") is not None:
        ev.check_outlet(patch["outlet_id"], org_id).unwrap()


def list_bookings(
    org_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Booking], int]:
    query = db.session.query(Booking).filter(Booking.org_id == org_id)
    if status:
        query = query.filter(Booking.status == require_choice("status", status, BOOKING_STATUSES))
    if customer_id is not None:
        query = query.filter(Booking.customer_id == customer_id)
    if date_from:
        query = query.filter(Booking.booked_for >= date_from)
    if date_to:
        query = query.filter(Booking.booked_for <= date_to)

    total = query.count()
    rows = query.order_by(Booking.booked_for.asc(), Booking.id.asc()).limit(limit).offset(offset).all()
    return rows, total


def list_upcoming(org_id: int, *, days: int = 7, now: datetime | None = None) -> list[Booking]:
    """Pending and confirmed bookings from now through the next `days` days."""
    if days <= 0:
        raise ValidationError("days must be > 0")
    now = now or utcnow()
    return (
        db.session.query(Booking)
        .filter(
            Booking.org_id == org_id,
            Booking.status.in_(("pending", "confirmed")),
            Booking.booked_for >= now,
            Booking.booked_for <= now + timedelta(days=days),
        )
        .order_by(Booking.booked_for.asc())
        .all()
    )


def calendar(org_id: int, *, year: int, month: int) -> dict[str, list[Booking]]:
    """Bookings of one month keyed by ISO date; days without bookings are omitted."""
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)

    rows = (
        db.session.query(Booking)
        .filter(Booking.org_id == org_id, Booking.booked_for >= start, Booking.booked_for < end)
        .order_by(Booking.booked_for.asc(), Booking.id.asc())
        .all()
    )
    days: dict[str, list[Booking]] = {}
    for booking in rows:
        day: date = booking.booked_for.date()
        days.setdefault(day.isoformat(), []).append(booking)
    return days


def get_booking(org_id: int, booking_id: int) -> Booking:
    return ev.find_in_org(Booking, booking_id, org_id, label="Booking").unwrap()


def create_booking(org_id: int, payload: dict, *, user_id: int | None = None) -> Booking:
    patch = validate_payload(model=Booking, payload=payload, policy=BOOKING_POLICY, partial=False)

    def _op():
        _check_references(org_id, patch)
        booking = Booking(org_id=org_id, **patch)
        db.session.add(booking)
        db.session.flush()
        append_ledger_event(
            org_id=org_id,
            outlet_id=booking.outlet_id,
            event_type="booking.created",
            event_category="bookings",
            entity_type="booking",
            entity_id=booking.id,
            actor_user_id=user_id,
        )
        db.session.commit()
        return booking

    return run_with_retry(_op)


def update_booking(org_id: int, booking_id: int, payload: dict, *, user_id: int | None = None) -> Booking:
    patch = validate_payload(model=Booking, payload=payload, policy=BOOKING_POLICY, partial=True)
    new_status = patch.pop("status", None)

    def _op():
        booking = ev.find_in_org(Booking, booking_id, org_id, label="Booking", lock=True).unwrap()
        _check_references(org_id, patch)
        for key, value in patch.items():
            setattr(booking, key, value)
        if new_status:
            _apply_status(booking, new_status, user_id=user_id)
        db.session.commit()
        return booking

    return run_with_retry(_op)


def _apply_status(booking: Booking, new_status: str, *, user_id: int | None) -> None:
    old_status = booking.status
    if old_status == new_status:
        return
    booking.status = new_status
    append_ledger_event(
        org_id=booking.org_id,
        outlet_id=booking.outlet_id,
        event_type="booking.status_changed",
        event_category="bookings",
        entity_type="booking",
        entity_id=booking.id,
        actor_user_id=user_id,
        payload={"from": old_status, "to": new_status},
    )


def change_booking_status(org_id: int, booking_id: int, status: str, *, user_id: int | None = None) -> Booking:
    new_status = require_choice("status", status, BOOKING_STATUSES)

    def _op():
        booking = ev.find_in_org(Booking, booking_id, org_id, label="Booking", lock=True).unwrap()
        _apply_status(booking, new_status, user_id=user_id)
        db.session.commit()
        return booking

    return run_with_retry(_op)


def delete_booking(org_id: int, booking_id: int) -> None:
    def _op():
        booking = ev.find_in_org(Booking, booking_id, org_id, label="Booking", lock=True).unwrap()
        db.session.delete(booking)
        db.session.commit()

    run_with_retry(_op)
