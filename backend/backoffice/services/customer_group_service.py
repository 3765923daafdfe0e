# Overview: Customer groups and group membership.

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, CustomerGroup
from backoffice.validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_bps,
    validate_payload,
)
from . import entity_validators as ev
from .concurrency import begin_immediate, run_with_retry
from .ledger_service import append_ledger_event


GROUP_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "discount_bps"},
    required_on_create={"name"},
)


def _member_counts(org_id: int, group_ids: list[int]) -> dict[int, int]:
    if not group_ids:
        return {}
    rows = (
        db.session.query(Customer.group_id, func.count(Customer.id))
        .filter(Customer.org_id == org_id, Customer.group_id.in_(group_ids))
        .group_by(Customer.group_id)
        .all()
    )
    return {group_id: int(count) for group_id, count in rows}


def list_groups(org_id: int, *, search: str | None = None) -> list[tuple[CustomerGroup, int]]:
    """Groups with their member count (zero for empty groups)."""
    query = db.session.query(CustomerGroup).filter(CustomerGroup.org_id == org_id)
    if search:
        query = query.filter(CustomerGroup.name.ilike(f"%{search}%"))
    groups = query.order_by(CustomerGroup.name.asc()).all()
    counts = _member_counts(org_id, [g.id for g in groups])
    return [(group, counts.get(group.id, 0)) for group in groups]


def get_group(org_id: int, group_id: int) -> tuple[CustomerGroup, int]:
    group = ev.check_customer_group(group_id, org_id).unwrap()
    return group, _member_counts(org_id, [group.id]).get(group.id, 0)


def _check_name_free(org_id: int, name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(CustomerGroup.id).filter(
        CustomerGroup.org_id == org_id,
        func.lower(CustomerGroup.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(CustomerGroup.id != exclude_id)
    if query.first():
        raise ConflictError(f"Customer group '{name}' already exists")


def create_group(org_id: int, payload: dict, *, user_id: int | None = None) -> CustomerGroup:
    patch = validate_payload(model=CustomerGroup, payload=payload, policy=GROUP_POLICY, partial=False)
    patch["name"] = patch["name"].strip()
    if not patch["name"]:
        raise ValidationError("name cannot be blank")
    enforce_bps("discount_bps", patch.get("discount_bps"))

    def _op():
        _check_name_free(org_id, patch["name"])
        group = CustomerGroup(org_id=org_id, **patch)
        db.session.add(group)
        db.session.flush()
        append_ledger_event(
            org_id=org_id,
            event_type="customer_group.created",
            event_category="customers",
            entity_type="customer_group",
            entity_id=group.id,
            actor_user_id=user_id,
            note=group.name,
        )
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Customer group '{patch['name']}' already exists")
        return group

    return run_with_retry(_op)


def update_group(org_id: int, group_id: int, payload: dict) -> CustomerGroup:
    patch = validate_payload(model=CustomerGroup, payload=payload, policy=GROUP_POLICY, partial=True)
    if "name" in patch:
        patch["name"] = patch["name"].strip()
        if not patch["name"]:
            raise ValidationError("name cannot be blank")
    enforce_bps("discount_bps", patch.get("discount_bps"))

    def _op():
        group = ev.check_customer_group(group_id, org_id, lock=True).unwrap()
        if "name" in patch:
            _check_name_free(org_id, patch["name"], exclude_id=group.id)
        for key, value in patch.items():
            setattr(group, key, value)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Customer group '{patch['name']}' already exists")
        return group

    return run_with_retry(_op)


def delete_group(org_id: int, group_id: int, *, user_id: int | None = None) -> int:
    """
    Delete a group and un-group its members in one transaction.

    Returns the number of customers whose group_id was cleared.
    """
    def _op():
        begin_immediate()
        group = ev.check_customer_group(group_id, org_id, lock=True).unwrap()
        released = (
            db.session.query(Customer)
            .filter(Customer.org_id == org_id, Customer.group_id == group.id)
            .update({Customer.group_id: None}, synchronize_session=False)
        )
        append_ledger_event(
            org_id=org_id,
            event_type="customer_group.deleted",
            event_category="customers",
            entity_type="customer_group",
            entity_id=group.id,
            actor_user_id=user_id,
            note=group.name,
            payload={"released_customers": released},
        )
        db.session.delete(group)
        db.session.commit()
        return released

    return run_with_retry(_op)


def list_members(
    org_id: int,
    group_id: int,
    *,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Customer], int]:
    group = ev.check_customer_group(group_id, org_id).unwrap()
    query = db.session.query(Customer).filter(Customer.org_id == org_id, Customer.group_id == group.id)
    total = query.count()
    rows = query.order_by(Customer.last_name.asc(), Customer.first_name.asc(), Customer.id.asc()).limit(limit).offset(offset).all()
    return rows, total


def add_members(org_id: int, group_id: int, customer_ids: list[int], *, user_id: int | None = None) -> int:
    """
    Move customers into the group. Every ID must belong to the organization;
    one foreign ID rejects the whole request.
    """
    if not isinstance(customer_ids, list) or not customer_ids:
        raise ValidationError("customer_ids must be a non-empty list")
    try:
        wanted = sorted({int(cid) for cid in customer_ids})
    except (TypeError, ValueError):
        raise ValidationError("customer_ids must be integers")

    def _op():
        group = ev.check_customer_group(group_id, org_id, lock=True).unwrap()
        found = {
            cid
            for (cid,) in db.session.query(Customer.id)
            .filter(Customer.org_id == org_id, Customer.id.in_(wanted))
            .all()
        }
        missing = [cid for cid in wanted if cid not in found]
        if missing:
            ev.check_customer(missing[0], org_id).unwrap()

        updated = (
            db.session.query(Customer)
            .filter(Customer.org_id == org_id, Customer.id.in_(wanted))
            .update({Customer.group_id: group.id}, synchronize_session=False)
        )
        append_ledger_event(
            org_id=org_id,
            event_type="customer_group.members_added",
            event_category="customers",
            entity_type="customer_group",
            entity_id=group.id,
            actor_user_id=user_id,
            payload={"customer_ids": wanted},
        )
        db.session.commit()
        return updated

    return run_with_retry(_op)


def remove_member(org_id: int, group_id: int, customer_id: int, *, user_id: int | None = None) -> Customer:
    def _op():
        group = ev.check_customer_group(group_id, org_id, lock=True).unwrap()
        customer = ev.check_customer(customer_id, org_id, lock=True).unwrap()
        if customer.group_id != group.id:
            raise ValidationError(
                "Customer is not a member of this group",
                details={"customer_id": customer.id, "group_id": group.id},
            )
        customer.group_id = None
        append_ledger_event(
            org_id=org_id,
            event_type="customer_group.member_removed",
            event_category="customers",
            entity_type="customer_group",
            entity_id=group.id,
            actor_user_id=user_id,
            payload={"customer_id": customer.id},
        )
        db.session.commit()
        return customer

    return run_with_retry(_op)
