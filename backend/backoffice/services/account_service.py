# Overview: Chart of accounts: listing, per-type hierarchy and edits.

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Account
from ..models.accounts import ACCOUNT_TYPES
from backoffice.validation import (
    MAX_PRICE_CENTS,
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    require_choice,
    validate_payload,
)
from . import entity_validators as ev
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event


ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type", "code", "description", "balance_cents"},
    required_on_create={"name", "type"},
    choices={"type": ACCOUNT_TYPES},
)


def _clean(patch: dict) -> dict:
    if "name" in patch:
        patch["name"] = patch["name"].strip()
        if not patch["name"]:
            raise ValidationError("name cannot be blank")
    balance = patch.get("balance_cents")
    # Balances are signed: liabilities and contra accounts go negative
    if balance is not None and abs(balance) > MAX_PRICE_CENTS:
        raise ValidationError(f"balance_cents must be within +/-{MAX_PRICE_CENTS}")
    return patch


def _check_name_free(org_id: int, name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Account.id).filter(
        Account.org_id == org_id,
        func.lower(Account.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Account.id != exclude_id)
    if query.first():
        raise ConflictError(f"Account '{name}' already exists")


def list_accounts(org_id: int, *, account_type: str | None = None, search: str | None = None) -> list[Account]:
    query = db.session.query(Account).filter(Account.org_id == org_id)
    if account_type:
        query = query.filter(Account.type == require_choice("type", account_type, ACCOUNT_TYPES))
    if search:
        query = query.filter(Account.name.ilike(f"%{search}%"))
    return query.order_by(Account.name.asc(), Account.id.asc()).all()


def account_hierarchy(org_id: int) -> dict[str, list[Account]]:
    """Accounts grouped by type. Every type is present, empty ones included."""
    grouped: dict[str, list[Account]] = {account_type: [] for account_type in ACCOUNT_TYPES}
    for account in list_accounts(org_id):
        grouped.setdefault(account.type, []).append(account)
    return grouped


def get_account(org_id: int, account_id: int) -> Account:
    return ev.check_account(account_id, org_id).unwrap()


def create_account(org_id: int, payload: dict, *, user_id: int | None = None) -> Account:
    patch = _clean(validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=False))

    def _op():
        _check_name_free(org_id, patch["name"])
        account = Account(org_id=org_id, **patch)
        db.session.add(account)
        db.session.flush()
        append_ledger_event(
            org_id=org_id,
            event_type="account.created",
            event_category="finance",
            entity_type="account",
            entity_id=account.id,
            actor_user_id=user_id,
            note=account.name,
            payload={"type": account.type},
        )
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Account '{patch['name']}' already exists")
        return account

    return run_with_retry(_op)


def update_account(org_id: int, account_id: int, payload: dict, *, user_id: int | None = None) -> Account:
    patch = _clean(validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=True))

    def _op():
        account = ev.check_account(account_id, org_id, lock=True).unwrap()
        if "name" in patch:
            _check_name_free(org_id, patch["name"], exclude_id=account.id)
        changes = {k: v for k, v in patch.items() if getattr(account, k) != v}
        for key, value in changes.items():
            setattr(account, key, value)
        if changes:
            append_ledger_event(
                org_id=org_id,
                event_type="account.updated",
                event_category="finance",
                entity_type="account",
                entity_id=account.id,
                actor_user_id=user_id,
                payload={"fields": sorted(changes)},
            )
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Account '{patch['name']}' already exists")
        return account

    return run_with_retry(_op)
