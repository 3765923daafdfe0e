# Overview: Income/expense heads and the entries booked against them.

"""
Finance Service

Two parallel ledgers with the same shape:

    IncomeItem      <- Income   (received_at)
    ExpenseCategory <- Expense  (spent_at)

Heads are unique by name within an organization and cannot be deleted
while any entry references them (Conflict). Entries are plain records that
feed the reporting facade.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Expense, ExpenseCategory, Income, IncomeItem
from backoffice.time_utils import utcnow
from backoffice.validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_positive_amount,
    validate_payload,
)
from . import entity_validators as ev
from .concurrency import begin_immediate, run_with_retry


HEAD_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

INCOME_POLICY = ModelValidationPolicy(
    writable_fields={"item_id", "outlet_id", "amount_cents", "reference", "notes", "received_at"},
    required_on_create={"item_id", "amount_cents"},
)

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"category_id", "outlet_id", "amount_cents", "reference", "notes", "spent_at"},
    required_on_create={"category_id", "amount_cents"},
)


# ---------------------------------------------------------------------------
# Heads (shared by income items and expense categories)
# ---------------------------------------------------------------------------

def _label(model) -> str:
    return "Income item" if model is IncomeItem else "Expense category"


def _list_heads(model, org_id: int, search: str | None) -> list:
    query = db.session.query(model).filter(model.org_id == org_id)
    if search:
        query = query.filter(model.name.ilike(f"%{search}%"))
    return query.order_by(model.name.asc()).all()


def _create_head(model, org_id: int, payload: dict):
    patch = validate_payload(model=model, payload=payload, policy=HEAD_POLICY, partial=False)
    patch["name"] = patch["name"].strip()
    if not patch["name"]:
        raise ValidationError("name cannot be blank")

    def _op():
        head = model(org_id=org_id, **patch)
        db.session.add(head)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"{_label(model)} '{patch['name']}' already exists")
        return head

    return run_with_retry(_op)


def _update_head(model, org_id: int, head_id: int, payload: dict):
    patch = validate_payload(model=model, payload=payload, policy=HEAD_POLICY, partial=True)
    if "name" in patch:
        patch["name"] = patch["name"].strip()
        if not patch["name"]:
            raise ValidationError("name cannot be blank")

    def _op():
        head = ev.find_in_org(model, head_id, org_id, label=model.__name__, lock=True).unwrap()
        for key, value in patch.items():
            setattr(head, key, value)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"{_label(model)} '{patch['name']}' already exists")
        return head

    return run_with_retry(_op)


def _delete_head(model, entry_model, fk_column, org_id: int, head_id: int) -> None:
    def _op():
        begin_immediate()
        head = ev.find_in_org(model, head_id, org_id, label=model.__name__, lock=True).unwrap()
        in_use = db.session.query(func.count(entry_model.id)).filter(fk_column == head.id).scalar()
        if in_use:
            raise ConflictError(
                f"{_label(model)} is in use and cannot be deleted",
                details={"entries": int(in_use)},
            )
        db.session.delete(head)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"{_label(model)} is in use and cannot be deleted")

    run_with_retry(_op)


def list_income_items(org_id: int, *, search: str | None = None) -> list[IncomeItem]:
    return _list_heads(IncomeItem, org_id, search)


def get_income_item(org_id: int, item_id: int) -> IncomeItem:
    return ev.find_in_org(IncomeItem, item_id, org_id, label="IncomeItem").unwrap()


def create_income_item(org_id: int, payload: dict) -> IncomeItem:
    return _create_head(IncomeItem, org_id, payload)


def update_income_item(org_id: int, item_id: int, payload: dict) -> IncomeItem:
    return _update_head(IncomeItem, org_id, item_id, payload)


def delete_income_item(org_id: int, item_id: int) -> None:
    _delete_head(IncomeItem, Income, Income.item_id, org_id, item_id)


def list_expense_categories(org_id: int, *, search: str | None = None) -> list[ExpenseCategory]:
    return _list_heads(ExpenseCategory, org_id, search)


def get_expense_category(org_id: int, category_id: int) -> ExpenseCategory:
    return ev.find_in_org(ExpenseCategory, category_id, org_id, label="ExpenseCategory").unwrap()


def create_expense_category(org_id: int, payload: dict) -> ExpenseCategory:
    return _create_head(ExpenseCategory, org_id, payload)


def update_expense_category(org_id: int, category_id: int, payload: dict) -> ExpenseCategory:
    return _update_head(ExpenseCategory, org_id, category_id, payload)


def delete_expense_category(org_id: int, category_id: int) -> None:
    _delete_head(ExpenseCategory, Expense, Expense.category_id, org_id, category_id)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

def _check_entry_refs(org_id: int, patch: dict, head_model, head_key: str) -> None:
    if patch.get(head_key) is not None:
        ev.find_in_org(head_model, patch[head_key], org_id, label=head_model.__name__).unwrap()
    if patch.get("outlet_id") is not None:
        ev.check_outlet(patch["outlet_id"], org_id).unwrap()
    if "amount_cents" in patch:
        enforce_positive_amount("amount_cents", patch["amount_cents"])


def _list_entries(model, head_key: str, at_column, org_id: int, head_id, outlet_id, date_from, date_to, limit, offset):
    query = db.session.query(model).filter(model.org_id == org_id)
    if head_id is not None:
        query = query.filter(getattr(model, head_key) == head_id)
    if outlet_id is not None:
        query = query.filter(model.outlet_id == outlet_id)
    if date_from is not None:
        query = query.filter(at_column >= date_from)
    if date_to is not None:
        query = query.filter(at_column <= date_to)
    total = query.count()
    rows = query.order_by(at_column.desc(), model.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def list_incomes(
    org_id: int,
    *,
    item_id: int | None = None,
    outlet_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Income], int]:
    return _list_entries(Income, "item_id", Income.received_at, org_id, item_id, outlet_id, date_from, date_to, limit, offset)


def get_income(org_id: int, income_id: int) -> Income:
    return ev.find_in_org(Income, income_id, org_id, label="Income").unwrap()


def create_income(org_id: int, payload: dict, *, user_id: int | None = None) -> Income:
    patch = validate_payload(model=Income, payload=payload, policy=INCOME_POLICY, partial=False)
    _check_entry_refs(org_id, patch, IncomeItem, "item_id")

    def _op():
        income = Income(org_id=org_id, created_by_user_id=user_id, **{"received_at": utcnow(), **patch})
        db.session.add(income)
        db.session.commit()
        return income

    return run_with_retry(_op)


def update_income(org_id: int, income_id: int, payload: dict) -> Income:
    patch = validate_payload(model=Income, payload=payload, policy=INCOME_POLICY, partial=True)
    _check_entry_refs(org_id, patch, IncomeItem, "item_id")

    def _op():
        income = ev.find_in_org(Income, income_id, org_id, label="Income", lock=True).unwrap()
        for key, value in patch.items():
            setattr(income, key, value)
        db.session.commit()
        return income

    return run_with_retry(_op)


def delete_income(org_id: int, income_id: int) -> None:
    def _op():
        income = ev.find_in_org(Income, income_id, org_id, label="Income", lock=True).unwrap()
        db.session.delete(income)
        db.session.commit()

    run_with_retry(_op)


def list_expenses(
    org_id: int,
    *,
    category_id: int | None = None,
    outlet_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Expense], int]:
    return _list_entries(Expense, "category_id", Expense.spent_at, org_id, category_id, outlet_id, date_from, date_to, limit, offset)


def get_expense(org_id: int, expense_id: int) -> Expense:
    return ev.find_in_org(Expense, expense_id, org_id, label="Expense").unwrap()


def create_expense(org_id: int, payload: dict, *, user_id: int | None = None) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
    _check_entry_refs(org_id, patch, ExpenseCategory, "category_id")

    def _op():
        expense = Expense(org_id=org_id, created_by_user_id=user_id, **{"spent_at": utcnow(), **patch})
        db.session.add(expense)
        db.session.commit()
        return expense

    return run_with_retry(_op)


def update_expense(org_id: int, expense_id: int, payload: dict) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
    _check_entry_refs(org_id, patch, ExpenseCategory, "category_id")

    def _op():
        expense = ev.find_in_org(Expense, expense_id, org_id, label="Expense", lock=True).unwrap()
        for key, value in patch.items():
            setattr(expense, key, value)
        db.session.commit()
        return expense

    return run_with_retry(_op)


def delete_expense(org_id: int, expense_id: int) -> None:
    def _op():
        expense = ev.find_in_org(Expense, expense_id, org_id, label="Expense", lock=True).unwrap()
        db.session.delete(expense)
        db.session.commit()

    run_with_retry(_op)
