# Overview: Flask API routes for income, expenses and their heads.

"""
Finance API routes

Income items and expense categories are the heads; incomes and expenses
are the entries booked against them. Both sides expose the same shapes.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import finance_service
from ..services.tenant_service import request_org_id
from .params import datetime_arg, int_arg, page_args

finance_bp = Blueprint("finance", __name__, url_prefix="/api")


def _entries_response(key: str, rows: list, total: int, limit: int, offset: int):
    return jsonify({
        key: [r.to_dict() for r in rows],
        "count": len(rows),
        "total": total,
        "total_amount_cents": sum(r.amount_cents for r in rows),
        "limit": limit,
        "offset": offset,
    })


# ---------------------------------------------------------------------------
# Income items
# ---------------------------------------------------------------------------

@finance_bp.get("/income-items")
@require_auth
@handle_service_errors("list income items")
def list_income_items_route():
    org_id = request_org_id()
    rows = finance_service.list_income_items(org_id, search=request.args.get("search"))
    return jsonify({"income_items": [r.to_dict() for r in rows], "count": len(rows)})


@finance_bp.post("/income-items")
@require_auth
@handle_service_errors("create income item")
def create_income_item_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(finance_service.create_income_item(org_id, data).to_dict()), 201


@finance_bp.get("/income-items/<int:item_id>")
@require_auth
@handle_service_errors("get income item")
def get_income_item_route(item_id: int):
    org_id = request_org_id()
    return jsonify(finance_service.get_income_item(org_id, item_id).to_dict())


@finance_bp.route("/income-items/<int:item_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update income item")
def update_income_item_route(item_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(finance_service.update_income_item(org_id, item_id, data).to_dict())


@finance_bp.delete("/income-items/<int:item_id>")
@require_auth
@handle_service_errors("delete income item")
def delete_income_item_route(item_id: int):
    org_id = request_org_id()
    finance_service.delete_income_item(org_id, item_id)
    return jsonify({"message": "Income item deleted", "id": item_id})


# ---------------------------------------------------------------------------
# Income entries
# ---------------------------------------------------------------------------

@finance_bp.get("/income")
@require_auth
@handle_service_errors("list income")
def list_incomes_route():
    org_id = request_org_id()
    limit, offset = page_args(default_limit=100)
    rows, total = finance_service.list_incomes(
        org_id,
        item_id=int_arg("item_id"),
        outlet_id=int_arg("outlet_id"),
        date_from=datetime_arg("date_from"),
        date_to=datetime_arg("date_to", end_of_day=True),
        limit=limit,
        offset=offset,
    )
    return _entries_response("income", rows, total, limit, offset)


@finance_bp.post("/income")
@require_auth
@handle_service_errors("create income")
def create_income_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    income = finance_service.create_income(org_id, data, user_id=g.current_user.id)
    return jsonify(income.to_dict()), 201


@finance_bp.get("/income/<int:income_id>")
@require_auth
@handle_service_errors("get income")
def get_income_route(income_id: int):
    org_id = request_org_id()
    return jsonify(finance_service.get_income(org_id, income_id).to_dict())


@finance_bp.route("/income/<int:income_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update income")
def update_income_route(income_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(finance_service.update_income(org_id, income_id, data).to_dict())


@finance_bp.delete("/income/<int:income_id>")
@require_auth
@handle_service_errors("delete income")
def delete_income_route(income_id: int):
    org_id = request_org_id()
    finance_service.delete_income(org_id, income_id)
    return jsonify({"message": "Income deleted", "id": income_id})


# ---------------------------------------------------------------------------
# Expense categories
# ---------------------------------------------------------------------------

@finance_bp.get("/expense-categories")
@require_auth
@handle_service_errors("list expense categories")
def list_expense_categories_route():
    org_id = request_org_id()
    rows = finance_service.list_expense_categories(org_id, search=request.args.get("search"))
    return jsonify({"expense_categories": [r.to_dict() for r in rows], "count": len(rows)})


@finance_bp.post("/expense-categories")
@require_auth
@handle_service_errors("create expense category")
def create_expense_category_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(finance_service.create_expense_category(org_id, data).to_dict()), 201


@finance_bp.get("/expense-categories/<int:category_id>")
@require_auth
@handle_service_errors("get expense category")
def get_expense_category_route(category_id: int):
    org_id = request_org_id()
    return jsonify(finance_service.get_expense_category(org_id, category_id).to_dict())


@finance_bp.route("/expense-categories/<int:category_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update expense category")
def update_expense_category_route(category_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(finance_service.update_expense_category(org_id, category_id, data).to_dict())


@finance_bp.delete("/expense-categories/<int:category_id>")
@require_auth
@handle_service_errors("delete expense category")
def delete_expense_category_route(category_id: int):
    org_id = request_org_id()
    finance_service.delete_expense_category(org_id, category_id)
    return jsonify({"message": "Expense category deleted", "id": category_id})


# ---------------------------------------------------------------------------
# Expense entries
# ---------------------------------------------------------------------------

@finance_bp.get("/expenses")
@require_auth
@handle_service_errors("list expenses")
def list_expenses_route():
    org_id = request_org_id()
    limit, offset = page_args(default_limit=100)
    rows, total = finance_service.list_expenses(
        org_id,
        category_id=int_arg("category_id"),
        outlet_id=int_arg("outlet_id"),
        date_from=datetime_arg("date_from"),
        date_to=datetime_arg("date_to", end_of_day=True),
        limit=limit,
        offset=offset,
    )
    return _entries_response("expenses", rows, total, limit, offset)


@finance_bp.post("/expenses")
@require_auth
@handle_service_errors("create expense")
def create_expense_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    expense = finance_service.create_expense(org_id, data, user_id=g.current_user.id)
    return jsonify(expense.to_dict()), 201


@finance_bp.get("/expenses/<int:expense_id>")
@require_auth
@handle_service_errors("get expense")
def get_expense_route(expense_id: int):
    org_id = request_org_id()
    return jsonify(finance_service.get_expense(org_id, expense_id).to_dict())


@finance_bp.route("/expenses/<int:expense_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update expense")
def update_expense_route(expense_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(finance_service.update_expense(org_id, expense_id, data).to_dict())


@finance_bp.delete("/expenses/<int:expense_id>")
@require_auth
@handle_service_errors("delete expense")
def delete_expense_route(expense_id: int):
    org_id = request_org_id()
    finance_service.delete_expense(org_id, expense_id)
    return jsonify({"message": "Expense deleted", "id": expense_id})
