# Overview: Flask API routes for the chart of accounts.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import account_service
from ..services.tenant_service import request_org_id

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.get("")
@require_auth
@handle_service_errors("list accounts")
def list_accounts_route():
    org_id = request_org_id()
    rows = account_service.list_accounts(
        org_id,
        account_type=request.args.get("type"),
        search=request.args.get("search"),
    )
    return jsonify({"accounts": [a.to_dict() for a in rows], "count": len(rows)})


@accounts_bp.get("/hierarchy")
@require_auth
@handle_service_errors("get account hierarchy")
def account_hierarchy_route():
    org_id = request_org_id()
    grouped = account_service.account_hierarchy(org_id)
    return jsonify({account_type: [a.to_dict() for a in rows] for account_type, rows in grouped.items()})


@accounts_bp.get("/<int:account_id>")
@require_auth
@handle_service_errors("get account")
def get_account_route(account_id: int):
    org_id = request_org_id()
    return jsonify(account_service.get_account(org_id, account_id).to_dict())


@accounts_bp.post("")
@require_auth
@handle_service_errors("create account")
def create_account_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    account = account_service.create_account(org_id, data, user_id=g.current_user.id)
    return jsonify(account.to_dict()), 201


@accounts_bp.route("/<int:account_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update account")
def update_account_route(account_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    account = account_service.update_account(org_id, account_id, data, user_id=g.current_user.id)
    return jsonify(account.to_dict())
