# Overview: Flask API routes for purchases (stock received from suppliers).

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_create_purchase
from ..services import purchase_service
from ..services.tenant_service import request_org_id
from .params import datetime_arg, int_arg, page_args

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@require_auth
@handle_service_errors("list purchases")
def list_purchases_route():
    org_id = request_org_id()
    limit, offset = page_args(default_limit=100)
    rows, total = purchase_service.list_purchases(
        org_id,
        supplier_id=int_arg("supplier_id"),
        outlet_id=int_arg("outlet_id"),
        date_from=datetime_arg("date_from"),
        date_to=datetime_arg("date_to", end_of_day=True),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "purchases": [p.to_dict(include_items=False) for p in rows],
        "count": len(rows),
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@purchases_bp.post("")
@require_auth
@handle_service_errors("create purchase")
def create_purchase_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    req = parse_create_purchase(data)
    purchase = purchase_service.create_purchase(org_id, req, user_id=g.current_user.id)
    return jsonify(purchase.to_dict()), 201


@purchases_bp.get("/<int:purchase_id>")
@require_auth
@handle_service_errors("get purchase")
def get_purchase_route(purchase_id: int):
    org_id = request_org_id()
    return jsonify(purchase_service.get_purchase(org_id, purchase_id).to_dict())
