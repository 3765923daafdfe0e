# Overview: Flask API routes for sale and purchase returns.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_return
from ..services import returns_service
from ..services.tenant_service import request_org_id
from .params import int_arg

returns_bp = Blueprint("returns", __name__, url_prefix="/api")


@returns_bp.get("/sale-returns")
@require_auth
@handle_service_errors("list sale returns")
def list_sale_returns_route():
    org_id = request_org_id()
    rows = returns_service.list_sale_returns(org_id, sale_id=int_arg("sale_id"))
    return jsonify({"sale_returns": [r.to_dict() for r in rows], "count": len(rows)})


@returns_bp.post("/sale-returns")
@require_auth
@handle_service_errors("create sale return")
def create_sale_return_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    req = parse_return(data, parent_key="sale_id")
    sale_return = returns_service.create_sale_return(org_id, req, user_id=g.current_user.id)
    return jsonify(sale_return.to_dict()), 201


@returns_bp.get("/sale-returns/<int:return_id>")
@require_auth
@handle_service_errors("get sale return")
def get_sale_return_route(return_id: int):
    org_id = request_org_id()
    return jsonify(returns_service.get_sale_return(org_id, return_id).to_dict())


@returns_bp.get("/purchase-returns")
@require_auth
@handle_service_errors("list purchase returns")
def list_purchase_returns_route():
    org_id = request_org_id()
    rows = returns_service.list_purchase_returns(org_id, purchase_id=int_arg("purchase_id"))
    return jsonify({"purchase_returns": [r.to_dict() for r in rows], "count": len(rows)})


@returns_bp.post("/purchase-returns")
@require_auth
@handle_service_errors("create purchase return")
def create_purchase_return_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    req = parse_return(data, parent_key="purchase_id")
    purchase_return = returns_service.create_purchase_return(org_id, req, user_id=g.current_user.id)
    return jsonify(purchase_return.to_dict()), 201


@returns_bp.get("/purchase-returns/<int:return_id>")
@require_auth
@handle_service_errors("get purchase return")
def get_purchase_return_route(return_id: int):
    org_id = request_org_id()
    return jsonify(returns_service.get_purchase_return(org_id, return_id).to_dict())
