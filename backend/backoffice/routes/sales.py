# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_create_sale, parse_update_sale
from ..services import installment_service, sales_service, shipment_service
from ..services.tenant_service import request_org_id
from ..models.sales import SALE_STATUSES
from ..validation import require_choice
from .params import datetime_arg, int_arg, page_args

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
@handle_service_errors("list sales")
def list_sales_route():
    org_id = request_org_id()
    limit, offset = page_args(default_limit=100)
    status = request.args.get("status")
    rows, total = sales_service.list_sales(
        org_id,
        outlet_id=int_arg("outlet_id"),
        status=require_choice("status", status, SALE_STATUSES) if status else None,
        customer_id=int_arg("customer_id"),
        date_from=datetime_arg("date_from"),
        date_to=datetime_arg("date_to", end_of_day=True),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "sales": [s.to_dict(include_items=False) for s in rows],
        "count": len(rows),
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@sales_bp.post("")
@require_auth
@handle_service_errors("create sale")
def create_sale_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    req = parse_create_sale(data)
    sale = sales_service.create_sale(org_id, req, user_id=g.current_user.id)
    return jsonify(sale.to_dict()), 201


@sales_bp.get("/<int:sale_id>")
@require_auth
@handle_service_errors("get sale")
def get_sale_route(sale_id: int):
    org_id = request_org_id()
    sale = sales_service.get_sale(org_id, sale_id)
    return jsonify(sale.to_dict())


@sales_bp.route("/<int:sale_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update sale")
def update_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    req = parse_update_sale(data)
    sale = sales_service.update_sale(org_id, sale_id, req, user_id=g.current_user.id)
    return jsonify(sale.to_dict())


@sales_bp.post("/<int:sale_id>/status")
@require_auth
@handle_service_errors("change sale status")
def change_sale_status_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    status = require_choice("status", data.get("status"), SALE_STATUSES)
    sale = sales_service.change_sale_status(
        org_id, sale_id, status, user_id=g.current_user.id, reason=data.get("reason")
    )
    return jsonify(sale.to_dict())


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@handle_service_errors("void sale")
def void_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    sale = sales_service.void_sale(org_id, sale_id, user_id=g.current_user.id, reason=data.get("reason"))
    return jsonify(sale.to_dict())


@sales_bp.delete("/<int:sale_id>")
@require_auth
@handle_service_errors("delete sale")
def delete_sale_route(sale_id: int):
    org_id = request_org_id()
    sales_service.delete_sale(org_id, sale_id, user_id=g.current_user.id)
    return jsonify({"message": "Sale deleted", "id": sale_id})


@sales_bp.get("/<int:sale_id>/installments")
@require_auth
@handle_service_errors("list sale installments")
def list_sale_installments_route(sale_id: int):
    org_id = request_org_id()
    rows = installment_service.list_sale_installments(org_id, sale_id)
    return jsonify({"installments": [i.to_dict() for i in rows], "count": len(rows)})


@sales_bp.get("/<int:sale_id>/shipments")
@require_auth
@handle_service_errors("list sale shipments")
def list_sale_shipments_route(sale_id: int):
    org_id = request_org_id()
    rows = shipment_service.list_sale_shipments(org_id, sale_id)
    return jsonify({"shipments": [s.to_dict() for s in rows], "count": len(rows)})
