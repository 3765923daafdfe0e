# Overview: Flask API routes for quotations and their conversion into sales.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..models.quotations import QUOTATION_STATUSES
from ..schemas import parse_quotation
from ..services import quotation_service
from ..services.tenant_service import request_org_id
from ..validation import require_choice
from .params import int_arg, page_args

quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


@quotations_bp.get("")
@require_auth
@handle_service_errors("list quotations")
def list_quotations_route():
    org_id = request_org_id()
    limit, offset = page_args(default_limit=100)
    status = request.args.get("status")
    rows, total = quotation_service.list_quotations(
        org_id,
        status=require_choice("status", status, QUOTATION_STATUSES) if status else None,
        customer_id=int_arg("customer_id"),
        outlet_id=int_arg("outlet_id"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"quotations": [q.to_dict() for q in rows], "count": len(rows), "total": total})


@quotations_bp.post("")
@require_auth
@handle_service_errors("create quotation")
def create_quotation_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    quotation = quotation_service.create_quotation(org_id, parse_quotation(data), user_id=g.current_user.id)
    return jsonify(quotation.to_dict()), 201


@quotations_bp.get("/<int:quotation_id>")
@require_auth
@handle_service_errors("get quotation")
def get_quotation_route(quotation_id: int):
    org_id = request_org_id()
    return jsonify(quotation_service.get_quotation(org_id, quotation_id).to_dict())


@quotations_bp.put("/<int:quotation_id>")
@require_auth
@handle_service_errors("update quotation")
def update_quotation_route(quotation_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    quotation = quotation_service.update_quotation(
        org_id, quotation_id, parse_quotation(data), user_id=g.current_user.id
    )
    return jsonify(quotation.to_dict())


@quotations_bp.route("/<int:quotation_id>/status", methods=["POST", "PATCH"])
@require_auth
@handle_service_errors("change quotation status")
def change_quotation_status_route(quotation_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    status = require_choice("status", data.get("status"), QUOTATION_STATUSES)
    quotation = quotation_service.change_quotation_status(org_id, quotation_id, status, user_id=g.current_user.id)
    return jsonify(quotation.to_dict())


@quotations_bp.post("/<int:quotation_id>/convert")
@require_auth
@handle_service_errors("convert quotation")
def convert_quotation_route(quotation_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    quotation, sale = quotation_service.convert_quotation(
        org_id,
        quotation_id,
        payment_method=data.get("payment_method") or "CASH",
        status=data.get("status") or "COMPLETED",
        user_id=g.current_user.id,
    )
    return jsonify({"quotation": quotation.to_dict(), "sale": sale.to_dict()}), 201


@quotations_bp.delete("/<int:quotation_id>")
@require_auth
@handle_service_errors("delete quotation")
def delete_quotation_route(quotation_id: int):
    org_id = request_org_id()
    quotation_service.delete_quotation(org_id, quotation_id)
    return jsonify({"message": "Quotation deleted", "id": quotation_id})
