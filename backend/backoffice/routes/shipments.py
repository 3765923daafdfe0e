# Overview: Flask API routes for shipments and their tracking history.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_shipment_status
from ..services import shipment_service
from ..services.tenant_service import request_org_id
from .params import int_arg, page_args

shipments_bp = Blueprint("shipments", __name__, url_prefix="/api/shipments")


@shipments_bp.get("")
@require_auth
@handle_service_errors("list shipments")
def list_shipments_route():
    org_id = request_org_id()
    limit, offset = page_args()
    rows, total = shipment_service.list_shipments(
        org_id,
        status=request.args.get("status"),
        delivery_partner_id=int_arg("delivery_partner_id"),
        sale_id=int_arg("sale_id"),
        tracking_number=request.args.get("tracking_number"),
        search=request.args.get("search"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "shipments": [s.to_dict() for s in rows],
        "count": len(rows),
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@shipments_bp.post("")
@require_auth
@handle_service_errors("create shipment")
def create_shipment_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    shipment = shipment_service.create_shipment(org_id, data, user_id=g.current_user.id)
    return jsonify(shipment.to_dict()), 201


@shipments_bp.get("/<int:shipment_id>")
@require_auth
@handle_service_errors("get shipment")
def get_shipment_route(shipment_id: int):
    org_id = request_org_id()
    return jsonify(shipment_service.get_shipment(org_id, shipment_id).to_dict())


@shipments_bp.route("/<int:shipment_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update shipment")
def update_shipment_route(shipment_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    shipment = shipment_service.update_shipment(org_id, shipment_id, data, user_id=g.current_user.id)
    return jsonify(shipment.to_dict())


@shipments_bp.route("/<int:shipment_id>/status", methods=["POST", "PATCH"])
@require_auth
@handle_service_errors("change shipment status")
def change_shipment_status_route(shipment_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    change = parse_shipment_status(data)
    shipment = shipment_service.change_shipment_status(org_id, shipment_id, change, user_id=g.current_user.id)
    return jsonify(shipment.to_dict())


@shipments_bp.delete("/<int:shipment_id>")
@require_auth
@handle_service_errors("delete shipment")
def delete_shipment_route(shipment_id: int):
    org_id = request_org_id()
    shipment_service.delete_shipment(org_id, shipment_id, user_id=g.current_user.id)
    return jsonify({"message": "Shipment deleted", "id": shipment_id})
