# Overview: Flask API routes for stock transfers between outlets.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_transfer
from ..services import transfer_service
from ..services.tenant_service import request_org_id
from .params import int_arg, page_args

transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.get("")
@require_auth
@handle_service_errors("list transfers")
def list_transfers_route():
    org_id = request_org_id()
    limit, offset = page_args(default_limit=100)
    rows, total = transfer_service.list_transfers(
        org_id,
        outlet_id=int_arg("outlet_id"),
        product_id=int_arg("product_id"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"transfers": [t.to_dict() for t in rows], "count": len(rows), "total": total})


@transfers_bp.post("")
@require_auth
@handle_service_errors("create transfer")
def create_transfer_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    transfer = transfer_service.create_transfer(org_id, parse_transfer(data), user_id=g.current_user.id)
    return jsonify(transfer.to_dict()), 201


@transfers_bp.get("/<int:transfer_id>")
@require_auth
@handle_service_errors("get transfer")
def get_transfer_route(transfer_id: int):
    org_id = request_org_id()
    return jsonify(transfer_service.get_transfer(org_id, transfer_id).to_dict())
