# Overview: Flask API routes for warranties, claims and extensions.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_claim_status, parse_warranty_claim, parse_warranty_extension
from ..services import warranty_service
from ..services.tenant_service import request_org_id
from .params import date_arg, int_arg, page_args

warranties_bp = Blueprint("warranties", __name__, url_prefix="/api/warranties")


@warranties_bp.get("")
@require_auth
@handle_service_errors("list warranties")
def list_warranties_route():
    org_id = request_org_id()
    limit, offset = page_args()
    rows, total = warranty_service.list_warranties(
        org_id,
        status=request.args.get("status"),
        customer_id=int_arg("customer_id"),
        product_id=int_arg("product_id"),
        sale_id=int_arg("sale_id"),
        search=request.args.get("search"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "warranties": [w.to_dict() for w in rows],
        "count": len(rows),
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@warranties_bp.post("")
@require_auth
@handle_service_errors("create warranty")
def create_warranty_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    warranty = warranty_service.create_warranty(org_id, data, user_id=g.current_user.id)
    return jsonify(warranty.to_dict(include_children=True)), 201


@warranties_bp.get("/<int:warranty_id>")
@require_auth
@handle_service_errors("get warranty")
def get_warranty_route(warranty_id: int):
    org_id = request_org_id()
    return jsonify(warranty_service.get_warranty(org_id, warranty_id).to_dict(include_children=True))


@warranties_bp.route("/<int:warranty_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update warranty")
def update_warranty_route(warranty_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    warranty = warranty_service.update_warranty(org_id, warranty_id, data, user_id=g.current_user.id)
    return jsonify(warranty.to_dict(include_children=True))


@warranties_bp.delete("/<int:warranty_id>")
@require_auth
@handle_service_errors("delete warranty")
def delete_warranty_route(warranty_id: int):
    org_id = request_org_id()
    warranty_service.delete_warranty(org_id, warranty_id, user_id=g.current_user.id)
    return jsonify({"message": "Warranty deleted", "id": warranty_id})


@warranties_bp.post("/<int:warranty_id>/void")
@require_auth
@handle_service_errors("void warranty")
def void_warranty_route(warranty_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    warranty = warranty_service.void_warranty(
        org_id, warranty_id, reason=data.get("reason"), user_id=g.current_user.id
    )
    return jsonify(warranty.to_dict(include_children=True))


@warranties_bp.post("/<int:warranty_id>/claims")
@require_auth
@handle_service_errors("file warranty claim")
def file_claim_route(warranty_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    claim = warranty_service.file_claim(org_id, warranty_id, parse_warranty_claim(data), user_id=g.current_user.id)
    return jsonify(claim.to_dict()), 201


@warranties_bp.post("/<int:warranty_id>/extend")
@require_auth
@handle_service_errors("extend warranty")
def extend_warranty_route(warranty_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    warranty = warranty_service.extend_warranty(
        org_id, warranty_id, parse_warranty_extension(data), user_id=g.current_user.id
    )
    return jsonify(warranty.to_dict(include_children=True))


@warranties_bp.get("/claims")
@require_auth
@handle_service_errors("list warranty claims")
def list_claims_route():
    org_id = request_org_id()
    limit, offset = page_args()
    rows, total = warranty_service.list_claims(
        org_id,
        warranty_id=int_arg("warranty_id"),
        status=request.args.get("status"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"claims": [c.to_dict() for c in rows], "count": len(rows), "total": total})


@warranties_bp.route("/claims/<int:claim_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update warranty claim")
def change_claim_status_route(claim_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    claim = warranty_service.change_claim_status(org_id, claim_id, parse_claim_status(data), user_id=g.current_user.id)
    return jsonify(claim.to_dict())


@warranties_bp.post("/check-expired")
@require_auth
@handle_service_errors("expire warranties")
def check_expired_route():
    org_id = request_org_id()
    expired = warranty_service.expire_warranties(org_id)
    return jsonify({"updated_count": expired})


@warranties_bp.get("/stats/claims")
@require_auth
@handle_service_errors("warranty claim stats")
def claim_stats_route():
    org_id = request_org_id()
    stats = warranty_service.claim_stats(org_id, date_from=date_arg("date_from"), date_to=date_arg("date_to"))
    return jsonify(stats)
