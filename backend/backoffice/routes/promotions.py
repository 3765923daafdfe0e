# Overview: Flask API routes for promotions and promotion validation.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_promotion_check
from ..services import promotion_service
from ..services.tenant_service import request_org_id
from .params import bool_arg, page_args

promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/promotions")


@promotions_bp.get("")
@require_auth
@handle_service_errors("list promotions")
def list_promotions_route():
    org_id = request_org_id()
    limit, offset = page_args(default_limit=100)
    rows, total = promotion_service.list_promotions(
        org_id,
        active=bool_arg("active"),
        search=request.args.get("search"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"promotions": [p.to_dict() for p in rows], "count": len(rows), "total": total})


@promotions_bp.get("/active")
@require_auth
@handle_service_errors("list active promotions")
def list_active_promotions_route():
    org_id = request_org_id()
    rows = promotion_service.list_active_promotions(org_id)
    return jsonify({"promotions": [p.to_dict() for p in rows], "count": len(rows)})


@promotions_bp.post("/validate")
@require_auth
@handle_service_errors("validate promotion")
def validate_promotion_route():
    """
    Check a promotion against a basket without recording usage.

    Answers 200 with valid=true and the discount, 400 with the rejection
    reason, or 404 when no promotion matches the id/code.
    """
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    req = parse_promotion_check(data)
    result = promotion_service.validate_promotion(
        org_id,
        total_cents=req.total_cents,
        promotion_id=req.promotion_id,
        promotion_code=req.promotion_code,
        customer_id=req.customer_id,
        items=req.items,
    )
    return jsonify(result.to_dict()), result.status_code


@promotions_bp.post("")
@require_auth
@handle_service_errors("create promotion")
def create_promotion_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    promotion = promotion_service.create_promotion(org_id, data, user_id=g.current_user.id)
    return jsonify(promotion.to_dict()), 201


@promotions_bp.get("/<int:promotion_id>")
@require_auth
@handle_service_errors("get promotion")
def get_promotion_route(promotion_id: int):
    org_id = request_org_id()
    return jsonify(promotion_service.get_promotion(org_id, promotion_id).to_dict())


@promotions_bp.route("/<int:promotion_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update promotion")
def update_promotion_route(promotion_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    promotion = promotion_service.update_promotion(org_id, promotion_id, data)
    return jsonify(promotion.to_dict())


@promotions_bp.delete("/<int:promotion_id>")
@require_auth
@handle_service_errors("delete promotion")
def delete_promotion_route(promotion_id: int):
    org_id = request_org_id()
    promotion_service.delete_promotion(org_id, promotion_id)
    return jsonify({"message": "Promotion deleted", "id": promotion_id})
