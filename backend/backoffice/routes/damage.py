# Overview: Flask API routes for damaged-stock reports.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_damage_repair, parse_damage_resolve, parse_damage_scrap
from ..services import damage_service
from ..services.tenant_service import request_org_id
from .params import date_arg, int_arg, page_args

damages_bp = Blueprint("damages", __name__, url_prefix="/api/damages")


@damages_bp.get("")
@require_auth
@handle_service_errors("list damages")
def list_damages_route():
    org_id = request_org_id()
    limit, offset = page_args()
    rows, total, summary = damage_service.list_damages(
        org_id,
        status=request.args.get("status"),
        severity=request.args.get("severity"),
        damage_type=request.args.get("damage_type"),
        outlet_id=int_arg("outlet_id"),
        product_id=int_arg("product_id"),
        date_from=date_arg("date_from"),
        date_to=date_arg("date_to"),
        search=request.args.get("search"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "damages": [d.to_dict() for d in rows],
        "count": len(rows),
        "total": total,
        "limit": limit,
        "offset": offset,
        "summary": summary,
    })


@damages_bp.get("/stats")
@require_auth
@handle_service_errors("damage stats")
def damage_stats_route():
    org_id = request_org_id()
    stats = damage_service.damage_stats(
        org_id,
        outlet_id=int_arg("outlet_id"),
        date_from=date_arg("date_from"),
        date_to=date_arg("date_to"),
    )
    return jsonify(stats)


@damages_bp.get("/<int:damage_id>")
@require_auth
@handle_service_errors("get damage")
def get_damage_route(damage_id: int):
    org_id = request_org_id()
    return jsonify(damage_service.get_damage(org_id, damage_id).to_dict(include_actions=True))


@damages_bp.post("")
@require_auth
@handle_service_errors("report damage")
def report_damage_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    damage = damage_service.report_damage(org_id, data, user_id=g.current_user.id)
    return jsonify(damage.to_dict(include_actions=True)), 201


@damages_bp.route("/<int:damage_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update damage")
def update_damage_route(damage_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    damage = damage_service.update_damage(org_id, damage_id, data, user_id=g.current_user.id)
    return jsonify(damage.to_dict(include_actions=True))


@damages_bp.delete("/<int:damage_id>")
@require_auth
@handle_service_errors("delete damage")
def delete_damage_route(damage_id: int):
    org_id = request_org_id()
    damage_service.delete_damage(org_id, damage_id, user_id=g.current_user.id)
    return jsonify({"message": "Damage report deleted", "id": damage_id})


@damages_bp.post("/<int:damage_id>/repair")
@require_auth
@handle_service_errors("repair damage")
def repair_damage_route(damage_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    damage = damage_service.repair_damage(org_id, damage_id, parse_damage_repair(data), user_id=g.current_user.id)
    return jsonify(damage.to_dict(include_actions=True))


@damages_bp.post("/<int:damage_id>/scrap")
@require_auth
@handle_service_errors("scrap damage")
def scrap_damage_route(damage_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    damage = damage_service.scrap_damage(org_id, damage_id, parse_damage_scrap(data), user_id=g.current_user.id)
    return jsonify(damage.to_dict(include_actions=True))


@damages_bp.post("/<int:damage_id>/resolve")
@require_auth
@handle_service_errors("resolve damage")
def resolve_damage_route(damage_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    damage = damage_service.resolve_damage(org_id, damage_id, parse_damage_resolve(data), user_id=g.current_user.id)
    return jsonify(damage.to_dict(include_actions=True))
