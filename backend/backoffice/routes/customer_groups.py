# Overview: Flask API routes for customer groups and their membership.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import customer_group_service
from ..services.tenant_service import request_org_id
from .params import page_args

customer_groups_bp = Blueprint("customer_groups", __name__, url_prefix="/api/customer-groups")


@customer_groups_bp.get("")
@require_auth
@handle_service_errors("list customer groups")
def list_groups_route():
    org_id = request_org_id()
    rows = customer_group_service.list_groups(org_id, search=request.args.get("search"))
    return jsonify({
        "customer_groups": [group.to_dict(customer_count=count) for group, count in rows],
        "count": len(rows),
    })


@customer_groups_bp.post("")
@require_auth
@handle_service_errors("create customer group")
def create_group_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    group = customer_group_service.create_group(org_id, data, user_id=g.current_user.id)
    return jsonify(group.to_dict(customer_count=0)), 201


@customer_groups_bp.get("/<int:group_id>")
@require_auth
@handle_service_errors("get customer group")
def get_group_route(group_id: int):
    org_id = request_org_id()
    group, count = customer_group_service.get_group(org_id, group_id)
    return jsonify(group.to_dict(customer_count=count))


@customer_groups_bp.route("/<int:group_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update customer group")
def update_group_route(group_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    customer_group_service.update_group(org_id, group_id, data)
    group, count = customer_group_service.get_group(org_id, group_id)
    return jsonify(group.to_dict(customer_count=count))


@customer_groups_bp.delete("/<int:group_id>")
@require_auth
@handle_service_errors("delete customer group")
def delete_group_route(group_id: int):
    """Delete the group; its members stay as ungrouped customers."""
    org_id = request_org_id()
    released = customer_group_service.delete_group(org_id, group_id, user_id=g.current_user.id)
    return jsonify({"message": "Customer group deleted", "id": group_id, "released_customers": released})


@customer_groups_bp.get("/<int:group_id>/customers")
@require_auth
@handle_service_errors("list customer group members")
def list_members_route(group_id: int):
    org_id = request_org_id()
    limit, offset = page_args()
    rows, total = customer_group_service.list_members(org_id, group_id, limit=limit, offset=offset)
    return jsonify({
        "customers": [c.to_dict() for c in rows],
        "count": len(rows),
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@customer_groups_bp.post("/<int:group_id>/customers")
@require_auth
@handle_service_errors("add customer group members")
def add_members_route(group_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    updated = customer_group_service.add_members(
        org_id, group_id, data.get("customer_ids"), user_id=g.current_user.id
    )
    return jsonify({"group_id": group_id, "updated_count": updated})


@customer_groups_bp.delete("/<int:group_id>/customers/<int:customer_id>")
@require_auth
@handle_service_errors("remove customer group member")
def remove_member_route(group_id: int, customer_id: int):
    org_id = request_org_id()
    customer = customer_group_service.remove_member(org_id, group_id, customer_id, user_id=g.current_user.id)
    return jsonify(customer.to_dict())
