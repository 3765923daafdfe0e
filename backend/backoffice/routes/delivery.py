# Overview: Flask API routes for delivery partners, their shipping rates and rate quotes.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_rate_query
from ..services import delivery_service
from ..services.tenant_service import request_org_id
from .params import bool_arg

delivery_bp = Blueprint("delivery", __name__, url_prefix="/api/delivery-partners")


@delivery_bp.get("")
@require_auth
@handle_service_errors("list delivery partners")
def list_partners_route():
    org_id = request_org_id()
    include_rates = bool(bool_arg("include_rates"))
    rows = delivery_service.list_partners(
        org_id,
        status=request.args.get("status"),
        search=request.args.get("search"),
    )
    return jsonify({
        "delivery_partners": [p.to_dict(include_rates=include_rates) for p in rows],
        "count": len(rows),
    })


@delivery_bp.post("")
@require_auth
@handle_service_errors("create delivery partner")
def create_partner_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    partner = delivery_service.create_partner(org_id, data, user_id=g.current_user.id)
    return jsonify(partner.to_dict(include_rates=True)), 201


@delivery_bp.post("/calculate")
@require_auth
@handle_service_errors("calculate shipping rates")
def calculate_rates_route():
    """Quote every active rate that covers the destination and weight, cheapest first."""
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    query = parse_rate_query(data)
    quotes = delivery_service.calculate_rates(org_id, query)
    return jsonify({
        "to_location": query.to_location,
        "weight": query.weight,
        "rates": [q.to_dict() for q in quotes],
        "count": len(quotes),
    })


@delivery_bp.get("/<int:partner_id>")
@require_auth
@handle_service_errors("get delivery partner")
def get_partner_route(partner_id: int):
    org_id = request_org_id()
    partner = delivery_service.get_partner(org_id, partner_id)
    data = partner.to_dict(include_rates=True)
    data["open_shipments"] = delivery_service.count_open_shipments(partner.id)
    return jsonify(data)


@delivery_bp.route("/<int:partner_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update delivery partner")
def update_partner_route(partner_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    partner = delivery_service.update_partner(org_id, partner_id, data, user_id=g.current_user.id)
    return jsonify(partner.to_dict(include_rates=True))


@delivery_bp.delete("/<int:partner_id>")
@require_auth
@handle_service_errors("delete delivery partner")
def delete_partner_route(partner_id: int):
    org_id = request_org_id()
    delivery_service.delete_partner(org_id, partner_id, user_id=g.current_user.id)
    return jsonify({"message": "Delivery partner deleted", "id": partner_id})


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------

@delivery_bp.get("/<int:partner_id>/rates")
@require_auth
@handle_service_errors("list shipping rates")
def list_rates_route(partner_id: int):
    org_id = request_org_id()
    include_inactive = bool_arg("include_inactive")
    rows = delivery_service.list_rates(
        org_id, partner_id, include_inactive=True if include_inactive is None else include_inactive
    )
    return jsonify({"rates": [r.to_dict() for r in rows], "count": len(rows)})


@delivery_bp.post("/<int:partner_id>/rates")
@require_auth
@handle_service_errors("create shipping rate")
def create_rate_route(partner_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    rate = delivery_service.create_rate(org_id, partner_id, data)
    return jsonify(rate.to_dict()), 201


@delivery_bp.get("/<int:partner_id>/rates/<int:rate_id>")
@require_auth
@handle_service_errors("get shipping rate")
def get_rate_route(partner_id: int, rate_id: int):
    org_id = request_org_id()
    return jsonify(delivery_service.get_rate(org_id, partner_id, rate_id).to_dict())


@delivery_bp.route("/<int:partner_id>/rates/<int:rate_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update shipping rate")
def update_rate_route(partner_id: int, rate_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    rate = delivery_service.update_rate(org_id, partner_id, rate_id, data)
    return jsonify(rate.to_dict())


@delivery_bp.delete("/<int:partner_id>/rates/<int:rate_id>")
@require_auth
@handle_service_errors("delete shipping rate")
def delete_rate_route(partner_id: int, rate_id: int):
    org_id = request_org_id()
    delivery_service.delete_rate(org_id, partner_id, rate_id)
    return jsonify({"message": "Shipping rate deleted", "id": rate_id})
