# Overview: Flask API routes for suppliers, their balances and payments.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..schemas import parse_create_purchase
from ..services import purchase_service, supplier_service
from ..services.tenant_service import request_org_id
from .params import bool_arg, datetime_arg, page_args

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


def _with_balance(supplier, balance) -> dict:
    data = supplier.to_dict()
    data["balance"] = balance.to_dict()
    return data


@suppliers_bp.get("")
@require_auth
@handle_service_errors("list suppliers")
def list_suppliers_route():
    org_id = request_org_id()
    rows = supplier_service.list_suppliers(org_id, search=request.args.get("search"), active=bool_arg("active"))
    return jsonify({"suppliers": [_with_balance(s, b) for s, b in rows], "count": len(rows)})


@suppliers_bp.post("")
@require_auth
@handle_service_errors("create supplier")
def create_supplier_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    supplier = supplier_service.create_supplier(org_id, data, user_id=g.current_user.id)
    return jsonify(supplier.to_dict()), 201


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@handle_service_errors("get supplier")
def get_supplier_route(supplier_id: int):
    org_id = request_org_id()
    supplier = supplier_service.get_supplier(org_id, supplier_id)
    return jsonify(_with_balance(supplier, supplier_service.get_balance(org_id, supplier.id)))


@suppliers_bp.route("/<int:supplier_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update supplier")
def update_supplier_route(supplier_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(supplier_service.update_supplier(org_id, supplier_id, data).to_dict())


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@handle_service_errors("delete supplier")
def delete_supplier_route(supplier_id: int):
    org_id = request_org_id()
    supplier_service.delete_supplier(org_id, supplier_id)
    return jsonify({"message": "Supplier deleted", "id": supplier_id})


@suppliers_bp.get("/<int:supplier_id>/balance")
@require_auth
@handle_service_errors("get supplier balance")
def get_supplier_balance_route(supplier_id: int):
    org_id = request_org_id()
    return jsonify(supplier_service.get_balance(org_id, supplier_id).to_dict())


@suppliers_bp.get("/<int:supplier_id>/payments")
@require_auth
@handle_service_errors("list supplier payments")
def list_supplier_payments_route(supplier_id: int):
    org_id = request_org_id()
    rows = supplier_service.list_payments(org_id, supplier_id)
    return jsonify({"payments": [p.to_dict() for p in rows], "count": len(rows)})


@suppliers_bp.post("/<int:supplier_id>/payments")
@require_auth
@handle_service_errors("record supplier payment")
def record_supplier_payment_route(supplier_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    payment = supplier_service.record_payment(org_id, supplier_id, data, user_id=g.current_user.id)
    return jsonify(payment.to_dict()), 201


@suppliers_bp.get("/<int:supplier_id>/purchases")
@require_auth
@handle_service_errors("list supplier purchases")
def list_supplier_purchases_route(supplier_id: int):
    org_id = request_org_id()
    supplier = supplier_service.get_supplier(org_id, supplier_id)
    limit, offset = page_args(default_limit=100)
    rows, total = purchase_service.list_purchases(
        org_id,
        supplier_id=supplier.id,
        date_from=datetime_arg("date_from"),
        date_to=datetime_arg("date_to", end_of_day=True),
        limit=limit,
        offset=offset,
    )
    return jsonify({"purchases": [p.to_dict(include_items=False) for p in rows], "count": len(rows), "total": total})


@suppliers_bp.post("/<int:supplier_id>/purchases")
@require_auth
@handle_service_errors("create supplier purchase")
def create_supplier_purchase_route(supplier_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    req = parse_create_purchase(data, supplier_id=supplier_id)
    purchase = purchase_service.create_purchase(org_id, req, user_id=g.current_user.id)
    return jsonify(purchase.to_dict()), 201
