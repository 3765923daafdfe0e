# Overview: Flask API routes for installment schedules.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..models.installments import INSTALLMENT_STATUSES
from ..services import installment_service
from ..services.tenant_service import request_org_id
from ..validation import require_choice
from .params import date_arg, int_arg, page_args

installments_bp = Blueprint("installments", __name__, url_prefix="/api/installments")


@installments_bp.get("")
@require_auth
@handle_service_errors("list installments")
def list_installments_route():
    org_id = request_org_id()
    limit, offset = page_args()
    status = request.args.get("status")
    rows, total = installment_service.list_installments(
        org_id,
        status=require_choice("status", status, INSTALLMENT_STATUSES) if status else None,
        sale_id=int_arg("sale_id"),
        customer_id=int_arg("customer_id"),
        due_before=date_arg("due_before"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "installments": [i.to_dict() for i in rows],
        "count": len(rows),
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@installments_bp.get("/<int:installment_id>")
@require_auth
@handle_service_errors("get installment")
def get_installment_route(installment_id: int):
    org_id = request_org_id()
    return jsonify(installment_service.get_installment(org_id, installment_id).to_dict())


@installments_bp.post("/<int:installment_id>/pay")
@require_auth
@handle_service_errors("pay installment")
def pay_installment_route(installment_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    installment = installment_service.pay_installment(
        org_id,
        installment_id,
        payment_method=data.get("payment_method") or "CASH",
        notes=data.get("notes"),
        user_id=g.current_user.id,
    )
    return jsonify(installment.to_dict())


@installments_bp.post("/<int:installment_id>/cancel")
@require_auth
@handle_service_errors("cancel installment")
def cancel_installment_route(installment_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    installment = installment_service.cancel_installment(
        org_id, installment_id, reason=data.get("reason"), user_id=g.current_user.id
    )
    return jsonify(installment.to_dict())
