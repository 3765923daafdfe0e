# Overview: Flask API routes for read-only reports.

"""
Reports API routes

Every report lists each dimension value of the organization, including
those with no activity in the requested range (zero rows).
"""

from flask import Blueprint, jsonify

from ..decorators import handle_service_errors, require_auth
from ..services import reporting_service
from ..services.tenant_service import request_org_id
from .params import datetime_arg, int_arg

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/income-by-item")
@require_auth
@handle_service_errors("build income report")
def income_by_item_route():
    org_id = request_org_id()
    return jsonify(reporting_service.income_by_item(
        org_id,
        date_from=datetime_arg("date_from"),
        date_to=datetime_arg("date_to", end_of_day=True),
    ))


@reports_bp.get("/expenses-by-category")
@require_auth
@handle_service_errors("build expense report")
def expenses_by_category_route():
    org_id = request_org_id()
    return jsonify(reporting_service.expenses_by_category(
        org_id,
        date_from=datetime_arg("date_from"),
        date_to=datetime_arg("date_to", end_of_day=True),
    ))


@reports_bp.get("/sales-by-product")
@require_auth
@handle_service_errors("build sales report")
def sales_by_product_route():
    org_id = request_org_id()
    return jsonify(reporting_service.sales_by_product(
        org_id,
        outlet_id=int_arg("outlet_id"),
        date_from=datetime_arg("date_from"),
        date_to=datetime_arg("date_to", end_of_day=True),
    ))


@reports_bp.get("/supplier-balances")
@require_auth
@handle_service_errors("build supplier balance report")
def supplier_balances_route():
    org_id = request_org_id()
    return jsonify(reporting_service.supplier_balances(org_id))
