# Overview: Flask API routes for employees and their attendance.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import attendance_service
from ..services.tenant_service import request_org_id
from .params import bool_arg, date_arg, int_arg

employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")


@employees_bp.get("")
@require_auth
@handle_service_errors("list employees")
def list_employees_route():
    org_id = request_org_id()
    rows = attendance_service.list_employees(org_id, active=bool_arg("active"), outlet_id=int_arg("outlet_id"))
    return jsonify({"employees": [e.to_dict() for e in rows], "count": len(rows)})


@employees_bp.post("")
@require_auth
@handle_service_errors("create employee")
def create_employee_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(attendance_service.create_employee(org_id, data).to_dict()), 201


@employees_bp.get("/<int:employee_id>")
@require_auth
@handle_service_errors("get employee")
def get_employee_route(employee_id: int):
    org_id = request_org_id()
    return jsonify(attendance_service.get_employee(org_id, employee_id).to_dict())


@employees_bp.route("/<int:employee_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update employee")
def update_employee_route(employee_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(attendance_service.update_employee(org_id, employee_id, data).to_dict())


@employees_bp.get("/<int:employee_id>/attendance")
@require_auth
@handle_service_errors("list attendance")
def list_attendance_route(employee_id: int):
    org_id = request_org_id()
    rows = attendance_service.list_attendance(
        org_id, employee_id, date_from=date_arg("date_from"), date_to=date_arg("date_to")
    )
    return jsonify({"attendance": [r.to_dict() for r in rows], "count": len(rows)})


@employees_bp.post("/<int:employee_id>/attendance")
@require_auth
@handle_service_errors("record attendance")
def record_attendance_route(employee_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    record = attendance_service.record_attendance(org_id, employee_id, data, user_id=g.current_user.id)
    return jsonify(record.to_dict()), 201


@employees_bp.route("/<int:employee_id>/attendance/<int:record_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update attendance")
def update_attendance_route(employee_id: int, record_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    return jsonify(attendance_service.update_attendance(org_id, employee_id, record_id, data).to_dict())
