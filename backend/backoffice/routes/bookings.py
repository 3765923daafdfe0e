# Overview: Flask API routes for bookings (appointments and reservations).

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_auth
from ..services import booking_service
from ..services.tenant_service import request_org_id
from ..time_utils import utcnow
from ..validation import ValidationError
from .params import datetime_arg, int_arg, page_args

bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")


@bookings_bp.get("")
@require_auth
@handle_service_errors("list bookings")
def list_bookings_route():
    org_id = request_org_id()
    limit, offset = page_args()
    rows, total = booking_service.list_bookings(
        org_id,
        status=request.args.get("status"),
        customer_id=int_arg("customer_id"),
        date_from=datetime_arg("date_from"),
        date_to=datetime_arg("date_to", end_of_day=True),
        limit=limit,
        offset=offset,
    )
    return jsonify({"bookings": [b.to_dict() for b in rows], "count": len(rows), "total": total})


@bookings_bp.get("/upcoming")
@require_auth
@handle_service_errors("list upcoming bookings")
def list_upcoming_route():
    org_id = request_org_id()
    days = int_arg("days")
    rows = booking_service.list_upcoming(org_id, days=7 if days is None else days)
    return jsonify({"bookings": [b.to_dict() for b in rows], "count": len(rows)})


@bookings_bp.get("/calendar")
@require_auth
@handle_service_errors("get booking calendar")
def calendar_route():
    org_id = request_org_id()
    today = utcnow()
    year = int_arg("year") or today.year
    month = int_arg("month") or today.month
    if not 1900 <= year <= 9999:
        raise ValidationError("year is out of range")
    days = booking_service.calendar(org_id, year=year, month=month)
    return jsonify({
        "year": year,
        "month": month,
        "days": {day: [b.to_dict() for b in rows] for day, rows in days.items()},
        "count": sum(len(rows) for rows in days.values()),
    })


@bookings_bp.post("")
@require_auth
@handle_service_errors("create booking")
def create_booking_route():
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    booking = booking_service.create_booking(org_id, data, user_id=g.current_user.id)
    return jsonify(booking.to_dict()), 201


@bookings_bp.get("/<int:booking_id>")
@require_auth
@handle_service_errors("get booking")
def get_booking_route(booking_id: int):
    org_id = request_org_id()
    return jsonify(booking_service.get_booking(org_id, booking_id).to_dict())


@bookings_bp.route("/<int:booking_id>", methods=["PUT", "PATCH"])
@require_auth
@handle_service_errors("update booking")
def update_booking_route(booking_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    booking = booking_service.update_booking(org_id, booking_id, data, user_id=g.current_user.id)
    return jsonify(booking.to_dict())


@bookings_bp.route("/<int:booking_id>/status", methods=["POST", "PATCH"])
@require_auth
@handle_service_errors("change booking status")
def change_booking_status_route(booking_id: int):
    data = request.get_json(silent=True) or {}
    org_id = request_org_id(data)
    booking = booking_service.change_booking_status(
        org_id, booking_id, data.get("status"), user_id=g.current_user.id
    )
    return jsonify(booking.to_dict())


@bookings_bp.delete("/<int:booking_id>")
@require_auth
@handle_service_errors("delete booking")
def delete_booking_route(booking_id: int):
    org_id = request_org_id()
    booking_service.delete_booking(org_id, booking_id)
    return jsonify({"message": "Booking deleted", "id": booking_id})
