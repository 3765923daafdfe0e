# Overview: Employees and daily attendance records.

"""
Attendance Service

One attendance record per employee per calendar day. The unique constraint
(employee_id, work_date) is the authoritative guard: the pre-check only
produces a friendlier message, and a concurrent insert that slips past it
surfaces as the same Conflict when the constraint fires.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AttendanceRecord, Employee
from ..models.staff import ATTENDANCE_STATUSES
from backoffice.time_utils import utc_today
from backoffice.validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from . import entity_validators as ev
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event


EMPLOYEE_POLICY = ModelValidationPolicy(
    writable_fields={"outlet_id", "employee_code", "first_name", "last_name", "position", "is_active"},
    required_on_create={"first_name", "last_name"},
)

ATTENDANCE_POLICY = ModelValidationPolicy(
    writable_fields={"work_date", "status", "check_in_at", "check_out_at", "notes"},
    required_on_create=set(),
    choices={"status": ATTENDANCE_STATUSES},
)


def _duplicate(employee_id: int, work_date: date) -> ConflictError:
    return ConflictError(
        "Attendance already recorded for this date",
        details={"employee_id": employee_id, "work_date": work_date.isoformat()},
    )


def _check_times(record_like: dict) -> None:
    check_in, check_out = record_like.get("check_in_at"), record_like.get("check_out_at")
    if check_in is not None and check_out is not None and check_out < check_in:
        raise ValidationError("check_out_at must be after check_in_at")


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------

def list_employees(org_id: int, *, active: bool | None = None, outlet_id: int | None = None) -> list[Employee]:
    query = db.session.query(Employee).filter(Employee.org_id == org_id)
    if active is not None:
        query = query.filter(Employee.is_active.is_(active))
    if outlet_id is not None:
        query = query.filter(Employee.outlet_id == outlet_id)
    return query.order_by(Employee.last_name.asc(), Employee.first_name.asc()).all()


def get_employee(org_id: int, employee_id: int) -> Employee:
    return ev.find_in_org(Employee, employee_id, org_id, label="Employee").unwrap()


def create_employee(org_id: int, payload: dict) -> Employee:
    patch = validate_payload(model=Employee, payload=payload, policy=EMPLOYEE_POLICY, partial=False)
    if patch.get("outlet_id") is not None:
        ev.check_outlet(patch["outlet_id"], org_id).unwrap()

    def _op():
        employee = Employee(org_id=org_id, **patch)
        db.session.add(employee)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Employee code '{patch.get('employee_code')}' already exists")
        return employee

    return run_with_retry(_op)


def update_employee(org_id: int, employee_id: int, payload: dict) -> Employee:
    patch = validate_payload(model=Employee, payload=payload, policy=EMPLOYEE_POLICY, partial=True)
    if patch.get("outlet_id") is not None:
        ev.check_outlet(patch["outlet_id"], org_id).unwrap()

    def _op():
        employee = ev.find_in_org(Employee, employee_id, org_id, label="Employee", lock=True).unwrap()
        for key, value in patch.items():
            setattr(employee, key, value)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Employee code '{patch.get('employee_code')}' already exists")
        return employee

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------

def list_attendance(
    org_id: int,
    employee_id: int,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[AttendanceRecord]:
    employee = get_employee(org_id, employee_id)
    query = db.session.query(AttendanceRecord).filter(AttendanceRecord.employee_id == employee.id)
    if date_from is not None:
        query = query.filter(AttendanceRecord.work_date >= date_from)
    if date_to is not None:
        query = query.filter(AttendanceRecord.work_date <= date_to)
    return query.order_by(AttendanceRecord.work_date.desc()).all()


def record_attendance(org_id: int, employee_id: int, payload: dict, *, user_id: int | None = None) -> AttendanceRecord:
    patch = validate_payload(model=AttendanceRecord, payload=payload, policy=ATTENDANCE_POLICY, partial=False)
    patch.setdefault("work_date", utc_today())
    _check_times(patch)

    def _op():
        employee = ev.find_in_org(Employee, employee_id, org_id, label="Employee", lock=True).unwrap()
        if not employee.is_active:
            raise ValidationError("Employee is inactive", details={"employee_id": employee.id})

        exists = db.session.query(AttendanceRecord.id).filter_by(
            employee_id=employee.id, work_date=patch["work_date"]
        ).first()
        if exists:
            raise _duplicate(employee.id, patch["work_date"])

        record = AttendanceRecord(org_id=org_id, employee_id=employee.id, **patch)
        db.session.add(record)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise _duplicate(employee.id, patch["work_date"])

        append_ledger_event(
            org_id=org_id,
            outlet_id=employee.outlet_id,
            event_type="attendance.recorded",
            event_category="staff",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_user_id=user_id,
            payload={"employee_id": employee.id, "status": record.status},
        )
        db.session.commit()
        return record

    return run_with_retry(_op)


def update_attendance(org_id: int, employee_id: int, record_id: int, payload: dict) -> AttendanceRecord:
    patch = validate_payload(model=AttendanceRecord, payload=payload, policy=ATTENDANCE_POLICY, partial=True)

    def _op():
        employee = get_employee(org_id, employee_id)
        record = ev.find_in_org(AttendanceRecord, record_id, org_id, label="AttendanceRecord", lock=True).unwrap()
        if record.employee_id != employee.id:
            raise NotFoundError("AttendanceRecord", record_id)
        merged = {"check_in_at": record.check_in_at, "check_out_at": record.check_out_at, **patch}
        _check_times(merged)
        for key, value in patch.items():
            setattr(record, key, value)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise _duplicate(employee.id, patch.get("work_date", record.work_date))
        return record

    return run_with_retry(_op)
