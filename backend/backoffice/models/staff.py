from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


ATTENDANCE_STATUSES = ("PRESENT", "ABSENT", "LATE", "LEAVE", "HALF_DAY")


class Employee(db.Model):
    __tablename__ = "employees"
    __table_args__ = (
        db.UniqueConstraint("org_id", "employee_code", name="uq_employees_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True)
    employee_code = db.Column(db.String(32), nullable=True)
    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    position = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "outlet_id": self.outlet_id,
            "employee_code": self.employee_code,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "position": self.position,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class AttendanceRecord(db.Model):
    """One row per employee per calendar day; the unique constraint is the guard."""
    __tablename__ = "attendance_records"
    __table_args__ = (
        db.UniqueConstraint("employee_id", "work_date", name="uq_attendance_employee_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    work_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PRESENT")
    check_in_at = db.Column(db.DateTime(timezone=True), nullable=True)
    check_out_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    employee = db.relationship("Employee", backref=db.backref("attendance", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "employee_id": self.employee_id,
            "work_date": self.work_date.isoformat(),
            "status": self.status,
            "check_in_at": to_utc_z(self.check_in_at),
            "check_out_at": to_utc_z(self.check_out_at),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
