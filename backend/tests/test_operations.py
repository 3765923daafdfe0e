# Overview: Pytest coverage for the back-office operations around sales and stock.

from datetime import datetime, timedelta

import pytest

from backoffice.models import Installment, Transfer
from backoffice.schemas import (
    CreateSaleRequest,
    InstallmentInput,
    ReturnItemInput,
    ReturnRequest,
    parse_create_purchase,
    parse_quotation,
    parse_transfer,
)
from backoffice.services import (
    attendance_service,
    booking_service,
    installment_service,
    purchase_service,
    quotation_service,
    returns_service,
    sales_service,
    supplier_service,
    transfer_service,
)
from backoffice.services.inventory_service import get_quantity_on_hand
from backoffice.services.pricing import LineInput
from backoffice.time_utils import utc_today
from backoffice.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def completed_sale(db_session, org_a, outlet_a, product_a, receive_stock):
    receive_stock(outlet_a, product_a, 5)
    return sales_service.create_sale(org_a.id, CreateSaleRequest(
        outlet_id=outlet_a.id,
        items=(LineInput(product_id=product_a.id, quantity=3, unit_price_cents=1000),),
    ))


@pytest.fixture
def supplier(db_session, org_a):
    return supplier_service.create_supplier(org_a.id, {"name": "Acme Wholesale", "code": "acme"})


def _purchase(org, outlet, supplier, product, quantity=10, cost=600):
    return purchase_service.create_purchase(org.id, parse_create_purchase({
        "outlet_id": outlet.id,
        "items": [{"product_id": product.id, "quantity": quantity, "unit_cost_cents": cost}],
    }, supplier_id=supplier.id))


class TestAttendance:

    @pytest.fixture
    def employee(self, db_session, org_a, outlet_a):
        return attendance_service.create_employee(
            org_a.id, {"first_name": "Alan", "last_name": "Turing", "outlet_id": outlet_a.id}
        )

    def test_one_record_per_day(self, db_session, org_a, employee):
        record = attendance_service.record_attendance(org_a.id, employee.id, {"work_date": "2024-05-01"})
        assert record.status == "PRESENT"

        with pytest.raises(ConflictError) as exc:
            attendance_service.record_attendance(org_a.id, employee.id, {"work_date": "2024-05-01", "status": "LATE"})
        assert exc.value.details["work_date"] == "2024-05-01"

    def test_check_out_must_follow_check_in(self, db_session, org_a, employee):
        with pytest.raises(ValidationError):
            attendance_service.record_attendance(org_a.id, employee.id, {
                "work_date": "2024-05-02",
                "check_in_at": "2024-05-02T17:00:00Z",
                "check_out_at": "2024-05-02T09:00:00Z",
            })

    def test_inactive_employee_cannot_clock_in(self, db_session, org_a, employee):
        attendance_service.update_employee(org_a.id, employee.id, {"is_active": False})
        with pytest.raises(ValidationError):
            attendance_service.record_attendance(org_a.id, employee.id, {})

    def test_record_of_other_employee_is_not_found(self, db_session, org_a, outlet_a, employee):
        other = attendance_service.create_employee(org_a.id, {"first_name": "Kurt", "last_name": "Godel"})
        record = attendance_service.record_attendance(org_a.id, other.id, {"work_date": "2024-05-03"})
        with pytest.raises(NotFoundError):
            attendance_service.update_attendance(org_a.id, employee.id, record.id, {"notes": "x"})


class TestQuotations:

    def _quote(self, org, outlet, product, **extra):
        payload = {
            "outlet_id": outlet.id,
            "items": [{"product_id": product.id, "quantity": 2, "unit_price_cents": 1000}],
            "discount_cents": 500,
        }
        payload.update(extra)
        return quotation_service.create_quotation(org.id, parse_quotation(payload))

    def test_quotation_is_priced(self, db_session, org_a, outlet_a, product_a):
        quotation = self._quote(org_a, outlet_a, product_a)
        assert quotation.status == "DRAFT"
        assert quotation.total_cents == 1500
        assert quotation.document_number.startswith("Q")

    def test_convert_creates_matching_sale_once(self, db_session, org_a, outlet_a, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 5)
        quotation = self._quote(org_a, outlet_a, product_a)

        quotation, sale = quotation_service.convert_quotation(org_a.id, quotation.id)

        assert quotation.status == "CONVERTED"
        assert quotation.converted_sale_id == sale.id
        assert sale.status == "COMPLETED"
        assert sale.total_cents == 1500
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 3

        with pytest.raises(ConflictError):
            quotation_service.convert_quotation(org_a.id, quotation.id)

    def test_expired_quotation_cannot_convert(self, db_session, org_a, outlet_a, product_a):
        yesterday = (utc_today() - timedelta(days=1)).isoformat()
        quotation = self._quote(org_a, outlet_a, product_a, valid_until=yesterday)

        with pytest.raises(ConflictError):
            quotation_service.convert_quotation(org_a.id, quotation.id, status="DRAFT")

    def test_rejected_quotation_cannot_convert(self, db_session, org_a, outlet_a, product_a):
        quotation = self._quote(org_a, outlet_a, product_a)
        quotation_service.change_quotation_status(org_a.id, quotation.id, "rejected")

        with pytest.raises(ConflictError):
            quotation_service.convert_quotation(org_a.id, quotation.id, status="DRAFT")

    def test_status_cannot_be_set_to_converted_directly(self, db_session, org_a, outlet_a, product_a):
        quotation = self._quote(org_a, outlet_a, product_a)
        with pytest.raises(ValidationError):
            quotation_service.change_quotation_status(org_a.id, quotation.id, "CONVERTED")


class TestReturns:

    def test_sale_return_puts_stock_back(self, db_session, org_a, outlet_a, product_a, completed_sale):
        returns_service.create_sale_return(org_a.id, ReturnRequest(
            parent_id=completed_sale.id,
            reason="Wrong size",
            amount_cents=1000,
            items=(ReturnItemInput(product_id=product_a.id, quantity=1),),
        ))
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 3

    def test_amount_cannot_exceed_remaining_total(self, db_session, org_a, completed_sale):
        returns_service.create_sale_return(org_a.id, ReturnRequest(
            parent_id=completed_sale.id, reason="Partial refund", amount_cents=2500,
        ))
        with pytest.raises(ValidationError) as exc:
            returns_service.create_sale_return(org_a.id, ReturnRequest(
                parent_id=completed_sale.id, reason="Second refund", amount_cents=600,
            ))
        assert exc.value.details == {"amount_cents": 600, "remaining_cents": 500}

    def test_quantity_cannot_exceed_sold(self, db_session, org_a, product_a, completed_sale):
        with pytest.raises(ValidationError):
            returns_service.create_sale_return(org_a.id, ReturnRequest(
                parent_id=completed_sale.id,
                reason="Too many",
                amount_cents=100,
                items=(ReturnItemInput(product_id=product_a.id, quantity=4),),
            ))

    def test_product_must_be_on_the_sale(self, db_session, org_a, product_a2, completed_sale):
        with pytest.raises(ValidationError):
            returns_service.create_sale_return(org_a.id, ReturnRequest(
                parent_id=completed_sale.id,
                reason="Not ours",
                amount_cents=100,
                items=(ReturnItemInput(product_id=product_a2.id, quantity=1),),
            ))

    def test_draft_sale_cannot_be_returned(self, db_session, org_a, outlet_a, product_a):
        draft = sales_service.create_sale(org_a.id, CreateSaleRequest(
            outlet_id=outlet_a.id,
            items=(LineInput(product_id=product_a.id, quantity=1, unit_price_cents=1000),),
            status="DRAFT",
        ))
        with pytest.raises(ConflictError):
            returns_service.create_sale_return(org_a.id, ReturnRequest(parent_id=draft.id, reason="n/a", amount_cents=100))

    def test_purchase_return_removes_stock(self, db_session, org_a, outlet_a, product_a, supplier):
        purchase = _purchase(org_a, outlet_a, supplier, product_a, quantity=10)
        returns_service.create_purchase_return(org_a.id, ReturnRequest(
            parent_id=purchase.id,
            reason="Damaged in transit",
            amount_cents=1200,
            items=(ReturnItemInput(product_id=product_a.id, quantity=2),),
        ))
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 8


class TestTransfers:

    def test_transfer_moves_stock(self, db_session, org_a, outlet_a, outlet_a2, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 5)

        transfer = transfer_service.create_transfer(org_a.id, parse_transfer({
            "from_outlet_id": outlet_a.id,
            "to_outlet_id": outlet_a2.id,
            "product_id": product_a.id,
            "quantity": 3,
        }))

        assert transfer.quantity == 3
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 2
        assert get_quantity_on_hand(outlet_a2.id, product_a.id) == 3

    def test_cannot_transfer_more_than_on_hand(self, db_session, org_a, outlet_a, outlet_a2, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 1)
        with pytest.raises(ConflictError):
            transfer_service.create_transfer(org_a.id, parse_transfer({
                "from_outlet_id": outlet_a.id,
                "to_outlet_id": outlet_a2.id,
                "product_id": product_a.id,
                "quantity": 2,
            }))
        db_session.rollback()
        assert db_session.query(Transfer).count() == 0

    def test_untracked_product_cannot_be_transferred(self, db_session, org_a, outlet_a, outlet_a2, product_a):
        product_a.track_stock = False
        db_session.commit()
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(org_a.id, parse_transfer({
                "from_outlet_id": outlet_a.id,
                "to_outlet_id": outlet_a2.id,
                "product_id": product_a.id,
                "quantity": 1,
            }))

    def test_same_outlet_rejected(self, outlet_a, product_a):
        with pytest.raises(ValidationError):
            parse_transfer({
                "from_outlet_id": outlet_a.id,
                "to_outlet_id": outlet_a.id,
                "product_id": product_a.id,
                "quantity": 1,
            })

    def test_foreign_destination_is_not_found(self, db_session, org_a, outlet_a, outlet_b, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 1)
        with pytest.raises(NotFoundError):
            transfer_service.create_transfer(org_a.id, parse_transfer({
                "from_outlet_id": outlet_a.id,
                "to_outlet_id": outlet_b.id,
                "product_id": product_a.id,
                "quantity": 1,
            }))


class TestInstallments:

    @pytest.fixture
    def schedule(self, db_session, org_a, outlet_a, product_a, customer_a):
        today = utc_today()
        sale = sales_service.create_sale(org_a.id, CreateSaleRequest(
            outlet_id=outlet_a.id,
            customer_id=customer_a.id,
            items=(LineInput(product_id=product_a.id, quantity=1, unit_price_cents=1000),),
            status="DRAFT",
            installments=(
                InstallmentInput(due_date=today + timedelta(days=10), amount_cents=500),
                InstallmentInput(due_date=today + timedelta(days=40), amount_cents=500),
            ),
        ))
        return installment_service.list_sale_installments(org_a.id, sale.id)

    def test_refresh_marks_past_due_as_overdue(self, db_session, org_a, schedule):
        changed = installment_service.refresh_overdue(org_a.id, today=utc_today() + timedelta(days=20))
        assert changed == 1
        db_session.expire_all()
        statuses = [db_session.get(Installment, i.id).status for i in schedule]
        assert statuses == ["OVERDUE", "PENDING"]

    def test_pay_installment(self, db_session, org_a, schedule):
        paid = installment_service.pay_installment(org_a.id, schedule[0].id, payment_method="card")
        assert paid.status == "PAID"
        assert paid.payment_method == "CARD"
        assert paid.paid_at is not None

        with pytest.raises(ConflictError):
            installment_service.pay_installment(org_a.id, schedule[0].id)

    def test_cancelled_installment_cannot_be_paid(self, db_session, org_a, schedule):
        installment_service.cancel_installment(org_a.id, schedule[1].id, reason="Renegotiated")
        with pytest.raises(ConflictError):
            installment_service.pay_installment(org_a.id, schedule[1].id)

    def test_paid_installment_cannot_be_cancelled(self, db_session, org_a, schedule):
        installment_service.pay_installment(org_a.id, schedule[0].id)
        with pytest.raises(ConflictError):
            installment_service.cancel_installment(org_a.id, schedule[0].id)

    def test_other_org_installment_is_not_found(self, db_session, org_b, schedule):
        with pytest.raises(NotFoundError):
            installment_service.get_installment(org_b.id, schedule[0].id)


class TestSuppliers:

    def test_code_is_normalized(self, supplier):
        assert supplier.code == "ACME"

    def test_balance_tracks_purchases_and_payments(self, db_session, org_a, outlet_a, product_a, supplier):
        _purchase(org_a, outlet_a, supplier, product_a, quantity=10, cost=600)
        supplier_service.record_payment(org_a.id, supplier.id, {"amount_cents": 4000, "payment_method": "other"})

        balance = supplier_service.get_balance(org_a.id, supplier.id)
        assert balance.purchases_total_cents == 6000
        assert balance.payments_total_cents == 4000
        assert balance.balance_cents == 2000

    def test_purchase_receives_stock(self, db_session, org_a, outlet_a, product_a, supplier):
        purchase = _purchase(org_a, outlet_a, supplier, product_a, quantity=7)
        assert purchase.document_number.startswith("P")
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 7

    def test_inactive_supplier_cannot_receive_purchases(self, db_session, org_a, outlet_a, product_a, supplier):
        supplier_service.update_supplier(org_a.id, supplier.id, {"is_active": False})
        with pytest.raises(ValidationError):
            _purchase(org_a, outlet_a, supplier, product_a)

    def test_supplier_with_history_cannot_be_deleted(self, db_session, org_a, supplier):
        supplier_service.record_payment(org_a.id, supplier.id, {"amount_cents": 100})
        with pytest.raises(ConflictError):
            supplier_service.delete_supplier(org_a.id, supplier.id)

    def test_payment_must_be_positive(self, db_session, org_a, supplier):
        with pytest.raises(ValidationError):
            supplier_service.record_payment(org_a.id, supplier.id, {"amount_cents": 0})


class TestBookings:

    def test_status_matches_case_insensitively(self, db_session, org_a, customer_a):
        booking = booking_service.create_booking(
            org_a.id, {"customer_id": customer_a.id, "booked_for": "2024-06-10T09:30:00Z"}
        )
        assert booking.status == "pending"

        booking = booking_service.change_booking_status(org_a.id, booking.id, "CONFIRMED")
        assert booking.status == "confirmed"

    def test_calendar_groups_by_day(self, db_session, org_a, customer_a):
        for when in ("2024-06-10T09:00:00Z", "2024-06-10T15:00:00Z", "2024-06-21T11:00:00Z", "2024-07-01T10:00:00Z"):
            booking_service.create_booking(org_a.id, {"customer_id": customer_a.id, "booked_for": when})

        days = booking_service.calendar(org_a.id, year=2024, month=6)
        assert {day: len(rows) for day, rows in days.items()} == {"2024-06-10": 2, "2024-06-21": 1}

    def test_upcoming_skips_cancelled_and_far_future(self, db_session, org_a, customer_a):
        now = datetime(2024, 6, 1, 12, 0, 0)
        soon = booking_service.create_booking(org_a.id, {"customer_id": customer_a.id, "booked_for": "2024-06-03T10:00:00Z"})
        cancelled = booking_service.create_booking(org_a.id, {"customer_id": customer_a.id, "booked_for": "2024-06-04T10:00:00Z"})
        booking_service.change_booking_status(org_a.id, cancelled.id, "cancelled")
        booking_service.create_booking(org_a.id, {"customer_id": customer_a.id, "booked_for": "2024-06-30T10:00:00Z"})

        upcoming = booking_service.list_upcoming(org_a.id, days=7, now=now)
        assert [b.id for b in upcoming] == [soon.id]

    def test_foreign_customer_is_not_found(self, db_session, org_a, customer_b):
        with pytest.raises(NotFoundError):
            booking_service.create_booking(org_a.id, {"customer_id": customer_b.id, "booked_for": "2024-06-10T09:30:00Z"})

    def test_invalid_month(self, db_session, org_a):
        with pytest.raises(ValidationError):
            booking_service.calendar(org_a.id, year=2024, month=13)
