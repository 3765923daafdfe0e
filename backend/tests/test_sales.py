# Overview: Pytest coverage for sale assembly, status transitions and voids.

"""
Sale Assembly Tests

A sale and everything it implies (items, stock movements, promotion
usage, installments, ledger events) is written in one transaction. These
tests check the all-or-nothing behaviour and the status machine:

    DRAFT -> COMPLETED -> VOIDED, DRAFT -> VOIDED, VOIDED is final.
"""

from datetime import timedelta

import pytest

from backoffice.models import Customer, CustomerGroup, Installment, LedgerEvent, Promotion, PromotionUsage, Sale
from backoffice.schemas import CreateSaleRequest, InstallmentInput, ReturnItemInput, ReturnRequest, parse_update_sale
from backoffice.services import installment_service, returns_service, sales_service
from backoffice.services.inventory_service import get_quantity_on_hand
from backoffice.services.promotion_service import count_customer_usage
from backoffice.services.pricing import LineInput
from backoffice.time_utils import utc_today, utcnow
from backoffice.validation import ConflictError, NotFoundError, ValidationError


def _request(outlet, *lines, **overrides) -> CreateSaleRequest:
    fields = dict(outlet_id=outlet.id, items=tuple(lines))
    fields.update(overrides)
    return CreateSaleRequest(**fields)


def _line(product, quantity=1, price=None, discount=0) -> LineInput:
    return LineInput(
        product_id=product.id,
        quantity=quantity,
        unit_price_cents=product.price_cents if price is None else price,
        discount_cents=discount,
    )


class TestCreateSale:

    def test_completed_sale_prices_and_decrements_stock(
        self, db_session, org_a, outlet_a, product_a, product_a2, receive_stock
    ):
        receive_stock(outlet_a, product_a, 10)
        receive_stock(outlet_a, product_a2, 10)

        sale = sales_service.create_sale(org_a.id, _request(
            outlet_a,
            _line(product_a, quantity=2),
            _line(product_a2, quantity=1, discount=100),
            discount_cents=200,
            tax_rate_bps=1000,
        ))

        assert sale.status == "COMPLETED"
        assert sale.subtotal_cents == 2400
        assert sale.total_cents == 2420
        assert sale.document_number.startswith("S")
        assert sale.completed_at is not None
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 8
        assert get_quantity_on_hand(outlet_a.id, product_a2.id) == 9

        events = db_session.query(LedgerEvent).filter_by(entity_type="sale", entity_id=sale.id).all()
        assert {e.event_type for e in events} == {"sale.created", "sale.completed"}

    def test_outlet_tax_rate_is_the_default(self, db_session, org_a, outlet_a, product_a, receive_stock):
        outlet_a.tax_rate_bps = 825
        db_session.commit()
        receive_stock(outlet_a, product_a, 1)

        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a)))
        assert sale.tax_rate_bps == 825
        assert sale.tax_cents == 83

    def test_draft_sale_does_not_touch_stock(self, db_session, org_a, outlet_a, product_a):
        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a, quantity=3), status="DRAFT"))
        assert sale.status == "DRAFT"
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 0

    def test_insufficient_stock_is_conflict_and_writes_nothing(
        self, db_session, org_a, outlet_a, product_a, receive_stock
    ):
        receive_stock(outlet_a, product_a, 1)

        with pytest.raises(ConflictError) as exc:
            sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a, quantity=2)))
        db_session.rollback()

        assert exc.value.details["items"][0]["on_hand"] == 1
        assert db_session.query(Sale).count() == 0
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 1

    def test_untracked_product_sells_without_stock(self, db_session, org_a, outlet_a, product_a):
        product_a.track_stock = False
        db_session.commit()

        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a, quantity=5)))
        assert sale.status == "COMPLETED"
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 0

    def test_foreign_product_is_not_found(self, db_session, org_a, outlet_a, product_b):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_b), status="DRAFT"))

    def test_foreign_outlet_is_not_found(self, db_session, org_a, outlet_b, product_a):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(org_a.id, _request(outlet_b, _line(product_a), status="DRAFT"))

    def test_installments_must_add_up_to_total(self, db_session, org_a, outlet_a, product_a, customer_a):
        due = utc_today() + timedelta(days=30)
        with pytest.raises(ValidationError):
            sales_service.create_sale(org_a.id, _request(
                outlet_a,
                _line(product_a),
                status="DRAFT",
                customer_id=customer_a.id,
                installments=(InstallmentInput(due_date=due, amount_cents=400),),
            ))
        db_session.rollback()
        assert db_session.query(Sale).count() == 0

    def test_installment_schedule_is_created_in_due_order(self, db_session, org_a, outlet_a, product_a, customer_a):
        today = utc_today()
        sale = sales_service.create_sale(org_a.id, _request(
            outlet_a,
            _line(product_a),
            status="DRAFT",
            customer_id=customer_a.id,
            installments=(
                InstallmentInput(due_date=today + timedelta(days=60), amount_cents=400),
                InstallmentInput(due_date=today + timedelta(days=30), amount_cents=600),
            ),
        ))

        rows = db_session.query(Installment).filter_by(sale_id=sale.id).order_by(Installment.sequence).all()
        assert [r.amount_cents for r in rows] == [600, 400]
        assert all(r.status == "PENDING" and r.customer_id == customer_a.id for r in rows)


class TestSaleStatus:

    def test_draft_can_be_completed_later(self, db_session, org_a, outlet_a, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 2)
        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a), status="DRAFT"))

        sale = sales_service.change_sale_status(org_a.id, sale.id, "COMPLETED")
        assert sale.status == "COMPLETED"
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 1

    def test_void_returns_stock_and_cancels_unpaid_installments(
        self, db_session, org_a, outlet_a, product_a, customer_a, receive_stock
    ):
        receive_stock(outlet_a, product_a, 2)
        sale = sales_service.create_sale(org_a.id, _request(
            outlet_a,
            _line(product_a),
            customer_id=customer_a.id,
            installments=(InstallmentInput(due_date=utc_today() + timedelta(days=7), amount_cents=1000),),
        ))
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 1

        sale = sales_service.void_sale(org_a.id, sale.id, reason="Customer changed mind")

        assert sale.status == "VOIDED"
        assert sale.void_reason == "Customer changed mind"
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 2
        assert [i.status for i in sale.installments] == ["CANCELLED"]

    def test_voided_sale_is_final(self, db_session, org_a, outlet_a, product_a):
        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a), status="DRAFT"))
        sales_service.void_sale(org_a.id, sale.id)

        with pytest.raises(ConflictError):
            sales_service.change_sale_status(org_a.id, sale.id, "COMPLETED")

    def test_completed_sale_cannot_go_back_to_draft(self, db_session, org_a, outlet_a, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 1)
        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a)))

        with pytest.raises(ConflictError):
            sales_service.change_sale_status(org_a.id, sale.id, "DRAFT")

    def test_void_refused_once_returns_exist(self, db_session, org_a, outlet_a, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 2)
        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a, quantity=2)))
        returns_service.create_sale_return(org_a.id, ReturnRequest(
            parent_id=sale.id,
            reason="Damaged",
            amount_cents=1000,
            items=(ReturnItemInput(product_id=product_a.id, quantity=1),),
        ))

        with pytest.raises(ConflictError):
            sales_service.void_sale(org_a.id, sale.id)


class TestUpdateAndDelete:

    def test_draft_can_be_repriced(self, db_session, org_a, outlet_a, product_a):
        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a), status="DRAFT"))

        sale = sales_service.update_sale(org_a.id, sale.id, parse_update_sale({
            "items": [{"product_id": product_a.id, "quantity": 3, "unit_price_cents": 1000}],
            "discount_cents": 500,
        }))
        assert sale.subtotal_cents == 3000
        assert sale.total_cents == 2500
        assert len(sale.items) == 1

    def test_completed_sale_cannot_be_repriced(self, db_session, org_a, outlet_a, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 1)
        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a)))

        with pytest.raises(ConflictError):
            sales_service.update_sale(org_a.id, sale.id, parse_update_sale({"discount_cents": 100}))

    def test_notes_can_change_after_completion(self, db_session, org_a, outlet_a, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 1)
        sale = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a)))

        sale = sales_service.update_sale(org_a.id, sale.id, parse_update_sale({"notes": "Gift wrap"}))
        assert sale.notes == "Gift wrap"

    def test_unknown_update_field_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_update_sale({"total_cents": 1})

    def test_only_drafts_can_be_deleted(self, db_session, org_a, outlet_a, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 1)
        completed = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a)))
        draft = sales_service.create_sale(org_a.id, _request(outlet_a, _line(product_a), status="DRAFT"))

        with pytest.raises(ConflictError):
            sales_service.delete_sale(org_a.id, completed.id)
        db_session.rollback()

        sales_service.delete_sale(org_a.id, draft.id)
        assert db_session.get(Sale, draft.id) is None


@pytest.fixture
def vip_promotion(db_session, org_a, customer_a):
    group = CustomerGroup(org_id=org_a.id, name="VIP")
    db_session.add(group)
    db_session.flush()
    customer_a.group_id = group.id
    now = utcnow()
    promotion = Promotion(
        org_id=org_a.id,
        name="VIP week",
        code="VIPWEEK",
        is_percentage=True,
        discount_value=1000,
        start_at=now - timedelta(days=1),
        end_at=now + timedelta(days=1),
        limit_per_customer=1,
        customer_group_ids=[group.id],
    )
    db_session.add(promotion)
    db_session.commit()
    return promotion


@pytest.fixture
def outsider(db_session, org_a):
    customer = Customer(org_id=org_a.id, first_name="Grace", last_name="Hopper", email="grace@acme.com")
    db_session.add(customer)
    db_session.commit()
    return customer


class TestCustomerChange:

    def _vip_sale(self, org, outlet, product, customer, promotion, **overrides):
        fields = dict(
            customer_id=customer.id,
            promotion_id=promotion.id,
            tax_rate_bps=0,
            installments=(InstallmentInput(due_date=utc_today() + timedelta(days=30), amount_cents=900),),
        )
        fields.update(overrides)
        return sales_service.create_sale(org.id, _request(outlet, _line(product), **fields))

    def test_completed_sale_refuses_customer_outside_promotion_groups(
        self, db_session, org_a, outlet_a, product_a, customer_a, outsider, vip_promotion, receive_stock
    ):
        receive_stock(outlet_a, product_a, 1)
        sale = self._vip_sale(org_a, outlet_a, product_a, customer_a, vip_promotion)
        assert sale.promotion_discount_cents == 100

        with pytest.raises(ConflictError) as exc:
            sales_service.update_sale(org_a.id, sale.id, parse_update_sale({"customer_id": outsider.id}))
        assert exc.value.details["reason"] == "CUSTOMER_NOT_ELIGIBLE"
        db_session.rollback()

        assert db_session.get(Sale, sale.id).customer_id == customer_a.id
        usage = db_session.query(PromotionUsage).filter_by(sale_id=sale.id).one()
        assert usage.customer_id == customer_a.id

    def test_usage_and_unpaid_installments_follow_the_new_customer(
        self, db_session, org_a, outlet_a, product_a, customer_a, outsider, vip_promotion, receive_stock
    ):
        outsider.group_id = customer_a.group_id
        db_session.commit()
        receive_stock(outlet_a, product_a, 1)
        sale = self._vip_sale(org_a, outlet_a, product_a, customer_a, vip_promotion)

        sale = sales_service.update_sale(org_a.id, sale.id, parse_update_sale({"customer_id": outsider.id}))

        assert sale.customer_id == outsider.id
        assert sale.promotion_discount_cents == 100
        assert count_customer_usage(vip_promotion.id, outsider.id) == 1
        assert count_customer_usage(vip_promotion.id, customer_a.id) == 0
        assert [i.customer_id for i in sale.installments] == [outsider.id]

    def test_customer_who_used_up_the_promotion_is_refused(
        self, db_session, org_a, outlet_a, product_a, customer_a, outsider, vip_promotion, receive_stock
    ):
        outsider.group_id = customer_a.group_id
        db_session.commit()
        receive_stock(outlet_a, product_a, 2)
        self._vip_sale(org_a, outlet_a, product_a, outsider, vip_promotion, installments=())
        sale = self._vip_sale(org_a, outlet_a, product_a, customer_a, vip_promotion)

        with pytest.raises(ConflictError) as exc:
            sales_service.update_sale(org_a.id, sale.id, parse_update_sale({"customer_id": outsider.id}))
        assert exc.value.details["reason"] == "LIMIT_REACHED"

    def test_draft_promotion_is_rechecked_for_new_customer(
        self, db_session, org_a, outlet_a, product_a, customer_a, outsider, vip_promotion
    ):
        sale = self._vip_sale(org_a, outlet_a, product_a, customer_a, vip_promotion, status="DRAFT", installments=())

        with pytest.raises(ValidationError) as exc:
            sales_service.update_sale(org_a.id, sale.id, parse_update_sale({"customer_id": outsider.id}))
        assert exc.value.details["reason"] == "CUSTOMER_NOT_ELIGIBLE"
        db_session.rollback()
        assert db_session.get(Sale, sale.id).customer_id == customer_a.id

    def test_customer_change_without_promotion_moves_installments(
        self, db_session, org_a, outlet_a, product_a, customer_a, outsider, receive_stock
    ):
        receive_stock(outlet_a, product_a, 1)
        sale = sales_service.create_sale(org_a.id, _request(
            outlet_a,
            _line(product_a),
            customer_id=customer_a.id,
            tax_rate_bps=0,
            installments=(InstallmentInput(due_date=utc_today() + timedelta(days=7), amount_cents=1000),),
        ))

        sale = sales_service.update_sale(org_a.id, sale.id, parse_update_sale({"customer_id": outsider.id}))
        rows, total = installment_service.list_installments(org_a.id, customer_id=outsider.id)
        assert total == 1
        assert [r.sale_id for r in rows] == [sale.id]
