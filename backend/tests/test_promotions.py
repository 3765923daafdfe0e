# Overview: Pytest coverage for the promotion engine and promotion CRUD.

from datetime import datetime, timedelta

import pytest

from backoffice.models import CustomerGroup, Promotion, PromotionUsage
from backoffice.schemas import CreateSaleRequest
from backoffice.services import promotion_service, sales_service
from backoffice.services.pricing import LineInput
from backoffice.time_utils import utcnow
from backoffice.validation import ConflictError, ValidationError


START = datetime(2024, 1, 1, 0, 0, 0)
END = datetime(2024, 1, 31, 23, 59, 59)


def _promotion(org, **overrides):
    fields = dict(
        org_id=org.id,
        name="January",
        is_percentage=True,
        discount_value=1000,
        start_at=START,
        end_at=END,
    )
    fields.update(overrides)
    return Promotion(**fields)


@pytest.fixture
def live_promotion(db_session, org_a):
    now = utcnow()
    promotion = _promotion(
        org_a,
        code="SAVE10",
        start_at=now - timedelta(days=1),
        end_at=now + timedelta(days=1),
    )
    db_session.add(promotion)
    db_session.commit()
    return promotion


class TestPromotionWindow:
    """Activity is derived from the window, both ends inclusive."""

    @pytest.mark.parametrize("now,expected", [
        (START, True),
        (END, True),
        (START - timedelta(seconds=1), False),
        (END + timedelta(seconds=1), False),
        (datetime(2024, 1, 15), True),
    ])
    def test_is_active_at(self, org_a, now, expected):
        assert _promotion(org_a).is_active_at(now) is expected


class TestComputeDiscount:

    def test_percentage_clamped_to_max_discount(self, org_a):
        promotion = _promotion(org_a, discount_value=2000, max_discount_cents=1500)
        assert promotion_service.compute_discount(promotion, 100000) == 1500

    def test_percentage_without_cap(self, org_a):
        promotion = _promotion(org_a, discount_value=2000)
        assert promotion_service.compute_discount(promotion, 100000) == 20000

    def test_fixed_discount_never_exceeds_total(self, org_a):
        promotion = _promotion(org_a, is_percentage=False, discount_value=5000)
        assert promotion_service.compute_discount(promotion, 3000) == 3000


class TestValidatePromotion:

    def test_valid_code_lookup_is_case_insensitive(self, db_session, org_a, live_promotion):
        result = promotion_service.validate_promotion(org_a.id, total_cents=10000, promotion_code="save10")
        assert result.valid
        assert result.discount_cents == 1000
        assert result.status_code == 200
        assert result.to_dict()["promotion"]["id"] == live_promotion.id

    def test_unknown_promotion_is_not_found(self, db_session, org_a):
        result = promotion_service.validate_promotion(org_a.id, total_cents=10000, promotion_id=424242)
        assert not result.valid
        assert result.reason == promotion_service.NOT_FOUND
        assert result.status_code == 404

    def test_promotion_of_other_org_is_out_of_scope(self, db_session, org_b, live_promotion):
        result = promotion_service.validate_promotion(org_b.id, total_cents=10000, promotion_id=live_promotion.id)
        assert result.reason == promotion_service.INVALID_SCOPE
        assert result.status_code == 400

    def test_code_of_other_org_does_not_resolve(self, db_session, org_b, live_promotion):
        result = promotion_service.validate_promotion(org_b.id, total_cents=10000, promotion_code="SAVE10")
        assert result.reason == promotion_service.NOT_FOUND

    def test_inactive_promotion_is_rejected(self, db_session, org_a):
        promotion = _promotion(org_a)
        db_session.add(promotion)
        db_session.commit()

        result = promotion_service.validate_promotion(org_a.id, total_cents=10000, promotion_id=promotion.id)
        assert result.reason == promotion_service.NOT_ACTIVE

    def test_minimum_purchase(self, db_session, org_a, live_promotion):
        live_promotion.min_purchase_cents = 5000
        db_session.commit()

        short = promotion_service.validate_promotion(org_a.id, total_cents=4999, promotion_id=live_promotion.id)
        enough = promotion_service.validate_promotion(org_a.id, total_cents=5000, promotion_id=live_promotion.id)
        assert short.reason == promotion_service.MIN_PURCHASE_NOT_MET
        assert enough.valid

    def test_customer_group_restriction(self, db_session, org_a, customer_a, live_promotion):
        group = CustomerGroup(org_id=org_a.id, name="VIP")
        db_session.add(group)
        db_session.commit()
        live_promotion.customer_group_ids = [group.id]
        db_session.commit()

        outsider = promotion_service.validate_promotion(
            org_a.id, total_cents=10000, promotion_id=live_promotion.id, customer_id=customer_a.id
        )
        assert outsider.reason == promotion_service.CUSTOMER_NOT_ELIGIBLE

        customer_a.group_id = group.id
        db_session.commit()
        member = promotion_service.validate_promotion(
            org_a.id, total_cents=10000, promotion_id=live_promotion.id, customer_id=customer_a.id
        )
        assert member.valid

    def test_product_restriction_needs_an_eligible_item(self, db_session, org_a, product_a, product_a2, live_promotion):
        live_promotion.product_ids = [product_a.id]
        db_session.commit()

        other = promotion_service.validate_promotion(
            org_a.id,
            total_cents=500,
            promotion_id=live_promotion.id,
            items=[LineInput(product_id=product_a2.id, quantity=1, unit_price_cents=500)],
        )
        assert other.reason == promotion_service.ITEMS_NOT_ELIGIBLE

        eligible = promotion_service.validate_promotion(
            org_a.id,
            total_cents=1000,
            promotion_id=live_promotion.id,
            items=[LineInput(product_id=product_a.id, quantity=1, unit_price_cents=1000)],
        )
        assert eligible.valid

    def test_limit_per_customer(self, db_session, org_a, outlet_a, product_a, customer_a, live_promotion, receive_stock):
        live_promotion.limit_per_customer = 1
        db_session.commit()

        anonymous = promotion_service.validate_promotion(org_a.id, total_cents=10000, promotion_id=live_promotion.id)
        assert anonymous.reason == promotion_service.CUSTOMER_REQUIRED

        receive_stock(outlet_a, product_a, 5)
        sale = sales_service.create_sale(org_a.id, CreateSaleRequest(
            outlet_id=outlet_a.id,
            customer_id=customer_a.id,
            promotion_id=live_promotion.id,
            items=(LineInput(product_id=product_a.id, quantity=1, unit_price_cents=1000),),
        ))
        assert sale.promotion_discount_cents == 100
        assert db_session.query(PromotionUsage).filter_by(sale_id=sale.id).count() == 1

        used_up = promotion_service.validate_promotion(
            org_a.id, total_cents=10000, promotion_id=live_promotion.id, customer_id=customer_a.id
        )
        assert used_up.reason == promotion_service.LIMIT_REACHED


class TestPromotionCrud:

    def test_create_normalizes_code(self, db_session, org_a):
        promotion = promotion_service.create_promotion(org_a.id, {
            "name": "Spring",
            "code": " spring24 ",
            "discount_value": 1500,
            "start_at": "2024-03-01T00:00:00Z",
            "end_at": "2024-03-31T23:59:59Z",
        })
        assert promotion.code == "SPRING24"
        assert promotion.is_percentage is True

    def test_duplicate_code_is_conflict(self, db_session, org_a, live_promotion):
        with pytest.raises(ConflictError):
            promotion_service.create_promotion(org_a.id, {
                "name": "Copy",
                "code": "save10",
                "discount_value": 500,
                "start_at": "2024-03-01T00:00:00Z",
                "end_at": "2024-03-31T23:59:59Z",
            })

    def test_window_must_be_ordered(self, db_session, org_a):
        with pytest.raises(ValidationError):
            promotion_service.create_promotion(org_a.id, {
                "name": "Backwards",
                "discount_value": 500,
                "start_at": "2024-03-31T00:00:00Z",
                "end_at": "2024-03-01T00:00:00Z",
            })

    def test_percentage_above_100_is_rejected(self, db_session, org_a):
        with pytest.raises(ValidationError):
            promotion_service.create_promotion(org_a.id, {
                "name": "Too much",
                "discount_value": 10001,
                "start_at": "2024-03-01T00:00:00Z",
                "end_at": "2024-03-31T00:00:00Z",
            })

    def test_active_listing_excludes_expired(self, db_session, org_a, live_promotion):
        expired = _promotion(org_a, name="Old")
        db_session.add(expired)
        db_session.commit()

        active = promotion_service.list_active_promotions(org_a.id)
        assert [p.id for p in active] == [live_promotion.id]
