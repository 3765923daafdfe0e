# Overview: Pytest coverage for the HTTP surface: auth, tenant scoping and error mapping.

"""
API Tests

Drive the Flask app through the test client. Covers the status code
contract:

    400 bad input, 401 no/invalid session, 404 missing or other tenant,
    409 state conflict, 500 unexpected failure.
"""

from datetime import timedelta

import pytest

from backoffice.models import PromotionUsage
from backoffice.services import delivery_service, promotion_service
from backoffice.time_utils import utcnow


class TestHealthAndAuth:

    def test_health_needs_no_token(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"

    def test_login_me_logout(self, client, db_session, org_a, user_a):
        login = client.post("/api/auth/login", json={"username": "user_a", "password": "Password123!"})
        assert login.status_code == 200
        token = login.get_json()["token"]
        assert login.get_json()["org_id"] == org_a.id

        headers = {"Authorization": f"Bearer {token}"}
        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.get_json()["user"]["username"] == "user_a"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_wrong_password(self, client, db_session, user_a):
        response = client.post("/api/auth/login", json={"username": "user_a", "password": "nope"})
        assert response.status_code == 401

    def test_login_requires_credentials(self, client, db_session):
        assert client.post("/api/auth/login", json={}).status_code == 400

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer not-a-token"}, {"Authorization": "Basic abc"}])
    def test_protected_route_without_valid_token(self, client, db_session, org_a, headers):
        response = client.get(f"/api/sales?org_id={org_a.id}", headers=headers)
        assert response.status_code == 401


class TestTenantScoping:

    def test_org_id_is_required(self, client, db_session, headers_a):
        response = client.get("/api/sales", headers=headers_a)
        assert response.status_code == 400
        assert response.get_json()["error"] == "org_id is required"

    def test_org_id_must_be_an_integer(self, client, db_session, headers_a):
        response = client.get("/api/sales?org_id=abc", headers=headers_a)
        assert response.status_code == 400

    def test_other_org_is_404(self, client, db_session, org_b, headers_a):
        response = client.get(f"/api/sales?org_id={org_b.id}", headers=headers_a)
        assert response.status_code == 404

    def test_org_id_in_body_is_checked(self, client, db_session, org_b, outlet_a, product_a, headers_a):
        response = client.post("/api/sales", headers=headers_a, json={
            "org_id": org_b.id,
            "outlet_id": outlet_a.id,
            "items": [{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 1000}],
        })
        assert response.status_code == 404


class TestSalesApi:

    def test_create_sale(self, client, db_session, org_a, outlet_a, product_a, receive_stock, headers_a):
        receive_stock(outlet_a, product_a, 3)

        response = client.post("/api/sales", headers=headers_a, json={
            "org_id": org_a.id,
            "outlet_id": outlet_a.id,
            "items": [{"product_id": product_a.id, "quantity": 2, "unit_price_cents": 1000}],
            "tax_rate_bps": 1000,
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body["status"] == "COMPLETED"
        assert body["total_cents"] == 2200
        assert len(body["items"]) == 1

        listing = client.get(f"/api/sales?org_id={org_a.id}", headers=headers_a).get_json()
        assert listing["count"] == 1
        assert listing["total"] == 1

    def test_insufficient_stock_is_409(self, client, db_session, org_a, outlet_a, product_a, headers_a):
        response = client.post("/api/sales", headers=headers_a, json={
            "org_id": org_a.id,
            "outlet_id": outlet_a.id,
            "items": [{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 1000}],
        })
        assert response.status_code == 409
        assert response.get_json()["details"]["items"][0]["product_id"] == product_a.id

    def test_empty_items_is_400(self, client, db_session, org_a, outlet_a, headers_a):
        response = client.post("/api/sales", headers=headers_a, json={
            "org_id": org_a.id,
            "outlet_id": outlet_a.id,
            "items": [],
        })
        assert response.status_code == 400

    def test_unknown_sale_is_404(self, client, db_session, org_a, headers_a):
        response = client.get(f"/api/sales/999999?org_id={org_a.id}", headers=headers_a)
        assert response.status_code == 404

    def test_unknown_status_filter_is_400(self, client, db_session, org_a, headers_a):
        response = client.get(f"/api/sales?org_id={org_a.id}&status=LOST", headers=headers_a)
        assert response.status_code == 400


class TestPromotionValidateApi:

    @pytest.fixture
    def promotion(self, db_session, org_a):
        now = utcnow()
        return promotion_service.create_promotion(org_a.id, {
            "name": "Spring",
            "code": "SPRING",
            "discount_value": 1000,
            "is_percentage": True,
            "min_purchase_cents": 2000,
            "start_at": (now - timedelta(days=1)).isoformat(),
            "end_at": (now + timedelta(days=1)).isoformat(),
        })

    def _validate(self, client, org, headers, **body):
        return client.post("/api/promotions/validate", headers=headers, json={"org_id": org.id, **body})

    def test_valid_code(self, client, org_a, headers_a, promotion):
        response = self._validate(client, org_a, headers_a, promotion_code="spring", total_cents=5000)
        assert response.status_code == 200
        body = response.get_json()
        assert body["valid"] is True
        assert body["discount_amount_cents"] == 500

    def test_below_minimum_is_400(self, client, org_a, headers_a, promotion):
        response = self._validate(client, org_a, headers_a, promotion_id=promotion.id, total_cents=1000)
        assert response.status_code == 400
        assert response.get_json()["reason"] == promotion_service.MIN_PURCHASE_NOT_MET

    def test_unknown_code_is_404(self, client, db_session, org_a, headers_a):
        response = self._validate(client, org_a, headers_a, promotion_code="NOPE", total_cents=1000)
        assert response.status_code == 404
        assert response.get_json()["valid"] is False

    def test_validation_records_no_usage(self, client, db_session, org_a, headers_a, promotion):
        self._validate(client, org_a, headers_a, promotion_id=promotion.id, total_cents=5000)
        db_session.expire_all()
        assert db_session.query(PromotionUsage).filter_by(promotion_id=promotion.id).count() == 0


class TestDeliveryApi:

    def test_calculate_rates(self, client, db_session, org_a, headers_a):
        partner = delivery_service.create_partner(org_a.id, {"name": "Fast Freight"})
        delivery_service.create_rate(org_a.id, partner.id, {
            "name": "Road", "method": "ROAD", "base_rate_cents": 500, "per_kg_rate_cents": 200,
        })

        response = client.post("/api/delivery-partners/calculate", headers=headers_a, json={
            "org_id": org_a.id, "to_location": "Colombo", "weight": 1.5,
        })

        assert response.status_code == 200
        body = response.get_json()
        assert body["count"] == 1
        assert body["rates"][0]["calculated_rate_cents"] == 800

    def test_calculate_requires_weight(self, client, db_session, org_a, headers_a):
        response = client.post("/api/delivery-partners/calculate", headers=headers_a, json={
            "org_id": org_a.id, "to_location": "Colombo",
        })
        assert response.status_code == 400

    def test_deleting_partner_with_active_shipment_is_409(self, client, db_session, org_a, headers_a):
        partner = delivery_service.create_partner(org_a.id, {"name": "Fast Freight"})
        shipment = client.post("/api/shipments", headers=headers_a, json={
            "org_id": org_a.id,
            "delivery_partner_id": partner.id,
            "recipient_name": "Grace Hopper",
            "recipient_address": "1 Harbour Road",
        })
        assert shipment.status_code == 201

        response = client.delete(f"/api/delivery-partners/{partner.id}?org_id={org_a.id}", headers=headers_a)
        assert response.status_code == 409
        assert response.get_json()["details"] == {"active_shipments": 1}


class TestUnexpectedErrors:

    def test_unexpected_failure_is_500_without_details(self, app, client, db_session, org_a, headers_a, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("database on fire")

        monkeypatch.setattr(promotion_service, "list_promotions", boom)
        response = client.get(f"/api/promotions?org_id={org_a.id}", headers=headers_a)

        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error"}
