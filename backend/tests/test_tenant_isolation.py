# Overview: Pytest coverage for cross-tenant isolation at service and API level.

"""
Tenant Isolation Tests

An entity that belongs to another organization must be indistinguishable
from one that does not exist: every lookup answers NotFound (404), never a
permission error that would confirm the row is there.
"""

import pytest
from flask import g

from backoffice.models import Customer, Outlet, Product
from backoffice.services import entity_validators as ev
from backoffice.services.tenant_service import TenantAccessError, get_current_org_id, request_org_id
from backoffice.validation import NotFoundError, ValidationError


class TestEntityLookups:

    def test_own_entity_is_found(self, db_session, org_a, product_a):
        lookup = ev.check_product(product_a.id, org_a.id)
        assert lookup.ok
        assert lookup.unwrap() is product_a

    @pytest.mark.parametrize("check,fixture_name", [
        (ev.check_product, "product_b"),
        (ev.check_outlet, "outlet_b"),
        (ev.check_customer, "customer_b"),
    ])
    def test_foreign_entity_reads_as_missing(self, request, db_session, org_a, check, fixture_name):
        foreign = request.getfixturevalue(fixture_name)

        lookup = check(foreign.id, org_a.id)
        assert not lookup.ok
        with pytest.raises(NotFoundError) as exc:
            lookup.unwrap()
        assert exc.value.status_code == 404

    def test_foreign_and_missing_produce_same_message_shape(self, db_session, org_a, product_b):
        foreign = ev.find_in_org(Product, product_b.id, org_a.id, label="Product")
        missing = ev.find_in_org(Product, 999999, org_a.id, label="Product")
        assert foreign.error == f"Product {product_b.id} not found"
        assert missing.error == "Product 999999 not found"

    def test_missing_id_is_reported(self, db_session, org_a):
        lookup = ev.find_in_org(Outlet, None, org_a.id, label="Outlet")
        assert lookup.error == "Outlet is required"

    def test_bulk_product_check_rejects_any_foreign_id(self, db_session, org_a, product_a, product_b):
        lookup = ev.check_products([product_a.id, product_b.id], org_a.id)
        assert not lookup.ok
        with pytest.raises(NotFoundError):
            lookup.unwrap()

    def test_foreign_customer_never_leaks_through_org_filter(self, db_session, org_a, customer_b):
        visible = db_session.query(Customer).filter_by(org_id=org_a.id).all()
        assert customer_b not in visible


class TestRequestOrgId:

    def test_query_string_org_matches_session(self, app, org_a):
        with app.test_request_context(f"/api/sales?org_id={org_a.id}"):
            g.org_id = org_a.id
            assert request_org_id() == org_a.id

    def test_body_org_is_used_without_query_string(self, app, org_a):
        with app.test_request_context("/api/sales", method="POST", json={"org_id": str(org_a.id)}):
            g.org_id = org_a.id
            assert request_org_id() == org_a.id

    def test_missing_org_is_validation_error(self, app, org_a):
        with app.test_request_context("/api/sales"):
            g.org_id = org_a.id
            with pytest.raises(ValidationError):
                request_org_id({})

    def test_other_org_is_not_found(self, app, org_a, org_b):
        with app.test_request_context(f"/api/sales?org_id={org_b.id}"):
            g.org_id = org_a.id
            with pytest.raises(NotFoundError):
                request_org_id()

    def test_no_session_tenant(self, app):
        with app.test_request_context("/api/sales"):
            g.pop("org_id", None)
            with pytest.raises(TenantAccessError):
                get_current_org_id()


class TestApiIsolation:

    def test_filtering_by_other_org_customer_returns_nothing(
        self, client, db_session, org_a, org_b, customer_b, headers_a
    ):
        response = client.get(
            f"/api/installments?org_id={org_a.id}&customer_id={customer_b.id}",
            headers=headers_a,
        )
        assert response.status_code == 200
        assert response.get_json()["installments"] == []

    def test_naming_other_org_is_404(self, client, db_session, org_a, org_b, headers_a):
        response = client.get(f"/api/promotions?org_id={org_b.id}", headers=headers_a)
        assert response.status_code == 404

    def test_other_org_entity_by_id_is_404(self, client, db_session, org_a, org_b, headers_a, headers_b):
        created = client.post(
            "/api/customer-groups",
            json={"org_id": org_b.id, "name": "Beta VIP"},
            headers=headers_b,
        )
        assert created.status_code == 201
        group_id = created.get_json()["id"]

        response = client.get(f"/api/customer-groups/{group_id}?org_id={org_a.id}", headers=headers_a)
        assert response.status_code == 404

    def test_cannot_delete_other_org_entity(self, client, db_session, org_a, org_b, headers_a, headers_b):
        created = client.post(
            "/api/delivery-partners",
            json={"org_id": org_b.id, "name": "Beta Post"},
            headers=headers_b,
        )
        partner_id = created.get_json()["id"]

        response = client.delete(f"/api/delivery-partners/{partner_id}?org_id={org_a.id}", headers=headers_a)
        assert response.status_code == 404

        still_there = client.get(f"/api/delivery-partners/{partner_id}?org_id={org_b.id}", headers=headers_b)
        assert still_there.status_code == 200
