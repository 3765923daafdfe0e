# Overview: Pytest coverage for warranties, claims, extensions and the expiry sweep.

from datetime import date, timedelta

import pytest

from backoffice.models.warranty import CLAIM_STATUSES, CLAIM_TYPES
from backoffice.schemas import (
    ClaimStatusChange,
    CreateSaleRequest,
    WarrantyClaimRequest,
    WarrantyExtensionRequest,
    parse_warranty_extension,
)
from backoffice.services import sales_service, warranty_service
from backoffice.services.pricing import LineInput
from backoffice.time_utils import add_months, utc_today
from backoffice.validation import ConflictError, NotFoundError, ValidationError


def _warranty(org, product, **extra):
    today = utc_today()
    payload = {
        "product_id": product.id,
        "start_date": (today - timedelta(days=30)).isoformat(),
        "end_date": (today + timedelta(days=335)).isoformat(),
    }
    payload.update(extra)
    return warranty_service.create_warranty(org.id, payload)


def _claim(org, warranty, **extra):
    fields = {"claim_type": "REPAIR", "description": "Screen flickers"}
    fields.update(extra)
    return warranty_service.file_claim(org.id, warranty.id, WarrantyClaimRequest(**fields))


def _move_claim(org, claim, status, **extra):
    return warranty_service.change_claim_status(org.id, claim.id, ClaimStatusChange(status=status, **extra))


@pytest.fixture
def warranty(db_session, org_a, product_a, customer_a):
    return _warranty(org_a, product_a, customer_id=customer_a.id, extendable=True)


class TestWarranties:

    def test_create_numbers_and_activates(self, db_session, warranty):
        assert warranty.status == "ACTIVE"
        assert warranty.warranty_number == f"WR-{warranty.id:06d}"
        assert warranty.extendable is True

    def test_given_number_must_be_unique(self, db_session, org_a, product_a):
        _warranty(org_a, product_a, warranty_number="W-1")
        with pytest.raises(ConflictError):
            _warranty(org_a, product_a, warranty_number="W-1")

    def test_end_date_before_start_is_rejected(self, db_session, org_a, product_a):
        with pytest.raises(ValidationError):
            _warranty(org_a, product_a, start_date="2024-05-01", end_date="2024-04-30")

    def test_past_end_date_starts_expired(self, db_session, org_a, product_a):
        expired = _warranty(org_a, product_a, start_date="2020-01-01", end_date="2021-01-01")
        assert expired.status == "EXPIRED"

    def test_sale_link_checks_product_and_fills_customer(self, db_session, org_a, outlet_a, product_a, product_a2,
                                                         customer_a, receive_stock):
        receive_stock(outlet_a, product_a, 1)
        sale = sales_service.create_sale(org_a.id, CreateSaleRequest(
            outlet_id=outlet_a.id,
            customer_id=customer_a.id,
            items=(LineInput(product_id=product_a.id, quantity=1, unit_price_cents=1000),),
        ))

        linked = _warranty(org_a, product_a, sale_id=sale.id)
        assert linked.customer_id == customer_a.id

        with pytest.raises(ValidationError) as exc:
            _warranty(org_a, product_a2, sale_id=sale.id)
        assert exc.value.details["product_id"] == product_a2.id

    def test_other_tenant_references_are_not_found(self, db_session, org_a, org_b, product_a, product_b, customer_b,
                                                   warranty):
        with pytest.raises(NotFoundError):
            _warranty(org_a, product_b)
        with pytest.raises(NotFoundError):
            _warranty(org_a, product_a, customer_id=customer_b.id)
        with pytest.raises(NotFoundError):
            warranty_service.get_warranty(org_b.id, warranty.id)

    def test_void_freezes_the_warranty(self, db_session, org_a, warranty):
        voided = warranty_service.void_warranty(org_a.id, warranty.id, reason="Tampered seal")

        assert voided.status == "VOIDED"
        assert voided.notes == "Void reason: Tampered seal"
        with pytest.raises(ConflictError):
            warranty_service.update_warranty(org_a.id, warranty.id, {"notes": "edit"})
        with pytest.raises(ConflictError):
            warranty_service.void_warranty(org_a.id, warranty.id)
        with pytest.raises(ConflictError):
            _claim(org_a, warranty)

    def test_update_moving_end_date_reactivates(self, db_session, org_a, product_a):
        expired = _warranty(org_a, product_a, start_date="2020-01-01", end_date="2021-01-01")
        future = (utc_today() + timedelta(days=10)).isoformat()

        updated = warranty_service.update_warranty(org_a.id, expired.id, {"end_date": future})

        assert updated.status == "ACTIVE"

    def test_delete_refused_once_claimed_against(self, db_session, org_a, product_a, warranty):
        _claim(org_a, warranty)
        with pytest.raises(ConflictError):
            warranty_service.delete_warranty(org_a.id, warranty.id)

        spare = _warranty(org_a, product_a)
        warranty_service.delete_warranty(org_a.id, spare.id)
        with pytest.raises(NotFoundError):
            warranty_service.get_warranty(org_a.id, spare.id)


class TestClaims:

    def test_claim_moves_through_approval_to_processed(self, db_session, org_a, warranty):
        claim = _claim(org_a, warranty)
        assert claim.status == "PENDING"
        assert claim.claim_date == utc_today()

        with pytest.raises(ConflictError) as exc:
            _move_claim(org_a, claim, "PROCESSED")
        assert exc.value.details == {"from": "PENDING", "to": "PROCESSED"}

        _move_claim(org_a, claim, "APPROVED")
        claim = _move_claim(org_a, claim, "PROCESSED", resolution_notes="Panel replaced", resolution_cost_cents=1500)

        assert claim.resolved_at is not None
        assert claim.resolution_cost_cents == 1500
        assert warranty_service.get_warranty(org_a.id, warranty.id).status == "CLAIMED"
        with pytest.raises(ConflictError):
            _claim(org_a, warranty)

    def test_rejected_claim_is_final(self, db_session, org_a, warranty):
        claim = _move_claim(org_a, _claim(org_a, warranty), "REJECTED", resolution_notes="Physical damage")
        assert claim.resolved_at is not None
        with pytest.raises(ConflictError):
            _move_claim(org_a, claim, "APPROVED")
        assert warranty_service.get_warranty(org_a.id, warranty.id).status == "ACTIVE"

    def test_voided_warranty_claims_can_only_be_closed(self, db_session, org_a, warranty):
        claim = _claim(org_a, warranty)
        warranty_service.void_warranty(org_a.id, warranty.id)

        with pytest.raises(ConflictError):
            _move_claim(org_a, claim, "APPROVED")
        assert _move_claim(org_a, claim, "CANCELLED").status == "CANCELLED"

    def test_expired_warranty_refuses_claims(self, db_session, org_a, product_a):
        expired = _warranty(org_a, product_a, start_date="2020-01-01", end_date="2021-01-01")
        with pytest.raises(ConflictError) as exc:
            _claim(org_a, expired)
        assert exc.value.details["status"] == "EXPIRED"

    def test_claim_date_must_fall_in_term(self, db_session, org_a, warranty):
        with pytest.raises(ValidationError):
            _claim(org_a, warranty, claim_date=warranty.start_date - timedelta(days=1))

    def test_other_tenant_cannot_move_claim(self, db_session, org_a, org_b, warranty):
        claim = _claim(org_a, warranty)
        with pytest.raises(NotFoundError):
            _move_claim(org_b, claim, "APPROVED")

    def test_claim_stats(self, db_session, org_a, org_b, product_a, warranty):
        first = _claim(org_a, warranty)
        _claim(org_a, warranty, claim_type="REFUND")
        _move_claim(org_a, first, "REJECTED", resolution_cost_cents=400)

        stats = warranty_service.claim_stats(org_a.id)

        assert stats["total_claims"] == 2
        assert set(stats["by_status"]) == set(CLAIM_STATUSES)
        assert stats["by_status"]["PENDING"] == 1
        assert stats["by_status"]["REJECTED"] == 1
        assert stats["by_status"]["PROCESSED"] == 0
        assert set(stats["by_type"]) == set(CLAIM_TYPES)
        assert stats["by_type"]["REFUND"] == 1
        assert stats["total_resolution_cost_cents"] == 400
        assert warranty_service.claim_stats(org_b.id)["total_claims"] == 0


class TestExtensionsAndExpiry:

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 11, 15), 3) == date(2024, 2, 15)
        assert add_months(date(2024, 12, 31), 12) == date(2025, 12, 31)

    def test_extend_by_months_records_history(self, db_session, org_a, warranty):
        original_end = warranty.end_date

        extended = warranty_service.extend_warranty(
            org_a.id, warranty.id, WarrantyExtensionRequest(months=6, reason="Paid plan", payment_amount_cents=2500)
        )

        assert extended.end_date == add_months(original_end, 6)
        assert len(extended.extensions) == 1
        record = extended.extensions[0]
        assert record.original_end_date == original_end
        assert record.new_end_date == extended.end_date
        assert record.payment_amount_cents == 2500

    def test_extension_needs_an_extendable_active_warranty(self, db_session, org_a, product_a, warranty):
        fixed = _warranty(org_a, product_a)
        with pytest.raises(ConflictError):
            warranty_service.extend_warranty(org_a.id, fixed.id, WarrantyExtensionRequest(months=1))

        with pytest.raises(ValidationError):
            warranty_service.extend_warranty(
                org_a.id, warranty.id, WarrantyExtensionRequest(new_end_date=warranty.end_date)
            )

    @pytest.mark.parametrize("payload", [{}, {"months": 0}, {"months": 3, "new_end_date": "2030-01-01"}])
    def test_extension_payload_rules(self, payload):
        with pytest.raises(ValidationError):
            parse_warranty_extension(payload)

    def test_sweep_expires_lapsed_warranties(self, db_session, org_a, org_b, product_a, product_b, warranty):
        other = _warranty(org_b, product_b)
        for row in (warranty, other):
            row.end_date = utc_today() - timedelta(days=1)
        db_session.commit()

        assert warranty_service.expire_warranties(org_a.id) == 1
        assert warranty_service.get_warranty(org_a.id, warranty.id).status == "EXPIRED"

        rows, total = warranty_service.list_warranties(org_b.id, status="expired")
        assert [w.id for w in rows] == [other.id]
        assert warranty_service.expire_warranties() == 0


class TestWarrantyApi:

    def test_warranty_claim_round(self, client, db_session, org_a, product_a, headers_a):
        today = utc_today()
        response = client.post("/api/warranties", headers=headers_a, json={
            "org_id": org_a.id,
            "product_id": product_a.id,
            "start_date": today.isoformat(),
            "end_date": (today + timedelta(days=365)).isoformat(),
        })
        assert response.status_code == 201
        warranty_id = response.get_json()["id"]

        response = client.post(f"/api/warranties/{warranty_id}/claims", headers=headers_a, json={
            "org_id": org_a.id, "claim_type": "replacement", "description": "Dead on arrival",
        })
        assert response.status_code == 201
        claim = response.get_json()
        assert claim["claim_type"] == "REPLACEMENT"

        response = client.put(f"/api/warranties/claims/{claim['id']}", headers=headers_a, json={
            "org_id": org_a.id, "status": "APPROVED",
        })
        assert response.status_code == 200

        detail = client.get(f"/api/warranties/{warranty_id}?org_id={org_a.id}", headers=headers_a).get_json()
        assert detail["claims"][0]["status"] == "APPROVED"

        stats = client.get(f"/api/warranties/stats/claims?org_id={org_a.id}", headers=headers_a).get_json()
        assert stats["by_status"]["APPROVED"] == 1

        swept = client.post(f"/api/warranties/check-expired?org_id={org_a.id}", headers=headers_a).get_json()
        assert swept["updated_count"] == 0

    def test_errors_map_to_status_codes(self, client, db_session, org_a, org_b, product_a, headers_b, warranty):
        assert client.get(f"/api/warranties/{warranty.id}?org_id={org_b.id}", headers=headers_b).status_code == 404
        assert client.get(f"/api/warranties?org_id={org_b.id}&status=LOST", headers=headers_b).status_code == 400
        assert client.post(f"/api/warranties/{warranty.id}/extend", headers=headers_b, json={
            "org_id": org_b.id,
        }).status_code == 400
