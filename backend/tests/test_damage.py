# Overview: Pytest coverage for damage reports, their stock impact and loss stats.

import pytest

from backoffice.models import Product
from backoffice.models.damage import DAMAGE_SEVERITIES, DAMAGE_STATUSES
from backoffice.schemas import DamageActionRequest, parse_damage_resolve
from backoffice.services import damage_service
from backoffice.services.inventory_service import get_quantity_on_hand
from backoffice.time_utils import utc_today
from backoffice.validation import ConflictError, NotFoundError, ValidationError


def _report(org, outlet, product, quantity=4, **extra):
    payload = {
        "outlet_id": outlet.id,
        "product_id": product.id,
        "quantity": quantity,
        "damage_type": "PHYSICAL",
        "severity": "MODERATE",
    }
    payload.update(extra)
    return damage_service.report_damage(org.id, payload)


def _inspect(org, damage):
    return damage_service.update_damage(org.id, damage.id, {"status": "INSPECTED"})


@pytest.fixture
def stocked(db_session, outlet_a, product_a, receive_stock):
    receive_stock(outlet_a, product_a, 10)


class TestReporting:

    def test_report_takes_units_out_of_stock(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _report(org_a, outlet_a, product_a, damage_type="water", severity="minor")

        assert damage.status == "REPORTED"
        assert damage.damage_type == "WATER"
        assert damage.severity == "MINOR"
        assert damage.damage_date == utc_today()
        assert damage.outstanding_quantity == 4
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 6

    def test_report_needs_stock_on_hand(self, db_session, org_a, outlet_a, product_a, stocked):
        with pytest.raises(ConflictError) as exc:
            _report(org_a, outlet_a, product_a, quantity=11)
        assert exc.value.details["items"][0]["on_hand"] == 10
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 10

    def test_untracked_product_is_refused(self, db_session, org_a, outlet_a):
        service = Product(org_id=org_a.id, sku="SVC-1", name="Gift wrap", price_cents=100, track_stock=False)
        db_session.add(service)
        db_session.commit()
        with pytest.raises(ValidationError):
            _report(org_a, outlet_a, service, quantity=1)

    @pytest.mark.parametrize("extra", [
        {"quantity": 0},
        {"severity": "CATASTROPHIC"},
        {"damage_type": None},
        {"estimated_cost_cents": -1},
        {"status": "SCRAPPED"},
    ])
    def test_invalid_reports(self, db_session, org_a, outlet_a, product_a, stocked, extra):
        with pytest.raises(ValidationError):
            _report(org_a, outlet_a, product_a, **extra)

    def test_other_tenant_product_is_not_found(self, db_session, org_a, outlet_a, product_b):
        with pytest.raises(NotFoundError):
            _report(org_a, outlet_a, product_b, quantity=1)


class TestLifecycle:

    def test_partial_then_full_repair(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _inspect(org_a, _report(org_a, outlet_a, product_a))
        assert damage.inspected_at is not None

        damage = damage_service.repair_damage(org_a.id, damage.id, DamageActionRequest(quantity=1, cost_cents=500))
        assert damage.status == "PARTIALLY_REPAIRED"
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 7

        damage = damage_service.repair_damage(org_a.id, damage.id, DamageActionRequest(cost_cents=250, notes="Reglued"))
        assert damage.status == "REPAIRED"
        assert damage.repaired_quantity == 4
        assert damage.repair_cost_cents == 750
        assert damage.resolved_at is not None
        assert damage.action_taken == "Reglued"
        assert [a.action for a in damage.actions] == ["REPAIR", "REPAIR"]
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 10

    def test_actions_need_an_inspected_report(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _report(org_a, outlet_a, product_a)
        with pytest.raises(ConflictError):
            damage_service.repair_damage(org_a.id, damage.id, DamageActionRequest())
        with pytest.raises(ConflictError):
            damage_service.scrap_damage(org_a.id, damage.id, DamageActionRequest())

    def test_action_cannot_exceed_outstanding_quantity(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _inspect(org_a, _report(org_a, outlet_a, product_a))
        with pytest.raises(ValidationError) as exc:
            damage_service.repair_damage(org_a.id, damage.id, DamageActionRequest(quantity=5))
        assert exc.value.details["outstanding_quantity"] == 4

    def test_scrap_is_a_permanent_write_off(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _inspect(org_a, _report(org_a, outlet_a, product_a))

        damage = damage_service.scrap_damage(org_a.id, damage.id, DamageActionRequest(recovery_value_cents=300))

        assert damage.status == "SCRAPPED"
        assert damage.scrapped_quantity == 4
        assert damage.recovery_value_cents == 300
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 6

    def test_partial_scrap_then_repair_closes_as_resolved(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _inspect(org_a, _report(org_a, outlet_a, product_a))

        damage = damage_service.scrap_damage(org_a.id, damage.id, DamageActionRequest(quantity=1))
        assert damage.status == "INSPECTED"
        assert damage.outstanding_quantity == 3

        damage = damage_service.repair_damage(org_a.id, damage.id, DamageActionRequest())
        assert damage.status == "RESOLVED"
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 9

    def test_closed_report_refuses_further_changes(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _inspect(org_a, _report(org_a, outlet_a, product_a))
        damage_service.scrap_damage(org_a.id, damage.id, DamageActionRequest())

        with pytest.raises(ConflictError):
            damage_service.repair_damage(org_a.id, damage.id, DamageActionRequest())
        with pytest.raises(ConflictError):
            damage_service.resolve_damage(org_a.id, damage.id, DamageActionRequest(notes="again"))
        with pytest.raises(ConflictError):
            damage_service.update_damage(org_a.id, damage.id, {"severity": "SEVERE"})

    def test_resolve_closes_without_touching_stock(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _report(org_a, outlet_a, product_a)
        with pytest.raises(ValidationError):
            parse_damage_resolve({})

        damage = damage_service.resolve_damage(org_a.id, damage.id, parse_damage_resolve({"notes": "Returned to vendor"}))

        assert damage.status == "RESOLVED"
        assert damage.action_taken == "Returned to vendor"
        assert damage.actions[0].quantity == 4
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 6

    def test_manual_status_edits_follow_transitions(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _report(org_a, outlet_a, product_a)
        with pytest.raises(ValidationError):
            damage_service.update_damage(org_a.id, damage.id, {"status": "REPAIRED"})
        with pytest.raises(ConflictError) as exc:
            damage_service.update_damage(org_a.id, damage.id, {"status": "REPAIRABLE"})
        assert exc.value.details == {"from": "REPORTED", "to": "REPAIRABLE"}

        _inspect(org_a, damage)
        damage = damage_service.update_damage(org_a.id, damage.id, {"status": "repairable"})
        assert damage.status == "REPAIRABLE"

    def test_quantity_can_only_shrink(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _report(org_a, outlet_a, product_a)

        damage = damage_service.update_damage(org_a.id, damage.id, {"quantity": 2})
        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 8

        with pytest.raises(ValidationError):
            damage_service.update_damage(org_a.id, damage.id, {"quantity": 3})
        assert damage_service.get_damage(org_a.id, damage.id).quantity == 2

    def test_quantity_is_fixed_once_units_were_acted_on(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _inspect(org_a, _report(org_a, outlet_a, product_a))
        damage_service.scrap_damage(org_a.id, damage.id, DamageActionRequest(quantity=1))
        with pytest.raises(ConflictError):
            damage_service.update_damage(org_a.id, damage.id, {"quantity": 2})

    def test_delete_returns_units_to_stock(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _report(org_a, outlet_a, product_a)

        damage_service.delete_damage(org_a.id, damage.id)

        assert get_quantity_on_hand(outlet_a.id, product_a.id) == 10
        with pytest.raises(NotFoundError):
            damage_service.get_damage(org_a.id, damage.id)

    def test_delete_refused_after_an_action(self, db_session, org_a, outlet_a, product_a, stocked):
        damage = _inspect(org_a, _report(org_a, outlet_a, product_a))
        damage_service.scrap_damage(org_a.id, damage.id, DamageActionRequest(quantity=1))
        with pytest.raises(ConflictError):
            damage_service.delete_damage(org_a.id, damage.id)

    def test_other_tenant_cannot_act(self, db_session, org_a, org_b, outlet_a, product_a, stocked):
        damage = _report(org_a, outlet_a, product_a)
        with pytest.raises(NotFoundError):
            damage_service.get_damage(org_b.id, damage.id)
        with pytest.raises(NotFoundError):
            damage_service.resolve_damage(org_b.id, damage.id, DamageActionRequest(notes="x"))
        with pytest.raises(NotFoundError):
            damage_service.delete_damage(org_b.id, damage.id)


class TestListingAndStats:

    @pytest.fixture
    def two_reports(self, db_session, org_a, outlet_a, product_a, product_a2, receive_stock, stocked):
        receive_stock(outlet_a, product_a2, 5)
        water = _inspect(org_a, _report(
            org_a, outlet_a, product_a, damage_type="WATER", severity="MINOR", estimated_cost_cents=2000,
        ))
        fire = _inspect(org_a, _report(
            org_a, outlet_a, product_a2, quantity=2, damage_type="FIRE", severity="SEVERE",
            estimated_cost_cents=1000, batch_number="LOT-42",
        ))
        damage_service.repair_damage(org_a.id, water.id, DamageActionRequest(cost_cents=300))
        damage_service.scrap_damage(org_a.id, fire.id, DamageActionRequest(recovery_value_cents=200))
        return water, fire

    def test_list_filters_and_summary(self, db_session, org_a, two_reports):
        water, fire = two_reports

        rows, total, summary = damage_service.list_damages(org_a.id)
        assert total == 2
        assert summary == {"total_quantity": 6, "estimated_cost_cents": 3000}

        rows, total, _ = damage_service.list_damages(org_a.id, status="scrapped")
        assert [d.id for d in rows] == [fire.id]
        rows, total, _ = damage_service.list_damages(org_a.id, search="lot-4")
        assert [d.id for d in rows] == [fire.id]
        with pytest.raises(ValidationError):
            damage_service.list_damages(org_a.id, severity="HUGE")

    def test_stats(self, db_session, org_a, org_b, product_a, product_a2, two_reports):
        stats = damage_service.damage_stats(org_a.id)

        assert set(stats["by_status"]) == set(DAMAGE_STATUSES)
        assert stats["by_status"]["REPAIRED"] == 1
        assert stats["by_status"]["SCRAPPED"] == 1
        assert stats["by_status"]["REPORTED"] == 0
        assert stats["by_type"]["WATER"] == 1
        assert stats["by_type"]["PHYSICAL"] == 0
        assert set(stats["by_severity"]) == set(DAMAGE_SEVERITIES)
        assert [p["product_id"] for p in stats["top_products"]] == [product_a.id, product_a2.id]
        assert stats["top_products"][0]["quantity"] == 4
        assert stats["totals"] == {
            "reports": 2,
            "quantity": 6,
            "estimated_cost_cents": 3000,
            "repair_cost_cents": 300,
            "recovery_value_cents": 200,
            "net_loss_cents": 3100,
        }
        assert damage_service.damage_stats(org_b.id)["totals"]["reports"] == 0


class TestDamageApi:

    def test_report_repair_and_stats(self, client, db_session, org_a, outlet_a, product_a, stocked, headers_a):
        response = client.post("/api/damages", headers=headers_a, json={
            "org_id": org_a.id,
            "outlet_id": outlet_a.id,
            "product_id": product_a.id,
            "quantity": 3,
            "damage_type": "PHYSICAL",
            "severity": "MINOR",
        })
        assert response.status_code == 201
        damage_id = response.get_json()["id"]

        response = client.post(f"/api/damages/{damage_id}/repair", headers=headers_a, json={"org_id": org_a.id})
        assert response.status_code == 409

        client.patch(f"/api/damages/{damage_id}", headers=headers_a, json={"org_id": org_a.id, "status": "INSPECTED"})
        response = client.post(f"/api/damages/{damage_id}/repair", headers=headers_a, json={
            "org_id": org_a.id, "quantity": 3, "cost_cents": 100,
        })
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "REPAIRED"
        assert body["actions"][0]["action"] == "REPAIR"

        stats = client.get(f"/api/damages/stats?org_id={org_a.id}", headers=headers_a).get_json()
        assert stats["totals"]["repair_cost_cents"] == 100

    def test_bad_input_and_other_tenant(self, client, db_session, org_a, org_b, outlet_a, product_a, stocked, headers_b):
        damage = _report(org_a, outlet_a, product_a)
        assert client.get(f"/api/damages/{damage.id}?org_id={org_b.id}", headers=headers_b).status_code == 404
        assert client.get(f"/api/damages?org_id={org_b.id}&status=LOST", headers=headers_b).status_code == 400
        assert client.post(f"/api/damages/{damage.id}/resolve", headers=headers_b, json={
            "org_id": org_b.id,
        }).status_code == 400
