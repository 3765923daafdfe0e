# Overview: Pytest coverage for grouped reports, including dimensions with no activity.

from datetime import datetime

import pytest

from backoffice.schemas import CreateSaleRequest, parse_create_purchase
from backoffice.services import finance_service, purchase_service, reporting_service, sales_service, supplier_service
from backoffice.services.pricing import LineInput
from backoffice.validation import NotFoundError, ValidationError


def _sell(org, outlet, product, quantity, status="COMPLETED"):
    return sales_service.create_sale(org.id, CreateSaleRequest(
        outlet_id=outlet.id,
        items=(LineInput(product_id=product.id, quantity=quantity, unit_price_cents=product.price_cents),),
        status=status,
    ))


class TestIncomeByItem:

    def test_items_without_income_report_zero(self, db_session, org_a):
        finance_service.create_income_item(org_a.id, {"name": "Repairs"})
        finance_service.create_income_item(org_a.id, {"name": "Consulting"})

        report = reporting_service.income_by_item(org_a.id)

        assert [r["item_name"] for r in report["rows"]] == ["Consulting", "Repairs"]
        assert all(r["total_cents"] == 0 and r["entries"] == 0 for r in report["rows"])
        assert report["count"] == 2
        assert report["total_cents"] == 0

    def test_income_is_summed_within_range(self, db_session, org_a):
        repairs = finance_service.create_income_item(org_a.id, {"name": "Repairs"})
        finance_service.create_income(org_a.id, {"item_id": repairs.id, "amount_cents": 1500, "received_at": "2024-03-05T10:00:00Z"})
        finance_service.create_income(org_a.id, {"item_id": repairs.id, "amount_cents": 2500, "received_at": "2024-03-20T10:00:00Z"})
        finance_service.create_income(org_a.id, {"item_id": repairs.id, "amount_cents": 9999, "received_at": "2024-04-02T10:00:00Z"})

        report = reporting_service.income_by_item(
            org_a.id,
            date_from=datetime(2024, 3, 1),
            date_to=datetime(2024, 3, 31, 23, 59, 59),
        )

        assert report["rows"] == [{"item_id": repairs.id, "item_name": "Repairs", "total_cents": 4000, "entries": 2}]
        assert report["date_from"] == "2024-03-01T00:00:00Z"

    def test_other_org_income_is_not_counted(self, db_session, org_a, org_b):
        finance_service.create_income_item(org_a.id, {"name": "Repairs"})
        theirs = finance_service.create_income_item(org_b.id, {"name": "Repairs"})
        finance_service.create_income(org_b.id, {"item_id": theirs.id, "amount_cents": 700})

        report = reporting_service.income_by_item(org_a.id)
        assert report["total_cents"] == 0

    def test_inverted_range_rejected(self, db_session, org_a):
        with pytest.raises(ValidationError):
            reporting_service.income_by_item(org_a.id, date_from=datetime(2024, 2, 1), date_to=datetime(2024, 1, 1))


class TestExpensesByCategory:

    def test_every_category_appears(self, db_session, org_a):
        rent = finance_service.create_expense_category(org_a.id, {"name": "Rent"})
        finance_service.create_expense_category(org_a.id, {"name": "Utilities"})
        finance_service.create_expense(org_a.id, {"category_id": rent.id, "amount_cents": 50000})

        report = reporting_service.expenses_by_category(org_a.id)

        assert [(r["category_name"], r["total_cents"]) for r in report["rows"]] == [("Rent", 50000), ("Utilities", 0)]
        assert report["total_cents"] == 50000

    def test_empty_org_has_no_rows(self, db_session, org_a):
        report = reporting_service.expenses_by_category(org_a.id)
        assert report["rows"] == []
        assert report["count"] == 0


class TestSalesByProduct:

    def test_only_completed_sales_count(self, db_session, org_a, outlet_a, product_a, product_a2, receive_stock):
        receive_stock(outlet_a, product_a, 10)
        _sell(org_a, outlet_a, product_a, 2)
        _sell(org_a, outlet_a, product_a, 5, status="DRAFT")
        voided = _sell(org_a, outlet_a, product_a, 1)
        sales_service.void_sale(org_a.id, voided.id)

        report = reporting_service.sales_by_product(org_a.id)
        rows = {r["sku"]: r for r in report["rows"]}

        assert rows["PROD-A-001"]["quantity"] == 2
        assert rows["PROD-A-001"]["revenue_cents"] == 2000
        assert rows["PROD-A-002"]["quantity"] == 0
        assert report["total_quantity"] == 2
        assert report["total_revenue_cents"] == 2000

    def test_outlet_filter(self, db_session, org_a, outlet_a, outlet_a2, product_a, receive_stock):
        receive_stock(outlet_a, product_a, 5)
        receive_stock(outlet_a2, product_a, 5)
        _sell(org_a, outlet_a, product_a, 1)
        _sell(org_a, outlet_a2, product_a, 3)

        report = reporting_service.sales_by_product(org_a.id, outlet_id=outlet_a2.id)
        assert report["total_quantity"] == 3
        assert report["outlet_id"] == outlet_a2.id

    def test_foreign_outlet_filter_is_not_found(self, db_session, org_a, outlet_b):
        with pytest.raises(NotFoundError):
            reporting_service.sales_by_product(org_a.id, outlet_id=outlet_b.id)


class TestSupplierBalances:

    def test_balance_is_purchases_minus_payments(self, db_session, org_a, outlet_a, product_a):
        acme = supplier_service.create_supplier(org_a.id, {"name": "Acme Wholesale"})
        idle = supplier_service.create_supplier(org_a.id, {"name": "Idle Imports"})
        purchase_service.create_purchase(org_a.id, parse_create_purchase({
            "outlet_id": outlet_a.id,
            "items": [{"product_id": product_a.id, "quantity": 10, "unit_cost_cents": 600}],
        }, supplier_id=acme.id))
        supplier_service.record_payment(org_a.id, acme.id, {"amount_cents": 2500})

        report = reporting_service.supplier_balances(org_a.id)

        assert [(r["supplier_name"], r["balance_cents"]) for r in report["rows"]] == [
            ("Acme Wholesale", 3500),
            ("Idle Imports", 0),
        ]
        assert report["rows"][1]["supplier_id"] == idle.id
        assert report["total_balance_cents"] == 3500
