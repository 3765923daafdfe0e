# Overview: Existence + tenant-ownership checks run before every write.

"""
Entity Validators

Each check answers "does entity X exist inside organization O?" and returns
a Lookup instead of raising, so callers decide how a miss surfaces
(NotFoundError on write paths, a soft result in the promotion engine).
An entity that exists under another organization is reported exactly like
a missing one.

Pass lock=True from inside a write transaction to re-read the row with
SELECT ... FOR UPDATE, so the check and the write see the same state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from ..extensions import db
from ..models import (
    Account,
    Customer,
    CustomerGroup,
    DeliveryPartner,
    Outlet,
    Product,
    Promotion,
    Purchase,
    Sale,
    Supplier,
)
from backoffice.validation import NotFoundError
from .concurrency import lock_for_update


@dataclass(frozen=True)
class Lookup:
    entity_type: str
    entity_id: Any = None
    entity: Any = None
    error: str | None = None
    extra: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self):
        """Return the entity or raise NotFoundError naming it."""
        if not self.ok:
            raise NotFoundError(self.entity_type, self.entity_id, message=self.error)
        return self.entity


def find_in_org(model, entity_id: int | None, org_id: int, *, label: str, lock: bool = False) -> Lookup:
    if entity_id is None:
        return Lookup(label, None, error=f"{label} is required")

    query = db.session.query(model).filter(model.id == entity_id, model.org_id == org_id)
    if lock:
        query = lock_for_update(query)
    entity = query.first()
    if entity is None:
        return Lookup(label, entity_id, error=f"{label} {entity_id} not found")
    return Lookup(label, entity_id, entity=entity)


def check_account(account_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(Account, account_id, org_id, label="Account", lock=lock)


def check_outlet(outlet_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(Outlet, outlet_id, org_id, label="Outlet", lock=lock)


def check_customer(customer_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(Customer, customer_id, org_id, label="Customer", lock=lock)


def check_customer_group(group_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(CustomerGroup, group_id, org_id, label="CustomerGroup", lock=lock)


def check_product(product_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(Product, product_id, org_id, label="Product", lock=lock)


def check_supplier(supplier_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(Supplier, supplier_id, org_id, label="Supplier", lock=lock)


def check_delivery_partner(partner_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(DeliveryPartner, partner_id, org_id, label="DeliveryPartner", lock=lock)


def check_promotion(promotion_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(Promotion, promotion_id, org_id, label="Promotion", lock=lock)


def check_sale(sale_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(Sale, sale_id, org_id, label="Sale", lock=lock)


def check_purchase(purchase_id: int | None, org_id: int, *, lock: bool = False) -> Lookup:
    return find_in_org(Purchase, purchase_id, org_id, label="Purchase", lock=lock)


def check_products(product_ids: Iterable[int], org_id: int, *, lock: bool = False) -> Lookup:
    """
    Bulk product check. On success entity is {product_id: Product}; on
    failure the error names the first missing id in request order.
    """
    wanted = list(dict.fromkeys(product_ids))
    if not wanted:
        return Lookup("Product", entity={})

    query = db.session.query(Product).filter(Product.org_id == org_id, Product.id.in_(wanted))
    if lock:
        query = lock_for_update(query)
    found = {p.id: p for p in query.all()}

    missing = [pid for pid in wanted if pid not in found]
    if missing:
        return Lookup(
            "Product",
            missing[0],
            error=f"Product {missing[0]} not found",
            extra={"missing_ids": missing},
        )
    return Lookup("Product", entity=found)
