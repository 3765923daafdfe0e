# Overview: Promotion CRUD and the promotion validation engine.

"""
Promotion Service

validate_promotion()/evaluate_promotion() decide whether a promotion applies
to a proposed transaction and how much it takes off. They never raise for
business rejections: the caller gets a PromotionResult with a reason code
and decides (the sale assembler turns a rejection into a ValidationError,
the /validate endpoint returns it as-is).

Checks, in order:
    NOT_FOUND, INVALID_SCOPE, NOT_ACTIVE, MIN_PURCHASE_NOT_MET,
    CUSTOMER_NOT_ELIGIBLE, ITEMS_NOT_ELIGIBLE, CUSTOMER_REQUIRED, LIMIT_REACHED

Discount:
    percentage: round_half_up(total * discount_value / 10000)
    fixed:      discount_value
    then clamped to max_discount_cents and to the total.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Product, Promotion, PromotionUsage
from backoffice.time_utils import utcnow
from backoffice.validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    enforce_rules_promotion,
    validate_payload,
)
from .concurrency import run_with_retry
from .pricing import LineInput, apply_bps


NOT_FOUND = "NOT_FOUND"
INVALID_SCOPE = "INVALID_SCOPE"
NOT_ACTIVE = "NOT_ACTIVE"
MIN_PURCHASE_NOT_MET = "MIN_PURCHASE_NOT_MET"
CUSTOMER_NOT_ELIGIBLE = "CUSTOMER_NOT_ELIGIBLE"
ITEMS_NOT_ELIGIBLE = "ITEMS_NOT_ELIGIBLE"
CUSTOMER_REQUIRED = "CUSTOMER_REQUIRED"
LIMIT_REACHED = "LIMIT_REACHED"


PROMOTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "code", "is_percentage", "discount_value",
        "start_at", "end_at", "min_purchase_cents", "max_discount_cents",
        "limit_per_customer", "product_ids", "category_ids", "customer_group_ids",
    },
    required_on_create={"name", "discount_value", "start_at", "end_at"},
)

_RULE_FIELDS = (
    "is_percentage", "discount_value", "start_at", "end_at", "min_purchase_cents",
    "max_discount_cents", "limit_per_customer", "product_ids", "category_ids",
    "customer_group_ids",
)


@dataclass(frozen=True)
class PromotionResult:
    valid: bool
    discount_cents: int = 0
    reason: str | None = None
    message: str = ""
    promotion: Promotion | None = None

    @property
    def status_code(self) -> int:
        if self.valid:
            return 200
        return 404 if self.reason == NOT_FOUND else 400

    def to_dict(self) -> dict:
        data = {
            "valid": self.valid,
            "message": self.message,
            "discount_amount_cents": self.discount_cents,
        }
        if self.valid and self.promotion is not None:
            data["discount"] = self.promotion.discount_value
            data["promotion"] = {
                "id": self.promotion.id,
                "name": self.promotion.name,
                "code": self.promotion.code,
                "is_percentage": self.promotion.is_percentage,
                "discount": self.promotion.discount_value,
            }
        else:
            data["discount"] = 0
            data["reason"] = self.reason
        return data


def _reject(reason: str, message: str) -> PromotionResult:
    return PromotionResult(valid=False, reason=reason, message=message)


def normalize_code(code: str | None) -> str | None:
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def compute_discount(promotion: Promotion, total_cents: int) -> int:
    if promotion.is_percentage:
        discount = apply_bps(total_cents, promotion.discount_value)
    else:
        discount = promotion.discount_value
    if promotion.max_discount_cents is not None:
        discount = min(discount, promotion.max_discount_cents)
    return max(0, min(discount, total_cents))


def count_customer_usage(promotion_id: int, customer_id: int) -> int:
    return int(
        db.session.query(func.count(PromotionUsage.id))
        .filter(PromotionUsage.promotion_id == promotion_id, PromotionUsage.customer_id == customer_id)
        .scalar() or 0
    )


def resolve_promotion(
    org_id: int,
    *,
    promotion_id: int | None = None,
    promotion_code: str | None = None,
) -> tuple[Promotion | None, bool]:
    """
    Returns (promotion, in_scope). Codes only resolve inside the org; an id
    that belongs to another org comes back with in_scope=False.
    """
    if promotion_id is not None:
        promotion = db.session.query(Promotion).filter_by(id=promotion_id).first()
        if promotion is None:
            return None, False
        return promotion, promotion.org_id == org_id

    code = normalize_code(promotion_code)
    if not code:
        return None, False
    promotion = db.session.query(Promotion).filter_by(org_id=org_id, code=code).first()
    return promotion, promotion is not None


def evaluate_promotion(
    promotion: Promotion,
    *,
    org_id: int,
    total_cents: int,
    customer: Customer | None = None,
    items: Sequence[LineInput] = (),
    products: dict[int, Product] | None = None,
    now: datetime | None = None,
) -> PromotionResult:
    """Run the rule chain against an already-resolved promotion."""
    now = now or utcnow()

    if promotion.org_id != org_id:
        return _reject(INVALID_SCOPE, "Promotion is not valid for this organization")

    if not promotion.is_active_at(now):
        return _reject(NOT_ACTIVE, "Promotion is not active")

    if promotion.min_purchase_cents is not None and total_cents < promotion.min_purchase_cents:
        return _reject(
            MIN_PURCHASE_NOT_MET,
            f"Minimum purchase of {promotion.min_purchase_cents} cents not met",
        )

    group_ids = promotion.customer_group_ids or []
    if group_ids and (customer is None or customer.group_id not in group_ids):
        return _reject(CUSTOMER_NOT_ELIGIBLE, "Customer is not eligible for this promotion")

    product_ids = set(promotion.product_ids or [])
    category_ids = set(promotion.category_ids or [])
    if product_ids or category_ids:
        if products is None:
            products = _load_products(org_id, [item.product_id for item in items])
        eligible = [
            item for item in items
            if item.product_id in product_ids
            or (item.product_id in products and products[item.product_id].category_id in category_ids)
        ]
        if not eligible:
            return _reject(ITEMS_NOT_ELIGIBLE, "No items in this transaction qualify for the promotion")

    if promotion.limit_per_customer is not None:
        if customer is None:
            return _reject(CUSTOMER_REQUIRED, "Promotion is limited per customer; a customer is required")
        if count_customer_usage(promotion.id, customer.id) >= promotion.limit_per_customer:
            return _reject(LIMIT_REACHED, "Promotion usage limit reached for this customer")

    discount = compute_discount(promotion, total_cents)
    return PromotionResult(
        valid=True,
        discount_cents=discount,
        message="Promotion applied",
        promotion=promotion,
    )


def _load_products(org_id: int, product_ids: Sequence[int]) -> dict[int, Product]:
    if not product_ids:
        return {}
    rows = db.session.query(Product).filter(Product.org_id == org_id, Product.id.in_(set(product_ids))).all()
    return {p.id: p for p in rows}


def validate_promotion(
    org_id: int,
    *,
    total_cents: int,
    promotion_id: int | None = None,
    promotion_code: str | None = None,
    customer_id: int | None = None,
    items: Sequence[LineInput] = (),
    now: datetime | None = None,
) -> PromotionResult:
    promotion, in_scope = resolve_promotion(org_id, promotion_id=promotion_id, promotion_code=promotion_code)
    if promotion is None:
        return _reject(NOT_FOUND, "Promotion not found")
    if not in_scope:
        return _reject(INVALID_SCOPE, "Promotion is not valid for this organization")

    customer = None
    if customer_id is not None:
        customer = db.session.query(Customer).filter_by(id=customer_id, org_id=org_id).first()
        if customer is None:
            raise NotFoundError("Customer", customer_id)

    return evaluate_promotion(
        promotion,
        org_id=org_id,
        total_cents=total_cents,
        customer=customer,
        items=items,
        now=now,
    )


def record_usage(*, promotion: Promotion, sale_id: int, customer_id: int | None, discount_cents: int) -> PromotionUsage:
    usage = PromotionUsage(
        org_id=promotion.org_id,
        promotion_id=promotion.id,
        customer_id=customer_id,
        sale_id=sale_id,
        discount_cents=discount_cents,
        used_at=utcnow(),
    )
    db.session.add(usage)
    return usage


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def list_promotions(
    org_id: int,
    *,
    active: bool | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
    now: datetime | None = None,
) -> tuple[list[Promotion], int]:
    now = now or utcnow()
    query = db.session.query(Promotion).filter(Promotion.org_id == org_id)

    if active is True:
        query = query.filter(Promotion.start_at <= now, Promotion.end_at >= now)
    elif active is False:
        query = query.filter(db.or_(Promotion.start_at > now, Promotion.end_at < now))

    if search:
        term = f"%{search}%"
        query = query.filter(db.or_(
            Promotion.name.ilike(term),
            Promotion.description.ilike(term),
            Promotion.code.ilike(term),
        ))

    total = query.count()
    rows = query.order_by(Promotion.created_at.desc(), Promotion.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def list_active_promotions(org_id: int, *, now: datetime | None = None) -> list[Promotion]:
    now = now or utcnow()
    return (
        db.session.query(Promotion)
        .filter(Promotion.org_id == org_id, Promotion.start_at <= now, Promotion.end_at >= now)
        .order_by(Promotion.discount_value.desc(), Promotion.id.asc())
        .all()
    )


def get_promotion(org_id: int, promotion_id: int) -> Promotion:
    promotion = db.session.query(Promotion).filter_by(id=promotion_id, org_id=org_id).first()
    if not promotion:
        raise NotFoundError("Promotion", promotion_id)
    return promotion


def _check_code_free(org_id: int, code: str | None, exclude_id: int | None = None) -> None:
    if not code:
        return
    query = db.session.query(Promotion.id).filter(Promotion.org_id == org_id, Promotion.code == code)
    if exclude_id is not None:
        query = query.filter(Promotion.id != exclude_id)
    if query.first():
        raise ConflictError(f"Promotion code '{code}' already exists in this organization")


def create_promotion(org_id: int, payload: dict, *, user_id: int | None = None) -> Promotion:
    patch = validate_payload(model=Promotion, payload=payload, policy=PROMOTION_POLICY, partial=False)
    patch.setdefault("is_percentage", True)
    enforce_rules_promotion(patch)
    if "code" in patch:
        patch["code"] = normalize_code(patch["code"])

    def _op():
        _check_code_free(org_id, patch.get("code"))
        promotion = Promotion(org_id=org_id, created_by_user_id=user_id, **patch)
        db.session.add(promotion)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Promotion code already exists in this organization")
        return promotion

    return run_with_retry(_op)


def update_promotion(org_id: int, promotion_id: int, payload: dict) -> Promotion:
    patch = validate_payload(model=Promotion, payload=payload, policy=PROMOTION_POLICY, partial=True)
    if "code" in patch:
        patch["code"] = normalize_code(patch["code"])

    def _op():
        promotion = get_promotion(org_id, promotion_id)

        # Rules apply to the promotion as it will be after the update
        merged = {key: getattr(promotion, key) for key in _RULE_FIELDS}
        merged.update({k: v for k, v in patch.items() if k in _RULE_FIELDS})
        enforce_rules_promotion(merged)
        for key in ("product_ids", "category_ids", "customer_group_ids"):
            if key in patch and patch[key] is not None:
                patch[key] = merged[key]

        _check_code_free(org_id, patch.get("code"), exclude_id=promotion.id)
        for key, value in patch.items():
            setattr(promotion, key, value)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Promotion code already exists in this organization")
        return promotion

    return run_with_retry(_op)


def delete_promotion(org_id: int, promotion_id: int) -> None:
    def _op():
        promotion = get_promotion(org_id, promotion_id)
        used = db.session.query(func.count(PromotionUsage.id)).filter_by(promotion_id=promotion.id).scalar() or 0
        if used:
            raise ConflictError(
                "Cannot delete a promotion that has been used; end it instead",
                details={"usage_count": int(used)},
            )
        db.session.delete(promotion)
        db.session.commit()

    run_with_retry(_op)
