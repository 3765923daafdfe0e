# Overview: Request parsing for the transaction and calculation engines.

"""
Boundary schemas.

Engine entry points (sale assembly, promotion validation, rate calculation,
purchases, quotations, returns, transfers, damage actions, warranty
claims and extensions) take frozen dataclasses built here, so
services never see raw JSON. Plain CRUD payloads go through
validation.validate_payload against the model's columns instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .models.delivery import SHIPMENT_STATUSES, SHIPPING_METHODS
from .models.sales import PAYMENT_METHODS, SALE_STATUSES
from .models.warranty import CLAIM_STATUSES, CLAIM_TYPES
from .services.pricing import LineInput
from .validation import (
    ValidationError,
    coerce_date,
    coerce_datetime,
    coerce_float,
    coerce_int,
    enforce_bps,
    enforce_money,
    require_choice,
)


_MISSING = object()


def _payload(data: Any) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _int(data: dict, key: str, *, required: bool = False, default: Any = None) -> Any:
    raw = data.get(key, _MISSING)
    if raw is _MISSING or raw is None:
        if required:
            raise ValidationError(f"{key} is required")
        return default
    return coerce_int(key, raw)


def _money(data: dict, key: str, *, required: bool = False, default: Any = None, allow_zero: bool = True) -> Any:
    value = _int(data, key, required=required, default=default)
    enforce_money(key, value, allow_zero=allow_zero)
    return value


def _str(data: dict, key: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    raw = data.get(key)
    if raw is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    value = str(raw).strip()
    if required and not value:
        raise ValidationError(f"{key} cannot be blank")
    if max_length and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value or None


def _list(data: dict, key: str, *, required: bool = False) -> list:
    raw = data.get(key)
    if raw is None:
        if required:
            raise ValidationError(f"{key} is required")
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{key} must be a list")
    return raw


def _line(raw: Any, index: int, *, price_key: str) -> LineInput:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")
    quantity = _int(raw, "quantity", required=True)
    if quantity <= 0:
        raise ValidationError(f"items[{index}].quantity must be > 0")
    return LineInput(
        product_id=_int(raw, "product_id", required=True),
        quantity=quantity,
        unit_price_cents=_money(raw, price_key, required=True),
        discount_cents=_money(raw, "discount_cents", default=0),
    )


def _lines(data: dict, *, price_key: str = "unit_price_cents", required: bool = True) -> tuple[LineInput, ...]:
    items = _list(data, "items", required=required)
    if required and not items:
        raise ValidationError("At least one item is required")
    return tuple(_line(raw, i, price_key=price_key) for i, raw in enumerate(items))


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InstallmentInput:
    due_date: date
    amount_cents: int


@dataclass(frozen=True)
class CreateSaleRequest:
    outlet_id: int
    items: tuple[LineInput, ...]
    customer_id: int | None = None
    discount_cents: int = 0
    tax_rate_bps: int | None = None
    payment_method: str = "CASH"
    status: str = "COMPLETED"
    promotion_id: int | None = None
    promotion_code: str | None = None
    notes: str | None = None
    installments: tuple[InstallmentInput, ...] = ()


def _installments(data: dict) -> tuple[InstallmentInput, ...]:
    parsed = []
    for i, raw in enumerate(_list(data, "installments")):
        if not isinstance(raw, dict):
            raise ValidationError(f"installments[{i}] must be an object")
        if raw.get("due_date") is None:
            raise ValidationError(f"installments[{i}].due_date is required")
        parsed.append(InstallmentInput(
            due_date=coerce_date("due_date", raw["due_date"]),
            amount_cents=_money(raw, "amount_cents", required=True, allow_zero=False),
        ))
    return tuple(parsed)


def parse_create_sale(data: Any) -> CreateSaleRequest:
    data = _payload(data)
    tax_rate_bps = _int(data, "tax_rate_bps")
    enforce_bps("tax_rate_bps", tax_rate_bps)
    status = require_choice("status", data.get("status") or "COMPLETED", ("DRAFT", "COMPLETED"))
    return CreateSaleRequest(
        outlet_id=_int(data, "outlet_id", required=True),
        items=_lines(data),
        customer_id=_int(data, "customer_id"),
        discount_cents=_money(data, "discount_cents", default=0),
        tax_rate_bps=tax_rate_bps,
        payment_method=require_choice("payment_method", data.get("payment_method") or "CASH", PAYMENT_METHODS),
        status=status,
        promotion_id=_int(data, "promotion_id"),
        promotion_code=_str(data, "promotion_code", max_length=64),
        notes=_str(data, "notes"),
        installments=_installments(data),
    )


@dataclass(frozen=True)
class UpdateSaleRequest:
    """Only keys listed in `fields` were supplied by the client."""
    fields: frozenset[str]
    customer_id: int | None = None
    items: tuple[LineInput, ...] = ()
    discount_cents: int = 0
    tax_rate_bps: int = 0
    payment_method: str | None = None
    notes: str | None = None
    status: str | None = None
    void_reason: str | None = None

    def has(self, key: str) -> bool:
        return key in self.fields


_UPDATE_SALE_FIELDS = {
    "customer_id", "items", "discount_cents", "tax_rate_bps",
    "payment_method", "notes", "status", "void_reason",
}


def parse_update_sale(data: Any) -> UpdateSaleRequest:
    data = {k: v for k, v in _payload(data).items() if k != "org_id"}
    unknown = sorted(set(data) - _UPDATE_SALE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    kwargs: dict[str, Any] = {"fields": frozenset(data)}
    if "customer_id" in data:
        kwargs["customer_id"] = _int(data, "customer_id")
    if "items" in data:
        kwargs["items"] = _lines(data)
    if "discount_cents" in data:
        kwargs["discount_cents"] = _money(data, "discount_cents", required=True)
    if "tax_rate_bps" in data:
        kwargs["tax_rate_bps"] = _int(data, "tax_rate_bps", required=True)
        enforce_bps("tax_rate_bps", kwargs["tax_rate_bps"])
    if "payment_method" in data:
        kwargs["payment_method"] = require_choice("payment_method", data["payment_method"], PAYMENT_METHODS)
    if "notes" in data:
        kwargs["notes"] = _str(data, "notes")
    if "status" in data:
        kwargs["status"] = require_choice("status", data["status"], SALE_STATUSES)
    if "void_reason" in data:
        kwargs["void_reason"] = _str(data, "void_reason", max_length=255)
    return UpdateSaleRequest(**kwargs)


# ---------------------------------------------------------------------------
# Promotions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PromotionCheckRequest:
    total_cents: int
    promotion_id: int | None = None
    promotion_code: str | None = None
    customer_id: int | None = None
    items: tuple[LineInput, ...] = ()


def parse_promotion_check(data: Any) -> PromotionCheckRequest:
    data = _payload(data)
    promotion_id = _int(data, "promotion_id")
    promotion_code = _str(data, "promotion_code", max_length=64)
    if promotion_id is None and not promotion_code:
        raise ValidationError("promotion_id or promotion_code is required")
    return PromotionCheckRequest(
        total_cents=_money(data, "total_cents", required=True),
        promotion_id=promotion_id,
        promotion_code=promotion_code,
        customer_id=_int(data, "customer_id"),
        items=_lines(data, required=False),
    )


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RateQuery:
    to_location: str
    weight: float
    delivery_partner_id: int | None = None
    from_location: str | None = None
    method: str | None = None
    # Accepted for forward compatibility; not used in pricing
    dimensions: dict = field(default_factory=dict)
    declared_value_cents: int | None = None


def parse_rate_query(data: Any) -> RateQuery:
    data = _payload(data)
    if data.get("weight") is None:
        raise ValidationError("weight is required")
    weight = coerce_float("weight", data["weight"])
    if weight <= 0:
        raise ValidationError("weight must be > 0")
    method = data.get("method")
    dimensions = data.get("dimensions") or {}
    if not isinstance(dimensions, dict):
        raise ValidationError("dimensions must be an object")
    return RateQuery(
        to_location=_str(data, "to_location", required=True, max_length=255),
        weight=weight,
        delivery_partner_id=_int(data, "delivery_partner_id"),
        from_location=_str(data, "from_location", max_length=255),
        method=require_choice("method", method, SHIPPING_METHODS) if method else None,
        dimensions=dimensions,
        declared_value_cents=_money(data, "declared_value_cents"),
    )


@dataclass(frozen=True)
class ShipmentStatusChange:
    status: str
    location: str | None = None
    description: str | None = None


def parse_shipment_status(data: Any) -> ShipmentStatusChange:
    data = _payload(data)
    return ShipmentStatusChange(
        status=require_choice("status", data.get("status"), SHIPMENT_STATUSES),
        location=_str(data, "location", max_length=255),
        description=_str(data, "description", max_length=512),
    )


# ---------------------------------------------------------------------------
# Purchasing, quotations, returns, transfers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CreatePurchaseRequest:
    outlet_id: int
    supplier_id: int
    items: tuple[LineInput, ...]
    discount_cents: int = 0
    tax_rate_bps: int = 0
    reference: str | None = None
    notes: str | None = None
    purchased_at: datetime | None = None


def parse_create_purchase(data: Any, *, supplier_id: int | None = None) -> CreatePurchaseRequest:
    data = _payload(data)
    tax_rate_bps = _int(data, "tax_rate_bps", default=0)
    enforce_bps("tax_rate_bps", tax_rate_bps)
    purchased_at = data.get("purchased_at")
    return CreatePurchaseRequest(
        outlet_id=_int(data, "outlet_id", required=True),
        supplier_id=supplier_id if supplier_id is not None else _int(data, "supplier_id", required=True),
        items=_lines(data, price_key="unit_cost_cents"),
        discount_cents=_money(data, "discount_cents", default=0),
        tax_rate_bps=tax_rate_bps,
        reference=_str(data, "reference", max_length=128),
        notes=_str(data, "notes"),
        purchased_at=coerce_datetime("purchased_at", purchased_at) if purchased_at else None,
    )


@dataclass(frozen=True)
class QuotationRequest:
    outlet_id: int
    items: tuple[LineInput, ...]
    customer_id: int | None = None
    discount_cents: int = 0
    tax_rate_bps: int | None = None
    valid_until: date | None = None
    notes: str | None = None


def parse_quotation(data: Any) -> QuotationRequest:
    data = _payload(data)
    tax_rate_bps = _int(data, "tax_rate_bps")
    enforce_bps("tax_rate_bps", tax_rate_bps)
    valid_until = data.get("valid_until")
    return QuotationRequest(
        outlet_id=_int(data, "outlet_id", required=True),
        items=_lines(data),
        customer_id=_int(data, "customer_id"),
        discount_cents=_money(data, "discount_cents", default=0),
        tax_rate_bps=tax_rate_bps,
        valid_until=coerce_date("valid_until", valid_until) if valid_until else None,
        notes=_str(data, "notes"),
    )


@dataclass(frozen=True)
class ReturnItemInput:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class ReturnRequest:
    parent_id: int
    reason: str
    amount_cents: int
    items: tuple[ReturnItemInput, ...] = ()


def parse_return(data: Any, *, parent_key: str) -> ReturnRequest:
    data = _payload(data)
    items = []
    for i, raw in enumerate(_list(data, "items")):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object")
        quantity = _int(raw, "quantity", required=True)
        if quantity <= 0:
            raise ValidationError(f"items[{i}].quantity must be > 0")
        items.append(ReturnItemInput(product_id=_int(raw, "product_id", required=True), quantity=quantity))
    return ReturnRequest(
        parent_id=_int(data, parent_key, required=True),
        reason=_str(data, "reason", required=True, max_length=255),
        amount_cents=_money(data, "amount_cents", required=True, allow_zero=False),
        items=tuple(items),
    )


@dataclass(frozen=True)
class TransferRequest:
    from_outlet_id: int
    to_outlet_id: int
    product_id: int
    quantity: int
    notes: str | None = None


def parse_transfer(data: Any) -> TransferRequest:
    data = _payload(data)
    quantity = _int(data, "quantity", required=True)
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    request = TransferRequest(
        from_outlet_id=_int(data, "from_outlet_id", required=True),
        to_outlet_id=_int(data, "to_outlet_id", required=True),
        product_id=_int(data, "product_id", required=True),
        quantity=quantity,
        notes=_str(data, "notes"),
    )
    if request.from_outlet_id == request.to_outlet_id:
        raise ValidationError("from_outlet_id and to_outlet_id must differ")
    return request


# ---------------------------------------------------------------------------
# Damage and warranty
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DamageActionRequest:
    """quantity None means every outstanding unit."""
    quantity: int | None = None
    cost_cents: int = 0
    recovery_value_cents: int = 0
    notes: str | None = None


def parse_damage_repair(data: Any) -> DamageActionRequest:
    data = _payload(data)
    quantity = _int(data, "quantity")
    if quantity is not None and quantity <= 0:
        raise ValidationError("quantity must be > 0")
    return DamageActionRequest(
        quantity=quantity,
        cost_cents=_money(data, "cost_cents", default=0),
        notes=_str(data, "notes"),
    )


def parse_damage_scrap(data: Any) -> DamageActionRequest:
    data = _payload(data)
    quantity = _int(data, "quantity")
    if quantity is not None and quantity <= 0:
        raise ValidationError("quantity must be > 0")
    return DamageActionRequest(
        quantity=quantity,
        recovery_value_cents=_money(data, "recovery_value_cents", default=0),
        notes=_str(data, "notes"),
    )


def parse_damage_resolve(data: Any) -> DamageActionRequest:
    data = _payload(data)
    return DamageActionRequest(notes=_str(data, "notes", required=True))


@dataclass(frozen=True)
class WarrantyClaimRequest:
    claim_type: str
    description: str
    claim_date: date | None = None
    contact_name: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    notes: str | None = None


def parse_warranty_claim(data: Any) -> WarrantyClaimRequest:
    data = _payload(data)
    claim_date = data.get("claim_date")
    return WarrantyClaimRequest(
        claim_type=require_choice("claim_type", data.get("claim_type"), CLAIM_TYPES),
        description=_str(data, "description", required=True),
        claim_date=coerce_date("claim_date", claim_date) if claim_date else None,
        contact_name=_str(data, "contact_name", max_length=255),
        contact_phone=_str(data, "contact_phone", max_length=32),
        contact_email=_str(data, "contact_email", max_length=255),
        notes=_str(data, "notes"),
    )


@dataclass(frozen=True)
class ClaimStatusChange:
    status: str
    resolution_notes: str | None = None
    resolution_cost_cents: int | None = None


def parse_claim_status(data: Any) -> ClaimStatusChange:
    data = _payload(data)
    return ClaimStatusChange(
        status=require_choice("status", data.get("status"), CLAIM_STATUSES),
        resolution_notes=_str(data, "resolution_notes"),
        resolution_cost_cents=_money(data, "resolution_cost_cents"),
    )


@dataclass(frozen=True)
class WarrantyExtensionRequest:
    """Exactly one of months / new_end_date drives the new end date."""
    months: int | None = None
    new_end_date: date | None = None
    reason: str | None = None
    payment_amount_cents: int = 0


def parse_warranty_extension(data: Any) -> WarrantyExtensionRequest:
    data = _payload(data)
    months = _int(data, "months")
    new_end_date = data.get("new_end_date")
    if months is None and not new_end_date:
        raise ValidationError("months or new_end_date is required")
    if months is not None and new_end_date:
        raise ValidationError("Give either months or new_end_date, not both")
    if months is not None and months <= 0:
        raise ValidationError("months must be > 0")
    return WarrantyExtensionRequest(
        months=months,
        new_end_date=coerce_date("new_end_date", new_end_date) if new_end_date else None,
        reason=_str(data, "reason"),
        payment_amount_cents=_money(data, "payment_amount_cents", default=0),
    )
