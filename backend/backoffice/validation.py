from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from backoffice.time_utils import parse_iso_date, parse_iso_datetime


# Maximum money value: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_PRICE_CENTS = 999_999_999

# 100% expressed in basis points
MAX_BPS = 10_000


class ServiceError(Exception):
    """Base class for errors that map to an HTTP status."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""

    status_code = 400


class NotFoundError(ServiceError):
    """404: referenced entity is absent or belongs to another organization."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None, message: str | None = None):
        details = {"entity": entity}
        if entity_id is not None:
            details["id"] = entity_id
        super().__init__(message or f"{entity} not found", details)
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(ServiceError, ValueError):
    """409-level business rule conflict (e.g., deleting a partner with active shipments)."""

    status_code = 409


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: closed value sets for enum-like string columns
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    choices: dict[str, Iterable[str]] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects floats, bools, and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise ValidationError(f"{key} must be a number")
    raise ValidationError(f"{key} must be a number")


def coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def coerce_date(key: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            d = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 date")
        if d is None:
            raise ValidationError(f"{key} must be an ISO-8601 date")
        return d
    raise ValidationError(f"{key} must be a date")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Float):
        return coerce_float(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # DateTime is checked before Date: neither subclasses the other in SQLAlchemy
    if isinstance(coltype, DateTime):
        return coerce_datetime(col.key, value)

    if isinstance(coltype, Date):
        return coerce_date(col.key, value)

    if isinstance(coltype, JSON):
        if not isinstance(value, (list, dict)):
            raise ValidationError(f"{col.key} must be a list or object")
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    - closed value sets (policy.choices)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)

    ``org_id`` is always accepted and dropped: the tenant comes from the
    session, never from the payload.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payload = {k: v for k, v in payload.items() if k != "org_id"}

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    choices = policy.choices or {}

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if k in choices:
            allowed = set(choices[k])
            if isinstance(col.type, String) and isinstance(val, str):
                val = _match_choice(k, val, allowed)
            elif isinstance(val, list):
                val = [_match_choice(k, str(item), allowed) for item in val]

        patch[k] = val

    return patch


def _match_choice(key: str, value: str, allowed: set[str]) -> str:
    if value in allowed:
        return value
    # Enum spellings are case-insensitive on input, canonical on output
    for option in allowed:
        if option.lower() == value.lower():
            return option
    raise ValidationError(
        f"{key} must be one of: {', '.join(sorted(allowed))}",
        details={"field": key, "value": value},
    )


def require_choice(key: str, value: Any, allowed: Iterable[str]) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    return _match_choice(key, value.strip(), set(allowed))


def enforce_money(key: str, value: int | None, *, allow_zero: bool = True) -> None:
    """Money columns are integer cents within [0, MAX_PRICE_CENTS]."""
    if value is None:
        return
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{key} must be {'>=' if allow_zero else '>'} 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")


def enforce_bps(key: str, value: int | None) -> None:
    if value is None:
        return
    if value < 0 or value > MAX_BPS:
        raise ValidationError(f"{key} must be between 0 and {MAX_BPS} basis points")


def enforce_rules_shipping_rate(patch: dict) -> None:
    enforce_money("base_rate_cents", patch.get("base_rate_cents"))
    enforce_money("per_kg_rate_cents", patch.get("per_kg_rate_cents"))
    for key in ("min_weight", "max_weight"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")
    lo, hi = patch.get("min_weight"), patch.get("max_weight")
    if lo is not None and hi is not None and lo > hi:
        raise ValidationError("min_weight must be <= max_weight")
    days = patch.get("estimated_delivery_days")
    if days is not None and days < 0:
        raise ValidationError("estimated_delivery_days must be >= 0")


def enforce_rules_promotion(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Run against the merged (existing + patch) view on update.
    """
    value = patch.get("discount_value")
    if value is not None:
        if value < 0:
            raise ValidationError("discount_value must be >= 0")
        if patch.get("is_percentage", True) and value > MAX_BPS:
            raise ValidationError("Percentage discount cannot exceed 10000 basis points (100%)")
        if not patch.get("is_percentage", True):
            enforce_money("discount_value", value)
    enforce_money("min_purchase_cents", patch.get("min_purchase_cents"))
    enforce_money("max_discount_cents", patch.get("max_discount_cents"))
    limit = patch.get("limit_per_customer")
    if limit is not None and limit <= 0:
        raise ValidationError("limit_per_customer must be > 0")
    start, end = patch.get("start_at"), patch.get("end_at")
    if start is not None and end is not None and end <= start:
        raise ValidationError("end_at must be after start_at")
    for key in ("product_ids", "category_ids", "customer_group_ids"):
        ids = patch.get(key)
        if ids is None:
            continue
        if not isinstance(ids, list):
            raise ValidationError(f"{key} must be a list of ids")
        patch[key] = [coerce_int(key, v) for v in ids]


def enforce_positive_amount(key: str, value: int | None) -> None:
    if value is None:
        return
    enforce_money(key, value, allow_zero=False)
