# Overview: Query-string parsing shared by the API routes.

from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import current_app, request

from backoffice.validation import ValidationError, coerce_date, coerce_datetime, coerce_int


def int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return None
    return coerce_int(name, raw)


def bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes"}:
        return True
    if value in {"0", "false", "no"}:
        return False
    raise ValidationError(f"{name} must be true or false")


def page_args(default_limit: int = 50) -> tuple[int, int]:
    """limit/offset from the query string, limit capped at MAX_PAGE_SIZE."""
    limit = int_arg("limit")
    offset = int_arg("offset")
    limit = default_limit if limit is None else limit
    offset = 0 if offset is None else offset
    if limit <= 0:
        raise ValidationError("limit must be > 0")
    if offset < 0:
        raise ValidationError("offset must be >= 0")
    return min(limit, current_app.config.get("MAX_PAGE_SIZE", 200)), offset


def datetime_arg(name: str, *, end_of_day: bool = False) -> datetime | None:
    """
    ISO datetime from the query string. A bare date with end_of_day=True
    covers the whole day (used for inclusive upper bounds).
    """
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return None
    value = coerce_datetime(name, raw)
    if end_of_day and len(raw.strip()) == 10:
        value = value + timedelta(days=1) - timedelta(microseconds=1)
    return value


def date_arg(name: str) -> date | None:
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return None
    return coerce_date(name, raw)
