"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every data request names its organization explicitly (org_id in the query
string or JSON body) and that org must be the one the session was opened
for. A mismatch answers 404 so the caller learns nothing about other
tenants.

USAGE:
    from backoffice.services.tenant_service import request_org_id

    org_id = request_org_id()
"""

from flask import g, request

from backoffice.validation import NotFoundError, ServiceError, ValidationError, coerce_int


class TenantAccessError(ServiceError):
    """Raised when tenant context is missing from the request."""

    status_code = 401


def get_current_org_id() -> int:
    """Tenant from the authenticated session (set by @require_auth)."""
    if not hasattr(g, 'org_id') or g.org_id is None:
        raise TenantAccessError("Tenant context not established")
    return g.org_id


def get_current_user_id() -> int | None:
    user = getattr(g, 'current_user', None)
    return user.id if user else None


def request_org_id(payload: dict | None = None) -> int:
    """
    Resolve the organization named by the request and check it against the session.

    Looks at ?org_id= first, then the JSON body.
    """
    raw = request.args.get("org_id")
    if raw is None:
        if payload is None:
            payload = request.get_json(silent=True) or {}
        if isinstance(payload, dict):
            raw = payload.get("org_id")

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("org_id is required")

    org_id = coerce_int("org_id", raw)
    if org_id != get_current_org_id():
        raise NotFoundError("Organization", org_id)
    return org_id
