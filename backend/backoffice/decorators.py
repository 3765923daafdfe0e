# Overview: Request decorators for API routes (authentication and error mapping).

from functools import wraps

from flask import current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .services import session_service
from .validation import ConflictError, ServiceError


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.org_id: The organization ID (tenant context)
    - g.outlet_id: The user's home outlet (may be None for org-level users)
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or idle token
    - User account or organization deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.org_id = context.org_id
        g.outlet_id = context.outlet_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def handle_service_errors(action: str):
    """
    Map service exceptions to JSON responses.

    ServiceError subclasses answer with their own status and body; a stray
    IntegrityError is a 409; anything else is logged as "Failed to <action>"
    and answered with a 500. The session is rolled back in every case.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ServiceError as e:
                db.session.rollback()
                if e.status_code >= 500:
                    current_app.logger.error("Failed to %s: %s", action, e.message)
                return jsonify(e.to_dict()), e.status_code
            except IntegrityError:
                db.session.rollback()
                current_app.logger.warning("Integrity conflict while trying to %s", action)
                return jsonify(ConflictError("Conflicting change; the record already exists or is in use").to_dict()), 409
            except Exception as e:
                db.session.rollback()
                current_app.logger.exception("Failed to %s", action)
                body = {"error": "Internal server error"}
                if current_app.config.get("EXPOSE_ERROR_DETAILS"):
                    body["details"] = {"exception": type(e).__name__, "message": str(e)}
                return jsonify(body), 500

        return decorated_function

    return decorator
