# Overview: Password hashing and credential checks.

"""
Authentication Service

Users belong to exactly one organization; username/email uniqueness is
tenant-scoped. Passwords are hashed with bcrypt (cost factor 12) after a
strength check.
"""

import re

import bcrypt

from ..extensions import db
from ..models import Organization, Outlet, User
from backoffice.time_utils import utcnow
from backoffice.validation import ConflictError, NotFoundError, ValidationError


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Requirements: at least 8 characters with an uppercase letter, a
    lowercase letter, a digit, and a special character.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe; malformed hashes simply fail."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    org_id: int,
    outlet_id: int | None = None,
) -> User:
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        raise NotFoundError("Organization", org_id)
    if not org.is_active:
        raise ValidationError("Organization is not active")

    existing = db.session.query(User).filter(
        User.org_id == org_id,
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists in this organization")

    if outlet_id is not None:
        outlet = db.session.query(Outlet).filter_by(id=outlet_id, org_id=org_id).first()
        if not outlet:
            raise NotFoundError("Outlet", outlet_id)

    user = User(
        org_id=org_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
        outlet_id=outlet_id,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str, org_code: str | None = None) -> User | None:
    """
    Authenticate by username (or email) and password.

    org_code scopes the lookup; without it the username must be unambiguous
    across tenants. Updates last_login_at on success.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    )
    if org_code:
        query = query.join(Organization, Organization.id == User.org_id).filter(
            Organization.code == org_code.strip().upper()
        )

    candidates = query.limit(2).all()
    if len(candidates) != 1:
        return None
    user = candidates[0]

    if not user.organization or not user.organization.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
