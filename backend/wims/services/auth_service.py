# Overview: Service-layer operations for auth and user accounts; encapsulates business logic and database work.

"""
Authentication and user management.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, with upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from sqlalchemy import func

from ..extensions import db
from ..errors import DuplicateKeyError, InvalidStateError, NotFoundError, ValidationError
from ..models import Order, ROLE_CLERK, StockAdjustment, User
from ..time_utils import utcnow
from . import session_service
from .concurrency import run_with_retry


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long", {"field": "password"})
    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter", {"field": "password"})
    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter", {"field": "password"})
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit", {"field": "password"})
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-+=?]", password):
        raise PasswordValidationError("Password must contain at least one special character", {"field": "password"})


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt with cost factor 12."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def authenticate(email: str, password: str) -> User | None:
    """Return the active user for these credentials, or None."""
    user = db.session.query(User).filter(User.email == (email or "").strip().lower()).first()
    if user is None or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None
    user.last_login_at = utcnow()
    db.session.commit()
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User not found: {user_id}", {"user_id": user_id})
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name.asc(), User.id.asc()).all()


def _ensure_email_available(email: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(User.id).filter(User.email == email)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    if q.first() is not None:
        raise DuplicateKeyError("User with this email already exists", {"field": "email", "value": email})


def create_user(*, name: str, email: str, password: str, role: str = ROLE_CLERK) -> User:
    """
    Create a user. email is expected lower-cased and role validated
    (validation.enforce_rules_user).
    """
    password_hash = hash_password(password)

    def _op():
        _ensure_email_available(email)
        user = User(name=name, email=email, password_hash=password_hash, role=role, is_active=True)
        db.session.add(user)
        db.session.commit()
        return user

    return run_with_retry(_op)


def update_user(user_id: int, patch: dict, *, password: str | None = None) -> User:
    """
    Update name, email, role or is_active, and optionally reset the password.

    Deactivating a user or changing the password revokes their sessions.
    """
    password_hash = hash_password(password) if password else None

    def _op():
        user = get_user(user_id)
        if "email" in patch:
            _ensure_email_available(patch["email"], exclude_id=user.id)
        for k, v in patch.items():
            setattr(user, k, v)
        if password_hash:
            user.password_hash = password_hash
        db.session.commit()
        return user

    user = run_with_retry(_op)
    if password_hash or patch.get("is_active") is False:
        session_service.revoke_all_user_sessions(user.id, reason="Account changed")
    return user


def delete_user(user_id: int, *, acting_user_id: int | None = None) -> dict:
    """Users who created orders are kept for attribution; deactivate them instead."""
    if acting_user_id is not None and user_id == acting_user_id:
        raise InvalidStateError("You cannot delete your own account", {"user_id": user_id})

    def _op():
        user = get_user(user_id)
        orders = db.session.query(func.count(Order.id)).filter(Order.created_by_user_id == user.id).scalar() or 0
        if orders:
            raise InvalidStateError(
                "User has created orders and cannot be deleted; deactivate the account instead",
                {"user_id": user.id, "order_count": int(orders)},
            )
        session_service.delete_user_sessions(user.id)
        db.session.query(StockAdjustment).filter(StockAdjustment.created_by_user_id == user.id).update(
            {"created_by_user_id": None}, synchronize_session=False
        )
        info = {"id": user.id, "email": user.email}
        db.session.delete(user)
        db.session.commit()
        return info

    return run_with_retry(_op)
