from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models.catalog import PRODUCT_UNITS
from .models.auth import USER_ROLES
from .money import D, money2
from .time_utils import parse_iso_date, parse_iso_datetime

# Largest amount a NUMERIC(12, 2) column holds
MAX_AMOUNT = D("9999999999.99")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\d{10}$")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - immutable_fields: accepted on create, rejected on update
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    immutable_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be an integer", {"field": col.key})
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer", {"field": col.key})
        raise ValidationError(f"{col.key} must be an integer", {"field": col.key})

    # Money
    if isinstance(coltype, Numeric):
        try:
            amount = D(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a decimal amount", {"field": col.key})
        if not amount.is_finite():
            raise ValidationError(f"{col.key} must be a decimal amount", {"field": col.key})
        return money2(amount)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", {"field": col.key})

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        try:
            dt = parse_iso_datetime(str(value))
        except ValueError:
            dt = None
        if dt is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime", {"field": col.key})
        return dt

    # Calendar dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        try:
            d = parse_iso_date(value)
        except ValueError:
            d = None
        if d is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 date", {"field": col.key})
        return d

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

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
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                {"missing": missing},
            )

    cols = _columns_by_key(model)
    immutable = policy.immutable_fields or set()

    for k in payload.keys():
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}", {"field": k})
        if partial and k in immutable:
            raise ValidationError(f"{k} cannot be changed", {"field": k})

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", {"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", {"field": k})

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", {"field": k})

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Normalizes the SKU in place.
    """
    if patch.get("sku"):
        patch["sku"] = patch["sku"].upper()

    if "unit" in patch and patch["unit"] not in PRODUCT_UNITS:
        raise ValidationError(
            f"unit must be one of: {', '.join(PRODUCT_UNITS)}",
            {"field": "unit", "allowed": list(PRODUCT_UNITS)},
        )

    if "price" in patch and patch["price"] is not None:
        price = patch["price"]
        if price < 0:
            raise ValidationError("price must be >= 0", {"field": "price"})
        if price > MAX_AMOUNT:
            raise ValidationError(f"price cannot exceed {MAX_AMOUNT}", {"field": "price"})


def enforce_rules_batch(patch: dict, *, manufactured_date: date | None = None, expiry_date: date | None = None) -> None:
    """
    Batch rules. The existing dates are passed on update so a patch that
    changes only one side is still checked against the stored other side.
    """
    if patch.get("batch_no"):
        patch["batch_no"] = patch["batch_no"].upper()

    if "quantity" in patch and patch["quantity"] is not None and patch["quantity"] < 0:
        raise ValidationError("quantity cannot be negative", {"field": "quantity"})

    mfg = patch.get("manufactured_date", manufactured_date)
    exp = patch.get("expiry_date", expiry_date)
    if mfg is not None and exp is not None and exp <= mfg:
        raise ValidationError(
            "Expiry date must be after manufactured date",
            {"manufactured_date": mfg.isoformat(), "expiry_date": exp.isoformat()},
        )


def enforce_rules_party(patch: dict) -> None:
    """Customer / supplier contact rules; lower-cases email and upper-cases tax id."""
    if "email" in patch and patch["email"] is not None:
        email = patch["email"].lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("Please enter a valid email", {"field": "email"})
        patch["email"] = email

    if "phone" in patch and patch["phone"] is not None:
        if not PHONE_RE.match(patch["phone"]):
            raise ValidationError("Phone number must be 10 digits", {"field": "phone"})

    if patch.get("tax_id"):
        patch["tax_id"] = patch["tax_id"].upper()


def enforce_rules_user(patch: dict) -> None:
    if "email" in patch and patch["email"] is not None:
        email = patch["email"].lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("Please enter a valid email", {"field": "email"})
        patch["email"] = email

    if "role" in patch and patch["role"] not in USER_ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(USER_ROLES)}",
            {"field": "role", "allowed": list(USER_ROLES)},
        )


def parse_int_arg(value, name: str, *, minimum: int | None = None, default: int | None = None) -> int | None:
    """Strict int parsing for JSON/body fields outside of a model policy."""
    if value is None:
        return default
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{name} must be an integer", {"field": name})
    if isinstance(value, str):
        s = value.strip()
        if not s.lstrip("-").isdigit():
            raise ValidationError(f"{name} must be an integer", {"field": name})
        value = int(s)
    if not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", {"field": name})
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}", {"field": name})
    return value


def parse_amount(value, name: str):
    """Non-negative money field; None means zero."""
    if value is None:
        return money2(0)
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a decimal amount", {"field": name})
    try:
        amount = D(value)
    except ValueError:
        raise ValidationError(f"{name} must be a decimal amount", {"field": name})
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a decimal amount", {"field": name})
    if amount < 0:
        raise ValidationError(f"{name} cannot be negative", {"field": name})
    return money2(amount)
