from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from stockledger.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, Date, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .models.inventory import PAYMENT_MODES


# Upper bound for any single quantity or price value
MAX_DECIMAL_VALUE = Decimal("999999999")


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level: the referenced row does not exist in the caller's scope."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_decimal(key: str, value: Any) -> Decimal:
    """
    Strict decimal coercion for quantities and prices.

    Floats are routed through str() so 0.1 stays 0.1. Booleans, NaN and
    infinities are rejected.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float)):
        dec = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be a number")
        try:
            dec = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    if abs(dec) > MAX_DECIMAL_VALUE:
        raise ValidationError(f"{key} cannot exceed {MAX_DECIMAL_VALUE}")
    return dec


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower() or '.' in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Quantities and money
    if isinstance(coltype, Numeric):
        return coerce_decimal(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Ledger business dates
    if isinstance(coltype, Date):
        try:
            d = parse_iso_date(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{col.key} must be an ISO-8601 date (YYYY-MM-DD)")
        if d is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 date (YYYY-MM-DD)")
        return d

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
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

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

        patch[k] = val

    return patch


def require_ledger_date(value, *, today: date) -> date:
    """
    Normalize a ledger date and reject missing, malformed and future dates.

    Every operation that writes or settles ledger rows goes through this
    before touching the store.
    """
    try:
        d = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError("date must be an ISO-8601 date (YYYY-MM-DD)")
    if d is None:
        raise ValidationError("date is required")
    if d > today:
        raise ValidationError("date cannot be in the future")
    return d


def _require_positive(patch: dict, key: str) -> None:
    if key in patch and (patch[key] is None or patch[key] <= 0):
        raise ValidationError(f"{key} must be > 0")


def _require_non_negative(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None and patch[key] < 0:
        raise ValidationError(f"{key} must be >= 0")


def enforce_rules_sale(patch: dict) -> None:
    _require_positive(patch, "quantity")
    _require_non_negative(patch, "price_per_unit")
    _require_non_negative(patch, "total_price")

    if "payment_mode" in patch and patch["payment_mode"] not in PAYMENT_MODES:
        raise ValidationError(f"payment_mode must be one of: {', '.join(PAYMENT_MODES)}")


def enforce_rules_restocking(patch: dict) -> None:
    _require_positive(patch, "quantity")
    _require_non_negative(patch, "cost_price")
    _require_non_negative(patch, "selling_price")


def enforce_rules_waste(patch: dict) -> None:
    _require_positive(patch, "quantity")


def enforce_rules_stock_entry(patch: dict) -> None:
    # Hand-entered opening/closing counts may be zero but never negative
    if patch.get("quantity") is None:
        raise ValidationError("quantity is required")
    _require_non_negative(patch, "quantity")
    _require_non_negative(patch, "cost_price")
    _require_non_negative(patch, "selling_price")
