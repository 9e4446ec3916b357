from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from flask import current_app
from sqlalchemy import DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .money import to_money
from .time_utils import coerce_datetime


# Maximum amount: 9,999,999,999.99 fits NUMERIC(12, 2)
MAX_AMOUNT = to_money("9999999999.99")

# Asset codes and SKUs: uppercase letters, digits, dash, underscore
CODE_PATTERN = re.compile(r"^[A-Z0-9_-]+$")


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what callers are allowed to set
    - required_on_create: fields required for create
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


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
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if "e" in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if "." in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Money / rates (Decimal, 2 places, half-up)
    if isinstance(coltype, Numeric):
        try:
            return to_money(value, field=col.key)
        except ValueError as exc:
            raise ValidationError(str(exc))

    # Datetimes (accept ISO-8601 strings and date objects; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, (str, date, datetime)):
            try:
                dt = coerce_datetime(value, field=col.key)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
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


def normalize_code(value: Any, *, field: str) -> str:
    """Uppercase and check an asset code / SKU."""
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{field} is required")
    code = str(value).strip().upper()
    if not CODE_PATTERN.match(code):
        raise ValidationError(f"{field} may only contain letters, numbers, dash and underscore")
    return code


def require_positive_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            value = int(value.strip())
        else:
            raise ValidationError(f"{field} must be an integer")
    if value < 1:
        raise ValidationError(f"{field} must be >= 1")
    return value


def normalize_paging(page: Any = None, limit: Any = None) -> tuple[int, int]:
    """Parse page/limit, applying DEFAULT_PAGE_SIZE and capping at MAX_PAGE_SIZE."""
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 100)

    page = 1 if page in (None, "") else require_positive_int(page, field="page")
    limit = default_limit if limit in (None, "") else require_positive_int(limit, field="limit")
    return page, min(limit, max_limit)


def _check_amount(patch: dict, field: str) -> None:
    value = patch.get(field)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")


def enforce_rules_product(patch: dict) -> None:
    for field in ("price", "daily_rental_rate"):
        _check_amount(patch, field)


def enforce_rules_stock(patch: dict) -> None:
    for field in ("quantity", "min_quantity"):
        if field in patch and patch[field] is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")


def enforce_rules_rental(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.

    Only checks fields present in the patch; callers merge with the stored
    rental before checking the date range on updates.
    """
    for field in ("daily_rate", "deposit", "shipping_cost", "penalty_amount"):
        _check_amount(patch, field)

    if patch.get("penalty_rate") is not None and patch["penalty_rate"] < 0:
        raise ValidationError("penalty_rate must be >= 0")

    start, end = patch.get("start_date"), patch.get("end_date")
    if start is not None and end is not None and end <= start:
        raise ValidationError("end_date must be after start_date")


def enforce_rules_sale(patch: dict) -> None:
    for field in ("discount", "tax", "paid_amount"):
        _check_amount(patch, field)


def search_pattern(term: Any) -> str | None:
    """Case-insensitive substring pattern for ILIKE, or None for a blank search."""
    if term is None:
        return None
    term = str(term).strip()
    if not term:
        return None
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def optional_datetime(value: Any, *, field: str):
    """Parse an optional ISO-8601 query/body value to UTC-naive datetime."""
    if value in (None, ""):
        return None
    try:
        return coerce_datetime(value, field=field)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")
