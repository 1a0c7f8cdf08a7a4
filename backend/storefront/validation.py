from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import InvalidAmountError, ValidationError
from .time_utils import parse_iso_datetime


# Largest amount accepted anywhere: 9,999,999.99
MAX_AMOUNT_CENTS = 999_999_999

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100

# Non-negative, at most two decimal places
_AMOUNT_RE = re.compile(r"^\d+(\.\d{1,2})?$")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def parse_amount_cents(value: Any, field_name: str = "amount") -> int:
    """
    Parse a monetary amount ("12", "12.5", "12.50", 12, 12.5) into integer cents.

    Strings and numbers go through the same pattern so 12.345 and -1 are
    rejected rather than rounded.
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmountError(f"{field_name} is not a valid amount")
    text = str(value).strip()
    if not _AMOUNT_RE.match(text):
        raise InvalidAmountError(f"{field_name} is not a valid amount")
    try:
        cents = int((Decimal(text) * 100).to_integral_value())
    except InvalidOperation:
        raise InvalidAmountError(f"{field_name} is not a valid amount")
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidAmountError(f"{field_name} exceeds the maximum allowed amount")
    return cents


def cents_to_amount(cents: int | None) -> str | None:
    if cents is None:
        return None
    return f"{Decimal(cents) / 100:.2f}"


def coerce_int(value: Any, field_name: str) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not re.fullmatch(r"-?\d+", stripped):
            raise ValidationError(f"{field_name} must be an integer")
        return int(stripped)
    raise ValidationError(f"{field_name} must be an integer")


def coerce_positive_int(value: Any, field_name: str) -> int:
    number = coerce_int(value, field_name)
    if number <= 0:
        raise ValidationError(f"{field_name} must be > 0")
    return number


def coerce_optional_int(value: Any, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    return coerce_int(value, field_name)


def coerce_str(value: Any, field_name: str, *, max_length: int | None = None, required: bool = True) -> str:
    """
    Strict text parsing for JSON input: only str is accepted, surrounding
    whitespace is stripped, and max_length mirrors the column width.
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    text = value.strip()
    if required and not text:
        raise ValidationError(f"{field_name} is required")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field_name} exceeds max length {max_length}")
    return text


def coerce_optional_str(value: Any, field_name: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    return coerce_str(value, field_name, max_length=max_length, required=False) or None


def coerce_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a boolean")
    return value


def coerce_id_list(value: Any, field_name: str) -> list[int]:
    """Non-empty list of positive ids, duplicates dropped, order kept."""
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field_name} must be a non-empty list")
    ids: list[int] = []
    for raw in value:
        number = coerce_positive_int(raw, field_name)
        if number not in ids:
            ids.append(number)
    return ids


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user input matches literally (use with escape="\\")."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def like_pattern(text: str) -> str:
    return f"%{escape_like(text)}%"


def json_object(payload: Any) -> dict:
    """Request body as a dict; a missing body is empty, an array or scalar is rejected."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def parse_pagination(page: Any = None, limit: Any = None) -> tuple[int, int]:
    page_num = coerce_int(page, "page") if page not in (None, "") else 1
    limit_num = coerce_int(limit, "limit") if limit not in (None, "") else DEFAULT_PAGE_LIMIT
    if page_num < 1:
        raise ValidationError("page must be >= 1")
    if limit_num < 1 or limit_num > MAX_PAGE_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
    return page_num, limit_num


def parse_date_bound(value: Any, field_name: str, *, end_of_day: bool = False) -> datetime | None:
    try:
        return parse_iso_datetime(value, end_of_day=end_of_day)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO-8601 date or datetime")


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            dt = parse_date_bound(value, col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, JSON):
        return value

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, str):
            raise ValidationError(f"{col.key} must be a string")
        return value.strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validate and normalize incoming JSON against the model's column metadata
    and the policy allowlist. Returns a patch dict holding only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch
