from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from .errors import InvalidRequestError
from .time_utils import parse_iso_datetime


# Maximum money / quantity magnitude accepted from clients: 999,999,999,999.99
# Keeps values inside Numeric(14, x) columns
MAX_AMOUNT = Decimal("999999999999.99")

CENT = Decimal("0.01")
QUANTITY_STEP = Decimal("0.001")


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_quantity(value: Decimal) -> Decimal:
    return Decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def coerce_decimal(
    value: Any,
    field: str,
    *,
    positive: bool = False,
    non_negative: bool = False,
    required: bool = True,
) -> Decimal | None:
    """
    Strict decimal coercion for client input.

    Accepts int, Decimal and numeric strings. Floats are converted through str()
    so 0.1 stays 0.1. Booleans and scientific notation are rejected.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise InvalidRequestError(f"{field} is required")
        return None

    if isinstance(value, bool):
        raise InvalidRequestError(f"{field} must be a number")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise InvalidRequestError(f"{field} must be a plain number (scientific notation not allowed)")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise InvalidRequestError(f"{field} must be a number")
    else:
        raise InvalidRequestError(f"{field} must be a number")

    if not result.is_finite():
        raise InvalidRequestError(f"{field} must be a finite number")
    if abs(result) > MAX_AMOUNT:
        raise InvalidRequestError(f"{field} is too large")
    if positive and result <= 0:
        raise InvalidRequestError(f"{field} must be positive")
    if non_negative and result < 0:
        raise InvalidRequestError(f"{field} cannot be negative")
    return result


def coerce_int(value: Any, field: str, *, required: bool = True) -> int | None:
    if value is None or value == "":
        if required:
            raise InvalidRequestError(f"{field} is required")
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise InvalidRequestError(f"{field} must be an integer")


def coerce_bool(value: Any, field: str, *, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "1"):
            return True
        if text in ("false", "0"):
            return False
    raise InvalidRequestError(f"{field} must be true or false")


def coerce_datetime(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise InvalidRequestError(f"{field} must be an ISO-8601 datetime")
        return dt
    raise InvalidRequestError(f"{field} must be a datetime")


def coerce_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if max_length is not None and len(text) > max_length:
        raise InvalidRequestError(f"{field} must be at most {max_length} characters")
    return text or None


def require_fields(payload: dict, fields: Iterable[str]) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise InvalidRequestError(
            f"Missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )


def reject_unknown_fields(payload: dict, allowed: set[str]) -> None:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise InvalidRequestError(
            f"Fields not writable: {', '.join(unknown)}",
            details={"fields": unknown},
        )


def page_params(page: Any, limit: Any, *, default_limit: int = 50, max_limit: int = 200) -> tuple[int, int]:
    """Normalize pagination input to (page >= 1, 1 <= limit <= max_limit)."""
    page_num = coerce_int(page, "page", required=False) or 1
    limit_num = coerce_int(limit, "limit", required=False) or default_limit
    return max(1, page_num), max(1, min(max_limit, limit_num))


def to_decimal_str(value: Decimal | None) -> str | None:
    """Serialize Numeric columns as strings so JSON never goes through float."""
    return str(value) if value is not None else None
