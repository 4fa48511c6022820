from __future__ import annotations

from typing import Any

from .errors import ValidationError


# Maximum price: 9,999,999,999.99 fits Numeric(12, 2)
MAX_PRICE = 9_999_999_999.99


def parse_id(value: Any, label: str = "ID") -> int:
    """
    Validate a numeric identifier transported as a string.

    Accepts a positive int or a string of plain digits (surrounding
    whitespace allowed). Rejects blanks, signs, decimals, scientific
    notation and the "undefined"/"null" strings that leak from clients.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {label} format")
    if isinstance(value, int):
        if value <= 0:
            raise ValidationError(f"Invalid {label} format")
        return value
    if value is None or not isinstance(value, str):
        raise ValidationError(f"{label} is required")

    stripped = value.strip()
    if not stripped or stripped in ("undefined", "null"):
        raise ValidationError(f"{label} is required")
    if not stripped.isdigit() or not stripped.isascii():
        raise ValidationError(f"{label} must be numeric. Received: {value!r}")

    parsed = int(stripped)
    if parsed <= 0:
        raise ValidationError(f"Invalid {label} format")
    return parsed


def require_text(value: Any, label: str, max_length: int | None = None) -> str:
    """Trim and require a non-blank string."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required")
    text = str(value).strip()
    if max_length and len(text) > max_length:
        raise ValidationError(f"{label} exceeds max length {max_length}")
    return text


def optional_text(value: Any) -> str | None:
    """Trim a string; blanks become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_int(value: Any, label: str) -> int:
    """Strict integer coercion - rejects floats, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{label} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{label} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{label} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{label} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{label} must be an integer")
    raise ValidationError(f"{label} must be an integer")


def coerce_number(value: Any, label: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{label} must be a number")


def clamp_quantity(value: Any, label: str = "stock") -> int:
    """Missing -> 0, negatives clamp to 0."""
    if value is None:
        return 0
    return max(0, coerce_int(value, label))


def clamp_price(value: Any, label: str = "price") -> float:
    """Missing -> 0, negatives clamp to 0, rounded to cents."""
    if value is None:
        return 0.0
    price = max(0.0, coerce_number(value, label))
    if price > MAX_PRICE:
        raise ValidationError(f"{label} cannot exceed {MAX_PRICE:,.2f}")
    return round(price, 2)


def normalize_email(value: Any) -> str:
    email = require_text(value, "Email", max_length=255).lower()
    if "@" not in email:
        raise ValidationError("Email address is invalid")
    return email
