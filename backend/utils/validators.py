"""
Input validation utilities for the storefront API.

Reusable validators and FastAPI dependencies for Argentine postal codes,
province codes and order references.
"""
import re

from fastapi import Path, Query

from domain.constants import PROVINCES, TEMP_ORDER_PREFIX
from domain.errors import ValidationError
from services import shipping_rules

_ORDER_ID_RE = re.compile(r"^(ord_|" + re.escape(TEMP_ORDER_PREFIX) + r")[0-9a-f]{16}$")


def validate_postal_code(postal_code: str) -> str:
    """
    Normalize a postal code ("1611", "B1611", "B1611ABC") to its 4 digits.

    Raises ValidationError (400) when it cannot be normalized.
    """
    normalized = shipping_rules.normalize_postal_code(postal_code)
    if not normalized:
        raise ValidationError(
            f"Invalid postal code: {postal_code!r}",
            field="postalCode",
        )
    return normalized


def validate_province_code(value: str) -> str:
    """Accept a province code or name and return the one-letter code."""
    code = shipping_rules.province_code_for(value)
    if not code:
        raise ValidationError(
            f"Unknown province: {value!r}",
            field="provinceCode",
            details={"valid": sorted(PROVINCES)},
        )
    return code


def validate_order_id(order_id: str) -> str:
    if not order_id or not _ORDER_ID_RE.match(order_id):
        raise ValidationError(f"Invalid order id: {order_id!r}", field="orderId")
    return order_id


def validated_postal_code_query(postal_code: str = Query(..., alias="postalCode")) -> str:
    """FastAPI dependency for ?postalCode= query parameters."""
    return validate_postal_code(postal_code)


def validated_province_query(province_code: str = Query(..., alias="provinceCode")) -> str:
    """FastAPI dependency for ?provinceCode= query parameters (code or name)."""
    return validate_province_code(province_code)


def validated_order_id(order_id: str = Path(..., description="Order id (ord_...)")) -> str:
    """FastAPI dependency for {order_id} path parameters."""
    return validate_order_id(order_id)
