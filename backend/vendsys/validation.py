# Overview: Request payload validation driven by model column metadata plus per-resource rules.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy import Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# 9,999,999.99 in major units
MAX_PRICE_CENTS = 999_999_999

MACHINE_STATUSES = ("online", "offline", "maintenance")

# ASCII digits with an optional sign
_INT_RE = re.compile(r"-?[0-9]+")

# Field names used by the kiosk firmware and the first dashboard
CAMEL_CASE_ALIASES = {
    "machineId": "machine_id",
    "channelId": "channel_id",
    "productId": "product_id",
}


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which fields a client may send for one resource.

    writable_fields is the allowlist; anything else in the payload is
    rejected. required_on_create applies only to non-partial validation.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_int(key: str, value: Any) -> int:
    # JSON numbers arrive as int or float; kiosks sometimes send strings
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_RE.fullmatch(value.strip()):
        return int(value.strip())
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    if value is None:
        return None

    coltype = col.type
    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Float):
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return float(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a number")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def apply_aliases(payload: Any, aliases: dict[str, str] = CAMEL_CASE_ALIASES) -> Any:
    """Rename camelCase keys to column names. Sending both spellings is an error."""
    if not isinstance(payload, dict):
        return payload
    data = dict(payload)
    for alias, name in aliases.items():
        if alias in data:
            if name in data:
                raise ValidationError(f"Send either {name} or {alias}, not both")
            data[name] = data.pop(alias)
    return data


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against the policy allowlist and the model's columns.

    Returns a patch holding only writable fields, coerced to column types.
    With partial=False the policy's required fields must be present.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        col = cols.get(key)
        if col is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _coerce_value(col, raw)
        if isinstance(value, str):
            if value == "" and not col.nullable:
                raise ValidationError(f"{key} cannot be blank")
            max_len = getattr(col.type, "length", None)
            if max_len and len(value) > max_len:
                raise ValidationError(f"{key} exceeds max length {max_len}")

        patch[key] = value

    return patch


def to_cents(value: Any, field: str = "price") -> int:
    """
    Convert a decimal money amount ("15.00", 15, 15.5) into integer cents.

    Kiosks send prices in major units, as the gateway expects them.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")
    return cents


def enforce_rules_machine(patch: dict) -> None:
    if "status" in patch and patch["status"] not in MACHINE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(MACHINE_STATUSES)}")

    lat = patch.get("latitude")
    if lat is not None and not -90.0 <= lat <= 90.0:
        raise ValidationError("latitude must be between -90 and 90")

    lng = patch.get("longitude")
    if lng is not None and not -180.0 <= lng <= 180.0:
        raise ValidationError("longitude must be between -180 and 180")


def enforce_rules_inventory(patch: dict) -> None:
    if "quantity" in patch and patch["quantity"] is not None and patch["quantity"] < 0:
        raise ValidationError("quantity must be >= 0")

    if "price_cents" in patch and patch["price_cents"] is not None:
        price = patch["price_cents"]
        if price < 0:
            raise ValidationError("price_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")

    if "channel_id" in patch and patch["channel_id"] is not None and patch["channel_id"] < 0:
        raise ValidationError("channel_id must be >= 0")


def validate_sale_items(items: Any) -> list[dict]:
    """
    Normalize the line items of a create-payment request.

    Each item needs a display name, a positive integer quantity and a unit
    price; `product_id` falls back to `sku`. Prices are converted to cents.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    cleaned: list[dict] = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{idx}] must be an object")

        name = str(item.get("name") or "").strip()
        if not name:
            raise ValidationError(f"items[{idx}].name is required")

        product_ref = item.get("product_id", item.get("productId", item.get("sku")))
        product_ref = str(product_ref).strip() if product_ref is not None else ""
        if not product_ref:
            raise ValidationError(f"items[{idx}].product_id is required")

        quantity = item.get("quantity")
        if isinstance(quantity, str) and _INT_RE.fullmatch(quantity.strip()):
            quantity = int(quantity.strip())
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"items[{idx}].quantity must be a positive integer")

        cleaned.append({
            "product_id": product_ref,
            "name": name,
            "description": (str(item["description"]).strip() if item.get("description") else None),
            "quantity": quantity,
            "unit_price_cents": to_cents(item.get("price"), field=f"items[{idx}].price"),
        })
    return cleaned
