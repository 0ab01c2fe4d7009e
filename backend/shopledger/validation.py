from __future__ import annotations
from datetime import datetime
from shopledger.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models.inventory import MOVEMENT_TYPES, MOVEMENT_ADJUSTMENT
from .models.sales import PAYMENT_METHODS


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - extra_fields: non-column fields passed through untouched (e.g. "items")
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


@dataclass(frozen=True)
class LineItemInput:
    """One validated sale/purchase line as submitted by the caller."""
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", {"field": key})
        if 'e' in stripped.lower():
            raise ValidationError(
                f"{key} must be a plain integer (scientific notation not allowed)", {"field": key}
            )
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)", {"field": key})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", {"field": key})
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal", {"field": key})
    raise ValidationError(f"{key} must be an integer", {"field": key})


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", {"field": col.key})

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", {"field": col.key})
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", {"field": col.key})
            return dt
        raise ValidationError(f"{col.key} must be a datetime", {"field": col.key})

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string", {"field": col.key})
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
    extra = policy.extra_fields or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) is None)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                {"fields": missing},
            )

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields and k not in extra:
            raise ValidationError(f"Field not allowed: {k}", {"field": k})
        if k not in cols and k not in extra:
            raise ValidationError(f"Unknown field: {k}", {"field": k})

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra:
            patch[k] = raw
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable and k in required:
                raise ValidationError(f"{k} cannot be null", {"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Optional text: blank means "not provided"
        if isinstance(col.type, (String, Text)) and isinstance(val, str) and val == "":
            if not col.nullable:
                raise ValidationError(f"{k} cannot be blank", {"field": k})
            val = None

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", {"field": k})

        patch[k] = val

    return patch


def _check_price(key: str, value: int) -> None:
    if value < 0:
        raise ValidationError(f"{key} must be >= 0", {"field": key})
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}", {"field": key})


def enforce_rules_inventory_create(patch: dict) -> None:
    if patch.get("quantity") is not None and patch["quantity"] < 0:
        raise ValidationError("quantity cannot be negative", {"field": "quantity"})
    for key in ("cost_price_cents", "selling_price_cents"):
        if patch.get(key) is not None:
            _check_price(key, patch[key])


def enforce_rules_inventory_update(patch: dict) -> None:
    if not patch:
        raise ValidationError("Nothing to update")
    for key, value in patch.items():
        if value is None:
            raise ValidationError(f"{key} cannot be null", {"field": key})
        _check_price(key, value)


def validate_movement_request(movement_type: Any, quantity: Any) -> tuple[str, int]:
    """
    Validate a (type, quantity) movement request.

    quantity must be an integer >= 1 for every type except ADJUSTMENT, where it
    is the literal target on-hand value and may be any integer >= 0.
    """
    if not isinstance(movement_type, str) or movement_type.strip().upper() not in MOVEMENT_TYPES:
        raise ValidationError(
            f"type must be one of: {', '.join(MOVEMENT_TYPES)}",
            {"field": "type"},
        )
    movement_type = movement_type.strip().upper()

    if quantity is None:
        raise ValidationError("quantity is required", {"field": "quantity"})
    quantity = coerce_int("quantity", quantity)

    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity < 0:
            raise ValidationError("ADJUSTMENT target quantity cannot be negative", {"field": "quantity"})
    elif quantity < 1:
        raise ValidationError("quantity must be at least 1", {"field": "quantity"})

    return movement_type, quantity


def validate_payment_method(value: Any) -> str:
    if not isinstance(value, str) or value.strip().upper() not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            {"field": "payment_method"},
        )
    return value.strip().upper()


def parse_line_items(raw: Any) -> list[LineItemInput]:
    """
    Validate the items array of a sale or purchase request.

    Each item needs product_id, quantity >= 1, unit_price_cents >= 0 and an
    optional discount_cents >= 0 that may not exceed the line's gross amount.
    """
    if not isinstance(raw, list) or not raw:
        raise ValidationError("At least one item is required", {"field": "items"})

    items: list[LineItemInput] = []
    for index, entry in enumerate(raw):
        prefix = f"items[{index}]"
        if isinstance(entry, LineItemInput):
            entry = {
                "product_id": entry.product_id,
                "quantity": entry.quantity,
                "unit_price_cents": entry.unit_price_cents,
                "discount_cents": entry.discount_cents,
            }
        if not isinstance(entry, dict):
            raise ValidationError(f"{prefix} must be an object", {"field": prefix})

        unknown = set(entry) - {"product_id", "quantity", "unit_price_cents", "discount_cents"}
        if unknown:
            raise ValidationError(
                f"{prefix} has unknown fields: {', '.join(sorted(unknown))}",
                {"field": prefix},
            )

        for key in ("product_id", "quantity", "unit_price_cents"):
            if entry.get(key) is None:
                raise ValidationError(f"{prefix}.{key} is required", {"field": f"{prefix}.{key}"})

        product_id = coerce_int(f"{prefix}.product_id", entry["product_id"])
        quantity = coerce_int(f"{prefix}.quantity", entry["quantity"])
        unit_price = coerce_int(f"{prefix}.unit_price_cents", entry["unit_price_cents"])
        discount_raw = entry.get("discount_cents")
        discount = 0 if discount_raw is None else coerce_int(f"{prefix}.discount_cents", discount_raw)

        if quantity < 1:
            raise ValidationError(f"{prefix}.quantity must be at least 1", {"field": f"{prefix}.quantity"})
        _check_price(f"{prefix}.unit_price_cents", unit_price)
        if discount < 0:
            raise ValidationError(f"{prefix}.discount_cents cannot be negative", {"field": f"{prefix}.discount_cents"})
        if discount > unit_price * quantity:
            raise ValidationError(
                f"{prefix}.discount_cents cannot exceed the line amount",
                {"field": f"{prefix}.discount_cents"},
            )

        items.append(LineItemInput(
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=unit_price,
            discount_cents=discount,
        ))

    return items


def require_int_field(payload: dict, key: str) -> int:
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required", {"field": key})
    return coerce_int(key, payload[key])


def optional_int_field(payload: dict, key: str) -> int | None:
    if payload.get(key) is None:
        return None
    return coerce_int(key, payload[key])


def require_text_field(payload: dict, key: str, max_length: int = 255) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required", {"field": key})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}", {"field": key})
    return value


def parse_date_filter(key: str, value: str | None) -> datetime | None:
    """Query-string date filter; malformed input is a 400, not a silent no-op."""
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date or datetime", {"field": key})
