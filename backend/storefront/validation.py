# Overview: Request payload coercion and the pure validator pipeline for catalog writes.

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from sqlalchemy import Boolean, Integer, String, Text

from .attributes import AttributeMap
from .errors import ValidationError
from .time_utils import coerce_datetime


# Whole currency units; guards against overflow and nonsense prices
MAX_PRICE = 999_999_999
MAX_SHIPPING_COST = 1_000_000
MAX_LINE_QUANTITY = 999
MAX_ORDER_LINES = 50
CANCELLATION_REASON_MIN_LENGTH = 10
CANCELLATION_REASON_MAX_LENGTH = 500

DISCOUNT_TYPES = ("percentage", "amount")
DELIVERY_METHODS = ("pickup", "delivery")
PAYMENT_METHODS = ("cash", "transfer")


# =============================================================================
# Typed results and the pipeline runner
# =============================================================================

@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of one validator.

    ok=False carries at least one error. warnings never fail a result
    (e.g. overlapping tiers). value is the normalized input for the next stage.
    """
    ok: bool
    value: Any = None
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @classmethod
    def success(cls, value, warnings=()) -> "ValidationResult":
        return cls(ok=True, value=value, warnings=tuple(warnings))

    @classmethod
    def failure(cls, *errors: str, value=None) -> "ValidationResult":
        return cls(ok=False, value=value, errors=tuple(errors))


Validator = Callable[[Any], ValidationResult]


def run_pipeline(value, stages: list[Validator]) -> ValidationResult:
    """Run stages in order, feeding each the previous value. Stops at the first failure."""
    warnings: list[str] = []
    for stage in stages:
        result = stage(value)
        warnings.extend(result.warnings)
        if not result.ok:
            return replace(result, warnings=tuple(warnings))
        value = result.value
    return ValidationResult.success(value, warnings)


def raise_for(result: ValidationResult) -> Any:
    """Return the value of a successful result; raise ValidationError otherwise."""
    if not result.ok:
        raise ValidationError(
            "; ".join(result.errors),
            {"errors": list(result.errors), "warnings": list(result.warnings)},
        )
    return result.value


# =============================================================================
# Scalar coercion (JSON payloads)
# =============================================================================

def coerce_int(value: Any, field_name: str) -> int:
    """
    Strict integer coercion: ints and plain digit strings only.
    Booleans, floats, decimals and scientific notation are rejected.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field_name} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field_name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field_name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field_name} must be an integer, not a decimal")
    raise ValidationError(f"{field_name} must be an integer")


def coerce_optional_int(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    return coerce_int(value, field_name)


def coerce_number(value: Any, field_name: str) -> Decimal:
    """Discount values: ints, floats or numeric strings (percentages may be fractional)."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be a number")
    return number


def _json_number(value: Decimal):
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _iso(value) -> str | None:
    dt = coerce_datetime(value)
    return dt.isoformat() if dt else None


def _coerce_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{field_name} must be true or false")


def _clean_str(value: Any, field_name: str, *, max_length: int, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field_name} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{field_name} cannot be blank")
    if len(value) > max_length:
        raise ValidationError(f"{field_name} exceeds max length {max_length}")
    return value or None


# =============================================================================
# Model-driven payload validation
# =============================================================================

@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required when creating
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Validates + normalizes incoming JSON against SQLAlchemy column metadata
    (nullable, type, String length) and the policy allowlist. JSON columns
    pass through untouched for the domain validators.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = {c.key: c for c in model.__mapper__.columns}
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

        if isinstance(col.type, Integer):
            patch[key] = coerce_int(raw, key)
        elif isinstance(col.type, Boolean):
            patch[key] = _coerce_bool(raw, key)
        elif isinstance(col.type, (String, Text)):
            value = str(raw).strip()
            if not col.nullable and value == "":
                raise ValidationError(f"{key} cannot be blank")
            if isinstance(col.type, String) and col.type.length and len(value) > col.type.length:
                raise ValidationError(f"{key} exceeds max length {col.type.length}")
            patch[key] = value
        else:
            patch[key] = raw
    return patch


# =============================================================================
# Discount configuration validators (pure)
# =============================================================================

def _window(raw: dict, errors: list[str], label: str) -> tuple[str | None, str | None]:
    try:
        start = coerce_datetime(raw.get("start_date"))
        end = coerce_datetime(raw.get("end_date"))
    except ValueError:
        errors.append(f"{label}: dates must be ISO-8601")
        return None, None
    if start and end and start > end:
        errors.append(f"{label}: start_date must be before end_date")
    return _iso(start), _iso(end)


def validate_fixed_discount(raw: dict | None, price: int) -> ValidationResult:
    """
    Fixed discount on a variant. An amount larger than the price is accepted;
    resolution clamps the final price at 0.
    """
    if raw is None:
        return ValidationResult.success(None)
    if not isinstance(raw, dict):
        return ValidationResult.failure("fixed_discount must be an object")

    errors: list[str] = []
    discount_type = raw.get("type", "percentage")
    if discount_type not in DISCOUNT_TYPES:
        errors.append(f"fixed_discount.type must be one of: {', '.join(DISCOUNT_TYPES)}")

    try:
        value = coerce_number(raw.get("value", 0), "fixed_discount.value")
    except ValidationError as exc:
        errors.append(exc.message)
        value = Decimal(0)
    if value < 0:
        errors.append("fixed_discount.value must be >= 0")
    if discount_type == "percentage" and value > 100:
        errors.append("fixed_discount.value must be between 0 and 100 for percentage discounts")

    enabled = raw.get("enabled", False)
    if not isinstance(enabled, bool):
        errors.append("fixed_discount.enabled must be true or false")

    start, end = _window(raw, errors, "fixed_discount")
    if errors:
        return ValidationResult.failure(*errors)

    return ValidationResult.success({
        "enabled": enabled,
        "type": discount_type,
        "value": _json_number(value),
        "start_date": start,
        "end_date": end,
        "badge": _clean_str(raw.get("badge"), "badge", max_length=50),
    })


def _validate_tiers(raw_tiers, max_amount: int | None, label: str) -> tuple[list[dict], list[str], list[str]]:
    errors: list[str] = []
    warnings: list[str] = []
    if not isinstance(raw_tiers, list):
        return [], [f"{label}.tiers must be a list"], []

    tiers: list[dict] = []
    for i, raw in enumerate(raw_tiers):
        where = f"{label}.tiers[{i}]"
        if not isinstance(raw, dict):
            errors.append(f"{where} must be an object")
            continue
        try:
            min_q = coerce_int(raw.get("min_quantity"), f"{where}.min_quantity")
            max_q = coerce_optional_int(raw.get("max_quantity"), f"{where}.max_quantity")
            value = coerce_number(raw.get("value"), f"{where}.value")
        except ValidationError as exc:
            errors.append(exc.message)
            continue

        discount_type = raw.get("type", "percentage")
        if discount_type not in DISCOUNT_TYPES:
            errors.append(f"{where}.type must be one of: {', '.join(DISCOUNT_TYPES)}")
        if min_q < 1:
            errors.append(f"{where}.min_quantity must be >= 1")
        if max_q is not None and max_q < min_q:
            errors.append(f"{where}.max_quantity must be >= min_quantity")
        if value < 0:
            errors.append(f"{where}.value must be >= 0")
        if discount_type == "percentage" and value > 100:
            errors.append(f"{where}.value must be between 0 and 100 for percentage discounts")
        if discount_type == "amount" and max_amount is not None and value > max_amount:
            errors.append(f"{where}.value cannot exceed the price ({max_amount})")

        tiers.append({
            "min_quantity": min_q,
            "max_quantity": max_q,
            "type": discount_type,
            "value": _json_number(value),
        })

    tiers.sort(key=lambda t: t["min_quantity"])
    for a, b in zip(tiers, tiers[1:]):
        if a["max_quantity"] is None or a["max_quantity"] >= b["min_quantity"]:
            warnings.append(
                f"{label}: tiers starting at {a['min_quantity']} and {b['min_quantity']} overlap"
            )
    return tiers, errors, warnings


def validate_tiered_discount(raw: dict | None, price: int | None) -> ValidationResult:
    """Variant tiered discount. price=None skips the amount <= price rule."""
    if raw is None:
        return ValidationResult.success(None)
    if not isinstance(raw, dict):
        return ValidationResult.failure("tiered_discount must be an object")

    tiers, errors, warnings = _validate_tiers(raw.get("tiers", []), price, "tiered_discount")
    active = raw.get("active", False)
    if not isinstance(active, bool):
        errors.append("tiered_discount.active must be true or false")
    elif active and not tiers and not errors:
        errors.append("tiered_discount must have at least one tier when active")

    start, end = _window(raw, errors, "tiered_discount")
    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success(
        {
            "active": active,
            "tiers": tiers,
            "start_date": start,
            "end_date": end,
            "badge": _clean_str(raw.get("badge"), "badge", max_length=50),
        },
        warnings,
    )


def validate_parent_tier_sets(raw, allowed: dict[str, list[str]], min_variant_price: int | None) -> ValidationResult:
    """
    Parent-level tier sets. A scoped entry must name one of the parent's
    attributes and one of its declared values. Amount tiers are checked
    against the cheapest variant of the parent.
    """
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        return ValidationResult.failure("tiered_discounts must be a list")

    errors: list[str] = []
    warnings: list[str] = []
    entries: list[dict] = []
    for i, entry in enumerate(raw):
        label = f"tiered_discounts[{i}]"
        if not isinstance(entry, dict):
            errors.append(f"{label} must be an object")
            continue

        attribute = entry.get("attribute")
        attribute_value = entry.get("attribute_value")
        if attribute is not None:
            attribute = str(attribute).strip().lower()
            if attribute not in allowed:
                errors.append(f"{label}.attribute '{attribute}' is not defined on the product")
            elif attribute_value is None or str(attribute_value).strip() not in allowed[attribute]:
                errors.append(f"{label}.attribute_value '{attribute_value}' is not allowed for '{attribute}'")
            else:
                attribute_value = str(attribute_value).strip()
        else:
            attribute_value = None

        result = validate_tiered_discount(
            {k: entry.get(k) for k in ("active", "tiers", "start_date", "end_date", "badge") if k in entry},
            min_variant_price,
        )
        warnings.extend(f"{label}: {w}" for w in result.warnings)
        if not result.ok:
            errors.extend(f"{label}: {e}" for e in result.errors)
            continue
        entries.append({"attribute": attribute, "attribute_value": attribute_value, **result.value})

    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success(entries, warnings)


# =============================================================================
# Variant creation pipeline stages (pure; the parent is pre-fetched)
# =============================================================================

def check_parent_exists(ctx: dict) -> ValidationResult:
    if ctx.get("parent") is None:
        return ValidationResult.failure("Parent product not found")
    return ValidationResult.success(ctx)


def check_attribute_membership(ctx: dict) -> ValidationResult:
    allowed = ctx["parent"].allowed_values()
    try:
        attributes = AttributeMap(ctx["payload"].get("attributes") or {})
    except (ValueError, AttributeError, TypeError):
        return ValidationResult.failure("attributes must map attribute names to values")

    unknown = [name for name in attributes if name not in allowed]
    missing = [name for name in allowed if name not in attributes]
    errors = [f"Attribute '{name}' is not defined on the product" for name in unknown]
    errors += [f"Attribute '{name}' is required" for name in missing]
    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success({**ctx, "attributes": attributes})


def check_value_membership(ctx: dict) -> ValidationResult:
    allowed = ctx["parent"].allowed_values()
    errors = [
        f"Value '{value}' is not allowed for attribute '{name}'"
        for name, value in ctx["attributes"].items()
        if value not in allowed[name]
    ]
    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success(ctx)


def normalize_variant(ctx: dict) -> ValidationResult:
    """SKU upper-cased; name defaults to '<parent name> <attribute values>'."""
    payload = ctx["payload"]
    sku = (payload.get("sku") or "").strip().upper()
    if not sku:
        return ValidationResult.failure("sku is required")
    name = (payload.get("name") or "").strip()
    if not name:
        name = f"{ctx['parent'].name} {ctx['attributes'].joined_values()}".strip()
    price = payload.get("price")
    if price is None or price < 0 or price > MAX_PRICE:
        return ValidationResult.failure(f"price must be between 0 and {MAX_PRICE}")
    return ValidationResult.success({**ctx, "sku": sku, "name": name, "price": price})


def check_discount_coherence(ctx: dict) -> ValidationResult:
    payload = ctx["payload"]
    fixed = validate_fixed_discount(payload.get("fixed_discount"), ctx["price"])
    tiered = validate_tiered_discount(payload.get("tiered_discount"), ctx["price"])
    errors = fixed.errors + tiered.errors
    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success(
        {**ctx, "fixed_discount": fixed.value, "tiered_discount": tiered.value},
        tiered.warnings,
    )


VARIANT_CREATE_PIPELINE: list[Validator] = [
    check_parent_exists,
    check_attribute_membership,
    check_value_membership,
    normalize_variant,
    check_discount_coherence,
]


# =============================================================================
# Order payloads
# =============================================================================

def validate_items(raw_items, *, allow_empty: bool = False, require_price: bool = False) -> list[dict]:
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    if not raw_items and not allow_empty:
        raise ValidationError("Order must contain at least one item")
    if len(raw_items) > MAX_ORDER_LINES:
        raise ValidationError(f"Order cannot contain more than {MAX_ORDER_LINES} items")

    items = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object")
        variant_id = coerce_int(raw.get("variant_id"), f"items[{i}].variant_id")
        quantity = coerce_int(raw.get("quantity"), f"items[{i}].quantity")
        if variant_id <= 0:
            raise ValidationError(f"items[{i}].variant_id must be a positive integer")
        if quantity <= 0:
            raise ValidationError(f"items[{i}].quantity must be greater than 0", {"index": i})
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"items[{i}].quantity cannot exceed {MAX_LINE_QUANTITY}", {"index": i})
        item = {"variant_id": variant_id, "quantity": quantity}
        if require_price:
            item["final_price"] = coerce_int(raw.get("final_price"), f"items[{i}].final_price")
        items.append(item)
    return items


def validate_order_payload(payload: dict | None) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    delivery_method = payload.get("delivery_method")
    if delivery_method not in DELIVERY_METHODS:
        raise ValidationError(f"delivery_method must be one of: {', '.join(DELIVERY_METHODS)}")
    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    customer = payload.get("customer")
    if not isinstance(customer, dict):
        raise ValidationError("customer is required")
    address = customer.get("address")
    if delivery_method == "delivery" and not address:
        raise ValidationError("customer.address is required for delivery orders")
    if address is not None and not isinstance(address, dict):
        raise ValidationError("customer.address must be an object")

    return {
        "items": validate_items(payload.get("items")),
        "delivery_method": delivery_method,
        "payment_method": payment_method,
        "customer": {
            "user_id": coerce_optional_int(customer.get("user_id"), "customer.user_id"),
            "name": _clean_str(customer.get("name"), "customer.name", max_length=120, required=True),
            "email": _clean_str(customer.get("email"), "customer.email", max_length=255, required=True).lower(),
            "phone": _clean_str(customer.get("phone"), "customer.phone", max_length=40, required=True),
            "address": address,
        },
        "delivery_notes": _clean_str(payload.get("delivery_notes"), "delivery_notes", max_length=500),
        "customer_notes": _clean_str(payload.get("customer_notes"), "customer_notes", max_length=500),
    }


def validate_confirm_payload(payload: dict | None) -> dict:
    payload = payload or {}
    shipping_cost = coerce_int(payload.get("shipping_cost", 0), "shipping_cost")
    if shipping_cost < 0 or shipping_cost > MAX_SHIPPING_COST:
        raise ValidationError(f"shipping_cost must be between 0 and {MAX_SHIPPING_COST}")
    return {
        "shipping_cost": shipping_cost,
        "admin_notes": _clean_str(payload.get("admin_notes"), "admin_notes", max_length=1000),
    }


def clean_cancellation_reason(value) -> str:
    """Cancelling an order needs a reason the customer can be told."""
    reason = _clean_str(value, "reason", max_length=CANCELLATION_REASON_MAX_LENGTH, required=True)
    if len(reason) < CANCELLATION_REASON_MIN_LENGTH:
        raise ValidationError(
            f"reason must be at least {CANCELLATION_REASON_MIN_LENGTH} characters",
            {"field": "reason", "min_length": CANCELLATION_REASON_MIN_LENGTH},
        )
    return reason


def json_object(payload) -> dict:
    """Request body as a dict; a missing body is an empty one."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("JSON body must be an object")
    return payload
