# Overview: Catalog writes owned by the pricing engine: variant creation and discount configuration.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import ProductParent, ProductVariant
from ..validation import (
    VARIANT_CREATE_PIPELINE,
    ModelValidationPolicy,
    raise_for,
    run_pipeline,
    validate_fixed_discount,
    validate_parent_tier_sets,
    validate_payload,
    validate_tiered_discount,
)
from .concurrency import run_with_retry


VARIANT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "parent_id", "sku", "name", "attributes", "images", "price", "stock",
        "track_stock", "allow_backorder", "low_stock_threshold",
        "fixed_discount", "tiered_discount", "active",
    },
    required_on_create={"parent_id", "sku", "attributes", "price"},
)


def _log_warnings(subject: str, warnings) -> list[str]:
    warnings = list(warnings)
    for warning in warnings:
        current_app.logger.warning("%s: %s", subject, warning)
    return warnings


def create_variant(payload: dict) -> tuple[ProductVariant, list[str]]:
    """
    Create a variant after the ordered validation pipeline:
    parent exists -> attribute names -> attribute values -> normalization
    -> discount coherence. Returns the variant and any non-fatal warnings.

    Initial stock is taken as-is; later changes go through the stock ledger.
    """
    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_CREATE_POLICY, partial=False)
    if patch.get("stock") is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")

    parent = db.session.get(ProductParent, patch["parent_id"])
    result = run_pipeline({"payload": patch, "parent": parent}, VARIANT_CREATE_PIPELINE)
    if not result.ok and parent is None:
        raise NotFoundError("Parent product not found", {"parent_id": patch["parent_id"]})
    ctx = raise_for(result)

    existing = db.session.query(ProductVariant).filter(
        ProductVariant.parent_id == parent.id,
        ProductVariant.active.is_(True),
    ).all()
    for other in existing:
        if other.attribute_map == ctx["attributes"]:
            raise ValidationError(
                "A variant with these attributes already exists",
                {"variant_id": other.id},
            )
    if db.session.query(ProductVariant.id).filter_by(sku=ctx["sku"]).first():
        raise ValidationError("SKU already exists", {"sku": ctx["sku"]})

    variant = ProductVariant(
        parent_id=parent.id,
        sku=ctx["sku"],
        name=ctx["name"],
        attributes=ctx["attributes"].to_dict(),
        images=patch.get("images") or [],
        price=ctx["price"],
        stock=patch.get("stock") or 0,
        track_stock=patch.get("track_stock", True),
        allow_backorder=patch.get("allow_backorder", False),
        low_stock_threshold=patch.get("low_stock_threshold", 5),
        fixed_discount=ctx["fixed_discount"],
        tiered_discount=ctx["tiered_discount"],
        active=patch.get("active", True),
    )
    db.session.add(variant)
    db.session.commit()
    return variant, _log_warnings(f"Variant {variant.sku}", result.warnings)


def update_variant_discounts(variant_id: int, payload: dict) -> tuple[ProductVariant, list[str]]:
    """
    Replace the fixed and/or tiered discount of a variant. Keys absent from
    the payload are left alone; an explicit null clears the discount.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - {"fixed_discount", "tiered_discount"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    def _op():
        variant = db.session.get(ProductVariant, variant_id)
        if variant is None:
            raise NotFoundError("Variant not found", {"variant_id": variant_id})

        warnings: list[str] = []
        if "fixed_discount" in payload:
            variant.fixed_discount = raise_for(validate_fixed_discount(payload["fixed_discount"], variant.price))
        if "tiered_discount" in payload:
            result = validate_tiered_discount(payload["tiered_discount"], variant.price)
            variant.tiered_discount = raise_for(result)
            warnings.extend(result.warnings)

        db.session.commit()
        return variant, warnings

    variant, warnings = run_with_retry(_op)
    return variant, _log_warnings(f"Variant {variant.sku}", warnings)


def update_parent_tiered_discounts(parent_id: int, payload: dict) -> tuple[ProductParent, list[str]]:
    if not isinstance(payload, dict) or "tiered_discounts" not in payload:
        raise ValidationError("tiered_discounts is required")

    def _op():
        parent = db.session.get(ProductParent, parent_id)
        if parent is None:
            raise NotFoundError("Parent product not found", {"parent_id": parent_id})

        min_price = (
            db.session.query(func.min(ProductVariant.price))
            .filter(ProductVariant.parent_id == parent.id)
            .scalar()
        )
        result = validate_parent_tier_sets(payload["tiered_discounts"], parent.allowed_values(), min_price)
        parent.tiered_discounts = raise_for(result)
        db.session.commit()
        return parent, list(result.warnings)

    parent, warnings = run_with_retry(_op)
    return parent, _log_warnings(f"Parent {parent.id}", warnings)
