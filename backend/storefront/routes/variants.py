# backend/storefront/routes/variants.py
"""
Variant pricing and discount configuration routes.

Read endpoints expose the price resolver to the storefront:
- discount-preview: badge data (fixed discount) + parent tier previews,
  and the full resolution when ?quantity= is given
- tier-preview: at most two "from N units" rows
- price: authoritative unit price at a quantity

Write endpoints run the validation pipeline before persisting.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError, NotFoundError
from ..extensions import db
from ..models import ProductParent, ProductVariant
from ..services import catalog_service, discount_service, stock_ledger_service
from ..validation import coerce_int, json_object


variants_bp = Blueprint("variants", __name__, url_prefix="/api/variants")
parents_bp = Blueprint("parents", __name__, url_prefix="/api/parents")


def _quantity_arg(required: bool = False):
    raw = request.args.get("quantity")
    if raw is None:
        return 1 if required else None
    return coerce_int(raw, "quantity")


@variants_bp.post("/")
def create_variant_route():
    try:
        payload = json_object(request.get_json(silent=True))
        variant, warnings = catalog_service.create_variant(payload)
        return jsonify({"variant": variant.to_dict(), "warnings": warnings}), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create variant")
        return jsonify({"error": "Internal server error"}), 500


@variants_bp.get("/low-stock")
def low_stock_route():
    variants = stock_ledger_service.low_stock_variants()
    return jsonify({"variants": [v.to_dict() for v in variants], "count": len(variants)}), 200


@variants_bp.get("/out-of-stock")
def out_of_stock_route():
    variants = stock_ledger_service.out_of_stock_variants()
    return jsonify({"variants": [v.to_dict() for v in variants], "count": len(variants)}), 200


@variants_bp.get("/<int:variant_id>")
def get_variant_route(variant_id: int):
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None:
        return jsonify(NotFoundError("Variant not found").to_dict()), 404
    return jsonify({"variant": variant.to_dict()}), 200


@variants_bp.get("/<int:variant_id>/discount-preview")
def discount_preview_route(variant_id: int):
    try:
        data = discount_service.discount_preview(variant_id, _quantity_arg())
        return jsonify(data), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build discount preview")
        return jsonify({"error": "Internal server error"}), 500


@variants_bp.get("/<int:variant_id>/tier-preview")
def tier_preview_route(variant_id: int):
    try:
        previews = discount_service.preview_tiers(variant_id)
        return jsonify({"variant_id": variant_id, "tiers": [p.to_dict() for p in previews]}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code


@variants_bp.get("/<int:variant_id>/price")
def resolve_price_route(variant_id: int):
    try:
        resolution = discount_service.resolve_price(variant_id, _quantity_arg(required=True))
        return jsonify(resolution.to_dict()), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code


@variants_bp.put("/<int:variant_id>/discounts")
def update_discounts_route(variant_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        variant, warnings = catalog_service.update_variant_discounts(variant_id, payload)
        return jsonify({"variant": variant.to_dict(), "warnings": warnings}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update variant discounts")
        return jsonify({"error": "Internal server error"}), 500


@parents_bp.get("/<int:parent_id>")
def get_parent_route(parent_id: int):
    parent = db.session.get(ProductParent, parent_id)
    if parent is None:
        return jsonify(NotFoundError("Parent product not found").to_dict()), 404
    return jsonify({"parent": parent.to_dict()}), 200


@parents_bp.put("/<int:parent_id>/tiered-discounts")
def update_parent_tiers_route(parent_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        parent, warnings = catalog_service.update_parent_tiered_discounts(parent_id, payload)
        return jsonify({"parent": parent.to_dict(), "warnings": warnings}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update parent tiered discounts")
        return jsonify({"error": "Internal server error"}), 500
