# backend/storefront/routes/stock_movements.py
"""
Stock movement routes.

POST records a manual movement (restock, adjustment, return); sale and
cancellation movements are only written by the order service.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError
from ..services import stock_ledger_service
from ..validation import coerce_int, coerce_optional_int, json_object


stock_movements_bp = Blueprint("stock_movements", __name__, url_prefix="/api/stock-movements")


@stock_movements_bp.post("/")
def create_movement_route():
    try:
        payload = json_object(request.get_json(silent=True))
        variant_id = coerce_int(payload.get("variant_id"), "variant_id")
        quantity = coerce_int(payload.get("quantity"), "quantity")
        movement, variant = stock_ledger_service.record_manual_movement(
            variant_id=variant_id,
            movement_type=payload.get("type"),
            quantity=quantity,
            reason=payload.get("reason"),
            notes=payload.get("notes"),
            user_id=coerce_optional_int(payload.get("user_id"), "user_id"),
        )
        return jsonify({"movement": movement.to_dict(), "variant": variant.to_dict()}), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500


@stock_movements_bp.get("/")
def list_movements_route():
    try:
        data = stock_ledger_service.list_movements(
            movement_type=request.args.get("type"),
            variant_id=coerce_optional_int(request.args.get("variant_id"), "variant_id"),
            page=coerce_int(request.args.get("page", "1"), "page"),
            per_page=coerce_int(request.args.get("per_page", "50"), "per_page"),
        )
        return jsonify(data), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_movements_bp.get("/variant/<int:variant_id>")
def variant_movements_route(variant_id: int):
    try:
        limit = coerce_optional_int(request.args.get("limit"), "limit")
        movements = stock_ledger_service.list_variant_movements(variant_id, limit=limit)
        return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code


@stock_movements_bp.get("/order/<int:order_id>")
def order_movements_route(order_id: int):
    try:
        movements = stock_ledger_service.list_order_movements(order_id)
        return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
