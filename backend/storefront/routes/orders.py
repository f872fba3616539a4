# backend/storefront/routes/orders.py
"""
Order routes.

Stock is deducted on creation and restored on cancellation (or on a status
change to cancelled). Errors come back as {"error", "code", "details"}:
insufficient_stock / stock_conflict / invalid_transition / validation_error
are 400, unknown ids are 404.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import DomainError, ValidationError
from ..services import cart_service, order_service
from ..validation import coerce_int, coerce_optional_int, json_object, validate_items


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/")
def create_order_route():
    try:
        order = order_service.create_order(json_object(request.get_json(silent=True)))
        return jsonify({"order": order.to_dict()}), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/validate-cart")
def validate_cart_route():
    """Compare client prices with server prices before checkout."""
    try:
        payload = json_object(request.get_json(silent=True))
        items = validate_items(payload.get("items"), allow_empty=True, require_price=True)
        result = cart_service.validate_cart(items)
        return jsonify(result), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/")
def list_orders_route():
    try:
        page = coerce_int(request.args.get("page", "1"), "page")
        per_page = coerce_int(request.args.get("per_page", "20"), "per_page")
        data = order_service.list_orders(status=request.args.get("status"), page=page, per_page=per_page)
        return jsonify(data), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/number/<string:order_number>")
def get_order_by_number_route(order_number: str):
    try:
        order = order_service.get_order_by_number(order_number)
        return jsonify({"order": order.to_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.put("/<int:order_id>/confirm")
def confirm_order_route(order_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        order = order_service.confirm_order(order_id, payload, user_id=coerce_optional_int(payload.get("user_id"), "user_id"))
        return jsonify({"order": order.to_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/status")
def update_status_route(order_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        status = payload.get("status")
        if not status:
            raise ValidationError("status required")
        order = order_service.update_status(
            order_id,
            status,
            user_id=coerce_optional_int(payload.get("user_id"), "user_id"),
            reason=payload.get("reason"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/cancel")
def cancel_order_route(order_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        order = order_service.cancel_order(
            order_id,
            reason=payload.get("reason"),
            user_id=coerce_optional_int(payload.get("user_id"), "user_id"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/items")
def edit_items_route(order_id: int):
    try:
        payload = json_object(request.get_json(silent=True))
        order = order_service.edit_order_items(order_id, payload, user_id=coerce_optional_int(payload.get("user_id"), "user_id"))
        return jsonify({"order": order.to_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to edit order items")
        return jsonify({"error": "Internal server error"}), 500
