# Overview: Order documents: creation with stock deduction, confirmation, status changes, cancellation, edits.

"""
Order service

Every write runs in one DB transaction (BEGIN IMMEDIATE on SQLite):

- create_order: validate -> price lines -> check stock for all lines ->
  allocate order number -> insert order -> conditional stock decrements
  -> one sale movement per line -> commit. Any failure rolls everything
  back; no order, stock change or movement survives.
- cancel_order: state machine guard -> mark cancelled -> restore stock ->
  one cancellation movement per line -> commit. The guard is what makes a
  second cancellation fail instead of restoring stock twice.
- edit_order_items: re-price new lines, apply per-variant differences as
  adjustment movements.

Stock failures are not retried; the caller decides whether to try again
at the new price/stock state.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, ProductVariant
from ..time_utils import utcnow
from ..validation import clean_cancellation_reason, validate_confirm_payload, validate_items, validate_order_payload
from .cart_service import PricedLine, cart_totals, price_cart
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .document_service import next_order_number
from .order_lifecycle import (
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    PENDING,
    ensure_transition,
    is_editable,
    validate_status,
)
from .order_stock import OrderStockTransaction, StockLine, aggregate_quantities
from .stock_ledger_service import record_movement


def _load_variants(variant_ids, *, allow_inactive: set[int] = frozenset()) -> dict[int, ProductVariant]:
    ids = sorted(set(variant_ids))
    variants = {
        v.id: v
        for v in db.session.query(ProductVariant).filter(ProductVariant.id.in_(ids)).all()
    }
    missing = [vid for vid in ids if vid not in variants]
    if missing:
        raise NotFoundError("Variant not found", {"variant_ids": missing})
    inactive = [vid for vid in ids if not variants[vid].active and vid not in allow_inactive]
    if inactive:
        raise ValidationError("Variant is no longer available", {"variant_ids": inactive})
    return variants


def _snapshot(variant: ProductVariant) -> dict:
    images = variant.images or []
    return {
        "sku": variant.sku,
        "name": variant.name,
        "price": variant.price,
        "attributes": variant.attribute_map.to_dict(),
        "image": images[0] if images else None,
        "parent_id": variant.parent_id,
    }


def _build_items(lines: list[PricedLine], variants: dict[int, ProductVariant]) -> list[OrderItem]:
    return [
        OrderItem(
            line_number=number,
            variant_id=line.variant_id,
            variant_snapshot=_snapshot(variants[line.variant_id]),
            quantity=line.quantity,
            price_per_unit=line.price_per_unit,
            discount=line.discount,
            subtotal=line.subtotal,
        )
        for number, line in enumerate(lines, start=1)
    ]


def _get_locked(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError("Order not found", {"order_id": order_id})
    return order


def create_order(payload: dict, *, catalog=None, store=None, now: datetime | None = None) -> Order:
    data = validate_order_payload(payload)
    prefix = current_app.config.get("ORDER_NUMBER_PREFIX", "QUE")

    def _op() -> int:
        begin_immediate()
        items = data["items"]
        variants = _load_variants(i["variant_id"] for i in items)
        lines = price_cart(items, catalog=catalog, now=now)

        txn = OrderStockTransaction(store)
        txn.check(aggregate_quantities(StockLine(i["variant_id"], i["quantity"]) for i in items))

        totals = cart_totals(lines)
        customer = data["customer"]
        order = Order(
            order_number=next_order_number(prefix, now),
            status=PENDING,
            customer_user_id=customer["user_id"],
            customer_name=customer["name"],
            customer_email=customer["email"],
            customer_phone=customer["phone"],
            customer_address=customer["address"],
            delivery_method=data["delivery_method"],
            payment_method=data["payment_method"],
            subtotal=totals["subtotal"],
            total_discount=totals["total_discount"],
            shipping_cost=0,
            total=totals["subtotal"],
            delivery_notes=data["delivery_notes"],
            customer_notes=data["customer_notes"],
        )
        order.items = _build_items(lines, variants)
        db.session.add(order)
        db.session.flush()

        applied = txn.apply([(i["variant_id"], -i["quantity"]) for i in items])
        for change in applied:
            record_movement(
                variant_id=change.variant_id,
                movement_type="sale",
                quantity=change.delta,
                previous_stock=change.previous_stock,
                new_stock=change.new_stock,
                order_id=order.id,
                user_id=customer["user_id"],
                reason=f"Sale - order {order.order_number}",
            )

        db.session.commit()
        return order.id

    order = db.session.get(Order, run_with_retry(_op))
    current_app.logger.info(
        "Order %s created: %d line(s), total %s", order.order_number, len(order.items), order.total,
    )
    return order


def confirm_order(order_id: int, payload: dict | None = None, *, user_id: int | None = None) -> Order:
    data = validate_confirm_payload(payload)

    def _op():
        begin_immediate()
        order = _get_locked(order_id)
        if order.status != PENDING:
            raise InvalidTransitionError(
                f"Only {PENDING} orders can be confirmed",
                {"from": order.status, "to": CONFIRMED},
            )
        order.status = CONFIRMED
        order.shipping_cost = data["shipping_cost"]
        order.total = order.subtotal + data["shipping_cost"]
        order.confirmed_at = utcnow()
        if data["admin_notes"] is not None:
            order.admin_notes = data["admin_notes"]
        order.updated_by_user_id = user_id
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_status(order_id: int, status: str, *, user_id: int | None = None, reason: str | None = None) -> Order:
    """Move along the state machine. cancelled runs the full cancellation."""
    validate_status(status)
    if status == CANCELLED:
        return cancel_order(order_id, reason=reason, user_id=user_id)

    def _op():
        begin_immediate()
        order = _get_locked(order_id)
        ensure_transition(order.status, status)
        order.status = status
        now = utcnow()
        if status == CONFIRMED:
            order.confirmed_at = now
        elif status == COMPLETED:
            order.completed_at = now
        order.updated_by_user_id = user_id
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, *, reason: str | None = None, user_id: int | None = None, store=None) -> Order:
    reason = clean_cancellation_reason(reason)

    def _op():
        begin_immediate()
        order = _get_locked(order_id)
        ensure_transition(order.status, CANCELLED)

        order.status = CANCELLED
        order.cancelled_at = utcnow()
        order.cancelled_by_user_id = user_id
        order.cancellation_reason = reason
        order.updated_by_user_id = user_id
        # Version check happens here, before any stock is touched.
        db.session.flush()

        txn = OrderStockTransaction(store)
        applied = txn.restore([StockLine(item.variant_id, item.quantity) for item in order.items])
        for change in applied:
            record_movement(
                variant_id=change.variant_id,
                movement_type="cancellation",
                quantity=change.delta,
                previous_stock=change.previous_stock,
                new_stock=change.new_stock,
                order_id=order.id,
                user_id=user_id,
                reason=f"Cancellation - order {order.order_number}",
                notes=reason,
            )

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s cancelled; stock restored for %d line(s)", order.order_number, len(order.items))
    return order


def edit_order_items(order_id: int, payload: dict, *, user_id: int | None = None, store=None) -> Order:
    """
    Replace the lines of an order that has not shipped yet. Lines are
    re-priced at current prices; stock moves by the per-variant difference.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    items = validate_items(payload.get("items"))

    def _op():
        begin_immediate()
        order = _get_locked(order_id)
        if not is_editable(order.status):
            raise InvalidTransitionError(
                f"Orders in status {order.status} cannot be edited",
                {"status": order.status},
            )

        old = aggregate_quantities(StockLine(i.variant_id, i.quantity) for i in order.items)
        new = aggregate_quantities(StockLine(i["variant_id"], i["quantity"]) for i in items)
        # Variants already on the order may have been deactivated since; they can stay.
        variants = _load_variants(new, allow_inactive=set(old))
        lines = price_cart(items)

        txn = OrderStockTransaction(store)
        txn.check({vid: new.get(vid, 0) - old.get(vid, 0) for vid in new})
        applied = txn.apply([(vid, old.get(vid, 0) - new.get(vid, 0)) for vid in set(old) | set(new)])

        order.items.clear()
        db.session.flush()
        order.items.extend(_build_items(lines, variants))

        totals = cart_totals(lines)
        order.subtotal = totals["subtotal"]
        order.total_discount = totals["total_discount"]
        order.total = totals["subtotal"] + order.shipping_cost
        order.updated_by_user_id = user_id

        for change in applied:
            record_movement(
                variant_id=change.variant_id,
                movement_type="adjustment",
                quantity=change.delta,
                previous_stock=change.previous_stock,
                new_stock=change.new_stock,
                order_id=order.id,
                user_id=user_id,
                reason=f"Order edit - order {order.order_number}",
            )

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s items edited", order.order_number)
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", {"order_id": order_id})
    return order


def get_order_by_number(order_number: str) -> Order:
    order = db.session.query(Order).filter_by(order_number=order_number.strip()).first()
    if order is None:
        raise NotFoundError("Order not found", {"order_number": order_number})
    return order


def list_orders(*, status: str | None = None, page: int = 1, per_page: int = 20) -> dict:
    query = db.session.query(Order)
    if status:
        validate_status(status)
        query = query.filter(Order.status == status)

    total = query.count()
    page = max(1, page)
    per_page = max(1, min(per_page, 100))
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [o.to_dict(include_items=False) for o in orders],
        "page": page,
        "per_page": per_page,
        "total": total,
    }
