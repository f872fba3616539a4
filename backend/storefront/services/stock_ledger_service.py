# Overview: Stock ledger: every stock change paired with one immutable StockMovement.

"""
Stock ledger invariants

- variant.stock only changes through apply_stock_delta(), which performs the
  conditional UPDATE and appends the movement in the same transaction.
- previous_stock + quantity == new_stock for every movement (also a CHECK).
- Movements are append-only: no updates, no deletes.
- sale and cancellation are system movements written by the order service;
  restock, adjustment and return are manual and require a reason.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import and_

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import MANUAL_MOVEMENT_TYPES, MOVEMENT_TYPES, Order, ProductVariant, StockMovement
from .concurrency import begin_immediate, run_with_retry
from .repositories import SqlStockStore


REASON_MIN_LENGTH = 5
REASON_MAX_LENGTH = 500
NOTES_MAX_LENGTH = 1000
POSITIVE_ONLY_TYPES = {"restock", "return", "cancellation"}


def _clean_text(value, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters",
            {"field": field, "max_length": max_length},
        )
    return value or None


def record_movement(
    *,
    variant_id: int,
    movement_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    order_id: int | None = None,
    user_id: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Append one movement row (flushed, not committed)."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type '{movement_type}'", {"type": movement_type})
    if quantity == 0:
        raise ValidationError("Movement quantity cannot be zero")
    if previous_stock + quantity != new_stock:
        raise ValidationError(
            "Movement does not balance",
            {"previous_stock": previous_stock, "quantity": quantity, "new_stock": new_stock},
        )

    movement = StockMovement(
        variant_id=variant_id,
        order_id=order_id,
        type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        user_id=user_id,
        reason=_clean_text(reason, "reason", REASON_MAX_LENGTH),
        notes=_clean_text(notes, "notes", NOTES_MAX_LENGTH),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def apply_stock_delta(
    variant_id: int,
    delta: int,
    *,
    movement_type: str,
    order_id: int | None = None,
    user_id: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
    guarded: bool = True,
    store=None,
) -> StockMovement:
    """
    Change stock by delta and append the matching movement.

    Must run inside the caller's transaction. Raises NotFoundError for an
    unknown variant and InsufficientStockError when the guarded update
    would take stock below zero.
    """
    store = store or SqlStockStore()
    applied = store.apply_delta(variant_id, delta, guarded=guarded)
    if applied is None:
        state = store.get_state(variant_id)
        if state is None:
            raise NotFoundError("Variant not found", {"variant_id": variant_id})
        raise InsufficientStockError(
            "Stock cannot go below zero for this variant",
            {"variant_id": variant_id, "available": state.stock, "requested": -delta},
        )

    previous_stock, new_stock = applied
    return record_movement(
        variant_id=variant_id,
        movement_type=movement_type,
        quantity=delta,
        previous_stock=previous_stock,
        new_stock=new_stock,
        order_id=order_id,
        user_id=user_id,
        reason=reason,
        notes=notes,
    )


def record_manual_movement(
    *,
    variant_id: int,
    movement_type: str,
    quantity: int,
    reason: str | None,
    notes: str | None = None,
    user_id: int | None = None,
) -> tuple[StockMovement, ProductVariant]:
    """
    Operator stock change: restock, adjustment or return.

    restock/return must be positive; adjustment keeps the caller's sign.
    Commits on success.
    """
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(
            f"Movement type must be one of: {', '.join(MANUAL_MOVEMENT_TYPES)}",
            {"type": movement_type},
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity == 0:
        raise ValidationError("Quantity must be a non-zero integer", {"quantity": quantity})
    if movement_type in POSITIVE_ONLY_TYPES and quantity < 0:
        raise ValidationError(f"{movement_type} quantity must be positive", {"quantity": quantity})
    if reason is None or len(str(reason).strip()) < REASON_MIN_LENGTH:
        raise ValidationError(
            f"A reason of at least {REASON_MIN_LENGTH} characters is required for manual stock movements",
            {"field": "reason", "min_length": REASON_MIN_LENGTH},
        )

    def _op():
        begin_immediate()
        movement = apply_stock_delta(
            variant_id,
            quantity,
            movement_type=movement_type,
            user_id=user_id,
            reason=reason,
            notes=notes,
        )
        db.session.commit()
        return movement.id

    movement_id = run_with_retry(_op)
    movement = db.session.get(StockMovement, movement_id)
    variant = db.session.get(ProductVariant, variant_id)
    current_app.logger.info(
        "Manual stock movement %s on variant %s: %+d (%s -> %s)",
        movement_type, variant_id, quantity, movement.previous_stock, movement.new_stock,
    )
    return movement, variant


def list_variant_movements(variant_id: int, *, limit: int | None = None) -> list[StockMovement]:
    """Newest first."""
    if db.session.get(ProductVariant, variant_id) is None:
        raise NotFoundError("Variant not found", {"variant_id": variant_id})
    limit = limit or current_app.config.get("STOCK_HISTORY_DEFAULT_LIMIT", 50)
    return (
        db.session.query(StockMovement)
        .filter_by(variant_id=variant_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def list_order_movements(order_id: int) -> list[StockMovement]:
    """Chronological."""
    if db.session.get(Order, order_id) is None:
        raise NotFoundError("Order not found", {"order_id": order_id})
    return (
        db.session.query(StockMovement)
        .filter_by(order_id=order_id)
        .order_by(StockMovement.created_at.asc(), StockMovement.id.asc())
        .all()
    )


def list_movements(
    *,
    movement_type: str | None = None,
    variant_id: int | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    query = db.session.query(StockMovement)
    if movement_type:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Invalid movement type '{movement_type}'", {"type": movement_type})
        query = query.filter(StockMovement.type == movement_type)
    if variant_id:
        query = query.filter(StockMovement.variant_id == variant_id)

    total = query.count()
    page = max(1, page)
    per_page = max(1, min(per_page, 200))
    rows = (
        query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [m.to_dict() for m in rows],
        "page": page,
        "per_page": per_page,
        "total": total,
    }


def low_stock_variants() -> list[ProductVariant]:
    return (
        db.session.query(ProductVariant)
        .filter(
            and_(
                ProductVariant.active.is_(True),
                ProductVariant.track_stock.is_(True),
                ProductVariant.stock > 0,
                ProductVariant.stock <= ProductVariant.low_stock_threshold,
            )
        )
        .order_by(ProductVariant.stock.asc(), ProductVariant.id.asc())
        .all()
    )


def out_of_stock_variants() -> list[ProductVariant]:
    return (
        db.session.query(ProductVariant)
        .filter(
            and_(
                ProductVariant.active.is_(True),
                ProductVariant.track_stock.is_(True),
                ProductVariant.allow_backorder.is_(False),
                ProductVariant.stock <= 0,
            )
        )
        .order_by(ProductVariant.id.asc())
        .all()
    )
