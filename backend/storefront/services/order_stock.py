# Overview: All-or-nothing stock deduction and restoration across the lines of an order.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, StockConflictError
from .repositories import SqlStockStore, StockStore


@dataclass(frozen=True)
class StockLine:
    variant_id: int
    quantity: int


@dataclass(frozen=True)
class AppliedDelta:
    variant_id: int
    delta: int
    previous_stock: int
    new_stock: int


def aggregate_quantities(lines) -> dict[int, int]:
    """variant_id -> summed quantity (one variant may appear on several lines)."""
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.variant_id] = totals.get(line.variant_id, 0) + line.quantity
    return totals


class OrderStockTransaction:
    """
    Applies a set of per-variant stock deltas as one unit.

    1. check(): every variant exists and has enough stock for the summed
       request. All shortfalls are reported together; nothing is written.
    2. apply(): one conditional UPDATE per delta. If any of them is rejected
       (another request took the stock after the check), the deltas already
       applied are reversed and StockConflictError is raised.

    Ledger rows are written by the caller only after apply() returns, so a
    failed order never leaves movements behind. Against the SQL store this
    all runs inside the caller's DB transaction, which is rolled back on
    error as well.
    """

    def __init__(self, store: StockStore | None = None):
        self.store = store or SqlStockStore()
        self.applied: list[AppliedDelta] = []

    def check(self, requested: dict[int, int]) -> None:
        """requested: variant_id -> units to take out of stock (<= 0 entries are ignored)."""
        missing = []
        insufficient = []
        for variant_id in sorted(requested):
            quantity = requested[variant_id]
            if quantity <= 0:
                continue
            state = self.store.get_state(variant_id)
            if state is None:
                missing.append(variant_id)
                continue
            if state.enforces_floor and quantity > state.stock:
                insufficient.append({
                    "variant_id": variant_id,
                    "available": state.stock,
                    "requested": quantity,
                })

        if missing:
            raise NotFoundError("Variant not found", {"variant_ids": missing})
        if insufficient:
            raise InsufficientStockError("Insufficient stock", {"items": insufficient})

    def apply(self, deltas: list[tuple[int, int]]) -> list[AppliedDelta]:
        """
        Apply (variant_id, delta) pairs in variant order. Negative deltas
        are guarded, positive ones (restorations) are not.
        """
        # Same lock order for every order touching the same variants.
        ordered = sorted(
            ((vid, d) for vid, d in deltas if d != 0),
            key=lambda pair: pair[0],
        )
        for variant_id, delta in ordered:
            result = self.store.apply_delta(variant_id, delta, guarded=delta < 0)
            if result is None:
                self.compensate()
                raise StockConflictError(
                    "Stock changed while the order was being placed",
                    {"variant_id": variant_id, "requested": -delta},
                )
            previous_stock, new_stock = result
            self.applied.append(AppliedDelta(variant_id, delta, previous_stock, new_stock))
        return list(self.applied)

    def compensate(self) -> None:
        """Reverse every applied delta, newest first."""
        if not self.applied:
            return
        current_app.logger.warning(
            "Reversing %d stock change(s) of a failed order: %s",
            len(self.applied),
            ", ".join(f"variant {a.variant_id} {a.delta:+d}" for a in self.applied),
        )
        for applied in reversed(self.applied):
            self.store.apply_delta(applied.variant_id, -applied.delta, guarded=False)
        self.applied = []

    def deduct(self, lines: list[StockLine]) -> list[AppliedDelta]:
        self.check(aggregate_quantities(lines))
        return self.apply([(line.variant_id, -line.quantity) for line in lines])

    def restore(self, lines: list[StockLine]) -> list[AppliedDelta]:
        return self.apply([(line.variant_id, line.quantity) for line in lines])
