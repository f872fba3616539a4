from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_TYPES = ("sale", "cancellation", "restock", "adjustment", "return")
MANUAL_MOVEMENT_TYPES = ("restock", "adjustment", "return")


class StockMovement(db.Model):
    """
    Immutable stock ledger row. One row per stock-affecting event.

    quantity is the signed delta: negative for sale, positive for
    cancellation/restock/return, caller-supplied sign for adjustment.
    previous_stock + quantity == new_stock always holds.

    Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity <> 0", name="ck_stock_movements_nonzero"),
        db.CheckConstraint("previous_stock + quantity = new_stock", name="ck_stock_movements_balanced"),
        db.Index("ix_stock_movements_variant_created", "variant_id", "created_at"),
        db.Index("ix_stock_movements_variant_type_created", "variant_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    # Free-form actor reference; authentication lives outside this service
    user_id = db.Column(db.Integer, nullable=True)

    reason = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.String(1000), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    variant = db.relationship("ProductVariant")
    order = db.relationship("Order")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "order_id": self.order_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "user_id": self.user_id,
            "reason": self.reason,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
