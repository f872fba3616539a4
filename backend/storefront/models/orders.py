from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Customer order document.

    LIFECYCLE (services/order_lifecycle.py):
        pending_whatsapp -> confirmed -> preparing -> shipped -> completed
        cancelled is reachable from every state except completed.
        completed and cancelled are terminal.

    Stock is deducted when the order is created and restored when it is
    cancelled; both go through the stock ledger.

    All amounts are whole currency units.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_customer_email", "customer_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable order number (e.g., "QUE-20260115-001")
    order_number = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(32), nullable=False, default="pending_whatsapp", index=True)

    # Customer snapshot; user_id is set when an authenticated user placed the order
    customer_user_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(120), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(40), nullable=False)
    customer_address = db.Column(db.JSON, nullable=True)

    delivery_method = db.Column(db.String(16), nullable=False)  # pickup, delivery
    payment_method = db.Column(db.String(16), nullable=False)  # cash, transfer

    subtotal = db.Column(db.Integer, nullable=False, default=0)
    total_discount = db.Column(db.Integer, nullable=False, default=0)
    shipping_cost = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)

    delivery_notes = db.Column(db.String(500), nullable=True)
    customer_notes = db.Column(db.String(500), nullable=True)
    admin_notes = db.Column(db.String(1000), nullable=True)

    # Cancellation audit trail
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    updated_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.line_number",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "customer": {
                "user_id": self.customer_user_id,
                "name": self.customer_name,
                "email": self.customer_email,
                "phone": self.customer_phone,
                "address": self.customer_address,
            },
            "delivery_method": self.delivery_method,
            "payment_method": self.payment_method,
            "subtotal": self.subtotal,
            "total_discount": self.total_discount,
            "shipping_cost": self.shipping_cost,
            "total": self.total,
            "delivery_notes": self.delivery_notes,
            "customer_notes": self.customer_notes,
            "admin_notes": self.admin_notes,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Order line. variant_snapshot freezes sku/name/price/attributes/image at
    creation time so historical orders stay stable when the catalog changes.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_items_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    variant_snapshot = db.Column(db.JSON, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Integer, nullable=False)  # post-discount
    discount = db.Column(db.Integer, nullable=False, default=0)  # total for the line
    subtotal = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "variant_id": self.variant_id,
            "variant_snapshot": self.variant_snapshot,
            "quantity": self.quantity,
            "price_per_unit": self.price_per_unit,
            "discount": self.discount,
            "subtotal": self.subtotal,
        }


class OrderNumberSequence(db.Model):
    """
    Atomic per-day order number sequences.

    WHY: Two orders created in the same second must never share a number.
    """
    __tablename__ = "order_number_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", "date_key", name="uq_order_sequences_prefix_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(16), nullable=False)
    date_key = db.Column(db.String(8), nullable=False)  # YYYYMMDD
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
