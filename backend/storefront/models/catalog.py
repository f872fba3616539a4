from __future__ import annotations

from ..extensions import db
from ..attributes import AttributeMap
from ..time_utils import to_utc_z, within_window, coerce_datetime


class ProductParent(db.Model):
    """
    Product grouping that declares which attribute combinations generate variants.

    variant_attributes: [{"name": "size", "display_name": "Size",
                          "values": [{"value": "350ml", "display_value": "350 ml"}, ...]}, ...]

    tiered_discounts (legacy, parent-scoped):
        [{"attribute": "size" | None, "attribute_value": "350ml" | None,
          "tiers": [...], "active": bool, "start_date": ISO | None,
          "end_date": ISO | None, "badge": str | None}, ...]

    Catalog CRUD lives outside this service; only discount configuration
    is written here.
    """
    __tablename__ = "product_parents"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(220), nullable=True, unique=True)

    variant_attributes = db.Column(db.JSON, nullable=False, default=list)
    tiered_discounts = db.Column(db.JSON, nullable=False, default=list)

    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductParent id={self.id} name={self.name!r}>"

    def allowed_values(self) -> dict[str, list[str]]:
        """attribute name -> permitted values, as declared on the parent."""
        out: dict[str, list[str]] = {}
        for attr in self.variant_attributes or []:
            name = str(attr.get("name", "")).strip().lower()
            out[name] = [str(v.get("value", "")).strip() for v in attr.get("values") or []]
        return out

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "variant_attributes": self.variant_attributes or [],
            "tiered_discounts": self.tiered_discounts or [],
            "active": self.active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    """
    A purchasable unit (one SKU) belonging to a ProductParent.

    price is the immutable baseline for discount math, in whole currency units.

    STOCK: stock is a mutable counter, but it is only ever written through the
    stock ledger (services/stock_ledger_service.py), which pairs each change
    with exactly one StockMovement row. Never assign variant.stock directly.

    Never deleted physically; soft-deactivated through `active`.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_variants_price_nonnegative"),
        db.Index("ix_variants_parent_active", "parent_id", "active"),
        db.Index("ix_variants_active_stock", "active", "stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("product_parents.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    attributes = db.Column(db.JSON, nullable=False, default=dict)
    images = db.Column(db.JSON, nullable=False, default=list)

    price = db.Column(db.Integer, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    track_stock = db.Column(db.Boolean, nullable=False, default=True)
    allow_backorder = db.Column(db.Boolean, nullable=False, default=False)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    # {"enabled", "type", "value", "start_date", "end_date", "badge"}
    fixed_discount = db.Column(db.JSON, nullable=True)
    # {"active", "tiers": [...], "start_date", "end_date", "badge"}
    tiered_discount = db.Column(db.JSON, nullable=True)

    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    parent = db.relationship("ProductParent", backref=db.backref("variants", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r} stock={self.stock}>"

    @property
    def attribute_map(self) -> AttributeMap:
        return AttributeMap(self.attributes or {})

    @property
    def in_stock(self) -> bool:
        return self.stock > 0 and bool(self.active)

    @property
    def low_stock(self) -> bool:
        return 0 < self.stock <= self.low_stock_threshold

    @property
    def has_active_discount(self) -> bool:
        fixed = self.fixed_discount or {}
        if not fixed.get("enabled"):
            return False
        return within_window(
            coerce_datetime(fixed.get("start_date")),
            coerce_datetime(fixed.get("end_date")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "sku": self.sku,
            "name": self.name,
            "attributes": self.attribute_map.to_dict(),
            "images": self.images or [],
            "price": self.price,
            "stock": self.stock,
            "track_stock": self.track_stock,
            "allow_backorder": self.allow_backorder,
            "low_stock_threshold": self.low_stock_threshold,
            "fixed_discount": self.fixed_discount,
            "tiered_discount": self.tiered_discount,
            "active": self.active,
            "in_stock": self.in_stock,
            "low_stock": self.low_stock,
            "has_active_discount": self.has_active_discount,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
