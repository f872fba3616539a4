# Overview: Catalog and stock storage interfaces injected into pricing and stock services.

"""
Storage seams for the pricing engine and the stock ledger.

The discount resolver and the order stock transaction never query models
directly; they receive a CatalogRepository (read-only catalog access) and a
StockStore (atomic stock counter). The SQL implementations below are the
defaults; tests may pass in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, runtime_checkable

from sqlalchemy import and_, or_, select, update

from ..extensions import db
from ..models import ProductParent, ProductVariant
from .discount_service import ParentTierSet, VariantPricing


@dataclass(frozen=True)
class StockState:
    variant_id: int
    stock: int
    track_stock: bool
    allow_backorder: bool
    active: bool

    @property
    def enforces_floor(self) -> bool:
        """False when stock may go below zero (backorder or untracked)."""
        return self.track_stock and not self.allow_backorder


@runtime_checkable
class CatalogRepository(Protocol):
    """Read-only access to variants and their parents' legacy tier sets."""

    def get_pricing(self, variant_id: int) -> VariantPricing | None:
        ...

    def get_pricings(self, variant_ids: Iterable[int]) -> dict[int, VariantPricing]:
        ...

    def get_parent_tier_sets(self, parent_id: int) -> list[ParentTierSet] | None:
        """None when the parent does not exist."""
        ...


@runtime_checkable
class StockStore(Protocol):
    """Per-variant stock counter with an atomic conditional update."""

    def get_state(self, variant_id: int) -> StockState | None:
        ...

    def apply_delta(self, variant_id: int, delta: int, *, guarded: bool = True) -> tuple[int, int] | None:
        """
        Add delta to stock in one statement.

        guarded=True: only if the result stays >= 0, unless the variant allows
        backorder or does not track stock.

        Returns (previous_stock, new_stock), or None when the guard rejected
        the update (or the variant does not exist).
        """
        ...


class SqlCatalogRepository:
    """CatalogRepository over the SQLAlchemy session."""

    def get_pricing(self, variant_id: int) -> VariantPricing | None:
        variant = db.session.get(ProductVariant, variant_id)
        if variant is None:
            return None
        return VariantPricing.from_model(variant)

    def get_pricings(self, variant_ids: Iterable[int]) -> dict[int, VariantPricing]:
        ids = list(set(variant_ids))
        if not ids:
            return {}
        rows = db.session.query(ProductVariant).filter(ProductVariant.id.in_(ids)).all()
        return {row.id: VariantPricing.from_model(row) for row in rows}

    def get_parent_tier_sets(self, parent_id: int) -> list[ParentTierSet] | None:
        parent = db.session.get(ProductParent, parent_id)
        if parent is None:
            return None
        return [ParentTierSet.from_dict(raw) for raw in parent.tiered_discounts or []]


class SqlStockStore:
    """
    StockStore over the SQLAlchemy session.

    apply_delta is a single UPDATE ... WHERE stock + delta >= 0, so two
    requests that both saw stock=5 cannot both take 5 units: the second
    UPDATE matches zero rows. The row lock taken by the UPDATE also makes
    the follow-up read of the new value consistent within the transaction.
    """

    def get_state(self, variant_id: int) -> StockState | None:
        row = db.session.execute(
            select(
                ProductVariant.id,
                ProductVariant.stock,
                ProductVariant.track_stock,
                ProductVariant.allow_backorder,
                ProductVariant.active,
            ).where(ProductVariant.id == variant_id)
        ).first()
        if row is None:
            return None
        return StockState(
            variant_id=row.id,
            stock=row.stock,
            track_stock=row.track_stock,
            allow_backorder=row.allow_backorder,
            active=row.active,
        )

    def apply_delta(self, variant_id: int, delta: int, *, guarded: bool = True) -> tuple[int, int] | None:
        conditions = [ProductVariant.id == variant_id]
        if guarded and delta < 0:
            conditions.append(
                or_(
                    ProductVariant.allow_backorder.is_(True),
                    ProductVariant.track_stock.is_(False),
                    ProductVariant.stock + delta >= 0,
                )
            )

        stmt = (
            update(ProductVariant)
            .where(and_(*conditions))
            .values(
                stock=ProductVariant.stock + delta,
                version_id=ProductVariant.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if result.rowcount != 1:
            return None

        new_stock = db.session.execute(
            select(ProductVariant.stock).where(ProductVariant.id == variant_id)
        ).scalar_one()
        return new_stock - delta, new_stock
