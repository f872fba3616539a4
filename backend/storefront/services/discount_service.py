# Overview: Discount resolution for variants (fixed, tiered and parent-scoped legacy tiers).

"""
Price resolution for a variant at a requested quantity.

Stages run on the running price, so discounts compound:

  1. fixed discount (enabled and inside its date window)
  2. variant tiered discount (active, inside its window): the tier with the
     highest min_quantity that still contains the quantity
  3. parent tiered discounts, only when stages 1-2 left the price unchanged:
     the first active, in-window entry scoped to one of the variant's
     attributes (unscoped entries are used when no scoped entry matches)

Every stage rounds half-up to whole currency units and never goes below 0.
The resolver itself is pure: callers fetch the data (CatalogRepository) and
pass it in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from ..attributes import AttributeMap
from ..errors import InvalidQuantityError, NotFoundError
from ..time_utils import coerce_datetime, to_utc_z, utcnow, within_window


PERCENTAGE = "percentage"
AMOUNT = "amount"
DISCOUNT_TYPES = (PERCENTAGE, AMOUNT)

# Tier preview shows at most this many "from N units" rows.
TIER_PREVIEW_LIMIT = 2


def _dec(value) -> Decimal:
    return Decimal(str(value))


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_discount(price: int, discount_type: str, value) -> int:
    """One discount stage against the running price. Never negative."""
    base = Decimal(price)
    if discount_type == PERCENTAGE:
        discounted = base - base * _dec(value) / Decimal(100)
    else:
        discounted = base - _dec(value)
    return max(0, round_half_up(discounted))


@dataclass(frozen=True)
class FixedDiscount:
    enabled: bool
    type: str
    value: Decimal
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    badge: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: dict | None) -> Optional["FixedDiscount"]:
        if not raw:
            return None
        return cls(
            enabled=bool(raw.get("enabled")),
            type=raw.get("type") or PERCENTAGE,
            value=_dec(raw.get("value") or 0),
            start_date=coerce_datetime(raw.get("start_date")),
            end_date=coerce_datetime(raw.get("end_date")),
            badge=raw.get("badge"),
        )

    def is_active(self, now: datetime) -> bool:
        return self.enabled and within_window(self.start_date, self.end_date, now)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "type": self.type,
            "value": _number(self.value),
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "badge": self.badge,
        }


@dataclass(frozen=True)
class Tier:
    min_quantity: int
    max_quantity: Optional[int]
    type: str
    value: Decimal

    @classmethod
    def from_dict(cls, raw: dict) -> "Tier":
        max_q = raw.get("max_quantity")
        return cls(
            min_quantity=int(raw.get("min_quantity") or 1),
            max_quantity=int(max_q) if max_q is not None else None,
            type=raw.get("type") or PERCENTAGE,
            value=_dec(raw.get("value") or 0),
        )

    def contains(self, quantity: int) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity

    def to_dict(self) -> dict:
        return {
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "type": self.type,
            "value": _number(self.value),
        }


def select_tier(tiers, quantity: int) -> Optional[Tier]:
    """Highest min_quantity whose range contains quantity."""
    for tier in sorted(tiers, key=lambda t: t.min_quantity, reverse=True):
        if tier.contains(quantity):
            return tier
    return None


@dataclass(frozen=True)
class TieredDiscount:
    active: bool
    tiers: tuple[Tier, ...] = ()
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    badge: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: dict | None) -> Optional["TieredDiscount"]:
        if not raw:
            return None
        return cls(
            active=bool(raw.get("active")),
            tiers=tuple(Tier.from_dict(t) for t in raw.get("tiers") or []),
            start_date=coerce_datetime(raw.get("start_date")),
            end_date=coerce_datetime(raw.get("end_date")),
            badge=raw.get("badge"),
        )

    def is_active(self, now: datetime) -> bool:
        return self.active and within_window(self.start_date, self.end_date, now)


@dataclass(frozen=True)
class ParentTierSet(TieredDiscount):
    """Legacy parent-level tier set, optionally scoped to one attribute value."""

    attribute: Optional[str] = None
    attribute_value: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: dict) -> "ParentTierSet":
        base = TieredDiscount.from_dict(raw) or TieredDiscount(active=False)
        return cls(
            active=base.active,
            tiers=base.tiers,
            start_date=base.start_date,
            end_date=base.end_date,
            badge=base.badge,
            attribute=raw.get("attribute") or None,
            attribute_value=raw.get("attribute_value"),
        )

    @property
    def scoped(self) -> bool:
        return self.attribute is not None


@dataclass(frozen=True)
class VariantPricing:
    """The subset of a variant the resolver reads."""

    id: int
    parent_id: Optional[int]
    price: int
    attributes: AttributeMap = field(default_factory=AttributeMap)
    fixed_discount: Optional[FixedDiscount] = None
    tiered_discount: Optional[TieredDiscount] = None
    active: bool = True

    @classmethod
    def from_model(cls, variant) -> "VariantPricing":
        return cls(
            id=variant.id,
            parent_id=variant.parent_id,
            price=int(variant.price),
            attributes=AttributeMap(variant.attributes or {}),
            fixed_discount=FixedDiscount.from_dict(variant.fixed_discount),
            tiered_discount=TieredDiscount.from_dict(variant.tiered_discount),
            active=bool(variant.active),
        )


@dataclass(frozen=True)
class PriceResolution:
    variant_id: int
    quantity: int
    original_price: int
    final_price_per_unit: int
    applied_tier: Optional[Tier] = None
    fixed_applied: bool = False
    source: Optional[str] = None  # "variant_tier" | "parent_tier" | None

    @property
    def discount_per_unit(self) -> int:
        return self.original_price - self.final_price_per_unit

    @property
    def total_discount_for_quantity(self) -> int:
        return self.discount_per_unit * self.quantity

    @property
    def subtotal(self) -> int:
        return self.final_price_per_unit * self.quantity

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "original_price": self.original_price,
            "final_price_per_unit": self.final_price_per_unit,
            "discount_per_unit": self.discount_per_unit,
            "total_discount_for_quantity": self.total_discount_for_quantity,
            "applied_tier": self.applied_tier.to_dict() if self.applied_tier else None,
            "fixed_applied": self.fixed_applied,
            "source": self.source,
        }


@dataclass(frozen=True)
class TierPreview:
    min_quantity: int
    max_quantity: Optional[int]
    type: str
    value: Decimal
    price_per_unit: int
    badge: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "type": self.type,
            "value": _number(self.value),
            "price_per_unit": self.price_per_unit,
            "badge": self.badge,
        }


def _number(value: Decimal):
    """Decimal -> int when whole, float otherwise (JSON friendly)."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def matching_parent_tier_set(
    variant: VariantPricing,
    parent_tiers: list[ParentTierSet] | None,
    now: datetime,
) -> Optional[ParentTierSet]:
    """
    First active, in-window parent entry that applies to the variant.
    Entries scoped to one of the variant's attribute values win over unscoped ones.
    """
    fallback = None
    for entry in parent_tiers or []:
        if not entry.is_active(now):
            continue
        if entry.scoped:
            if variant.attributes.matches(entry.attribute, entry.attribute_value):
                return entry
        elif fallback is None:
            fallback = entry
    return fallback


def resolve_variant_price(
    variant: VariantPricing,
    quantity: int,
    parent_tiers: list[ParentTierSet] | None = None,
    now: datetime | None = None,
) -> PriceResolution:
    """Pure price resolution for already-fetched data."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(
            "Quantity must be a positive integer",
            {"variant_id": variant.id, "quantity": quantity},
        )
    now = now or utcnow()

    original = max(0, int(variant.price))
    price = original
    fixed_applied = False
    applied_tier = None
    source = None

    fixed = variant.fixed_discount
    if fixed is not None and fixed.is_active(now):
        price = apply_discount(price, fixed.type, fixed.value)
        fixed_applied = True

    tiered = variant.tiered_discount
    if tiered is not None and tiered.is_active(now):
        tier = select_tier(tiered.tiers, quantity)
        if tier is not None:
            price = apply_discount(price, tier.type, tier.value)
            applied_tier = tier
            source = "variant_tier"

    if price == original:
        entry = matching_parent_tier_set(variant, parent_tiers, now)
        if entry is not None:
            tier = select_tier(entry.tiers, quantity)
            if tier is not None:
                price = apply_discount(original, tier.type, tier.value)
                applied_tier = tier
                source = "parent_tier"

    return PriceResolution(
        variant_id=variant.id,
        quantity=quantity,
        original_price=original,
        final_price_per_unit=max(0, price),
        applied_tier=applied_tier,
        fixed_applied=fixed_applied,
        source=source,
    )


def preview_variant_tiers(
    variant: VariantPricing,
    parent_tiers: list[ParentTierSet] | None,
    now: datetime | None = None,
) -> list[TierPreview]:
    """First two parent tiers (ascending min_quantity) priced against the original price."""
    now = now or utcnow()
    entry = matching_parent_tier_set(variant, parent_tiers, now)
    if entry is None:
        return []
    tiers = sorted(entry.tiers, key=lambda t: t.min_quantity)[:TIER_PREVIEW_LIMIT]
    return [
        TierPreview(
            min_quantity=t.min_quantity,
            max_quantity=t.max_quantity,
            type=t.type,
            value=t.value,
            price_per_unit=apply_discount(variant.price, t.type, t.value),
            badge=entry.badge,
        )
        for t in tiers
    ]


def default_catalog():
    from .repositories import SqlCatalogRepository
    return SqlCatalogRepository()


def load_pricing(variant_id: int, catalog) -> tuple[VariantPricing, list[ParentTierSet]]:
    variant = catalog.get_pricing(variant_id)
    if variant is None:
        raise NotFoundError("Variant not found", {"variant_id": variant_id})
    parent_tiers = []
    if variant.parent_id is not None:
        parent_tiers = catalog.get_parent_tier_sets(variant.parent_id) or []
    return variant, parent_tiers


def resolve_price(variant_id: int, quantity: int, *, catalog=None, now: datetime | None = None) -> PriceResolution:
    catalog = catalog or default_catalog()
    variant, parent_tiers = load_pricing(variant_id, catalog)
    return resolve_variant_price(variant, quantity, parent_tiers, now)


def preview_tiers(variant_id: int, *, catalog=None, now: datetime | None = None) -> list[TierPreview]:
    catalog = catalog or default_catalog()
    variant, parent_tiers = load_pricing(variant_id, catalog)
    return preview_variant_tiers(variant, parent_tiers, now)


def discount_preview(
    variant_id: int,
    quantity: int | None = None,
    *,
    catalog=None,
    now: datetime | None = None,
) -> dict:
    """
    Storefront badge data: the fixed discount alone (what a product card
    shows), the parent tier previews and, if quantity is given, the full
    resolution for that quantity.
    """
    catalog = catalog or default_catalog()
    now = now or utcnow()
    variant, parent_tiers = load_pricing(variant_id, catalog)

    fixed = variant.fixed_discount
    has_discount = fixed is not None and fixed.is_active(now)
    discounted = apply_discount(variant.price, fixed.type, fixed.value) if has_discount else variant.price

    data = {
        "variant_id": variant.id,
        "original_price": variant.price,
        "has_discount": has_discount,
        "discount_type": fixed.type if has_discount else None,
        "discount_value": _number(fixed.value) if has_discount else None,
        "discounted_price": discounted,
        "badge": fixed.badge if has_discount else None,
        "tier_previews": [p.to_dict() for p in preview_variant_tiers(variant, parent_tiers, now)],
    }
    if quantity is not None:
        data["price_calculation"] = resolve_variant_price(variant, quantity, parent_tiers, now).to_dict()
    return data
