# Overview: Cart pricing and client price validation.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..errors import NotFoundError
from ..time_utils import utcnow
from .discount_service import PriceResolution, default_catalog, resolve_variant_price


@dataclass(frozen=True)
class PricedLine:
    variant_id: int
    quantity: int
    resolution: PriceResolution

    @property
    def price_per_unit(self) -> int:
        return self.resolution.final_price_per_unit

    @property
    def discount(self) -> int:
        return self.resolution.total_discount_for_quantity

    @property
    def subtotal(self) -> int:
        return self.resolution.subtotal

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "original_price": self.resolution.original_price,
            "price_per_unit": self.price_per_unit,
            "discount": self.discount,
            "subtotal": self.subtotal,
            "applied_tier": self.resolution.applied_tier.to_dict() if self.resolution.applied_tier else None,
        }


def price_cart(items: list[dict], *, catalog=None, now: datetime | None = None) -> list[PricedLine]:
    """
    Price each {variant_id, quantity} line on its own.

    Lines never affect each other, the same variant on two lines is priced
    twice at its own quantity. Stock is not checked here. Variants are
    loaded in one batch and each parent's tier sets once.
    """
    if not items:
        return []
    catalog = catalog or default_catalog()
    now = now or utcnow()

    variant_ids = [item["variant_id"] for item in items]
    variants = catalog.get_pricings(variant_ids)
    missing = sorted({vid for vid in variant_ids if vid not in variants})
    if missing:
        raise NotFoundError("Variant not found", {"variant_ids": missing})

    parent_ids = sorted({v.parent_id for v in variants.values() if v.parent_id is not None})
    parent_tiers = {pid: catalog.get_parent_tier_sets(pid) or [] for pid in parent_ids}

    lines: list[PricedLine] = []
    for item in items:
        variant = variants[item["variant_id"]]
        resolution = resolve_variant_price(variant, item["quantity"], parent_tiers.get(variant.parent_id, []), now)
        lines.append(PricedLine(variant_id=variant.id, quantity=item["quantity"], resolution=resolution))
    return lines


def cart_totals(lines: list[PricedLine]) -> dict:
    return {
        "subtotal": sum(line.subtotal for line in lines),
        "total_discount": sum(line.discount for line in lines),
    }


def validate_cart(items: list[dict], *, catalog=None, now: datetime | None = None) -> dict:
    """
    Compare client-side unit prices against the server resolution.

    Each item: {variant_id, quantity, final_price}. Any mismatch makes the
    cart invalid; the caller should refresh prices before placing the order.
    """
    lines = price_cart(
        [{"variant_id": i["variant_id"], "quantity": i["quantity"]} for i in items],
        catalog=catalog,
        now=now,
    )

    discrepancies = []
    for item, line in zip(items, lines):
        client_price = item["final_price"]
        if client_price != line.price_per_unit:
            discrepancies.append({
                "variant_id": line.variant_id,
                "quantity": line.quantity,
                "client_price": client_price,
                "server_price": line.price_per_unit,
            })

    if discrepancies:
        return {"valid": False, "discrepancies": discrepancies}
    return {
        "valid": True,
        "items": [line.to_dict() for line in lines],
        **cart_totals(lines),
    }
