"""Price resolution: fixed and tiered stages, compounding, parent tier fallback."""

from datetime import datetime

import pytest

from storefront.errors import InvalidQuantityError, NotFoundError
from storefront.services.discount_service import (
    ParentTierSet,
    apply_discount,
    resolve_price,
    resolve_variant_price,
)

from fakes import FakeCatalog, pricing


NOW = datetime(2026, 3, 15, 12, 0, 0)

TWO_TIERS = {
    "active": True,
    "tiers": [
        {"min_quantity": 5, "max_quantity": 9, "type": "percentage", "value": 10},
        {"min_quantity": 10, "max_quantity": None, "type": "percentage", "value": 20},
    ],
}


def resolve(variant, quantity, parent_tiers=None):
    tiers = [ParentTierSet.from_dict(raw) for raw in parent_tiers or []]
    return resolve_variant_price(variant, quantity, tiers, NOW)


def test_no_discount_keeps_price():
    result = resolve(pricing(price=10000), 3)
    assert result.final_price_per_unit == 10000
    assert result.total_discount_for_quantity == 0
    assert result.applied_tier is None
    assert result.source is None


def test_fixed_percentage_discount():
    variant = pricing(price=10000, fixed={"enabled": True, "type": "percentage", "value": 20})
    result = resolve(variant, 3)
    assert result.final_price_per_unit == 8000
    assert result.discount_per_unit == 2000
    assert result.total_discount_for_quantity == 6000
    assert result.fixed_applied is True


def test_amount_discount_larger_than_price_floors_at_zero():
    variant = pricing(price=100, fixed={"enabled": True, "type": "amount", "value": 200})
    result = resolve(variant, 4)
    assert result.final_price_per_unit == 0
    # Reflects the clamped amount, not the stored 200
    assert result.total_discount_for_quantity == 400


@pytest.mark.parametrize("fixed", [
    {"enabled": False, "type": "percentage", "value": 20},
    {"enabled": True, "type": "percentage", "value": 20, "start_date": "2026-04-01T00:00:00Z"},
    {"enabled": True, "type": "percentage", "value": 20, "end_date": "2026-03-01T00:00:00Z"},
])
def test_disabled_or_out_of_window_fixed_discount_is_ignored(fixed):
    result = resolve(pricing(price=10000, fixed=fixed), 1)
    assert result.final_price_per_unit == 10000
    assert result.fixed_applied is False


def test_window_bounds_are_inclusive():
    fixed = {
        "enabled": True,
        "type": "percentage",
        "value": 20,
        "start_date": "2026-03-15T12:00:00Z",
        "end_date": "2026-03-15T12:00:00Z",
    }
    assert resolve(pricing(price=10000, fixed=fixed), 1).final_price_per_unit == 8000


@pytest.mark.parametrize("quantity,expected", [
    (3, 10000),
    (5, 9000),
    (9, 9000),
    (10, 8000),
    (1000, 8000),
])
def test_tier_selection(quantity, expected):
    result = resolve(pricing(price=10000, tiered=TWO_TIERS), quantity)
    assert result.final_price_per_unit == expected


def test_max_quantity_boundary():
    tiered = {
        "active": True,
        "tiers": [{"min_quantity": 1, "max_quantity": 5, "type": "percentage", "value": 10}],
    }
    variant = pricing(price=10000, tiered=tiered)
    assert resolve(variant, 5).final_price_per_unit == 9000
    assert resolve(variant, 6).final_price_per_unit == 10000


def test_overlapping_tiers_prefer_highest_floor():
    tiered = {
        "active": True,
        "tiers": [
            {"min_quantity": 1, "max_quantity": None, "type": "percentage", "value": 5},
            {"min_quantity": 3, "max_quantity": None, "type": "percentage", "value": 10},
        ],
    }
    result = resolve(pricing(price=10000, tiered=tiered), 4)
    assert result.final_price_per_unit == 9000
    assert result.applied_tier.min_quantity == 3


def test_inactive_tiered_discount_is_ignored():
    tiered = dict(TWO_TIERS, active=False)
    assert resolve(pricing(price=10000, tiered=tiered), 10).final_price_per_unit == 10000


def test_fixed_and_tier_compound():
    variant = pricing(
        price=10000,
        fixed={"enabled": True, "type": "percentage", "value": 10},
        tiered={
            "active": True,
            "tiers": [{"min_quantity": 2, "max_quantity": None, "type": "percentage", "value": 10}],
        },
    )
    result = resolve(variant, 2)
    # round(round(10000 * 0.9) * 0.9), not 10000 * 0.8
    assert result.final_price_per_unit == 8100
    assert result.source == "variant_tier"


def test_amount_stages_compound():
    variant = pricing(
        price=1000,
        fixed={"enabled": True, "type": "amount", "value": 100},
        tiered={
            "active": True,
            "tiers": [{"min_quantity": 1, "max_quantity": None, "type": "amount", "value": 50}],
        },
    )
    assert resolve(variant, 1).final_price_per_unit == 850


def test_rounds_half_up_per_stage():
    assert apply_discount(1005, "percentage", 10) == 905
    variant = pricing(price=100, fixed={"enabled": True, "type": "percentage", "value": 33.33})
    result = resolve(variant, 1000)
    assert result.final_price_per_unit == 67
    # Per-unit discount multiplied by quantity, no drift
    assert result.total_discount_for_quantity == 33 * 1000


def test_parent_tiers_apply_when_variant_has_no_discount():
    parent_tiers = [{
        "attribute": None,
        "active": True,
        "tiers": [{"min_quantity": 3, "max_quantity": None, "type": "percentage", "value": 15}],
    }]
    variant = pricing(price=10000, attributes={"size": "350ml"})
    assert resolve(variant, 2, parent_tiers).final_price_per_unit == 10000
    result = resolve(variant, 3, parent_tiers)
    assert result.final_price_per_unit == 8500
    assert result.source == "parent_tier"


def test_parent_tiers_skipped_when_variant_discount_applied():
    parent_tiers = [{
        "attribute": None,
        "active": True,
        "tiers": [{"min_quantity": 1, "max_quantity": None, "type": "percentage", "value": 50}],
    }]
    variant = pricing(price=10000, fixed={"enabled": True, "type": "percentage", "value": 10})
    result = resolve(variant, 3, parent_tiers)
    assert result.final_price_per_unit == 9000
    assert result.source is None


def test_scoped_parent_entry_wins_over_unscoped():
    parent_tiers = [
        {
            "attribute": None,
            "active": True,
            "tiers": [{"min_quantity": 1, "max_quantity": None, "type": "percentage", "value": 5}],
        },
        {
            "attribute": "size",
            "attribute_value": "500ml",
            "active": True,
            "tiers": [{"min_quantity": 1, "max_quantity": None, "type": "percentage", "value": 10}],
        },
    ]
    large = pricing(price=10000, attributes={"Size": "500ml"})
    small = pricing(variant_id=2, price=10000, attributes={"size": "350ml"})
    assert resolve(large, 1, parent_tiers).final_price_per_unit == 9000
    assert resolve(small, 1, parent_tiers).final_price_per_unit == 9500


def test_scoped_parent_entry_not_matching_attribute():
    parent_tiers = [{
        "attribute": "size",
        "attribute_value": "500ml",
        "active": True,
        "tiers": [{"min_quantity": 1, "max_quantity": None, "type": "percentage", "value": 10}],
    }]
    variant = pricing(price=10000, attributes={"size": "350ml"})
    assert resolve(variant, 5, parent_tiers).final_price_per_unit == 10000


def test_inactive_and_expired_parent_entries_are_skipped():
    parent_tiers = [
        {
            "attribute": None,
            "active": False,
            "tiers": [{"min_quantity": 1, "max_quantity": None, "type": "percentage", "value": 50}],
        },
        {
            "attribute": None,
            "active": True,
            "end_date": "2026-01-01T00:00:00Z",
            "tiers": [{"min_quantity": 1, "max_quantity": None, "type": "percentage", "value": 40}],
        },
        {
            "attribute": None,
            "active": True,
            "tiers": [{"min_quantity": 1, "max_quantity": None, "type": "percentage", "value": 10}],
        },
    ]
    assert resolve(pricing(price=10000), 1, parent_tiers).final_price_per_unit == 9000


def test_only_first_matching_parent_entry_is_used():
    parent_tiers = [
        {
            "attribute": "size",
            "attribute_value": "350ml",
            "active": True,
            "tiers": [{"min_quantity": 10, "max_quantity": None, "type": "percentage", "value": 20}],
        },
        {
            "attribute": "size",
            "attribute_value": "350ml",
            "active": True,
            "tiers": [{"min_quantity": 2, "max_quantity": None, "type": "percentage", "value": 10}],
        },
    ]
    variant = pricing(price=10000, attributes={"size": "350ml"})
    assert resolve(variant, 3, parent_tiers).final_price_per_unit == 10000


@pytest.mark.parametrize("quantity", [0, -1, True, 1.5])
def test_invalid_quantity(quantity):
    with pytest.raises(InvalidQuantityError):
        resolve(pricing(), quantity)


def test_resolve_price_reads_through_catalog():
    catalog = FakeCatalog(
        variants=[pricing(variant_id=7, price=10000, parent_id=3)],
        parent_tiers={3: [{
            "attribute": None,
            "active": True,
            "tiers": [{"min_quantity": 3, "max_quantity": None, "type": "percentage", "value": 15}],
        }]},
    )
    result = resolve_price(7, 3, catalog=catalog, now=NOW)
    assert result.final_price_per_unit == 8500
    assert result.to_dict()["applied_tier"]["min_quantity"] == 3


def test_resolve_price_unknown_variant():
    with pytest.raises(NotFoundError):
        resolve_price(99, 1, catalog=FakeCatalog(), now=NOW)
