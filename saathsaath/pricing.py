# saath-saath/saathsaath/pricing.py
"""
Bulk pricing and savings calculations.

This module implements the price side of group buying:
- Resolving the unit price for a quantity from a product's bulk tier ladder
- Projecting the savings of pooling several orders
- Quoting prices with the extra large-group discount
- Seasonal adjustments and price comparison across products

Key Design Principles:
1. The tier with the largest min_quantity not above the quantity wins
2. The resolved price never exceeds the base price
3. Savings are returned at full precision; rounding is a display concern
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from . import config
from .models import BulkTier, Order, Product

logger = logging.getLogger(__name__)


@dataclass
class PriceQuote:
    """Price for a quantity of one product, rounded to paise."""
    unit_price: float
    total_price: float
    savings: float
    discount_percentage: float
    tier: Optional[BulkTier] = None


def find_applicable_tier(tiers: Sequence[BulkTier], quantity: float) -> Optional[BulkTier]:
    """
    Select the bulk tier that applies to a quantity.

    Among tiers whose min_quantity <= quantity, the one with the greatest
    min_quantity wins. The order of the tier list does not matter.

    Returns:
        The applicable tier, or None if the quantity is below every tier
    """
    best: Optional[BulkTier] = None
    for tier in tiers:
        if tier.min_quantity <= quantity and (best is None or tier.min_quantity > best.min_quantity):
            best = tier
    return best


def resolve_price(tiers: Sequence[BulkTier], quantity: float, base_price: float) -> float:
    """
    Resolve the per-unit price for a quantity.

    Args:
        tiers: Bulk pricing ladder (may be empty)
        quantity: Requested quantity (non-negative)
        base_price: Price when no tier qualifies

    Returns:
        The tier price, or base_price when no tier qualifies. A tier priced
        above the base price is clamped to the base price.
    """
    tier = find_applicable_tier(tiers, quantity)
    if tier is None:
        return base_price
    if tier.price_per_unit > base_price:
        logger.warning(
            f"Bulk tier at {tier.min_quantity} priced {tier.price_per_unit} "
            f"above base price {base_price}; using base price"
        )
        return base_price
    return tier.price_per_unit


def calculate_bulk_discount(product: Product, quantity: float) -> float:
    """Resolve the bulk unit price of a product for a quantity."""
    return resolve_price(product.bulk_pricing, quantity, product.base_price)


def check_tier_monotonicity(product: Product) -> bool:
    """
    Check that a product's tier prices never rise as min_quantity rises.

    Violations are logged, not raised; pricing still follows the ladder.

    Returns:
        True if the ladder is monotonic
    """
    ordered = sorted(product.bulk_pricing, key=lambda t: t.min_quantity)
    monotonic = True
    previous_price = product.base_price
    for tier in ordered:
        if tier.price_per_unit > previous_price:
            logger.warning(
                f"Non-monotonic bulk pricing for {product.product_id}: "
                f"{tier.price_per_unit} at {tier.min_quantity} exceeds {previous_price}"
            )
            monotonic = False
        previous_price = tier.price_per_unit
    return monotonic


def aggregate_quantities(orders: Iterable[Order]) -> Dict[str, float]:
    """
    Sum requested quantities per product across orders.

    Returns:
        Dictionary mapping product_id -> total quantity, in first-seen order
    """
    totals: Dict[str, float] = {}
    for order in orders:
        for item in order.items:
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def project_savings(orders: Iterable[Order], catalog: Mapping[str, Product]) -> float:
    """
    Project the savings of buying a set of orders together.

    For each product, quantities are pooled across all orders and priced at
    the tier for the pooled quantity:
        savings += (base_price - bulk_price) * pooled_quantity

    Products missing from the catalog contribute nothing.

    Args:
        orders: Reference order plus compatible orders
        catalog: Products keyed by product_id

    Returns:
        Total projected savings in rupees, full precision
    """
    total_savings = 0.0
    for product_id, quantity in aggregate_quantities(orders).items():
        product = catalog.get(product_id)
        if product is None:
            logger.debug(f"Product {product_id} not in catalog; no savings counted")
            continue

        bulk_price = calculate_bulk_discount(product, quantity)
        total_savings += (product.base_price - bulk_price) * quantity

    return total_savings


def calculate_optimal_price(product: Product, quantity: float, group_size: int = 1) -> PriceQuote:
    """
    Quote a price including the extra large-group discount.

    Groups larger than LARGE_GROUP_MIN_SIZE get an additional
    group_size * 0.5 percent off the tier price, capped at 5 percent.

    Args:
        product: Product to price
        quantity: Quantity requested
        group_size: Number of vendors buying together

    Returns:
        PriceQuote with values rounded to 2 decimals
    """
    tier = find_applicable_tier(product.bulk_pricing, quantity)

    unit_price = product.base_price
    discount_percentage = 0.0
    if tier is not None:
        unit_price = min(tier.price_per_unit, product.base_price)
        discount_percentage = tier.discount_percentage

    if group_size > config.LARGE_GROUP_MIN_SIZE:
        group_discount = min(
            group_size * config.LARGE_GROUP_DISCOUNT_PER_MEMBER_PCT,
            config.LARGE_GROUP_MAX_DISCOUNT_PCT,
        )
        discount_percentage += group_discount
        unit_price = unit_price * (1 - group_discount / 100)

    total_price = unit_price * quantity
    savings = product.base_price * quantity - total_price

    return PriceQuote(
        unit_price=round(unit_price, 2),
        total_price=round(total_price, 2),
        savings=round(savings, 2),
        discount_percentage=round(discount_percentage, 2),
        tier=tier,
    )


def compare_product_prices(products: Iterable[Product], quantity: float) -> List[Dict]:
    """
    Rank products by their unit price at a target quantity.

    Returns:
        List of {"product", "pricing", "rank"} dicts, cheapest first, rank from 1
    """
    quoted = [
        {"product": product, "pricing": calculate_optimal_price(product, quantity)}
        for product in products
    ]
    quoted.sort(key=lambda entry: entry["pricing"].unit_price)
    for rank, entry in enumerate(quoted, start=1):
        entry["rank"] = rank
    return quoted


def apply_seasonal_pricing(product: Product, season: str) -> Product:
    """
    Return a copy of a product with seasonal price adjustments.

    Args:
        product: Product to adjust (left untouched)
        season: One of 'summer', 'monsoon', 'winter'

    Raises:
        ValueError: If the season is unknown
    """
    multipliers = config.SEASONAL_MULTIPLIERS.get(season)
    if multipliers is None:
        raise ValueError(f"Unknown season '{season}'. Options: {', '.join(config.SEASONAL_MULTIPLIERS)}")

    factor = multipliers.get(product.category.value, 1.0)
    return dataclasses.replace(
        product,
        base_price=round(product.base_price * factor, 2),
        bulk_pricing=[
            dataclasses.replace(tier, price_per_unit=round(tier.price_per_unit * factor, 2))
            for tier in product.bulk_pricing
        ],
    )
