import math
from typing import Iterable

from .schemas import PricingBreakdown, PricingItem

# (amount ceiling, flat fee), ascending
TAX_FEE_SLABS = [
    (2000, 119),
    (2500, 138),
    (3000, 167),
    (3500, 188),
    (4000, 209),
    (5000, 249),
    (6000, 269),
]
TOP_SLAB_FEE = 279


def truncate(value: float) -> float:
    """Cut to 2 decimals with floor, never round."""
    return math.floor(value * 100) / 100


def get_tax_fee(amount: float) -> float:
    value = max(amount or 0, 0)
    if value == 0:
        return 0

    for ceiling, fee in TAX_FEE_SLABS:
        if value <= ceiling:
            return fee
    return TOP_SLAB_FEE


def calculate_pricing(items: Iterable[PricingItem], discount: float = 0) -> PricingBreakdown:
    items = list(items)
    discount = discount or 0

    subtotal = sum(item.product_cost * item.quantity for item in items)

    savings = 0.0
    for item in items:
        if item.market_price and item.product_cost:
            saving = (item.market_price - item.product_cost) * item.quantity
            if saving > 0:
                savings += saving

    final_price = max(subtotal - discount, 0)
    tax = get_tax_fee(final_price)

    return PricingBreakdown(
        subtotal=truncate(subtotal),
        savings=truncate(savings),
        discount=truncate(discount),
        final_price=truncate(final_price),
        tax=truncate(tax),
        grand_total=truncate(final_price + tax),
    )
