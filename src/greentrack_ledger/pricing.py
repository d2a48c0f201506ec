"""Tiered flower pricing and checkout quotes.

Flower is sold by weight with per-grade breakpoints. The steps between tiers
are not smoothed: a buyer crossing a breakpoint jumps onto the bulk rate, and
the functions below reproduce those jumps exactly. Nothing here rounds; the
presentation layer rounds for display.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Union

from .constants import FlowerGrade, ProductCategory


BULK_WEIGHT = Decimal("5")
EXOTIC_TIER_WEIGHT = Decimal("3")
EXOTIC_TIER_PRICE = Decimal("500")

# Per-gram price below the bulk weight and the price of one bulk pack.
GRADE_RATES: dict[FlowerGrade, tuple[Decimal, Decimal]] = {
    FlowerGrade.MID: (Decimal("100"), Decimal("300")),
    FlowerGrade.EXOTIC: (Decimal("200"), Decimal("700")),
    FlowerGrade.TOP: (Decimal("300"), Decimal("1250")),
    FlowerGrade.TOP_SHELF: (Decimal("400"), Decimal("1800")),
}


def _coerce_grade(grade: Union[FlowerGrade, str, None]) -> Optional[FlowerGrade]:
    if isinstance(grade, FlowerGrade):
        return grade
    if grade is None:
        return None
    try:
        return FlowerGrade(grade)
    except ValueError:
        return None


def price(grade: Union[FlowerGrade, str, None], weight_grams: Union[Decimal, int, str]) -> Decimal:
    """Return the standard price for ``weight_grams`` of flower of ``grade``.

    The function is total: unknown grades price at zero and non-positive
    weights are passed through the per-gram rate unchanged, so callers must
    validate the weight themselves.

    Args:
        grade (FlowerGrade | str | None): Grade of the flower being sold.
        weight_grams (Decimal | int | str): Weight in grams.

    Returns:
        Decimal: Unrounded price for the requested weight.
    """

    resolved = _coerce_grade(grade)
    if resolved is None:
        return Decimal("0")

    weight = Decimal(str(weight_grams))
    per_gram, bulk_pack = GRADE_RATES[resolved]

    if resolved is FlowerGrade.EXOTIC and EXOTIC_TIER_WEIGHT <= weight < BULK_WEIGHT:
        return EXOTIC_TIER_PRICE + (weight - EXOTIC_TIER_WEIGHT) * per_gram
    if weight < BULK_WEIGHT:
        return weight * per_gram
    return (weight / BULK_WEIGHT) * bulk_pack


def quote(
    category: ProductCategory,
    quantity: Decimal,
    *,
    grade: Union[FlowerGrade, str, None] = None,
    unit_price: Optional[Decimal] = None,
) -> Decimal:
    """Price a checkout line for any product category.

    Flower goes through :func:`price`. Every other category is priced at
    ``unit_price * quantity``, and at zero when the item carries no unit
    price.
    """

    if category is ProductCategory.FLOWER:
        return price(grade, quantity)
    if unit_price is None:
        return Decimal("0")
    return unit_price * quantity


__all__ = [
    "BULK_WEIGHT",
    "EXOTIC_TIER_PRICE",
    "EXOTIC_TIER_WEIGHT",
    "GRADE_RATES",
    "price",
    "quote",
]
