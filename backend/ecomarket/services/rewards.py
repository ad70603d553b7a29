"""
Reward and payment arithmetic for completed and new purchases.
"""
from typing import Optional

from ecomarket.core.config import Settings
from ecomarket.core.errors import InvalidInputError


def amount_due(price: int, points_used: int, settings: Settings) -> int:
    """
    Yen the buyer pays after redeeming tree points.

    Raises:
        InvalidInputError: negative points or a discount above the price
    """
    if points_used < 0:
        raise InvalidInputError("points_used must not be negative", code="invalid_points")
    discount = int(points_used * settings.point_value_yen)
    if discount > price:
        raise InvalidInputError("points exceed the item price", code="points_exceed_price")
    return price - discount


def seller_revenue(price: int, settings: Settings) -> int:
    """Revenue credited to the seller when the buyer confirms delivery."""
    return int(price * settings.seller_revenue_rate)


def buyer_tree_points(co2_kg: Optional[float], settings: Settings) -> float:
    """Tree points credited to the buyer for the CO2 saved (0 without an estimate)."""
    if not co2_kg or co2_kg <= 0:
        return 0.0
    return round(co2_kg * settings.tree_points_per_kg, 3)
