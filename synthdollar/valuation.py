"""
valuation.py - Conversion between collateral quantities and unit-of-account value

Integer arithmetic throughout. Feed prices carry 8 decimals and are scaled by
ADDITIONAL_FEED_PRECISION so that every intermediate product is at 18-decimal
precision before the final division.

Key formulas:
    value    = price * ADDITIONAL_FEED_PRECISION * quantity // PRECISION
    quantity = value * PRECISION // (price * ADDITIONAL_FEED_PRECISION)

quantity_for rounds toward zero, so converting a value back never yields more
collateral than the value covers.
"""

from __future__ import annotations
from typing import Mapping

from .core import (
    InvalidAmount, InvalidPrice,
    usd_value, token_amount_from_usd,
)
from .registry import CollateralRegistry


class Valuation:
    """Prices collateral through the registry's price sources."""

    def __init__(self, registry: CollateralRegistry):
        self.registry = registry

    def price_of(self, asset: str) -> int:
        """
        Current 8-decimal price of one whole unit of asset.

        Raises:
            UnsupportedAsset: If the asset has no price source.
            InvalidPrice: If the source reports a non-positive price.
        """
        source = self.registry.price_source_of(asset)
        price, _updated_at = source.latest_price(asset)
        if price <= 0:
            raise InvalidPrice(f"price source for {asset} reported {price}")
        return price

    def value_of(self, asset: str, quantity: int) -> int:
        """Unit-of-account value of quantity of asset."""
        _require_non_negative("quantity", quantity)
        price = self.price_of(asset)
        return usd_value(price, quantity)

    def quantity_for(self, asset: str, value: int) -> int:
        """Quantity of asset worth value, rounded toward zero."""
        _require_non_negative("value", value)
        price = self.price_of(asset)
        return token_amount_from_usd(price, value)

    def total_value(self, collateral: Mapping[str, int]) -> int:
        """
        Sum of value_of over every supported asset held.

        Assets are visited in registry order; zero balances are skipped.
        """
        total = 0
        for asset in self.registry.supported_assets:
            quantity = collateral.get(asset, 0)
            if quantity:
                total += self.value_of(asset, quantity)
        return total


def _require_non_negative(name: str, amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"{name} must be an int, got {type(amount).__name__}")
    if amount < 0:
        raise InvalidAmount(f"{name} cannot be negative, got {amount}")
