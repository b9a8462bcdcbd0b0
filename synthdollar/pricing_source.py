"""
pricing_source.py - Price feeds for collateral valuation

Provides in-memory implementations of the PriceSource protocol.

Classes:
- StaticPriceFeed: Settable prices, stamped with the time of the last update
- TimeSeriesPriceFeed: Historical prices answered as of a feed clock

Prices are integers with FEED_DECIMALS (8) implied decimals. Use feed_price()
to convert a human price such as "2000.50".
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from .core import FEED_DECIMALS, InvalidPrice, to_base_units


def feed_price(price: Union[int, Decimal, str]) -> int:
    """Convert a human price to an 8-decimal feed integer."""
    return to_base_units(price, decimals=FEED_DECIMALS)


class StaticPriceFeed:
    """
    Price feed with prices that change only when updated.

    updated_at records when the price of each asset was last set.
    """

    def __init__(self, prices: Dict[str, int], updated_at: Optional[datetime] = None):
        """
        Initialize with a static price map.

        Args:
            prices: Mapping from asset id to 8-decimal price
            updated_at: Timestamp reported for the initial prices
        """
        stamp = updated_at or datetime(1970, 1, 1)
        self.prices: Dict[str, int] = dict(prices)
        self.updated_at: Dict[str, datetime] = {asset: stamp for asset in prices}

    def latest_price(self, asset: str) -> Tuple[int, datetime]:
        if asset not in self.prices:
            raise InvalidPrice(f"no price for {asset}")
        return self.prices[asset], self.updated_at[asset]

    def update_price(self, asset: str, price: int, updated_at: Optional[datetime] = None):
        """Set the price of an asset."""
        self.prices[asset] = price
        self.updated_at[asset] = updated_at or self.updated_at.get(asset, datetime(1970, 1, 1))

    def __repr__(self):
        return f"StaticPriceFeed({len(self.prices)} prices)"


class TimeSeriesPriceFeed:
    """
    Price feed backed by historical observations.

    latest_price() answers with the most recent observation at or before the
    feed clock. The clock only moves forward (see advance_time).
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None,
        current_time: Optional[datetime] = None,
    ):
        """
        Initialize the feed.

        Args:
            price_paths: Optional dict mapping assets to (timestamp, price) lists
            current_time: Initial feed clock (default: 1970-01-01)

        Example:
            feed = TimeSeriesPriceFeed({
                "WETH": [(t0, feed_price(2000)), (t1, feed_price(1500))],
            }, current_time=t0)
        """
        self.current_time = current_time or datetime(1970, 1, 1)
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}

        if price_paths:
            for asset, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset: str, timestamp: datetime, price: int):
        """Add a price observation for an asset at a specific time."""
        history = self.price_history.setdefault(asset, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the feed clock forward.

        Raises:
            ValueError: If new_time is before the current feed time
        """
        if new_time < self.current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self.current_time}"
            )
        self.current_time = new_time

    def latest_price(self, asset: str) -> Tuple[int, datetime]:
        """
        Most recent observation at or before the feed clock.

        Raises:
            InvalidPrice: If the asset has no observation yet.
        """
        history = self.price_history.get(asset)
        if not history:
            raise InvalidPrice(f"no price history for {asset}")

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, self.current_time)
        if idx == 0:
            raise InvalidPrice(f"no price for {asset} at or before {self.current_time}")

        timestamp, price = history[idx - 1]
        return price, timestamp

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return (
            f"TimeSeriesPriceFeed({len(self.price_history)} assets, "
            f"{total_observations} observations, at={self.current_time})"
        )
