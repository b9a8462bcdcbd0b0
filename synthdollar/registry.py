"""
registry.py - Approved collateral assets and their price sources

The registry is fixed at construction: the asset -> price source mapping and
the ordered list of supported assets are built together from two parallel
sequences, and neither can change afterwards.
"""

from __future__ import annotations
from types import MappingProxyType
from typing import Dict, Mapping, Sequence, Tuple

from .core import (
    PriceSource,
    ConfigurationMismatch, UnsupportedAsset,
)


class CollateralRegistry:
    """
    Immutable mapping of approved collateral assets to price sources.

    Example:
        feed = StaticPriceFeed({"WETH": 2000 * 10**8, "WBTC": 60000 * 10**8})
        registry = CollateralRegistry(["WETH", "WBTC"], [feed, feed])
        registry.price_source_of("WETH")
    """

    __slots__ = ("_price_sources", "_supported_assets")

    def __init__(self, assets: Sequence[str], price_sources: Sequence[PriceSource]):
        """
        Build the registry from two equal-length sequences.

        Raises:
            ConfigurationMismatch: If the lengths differ or an asset repeats.
                                   Nothing is stored in that case.
        """
        assets = tuple(assets)
        price_sources = tuple(price_sources)
        if len(assets) != len(price_sources):
            raise ConfigurationMismatch(
                f"{len(assets)} assets but {len(price_sources)} price sources"
            )

        # Build both structures locally and publish them together
        mapping: Dict[str, PriceSource] = {}
        for asset, source in zip(assets, price_sources):
            if not isinstance(asset, str):
                raise ConfigurationMismatch(f"asset id must be a string, got {asset!r}")
            if not asset.strip():
                raise ConfigurationMismatch("asset id cannot be empty")
            if asset in mapping:
                raise ConfigurationMismatch(f"asset {asset} listed more than once")
            mapping[asset] = source

        self._price_sources: Mapping[str, PriceSource] = MappingProxyType(mapping)
        self._supported_assets: Tuple[str, ...] = assets

    @property
    def supported_assets(self) -> Tuple[str, ...]:
        """Supported assets in construction order."""
        return self._supported_assets

    def is_supported(self, asset: str) -> bool:
        return asset in self._price_sources

    def require_supported(self, asset: str) -> str:
        """Guard clause used at every entry point that takes an asset."""
        if asset not in self._price_sources:
            raise UnsupportedAsset(f"asset {asset} has no price source")
        return asset

    def price_source_of(self, asset: str) -> PriceSource:
        self.require_supported(asset)
        return self._price_sources[asset]

    def __len__(self) -> int:
        return len(self._supported_assets)

    def __contains__(self, asset: object) -> bool:
        return asset in self._price_sources

    def __repr__(self) -> str:
        return f"CollateralRegistry({', '.join(self._supported_assets)})"
