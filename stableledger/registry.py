"""
registry.py - Allowed collateral assets and their price feeds

The registry is fixed at construction: assets are never listed or delisted
afterwards. Iteration order is construction order and drives every aggregate
valuation.
"""

from __future__ import annotations
from typing import Dict, Iterator, Sequence, Tuple

from .core import (
    Asset, PriceFeed,
    ArrayLengthMismatch, DuplicateCollateralAsset, NotAllowedTokenCollateral,
)


class AssetRegistry:
    """
    Immutable mapping of collateral asset -> price feed.

    Example:
        registry = AssetRegistry(["WETH", "WBTC"], [eth_feed, btc_feed])
        registry.is_allowed("WETH")      # True
        registry.allowed_assets()        # ("WETH", "WBTC")
    """

    __slots__ = ("_assets", "_price_feeds")

    def __init__(self, assets: Sequence[Asset], price_feeds: Sequence[PriceFeed]):
        """
        Build the registry from two parallel sequences.

        Args:
            assets: Collateral asset identities, in valuation order
            price_feeds: Price feed for each asset, same order

        Raises:
            ArrayLengthMismatch: If the sequences differ in length
            DuplicateCollateralAsset: If an asset appears more than once
        """
        assets = tuple(assets)
        price_feeds = tuple(price_feeds)
        if len(assets) != len(price_feeds):
            raise ArrayLengthMismatch(len(assets), len(price_feeds))

        feeds: Dict[Asset, PriceFeed] = {}
        for asset, feed in zip(assets, price_feeds):
            if asset in feeds:
                raise DuplicateCollateralAsset(asset)
            feeds[asset] = feed

        self._assets: Tuple[Asset, ...] = assets
        self._price_feeds: Dict[Asset, PriceFeed] = feeds

    def is_allowed(self, asset: Asset) -> bool:
        """True iff the asset has a registered price feed."""
        return asset in self._price_feeds

    def allowed_assets(self) -> Tuple[Asset, ...]:
        """Allowed assets in construction order."""
        return self._assets

    def price_feed(self, asset: Asset) -> PriceFeed:
        """
        Return the price feed registered for an asset.

        Raises:
            NotAllowedTokenCollateral: If the asset is not registered
        """
        try:
            return self._price_feeds[asset]
        except KeyError:
            raise NotAllowedTokenCollateral(asset) from None

    def __contains__(self, asset: object) -> bool:
        return asset in self._price_feeds

    def __iter__(self) -> Iterator[Asset]:
        return iter(self._assets)

    def __len__(self) -> int:
        return len(self._assets)

    def __repr__(self) -> str:
        return f"AssetRegistry({', '.join(self._assets)})"
