"""
risk.py - Valuation, health factor and liquidation seizure math

This module is the risk engine, written as pure functions with explicit inputs.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs and results):
   - RiskParameters: Fixed-point scales and risk constants
   - AccountSnapshot: One account's collateral and debt at a point in time
   - AccountRisk: Result of assessing an account
   - Seizure: Result of a liquidation seizure computation

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take all inputs explicitly as parameters (prices included)
   - No registry, no ledgers, no oracle reads

3. ADAPTER FUNCTIONS (read_price, fetch_prices, load_account):
   - The ONLY places that touch price feeds or an AccountView

4. CONVENIENCE FUNCTIONS (assess_account):
   - Load + calculate in one call

Key Formulas (all integer, floor division):
    usd_value      = price * AFP * quantity // PRECISION
    quantity       = usd * PRECISION // (price * AFP)
    health_factor  = (collateral_usd * THRESHOLD // LIQ_PRECISION) * PRECISION // debt
    bonus_quantity = base_quantity * BONUS // LIQ_PRECISION

Prices are read fresh on every assessment and never cached: an account's
liquidatable status can change between calls purely through price movement.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping

from .core import (
    PRECISION, ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION, LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
    Address, Asset, AccountView,
    InvalidPrice,
)
from .registry import AssetRegistry


# Type aliases
PriceMap = Dict[Asset, int]  # asset -> feed answer


# ============================================================================
# FROZEN DATACLASSES - Explicit Inputs for Pure Functions
# ============================================================================

@dataclass(frozen=True, slots=True)
class RiskParameters:
    """
    Immutable risk configuration.

    The defaults are the protocol constants; alternative instances exist for
    stress testing ("what if the threshold were 40%?").
    """
    precision: int = PRECISION
    additional_feed_precision: int = ADDITIONAL_FEED_PRECISION
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_precision: int = LIQUIDATION_PRECISION
    liquidation_bonus: int = LIQUIDATION_BONUS
    min_health_factor: int = MIN_HEALTH_FACTOR

    def __post_init__(self):
        for name in ('precision', 'additional_feed_precision', 'liquidation_precision'):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive int, got {value!r}")
        if not 0 < self.liquidation_threshold <= self.liquidation_precision:
            raise ValueError(
                f"liquidation_threshold must be in (0, {self.liquidation_precision}], "
                f"got {self.liquidation_threshold}"
            )
        if not 0 <= self.liquidation_bonus < self.liquidation_precision:
            raise ValueError(
                f"liquidation_bonus must be in [0, {self.liquidation_precision}), "
                f"got {self.liquidation_bonus}"
            )
        if self.min_health_factor <= 0:
            raise ValueError(f"min_health_factor must be positive, got {self.min_health_factor}")


DEFAULT_RISK_PARAMETERS = RiskParameters()


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """
    Immutable snapshot of one account's ledger entries.

    Combined with a PriceMap this is everything needed to value the account.
    """
    user: Address
    collateral: Mapping[Asset, int]
    debt: int

    def __post_init__(self):
        # Copy so later ledger writes cannot leak into the snapshot
        object.__setattr__(self, 'collateral', dict(self.collateral))


@dataclass(frozen=True, slots=True)
class AccountRisk:
    """Result of assessing an account at current prices."""
    user: Address
    debt: int
    collateral_value_usd: int
    health_factor: int
    min_health_factor: int = field(default=MIN_HEALTH_FACTOR, repr=False)

    @property
    def is_liquidatable(self) -> bool:
        return self.health_factor < self.min_health_factor


@dataclass(frozen=True, slots=True)
class Seizure:
    """
    Collateral taken from an account to cover debt_to_cover.

    base_quantity is the USD-equivalent of the debt, bonus_quantity the
    liquidator's reward on top of it.
    """
    asset: Asset
    debt_to_cover: int
    base_quantity: int
    bonus_quantity: int

    @property
    def total_quantity(self) -> int:
        return self.base_quantity + self.bonus_quantity


# ============================================================================
# PURE CALCULATION FUNCTIONS - No registry, no ledgers, all inputs explicit
# ============================================================================

def validate_price(asset: Asset, answer: int) -> int:
    """
    Reject non-positive oracle answers.

    Raises:
        InvalidPrice: If answer <= 0
    """
    if answer <= 0:
        raise InvalidPrice(asset, answer)
    return answer


def calculate_usd_value(
    price: int,
    quantity: int,
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> int:
    """
    USD value (18 decimals) of a quantity at a feed answer.

    Example:
        # 1 ETH at $2000 -> 2000 * 10**18
        calculate_usd_value(2000 * 10**8, 10**18)
    """
    return price * params.additional_feed_precision * quantity // params.precision


def calculate_quantity_from_usd(
    price: int,
    usd: int,
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> int:
    """
    Quantity of an asset worth usd at a feed answer (inverse of calculate_usd_value).

    Truncates; the round trip is exact only when price * quantity leaves no
    remainder.
    """
    return usd * params.precision // (price * params.additional_feed_precision)


def calculate_collateral_value(
    collateral: Mapping[Asset, int],
    prices: Mapping[Asset, int],
    assets: Iterable[Asset],
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> int:
    """
    Total USD value of deposits, summed over assets in order.

    Assets missing from collateral count as zero; every asset needs a price.

    Raises:
        ValueError: if an asset is missing from prices
    """
    total = 0
    for asset in assets:
        if asset not in prices:
            raise ValueError(f"Missing price for collateral asset '{asset}'")
        total += calculate_usd_value(prices[asset], collateral.get(asset, 0), params)
    return total


def calculate_health_factor(
    debt: int,
    collateral_value_usd: int,
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> int:
    """
    Health factor with 18 decimals; 10**18 means exactly at the limit.

    Returns MAX_HEALTH_FACTOR when there is no debt.
    """
    if debt == 0:
        return MAX_HEALTH_FACTOR
    adjusted = collateral_value_usd * params.liquidation_threshold // params.liquidation_precision
    return adjusted * params.precision // debt


def calculate_liquidation_seizure(
    asset: Asset,
    price: int,
    debt_to_cover: int,
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> Seizure:
    """
    Collateral quantity a liquidator receives for repaying debt_to_cover.

    Two-stage floor division: the base quantity is truncated first and the
    bonus is computed from the truncated base. Whether the account holds that
    much collateral is not checked here.
    """
    base = calculate_quantity_from_usd(price, debt_to_cover, params)
    bonus = base * params.liquidation_bonus // params.liquidation_precision
    return Seizure(
        asset=asset,
        debt_to_cover=debt_to_cover,
        base_quantity=base,
        bonus_quantity=bonus,
    )


def calculate_account_risk(
    snapshot: AccountSnapshot,
    prices: Mapping[Asset, int],
    assets: Iterable[Asset],
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> AccountRisk:
    """Value an account snapshot and compute its health factor."""
    value = calculate_collateral_value(snapshot.collateral, prices, assets, params)
    return AccountRisk(
        user=snapshot.user,
        debt=snapshot.debt,
        collateral_value_usd=value,
        health_factor=calculate_health_factor(snapshot.debt, value, params),
        min_health_factor=params.min_health_factor,
    )


# ============================================================================
# ADAPTER FUNCTIONS - The only readers of feeds and account views
# ============================================================================

def read_price(registry: AssetRegistry, asset: Asset) -> int:
    """
    Read the latest answer for an asset.

    Oracle errors (stale rounds) propagate unchanged.

    Raises:
        NotAllowedTokenCollateral: If the asset is not registered
        InvalidPrice: If the answer is not positive
    """
    answer = registry.price_feed(asset).latest_round_data().answer
    return validate_price(asset, answer)


def fetch_prices(registry: AssetRegistry) -> PriceMap:
    """Read every registered feed once, in registry order."""
    return {asset: read_price(registry, asset) for asset in registry.allowed_assets()}


def load_account(view: AccountView, user: Address) -> AccountSnapshot:
    """Extract one account from an AccountView as a frozen snapshot."""
    collateral = {
        asset: view.get_collateral_balance_of_user(user, asset)
        for asset in view.get_collateral_tokens()
    }
    return AccountSnapshot(user=user, collateral=collateral, debt=view.get_debt(user))


# ============================================================================
# CONVENIENCE FUNCTIONS - load + calculate
# ============================================================================

def assess_account(
    view: AccountView,
    registry: AssetRegistry,
    user: Address,
    params: RiskParameters = DEFAULT_RISK_PARAMETERS,
) -> AccountRisk:
    """
    Assess an account at the latest prices.

    Example:
        risk = assess_account(engine, engine.registry, "alice")
        if risk.is_liquidatable:
            ...
    """
    snapshot = load_account(view, user)
    prices = fetch_prices(registry)
    return calculate_account_risk(snapshot, prices, registry.allowed_assets(), params)

