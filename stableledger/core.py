"""
Core types and constants for the collateral-debt engine.

This module provides the foundational definitions shared by every other module:
1. Constants: fixed-point scales and risk parameters
2. Type aliases: Address, Asset, CollateralMap
3. Protocols: PriceFeed, AccountView, Custody, StableToken
4. Exceptions: StableLedgerError and its three branches (engine, token, oracle)
5. Event records emitted by the engine

All quantities are Python ints expressed in the smallest denomination of the
asset they measure. USD values and health factors carry 18 decimals.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import wraps
from typing import Any, Callable, Dict, Protocol, Tuple, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Accounting precision: USD values, token amounts and health factors are all
# scaled by 10**18.
PRECISION = 10 ** 18

# Price answers carry 8 decimals; this lifts them to accounting precision.
FEED_DECIMALS = 8
ADDITIONAL_FEED_PRECISION = 10 ** 10

# Only half of the collateral value counts toward the health factor,
# i.e. positions must stay 200% over-collateralized.
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# Liquidators receive a 10% bonus on top of the collateral covering the debt.
LIQUIDATION_BONUS = 10

MIN_HEALTH_FACTOR = PRECISION

# Sentinel returned for accounts without debt (largest uint256).
MAX_HEALTH_FACTOR = 2 ** 256 - 1

# Price reads older than this are rejected by the oracle adapter.
ORACLE_TIMEOUT = timedelta(hours=3)

# Identity that can never receive minted tokens.
ZERO_ADDRESS = "0x" + "0" * 40

# Counterparty for issuance and retirement in the token ledger.
# The system wallet is exempt from balance validation.
SYSTEM_WALLET = "system"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Identity of a user, a contract or any other holder of tokens.
Address = str

# Identity of a collateral instrument (its token symbol).
Asset = str

# Mapping from asset to quantity held for a single user.
CollateralMap = Dict[Asset, int]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceFeed(Protocol):
    """
    Read interface of a price oracle.

    Implementations return the latest round; adapters wrapping a raw feed may
    raise OracleError when the round is stale.
    """

    @property
    def decimals(self) -> int:
        ...

    def latest_round_data(self) -> 'RoundDataLike':
        ...


class RoundDataLike(Protocol):
    round_id: int
    answer: int
    started_at: datetime
    updated_at: datetime
    answered_in_round: int


@runtime_checkable
class AccountView(Protocol):
    """
    Read-only interface to the engine's per-account state.

    Functions accepting an AccountView declare that they never mutate ledgers.
    PositionController implements this protocol; tests use FakeAccountView.
    """

    def get_collateral_tokens(self) -> Tuple[Asset, ...]:
        """Return allowed collateral assets in registration order."""
        ...

    def get_collateral_balance_of_user(self, user: Address, asset: Asset) -> int:
        """Return the deposited quantity of an asset (0 if none)."""
        ...

    def get_debt(self, user: Address) -> int:
        """Return the pegged-token debt minted by a user (0 if none)."""
        ...


class Custody(Protocol):
    """
    Token custody collaborator: pull tokens from a holder, push tokens out.

    Transfers are atomic and return False when rejected. snapshot()/restore()
    let the engine roll custody back together with its own ledgers; the
    engine holds `lock` from snapshot to commit so no other writer can
    interleave.
    """

    def transfer(self, symbol: str, sender: Address, recipient: Address, amount: int) -> bool:
        ...

    def transfer_from(
        self, symbol: str, spender: Address, owner: Address, recipient: Address, amount: int
    ) -> bool:
        ...

    def snapshot(self) -> object:
        ...

    def restore(self, snapshot: object) -> None:
        ...

    @property
    def lock(self):
        """Re-entrant lock serializing every mutation of the custody ledger."""
        ...


class StableToken(Protocol):
    """Authority-gated mint/burn capability of the pegged token."""

    symbol: str

    def mint(self, caller: Address, to: Address, amount: int) -> bool:
        ...

    def burn(self, caller: Address, amount: int) -> None:
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class StableLedgerError(Exception):
    """Base exception for all errors raised by this package."""
    pass


# --- Engine: input validation and invariant violations ---------------------

class EngineError(StableLedgerError):
    """Base exception for errors raised by the position controller."""
    pass


class RequiresMoreThanZero(EngineError):
    """Raised when an amount argument is zero or negative."""

    def __init__(self, amount: int):
        self.amount = amount
        super().__init__(f"amount must be more than zero, got {amount}")


class ArrayLengthMismatch(EngineError):
    """Raised when asset and price feed sequences differ in length."""

    def __init__(self, assets: int, price_feeds: int):
        self.assets = assets
        self.price_feeds = price_feeds
        super().__init__(
            f"{assets} collateral assets but {price_feeds} price feeds"
        )


class DuplicateCollateralAsset(EngineError):
    """Raised when the same asset is registered twice."""

    def __init__(self, asset: Asset):
        self.asset = asset
        super().__init__(f"collateral asset {asset} registered more than once")


class NotAllowedTokenCollateral(EngineError):
    """Raised when an asset has no registered price feed."""

    def __init__(self, asset: Asset):
        self.asset = asset
        super().__init__(f"{asset} is not an allowed collateral asset")


class NotEnoughCollateral(EngineError):
    """Raised when redeeming or seizing more collateral than is deposited."""

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"requested {requested} but only {available} deposited")


class NotEnoughDSC(EngineError):
    """Raised when burning more pegged-token debt than was minted."""

    def __init__(self, current_debt: int, requested: int):
        self.current_debt = current_debt
        self.requested = requested
        super().__init__(f"requested {requested} but debt is {current_debt}")


class BreaksHealthFactor(EngineError):
    """Raised when an operation would leave an account below the minimum health factor."""

    def __init__(self, health_factor: int):
        self.health_factor = health_factor
        super().__init__(f"health factor {health_factor} below minimum")


class HealthFactorOk(EngineError):
    """Raised when liquidating an account that is not liquidatable."""

    def __init__(self, health_factor: int):
        self.health_factor = health_factor
        super().__init__(f"health factor {health_factor} is not below minimum")


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation does not strictly improve the target's health factor."""

    def __init__(self, starting: int, ending: int):
        self.starting = starting
        self.ending = ending
        super().__init__(f"health factor went from {starting} to {ending}")


class InvalidPrice(EngineError):
    """Raised when an oracle answer is zero or negative."""

    def __init__(self, asset: Asset, answer: int):
        self.asset = asset
        self.answer = answer
        super().__init__(f"invalid price {answer} for {asset}")


class MintError(EngineError):
    """Raised when the pegged token reports a failed mint."""
    pass


class TransferFailed(EngineError):
    """Raised when a custody transfer is rejected."""
    pass


class ReentrantCall(EngineError):
    """Raised when a mutating operation is invoked while another one is running."""
    pass


# --- Token collaborator ----------------------------------------------------

class TokenError(StableLedgerError):
    """Base exception for token ledger and pegged token errors."""
    pass


class TokenNotRegistered(TokenError):
    """Raised when operating on a token the ledger does not know."""
    pass


class TransferRuleViolation(TokenError):
    """Raised by a token's transfer rule to reject a move."""
    pass


class NotAuthority(TokenError):
    """Raised when a caller without the mint/burn capability tries to use it."""
    pass


class ZeroAddress(TokenError):
    """Raised when minting to the zero identity."""
    pass


class ZeroAmount(TokenError):
    """Raised when minting or burning a zero (or negative) amount."""
    pass


class BurnAmountExceedsBalance(TokenError):
    """Raised when burning more than the authority holds."""
    pass


# --- Oracle collaborator ---------------------------------------------------

class OracleError(StableLedgerError):
    """Base exception for price feed errors."""
    pass


class StalePrice(OracleError):
    """Raised when the latest round is missing, incomplete or older than the timeout."""
    pass


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    """Emitted when a user deposits collateral."""
    user: Address
    asset: Asset
    amount: int


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    """
    Emitted when collateral leaves an account.

    redeemed_from and redeemed_to differ during liquidation, where the
    target's collateral goes to the liquidator.
    """
    redeemed_from: Address
    redeemed_to: Address
    asset: Asset
    amount: int


def require_quantity(value: int, name: str = "amount") -> int:
    """
    Validate that a quantity is a non-negative int.

    bool is rejected even though it subclasses int.

    Raises:
        ValueError: if value is not an int or is negative
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    return value



def synchronized(method: Callable[..., Any]) -> Callable[..., Any]:
    """Run a method while holding its instance's `lock`."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)
    return wrapper
