"""
engine.py - PositionController: deposits, debt, redemptions and liquidation

The PositionController is the only writer of the collateral and debt ledgers.
Every public mutating operation runs as a single transaction:

    1. Reject reentrant calls from the thread already inside the engine and
       take the custody ledger's lock, serializing other threads' engine
       calls and token moves until step 5 finishes
    2. Snapshot the collateral ledger, the debt ledger, the event log and
       the custody ledger
    3. Validate inputs, mutate the ledgers, run health factor checks
    4. Run the queued settlements (custody pulls and pushes, mint, burn)
    5. On any exception, restore every snapshot and re-raise unchanged

Settlements run last, after every check has passed. A collaborator that calls
back into the engine during a settlement hits the reentrancy guard, and the
whole call rolls back.

Usage:
    engine = PositionController(
        ["WETH", "WBTC"], [eth_feed, btc_feed], dsc, address="dsc_engine",
    )
    dsc.transfer_authority("deployer", engine.address)

    weth.approve("alice", engine.address, 10 * 10**18)
    engine.deposit_and_mint("alice", "WETH", 10 * 10**18, 100 * 10**18)
"""

from __future__ import annotations
from contextlib import contextmanager
from functools import partial
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Any
import logging
import threading

from .core import (
    Address, Asset, PriceFeed, Custody,
    CollateralDeposited, CollateralRedeemed,
    RequiresMoreThanZero, NotAllowedTokenCollateral,
    BreaksHealthFactor, HealthFactorOk, HealthFactorNotImproved,
    MintError, TransferFailed, ReentrantCall,
    synchronized,
)
from .registry import AssetRegistry
from .accounts import CollateralLedger, DebtLedger
from .risk import (
    RiskParameters, DEFAULT_RISK_PARAMETERS, AccountRisk,
    calculate_usd_value, calculate_quantity_from_usd, calculate_collateral_value,
    calculate_health_factor, calculate_liquidation_seizure,
    read_price, fetch_prices, assess_account,
)


logger = logging.getLogger(__name__)


# A deferred external call, run once all checks of a transaction have passed.
Settlement = Callable[[], None]

# An engine event record.
Event = Any


def _require_more_than_zero(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount).__name__}")
    if amount <= 0:
        raise RequiresMoreThanZero(amount)
    return amount


class PositionController:
    """
    Over-collateralized debt engine for a USD-pegged token.

    Users deposit allowed collateral assets and mint pegged-token debt against
    them while their health factor stays at or above the minimum. Accounts
    that fall below the minimum can be liquidated by anyone holding enough of
    the pegged token.

    The acting identity is the first argument of every mutating operation.
    The engine itself holds custody under its own address, so users approve
    that address before depositing or burning.

    Thread Safety:
        Every public operation, reads included, holds the custody ledger's
        re-entrant `lock`. A transaction holds it from snapshot to commit or
        rollback, so other threads never observe uncommitted ledger writes
        and cannot move custody tokens in between. Mutating calls made from
        the thread already inside a transaction raise ReentrantCall; reads
        from that thread are allowed.

        A collaborator that hands a mutating call to another thread and
        waits for it deadlocks: the other thread queues on the lock behind
        the transaction that is waiting for it. Calls handed off without
        waiting run after the transaction commits or rolls back.
    """

    def __init__(
        self,
        collateral_assets: Sequence[Asset],
        price_feeds: Sequence[PriceFeed],
        stable_token,
        custody: Optional[Custody] = None,
        address: Address = "dsc_engine",
        params: RiskParameters = DEFAULT_RISK_PARAMETERS,
    ):
        """
        Create the engine.

        Args:
            collateral_assets: Allowed collateral assets, in valuation order
            price_feeds: Price feed of each asset, same order
            stable_token: Pegged token whose mint/burn authority is this engine
            custody: Ledger holding collateral and pegged-token balances
                (default: the stable token's own ledger)
            address: Identity under which the engine holds custody
            params: Risk parameters

        Raises:
            ArrayLengthMismatch: If assets and feeds differ in length
            DuplicateCollateralAsset: If an asset is listed twice
            ValueError: If the stable token does not live on the custody ledger
        """
        token_ledger = getattr(stable_token, 'ledger', None)
        if custody is None:
            if token_ledger is None:
                raise ValueError("custody is required when the stable token has no ledger")
            custody = token_ledger
        elif token_ledger is not None and token_ledger is not custody:
            raise ValueError("stable token must live on the custody ledger")

        self._registry = AssetRegistry(collateral_assets, price_feeds)
        self._stable_token = stable_token
        self._custody = custody
        self._params = params
        self.address = address

        self._collateral = CollateralLedger()
        self._debt = DebtLedger()
        self._events: List[Event] = []

        self._active_thread: Optional[int] = None

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def lock(self):
        """The custody ledger's lock, shared by every engine on that ledger."""
        return self._custody.lock

    @property
    def registry(self) -> AssetRegistry:
        return self._registry

    @property
    def stable_token(self):
        return self._stable_token

    @property
    def custody(self) -> Custody:
        return self._custody

    @property
    def params(self) -> RiskParameters:
        return self._params

    @property
    @synchronized
    def events(self) -> Tuple[Event, ...]:
        """Emitted events, oldest first."""
        return tuple(self._events)

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    @contextmanager
    def _transaction(self, operation: str, **details) -> Iterator[List[Settlement]]:
        """
        Run the body of a mutating operation atomically.

        Yields the settlement queue. Settlements run in order after the body
        returns; any exception from the body or a settlement rolls back the
        ledgers, the event log and custody.
        """
        if self._active_thread == threading.get_ident():
            raise ReentrantCall(f"{operation} called while another operation is in progress")

        with self.lock:
            self._active_thread = threading.get_ident()
            collateral_snapshot = self._collateral.snapshot()
            debt_snapshot = self._debt.snapshot()
            events_length = len(self._events)
            custody_snapshot = self._custody.snapshot()
            settlements: List[Settlement] = []
            try:
                yield settlements
                for settle in settlements:
                    settle()
            except Exception as e:
                self._collateral.restore(collateral_snapshot)
                self._debt.restore(debt_snapshot)
                del self._events[events_length:]
                self._custody.restore(custody_snapshot)
                logger.warning("%s rolled back %s: %s: %s", operation, details, type(e).__name__, e)
                raise
            finally:
                self._active_thread = None
        logger.info("%s applied %s", operation, details)

    def _pull(self, symbol: str, owner: Address, amount: int) -> None:
        if not self._custody.transfer_from(symbol, self.address, owner, self.address, amount):
            raise TransferFailed(f"could not pull {amount} {symbol} from {owner}")

    def _push(self, symbol: str, recipient: Address, amount: int) -> None:
        if not self._custody.transfer(symbol, self.address, recipient, amount):
            raise TransferFailed(f"could not push {amount} {symbol} to {recipient}")

    def _mint_to(self, user: Address, amount: int) -> None:
        if not self._stable_token.mint(self.address, user, amount):
            raise MintError(f"mint of {amount} {self._stable_token.symbol} to {user} failed")

    def _pull_and_burn(self, dsc_from: Address, amount: int) -> None:
        self._pull(self._stable_token.symbol, dsc_from, amount)
        self._stable_token.burn(self.address, amount)

    # ========================================================================
    # LEDGER STEPS - mutate ledgers, return the settlement to queue
    # ========================================================================

    def _require_allowed(self, asset: Asset) -> None:
        if not self._registry.is_allowed(asset):
            raise NotAllowedTokenCollateral(asset)

    def _deposit(self, user: Address, asset: Asset, amount: int) -> Settlement:
        self._collateral.credit(user, asset, amount)
        self._events.append(CollateralDeposited(user, asset, amount))
        return partial(self._pull, asset, user, amount)

    def _mint(self, user: Address, amount: int) -> Settlement:
        self._debt.increase(user, amount)
        return partial(self._mint_to, user, amount)

    def _redeem(self, asset: Asset, amount: int, redeemed_from: Address, redeemed_to: Address) -> Settlement:
        self._collateral.debit(redeemed_from, asset, amount)
        self._events.append(CollateralRedeemed(redeemed_from, redeemed_to, asset, amount))
        return partial(self._push, asset, redeemed_to, amount)

    def _burn(self, amount: int, on_behalf_of: Address, dsc_from: Address) -> Settlement:
        self._debt.decrease(on_behalf_of, amount)
        return partial(self._pull_and_burn, dsc_from, amount)

    def _revert_if_health_factor_is_broken(self, user: Address) -> None:
        health_factor = self.get_health_factor(user)
        if health_factor < self._params.min_health_factor:
            raise BreaksHealthFactor(health_factor)

    # ========================================================================
    # PUBLIC OPERATIONS (Mutating)
    # ========================================================================

    def deposit_collateral(self, user: Address, asset: Asset, amount: int) -> None:
        """
        Deposit collateral, pulling it from the user into engine custody.

        The user must have approved the engine's address for amount.

        Raises:
            RequiresMoreThanZero: If amount <= 0
            NotAllowedTokenCollateral: If the asset is not allowed
            TransferFailed: If the custody pull is rejected
        """
        _require_more_than_zero(amount)
        self._require_allowed(asset)
        with self._transaction("deposit_collateral", user=user, asset=asset, amount=amount) as tx:
            tx.append(self._deposit(user, asset, amount))

    def mint_debt(self, user: Address, amount: int) -> None:
        """
        Mint pegged tokens to the user against their collateral.

        Raises:
            RequiresMoreThanZero: If amount <= 0
            BreaksHealthFactor: If the resulting health factor is below the minimum
            MintError: If the pegged token reports a failed mint
        """
        _require_more_than_zero(amount)
        with self._transaction("mint_debt", user=user, amount=amount) as tx:
            tx.append(self._mint(user, amount))
            self._revert_if_health_factor_is_broken(user)

    def redeem_collateral(self, user: Address, asset: Asset, amount: int) -> None:
        """
        Withdraw collateral back to the user.

        Raises:
            RequiresMoreThanZero: If amount <= 0
            NotAllowedTokenCollateral: If the asset is not allowed
            NotEnoughCollateral: If the user deposited less than amount
            BreaksHealthFactor: If the withdrawal leaves the user below the minimum
        """
        _require_more_than_zero(amount)
        self._require_allowed(asset)
        with self._transaction("redeem_collateral", user=user, asset=asset, amount=amount) as tx:
            tx.append(self._redeem(asset, amount, user, user))
            self._revert_if_health_factor_is_broken(user)

    def burn_debt(self, user: Address, amount: int) -> None:
        """
        Repay debt: pull pegged tokens from the user and burn them.

        Burning can only improve a health factor, so no valuation happens and
        burning still works while prices are stale.

        Raises:
            RequiresMoreThanZero: If amount <= 0
            NotEnoughDSC: If the user owes less than amount
            TransferFailed: If the user has not approved or does not hold amount
        """
        _require_more_than_zero(amount)
        with self._transaction("burn_debt", user=user, amount=amount) as tx:
            tx.append(self._burn(amount, user, user))

    def deposit_and_mint(
        self,
        user: Address,
        asset: Asset,
        collateral_amount: int,
        mint_amount: int,
    ) -> None:
        """Deposit collateral and mint against it in one transaction."""
        _require_more_than_zero(collateral_amount)
        _require_more_than_zero(mint_amount)
        self._require_allowed(asset)
        with self._transaction(
            "deposit_and_mint", user=user, asset=asset,
            collateral_amount=collateral_amount, mint_amount=mint_amount,
        ) as tx:
            tx.append(self._deposit(user, asset, collateral_amount))
            tx.append(self._mint(user, mint_amount))
            self._revert_if_health_factor_is_broken(user)

    def redeem_and_burn(
        self,
        user: Address,
        asset: Asset,
        collateral_amount: int,
        burn_amount: int,
    ) -> None:
        """
        Burn debt then redeem collateral in one transaction.

        Burning first means the redemption's health check sees the reduced debt.
        """
        _require_more_than_zero(collateral_amount)
        _require_more_than_zero(burn_amount)
        self._require_allowed(asset)
        with self._transaction(
            "redeem_and_burn", user=user, asset=asset,
            collateral_amount=collateral_amount, burn_amount=burn_amount,
        ) as tx:
            tx.append(self._burn(burn_amount, user, user))
            tx.append(self._redeem(asset, collateral_amount, user, user))
            self._revert_if_health_factor_is_broken(user)

    def liquidate(self, liquidator: Address, asset: Asset, user: Address, debt_to_cover: int) -> None:
        """
        Repay part of an unhealthy account's debt in exchange for its collateral.

        The liquidator pays debt_to_cover pegged tokens and receives the
        USD-equivalent quantity of asset plus the liquidation bonus, seized
        from the user's deposit.

        Args:
            liquidator: Identity paying the debt and receiving collateral
            asset: Collateral asset to seize
            user: Account being liquidated
            debt_to_cover: Pegged-token amount of the user's debt to repay

        Raises:
            RequiresMoreThanZero: If debt_to_cover <= 0
            NotAllowedTokenCollateral: If the asset is not allowed
            HealthFactorOk: If the user's health factor is not below the minimum
            NotEnoughCollateral: If the user's deposit cannot cover the seizure
            NotEnoughDSC: If debt_to_cover exceeds the user's debt
            HealthFactorNotImproved: If the user's health factor does not strictly rise
            BreaksHealthFactor: If the liquidator ends up below the minimum
            TransferFailed: If the liquidator's pegged tokens cannot be pulled
        """
        _require_more_than_zero(debt_to_cover)
        self._require_allowed(asset)
        with self._transaction(
            "liquidate", liquidator=liquidator, asset=asset, user=user, debt_to_cover=debt_to_cover,
        ) as tx:
            starting = self.get_health_factor(user)
            if starting >= self._params.min_health_factor:
                raise HealthFactorOk(starting)

            price = read_price(self._registry, asset)
            seizure = calculate_liquidation_seizure(asset, price, debt_to_cover, self._params)
            push = self._redeem(asset, seizure.total_quantity, user, liquidator)
            tx.append(self._burn(debt_to_cover, user, liquidator))
            tx.append(push)

            ending = self.get_health_factor(user)
            if ending <= starting:
                raise HealthFactorNotImproved(starting, ending)
            self._revert_if_health_factor_is_broken(liquidator)

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    @synchronized
    def get_usd_value(self, asset: Asset, amount: int) -> int:
        """USD value (18 decimals) of amount of asset at the latest price."""
        return calculate_usd_value(read_price(self._registry, asset), amount, self._params)

    @synchronized
    def get_token_amount_from_usd(self, asset: Asset, usd_amount: int) -> int:
        """Quantity of asset worth usd_amount at the latest price (floored)."""
        return calculate_quantity_from_usd(read_price(self._registry, asset), usd_amount, self._params)

    @synchronized
    def get_account_collateral_value(self, user: Address) -> int:
        prices = fetch_prices(self._registry)
        return calculate_collateral_value(
            self._collateral.balances(user), prices, self._registry.allowed_assets(), self._params,
        )

    @synchronized
    def get_account_information(self, user: Address) -> Tuple[int, int]:
        """Return (debt, collateral_value_usd) for a user."""
        return self._debt.debt_of(user), self.get_account_collateral_value(user)

    @synchronized
    def get_health_factor(self, user: Address) -> int:
        debt, value = self.get_account_information(user)
        return calculate_health_factor(debt, value, self._params)

    def calculate_health_factor(self, debt: int, collateral_value_usd: int) -> int:
        """Health factor for arbitrary inputs, using this engine's parameters."""
        return calculate_health_factor(debt, collateral_value_usd, self._params)

    @synchronized
    def get_collateral_balance_of_user(self, user: Address, asset: Asset) -> int:
        return self._collateral.balance_of(user, asset)

    @synchronized
    def get_debt(self, user: Address) -> int:
        return self._debt.debt_of(user)

    def get_collateral_tokens(self) -> Tuple[Asset, ...]:
        return self._registry.allowed_assets()

    def get_collateral_token_price_feed(self, asset: Asset) -> PriceFeed:
        return self._registry.price_feed(asset)

    @synchronized
    def assess(self, user: Address) -> AccountRisk:
        """Full risk assessment of one account at the latest prices."""
        return assess_account(self, self._registry, user, self._params)

    @synchronized
    def list_accounts(self) -> List[Address]:
        """Every user that has ever deposited or minted, sorted."""
        return sorted(self._collateral.accounts() | self._debt.accounts())

    @synchronized
    def verify_solvency(self) -> Dict[str, Any]:
        """
        Check that outstanding debt is backed by collateral at current prices.

        Prices are read once and used for every account.

        Returns:
            Dict with keys:
            - 'valid': bool - True if total debt <= total collateral value
            - 'total_debt': int - Sum of all users' debt
            - 'total_collateral_value': int - Sum of all deposits in USD
            - 'insolvent': List[str] - Users whose debt exceeds their collateral value
            - 'liquidatable': List[str] - Users below the minimum health factor
        """
        prices = fetch_prices(self._registry)
        assets = self._registry.allowed_assets()
        total_debt = 0
        total_value = 0
        insolvent = []
        liquidatable = []
        for user in self.list_accounts():
            debt = self._debt.debt_of(user)
            value = calculate_collateral_value(self._collateral.balances(user), prices, assets, self._params)
            total_debt += debt
            total_value += value
            if debt > value:
                insolvent.append(user)
            if calculate_health_factor(debt, value, self._params) < self._params.min_health_factor:
                liquidatable.append(user)
        return {
            'valid': total_debt <= total_value,
            'total_debt': total_debt,
            'total_collateral_value': total_value,
            'insolvent': insolvent,
            'liquidatable': liquidatable,
        }

    def __repr__(self) -> str:
        return (
            f"PositionController({self.address}, assets={list(self._registry.allowed_assets())}, "
            f"accounts={len(self.list_accounts())}, total_debt={self._debt.total_debt()})"
        )
