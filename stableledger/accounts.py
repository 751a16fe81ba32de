"""
accounts.py - Per-user collateral and debt ledgers

The two ledgers are the engine's only durable state. Accounts are keyed by
user identity, created lazily on first write and never removed; a drained
account simply holds zeros.

Only PositionController mutates these ledgers. Everything else reads them
through the AccountView protocol.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Set, Tuple

from .core import (
    Address, Asset, CollateralMap,
    NotEnoughCollateral, NotEnoughDSC,
    require_quantity,
)


# Immutable copy of a ledger's contents, used for rollback.
CollateralSnapshot = Tuple[Tuple[Address, Tuple[Tuple[Asset, int], ...]], ...]
DebtSnapshot = Tuple[Tuple[Address, int], ...]


class CollateralLedger:
    """
    Deposited quantity per (user, asset).

    Example:
        ledger = CollateralLedger()
        ledger.credit("alice", "WETH", 10 * 10**18)
        ledger.debit("alice", "WETH", 4 * 10**18)
        ledger.balance_of("alice", "WETH")   # 6 * 10**18
    """

    def __init__(self):
        self._deposits: Dict[Address, Dict[Asset, int]] = defaultdict(lambda: defaultdict(int))

    def balance_of(self, user: Address, asset: Asset) -> int:
        """Deposited quantity of an asset (0 if the account or asset is unknown)."""
        if user not in self._deposits:
            return 0
        return self._deposits[user].get(asset, 0)

    def balances(self, user: Address) -> CollateralMap:
        """Copy of all deposited quantities for a user."""
        if user not in self._deposits:
            return {}
        return dict(self._deposits[user])

    def credit(self, user: Address, asset: Asset, amount: int) -> int:
        """
        Increase a user's deposit.

        Returns:
            The new deposited quantity
        """
        require_quantity(amount)
        self._deposits[user][asset] += amount
        return self._deposits[user][asset]

    def debit(self, user: Address, asset: Asset, amount: int) -> int:
        """
        Decrease a user's deposit.

        Returns:
            The new deposited quantity

        Raises:
            NotEnoughCollateral: If the deposit is smaller than amount
        """
        require_quantity(amount)
        available = self.balance_of(user, asset)
        if available < amount:
            raise NotEnoughCollateral(available, amount)
        self._deposits[user][asset] = available - amount
        return available - amount

    def total(self, asset: Asset) -> int:
        """Sum of an asset's deposits across all accounts (sorted for determinism)."""
        return sum(self._deposits[u].get(asset, 0) for u in sorted(self._deposits))

    def accounts(self) -> Set[Address]:
        """Users that have ever deposited."""
        return set(self._deposits)

    def snapshot(self) -> CollateralSnapshot:
        return tuple(
            (user, tuple(deposits.items()))
            for user, deposits in self._deposits.items()
        )

    def restore(self, snapshot: CollateralSnapshot) -> None:
        self._deposits = defaultdict(lambda: defaultdict(int))
        for user, deposits in snapshot:
            self._deposits[user] = defaultdict(int, deposits)

    def __repr__(self) -> str:
        return f"CollateralLedger({len(self._deposits)} accounts)"


class DebtLedger:
    """Pegged-token debt minted per user."""

    def __init__(self):
        self._minted: Dict[Address, int] = defaultdict(int)

    def debt_of(self, user: Address) -> int:
        return self._minted.get(user, 0)

    def increase(self, user: Address, amount: int) -> int:
        require_quantity(amount)
        self._minted[user] += amount
        return self._minted[user]

    def decrease(self, user: Address, amount: int) -> int:
        """
        Reduce a user's debt.

        Raises:
            NotEnoughDSC: If the user owes less than amount
        """
        require_quantity(amount)
        current = self.debt_of(user)
        if current < amount:
            raise NotEnoughDSC(current, amount)
        self._minted[user] = current - amount
        return current - amount

    def total_debt(self) -> int:
        return sum(self._minted.values())

    def accounts(self) -> Set[Address]:
        return set(self._minted)

    def snapshot(self) -> DebtSnapshot:
        return tuple(self._minted.items())

    def restore(self, snapshot: DebtSnapshot) -> None:
        self._minted = defaultdict(int, snapshot)

    def __repr__(self) -> str:
        return f"DebtLedger({len(self._minted)} accounts, total={self.total_debt()})"
