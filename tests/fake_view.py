"""
fake_view.py - Test helpers for AccountView and PriceFeed

Provides minimal implementations for testing risk functions without
requiring a token ledger or a full PositionController.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Optional, Sequence, Tuple

from stableledger.oracle import RoundData


class FakeAccountView:
    """
    Minimal AccountView implementation for testing risk functions.

    Example:
        view = FakeAccountView(
            collateral={'alice': {'WETH': 10**18}},
            debts={'alice': 500 * 10**18},
        )

        view.get_collateral_balance_of_user('alice', 'WETH')
        # Returns: 10**18
    """

    def __init__(
        self,
        collateral: Dict[str, Dict[str, int]],
        debts: Optional[Dict[str, int]] = None,
        assets: Sequence[str] = ("WETH", "WBTC"),
    ):
        self._collateral = collateral
        self._debts = debts or {}
        self._assets = tuple(assets)

    def get_collateral_tokens(self) -> Tuple[str, ...]:
        return self._assets

    def get_collateral_balance_of_user(self, user: str, asset: str) -> int:
        return self._collateral.get(user, {}).get(asset, 0)

    def get_debt(self, user: str) -> int:
        return self._debts.get(user, 0)


class FakeFeed:
    """Price feed with a fixed answer and a counter of reads."""

    def __init__(self, answer: int, decimals: int = 8):
        self.answer = answer
        self._decimals = decimals
        self.reads = 0

    @property
    def decimals(self) -> int:
        return self._decimals

    def latest_round_data(self) -> RoundData:
        self.reads += 1
        now = datetime(2025, 1, 1)
        return RoundData(1, self.answer, now, now, 1)
