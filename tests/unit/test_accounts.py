"""
test_accounts.py - Unit tests for CollateralLedger and DebtLedger

Tests:
- Default-zero reads for unknown accounts
- Credit/debit and increase/decrease arithmetic
- Insufficient balance errors carry the offending values
- Quantity validation
- Snapshot and restore
"""

import pytest

from stableledger import (
    CollateralLedger,
    DebtLedger,
    NotEnoughCollateral,
    NotEnoughDSC,
)


class TestCollateralLedger:
    """Tests for per-(user, asset) deposits."""

    def test_unknown_account_reads_zero(self):
        ledger = CollateralLedger()
        assert ledger.balance_of("alice", "WETH") == 0
        assert ledger.balances("alice") == {}
        assert ledger.accounts() == set()

    def test_credit_and_debit(self):
        ledger = CollateralLedger()
        assert ledger.credit("alice", "WETH", 10) == 10
        assert ledger.credit("alice", "WETH", 5) == 15
        assert ledger.debit("alice", "WETH", 4) == 11
        assert ledger.balance_of("alice", "WETH") == 11
        assert ledger.balance_of("alice", "WBTC") == 0

    def test_debit_more_than_deposited(self):
        ledger = CollateralLedger()
        ledger.credit("alice", "WETH", 10)
        with pytest.raises(NotEnoughCollateral) as exc_info:
            ledger.debit("alice", "WETH", 11)
        assert exc_info.value.available == 10
        assert exc_info.value.requested == 11
        assert ledger.balance_of("alice", "WETH") == 10

    def test_drained_account_is_kept(self):
        ledger = CollateralLedger()
        ledger.credit("alice", "WETH", 10)
        ledger.debit("alice", "WETH", 10)
        assert ledger.balance_of("alice", "WETH") == 0
        assert "alice" in ledger.accounts()

    def test_reads_do_not_create_accounts(self):
        ledger = CollateralLedger()
        ledger.balance_of("ghost", "WETH")
        ledger.balances("ghost")
        assert ledger.accounts() == set()

    def test_total_across_accounts(self):
        ledger = CollateralLedger()
        ledger.credit("alice", "WETH", 10)
        ledger.credit("bob", "WETH", 7)
        ledger.credit("bob", "WBTC", 3)
        assert ledger.total("WETH") == 17
        assert ledger.total("WBTC") == 3

    @pytest.mark.parametrize("bad", [-1, 1.5, "10", True])
    def test_invalid_quantities_rejected(self, bad):
        ledger = CollateralLedger()
        with pytest.raises(ValueError):
            ledger.credit("alice", "WETH", bad)

    def test_balances_returns_copy(self):
        ledger = CollateralLedger()
        ledger.credit("alice", "WETH", 10)
        balances = ledger.balances("alice")
        balances["WETH"] = 999
        assert ledger.balance_of("alice", "WETH") == 10

    def test_snapshot_restore(self):
        ledger = CollateralLedger()
        ledger.credit("alice", "WETH", 10)
        snapshot = ledger.snapshot()
        ledger.debit("alice", "WETH", 3)
        ledger.credit("bob", "WBTC", 1)
        ledger.restore(snapshot)
        assert ledger.balance_of("alice", "WETH") == 10
        assert ledger.balance_of("bob", "WBTC") == 0
        assert ledger.accounts() == {"alice"}


class TestDebtLedger:
    """Tests for per-user minted debt."""

    def test_unknown_account_owes_nothing(self):
        assert DebtLedger().debt_of("alice") == 0

    def test_increase_and_decrease(self):
        ledger = DebtLedger()
        ledger.increase("alice", 100)
        ledger.increase("bob", 50)
        assert ledger.decrease("alice", 40) == 60
        assert ledger.total_debt() == 110
        assert ledger.accounts() == {"alice", "bob"}

    def test_decrease_more_than_owed(self):
        ledger = DebtLedger()
        ledger.increase("alice", 100)
        with pytest.raises(NotEnoughDSC) as exc_info:
            ledger.decrease("alice", 101)
        assert exc_info.value.current_debt == 100
        assert exc_info.value.requested == 101
        assert ledger.debt_of("alice") == 100

    def test_snapshot_restore(self):
        ledger = DebtLedger()
        ledger.increase("alice", 100)
        snapshot = ledger.snapshot()
        ledger.increase("alice", 1)
        ledger.increase("bob", 1)
        ledger.restore(snapshot)
        assert ledger.debt_of("alice") == 100
        assert ledger.debt_of("bob") == 0
        assert ledger.total_debt() == 100
