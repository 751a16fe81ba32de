"""
Idempotency Conformance Tests

INVARIANT: Reads never mutate state.

    ∀ read r, ∀ state S, absent mutations and price updates:
        r(S) = r(S) on every repetition
        state after r = S

Health is derived from the ledgers and a live price read on every call;
nothing is cached, so a price update is visible to the very next read.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from stableledger import usd_answer
from tests.system import build_system, engine_state, UNIT


def read_everything(engine, user):
    return (
        engine.get_account_collateral_value(user),
        engine.get_health_factor(user),
        engine.get_account_information(user),
        engine.get_collateral_balance_of_user(user, "WETH"),
        engine.get_debt(user),
        engine.assess(user),
        engine.verify_solvency(),
        engine.list_accounts(),
    )


class TestIdempotencyProperties:
    """Property-based read idempotency tests."""

    @given(
        st.integers(min_value=1, max_value=10 * UNIT),
        st.integers(min_value=0, max_value=100),
        st.integers(min_value=1, max_value=5),
    )
    @settings(max_examples=50, deadline=None)
    def test_repeated_reads_identical(self, deposit, mint_percent, repeats):
        """
        PROPERTY: Reading N times returns the same values and leaves state unchanged.
        """
        system = build_system()
        engine = system.engine
        engine.deposit_collateral("alice", "WETH", deposit)
        mint = engine.get_account_collateral_value("alice") // 2 * mint_percent // 100
        if mint:
            engine.mint_debt("alice", mint)

        state = engine_state(engine)
        first = read_everything(engine, "alice")
        for _ in range(repeats):
            assert read_everything(engine, "alice") == first
        assert engine_state(engine) == state

    @given(st.sampled_from(["alice", "nobody"]))
    @settings(max_examples=10, deadline=None)
    def test_reads_do_not_create_accounts(self, user):
        """
        PROPERTY: Reading an unknown account does not register it.
        """
        system = build_system()
        read_everything(system.engine, user)
        assert system.engine.list_accounts() == []


class TestIdempotencyExamples:
    """Explicit examples."""

    def test_price_update_visible_immediately(self):
        system = build_system()
        engine = system.engine
        engine.deposit_and_mint("alice", "WETH", UNIT, 500 * UNIT)
        assert engine.get_health_factor("alice") == 2 * UNIT

        system.eth_usd.update_answer(usd_answer(1000))
        assert engine.get_health_factor("alice") == UNIT

        system.eth_usd.update_answer(usd_answer(2000))
        assert engine.get_health_factor("alice") == 2 * UNIT
