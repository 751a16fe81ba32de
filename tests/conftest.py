"""
conftest.py - Shared pytest fixtures for stableledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Token ledger with WETH, WBTC and the pegged token
- Price feeds (raw and stale-checked) on the ledger's logical clock
- A wired PositionController that owns the pegged token's authority
- Funded and approved users, plus accounts with open positions
- State capture for rollback comparisons
"""

import pytest
from datetime import datetime

from stableledger import (
    FEED_DECIMALS,
    TokenLedger, Token, PeggedToken,
    MockPriceFeed, StaleCheckedFeed,
    PositionController,
    usd_answer,
)
from tests.system import engine_state


T0 = datetime(2025, 1, 1)

ETH_PRICE = usd_answer(2000)
BTC_PRICE = usd_answer(1000)

UNIT = 10 ** 18
STARTING_BALANCE = 10 * UNIT
LIQUIDATOR_BALANCE = 20 * UNIT

USERS = ("alice", "bob", "carol")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fund(engine: PositionController, user: str, amount: int = STARTING_BALANCE) -> None:
    """Give a user WETH and WBTC and approve the engine for all of it."""
    chain = engine.custody
    for symbol in ("WETH", "WBTC"):
        chain.issue(symbol, user, amount)
        chain.approve(user, engine.address, symbol, amount)


# =============================================================================
# TOKEN FIXTURES
# =============================================================================

@pytest.fixture
def chain():
    """Token ledger starting at T0."""
    return TokenLedger("chain", T0)


@pytest.fixture
def weth(chain):
    return Token.create(chain, "WETH", "Wrapped Ether")


@pytest.fixture
def wbtc(chain):
    return Token.create(chain, "WBTC", "Wrapped Bitcoin")


@pytest.fixture
def dsc(chain):
    """Pegged token, authority still held by the deployer."""
    return PeggedToken.deploy(chain, authority="deployer")


# =============================================================================
# ORACLE FIXTURES
# =============================================================================

@pytest.fixture
def clock(chain):
    return lambda: chain.current_time


@pytest.fixture
def eth_usd(clock):
    return MockPriceFeed(FEED_DECIMALS, ETH_PRICE, clock)


@pytest.fixture
def btc_usd(clock):
    return MockPriceFeed(FEED_DECIMALS, BTC_PRICE, clock)


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine(weth, wbtc, dsc, eth_usd, btc_usd, clock):
    """Engine over WETH and WBTC that owns the pegged token's authority."""
    engine = PositionController(
        ["WETH", "WBTC"],
        [StaleCheckedFeed(eth_usd, clock), StaleCheckedFeed(btc_usd, clock)],
        dsc,
    )
    dsc.transfer_authority("deployer", engine.address)
    return engine


@pytest.fixture
def funded_engine(engine):
    """Engine whose users hold 10 WETH and 10 WBTC each, fully approved."""
    for user in USERS:
        fund(engine, user)
    fund(engine, "liquidator", LIQUIDATOR_BALANCE)
    return engine


@pytest.fixture
def deposited_engine(funded_engine):
    """alice has deposited 10 WETH ($20,000) and minted nothing."""
    funded_engine.deposit_collateral("alice", "WETH", STARTING_BALANCE)
    return funded_engine


@pytest.fixture
def minted_engine(funded_engine, dsc):
    """alice has deposited 10 WETH, minted 100 DSC and approved the engine for that DSC."""
    funded_engine.deposit_and_mint("alice", "WETH", STARTING_BALANCE, 100 * UNIT)
    dsc.approve("alice", funded_engine.address, 100 * UNIT)
    return funded_engine


@pytest.fixture
def capture_state():
    """Function returning a comparable copy of an engine's full state."""
    return engine_state
