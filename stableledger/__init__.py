"""
stableledger - Over-collateralized stable token engine

Collateral and debt accounting, health factor risk checks and liquidation
for a USD-pegged token, with an in-memory token ledger and price feeds to
run it against.

Usage:
    from datetime import timedelta
    from stableledger import (
        TokenLedger, Token, PeggedToken, MockPriceFeed, StaleCheckedFeed,
        PositionController, usd_answer,
    )

    chain = TokenLedger("chain")
    weth = Token.create(chain, "WETH", "Wrapped Ether")
    dsc = PeggedToken.deploy(chain, authority="deployer")

    clock = lambda: chain.current_time
    eth_usd = MockPriceFeed(8, usd_answer(2000), clock)
    engine = PositionController(["WETH"], [StaleCheckedFeed(eth_usd, clock)], dsc)
    dsc.transfer_authority("deployer", engine.address)

    weth.faucet("alice", 10 * 10**18)
    weth.approve("alice", engine.address, 10 * 10**18)
    engine.deposit_and_mint("alice", "WETH", 10 * 10**18, 5000 * 10**18)
    engine.get_health_factor("alice")       # 2 * 10**18
"""

# Core types
from .core import (
    PRECISION,
    FEED_DECIMALS,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ORACLE_TIMEOUT,
    ZERO_ADDRESS,
    SYSTEM_WALLET,
    Address,
    Asset,
    PriceFeed,
    AccountView,
    Custody,
    StableToken,
    StableLedgerError,
    EngineError,
    RequiresMoreThanZero,
    ArrayLengthMismatch,
    DuplicateCollateralAsset,
    NotAllowedTokenCollateral,
    NotEnoughCollateral,
    NotEnoughDSC,
    BreaksHealthFactor,
    HealthFactorOk,
    HealthFactorNotImproved,
    InvalidPrice,
    MintError,
    TransferFailed,
    ReentrantCall,
    TokenError,
    TokenNotRegistered,
    TransferRuleViolation,
    NotAuthority,
    ZeroAddress,
    ZeroAmount,
    BurnAmountExceedsBalance,
    OracleError,
    StalePrice,
    CollateralDeposited,
    CollateralRedeemed,
)

# Registry and ledgers
from .registry import AssetRegistry
from .accounts import CollateralLedger, DebtLedger

# Risk
from .risk import (
    RiskParameters,
    DEFAULT_RISK_PARAMETERS,
    AccountSnapshot,
    AccountRisk,
    Seizure,
    validate_price,
    calculate_usd_value,
    calculate_quantity_from_usd,
    calculate_collateral_value,
    calculate_health_factor,
    calculate_liquidation_seizure,
    calculate_account_risk,
    read_price,
    fetch_prices,
    load_account,
    assess_account,
)

# Engine
from .engine import PositionController

# Collaborators
from .token_ledger import (
    Move,
    TokenUnit,
    ExecuteResult,
    TokenLedger,
    Token,
    PeggedToken,
)
from .oracle import (
    RoundData,
    MockPriceFeed,
    StaleCheckedFeed,
    stale_check_latest_round_data,
    usd_answer,
)

# Stress testing
from .stress import (
    StressStep,
    simulate_price_path,
    liquidatable_accounts,
    run_price_path,
)


__all__ = [
    # Constants
    'PRECISION', 'FEED_DECIMALS', 'ADDITIONAL_FEED_PRECISION',
    'LIQUIDATION_THRESHOLD', 'LIQUIDATION_PRECISION', 'LIQUIDATION_BONUS',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR', 'ORACLE_TIMEOUT',
    'ZERO_ADDRESS', 'SYSTEM_WALLET',
    # Types and protocols
    'Address', 'Asset', 'PriceFeed', 'AccountView', 'Custody', 'StableToken',
    # Exceptions
    'StableLedgerError', 'EngineError', 'RequiresMoreThanZero',
    'ArrayLengthMismatch', 'DuplicateCollateralAsset', 'NotAllowedTokenCollateral',
    'NotEnoughCollateral', 'NotEnoughDSC', 'BreaksHealthFactor', 'HealthFactorOk',
    'HealthFactorNotImproved', 'InvalidPrice', 'MintError', 'TransferFailed',
    'ReentrantCall', 'TokenError', 'TokenNotRegistered', 'TransferRuleViolation',
    'NotAuthority', 'ZeroAddress', 'ZeroAmount', 'BurnAmountExceedsBalance',
    'OracleError', 'StalePrice',
    # Events
    'CollateralDeposited', 'CollateralRedeemed',
    # Registry and ledgers
    'AssetRegistry', 'CollateralLedger', 'DebtLedger',
    # Risk
    'RiskParameters', 'DEFAULT_RISK_PARAMETERS', 'AccountSnapshot', 'AccountRisk',
    'Seizure', 'validate_price', 'calculate_usd_value', 'calculate_quantity_from_usd',
    'calculate_collateral_value', 'calculate_health_factor',
    'calculate_liquidation_seizure', 'calculate_account_risk',
    'read_price', 'fetch_prices', 'load_account', 'assess_account',
    # Engine
    'PositionController',
    # Token ledger
    'Move', 'TokenUnit', 'ExecuteResult', 'TokenLedger', 'Token', 'PeggedToken',
    # Oracle
    'RoundData', 'MockPriceFeed', 'StaleCheckedFeed',
    'stale_check_latest_round_data', 'usd_answer',
    # Stress
    'StressStep', 'simulate_price_path', 'liquidatable_accounts', 'run_price_path',
]

__version__ = '1.0.0'
