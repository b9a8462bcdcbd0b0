"""
synthdollar - Over-collateralized Synthetic Dollar Engine

An accounting engine for a collateral-backed synthetic dollar: users deposit
approved collateral, mint debt tokens against it, and every state change is
checked against a minimum health factor. Undercollateralized positions can be
liquidated by anyone for a bonus share of the collateral.

Usage:
    from synthdollar import (
        CollateralEngine, StaticPriceFeed, TokenLedger, DebtTokenLedger,
        ENGINE_WALLET, feed_price, to_base_units,
    )

    feed = StaticPriceFeed({"WETH": feed_price(2000)})
    tokens = TokenLedger()
    dsc = DebtTokenLedger()
    engine = CollateralEngine(["WETH"], [feed], dsc, tokens)

    # Fund and approve the user, then open a position
    tokens.mint("WETH", "alice", to_base_units(10))
    tokens.approve("WETH", "alice", ENGINE_WALLET, to_base_units(10))
    engine.deposit_and_mint("alice", "WETH", to_base_units(10), to_base_units(100))

    engine.health_factor("alice")   # 100 * 10**18
"""

# Core types
from .core import (
    PriceSource,
    AssetTransfer,
    DebtToken,
    EngineParameters,
    Position,
    AccountInfo,
    EventKind,
    EngineEvent,
    OperationRecord,
    EngineError,
    InvalidAmount,
    UnsupportedAsset,
    ConfigurationMismatch,
    TransferFailed,
    InsufficientCollateral,
    InsufficientDebt,
    PositionHealthy,
    HealthFactorBroken,
    LiquidationIneffective,
    ReentrantCall,
    UndefinedHealthFactor,
    MustHaveMintedDsc,
    InvalidPrice,
    PRECISION,
    FEED_DECIMALS,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR,
    LIQUIDATION_BONUS,
    MAX_HEALTH_FACTOR,
    ENGINE_WALLET,
    usd_value,
    token_amount_from_usd,
    to_base_units,
)

# Registry and valuation
from .registry import CollateralRegistry
from .valuation import Valuation

# Risk calculations
from .risk import (
    LiquidationQuote,
    calculate_health_factor,
    is_healthy,
    quote_liquidation,
)

# Engine
from .engine import CollateralEngine

# Collaborators
from .pricing_source import StaticPriceFeed, TimeSeriesPriceFeed, feed_price
from .tokens import TokenLedger, DebtTokenLedger

__all__ = [
    # Core
    'PriceSource', 'AssetTransfer', 'DebtToken',
    'EngineParameters', 'Position', 'AccountInfo',
    'EventKind', 'EngineEvent', 'OperationRecord',
    'EngineError', 'InvalidAmount', 'UnsupportedAsset', 'ConfigurationMismatch',
    'TransferFailed', 'InsufficientCollateral', 'InsufficientDebt',
    'PositionHealthy', 'HealthFactorBroken', 'LiquidationIneffective',
    'ReentrantCall', 'UndefinedHealthFactor', 'MustHaveMintedDsc', 'InvalidPrice',
    'PRECISION', 'FEED_DECIMALS', 'ADDITIONAL_FEED_PRECISION',
    'LIQUIDATION_THRESHOLD', 'LIQUIDATION_PRECISION', 'MIN_HEALTH_FACTOR',
    'LIQUIDATION_BONUS', 'MAX_HEALTH_FACTOR', 'ENGINE_WALLET',
    'usd_value', 'token_amount_from_usd', 'to_base_units',
    # Registry / valuation
    'CollateralRegistry', 'Valuation',
    # Risk
    'LiquidationQuote', 'calculate_health_factor', 'is_healthy', 'quote_liquidation',
    # Engine
    'CollateralEngine',
    # Collaborators
    'StaticPriceFeed', 'TimeSeriesPriceFeed', 'feed_price',
    'TokenLedger', 'DebtTokenLedger',
]

__version__ = '1.0.0'
