"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, functional and conformance tests:
- A wired system (engine, collateral tokens, debt token, price feed)
- Positions at the usual stages: deposited, minted
- A crashed market with a liquidator ready to act
"""

import pytest

from synthdollar import feed_price, to_base_units

from tests.fakes import (
    make_system, approve_debt,
    WETH, COLLATERAL_AMOUNT, AMOUNT_TO_MINT,
)


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def system():
    """Engine over WETH/WBTC; alice, bob and liquidator funded and approved."""
    return make_system()


@pytest.fixture
def engine(system):
    return system.engine


@pytest.fixture
def tokens(system):
    return system.tokens


@pytest.fixture
def dsc(system):
    return system.dsc


@pytest.fixture
def feed(system):
    return system.feed


# =============================================================================
# POSITION FIXTURES
# =============================================================================

@pytest.fixture
def deposited(system):
    """alice has 10 WETH deposited and no debt."""
    system.engine.deposit_collateral("alice", WETH, COLLATERAL_AMOUNT)
    return system


@pytest.fixture
def minted(system):
    """alice has 10 WETH deposited and 100 debt minted (WETH at $2000)."""
    system.engine.deposit_and_mint("alice", WETH, COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
    return system


# =============================================================================
# LIQUIDATION FIXTURES
# =============================================================================

@pytest.fixture
def crashed(minted):
    """
    WETH crashes from $2000 to $18: alice's health factor is 0.9.

    The liquidator opened 20 WETH / 100 debt before the crash (health factor
    1.8 after it) and has approved the engine to pull its debt tokens.
    """
    minted.engine.deposit_and_mint("liquidator", WETH, to_base_units(20), AMOUNT_TO_MINT)
    approve_debt(minted.dsc, "liquidator")
    minted.feed.update_price(WETH, feed_price(18))
    return minted
