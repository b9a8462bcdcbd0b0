"""
Health Invariant Conformance Tests

INVARIANT: With prices held constant, after every operation:
    ∀ users u: debt(u) = 0 ∨ health_factor(u) ≥ MIN_HEALTH_FACTOR

and the Ledger agrees with the outside world:
    Σ_u collateral(u, a) = custody(a)     for every asset a
    Σ_u debt(u)          = debt token supply

Failed operations leave every observable figure unchanged.
"""

import pytest
from hypothesis import given, settings, note
from hypothesis import strategies as st

from synthdollar import (
    EngineError, MIN_HEALTH_FACTOR, ENGINE_WALLET,
    feed_price, to_base_units,
)

from tests.fakes import make_system, WETH, WBTC


USERS = ("alice", "bob")
ASSETS = (WETH, WBTC)


# =============================================================================
# STRATEGIES FOR PROPERTY-BASED TESTING
# =============================================================================

# Quantities spanning dust to whole-balance and beyond
amounts = st.one_of(
    st.integers(min_value=1, max_value=1000),
    st.integers(min_value=1, max_value=to_base_units(20)),
    st.integers(min_value=1, max_value=to_base_units(20000)),
)

operations = st.tuples(
    st.sampled_from([
        "deposit_collateral", "mint_debt", "redeem_collateral", "burn_debt",
        "deposit_and_mint", "redeem_for_burn",
    ]),
    st.sampled_from(USERS),
    st.sampled_from(ASSETS),
    amounts,
    amounts,
)


def apply(engine, op):
    name, user, asset, first, second = op
    if name == "deposit_collateral":
        engine.deposit_collateral(user, asset, first)
    elif name == "mint_debt":
        engine.mint_debt(user, first)
    elif name == "redeem_collateral":
        engine.redeem_collateral(user, asset, first)
    elif name == "burn_debt":
        engine.burn_debt(user, first)
    elif name == "deposit_and_mint":
        engine.deposit_and_mint(user, asset, first, second)
    elif name == "redeem_for_burn":
        engine.redeem_for_burn(user, asset, first, second)


def healthy_system():
    system = make_system(wallets=USERS)
    for user in USERS:
        system.dsc.approve(user, ENGINE_WALLET, 10**40)
    return system


class TestHealthInvariant:

    @given(st.lists(operations, min_size=1, max_size=25))
    @settings(max_examples=150, deadline=None)
    def test_positions_stay_healthy(self, ops):
        """
        PROPERTY: No sequence of operations leaves a user with debt below
        the minimum health factor while prices are unchanged.
        """
        system = healthy_system()
        engine = system.engine

        for op in ops:
            before = system.observe()
            try:
                apply(engine, op)
            except EngineError as exc:
                note(f"{op[0]} rejected: {exc}")
                assert system.observe() == before

            for user in USERS:
                if engine.debt_minted(user):
                    assert engine.health_factor(user) >= MIN_HEALTH_FACTOR
            assert system.solvency()['valid']

    @given(
        st.lists(operations, min_size=1, max_size=15),
        st.integers(min_value=1, max_value=feed_price(4000)),
    )
    @settings(max_examples=100, deadline=None)
    def test_failures_are_inert_under_price_moves(self, ops, weth_price):
        """
        PROPERTY: After an arbitrary price move, every operation either
        succeeds or leaves all observable state unchanged.
        """
        system = healthy_system()
        engine = system.engine
        engine.deposit_and_mint("alice", WETH, to_base_units(10), to_base_units(5000))
        system.feed.update_price(WETH, weth_price)

        for op in ops:
            before = system.observe()
            try:
                apply(engine, op)
            except EngineError:
                assert system.observe() == before
            assert system.solvency()['valid']

    @given(st.lists(operations, min_size=1, max_size=25))
    @settings(max_examples=50, deadline=None)
    def test_events_replay_to_ledger(self, ops):
        """
        PROPERTY: Folding the committed events reproduces the Ledger.
        """
        system = healthy_system()
        engine = system.engine
        for op in ops:
            try:
                apply(engine, op)
            except EngineError:
                pass

        collateral = {}
        debt = {}
        for event in engine.events:
            kind = event.kind.value
            if kind == "collateral_deposited":
                key = (event.user, event.asset)
                collateral[key] = collateral.get(key, 0) + event.amount
            elif kind == "collateral_redeemed":
                key = (event.user, event.asset)
                collateral[key] = collateral.get(key, 0) - event.amount
            elif kind == "debt_minted":
                debt[event.user] = debt.get(event.user, 0) + event.amount
            elif kind == "debt_burned":
                debt[event.user] = debt.get(event.user, 0) - event.amount

        for user in USERS:
            assert debt.get(user, 0) == engine.debt_minted(user)
            for asset in ASSETS:
                assert collateral.get((user, asset), 0) == engine.collateral_balance(user, asset)
