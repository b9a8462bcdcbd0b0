"""
test_strict_zero_debt.py - Engines configured with strict_zero_debt

With strict_zero_debt every enforcement path raises UndefinedHealthFactor
for a position without minted debt, as the on-chain engine does. The
default engine treats such a position as maximally healthy.
"""

import pytest

from synthdollar import (
    EngineParameters, UndefinedHealthFactor, MustHaveMintedDsc,
    PositionHealthy, to_base_units,
)

from tests.fakes import make_system, approve_debt, WETH, COLLATERAL_AMOUNT, AMOUNT_TO_MINT


@pytest.fixture
def strict():
    return make_system(parameters=EngineParameters(strict_zero_debt=True))


class TestStrictZeroDebt:

    def test_deposit_needs_no_check(self, strict):
        strict.engine.deposit_collateral("alice", WETH, COLLATERAL_AMOUNT)
        assert strict.engine.collateral_balance("alice", WETH) == COLLATERAL_AMOUNT

    def test_redeem_without_debt_fails(self, strict):
        strict.engine.deposit_collateral("alice", WETH, COLLATERAL_AMOUNT)
        with pytest.raises(MustHaveMintedDsc):
            strict.engine.redeem_collateral("alice", WETH, to_base_units(1))
        assert strict.engine.collateral_balance("alice", WETH) == COLLATERAL_AMOUNT

    def test_burning_all_debt_fails(self, strict):
        engine = strict.engine
        engine.deposit_and_mint("alice", WETH, COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
        approve_debt(strict.dsc, "alice")
        with pytest.raises(UndefinedHealthFactor):
            engine.burn_debt("alice", AMOUNT_TO_MINT)
        assert engine.debt_minted("alice") == AMOUNT_TO_MINT
        assert strict.dsc.balance_of("alice") == AMOUNT_TO_MINT

    def test_partial_burn_passes(self, strict):
        engine = strict.engine
        engine.deposit_and_mint("alice", WETH, COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
        approve_debt(strict.dsc, "alice")
        engine.burn_debt("alice", AMOUNT_TO_MINT - 1)
        assert engine.debt_minted("alice") == 1

    def test_liquidating_debt_free_position_fails(self, strict):
        strict.engine.deposit_collateral("alice", WETH, COLLATERAL_AMOUNT)
        with pytest.raises(UndefinedHealthFactor):
            strict.engine.liquidate("liquidator", WETH, "alice", 1)

    def test_default_engine_is_lenient(self, deposited):
        deposited.engine.redeem_collateral("alice", WETH, to_base_units(1))
        with pytest.raises(PositionHealthy):
            deposited.engine.liquidate("liquidator", WETH, "alice", 1)
