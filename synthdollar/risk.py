"""
risk.py - Health factor and liquidation calculations

Pure calculation functions: every input is an explicit parameter, no engine
state is read. The engine loads Ledger values, calls these, and decides.

Key formulas:
    adjusted_collateral = collateral_value * threshold // threshold_precision
    health_factor       = adjusted_collateral * PRECISION // debt_minted
    collateral_seized   = quantity_for(asset, debt_to_cover)
    bonus_collateral    = collateral_seized * bonus // 100
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import (
    PRECISION, LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR, LIQUIDATION_BONUS,
    UndefinedHealthFactor,
)
from .valuation import Valuation


@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """
    Collateral a liquidator receives for covering debt_to_cover.

    Attributes:
        collateral_asset: Asset seized from the debtor.
        debt_to_cover: Debt units repaid by the liquidator.
        collateral_seized: Quantity equal in value to debt_to_cover.
        bonus_collateral: Extra quantity paid as liquidation bonus.
    """
    collateral_asset: str
    debt_to_cover: int
    collateral_seized: int
    bonus_collateral: int

    @property
    def total_collateral(self) -> int:
        return self.collateral_seized + self.bonus_collateral


def calculate_health_factor(
    debt_minted: int,
    collateral_value: int,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
    liquidation_precision: int = LIQUIDATION_PRECISION,
) -> int:
    """
    Health factor of a position, scaled by PRECISION.

    Raises:
        UndefinedHealthFactor: If debt_minted is zero.
    """
    if debt_minted == 0:
        raise UndefinedHealthFactor("health factor is undefined without minted debt")
    adjusted = (collateral_value * liquidation_threshold) // liquidation_precision
    return (adjusted * PRECISION) // debt_minted


def is_healthy(health_factor: int, min_health_factor: int = MIN_HEALTH_FACTOR) -> bool:
    return health_factor >= min_health_factor


def quote_liquidation(
    valuation: Valuation,
    collateral_asset: str,
    debt_to_cover: int,
    liquidation_bonus: int = LIQUIDATION_BONUS,
) -> LiquidationQuote:
    """Price the collateral owed to a liquidator at current oracle prices."""
    seized = valuation.quantity_for(collateral_asset, debt_to_cover)
    bonus = (seized * liquidation_bonus) // LIQUIDATION_PRECISION
    return LiquidationQuote(
        collateral_asset=collateral_asset,
        debt_to_cover=debt_to_cover,
        collateral_seized=seized,
        bonus_collateral=bonus,
    )
