"""
Core types and constants for the synthetic-dollar collateral engine.

This module provides the foundational pieces every other module builds on:
1. Constants: fixed-point scales and risk parameters
2. Protocols: PriceSource, AssetTransfer, DebtToken (external collaborators)
3. Exceptions: EngineError and domain-specific error types
4. Immutable data structures: Position, AccountInfo, EngineEvent, OperationRecord
5. Configuration: EngineParameters
6. Pure conversion helpers: usd_value, token_amount_from_usd, to_base_units

All amounts are plain Python ints in base units (18 decimals). Prices coming
from a PriceSource carry 8 decimals and are scaled up by
ADDITIONAL_FEED_PRECISION before use.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from typing import (
    Dict, Optional, Protocol, Tuple, Mapping, Union, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale of token quantities, unit-of-account values and the
# health factor.
PRECISION = 10 ** 18

# Price feeds report 8 decimals; this lifts them to PRECISION.
FEED_DECIMALS = 8
ADDITIONAL_FEED_PRECISION = 10 ** (18 - FEED_DECIMALS)

# Only LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION of collateral value
# counts toward debt capacity (200% minimum collateralization).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

MIN_HEALTH_FACTOR = 1 * PRECISION

# Percent of seized collateral paid to the liquidator on top.
LIQUIDATION_BONUS = 10

# Reported for a position with no debt when strict zero-debt mode is off.
MAX_HEALTH_FACTOR = 2 ** 256 - 1

# Wallet id the engine uses for its own custody and debt-token allowance.
ENGINE_WALLET = "engine"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset id to quantity held for a single user.
CollateralMap = Dict[str, int]

Amount = Union[int, Decimal, str]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceSource(Protocol):
    """
    Pull-based price interface.

    The price is denominated in the unit of account with FEED_DECIMALS implied
    decimals. The engine reads only the price; the timestamp is not checked
    for freshness.
    """

    def latest_price(self, asset: str) -> Tuple[int, datetime]:
        """Return (price, updated_at) for the asset."""
        ...


@runtime_checkable
class AssetTransfer(Protocol):
    """
    Movement of collateral assets between users and engine custody.

    Both methods return False (or raise) when the transfer did not happen.
    """

    def transfer_in(self, asset: str, from_wallet: str, amount: int) -> bool:
        """Pull amount of asset from from_wallet into engine custody."""
        ...

    def transfer_out(self, asset: str, to_wallet: str, amount: int) -> bool:
        """Push amount of asset from engine custody to to_wallet."""
        ...


@runtime_checkable
class DebtToken(Protocol):
    """
    The synthetic dollar token. The engine holds exclusive minting authority.
    """

    def mint(self, to_wallet: str, amount: int) -> bool:
        ...

    def burn(self, amount: int) -> None:
        """Burn amount from the engine's own balance."""
        ...

    def transfer_from(self, from_wallet: str, to_wallet: str, amount: int) -> bool:
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine errors."""
    pass


class InvalidAmount(EngineError):
    """Raised when a quantity that must be a positive integer is not."""
    pass


class UnsupportedAsset(EngineError):
    """Raised when an asset has no registered price source."""
    pass


class ConfigurationMismatch(EngineError):
    """Raised at construction when assets and price sources do not line up."""
    pass


class TransferFailed(EngineError):
    """Raised when a collateral or debt-token movement reports failure."""
    pass


class InsufficientCollateral(EngineError):
    """Raised when a redemption or seizure exceeds the recorded collateral."""
    pass


class InsufficientDebt(EngineError):
    """Raised when a burn exceeds the debt recorded for the user."""
    pass


class PositionHealthy(EngineError):
    """Raised when liquidating a position at or above the minimum health factor."""
    pass


class HealthFactorBroken(EngineError):
    """Raised when an operation would leave a position below the minimum."""

    def __init__(self, user: str, health_factor: int, minimum: int = MIN_HEALTH_FACTOR):
        self.user = user
        self.health_factor = health_factor
        self.minimum = minimum
        super().__init__(
            f"health factor of {user} would be {health_factor}, below minimum {minimum}"
        )


class LiquidationIneffective(EngineError):
    """Raised when a liquidation does not strictly improve the debtor's health factor."""
    pass


class ReentrantCall(EngineError):
    """Raised when a guarded entry point is entered while another is in flight."""
    pass


class UndefinedHealthFactor(EngineError):
    """Raised when the health factor of a position with no minted debt is evaluated."""
    pass


# Name used by the on-chain engine for the same condition.
MustHaveMintedDsc = UndefinedHealthFactor


class InvalidPrice(EngineError):
    """Raised when a price source reports a non-positive or missing price."""
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class EngineParameters:
    """
    Immutable risk parameters of an engine instance.

    Defaults reproduce the module constants. strict_zero_debt makes every
    enforcement path fail with UndefinedHealthFactor for a position without
    minted debt, as the on-chain engine does; when False such a position
    passes enforcement (it has no debt to endanger).
    """
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_precision: int = LIQUIDATION_PRECISION
    min_health_factor: int = MIN_HEALTH_FACTOR
    liquidation_bonus: int = LIQUIDATION_BONUS
    strict_zero_debt: bool = False

    def __post_init__(self):
        if self.liquidation_precision <= 0:
            raise ValueError("liquidation_precision must be positive")
        if not 0 < self.liquidation_threshold <= self.liquidation_precision:
            raise ValueError(
                f"liquidation_threshold must be in (0, {self.liquidation_precision}], "
                f"got {self.liquidation_threshold}"
            )
        if self.min_health_factor <= 0:
            raise ValueError("min_health_factor must be positive")
        if self.liquidation_bonus < 0:
            raise ValueError("liquidation_bonus cannot be negative")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Position:
    """
    Read-only snapshot of one user's Ledger entry.

    Attributes:
        user: Wallet id of the position owner.
        collateral: asset -> quantity, only non-zero balances.
        debt_minted: Debt token quantity attributed to the user.
    """
    user: str
    collateral: Mapping[str, int]
    debt_minted: int

    def is_empty(self) -> bool:
        return self.debt_minted == 0 and not any(self.collateral.values())


@dataclass(frozen=True, slots=True)
class AccountInfo:
    """Debt minted and total collateral value (unit of account) of a user."""
    debt_minted: int
    collateral_value: int

    def __iter__(self):
        # Allows `debt, value = engine.account_info(user)`
        yield self.debt_minted
        yield self.collateral_value


class EventKind(Enum):
    """Kinds of structured events recorded for committed operations."""
    COLLATERAL_DEPOSITED = "collateral_deposited"
    COLLATERAL_REDEEMED = "collateral_redeemed"
    DEBT_MINTED = "debt_minted"
    DEBT_BURNED = "debt_burned"
    LIQUIDATION = "liquidation"


@dataclass(frozen=True, slots=True)
class EngineEvent:
    """
    Structured record of a single effect of a committed operation.

    Attributes:
        kind: What happened.
        user: Account whose Ledger entry changed.
        amount: Quantity moved (collateral quantity or debt units).
        asset: Collateral asset, None for debt events.
        counterparty: Recipient of redeemed collateral, payer of burned debt,
                      or liquidator, where applicable.
        sequence_number: Sequence of the operation that emitted the event.
    """
    kind: EventKind
    user: str
    amount: int
    asset: Optional[str] = None
    counterparty: Optional[str] = None
    sequence_number: int = -1

    def __repr__(self) -> str:
        parts = [f"{self.kind.value}: {self.user}", f"amount={self.amount}"]
        if self.asset:
            parts.append(f"asset={self.asset}")
        if self.counterparty:
            parts.append(f"counterparty={self.counterparty}")
        return f"Event({', '.join(parts)})"


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    An executed, immutable record of one committed engine operation.

    Attributes:
        operation: Public method name (e.g. "deposit_and_mint").
        caller: Wallet that invoked the operation.
        sequence_number: Monotonic within the engine.
        events: Events emitted, in emission order.
    """
    operation: str
    caller: str
    sequence_number: int
    events: Tuple[EngineEvent, ...] = field(default_factory=tuple)

    def __repr__(self) -> str:
        w = 80
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            f"┌{bar}┐",
            f"│{pad(f' #{self.sequence_number} {self.operation} by {self.caller}')}│",
            f"├{bar}┤",
        ]
        for i, event in enumerate(self.events):
            lines.append(f"│{pad(f'   [{i}] {event!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# ============================================================================
# PURE HELPERS
# ============================================================================

def to_base_units(amount: Amount, decimals: int = 18) -> int:
    """
    Convert a human amount to integer base units, truncating extra digits.

    Example:
        to_base_units(10) == 10 * 10**18
        to_base_units("0.5") == 5 * 10**17
    """
    value = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(value.to_integral_value(rounding=ROUND_DOWN))


def usd_value(price: int, quantity: int) -> int:
    """Value of quantity at an 8-decimal feed price, in PRECISION units."""
    return (price * ADDITIONAL_FEED_PRECISION * quantity) // PRECISION


def token_amount_from_usd(price: int, value: int) -> int:
    """Quantity worth value at an 8-decimal feed price, rounded toward zero."""
    return (value * PRECISION) // (price * ADDITIONAL_FEED_PRECISION)


def require_positive(name: str, amount: int) -> int:
    """Guard clause: amount must be an int greater than zero."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"{name} must be an int, got {type(amount).__name__}")
    if amount <= 0:
        raise InvalidAmount(f"{name} must be greater than zero, got {amount}")
    return amount
