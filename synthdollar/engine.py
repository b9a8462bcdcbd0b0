"""
engine.py - Over-collateralized synthetic-dollar engine

The CollateralEngine is the central state manager of the system. It is the
only object that mutates the Ledger (per-user collateral and minted debt),
so every change is validated and recorded.

Key responsibilities:
    - Registry: approved collateral assets and their price sources
    - Ledger: collateral balances per user and asset, minted debt per user
    - Valuation: collateral quantity <-> unit-of-account value
    - Risk: health factor enforcement on every mutation, liquidation

Every public mutating operation runs in three phases inside one atomic
section:
    1. Ledger phase: guard clauses, then Ledger updates
    2. Check phase: health factors recomputed from the updated Ledger
    3. Settlement phase: external transfers, pulls first, pushes last

Any exception restores the Ledger snapshot, undoes the external transfers
already settled (in reverse order) and discards queued events before it
propagates. Nothing is partially applied.
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Any
import functools
import logging
import threading

from .core import (
    # Protocols
    PriceSource, AssetTransfer, DebtToken,
    # Types
    EngineParameters, Position, AccountInfo, CollateralMap,
    EngineEvent, EventKind, OperationRecord,
    # Constants
    ENGINE_WALLET, MAX_HEALTH_FACTOR, PRECISION,
    # Exceptions
    HealthFactorBroken, InsufficientCollateral, InsufficientDebt,
    LiquidationIneffective, PositionHealthy, ReentrantCall, TransferFailed,
    # Helpers
    require_positive,
)
from .registry import CollateralRegistry
from .risk import calculate_health_factor, is_healthy, quote_liquidation, LiquidationQuote
from .valuation import Valuation


logger = logging.getLogger(__name__)

EventListener = Callable[[EngineEvent], None]


def non_reentrant(method):
    """
    Reject a call into any guarded method while another one is in flight.

    The in-flight marker is set under a lock so that checking and setting it
    is a single step.
    """
    @functools.wraps(method)
    def guarded(self, *args, **kwargs):
        with self._guard_lock:
            if self._in_flight is not None:
                raise ReentrantCall(
                    f"{method.__name__} called while {self._in_flight} is in flight"
                )
            self._in_flight = method.__name__
        try:
            return method(self, *args, **kwargs)
        finally:
            self._in_flight = None
    return guarded


class CollateralEngine:
    """
    Collateral and debt accounting engine with health-factor enforcement.

    Design Principles:
        - Always validates: every mutating call re-checks the health factor of
          the accounts it touches against the latest Ledger and oracle state.
        - All or nothing: a failed operation leaves no observable trace in the
          Ledger, in custody, in the debt token, or in the event log.
        - Always records: committed operations are appended to operation_log.

    Thread Safety:
        Calls are expected to run one at a time. A concurrent or nested call
        into a mutating method fails with ReentrantCall instead of interleaving.

    Example:
        feed = StaticPriceFeed({"WETH": feed_price(2000)})
        tokens = TokenLedger()
        dsc = DebtTokenLedger()
        engine = CollateralEngine(["WETH"], [feed], dsc, tokens)

        tokens.mint("WETH", "alice", to_base_units(10))
        tokens.approve("WETH", "alice", ENGINE_WALLET, to_base_units(10))
        engine.deposit_and_mint("alice", "WETH", to_base_units(10), to_base_units(100))
        engine.health_factor("alice")  # 100 * 10**18
    """

    def __init__(
        self,
        assets: Sequence[str],
        price_sources: Sequence[PriceSource],
        debt_token: DebtToken,
        asset_transfer: AssetTransfer,
        parameters: Optional[EngineParameters] = None,
        wallet_id: str = ENGINE_WALLET,
        name: str = "engine",
        verbose: bool = False,
    ):
        """
        Create an engine.

        Args:
            assets: Approved collateral asset ids, in enumeration order
            price_sources: One price source per asset, same order
            debt_token: The synthetic dollar (engine must be its minter)
            asset_transfer: Custody transfers for collateral assets
            parameters: Risk parameters (default: module constants)
            wallet_id: Wallet the engine holds pulled debt tokens in
            name: Engine identifier used in log output
            verbose: Print each committed operation (default: False)

        Raises:
            ConfigurationMismatch: If assets and price_sources do not line up
        """
        # Registry first: a mismatch fails before any other state exists
        self.registry = CollateralRegistry(assets, price_sources)
        self.valuation = Valuation(self.registry)
        self.debt_token = debt_token
        self.asset_transfer = asset_transfer
        self.parameters = parameters or EngineParameters()
        self.wallet_id = wallet_id
        self.name = name
        self.verbose = verbose

        # Ledger
        self._collateral: Dict[str, CollateralMap] = defaultdict(dict)
        self._debt: Dict[str, int] = {}

        # Audit trail and listeners
        self.operation_log: List[OperationRecord] = []
        self._listeners: List[EventListener] = []
        self._next_sequence: int = 0

        # Per-operation scratch state, reset by _atomic()
        self._pending_events: List[EngineEvent] = []
        self._journal: List[Tuple[str, Callable[[], bool]]] = []

        # Reentrancy guard
        self._in_flight: Optional[str] = None
        self._guard_lock = threading.Lock()

    # ========================================================================
    # READ-ONLY QUERIES
    # ========================================================================

    @property
    def supported_assets(self) -> Tuple[str, ...]:
        return self.registry.supported_assets

    def price_source_of(self, asset: str) -> PriceSource:
        return self.registry.price_source_of(asset)

    def collateral_balance(self, user: str, asset: str) -> int:
        """Recorded quantity of asset deposited by user."""
        self.registry.require_supported(asset)
        return self._collateral.get(user, {}).get(asset, 0)

    def debt_minted(self, user: str) -> int:
        return self._debt.get(user, 0)

    def position(self, user: str) -> Position:
        """Frozen snapshot of the user's Ledger entry (all zero if unknown)."""
        held = {a: q for a, q in self._collateral.get(user, {}).items() if q}
        return Position(
            user=user,
            collateral=MappingProxyType(held),
            debt_minted=self._debt.get(user, 0),
        )

    def users(self) -> List[str]:
        """Every user that has ever had a Ledger entry, sorted."""
        return sorted(set(self._collateral) | set(self._debt))

    def value_of(self, asset: str, quantity: int) -> int:
        """Unit-of-account value of quantity of asset."""
        return self.valuation.value_of(asset, quantity)

    def quantity_for(self, asset: str, value: int) -> int:
        """Quantity of asset worth value, rounded toward zero."""
        return self.valuation.quantity_for(asset, value)

    def collateral_value(self, user: str) -> int:
        """Total unit-of-account value of the user's collateral."""
        return self.valuation.total_value(self._collateral.get(user, {}))

    def account_info(self, user: str) -> AccountInfo:
        return AccountInfo(
            debt_minted=self._debt.get(user, 0),
            collateral_value=self.collateral_value(user),
        )

    def calculate_health_factor(self, debt_minted: int, collateral_value: int) -> int:
        """
        Health factor for arbitrary inputs, using this engine's parameters.

        Raises:
            UndefinedHealthFactor: If debt_minted is zero.
        """
        return calculate_health_factor(
            debt_minted,
            collateral_value,
            self.parameters.liquidation_threshold,
            self.parameters.liquidation_precision,
        )

    def health_factor(self, user: str) -> int:
        """
        Current health factor of user, scaled by PRECISION.

        Raises:
            UndefinedHealthFactor: If the user has no minted debt.
        """
        debt, value = self.account_info(user)
        return self.calculate_health_factor(debt, value)

    def is_liquidatable(self, user: str) -> bool:
        """True if the user has debt and is below the minimum health factor."""
        if self._debt.get(user, 0) == 0:
            return False
        return not is_healthy(self.health_factor(user), self.parameters.min_health_factor)

    def max_mintable(self, user: str) -> int:
        """Additional debt the user could mint and still pass the health check."""
        p = self.parameters
        adjusted = (self.collateral_value(user) * p.liquidation_threshold) // p.liquidation_precision
        capacity = (adjusted * PRECISION) // p.min_health_factor
        return max(0, capacity - self._debt.get(user, 0))

    def quote_liquidation(self, collateral_asset: str, debt_to_cover: int) -> LiquidationQuote:
        """Collateral a liquidator would receive at current prices."""
        require_positive("debt_to_cover", debt_to_cover)
        return quote_liquidation(
            self.valuation, collateral_asset, debt_to_cover, self.parameters.liquidation_bonus
        )

    # ========================================================================
    # EVENTS
    # ========================================================================

    def subscribe(self, listener: EventListener) -> None:
        """Call listener with every event of every committed operation."""
        self._listeners.append(listener)

    @property
    def events(self) -> List[EngineEvent]:
        """All committed events in order."""
        return [event for record in self.operation_log for event in record.events]

    def events_for(self, user: str) -> List[EngineEvent]:
        """Committed events where user is the account or the counterparty."""
        return [e for e in self.events if user in (e.user, e.counterparty)]

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    @non_reentrant
    def deposit_collateral(self, user: str, asset: str, quantity: int) -> None:
        """
        Deposit quantity of asset as collateral for user.

        Raises:
            InvalidAmount, UnsupportedAsset, TransferFailed
        """
        require_positive("quantity", quantity)
        self.registry.require_supported(asset)
        with self._atomic("deposit_collateral", user):
            self._credit_collateral(user, asset, quantity)
            self._pull_collateral(asset, user, quantity)

    @non_reentrant
    def mint_debt(self, user: str, quantity: int) -> None:
        """
        Mint quantity of the debt token to user against their collateral.

        Raises:
            InvalidAmount, HealthFactorBroken, TransferFailed
        """
        require_positive("quantity", quantity)
        with self._atomic("mint_debt", user):
            self._add_debt(user, quantity)
            self._revert_if_health_factor_is_broken(user)
            self._mint_debt_token(user, quantity)

    @non_reentrant
    def redeem_collateral(
        self, user: str, asset: str, quantity: int, recipient: Optional[str] = None
    ) -> None:
        """
        Withdraw quantity of asset from user's collateral to recipient.

        Args:
            recipient: Wallet receiving the collateral (default: user)

        Raises:
            InvalidAmount, UnsupportedAsset, InsufficientCollateral,
            HealthFactorBroken, TransferFailed
        """
        require_positive("quantity", quantity)
        self.registry.require_supported(asset)
        if recipient is None:
            recipient = user
        with self._atomic("redeem_collateral", user):
            self._debit_collateral(user, asset, quantity, recipient)
            self._revert_if_health_factor_is_broken(user)
            self._push_collateral(asset, recipient, quantity)

    @non_reentrant
    def burn_debt(self, user: str, quantity: int, payer: Optional[str] = None) -> None:
        """
        Repay quantity of user's debt with tokens pulled from payer.

        Args:
            payer: Wallet whose debt tokens are burned (default: user)

        Raises:
            InvalidAmount, InsufficientDebt, HealthFactorBroken, TransferFailed
        """
        require_positive("quantity", quantity)
        if payer is None:
            payer = user
        with self._atomic("burn_debt", user):
            self._reduce_debt(user, quantity, payer)
            self._revert_if_health_factor_is_broken(user)
            self._pull_and_burn(payer, quantity)

    @non_reentrant
    def deposit_and_mint(
        self, user: str, asset: str, collateral_quantity: int, debt_quantity: int
    ) -> None:
        """Deposit collateral and mint debt as one atomic operation."""
        require_positive("collateral_quantity", collateral_quantity)
        require_positive("debt_quantity", debt_quantity)
        self.registry.require_supported(asset)
        with self._atomic("deposit_and_mint", user):
            self._credit_collateral(user, asset, collateral_quantity)
            self._add_debt(user, debt_quantity)
            self._revert_if_health_factor_is_broken(user)
            self._pull_collateral(asset, user, collateral_quantity)
            self._mint_debt_token(user, debt_quantity)

    @non_reentrant
    def redeem_for_burn(
        self, user: str, asset: str, collateral_quantity: int, debt_quantity: int
    ) -> None:
        """Burn debt, then redeem collateral, as one atomic operation."""
        require_positive("collateral_quantity", collateral_quantity)
        require_positive("debt_quantity", debt_quantity)
        self.registry.require_supported(asset)
        with self._atomic("redeem_for_burn", user):
            self._reduce_debt(user, debt_quantity, user)
            self._debit_collateral(user, asset, collateral_quantity, user)
            self._revert_if_health_factor_is_broken(user)
            self._pull_and_burn(user, debt_quantity)
            self._push_collateral(asset, user, collateral_quantity)

    @non_reentrant
    def liquidate(
        self, liquidator: str, collateral_asset: str, debtor: str, debt_to_cover: int
    ) -> LiquidationQuote:
        """
        Repay debt_to_cover of debtor's debt and seize collateral plus bonus.

        Steps:
        1. debtor must be below the minimum health factor
        2. seize quantity_for(asset, debt_to_cover) plus the liquidation bonus
           from the debtor's balance of that asset (no partial seizure)
        3. burn debt_to_cover of the debtor's debt, paid by the liquidator
        4. the debtor's health factor must strictly improve
        5. the liquidator's own health factor must be at or above the minimum

        Returns:
            The LiquidationQuote that was executed

        Raises:
            InvalidAmount, UnsupportedAsset, PositionHealthy,
            InsufficientCollateral, InsufficientDebt, LiquidationIneffective,
            HealthFactorBroken, TransferFailed
        """
        require_positive("debt_to_cover", debt_to_cover)
        self.registry.require_supported(collateral_asset)
        with self._atomic("liquidate", liquidator):
            starting = self._enforced_health_factor(debtor)
            if is_healthy(starting, self.parameters.min_health_factor):
                raise PositionHealthy(
                    f"{debtor} health factor {starting} is not below "
                    f"{self.parameters.min_health_factor}"
                )

            quote = self.quote_liquidation(collateral_asset, debt_to_cover)
            if quote.total_collateral:
                self._debit_collateral(debtor, collateral_asset, quote.total_collateral, liquidator)
            self._reduce_debt(debtor, debt_to_cover, liquidator)

            ending = self._enforced_health_factor(debtor)
            if ending <= starting:
                raise LiquidationIneffective(
                    f"{debtor} health factor went from {starting} to {ending}"
                )
            self._revert_if_health_factor_is_broken(liquidator)
            self._emit(
                EventKind.LIQUIDATION, debtor, debt_to_cover,
                asset=collateral_asset, counterparty=liquidator,
            )

            self._pull_and_burn(liquidator, debt_to_cover)
            if quote.total_collateral:
                self._push_collateral(collateral_asset, liquidator, quote.total_collateral)
        return quote

    # ========================================================================
    # LEDGER PHASE
    # ========================================================================

    def _credit_collateral(self, user: str, asset: str, quantity: int) -> None:
        balances = self._collateral[user]
        balances[asset] = balances.get(asset, 0) + quantity
        self._emit(EventKind.COLLATERAL_DEPOSITED, user, quantity, asset=asset)

    def _debit_collateral(self, user: str, asset: str, quantity: int, recipient: str) -> None:
        held = self._collateral.get(user, {}).get(asset, 0)
        if held < quantity:
            raise InsufficientCollateral(
                f"{user} holds {held} {asset}, cannot release {quantity}"
            )
        self._collateral[user][asset] = held - quantity
        self._emit(
            EventKind.COLLATERAL_REDEEMED, user, quantity,
            asset=asset, counterparty=recipient,
        )

    def _add_debt(self, user: str, quantity: int) -> None:
        self._debt[user] = self._debt.get(user, 0) + quantity
        self._emit(EventKind.DEBT_MINTED, user, quantity)

    def _reduce_debt(self, user: str, quantity: int, payer: str) -> None:
        owed = self._debt.get(user, 0)
        if owed < quantity:
            raise InsufficientDebt(f"{user} owes {owed}, cannot burn {quantity}")
        self._debt[user] = owed - quantity
        self._emit(EventKind.DEBT_BURNED, user, quantity, counterparty=payer)

    # ========================================================================
    # CHECK PHASE
    # ========================================================================

    def _enforced_health_factor(self, user: str) -> int:
        """
        Health factor as seen by enforcement.

        A position without debt reports MAX_HEALTH_FACTOR unless the engine
        runs with strict_zero_debt, in which case UndefinedHealthFactor is
        raised as on-chain.
        """
        debt = self._debt.get(user, 0)
        if debt == 0 and not self.parameters.strict_zero_debt:
            return MAX_HEALTH_FACTOR
        return self.calculate_health_factor(debt, self.collateral_value(user))

    def _revert_if_health_factor_is_broken(self, user: str) -> None:
        health_factor = self._enforced_health_factor(user)
        minimum = self.parameters.min_health_factor
        if not is_healthy(health_factor, minimum):
            raise HealthFactorBroken(user, health_factor, minimum)

    # ========================================================================
    # SETTLEMENT PHASE
    # ========================================================================

    def _pull_collateral(self, asset: str, user: str, quantity: int) -> None:
        if not self.asset_transfer.transfer_in(asset, user, quantity):
            raise TransferFailed(f"could not pull {quantity} {asset} from {user}")
        self._journal.append((
            f"return {quantity} {asset} to {user}",
            lambda: self.asset_transfer.transfer_out(asset, user, quantity),
        ))

    def _push_collateral(self, asset: str, recipient: str, quantity: int) -> None:
        if not self.asset_transfer.transfer_out(asset, recipient, quantity):
            raise TransferFailed(f"could not send {quantity} {asset} to {recipient}")

    def _mint_debt_token(self, user: str, quantity: int) -> None:
        if not self.debt_token.mint(user, quantity):
            raise TransferFailed(f"could not mint {quantity} debt tokens to {user}")

    def _pull_and_burn(self, payer: str, quantity: int) -> None:
        if not self.debt_token.transfer_from(payer, self.wallet_id, quantity):
            raise TransferFailed(f"could not pull {quantity} debt tokens from {payer}")
        try:
            self.debt_token.burn(quantity)
        except Exception:
            # The pulled tokens stay in the engine wallet; nothing to re-issue
            logger.error("%s: burn of %d failed after pulling from %s", self.name, quantity, payer)
            raise
        # Burned tokens can only be restored by re-issuing them to the payer
        self._journal.append((
            f"re-mint {quantity} debt tokens to {payer}",
            lambda: self.debt_token.mint(payer, quantity),
        ))

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    @contextmanager
    def _atomic(self, operation: str, caller: str) -> Iterator[None]:
        """
        Run an operation all-or-nothing.

        On success the queued events are committed as one OperationRecord.
        On failure the Ledger is restored, settled transfers are undone in
        reverse order, and the exception propagates.
        """
        snapshot = self._snapshot_state()
        self._pending_events = []
        self._journal = []
        try:
            yield
        except Exception as exc:
            self._restore_state(snapshot)
            self._pending_events = []
            logger.warning("%s: %s by %s reverted: %s", self.name, operation, caller, exc)
            self._unwind(exc)
            raise

        record = OperationRecord(
            operation=operation,
            caller=caller,
            sequence_number=self._next_sequence,
            events=tuple(self._pending_events),
        )
        self._next_sequence += 1
        self._pending_events = []
        self._journal = []
        self._commit(record)

    def _unwind(self, cause: Exception) -> None:
        journal, self._journal = self._journal, []
        failed = []
        for description, compensate in reversed(journal):
            try:
                undone = compensate()
            except Exception:
                logger.exception("%s: compensation raised: %s", self.name, description)
                undone = False
            if not undone:
                failed.append(description)
        if failed:
            logger.error("%s: rollback incomplete: %s", self.name, "; ".join(failed))
            raise TransferFailed(f"rollback incomplete: {'; '.join(failed)}") from cause

    def _emit(
        self,
        kind: EventKind,
        user: str,
        amount: int,
        asset: Optional[str] = None,
        counterparty: Optional[str] = None,
    ) -> None:
        self._pending_events.append(EngineEvent(
            kind=kind,
            user=user,
            amount=amount,
            asset=asset,
            counterparty=counterparty,
            sequence_number=self._next_sequence,
        ))

    def _commit(self, record: OperationRecord) -> None:
        self.operation_log.append(record)
        logger.debug("%s: committed %s #%d", self.name, record.operation, record.sequence_number)
        if self.verbose:
            print(record)
        for event in record.events:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    # Listeners observe committed state; they cannot undo it
                    logger.exception("%s: event listener failed on %r", self.name, event)

    def _snapshot_state(self) -> Tuple[Dict[str, Dict[str, int]], Dict[str, int]]:
        collateral = {user: dict(balances) for user, balances in self._collateral.items()}
        return collateral, dict(self._debt)

    def _restore_state(self, snapshot: Tuple[Dict[str, Dict[str, int]], Dict[str, int]]) -> None:
        collateral, debt = snapshot
        self._collateral = defaultdict(dict, {u: dict(b) for u, b in collateral.items()})
        self._debt = dict(debt)

    # ========================================================================
    # AUDIT
    # ========================================================================

    def snapshot(self) -> Dict[str, Position]:
        """Positions of every known user, keyed by user."""
        return {user: self.position(user) for user in self.users()}

    def total_collateral(self, asset: str) -> int:
        """Sum of recorded deposits of asset across all users."""
        self.registry.require_supported(asset)
        return sum(balances.get(asset, 0) for balances in self._collateral.values())

    def total_debt(self) -> int:
        return sum(self._debt.values())

    def verify_solvency(
        self,
        custody_balances: Mapping[str, int],
        debt_supply: int,
    ) -> Dict[str, Any]:
        """
        Check the Ledger against balances held outside the engine.

        Conservation requires that custody holds exactly the recorded deposits
        of every asset, and that the debt token supply equals total minted debt.

        Args:
            custody_balances: asset -> quantity held in engine custody
            debt_supply: Circulating supply of the debt token

        Returns:
            Dict with keys:
            - 'valid': bool - True if every figure matches
            - 'collateral': Dict[str, int] - recorded deposits per asset
            - 'debt': int - recorded minted debt
            - 'discrepancies': List[Dict] - one entry per mismatch
        """
        collateral = {asset: self.total_collateral(asset) for asset in self.supported_assets}
        debt = self.total_debt()
        discrepancies = []

        for asset, recorded in collateral.items():
            held = custody_balances.get(asset, 0)
            if held != recorded:
                discrepancies.append({
                    'asset': asset,
                    'expected': recorded,
                    'actual': held,
                    'difference': held - recorded,
                })
        if debt_supply != debt:
            discrepancies.append({
                'asset': 'debt',
                'expected': debt,
                'actual': debt_supply,
                'difference': debt_supply - debt,
            })

        return {
            'valid': len(discrepancies) == 0,
            'collateral': collateral,
            'debt': debt,
            'discrepancies': discrepancies,
        }

    def __repr__(self) -> str:
        return (
            f"CollateralEngine({self.name}, assets={list(self.supported_assets)}, "
            f"users={len(self.users())}, operations={len(self.operation_log)})"
        )
