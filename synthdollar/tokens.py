"""
tokens.py - In-memory token balances for collateral assets and the debt token

These are the collaborators the engine consumes through the AssetTransfer and
DebtToken protocols. They behave like fungible tokens with allowances: a pull
(transfer_in, transfer_from) needs an allowance granted to the engine wallet,
and a failed transfer returns False instead of raising.

An optional on_transfer hook runs after every balance change. It models tokens
that call back into the receiver and is what lets tests exercise the engine's
reentrancy guard.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Callable, Dict, Optional, Tuple

from .core import ENGINE_WALLET, InvalidAmount

# (symbol, source, dest, amount)
TransferHook = Callable[[str, str, str, int], None]


class TokenLedger:
    """
    Multi-asset balances with allowances, custodied by the engine wallet.

    Implements the AssetTransfer protocol: transfer_in pulls into
    custody_wallet, transfer_out pushes out of it.

    Example:
        tokens = TokenLedger()
        tokens.mint("WETH", "alice", 10 * 10**18)
        tokens.approve("WETH", "alice", ENGINE_WALLET, 10 * 10**18)
        tokens.transfer_in("WETH", "alice", 10 * 10**18)
    """

    def __init__(self, custody_wallet: str = ENGINE_WALLET, on_transfer: Optional[TransferHook] = None):
        self.custody_wallet = custody_wallet
        self.on_transfer = on_transfer
        self.balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.allowances: Dict[Tuple[str, str, str], int] = defaultdict(int)

    # ========================================================================
    # READ
    # ========================================================================

    def balance_of(self, asset: str, wallet: str) -> int:
        return self.balances[asset].get(wallet, 0)

    def total_supply(self, asset: str) -> int:
        return sum(self.balances[asset].values())

    def allowance(self, asset: str, owner: str, spender: str) -> int:
        return self.allowances.get((asset, owner, spender), 0)

    # ========================================================================
    # WRITE
    # ========================================================================

    def mint(self, asset: str, wallet: str, amount: int) -> None:
        """Create amount of asset in wallet (test and demo funding)."""
        if amount <= 0:
            raise InvalidAmount(f"mint amount must be positive, got {amount}")
        self.balances[asset][wallet] += amount

    def approve(self, asset: str, owner: str, spender: str, amount: int) -> None:
        self.allowances[(asset, owner, spender)] = amount

    def transfer(self, asset: str, source: str, dest: str, amount: int) -> bool:
        """Move amount from source to dest. Returns False if source is short."""
        if amount <= 0 or self.balance_of(asset, source) < amount:
            return False
        self.balances[asset][source] -= amount
        self.balances[asset][dest] += amount
        if self.on_transfer is not None:
            try:
                self.on_transfer(asset, source, dest, amount)
            except Exception:
                # A failing hook reverts the transfer it was called for
                self.balances[asset][dest] -= amount
                self.balances[asset][source] += amount
                raise
        return True

    def transfer_from(self, asset: str, spender: str, source: str, dest: str, amount: int) -> bool:
        """Move amount on behalf of source, consuming spender's allowance."""
        if self.allowance(asset, source, spender) < amount:
            return False
        if self.balance_of(asset, source) < amount:
            return False
        self.allowances[(asset, source, spender)] -= amount
        try:
            moved = self.transfer(asset, source, dest, amount)
        except Exception:
            self.allowances[(asset, source, spender)] += amount
            raise
        if not moved:
            self.allowances[(asset, source, spender)] += amount
        return moved

    # ========================================================================
    # AssetTransfer PROTOCOL
    # ========================================================================

    def transfer_in(self, asset: str, from_wallet: str, amount: int) -> bool:
        return self.transfer_from(asset, self.custody_wallet, from_wallet, self.custody_wallet, amount)

    def transfer_out(self, asset: str, to_wallet: str, amount: int) -> bool:
        return self.transfer(asset, self.custody_wallet, to_wallet, amount)

    def __repr__(self):
        return f"TokenLedger({len(self.balances)} assets, custody={self.custody_wallet})"


class DebtTokenLedger:
    """
    The synthetic dollar token.

    Implements the DebtToken protocol. Only the owner (the engine wallet) is
    expected to mint; burn() destroys tokens from the owner's own balance,
    after the engine has pulled them in with transfer_from().
    """

    def __init__(self, symbol: str = "DSC", owner: str = ENGINE_WALLET, on_transfer: Optional[TransferHook] = None):
        self.symbol = symbol
        self.owner = owner
        self.on_transfer = on_transfer
        self.balances: Dict[str, int] = defaultdict(int)
        self.allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.total_supply = 0

    def balance_of(self, wallet: str) -> int:
        return self.balances.get(wallet, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self.allowances[(owner, spender)] = amount

    def transfer(self, source: str, dest: str, amount: int) -> bool:
        if amount <= 0 or self.balance_of(source) < amount:
            return False
        self.balances[source] -= amount
        self.balances[dest] += amount
        if self.on_transfer is not None:
            try:
                self.on_transfer(self.symbol, source, dest, amount)
            except Exception:
                self.balances[dest] -= amount
                self.balances[source] += amount
                raise
        return True

    # ========================================================================
    # DebtToken PROTOCOL
    # ========================================================================

    def mint(self, to_wallet: str, amount: int) -> bool:
        if amount <= 0:
            return False
        self.balances[to_wallet] += amount
        self.total_supply += amount
        return True

    def burn(self, amount: int) -> None:
        """
        Burn amount from the owner's balance.

        Raises:
            InvalidAmount: If amount is not positive or exceeds the owner's balance
        """
        if amount <= 0:
            raise InvalidAmount(f"burn amount must be positive, got {amount}")
        if self.balance_of(self.owner) < amount:
            raise InvalidAmount(
                f"burn amount {amount} exceeds {self.owner} balance {self.balance_of(self.owner)}"
            )
        self.balances[self.owner] -= amount
        self.total_supply -= amount

    def transfer_from(self, from_wallet: str, to_wallet: str, amount: int) -> bool:
        """Move amount on behalf of from_wallet; the owner is the spender."""
        if self.allowance(from_wallet, self.owner) < amount:
            return False
        if self.balance_of(from_wallet) < amount:
            return False
        self.allowances[(from_wallet, self.owner)] -= amount
        try:
            moved = self.transfer(from_wallet, to_wallet, amount)
        except Exception:
            self.allowances[(from_wallet, self.owner)] += amount
            raise
        if not moved:
            self.allowances[(from_wallet, self.owner)] += amount
        return moved

    def __repr__(self):
        return f"DebtTokenLedger({self.symbol}, supply={self.total_supply})"
