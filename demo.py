#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Collateral Engine Step by Step

This is a pedagogical demonstration of how the synthetic-dollar engine works.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation   - Price feeds, token balances, the empty engine
  4-6:   Positions    - Deposit, mint, the health factor and its boundary
  7-8:   Safety       - Rejected operations and rollback
  9-10:  Liquidation  - A price crash and a liquidator stepping in
  11:    Audit        - Event log and solvency proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from synthdollar import (
    # Engine
    CollateralEngine,
    # Collaborators
    TimeSeriesPriceFeed, TokenLedger, DebtTokenLedger,
    # Errors
    EngineError, HealthFactorBroken, TransferFailed,
    # Constants and helpers
    ENGINE_WALLET, PRECISION, MIN_HEALTH_FACTOR,
    feed_price, to_base_units,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Market
    weth_price: str = "2000"
    crash_price: str = "18"

    # Initial funding (whole tokens)
    alice_weth: int = 100
    liquidator_weth: int = 100

    # Alice's position
    alice_deposit: int = 10
    alice_mint: int = 100

    # Liquidator's own position, opened before the crash
    liquidator_deposit: int = 20
    liquidator_mint: int = 100


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def fmt(amount: int, decimals: int = 18) -> str:
    """Render integer base units as a human number."""
    return f"{Decimal(amount) / (Decimal(10) ** decimals):,.4f}"


def fmt_hf(engine: CollateralEngine, user: str) -> str:
    if engine.debt_minted(user) == 0:
        return "undefined (no debt)"
    return fmt(engine.health_factor(user))


def show_position(engine: CollateralEngine, user: str):
    debt, value = engine.account_info(user)
    print(f"    {user}:")
    for asset in engine.supported_assets:
        print(f"      collateral {asset:6s} {fmt(engine.collateral_balance(user, asset)):>18s}")
    print(f"      collateral value  {fmt(value):>18s} USD")
    print(f"      debt minted       {fmt(debt):>18s} DSC")
    print(f"      health factor     {fmt_hf(engine, user):>18s}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_price_feed():
    step_header(1, "The Price Feed",
        "See how collateral is priced: integers with 8 implied decimals.")

    t0 = CONFIG.start_time
    feed = TimeSeriesPriceFeed({
        "WETH": [
            (t0, feed_price(CONFIG.weth_price)),
            (t0 + timedelta(days=1), feed_price(CONFIG.crash_price)),
        ],
    }, current_time=t0)

    price, updated_at = feed.latest_price("WETH")
    print(f"""
    Oracles report prices as integers. WETH at ${CONFIG.weth_price} is:

        feed_price("{CONFIG.weth_price}") = {price}

    The feed answers with the latest observation at or before its clock:
        latest_price("WETH") = ({price}, {updated_at})

    A second observation (${CONFIG.crash_price}) is scheduled for tomorrow.
    """)
    return feed


def step_02_tokens():
    step_header(2, "Token Balances",
        "Fund wallets with collateral and approve the engine to pull it.")

    tokens = TokenLedger()
    dsc = DebtTokenLedger()

    for wallet, amount in (("alice", CONFIG.alice_weth), ("liquidator", CONFIG.liquidator_weth)):
        tokens.mint("WETH", wallet, to_base_units(amount))
        tokens.approve("WETH", wallet, ENGINE_WALLET, to_base_units(amount))
        print(f"    {wallet:12s} WETH {fmt(tokens.balance_of('WETH', wallet)):>14s}  (approved)")

    print(f"""
    Amounts are base units with 18 decimals: 1 WETH = {to_base_units(1)}.
    The debt token (DSC) starts with supply {dsc.total_supply}.
    """)
    return tokens, dsc


def step_03_engine(feed, tokens, dsc):
    step_header(3, "The Empty Engine",
        "Wire the engine to its collaborators and inspect its parameters.")

    engine = CollateralEngine(["WETH"], [feed], dsc, tokens, name="demo")
    p = engine.parameters
    print(f"""
    {engine!r}

    Risk parameters:
      liquidation threshold  {p.liquidation_threshold}/{p.liquidation_precision} of collateral value counts
      minimum health factor  {fmt(p.min_health_factor)}
      liquidation bonus      {p.liquidation_bonus}%

    health factor = (collateral_value * {p.liquidation_threshold} / {p.liquidation_precision}) * 1e18 / debt
    """)
    return engine


# ============================================================================
# PHASE 2: POSITIONS (Steps 4-6)
# ============================================================================

def step_04_deposit(engine):
    step_header(4, "Deposit Collateral",
        "Record collateral in the Ledger and pull it into custody.")

    engine.deposit_collateral("alice", "WETH", to_base_units(CONFIG.alice_deposit))
    show_position(engine, "alice")
    print(f"\n    Custody now holds {fmt(engine.asset_transfer.balance_of('WETH', ENGINE_WALLET))} WETH")


def step_05_mint(engine):
    step_header(5, "Mint Debt",
        "Mint DSC against collateral; the health check runs before tokens are issued.")

    engine.mint_debt("alice", to_base_units(CONFIG.alice_mint))
    show_position(engine, "alice")
    print(f"\n    alice holds {fmt(engine.debt_token.balance_of('alice'))} DSC")
    print(f"    Additional mintable: {fmt(engine.max_mintable('alice'))} DSC")


def step_06_boundary(engine):
    step_header(6, "The Boundary",
        "One unit past max_mintable breaks the minimum health factor.")

    too_much = engine.max_mintable("alice") + 1
    try:
        engine.mint_debt("alice", too_much)
    except HealthFactorBroken as exc:
        print(f"    REJECTED: {exc}")
        print(f"    (minimum is {fmt(MIN_HEALTH_FACTOR)}, scaled by {PRECISION})")
    show_position(engine, "alice")


# ============================================================================
# PHASE 3: SAFETY (Steps 7-8)
# ============================================================================

def step_07_rejections(engine):
    step_header(7, "Rejected Operations",
        "Guard clauses raise typed errors before anything changes.")

    attempts = [
        ("deposit 0 WETH", lambda: engine.deposit_collateral("alice", "WETH", 0)),
        ("deposit DOGE", lambda: engine.deposit_collateral("alice", "DOGE", 1)),
        ("redeem 11 WETH", lambda: engine.redeem_collateral("alice", "WETH", to_base_units(11))),
        ("burn 1000 DSC", lambda: engine.burn_debt("alice", to_base_units(1000))),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except EngineError as exc:
            print(f"    {label:16s} -> {type(exc).__name__}: {exc}")


def step_08_rollback(engine):
    step_header(8, "Rollback",
        "A settlement failure after the Ledger was updated leaves no trace.")

    log_before = len(engine.operation_log)
    print("    alice has not approved the engine to pull her DSC.")
    try:
        engine.burn_debt("alice", to_base_units(10))
    except TransferFailed as exc:
        print(f"    burn_debt -> TransferFailed: {exc}")
    print(f"    debt minted still {fmt(engine.debt_minted('alice'))} DSC")
    print(f"    operation log length {log_before} -> {len(engine.operation_log)}")


# ============================================================================
# PHASE 4: LIQUIDATION (Steps 9-10)
# ============================================================================

def step_09_crash(engine, feed):
    step_header(9, "Price Crash",
        "Advance the feed clock and watch the health factor fall below 1.")

    engine.deposit_and_mint(
        "liquidator", "WETH",
        to_base_units(CONFIG.liquidator_deposit), to_base_units(CONFIG.liquidator_mint),
    )
    print("    The liquidator opened its own position before the crash.\n")

    feed.advance_time(CONFIG.start_time + timedelta(days=1))
    price, _ = feed.latest_price("WETH")
    print(f"    WETH is now ${fmt(price, 8)}\n")
    show_position(engine, "alice")
    show_position(engine, "liquidator")
    print(f"\n    liquidatable: {[u for u in engine.users() if engine.is_liquidatable(u)]}")


def step_10_liquidate(engine):
    step_header(10, "Liquidation",
        "Repay alice's debt, receive her collateral plus a 10% bonus.")

    dsc = engine.debt_token
    dsc.approve("liquidator", ENGINE_WALLET, dsc.balance_of("liquidator"))

    cover = engine.debt_minted("alice")
    quote = engine.quote_liquidation("WETH", cover)
    print(f"    covering {fmt(cover)} DSC buys {fmt(quote.collateral_seized)} WETH"
          f" + {fmt(quote.bonus_collateral)} bonus")

    engine.liquidate("liquidator", "WETH", "alice", cover)
    print()
    show_position(engine, "alice")
    show_position(engine, "liquidator")
    print(f"\n    liquidator WETH wallet: {fmt(engine.asset_transfer.balance_of('WETH', 'liquidator'))}")


# ============================================================================
# PHASE 5: AUDIT (Step 11)
# ============================================================================

def step_11_audit(engine):
    step_header(11, "Audit Trail and Solvency",
        "Replay the committed operations and prove the Ledger matches custody.")

    for record in engine.operation_log:
        print(record)

    custody = {
        asset: engine.asset_transfer.balance_of(asset, ENGINE_WALLET)
        for asset in engine.supported_assets
    }
    report = engine.verify_solvency(custody, engine.debt_token.total_supply)
    print(f"\n    solvency valid: {report['valid']}")
    print(f"    recorded collateral: { {a: fmt(q) for a, q in report['collateral'].items()} }")
    print(f"    recorded debt:       {fmt(report['debt'])}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       SYNTHDOLLAR - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    feed = step_01_price_feed()
    wait_for_enter()

    tokens, dsc = step_02_tokens()
    wait_for_enter()

    engine = step_03_engine(feed, tokens, dsc)
    wait_for_enter()

    step_04_deposit(engine)
    wait_for_enter()

    step_05_mint(engine)
    wait_for_enter()

    step_06_boundary(engine)
    wait_for_enter()

    step_07_rejections(engine)
    wait_for_enter()

    step_08_rollback(engine)
    wait_for_enter()

    step_09_crash(engine, feed)
    wait_for_enter()

    step_10_liquidate(engine)
    wait_for_enter()

    step_11_audit(engine)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:
      - Prices and amounts are integers; value rounds toward zero
      - Every mutation re-checks the health factor before settling
      - Failed operations roll back Ledger, custody and events together
      - Liquidators repay debt for collateral plus a bonus

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
