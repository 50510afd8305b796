#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Vault Step by Step

This is a pedagogical demonstration of how the capped vault ledger works.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation      - The empty vault, first deposit, read accessors
  4-6:   Limits          - Global cap, per-withdrawal cap, insufficient balance
  7-9:   Withdrawals     - Payouts, failed payouts, re-entrant payout rails
  10-11: Time Travel     - clone_at and replay
  12:    Load Test       - Many accounts, many operations, invariants checked

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys
import time
import random

from vault import (
    VaultLedger, RecordingTransfer, CallbackTransfer,
    UnsolicitedTransfer, OP_WITHDRAW,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    global_cap: int = 100
    per_withdrawal_cap: int = 40

    # Load test parameters (Step 12)
    load_test_accounts: int = 1_000
    load_test_operations: int = 100_000


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


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_state(vault: VaultLedger):
    stats = vault.statistics()
    print(f"Balances:          {dict(sorted(vault.balances.items()))}")
    print(f"Total deposited:   {stats.total_deposited} / {vault.global_cap}")
    print(f"Deposits:          {stats.deposit_count}")
    print(f"Withdrawals:       {stats.withdrawal_count}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_empty_vault():
    """Create an empty vault."""
    step_header(1, "The Empty Vault",
        "A vault starts with no balances and two fixed limits.")

    print("""
    The vault holds value on behalf of many accounts. Two limits never change:

    GLOBAL CAP          - the sum of all balances can never exceed it
    PER-WITHDRAWAL CAP  - no single withdrawal can exceed it

    Withdrawn value leaves through a TRANSFER PRIMITIVE. Here we use a
    RecordingTransfer, which simply remembers every payout.
    """)

    wait_for_enter()

    print(">>> payouts = RecordingTransfer()")
    print(">>> vault = VaultLedger(100, 40, transfer=payouts, name='tutorial')")
    payouts = RecordingTransfer()
    vault = VaultLedger(
        CONFIG.global_cap,
        CONFIG.per_withdrawal_cap,
        transfer=payouts,
        name="tutorial",
        initial_time=CONFIG.start_time,
        verbose=True,
    )

    section_header("Initial State")
    show_state(vault)

    section_header("Key Insight")
    print("""
    Caps of zero are refused at construction with InvalidConfiguration.
    A vault that could never accept a deposit is a configuration mistake.
    """)

    return vault, payouts


def step_02_first_deposit(vault: VaultLedger):
    step_header(2, "The First Deposit",
        "A deposit credits the caller's own balance and the global total.")

    print(">>> vault.deposit('alice', 60)")
    result = vault.deposit("alice", 60)

    section_header("Result")
    print(f"Status:  {result.status.value}")
    print(f"Event:   {result.event!r}")
    print(f"Event ID: {result.event.event_id}")

    section_header("State")
    show_state(vault)

    wait_for_enter()
    return vault


def step_03_read_accessors(vault: VaultLedger):
    step_header(3, "Reading the Vault",
        "Reads never fail and never change anything.")

    print(f">>> vault.balance_of('alice')   -> {vault.balance_of('alice')}")
    print(f">>> vault.balance_of('nobody')  -> {vault.balance_of('nobody')}")
    print(f">>> vault.statistics()          -> {vault.statistics()}")

    section_header("Direct Transfers")
    print("Value pushed at the vault outside of deposit() is refused:\n")
    print(">>> vault.receive('stranger', 5)")
    try:
        vault.receive("stranger", 5)
    except UnsolicitedTransfer as e:
        print(f"    raised {type(e).__name__}: {e}")

    wait_for_enter()
    return vault


# ============================================================================
# PHASE 2: LIMITS (Steps 4-6)
# ============================================================================

def step_04_global_cap(vault: VaultLedger):
    step_header(4, "The Global Cap",
        "A deposit that would push the total past the cap is rejected whole.")

    print(">>> vault.deposit('alice', 50)   # 60 + 50 = 110 > 100")
    result = vault.deposit("alice", 50)

    section_header("Result")
    print(f"Status:        {result.status.value}")
    print(f"Error:         {result.error!r}")
    print(f"Failed phase:  {result.failed_phase.value}")

    section_header("State (unchanged)")
    show_state(vault)

    wait_for_enter()
    return vault


def step_05_withdrawal_cap(vault: VaultLedger):
    step_header(5, "The Per-Withdrawal Cap",
        "No single withdrawal may exceed the cap, even with enough balance.")

    print(">>> vault.withdraw('alice', 50)   # 50 > 40")
    result = vault.withdraw("alice", 50)
    print(f"Error: {result.error!r}")

    wait_for_enter()
    return vault


def step_06_insufficient_balance(vault: VaultLedger):
    step_header(6, "Insufficient Balance",
        "Accounts are isolated: bob cannot spend alice's balance.")

    print(">>> vault.withdraw('bob', 10)")
    result = vault.withdraw("bob", 10)
    print(f"Error: {result.error!r}")

    wait_for_enter()
    return vault


# ============================================================================
# PHASE 3: WITHDRAWALS (Steps 7-9)
# ============================================================================

def step_07_withdrawal(vault: VaultLedger, payouts: RecordingTransfer):
    step_header(7, "A Successful Withdrawal",
        "Bookkeeping is updated first, then value leaves, then the event is logged.")

    vault.advance_time(CONFIG.start_time + timedelta(hours=1))
    print(">>> vault.withdraw('alice', 30)")
    vault.withdraw("alice", 30)

    section_header("State")
    show_state(vault)
    print(f"Payouts:           {payouts.deliveries}")

    wait_for_enter()
    return vault


def step_08_failed_payout(vault: VaultLedger, payouts: RecordingTransfer):
    step_header(8, "A Failed Payout",
        "If the transfer primitive fails, the withdrawal never happened.")

    print(">>> payouts.refuse('alice')")
    print(">>> vault.withdraw('alice', 10)")
    payouts.refuse("alice")
    result = vault.withdraw("alice", 10)
    payouts.accept("alice")

    section_header("Result")
    print(f"Error:         {result.error!r}")
    print(f"Failed phase:  {result.failed_phase.value}")

    section_header("State (rolled back)")
    show_state(vault)

    wait_for_enter()
    return vault


def step_09_reentrancy():
    step_header(9, "Re-entrant Payout Rails",
        "A payee that calls back into the vault sees the reduced balance.")

    print("""
    The payout rail below tries to withdraw again while it is being paid.
    Because alice's balance was already reduced, the nested withdrawal is
    checked against what is left, not against what was there before.
    """)

    nested = []

    def greedy_rail(destination, amount):
        if not nested:
            nested.append(vault.withdraw(destination, 40))

    vault = VaultLedger(100, 40, transfer=CallbackTransfer(greedy_rail),
                        name="reentrancy", verbose=True)
    vault.deposit("mallory", 60)

    print("\n>>> vault.withdraw('mallory', 40)")
    vault.withdraw("mallory", 40)

    section_header("Result")
    print(f"Nested attempt:  {nested[0].error!r}")
    print(f"Final balance:   {vault.balance_of('mallory')}")

    wait_for_enter()


# ============================================================================
# PHASE 4: TIME TRAVEL (Steps 10-11)
# ============================================================================

def step_10_clone_at(vault: VaultLedger):
    step_header(10, "Historical Reconstruction",
        "clone_at(n) rebuilds the vault as it was before event n.")

    for n in range(len(vault.event_log) + 1):
        past = vault.clone_at(n)
        print(f"clone_at({n}): {past!r}")

    wait_for_enter()
    return vault


def step_11_replay(vault: VaultLedger):
    step_header(11, "Replay",
        "Re-running the event log reproduces the same state without paying anyone twice.")

    vault.verbose = False
    replayed = vault.replay()
    vault.verbose = True

    print(f"Original:  {vault!r}")
    print(f"Replayed:  {replayed!r}")
    print(f"Identical balances:   {replayed.balances == vault.balances}")
    print(f"Identical statistics: {replayed.statistics() == vault.statistics()}")

    wait_for_enter()
    return vault


# ============================================================================
# PHASE 5: SCALABILITY (Step 12)
# ============================================================================

def step_12_load_test():
    step_header(12, "Load Test",
        "Invariants hold across many accounts and many operations.")

    rng = random.Random(42)
    payouts = RecordingTransfer(refuse=["acct_7"])
    load_vault = VaultLedger(10_000_000, 5_000, transfer=payouts,
                             name="load", verbose=False)
    accounts = [f"acct_{i}" for i in range(CONFIG.load_test_accounts)]

    start = time.perf_counter()
    rejected = 0
    for _ in range(CONFIG.load_test_operations):
        account = rng.choice(accounts)
        amount = rng.randint(0, 8_000)
        if rng.random() < 0.55:
            result = load_vault.deposit(account, amount)
        else:
            result = load_vault.withdraw(account, amount)
        rejected += not result.ok
    elapsed = time.perf_counter() - start
    throughput = CONFIG.load_test_operations / elapsed

    report = load_vault.verify_invariants()

    section_header("Results")
    print(f"Operations:        {CONFIG.load_test_operations:,} ({rejected:,} rejected)")
    print(f"Throughput:        {throughput:,.0f} ops/s")
    print(f"Events logged:     {len(load_vault.event_log):,}")
    print(f"Withdrawn value:   {sum(e.amount for e in load_vault.get_events(kind=OP_WITHDRAW)):,}")
    print(f"Invariants valid:  {report['valid']}")

    return throughput


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       VAULT LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    vault, payouts = step_01_empty_vault()
    vault = step_02_first_deposit(vault)
    vault = step_03_read_accessors(vault)

    vault = step_04_global_cap(vault)
    vault = step_05_withdrawal_cap(vault)
    vault = step_06_insufficient_balance(vault)

    vault = step_07_withdrawal(vault, payouts)
    vault = step_08_failed_payout(vault, payouts)
    step_09_reentrancy()

    vault = step_10_clone_at(vault)
    vault = step_11_replay(vault)

    step_12_load_test()

    print("\n" + "=" * 70)
    print("TUTORIAL COMPLETE")
    print("=" * 70)
    show_state(vault)


if __name__ == "__main__":
    main()
