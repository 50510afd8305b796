"""
Conformance Test Suite

Normative behavior of the vault ledger, organized by invariant:
1. test_conservation.py - total_deposited equals the sum of balances, within the cap
2. test_atomicity.py - All-or-nothing deposits and withdrawals
3. test_reentrancy.py - Payout rails that call back into the vault
4. test_determinism.py - Replay and historical reconstruction

These tests use hypothesis for property-based testing.
"""
