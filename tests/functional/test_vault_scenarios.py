"""
test_vault_scenarios.py - End-to-end vault scenario tests

Tests complete flows through the public API:
- The capped deposit / capped withdrawal walkthrough
- Deposit then withdraw round trip
- Account isolation
- Refusing and recovering payout rails
- Concurrent callers on separate threads
- Unsolicited transfers mixed into normal traffic
"""

import pytest
import threading
from datetime import datetime, timedelta

from vault import (
    VaultLedger, RecordingTransfer, CallbackTransfer,
    GlobalCapExceeded, WithdrawalCapExceeded, InsufficientBalance,
    TransferFailed, UnsolicitedTransfer, ZeroAmount,
    OP_DEPOSIT, OP_WITHDRAW,
)

from tests.helpers import make_vault


class TestCappedWalkthrough:
    """Global cap 100, per-withdrawal cap 40, a single depositor."""

    def test_full_walkthrough(self, vault, payouts):
        first = vault.deposit("alice", 60)
        assert first.ok
        assert vault.balance_of("alice") == 60
        assert vault.statistics() == (60, 1, 0)

        over_cap = vault.deposit("alice", 50)
        assert isinstance(over_cap.error, GlobalCapExceeded)
        assert (over_cap.error.attempted, over_cap.error.cap) == (110, 100)

        too_large = vault.withdraw("alice", 50)
        assert isinstance(too_large.error, WithdrawalCapExceeded)
        assert (too_large.error.requested, too_large.error.cap) == (50, 40)

        payout = vault.withdraw("alice", 30)
        assert payout.ok
        assert vault.balance_of("alice") == 30
        assert vault.statistics() == (30, 1, 1)
        assert payouts.deliveries == [("alice", 30)]

        assert [(e.kind, e.amount, e.resulting_balance) for e in vault.event_log] == [
            (OP_DEPOSIT, 60, 60),
            (OP_WITHDRAW, 30, 30),
        ]
        assert vault.verify_invariants()['valid']

    def test_fill_to_cap_and_drain(self, vault, payouts):
        assert vault.deposit("alice", 100).ok
        assert isinstance(vault.deposit("bob", 1).error, GlobalCapExceeded)

        for _ in range(2):
            assert vault.withdraw("alice", 40).ok
        assert vault.withdraw("alice", 20).ok

        assert isinstance(vault.withdraw("alice", 1).error, InsufficientBalance)
        assert vault.statistics() == (0, 1, 3)
        assert sum(payouts.totals().values()) == 100

    def test_zero_amounts_are_rejected_everywhere(self, funded_vault):
        for result in (funded_vault.deposit("alice", 0), funded_vault.withdraw("alice", 0)):
            assert isinstance(result.error, ZeroAmount)
        assert funded_vault.statistics() == (80, 2, 0)


class TestRoundTrip:

    @pytest.mark.parametrize("amount", [1, 17, 20])
    def test_deposit_then_withdraw(self, funded_vault, amount):
        before = funded_vault.statistics().total_deposited
        assert funded_vault.deposit("carol", amount).ok
        assert funded_vault.withdraw("carol", amount).ok
        assert funded_vault.balance_of("carol") == 0
        assert funded_vault.total_deposited == before

    def test_drained_account_is_still_listed(self, funded_vault):
        funded_vault.withdraw("bob", 20)
        assert "bob" in funded_vault.list_accounts()
        assert funded_vault.balance_of("bob") == 0


class TestAccountIsolation:

    def test_operations_touch_only_caller(self, funded_vault):
        funded_vault.withdraw("alice", 40)
        assert funded_vault.balance_of("bob") == 20

        funded_vault.deposit("bob", 15)
        assert funded_vault.balance_of("alice") == 20

    def test_cannot_spend_another_accounts_balance(self, funded_vault):
        result = funded_vault.withdraw("bob", 30)
        assert isinstance(result.error, InsufficientBalance)
        assert result.error.available == 20
        assert funded_vault.balance_of("alice") == 60


class TestPayoutRails:

    def test_refusing_payee_recovers(self, funded_vault, payouts):
        payouts.refuse("alice")
        failed = funded_vault.withdraw("alice", 30)
        assert isinstance(failed.error, TransferFailed)
        assert failed.error.destination == "alice"

        payouts.accept("alice")
        assert funded_vault.withdraw("alice", 30).ok
        assert payouts.failures == [("alice", 30)]
        assert payouts.deliveries == [("alice", 30)]
        assert funded_vault.balance_of("alice") == 30

    def test_raising_rail_is_reported_and_chained(self, funded_vault):
        def broken(destination, amount):
            raise ConnectionError("payment network unreachable")

        funded_vault.transfer_primitive = CallbackTransfer(broken)
        result = funded_vault.withdraw("bob", 10)

        assert isinstance(result.error, TransferFailed)
        assert isinstance(result.error.__cause__, ConnectionError)
        assert funded_vault.balance_of("bob") == 20

    def test_unsolicited_transfer_between_operations(self, funded_vault):
        with pytest.raises(UnsolicitedTransfer):
            funded_vault.receive("stranger", 5)
        assert funded_vault.deposit("alice", 5).ok
        assert funded_vault.statistics() == (85, 3, 0)


class TestDailyActivity:
    """A day of mixed traffic with a moving clock."""

    def test_timestamps_follow_clock(self):
        vault = make_vault(1_000, 100, initial_time=datetime(2025, 1, 1, 9, 0))
        for hour, (account, amount) in enumerate([("alice", 200), ("bob", 150), ("alice", 50)]):
            vault.advance_time(datetime(2025, 1, 1, 9, 0) + timedelta(hours=hour))
            vault.deposit(account, amount)
        vault.advance_time(datetime(2025, 1, 1, 17, 0))
        vault.withdraw("bob", 100)

        stamps = [e.timestamp.hour for e in vault.event_log]
        assert stamps == [9, 10, 11, 17]
        assert vault.statistics() == (300, 3, 1)

        midday = vault.clone_at(2)
        assert midday.balances == {"alice": 200, "bob": 150}


class TestConcurrency:

    def test_concurrent_callers_keep_invariants(self):
        payouts = RecordingTransfer()
        vault = VaultLedger(10_000, 50, transfer=payouts, verbose=False)
        accounts = [f"user_{i}" for i in range(8)]
        errors = []

        def worker(account):
            try:
                for i in range(200):
                    if i % 3 == 2:
                        vault.withdraw(account, 7)
                    else:
                        vault.deposit(account, 5)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(a,)) for a in accounts]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        report = vault.verify_invariants()
        assert report['valid'], report['violations']
        assert [e.sequence_number for e in vault.event_log] == list(range(len(vault.event_log)))
        paid = sum(payouts.totals().values())
        assert vault.total_deposited == 5 * vault.deposit_count - paid

    def test_global_cap_holds_under_contention(self):
        vault = VaultLedger(1_000, 50, verbose=False)
        barrier = threading.Barrier(10)

        def worker(account):
            barrier.wait()
            for _ in range(50):
                vault.deposit(account, 3)

        threads = [threading.Thread(target=worker, args=(f"user_{i}",)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert vault.total_deposited <= 1_000
        assert vault.total_deposited == 3 * vault.deposit_count
        assert vault.deposit_count == 333
