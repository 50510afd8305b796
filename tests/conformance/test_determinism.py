"""
Determinism Conformance Tests

INVARIANT: Ledger state is a pure function of the committed event sequence.

    ∀ ledger L:
        replay(L) has the same balances and statistics as L
        clone_at(L, n) has the state L had before event n
        running the same operations twice gives identical event logs

These tests also cover clone() independence.
"""

from datetime import datetime, timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from vault import VaultError, CallbackTransfer

from tests.helpers import make_vault, capture_state


ACCOUNTS = ["alice", "bob", "charlie"]

operations = st.lists(
    st.tuples(
        st.sampled_from(["deposit", "withdraw"]),
        st.sampled_from(ACCOUNTS),
        st.integers(min_value=0, max_value=120),
    ),
    max_size=30,
)


def _run(ops, **kwargs):
    vault = make_vault(500, 80, **kwargs)
    for i, (kind, account, amount) in enumerate(ops):
        vault.advance_time(datetime(2025, 1, 1) + timedelta(minutes=i))
        getattr(vault, kind)(account, amount)
    return vault


class TestDeterminismProperties:

    @given(operations)
    @settings(max_examples=100)
    def test_same_operations_same_log(self, ops):
        first = _run(ops)
        second = _run(ops)
        assert list(first.event_log) == list(second.event_log)
        assert capture_state(first) == capture_state(second)

    @given(operations)
    @settings(max_examples=100)
    def test_replay_reproduces_state(self, ops):
        vault = _run(ops)
        replayed = vault.replay()
        assert replayed.balances == vault.balances
        assert replayed.statistics() == vault.statistics()
        assert len(replayed.event_log) == len(vault.event_log)

    @given(operations, st.data())
    @settings(max_examples=100)
    def test_clone_at_matches_history(self, ops, data):
        vault = make_vault(500, 80)
        history = [capture_state(vault)]
        for kind, account, amount in ops:
            if getattr(vault, kind)(account, amount).ok:
                history.append(capture_state(vault))

        n = data.draw(st.integers(min_value=0, max_value=len(vault.event_log)))
        assert capture_state(vault.clone_at(n)) == history[n]


class TestReplay:

    def test_replay_does_not_release_value_again(self, funded_vault, payouts):
        funded_vault.withdraw("alice", 30)
        assert payouts.deliveries == [("alice", 30)]

        replayed = funded_vault.replay()

        assert payouts.deliveries == [("alice", 30)]
        assert replayed.transfer_primitive is not payouts
        assert replayed.transfer_primitive.deliveries == [("alice", 30)]
        assert replayed.name == "vault_replayed"

    def test_replay_keeps_timestamps(self):
        vault = _run([("deposit", "alice", 10), ("deposit", "bob", 5)])
        replayed = vault.replay()
        assert [e.timestamp for e in replayed.event_log] == [e.timestamp for e in vault.event_log]

    def test_partial_replay_that_cannot_apply_raises(self, funded_vault):
        funded_vault.withdraw("alice", 30)
        with pytest.raises(VaultError, match="Replay failed"):
            funded_vault.replay(from_event=2)


class TestClone:

    def test_clone_is_independent(self, funded_vault):
        cloned = funded_vault.clone()
        cloned.deposit("carol", 10)
        cloned.withdraw("alice", 10)

        assert funded_vault.balances == {"alice": 60, "bob": 20}
        assert funded_vault.statistics() == (80, 2, 0)
        assert len(funded_vault.event_log) == 2
        assert cloned.statistics() == (80, 3, 1)

    def test_clone_shares_transfer_primitive(self, funded_vault, payouts):
        assert funded_vault.clone().transfer_primitive is payouts

    def test_clone_at_zero_is_empty(self, funded_vault):
        genesis = funded_vault.clone_at(0)
        assert genesis.balances == {}
        assert genesis.statistics() == (0, 0, 0)
        assert genesis.list_accounts() == set()

    def test_clone_at_end_equals_clone(self, funded_vault):
        n = len(funded_vault.event_log)
        assert capture_state(funded_vault.clone_at(n)) == capture_state(funded_vault.clone())

    def test_clone_at_forgets_later_accounts(self, funded_vault):
        assert funded_vault.clone_at(1).list_accounts() == {"alice"}

    def test_clone_at_keeps_drained_account(self):
        vault = make_vault()
        vault.deposit("alice", 40)
        vault.withdraw("alice", 40)
        vault.deposit("bob", 5)
        at = vault.clone_at(2)
        assert at.balances == {"alice": 0}
        assert at.statistics() == (0, 1, 1)

    @pytest.mark.parametrize("n", [-1, 3])
    def test_clone_at_out_of_range(self, funded_vault, n):
        with pytest.raises(ValueError):
            funded_vault.clone_at(n)

    def test_clone_at_rewinds_time(self):
        vault = _run([("deposit", "alice", 10), ("deposit", "bob", 5)])
        assert vault.clone_at(1).current_time == datetime(2025, 1, 1)


class TestNestedPayoutHistory:
    """Operations run inside a payout are logged after the payout's withdrawal."""

    def _topped_up_vault(self):
        def top_up(destination, amount):
            vault.deposit(destination, 40)

        vault = make_vault(100, 40, transfer=CallbackTransfer(top_up))
        vault.deposit("alice", 100)
        vault.withdraw("alice", 40)
        return vault

    def test_replay_reproduces_nested_history(self):
        vault = self._topped_up_vault()
        replayed = vault.replay()
        assert replayed.balances == vault.balances == {"alice": 100}
        assert replayed.statistics() == vault.statistics() == (100, 2, 1)

    def test_clone_at_never_exceeds_cap(self):
        vault = self._topped_up_vault()
        for n in range(len(vault.event_log) + 1):
            report = vault.clone_at(n).verify_invariants()
            assert report['valid'], report['violations']
        assert vault.clone_at(2).balances == {"alice": 60}

    @given(
        st.lists(st.tuples(st.integers(min_value=1, max_value=40),
                           st.integers(min_value=0, max_value=40)),
                 min_size=1, max_size=10),
    )
    @settings(max_examples=100)
    def test_replay_with_reentrant_deposits(self, steps):
        """
        PROPERTY: replay and clone_at agree with a vault whose payouts deposit back.
        """
        top_ups = []

        def top_up(destination, amount):
            if top_ups and top_ups[-1]:
                vault.deposit(destination, top_ups[-1])

        vault = make_vault(200, 40, transfer=CallbackTransfer(top_up))
        vault.deposit("alice", 120)
        for withdrawal, refill in steps:
            top_ups.append(refill)
            vault.withdraw("alice", withdrawal)

        replayed = vault.replay()
        assert replayed.balances == vault.balances
        assert replayed.statistics() == vault.statistics()
        for n in range(len(vault.event_log) + 1):
            assert vault.clone_at(n).verify_invariants()['valid']


class TestCloneAtClock:

    def test_clone_at_zero_restores_initial_time(self):
        vault = make_vault(initial_time=datetime(2025, 1, 1))
        vault.advance_time(datetime(2025, 3, 1))
        vault.deposit("alice", 10)
        vault.advance_time(datetime(2025, 6, 1))

        assert vault.clone_at(0).current_time == datetime(2025, 1, 1)
        assert vault.clone_at(1).current_time == datetime(2025, 3, 1)

    def test_replay_starts_from_initial_time(self):
        vault = make_vault(initial_time=datetime(2025, 1, 1))
        assert vault.replay().current_time == datetime(2025, 1, 1)
