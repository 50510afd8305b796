"""
ledger.py - Stateful Vault Ledger

The VaultLedger class is the central state manager for the vault system.
It is the only module that mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements VaultView protocol for safe read-only access by validators
    - Runs each deposit/withdrawal atomically (fully committed or fully rolled back)
    - Maintains per-account balances, the aggregate total and operation counters
    - Releases withdrawn value through an external TransferPrimitive, last
    - Always validates and always logs - no exceptions
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple
import threading

from .core import (
    # Types
    VaultConfig, VaultEvent, VaultStatistics, OperationResult,
    ExecuteResult, OperationPhase, Balances,
    # Constants
    OP_DEPOSIT, OP_WITHDRAW,
    # Exceptions
    VaultError, TransferFailed, UnsolicitedTransfer,
    # Helper functions
    check_account, check_amount,
)
from .events import EventLog, deposit_event, withdrawal_event
from .transfers import TransferPrimitive, RecordingTransfer
from .unit_of_work import UnitOfWork
from .validation import (
    validate_config, validate_deposit, validate_withdrawal,
    checked_add, checked_sub,
)


class VaultLedger:
    """
    Per-account vault ledger with a global deposit cap and a per-withdrawal cap.

    Implements the VaultView protocol, allowing the ledger to be passed to the
    pure validation functions.

    Every operation runs Validator -> Mutator -> Transfer (withdrawals only)
    -> Emitter inside a UnitOfWork. Bookkeeping is finished before value
    leaves the vault, so a transfer primitive that re-enters the ledger sees
    the already-reduced balance. If the transfer fails, the unit of work
    reverts every write and the operation is reported as REJECTED.

    Thread Safety:
        Operations and reads are serialized by a re-entrant lock. A transfer
        primitive may call back into the ledger on the same thread; it must
        not block on another thread that calls into the ledger.

    Example:
        vault = VaultLedger(global_cap=100, per_withdrawal_cap=40)
        vault.deposit("alice", 60)
        result = vault.withdraw("alice", 30)
        assert result.ok and vault.balance_of("alice") == 30
    """

    def __init__(
        self,
        global_cap: int,
        per_withdrawal_cap: int,
        transfer: Optional[TransferPrimitive] = None,
        name: str = "vault",
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Create a vault ledger.

        Args:
            global_cap: Maximum sum of all balances (must be > 0)
            per_withdrawal_cap: Maximum amount of a single withdrawal (must be > 0)
            transfer: Value-release primitive for withdrawals (default: RecordingTransfer)
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Enable console output (default: True)

        Raises:
            InvalidConfiguration: If either cap is zero or out of range
        """
        self._config: VaultConfig = validate_config(global_cap, per_withdrawal_cap)
        self.name = name
        self.balances: Balances = {}
        self.total_deposited: int = 0
        self.deposit_count: int = 0
        self.withdrawal_count: int = 0
        self.event_log = EventLog()
        self.transfer_primitive: TransferPrimitive = (
            transfer if transfer is not None else RecordingTransfer()
        )
        self._initial_time: datetime = initial_time if initial_time is not None else datetime(1970, 1, 1)
        self._current_time: datetime = self._initial_time
        self.verbose = verbose
        self._lock = threading.RLock()
        self._uow_stack: List[UnitOfWork] = []

        if self.verbose:
            print(f"📝 Vault {self.name}: global_cap={global_cap}, "
                  f"per_withdrawal_cap={per_withdrawal_cap}")

    # ========================================================================
    # VaultView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def global_cap(self) -> int:
        return self._config.global_cap

    @property
    def per_withdrawal_cap(self) -> int:
        return self._config.per_withdrawal_cap

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def balance_of(self, account: str) -> int:
        """
        Get the balance of an account.

        Never fails: unknown accounts have a balance of zero.
        """
        with self._lock:
            return self.balances.get(account, 0)

    def statistics(self) -> VaultStatistics:
        """
        Snapshot of (total_deposited, deposit_count, withdrawal_count).

        Taken under the ledger lock, so all three values belong to the same
        committed state.
        """
        with self._lock:
            return VaultStatistics(
                self.total_deposited,
                self.deposit_count,
                self.withdrawal_count,
            )

    def list_accounts(self) -> Set[str]:
        """All accounts that have ever been credited."""
        with self._lock:
            return set(self.balances)

    def get_events(self, account: Optional[str] = None, kind: Optional[str] = None) -> List[VaultEvent]:
        """Committed events, optionally filtered by account and/or kind."""
        with self._lock:
            return self.event_log.query(account=account, kind=kind)

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the ledger invariants against current state.

        Checks:
        - total_deposited equals the sum of all balances
        - total_deposited does not exceed the global cap
        - no balance is negative
        - no logged withdrawal exceeds the per-withdrawal cap
        - counters match the event log

        Returns:
            Dict with keys:
            - 'valid': bool - True if every invariant holds
            - 'total_deposited': int - The recorded aggregate
            - 'sum_of_balances': int - The recomputed aggregate
            - 'violations': List[str] - Description of each broken invariant

        Example:
            report = vault.verify_invariants()
            assert report['valid'], report['violations']
        """
        with self._lock:
            violations = []
            balance_sum = sum(self.balances[a] for a in sorted(self.balances))

            if balance_sum != self.total_deposited:
                violations.append(
                    f"total_deposited {self.total_deposited} != sum of balances {balance_sum}"
                )
            if self.total_deposited > self.global_cap:
                violations.append(
                    f"total_deposited {self.total_deposited} > global_cap {self.global_cap}"
                )
            for account in sorted(self.balances):
                if self.balances[account] < 0:
                    violations.append(f"{account} balance negative: {self.balances[account]}")

            withdrawals = self.event_log.query(kind=OP_WITHDRAW)
            for event in withdrawals:
                if event.amount > self.per_withdrawal_cap:
                    violations.append(
                        f"withdrawal #{event.sequence_number} of {event.amount} "
                        f"> per_withdrawal_cap {self.per_withdrawal_cap}"
                    )
            # A reserved position is a withdrawal whose payout is still running.
            pending = self.event_log.pending
            deposits = len(self.event_log.query(kind=OP_DEPOSIT))
            logged_withdrawals = len(withdrawals) + pending
            if deposits != self.deposit_count or logged_withdrawals != self.withdrawal_count:
                violations.append(
                    f"counters ({self.deposit_count}, {self.withdrawal_count}) do not match "
                    f"event log ({deposits}, {logged_withdrawals})"
                )

            return {
                'valid': len(violations) == 0,
                'total_deposited': self.total_deposited,
                'sum_of_balances': balance_sum,
                'violations': violations,
            }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock to a new time.

        Time can only move forward, never backward.

        Raises:
            ValueError: If new_time is before the current time
        """
        with self._lock:
            if new_time < self._current_time:
                raise ValueError(
                    f"Cannot move time backwards: {new_time} < {self._current_time}"
                )
            self._current_time = new_time

    # ========================================================================
    # OPERATIONS (Mutating)
    # ========================================================================

    def deposit(self, account: str, amount: int) -> OperationResult:
        """
        Credit amount to the caller's own vault.

        Args:
            account: Caller identity; only this account's balance changes
            amount: Amount to deposit

        Returns:
            OperationResult APPLIED with the emitted event, or REJECTED with
            ZeroAmount / GlobalCapExceeded. A rejected deposit changes nothing.

        Raises:
            ValueError: If account is empty or amount is not a valid unsigned int
        """
        check_account(account)
        check_amount(amount)

        phase = OperationPhase.VALIDATING
        try:
            with UnitOfWork(self) as uow:
                validate_deposit(self, account, amount)
                phase = OperationPhase.MUTATING
                self._apply_deposit(uow, account, amount)
                staged = self._stage(OP_DEPOSIT, account, amount)
                phase = OperationPhase.EMITTING
                event = self._emit(staged)
        except VaultError as e:
            return self._rejected(OP_DEPOSIT, account, amount, phase, e)
        return self._applied(OP_DEPOSIT, account, amount, event, uow.parent is not None)

    def withdraw(self, account: str, amount: int) -> OperationResult:
        """
        Debit amount from the caller's own vault and release it to the caller.

        Order: validate, update bookkeeping and reserve the event's sequence
        number, then hand the value to the transfer primitive, then emit.
        If the primitive fails, the bookkeeping and the reservation are
        reverted and the withdrawal is void. Operations the primitive runs
        on this ledger are sequenced after this withdrawal and come back
        PROVISIONAL.

        Args:
            account: Caller identity; both the debited account and the payee
            amount: Amount to withdraw

        Returns:
            OperationResult APPLIED with the emitted event, or REJECTED with
            ZeroAmount / WithdrawalCapExceeded / InsufficientBalance /
            TransferFailed. A rejected withdrawal changes nothing.

        Raises:
            ValueError: If account is empty or amount is not a valid unsigned int
        """
        check_account(account)
        check_amount(amount)

        phase = OperationPhase.VALIDATING
        try:
            with UnitOfWork(self) as uow:
                validate_withdrawal(self, account, amount)
                phase = OperationPhase.MUTATING
                self._apply_withdrawal(uow, account, amount)
                staged = self._stage(OP_WITHDRAW, account, amount)
                phase = OperationPhase.TRANSFERRING
                self._release(account, amount)
                phase = OperationPhase.EMITTING
                event = self._emit(staged)
        except VaultError as e:
            return self._rejected(OP_WITHDRAW, account, amount, phase, e)
        return self._applied(OP_WITHDRAW, account, amount, event, uow.parent is not None)

    def receive(self, sender: str, amount: int) -> None:
        """
        Entry point for value pushed to the vault outside of deposit().

        There is no implicit top-up path: every such transfer is refused
        and no state changes.

        Raises:
            UnsolicitedTransfer: Always
        """
        if self.verbose:
            print(f"✗ REFUSED: direct transfer of {amount} from {sender}")
        raise UnsolicitedTransfer(sender, amount)

    # ------------------------------------------------------------------------
    # Mutator
    # ------------------------------------------------------------------------

    def _apply_deposit(self, uow: UnitOfWork, account: str, amount: int) -> int:
        uow.record_balance(account)
        new_balance = checked_add(self.balances.get(account, 0), amount)
        self.balances[account] = new_balance
        self.total_deposited = checked_add(self.total_deposited, amount)
        self.deposit_count += 1
        return new_balance

    def _apply_withdrawal(self, uow: UnitOfWork, account: str, amount: int) -> int:
        uow.record_balance(account)
        new_balance = checked_sub(self.balances[account], amount)
        self.balances[account] = new_balance
        self.total_deposited = checked_sub(self.total_deposited, amount)
        self.withdrawal_count += 1
        return new_balance

    # ------------------------------------------------------------------------
    # Transfer executor
    # ------------------------------------------------------------------------

    def _release(self, destination: str, amount: int) -> None:
        """
        Hand amount to the external transfer primitive.

        Raises:
            TransferFailed: If the primitive returns a falsy value or raises.
                            The primitive's own exception is chained as __cause__.
        """
        try:
            delivered = self.transfer_primitive.transfer(destination, amount)
        except Exception as e:
            raise TransferFailed(destination, amount) from e
        if not delivered:
            raise TransferFailed(destination, amount)

    # ------------------------------------------------------------------------
    # Emitter
    # ------------------------------------------------------------------------

    def _stage(self, kind: str, account: str, amount: int) -> VaultEvent:
        """Reserve the next sequence number and build the event right after mutation."""
        factory = deposit_event if kind == OP_DEPOSIT else withdrawal_event
        return factory(
            ledger_name=self.name,
            sequence_number=self.event_log.reserve(),
            account=account,
            amount=amount,
            resulting_balance=self.balances[account],
            timestamp=self._current_time,
        )

    def _emit(self, event: VaultEvent) -> VaultEvent:
        self.event_log.fill(event)
        return event

    def _applied(self, kind: str, account: str, amount: int,
                 event: VaultEvent, nested: bool = False) -> OperationResult:
        result = OperationResult(
            status=ExecuteResult.APPLIED,
            kind=kind,
            account=account,
            amount=amount,
            phase=OperationPhase.PROVISIONAL if nested else OperationPhase.COMMITTED,
            event=event,
        )
        if self.verbose:
            label = "APPLIED (provisional)" if nested else "APPLIED"
            print(f"✓ {label}: {event!r}")
        return result

    def _rejected(self, kind: str, account: str, amount: int,
                  phase: OperationPhase, error: VaultError) -> OperationResult:
        result = OperationResult(
            status=ExecuteResult.REJECTED,
            kind=kind,
            account=account,
            amount=amount,
            phase=OperationPhase.ROLLED_BACK,
            failed_phase=phase,
            error=error,
        )
        if self.verbose:
            print(f"✗ REJECTED: {kind} {account} {amount}: {error}")
        return result

    # ------------------------------------------------------------------------
    # UnitOfWork hooks
    # ------------------------------------------------------------------------

    def _capture_scalars(self) -> Tuple[int, int, int, int]:
        return (
            self.total_deposited,
            self.deposit_count,
            self.withdrawal_count,
            len(self.event_log),
        )

    def _restore_scalars(self, scalars: Tuple[int, int, int, int]) -> None:
        total, deposits, withdrawals, log_length = scalars
        self.total_deposited = total
        self.deposit_count = deposits
        self.withdrawal_count = withdrawals
        self.event_log.truncate(log_length)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> VaultLedger:
        """
        Create an independent copy of this ledger.

        Balances, counters and the event log are copied; the transfer
        primitive is shared, since it stands for the same external world.

        Returns:
            A new VaultLedger instance with identical state
        """
        with self._lock:
            cloned = VaultLedger.__new__(VaultLedger)
            cloned._config = self._config
            cloned.name = self.name
            cloned.balances = dict(self.balances)
            cloned.total_deposited = self.total_deposited
            cloned.deposit_count = self.deposit_count
            cloned.withdrawal_count = self.withdrawal_count
            cloned.event_log = self.event_log.copy()
            cloned.transfer_primitive = self.transfer_primitive
            cloned._initial_time = self._initial_time
            cloned._current_time = self._current_time
            cloned.verbose = self.verbose
            cloned._lock = threading.RLock()
            cloned._uow_stack = []
            return cloned

    def clone_at(self, sequence_number: int) -> VaultLedger:
        """
        Reconstruct the ledger as it was before event #sequence_number committed.

        clone_at(0) is the freshly constructed ledger, clock included;
        clone_at(len(event_log)) is equivalent to clone(). Event order is
        mutation order, so every prefix is a state the ledger actually held.

        The algorithm:
        1. Clone the current ledger state
        2. Walk backward through events with sequence >= sequence_number
        3. Reverse each event's effect on balances, total and counters
        4. Truncate the event log and forget accounts first credited later

        Raises:
            ValueError: If sequence_number is outside [0, len(event_log)]
        """
        with self._lock:
            if sequence_number < 0 or sequence_number > len(self.event_log):
                raise ValueError(
                    f"sequence_number {sequence_number} outside [0, {len(self.event_log)}]"
                )
            cloned = self.clone()

            for event in reversed(self.event_log.since(sequence_number)):
                if event.kind == OP_DEPOSIT:
                    cloned.balances[event.account] -= event.amount
                    cloned.total_deposited -= event.amount
                    cloned.deposit_count -= 1
                else:
                    cloned.balances[event.account] += event.amount
                    cloned.total_deposited += event.amount
                    cloned.withdrawal_count -= 1

            cloned.event_log.truncate(sequence_number)
            known = {e.account for e in cloned.event_log}
            for account in list(cloned.balances):
                if account not in known:
                    del cloned.balances[account]
            latest = cloned.event_log.latest()
            cloned._current_time = latest.timestamp if latest else self._initial_time
            return cloned

    def replay(self, from_event: int = 0) -> VaultLedger:
        """
        Create a new ledger by re-running the event log.

        Withdrawals are replayed against a fresh RecordingTransfer, so no
        value is released to the outside world a second time.

        Args:
            from_event: Starting event index (0 = replay from the beginning)

        Returns:
            New VaultLedger instance with replayed state

        Raises:
            VaultError: If any replayed operation is rejected
        """
        new_ledger = VaultLedger(
            self.global_cap,
            self.per_withdrawal_cap,
            transfer=RecordingTransfer(),
            name=f"{self.name}_replayed",
            initial_time=self._initial_time,
            verbose=self.verbose,
        )
        for event in self.event_log.since(from_event):
            if event.timestamp > new_ledger.current_time:
                new_ledger.advance_time(event.timestamp)
            if event.kind == OP_DEPOSIT:
                result = new_ledger.deposit(event.account, event.amount)
            else:
                result = new_ledger.withdraw(event.account, event.amount)
            if not result.ok:
                raise VaultError(f"Replay failed at event {event.event_id}: {result.error}")
        return new_ledger

    def __repr__(self) -> str:
        stats = self.statistics()
        return (
            f"VaultLedger({self.name}: {stats.total_deposited}/{self.global_cap}, "
            f"{len(self.balances)} accounts, {stats.deposit_count} deposits, "
            f"{stats.withdrawal_count} withdrawals)"
        )
