"""
Core types and pure functions for the vault ledger.

This module provides the foundational data structures and protocols for the vault:
1. Protocols: VaultView for read-only ledger access
2. Immutable data structures: VaultConfig, VaultEvent, OperationResult, VaultStatistics
3. Exceptions: VaultError and the operation-specific error types
4. Amount checks: the unsigned integer domain every amount must belong to

Nothing in this module mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Protocol, Set, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Amounts are unsigned 256-bit integers.
AMOUNT_BITS = 256
MAX_AMOUNT = 2 ** AMOUNT_BITS - 1

# Operation kinds (strings, matching the event log format).
OP_DEPOSIT = "DEPOSIT"
OP_WITHDRAW = "WITHDRAW"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from account identity to the amount held in that account's vault.
Balances = Dict[str, int]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VaultError(Exception):
    """Base exception for all vault-related errors."""
    pass


class ZeroAmount(VaultError):
    """Raised when a deposit or withdrawal is requested for a zero amount."""

    def __init__(self, operation: str = ""):
        self.operation = operation
        label = f"{operation.lower()} " if operation else ""
        super().__init__(f"{label}amount must be greater than zero")


class GlobalCapExceeded(VaultError):
    """Raised when a deposit would push the aggregate balance above the global cap."""

    def __init__(self, attempted: int, cap: int):
        self.attempted = attempted
        self.cap = cap
        super().__init__(f"global cap exceeded: attempted total {attempted} > cap {cap}")


class WithdrawalCapExceeded(VaultError):
    """Raised when a single withdrawal asks for more than the per-withdrawal cap."""

    def __init__(self, requested: int, cap: int):
        self.requested = requested
        self.cap = cap
        super().__init__(f"withdrawal cap exceeded: requested {requested} > cap {cap}")


class InsufficientBalance(VaultError):
    """Raised when a withdrawal asks for more than the account holds."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(f"insufficient balance: requested {requested} > available {available}")


class TransferFailed(VaultError):
    """Raised when the external value-release primitive could not deliver."""

    def __init__(self, destination: str, amount: int):
        self.destination = destination
        self.amount = amount
        super().__init__(f"transfer of {amount} to {destination} failed")


class InvalidConfiguration(VaultError):
    """Raised when a vault is configured with a zero or out-of-range cap."""

    def __init__(self, global_cap: int, per_withdrawal_cap: int, reason: str = "caps must be positive"):
        self.global_cap = global_cap
        self.per_withdrawal_cap = per_withdrawal_cap
        super().__init__(
            f"invalid configuration (global_cap={global_cap}, "
            f"per_withdrawal_cap={per_withdrawal_cap}): {reason}"
        )


class UnsolicitedTransfer(VaultError):
    """Raised when value is pushed to the vault outside of deposit()."""

    def __init__(self, sender: str, amount: int):
        self.sender = sender
        self.amount = amount
        super().__init__(f"direct transfer of {amount} from {sender} rejected: use deposit()")


# ============================================================================
# AMOUNT CHECKS
# ============================================================================

def check_amount(amount: int, name: str = "amount") -> int:
    """
    Ensure a value belongs to the unsigned integer amount domain.

    Zero is a valid amount here; rejecting zero-value operations is the
    validator's job and produces ZeroAmount, not ValueError.

    Raises:
        ValueError: If amount is not an int, is a bool, is negative,
                    or exceeds MAX_AMOUNT.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"{name} must be int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"{name} must be non-negative, got {amount}")
    if amount > MAX_AMOUNT:
        raise ValueError(f"{name} exceeds {AMOUNT_BITS}-bit range: {amount}")
    return amount


def check_account(account: str, name: str = "account") -> str:
    """Ensure an account identity is a non-empty string."""
    if not isinstance(account, str) or not account.strip():
        raise ValueError(f"{name} cannot be empty")
    return account


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a vault operation.

    APPLIED: The operation passed validation, moved value and was committed.
    REJECTED: The operation failed and every effect it had was rolled back.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class OperationPhase(Enum):
    """
    Steps of a single vault operation.

    An operation moves forward through VALIDATING, MUTATING, TRANSFERRING
    (withdrawals only) and EMITTING to COMMITTED. A failure in any step
    ends the operation in ROLLED_BACK.

    An operation started from inside another operation's transfer primitive
    ends in PROVISIONAL instead of COMMITTED: its effects belong to the
    enclosing operation and are undone if that one rolls back.
    """
    VALIDATING = "validating"
    MUTATING = "mutating"
    TRANSFERRING = "transferring"
    EMITTING = "emitting"
    COMMITTED = "committed"
    PROVISIONAL = "provisional"
    ROLLED_BACK = "rolled_back"


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultConfig:
    """
    Immutable caps of a vault ledger.

    Attributes:
        global_cap: Maximum permitted sum of all vault balances.
        per_withdrawal_cap: Maximum amount a single withdrawal may move.

    Both caps are fixed for the lifetime of the ledger.
    """
    global_cap: int
    per_withdrawal_cap: int

    def __post_init__(self):
        for value in (self.global_cap, self.per_withdrawal_cap):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfiguration(
                    self.global_cap, self.per_withdrawal_cap, "caps must be int"
                )
            if value > MAX_AMOUNT:
                raise InvalidConfiguration(
                    self.global_cap, self.per_withdrawal_cap,
                    f"caps must fit in {AMOUNT_BITS} bits"
                )
        if self.global_cap <= 0 or self.per_withdrawal_cap <= 0:
            raise InvalidConfiguration(self.global_cap, self.per_withdrawal_cap)


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

class VaultStatistics(NamedTuple):
    """Consistent snapshot of the ledger's aggregate counters."""
    total_deposited: int
    deposit_count: int
    withdrawal_count: int


@dataclass(frozen=True, slots=True)
class VaultEvent:
    """
    An immutable record of a committed operation - represents FACT.

    Attributes:
        kind: OP_DEPOSIT or OP_WITHDRAW
        account: Account whose vault changed
        amount: Amount moved in or out
        resulting_balance: The account's balance after the operation
        sequence_number: Monotonic position in the ledger's event log
        timestamp: Logical ledger time when the operation committed
        ledger_name: Name of the ledger that committed the operation
    """
    kind: str
    account: str
    amount: int
    resulting_balance: int
    sequence_number: int
    timestamp: datetime
    ledger_name: str

    def __post_init__(self):
        if self.kind not in (OP_DEPOSIT, OP_WITHDRAW):
            raise ValueError(f"Unknown event kind: {self.kind}")
        check_account(self.account)
        check_amount(self.amount)
        check_amount(self.resulting_balance, "resulting_balance")
        if self.amount == 0:
            raise ValueError("Event amount cannot be zero")

    @property
    def event_id(self) -> str:
        """Deterministic ID: ledger, sequence, kind and account."""
        return f"{self.ledger_name}:{self.sequence_number:012d}:{self.kind}:{self.account}"

    def __repr__(self) -> str:
        sign = "+" if self.kind == OP_DEPOSIT else "-"
        return (
            f"VaultEvent(#{self.sequence_number} {self.kind} {self.account} "
            f"{sign}{self.amount} -> {self.resulting_balance})"
        )


@dataclass(frozen=True, slots=True)
class OperationResult:
    """
    Outcome of a deposit or withdrawal.

    Exactly one of event/error is set: applied operations carry the emitted
    event, rolled-back operations carry the error that aborted them.

    An operation run from inside a transfer primitive is APPLIED with phase
    PROVISIONAL. It is only final once the enclosing withdrawal commits; if
    that withdrawal rolls back, the provisional event and its balance change
    are discarded with it. Check `final` rather than `ok` when the caller
    may itself be running inside a payout.

    Attributes:
        status: APPLIED or REJECTED
        kind: OP_DEPOSIT or OP_WITHDRAW
        account: Caller account
        amount: Requested amount
        phase: COMMITTED, PROVISIONAL when nested, or ROLLED_BACK on failure
        failed_phase: The phase the operation was in when it failed
        event: The emitted event (committed operations only)
        error: The error that aborted the operation (rejected operations only)
    """
    status: ExecuteResult
    kind: str
    account: str
    amount: int
    phase: OperationPhase
    failed_phase: Optional[OperationPhase] = None
    event: Optional[VaultEvent] = None
    error: Optional[VaultError] = None

    @property
    def ok(self) -> bool:
        return self.status == ExecuteResult.APPLIED

    @property
    def final(self) -> bool:
        """Applied and committed by the outermost operation."""
        return self.ok and self.phase == OperationPhase.COMMITTED

    def unwrap(self) -> VaultEvent:
        """Return the emitted event, or raise the error that rejected the operation."""
        if self.error is not None:
            raise self.error
        return self.event

    def __repr__(self) -> str:
        if self.ok:
            label = "APPLIED" if self.final else "APPLIED provisional"
            return f"OperationResult({label} {self.event!r})"
        return (
            f"OperationResult(REJECTED {self.kind} {self.account} {self.amount} "
            f"in {self.failed_phase.value}: {self.error})"
        )


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class VaultView(Protocol):
    """
    Read-only interface to vault state.

    Validators accept a VaultView to declare their read-only intent.
    VaultLedger implements this protocol; tests use FakeView.
    """

    @property
    def config(self) -> VaultConfig:
        """Return the ledger's immutable caps."""
        ...

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def balance_of(self, account: str) -> int:
        """Return the balance of an account, zero if it never deposited."""
        ...

    def statistics(self) -> VaultStatistics:
        """Return (total_deposited, deposit_count, withdrawal_count)."""
        ...

    def list_accounts(self) -> Set[str]:
        """Return every account that has ever been credited."""
        ...


def events_for(events: List[VaultEvent], account: Optional[str] = None,
               kind: Optional[str] = None) -> List[VaultEvent]:
    """Filter an event list by account and/or kind, preserving order."""
    return [
        e for e in events
        if (account is None or e.account == account)
        and (kind is None or e.kind == kind)
    ]
