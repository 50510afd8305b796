"""
vault - Capped Custodial Vault Ledger

Per-account vault balances guarded by a global deposit cap and a
per-withdrawal cap. Every operation is validated, applied, paid out and
logged as one all-or-nothing unit of work.

Usage:
    from vault import VaultLedger, RecordingTransfer

    payouts = RecordingTransfer()
    vault = VaultLedger(global_cap=100, per_withdrawal_cap=40, transfer=payouts)

    vault.deposit("alice", 60)
    result = vault.withdraw("alice", 50)
    # result.error -> WithdrawalCapExceeded(50, 40)

    vault.withdraw("alice", 30)
    vault.statistics()
    # VaultStatistics(total_deposited=30, deposit_count=1, withdrawal_count=1)
"""

# Core types
from .core import (
    VaultView,
    VaultConfig,
    VaultEvent,
    VaultStatistics,
    OperationResult,
    ExecuteResult,
    OperationPhase,
    VaultError,
    ZeroAmount,
    GlobalCapExceeded,
    WithdrawalCapExceeded,
    InsufficientBalance,
    TransferFailed,
    InvalidConfiguration,
    UnsolicitedTransfer,
    check_amount,
    MAX_AMOUNT,
    OP_DEPOSIT,
    OP_WITHDRAW,
)

# Ledger
from .ledger import VaultLedger

# Validation
from .validation import (
    validate_config,
    validate_deposit,
    validate_withdrawal,
    checked_add,
    checked_sub,
)

# Transfers
from .transfers import (
    TransferPrimitive,
    RecordingTransfer,
    CallbackTransfer,
)

# Events
from .events import (
    EventLog,
    deposit_event,
    withdrawal_event,
)

# Unit of work
from .unit_of_work import UnitOfWork

__all__ = [
    # Core
    'VaultView', 'VaultConfig', 'VaultEvent', 'VaultStatistics',
    'OperationResult', 'ExecuteResult', 'OperationPhase',
    'VaultError', 'ZeroAmount', 'GlobalCapExceeded', 'WithdrawalCapExceeded',
    'InsufficientBalance', 'TransferFailed', 'InvalidConfiguration',
    'UnsolicitedTransfer',
    'check_amount', 'MAX_AMOUNT', 'OP_DEPOSIT', 'OP_WITHDRAW',
    # Ledger
    'VaultLedger',
    # Validation
    'validate_config', 'validate_deposit', 'validate_withdrawal',
    'checked_add', 'checked_sub',
    # Transfers
    'TransferPrimitive', 'RecordingTransfer', 'CallbackTransfer',
    # Events
    'EventLog', 'deposit_event', 'withdrawal_event',
    # Unit of work
    'UnitOfWork',
]

__version__ = '1.0.0'
