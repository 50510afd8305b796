"""
validation.py - Admission checks for vault operations

Pure functions that decide whether an operation may proceed, before any state
changes. Each check takes a read-only VaultView and raises the specific
VaultError describing the first rule the operation breaks.

Check order:
    deposit:  zero amount -> global cap
    withdraw: zero amount -> per-withdrawal cap -> balance
"""

from __future__ import annotations

from .core import (
    VaultView, VaultConfig,
    ZeroAmount, GlobalCapExceeded, WithdrawalCapExceeded, InsufficientBalance,
    MAX_AMOUNT, OP_DEPOSIT, OP_WITHDRAW,
    check_amount, check_account,
)


def checked_add(a: int, b: int) -> int:
    """
    Add two amounts in the unsigned 256-bit domain.

    Raises:
        OverflowError: If the sum does not fit in MAX_AMOUNT
    """
    total = a + b
    if total > MAX_AMOUNT:
        raise OverflowError(f"{a} + {b} overflows {MAX_AMOUNT}")
    return total


def checked_sub(a: int, b: int) -> int:
    """
    Subtract two amounts in the unsigned domain.

    Raises:
        OverflowError: If the result would be negative
    """
    if b > a:
        raise OverflowError(f"{a} - {b} underflows")
    return a - b


def validate_config(global_cap: int, per_withdrawal_cap: int) -> VaultConfig:
    """Build a VaultConfig, raising InvalidConfiguration for zero caps."""
    return VaultConfig(global_cap=global_cap, per_withdrawal_cap=per_withdrawal_cap)


def validate_deposit(view: VaultView, account: str, amount: int) -> int:
    """
    Check that a deposit is admissible.

    Args:
        view: Read-only ledger access
        account: Depositing account
        amount: Amount to deposit

    Returns:
        The aggregate total the ledger will hold after the deposit.

    Raises:
        ZeroAmount: If amount is zero
        GlobalCapExceeded: If the new aggregate would exceed the global cap.
            An arithmetic overflow is reported the same way.
    """
    check_account(account)
    check_amount(amount)
    if amount == 0:
        raise ZeroAmount(OP_DEPOSIT)

    cap = view.config.global_cap
    total = view.statistics().total_deposited
    try:
        attempted = checked_add(total, amount)
    except OverflowError:
        raise GlobalCapExceeded(total + amount, cap) from None
    if attempted > cap:
        raise GlobalCapExceeded(attempted, cap)
    return attempted


def validate_withdrawal(view: VaultView, account: str, amount: int) -> int:
    """
    Check that a withdrawal is admissible.

    The per-withdrawal cap is checked before the balance, so an over-cap
    request is reported as WithdrawalCapExceeded even when the account
    could not cover it either.

    Returns:
        The account's balance after the withdrawal.

    Raises:
        ZeroAmount: If amount is zero
        WithdrawalCapExceeded: If amount exceeds the per-withdrawal cap
        InsufficientBalance: If amount exceeds the account's balance
    """
    check_account(account)
    check_amount(amount)
    if amount == 0:
        raise ZeroAmount(OP_WITHDRAW)

    cap = view.config.per_withdrawal_cap
    if amount > cap:
        raise WithdrawalCapExceeded(amount, cap)

    available = view.balance_of(account)
    if amount > available:
        raise InsufficientBalance(amount, available)
    return available - amount
