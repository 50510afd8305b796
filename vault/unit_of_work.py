"""
unit_of_work.py - All-or-nothing boundary around a vault operation

A UnitOfWork wraps one deposit or withdrawal. While it is open it holds the
ledger's lock, so no other thread can observe or interleave with the
operation, and it journals every balance write so the operation can be
undone exactly.

    with UnitOfWork(ledger) as uow:
        ...mutate...            # any exception -> every write is reverted

Units of work nest. The lock is re-entrant, so a transfer primitive that
calls back into the ledger on the same thread opens a nested unit of work.
A nested unit that commits hands its journal to the enclosing one; if the
enclosing unit later rolls back, the nested effects are reverted with it.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

if TYPE_CHECKING:
    from .ledger import VaultLedger


# Journal entry: (account, had_entry, old_balance)
_BalanceUndo = Tuple[str, bool, int]


class UnitOfWork:
    """
    Journaled, lock-holding transaction over a VaultLedger.

    Scalar fields (aggregate total, counters, event log length) are
    captured on entry; per-account balance writes are journaled as they happen
    through record_balance().
    """

    def __init__(self, ledger: 'VaultLedger'):
        self.ledger = ledger
        self.parent: Optional[UnitOfWork] = None
        self.committed = False
        self.rolled_back = False
        self._scalars: Optional[Tuple[Any, ...]] = None
        self._journal: List[_BalanceUndo] = []

    @property
    def depth(self) -> int:
        """Nesting depth: 0 for the outermost unit of work."""
        depth = 0
        uow = self.parent
        while uow is not None:
            depth += 1
            uow = uow.parent
        return depth

    def __enter__(self) -> UnitOfWork:
        self.ledger._lock.acquire()
        stack = self.ledger._uow_stack
        self.parent = stack[-1] if stack else None
        self._scalars = self.ledger._capture_scalars()
        stack.append(self)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            stack = self.ledger._uow_stack
            if not stack or stack[-1] is not self:
                raise RuntimeError("UnitOfWork closed out of order")
            stack.pop()
            if exc_type is None:
                self._commit()
            else:
                self._rollback()
        finally:
            self.ledger._lock.release()
        return False

    def record_balance(self, account: str) -> None:
        """Journal an account's current balance before it is overwritten."""
        balances = self.ledger.balances
        had_entry = account in balances
        self._journal.append((account, had_entry, balances.get(account, 0)))

    def _commit(self) -> None:
        if self.parent is not None:
            self.parent._journal.extend(self._journal)
        self._journal = []
        self.committed = True

    def _rollback(self) -> None:
        balances = self.ledger.balances
        for account, had_entry, old_balance in reversed(self._journal):
            if had_entry:
                balances[account] = old_balance
            else:
                balances.pop(account, None)
        self._journal = []
        self.ledger._restore_scalars(self._scalars)
        self.rolled_back = True
