"""
events.py - Event log for committed vault operations

Every committed deposit or withdrawal leaves one immutable VaultEvent behind.
The event log IS the audit trail: it is appended inside the operation's unit
of work, so an operation that rolls back leaves no event.

Core concepts:
1. VaultEvent (core.py): immutable fact describing one committed operation
2. EventLog: append-only sequence with simple queries
3. Factories: deposit_event() / withdrawal_event()
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Iterator, List, Optional, overload

from .core import VaultEvent, OP_DEPOSIT, OP_WITHDRAW, events_for


# ============================================================================
# EVENT FACTORY FUNCTIONS
# ============================================================================

def deposit_event(
    ledger_name: str,
    sequence_number: int,
    account: str,
    amount: int,
    resulting_balance: int,
    timestamp: datetime,
) -> VaultEvent:
    """Create a deposit event."""
    return VaultEvent(
        kind=OP_DEPOSIT,
        account=account,
        amount=amount,
        resulting_balance=resulting_balance,
        sequence_number=sequence_number,
        timestamp=timestamp,
        ledger_name=ledger_name,
    )


def withdrawal_event(
    ledger_name: str,
    sequence_number: int,
    account: str,
    amount: int,
    resulting_balance: int,
    timestamp: datetime,
) -> VaultEvent:
    """Create a withdrawal event."""
    return VaultEvent(
        kind=OP_WITHDRAW,
        account=account,
        amount=amount,
        resulting_balance=resulting_balance,
        sequence_number=sequence_number,
        timestamp=timestamp,
        ledger_name=ledger_name,
    )


# ============================================================================
# EVENT LOG
# ============================================================================

class EventLog:
    """
    Append-only log of committed vault events.

    Sequence numbers are positions in the log, assigned in mutation order.
    A withdrawal reserves its position when its bookkeeping is applied and
    fills it once the payout succeeds, so operations nested inside the
    payout are logged after it. Reserved positions are invisible to
    iteration and queries until filled.

    Only the owning ledger's unit of work may shorten the log, and only back
    to a length it captured itself.
    """

    def __init__(self, events: Optional[List[Optional[VaultEvent]]] = None):
        self._events: List[Optional[VaultEvent]] = list(events or [])

    def reserve(self) -> int:
        """Claim the next sequence number without publishing an event."""
        self._events.append(None)
        return len(self._events) - 1

    def fill(self, event: VaultEvent) -> None:
        """Publish an event into the position reserved for it."""
        seq = event.sequence_number
        if seq >= len(self._events) or self._events[seq] is not None:
            raise ValueError(f"No reserved position for event sequence {seq}")
        self._events[seq] = event

    def append(self, event: VaultEvent) -> None:
        if event.sequence_number != len(self._events):
            raise ValueError(
                f"Out-of-order event: expected sequence {len(self._events)}, "
                f"got {event.sequence_number}"
            )
        self._events.append(event)

    def truncate(self, length: int) -> None:
        """Drop every position >= length (rollback only)."""
        del self._events[length:]

    @property
    def pending(self) -> int:
        """Number of reserved positions not yet filled."""
        return sum(1 for e in self._events if e is None)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[VaultEvent]:
        return (e for e in self._events if e is not None)

    @overload
    def __getitem__(self, index: int) -> VaultEvent: ...
    @overload
    def __getitem__(self, index: slice) -> List[VaultEvent]: ...

    def __getitem__(self, index):
        return self._events[index]

    def since(self, sequence_number: int) -> List[VaultEvent]:
        """Published events with sequence_number >= the given one."""
        return [e for e in self._events[sequence_number:] if e is not None]

    def latest(self) -> Optional[VaultEvent]:
        """The published event with the highest sequence number, if any."""
        for event in reversed(self._events):
            if event is not None:
                return event
        return None

    def query(self, account: Optional[str] = None, kind: Optional[str] = None) -> List[VaultEvent]:
        """Published events filtered by account and/or kind, in sequence order."""
        return events_for(list(self), account=account, kind=kind)

    def net_flows(self) -> Dict[str, int]:
        """
        Net amount per account implied by the log (deposits minus withdrawals).

        For a ledger whose whole history is in the log this equals the
        account balances.
        """
        flows: Dict[str, int] = {}
        for event in self:
            delta = event.amount if event.kind == OP_DEPOSIT else -event.amount
            flows[event.account] = flows.get(event.account, 0) + delta
        return flows

    def copy(self) -> EventLog:
        return EventLog(self._events)

    def __repr__(self) -> str:
        return f"EventLog({len(self._events)} events)"
