"""
transfers.py - External value-release primitives

The vault never moves value out by itself: withdrawals hand the payout to a
TransferPrimitive supplied by the hosting environment. The primitive is an
untrusted boundary. It may fail, and it may call back into the ledger while
it runs.

Classes:
- TransferPrimitive: Protocol defining the payout interface
- RecordingTransfer: In-memory primitive that records deliveries
- CallbackTransfer: Adapts a plain callable to the protocol

A primitive signals failure by returning False or by raising. The ledger turns
either signal into TransferFailed and rolls the withdrawal back.
"""

from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple, runtime_checkable


@runtime_checkable
class TransferPrimitive(Protocol):
    """
    Protocol for value-release primitives.

    transfer() must return True when value was delivered to destination,
    False when it could not be delivered.
    """

    def transfer(self, destination: str, amount: int) -> bool:
        """Deliver amount to destination."""
        ...


class RecordingTransfer:
    """
    Transfer primitive that keeps deliveries in memory.

    Useful as the default primitive for simulations and tests, and for
    replaying an event log without releasing value a second time.
    Destinations listed in refuse are never paid.
    """

    def __init__(self, refuse: Optional[Iterable[str]] = None):
        """
        Initialize the recorder.

        Args:
            refuse: Destinations whose payouts always fail
        """
        self.refused: Set[str] = set(refuse or ())
        self.deliveries: List[Tuple[str, int]] = []
        self.failures: List[Tuple[str, int]] = []

    def transfer(self, destination: str, amount: int) -> bool:
        if destination in self.refused:
            self.failures.append((destination, amount))
            return False
        self.deliveries.append((destination, amount))
        return True

    def refuse(self, destination: str) -> None:
        """Make every later payout to destination fail."""
        self.refused.add(destination)

    def accept(self, destination: str) -> None:
        """Allow payouts to destination again."""
        self.refused.discard(destination)

    def delivered_to(self, destination: str) -> int:
        """Total amount delivered to a destination."""
        return sum(amount for dest, amount in self.deliveries if dest == destination)

    def totals(self) -> Dict[str, int]:
        """Total amount delivered per destination."""
        result: Dict[str, int] = {}
        for dest, amount in self.deliveries:
            result[dest] = result.get(dest, 0) + amount
        return result

    def __repr__(self):
        return (
            f"RecordingTransfer({len(self.deliveries)} deliveries, "
            f"{len(self.failures)} failures)"
        )


class CallbackTransfer:
    """
    Transfer primitive backed by a plain function.

    The callback receives (destination, amount). Its return value is treated
    as the delivery outcome; returning None counts as success so that simple
    side-effecting hooks need not return anything.
    """

    def __init__(self, callback: Callable[[str, int], Optional[bool]]):
        self.callback = callback

    def transfer(self, destination: str, amount: int) -> bool:
        outcome = self.callback(destination, amount)
        return outcome is None or bool(outcome)

    def __repr__(self):
        name = getattr(self.callback, "__name__", repr(self.callback))
        return f"CallbackTransfer({name})"
