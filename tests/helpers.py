"""
helpers.py - Shared helpers for vault tests

- make_vault(): a quiet vault with the given caps
- capture_state(): everything an operation is allowed to change
"""

from typing import Any, Dict

from vault import VaultLedger


def capture_state(vault: VaultLedger) -> Dict[str, Any]:
    """Capture everything an operation is allowed to change."""
    return {
        "balances": dict(vault.balances),
        "statistics": tuple(vault.statistics()),
        "events": len(vault.event_log),
    }


def make_vault(global_cap: int = 100, per_withdrawal_cap: int = 40, **kwargs) -> VaultLedger:
    """Create a quiet vault for testing."""
    kwargs.setdefault("verbose", False)
    return VaultLedger(global_cap, per_withdrawal_cap, **kwargs)
