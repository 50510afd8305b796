"""
conftest.py - Shared pytest fixtures for vault tests

Provides common fixtures used across unit, functional and conformance tests:
- Basic vaults (empty, funded)
- Transfer primitives (recording)
"""

import pytest
from datetime import datetime

from vault import RecordingTransfer

from tests.helpers import make_vault


@pytest.fixture
def payouts():
    """Transfer primitive that records every delivery."""
    return RecordingTransfer()


@pytest.fixture
def vault(payouts):
    """Empty vault: global cap 100, per-withdrawal cap 40."""
    return make_vault(100, 40, transfer=payouts, initial_time=datetime(2025, 1, 1))


@pytest.fixture
def funded_vault(vault):
    """Vault with alice=60 and bob=20 already deposited."""
    vault.deposit("alice", 60)
    vault.deposit("bob", 20)
    return vault
