"""
Shared pytest fixtures for the keychain-core test suite.
"""

import pytest

from keychain_core.derivation import KdfParams
from keychain_core.keypair import Keypair
from keychain_core.wallet import Wallet


@pytest.fixture
def kdf_params():
    """Cheap scrypt cost so the suite stays fast."""
    return KdfParams(n=16, r=8, p=1)


@pytest.fixture
def wallet():
    """Fresh wallet."""
    return Wallet.generate("user@example.com")


@pytest.fixture
def recovery_keypair():
    """Fresh recovery keypair."""
    return Keypair.random()


@pytest.fixture
def fixed_keypair():
    """Deterministic keypair (all-0x01 raw seed)."""
    return Keypair.from_raw_seed(b"\x01" * 32)
