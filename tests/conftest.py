"""
Shared fixtures for the merkledrop test suite.

The scenario tree is the four-entitlement drop used throughout:
    A: 10   B: 20   C: 30   D: 40
"""

import pytest

from merkledrop import (
    AccessController,
    ClaimJournal,
    ClaimLedger,
    Ed25519KeyManager,
    InMemoryTokenLedger,
    MerkleTree,
)

SCENARIO = [("A", 10), ("B", 20), ("C", 30), ("D", 40)]
AUTHORITY = "admin"


@pytest.fixture
def tree():
    return MerkleTree.from_entitlements(SCENARIO)


@pytest.fixture
def token():
    return InMemoryTokenLedger(symbol="DROP", treasury="treasury", initial_supply=1_000)


@pytest.fixture
def access():
    return AccessController(authority=AUTHORITY)


@pytest.fixture
def ledger(tree, token, access):
    """Claim ledger with no journal."""
    return ClaimLedger(root=tree.root, token_ledger=token, access=access)


@pytest.fixture
def key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def journal(tmp_path, key):
    return ClaimJournal(
        key_manager=key,
        operator_id="test-operator",
        journal_path=str(tmp_path / "journal"),
    )


@pytest.fixture
def journaled_ledger(tree, token, access, journal):
    return ClaimLedger(root=tree.root, token_ledger=token, access=access, journal=journal)
