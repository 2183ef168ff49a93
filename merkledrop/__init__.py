"""
merkledrop/__init__.py

merkledrop: Merkle-proof token claim engine.

A fixed set of (recipient, amount) entitlements is committed to a single
32-byte root. Each recipient redeems once by presenting a proof; the
engine keeps only the root and a redemption record, persisted as a
signed, hash-chained journal.
"""

__version__ = "0.3.0"

from merkledrop.access.control import AccessController, Action
from merkledrop.claims.engine import ClaimLedger
from merkledrop.core.crypto import Ed25519KeyManager
from merkledrop.core.exceptions import (
    AlreadyClaimedError,
    ClaimError,
    ClaimsPausedError,
    ErrorKind,
    InvalidProofError,
    MerkleDropError,
    TransferFailedError,
    UnauthorizedError,
)
from merkledrop.core.merkle import (
    MAX_PROOF_DEPTH,
    MerkleTree,
    MerkleVerifier,
    encode_leaf,
    hash_pair,
    verify,
)
from merkledrop.core.models import ClaimReceipt, RootCommitment, TransferInstruction
from merkledrop.journal.journal import ClaimJournal
from merkledrop.token.ledger import InMemoryTokenLedger, TokenLedger

__all__ = [
    # Core
    "ClaimLedger",
    "MerkleVerifier",
    "MerkleTree",
    "ClaimJournal",
    "AccessController",
    "Action",
    "Ed25519KeyManager",
    "InMemoryTokenLedger",
    "TokenLedger",
    # Values
    "ClaimReceipt",
    "RootCommitment",
    "TransferInstruction",
    # Errors
    "MerkleDropError",
    "ClaimError",
    "ErrorKind",
    "InvalidProofError",
    "AlreadyClaimedError",
    "ClaimsPausedError",
    "UnauthorizedError",
    "TransferFailedError",
    # Helpers
    "encode_leaf",
    "hash_pair",
    "verify",
    "MAX_PROOF_DEPTH",
]
