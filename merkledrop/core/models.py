"""
merkledrop/core/models.py

Data model: claim value types and the journal entry.

═══════════════════════════════════════════════════════════════════
JOURNAL CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1: Signing
    bytes_signed = canonicalize(entry.to_signing_dict())
    algorithm    = Ed25519
    encoding     = base64url, no padding

CONTRACT 2: Chain
    causal_hash  = SHA-256(canonicalize(prev.to_chain_dict()))
    first_entry  = GENESIS_HASH ("0" * 64)

CONTRACT 3: Timestamp
    format = YYYY-MM-DDTHH:MM:SS.mmmZ, from journal_timestamp() only

CONTRACT 4: Vocabulary
    record_type must be a RecordType constant.
    enforced at create(), reported by validate_schema()

Payload values are JSON primitives: digests as 0x-hex, amounts as
decimal strings.
"""

import hashlib
import re
import secrets
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from merkledrop.core.canonical import canonicalize
from merkledrop.core.crypto import PUBLIC_KEY_HEX_LENGTH, verify_signature
from merkledrop.core.merkle import DIGEST_SIZE, digest_to_hex
from merkledrop.core.time import journal_timestamp


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────

JOURNAL_VERSION = "1.0"
GENESIS_HASH    = "0" * 64

_NONCE_HEX_LENGTH = 32

_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"
)


# ─────────────────────────────────────────────────────────────
# Claim value types
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RootCommitment:
    """The single active root, its rotation epoch and proof depth bound."""
    root:      bytes
    epoch:     int
    max_depth: int

    def __post_init__(self) -> None:
        if not isinstance(self.root, bytes) or len(self.root) != DIGEST_SIZE:
            raise ValueError(f"root must be {DIGEST_SIZE} bytes")
        if self.epoch < 0:
            raise ValueError(f"epoch must be non-negative, got {self.epoch}")
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be non-negative, got {self.max_depth}")

    @property
    def root_hex(self) -> str:
        return digest_to_hex(self.root)


@dataclass(frozen=True)
class TransferInstruction:
    """What the token ledger was told to move on a successful claim."""
    recipient: str
    amount:    int


@dataclass(frozen=True)
class ClaimReceipt:
    """Notification payload, delivered only after a claim is final."""
    recipient:        str
    amount:           int
    root_epoch:       int
    root_hex:         str
    journal_sequence: Optional[int] = None


# ─────────────────────────────────────────────────────────────
# Record Type Vocabulary
# ─────────────────────────────────────────────────────────────

class RecordType:
    """Journal record_type string constants."""
    ROOT_COMMITTED      = "root_committed"
    CLAIM_RESERVED      = "claim_reserved"
    CLAIM_SETTLED       = "claim_settled"
    CLAIM_REVERTED      = "claim_reverted"
    PAUSED              = "paused"
    UNPAUSED            = "unpaused"
    AUTHORITY_NOMINATED = "authority_nominated"
    AUTHORITY_ACCEPTED  = "authority_accepted"
    ASSET_SWEPT         = "asset_swept"


_VALID_RECORD_TYPES: Set[str] = {
    RecordType.ROOT_COMMITTED,
    RecordType.CLAIM_RESERVED,
    RecordType.CLAIM_SETTLED,
    RecordType.CLAIM_REVERTED,
    RecordType.PAUSED,
    RecordType.UNPAUSED,
    RecordType.AUTHORITY_NOMINATED,
    RecordType.AUTHORITY_ACCEPTED,
    RecordType.ASSET_SWEPT,
}


@dataclass
class SchemaValidationResult:
    """
    Result of JournalEntry.validate_schema().

    Returned, not raised, so callers can choose hard fail vs report.
    bool(result) is True iff valid.
    """
    valid:  bool
    errors: List[str]

    def __bool__(self) -> bool:
        return self.valid


# ─────────────────────────────────────────────────────────────
# JournalEntry
# ─────────────────────────────────────────────────────────────

@dataclass
class JournalEntry:
    """One signed, hash-chained line of the claim journal."""

    journal_version:   str
    record_id:         str
    record_type:       str
    actor:             str
    signer_public_key: str
    sequence:          int
    nonce:             str
    timestamp:         str
    causal_hash:       str
    payload:           Dict[str, Any]
    signature:         Optional[str] = None

    @classmethod
    def create(
        cls,
        record_type:       str,
        actor:             str,
        signer_public_key: str,
        sequence:          int,
        payload:           Dict[str, Any],
        prev:              Optional["JournalEntry"] = None,
    ) -> "JournalEntry":
        """
        Create an unsigned entry with the correct causal_hash.
        Call .sign(key_manager) immediately after.
        """
        if record_type not in _VALID_RECORD_TYPES:
            raise ValueError(
                f"Invalid record_type '{record_type}'. "
                f"Valid: {sorted(_VALID_RECORD_TYPES)}"
            )
        if not isinstance(payload, dict):
            raise TypeError(
                f"payload must be dict, got {type(payload).__name__}"
            )
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(
                f"sequence must be non-negative int, got {sequence!r}"
            )

        return cls(
            journal_version=   JOURNAL_VERSION,
            record_id=         f"mdj-{uuid.uuid4()}",
            record_type=       record_type,
            actor=             actor,
            signer_public_key= signer_public_key,
            sequence=          sequence,
            nonce=             secrets.token_hex(_NONCE_HEX_LENGTH // 2),
            timestamp=         journal_timestamp(),
            causal_hash=       cls._compute_causal_hash(prev),
            payload=           payload,
            signature=         None,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JournalEntry":
        """
        Deserialize from a JSONL line dict.
        Trusts persisted data; callers must call validate_schema().
        Raises KeyError when a field is missing entirely.
        """
        return cls(
            journal_version=   data["journal_version"],
            record_id=         data["record_id"],
            record_type=       data["record_type"],
            actor=             data["actor"],
            signer_public_key= data["signer_public_key"],
            sequence=          data["sequence"],
            nonce=             data["nonce"],
            timestamp=         data["timestamp"],
            causal_hash=       data["causal_hash"],
            payload=           data.get("payload", {}),
            signature=         data.get("signature"),
        )

    def validate_schema(self) -> SchemaValidationResult:
        errors: List[str] = []

        if self.journal_version != JOURNAL_VERSION:
            errors.append(
                f"journal_version: expected '{JOURNAL_VERSION}', "
                f"got '{self.journal_version}'"
            )
        if self.record_type not in _VALID_RECORD_TYPES:
            errors.append(f"record_type '{self.record_type}' not in valid set")
        if not isinstance(self.record_id, str) or not self.record_id.startswith("mdj-"):
            errors.append(f"record_id must start with 'mdj-', got {self.record_id!r}")
        if not isinstance(self.actor, str) or not self.actor:
            errors.append("actor must be a non-empty string")
        if not _is_hex(self.signer_public_key, PUBLIC_KEY_HEX_LENGTH):
            errors.append(
                f"signer_public_key must be {PUBLIC_KEY_HEX_LENGTH} hex chars"
            )
        if not isinstance(self.sequence, int) or self.sequence < 0:
            errors.append(f"sequence must be non-negative int, got {self.sequence!r}")
        if not _is_hex(self.nonce, _NONCE_HEX_LENGTH):
            errors.append(f"nonce must be {_NONCE_HEX_LENGTH} hex chars")
        if not isinstance(self.timestamp, str) or not _TIMESTAMP_RE.match(self.timestamp):
            errors.append(f"timestamp {self.timestamp!r} is not YYYY-MM-DDTHH:MM:SS.mmmZ")
        if not _is_hex(self.causal_hash, 64):
            errors.append("causal_hash must be 64 hex chars")
        if not isinstance(self.payload, dict):
            errors.append(f"payload must be dict, got {type(self.payload).__name__}")

        return SchemaValidationResult(valid=len(errors) == 0, errors=errors)

    # ── Canonical surfaces ────────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        """CONTRACT 1: every field except signature."""
        return {
            "actor":             self.actor,
            "causal_hash":       self.causal_hash,
            "journal_version":   self.journal_version,
            "nonce":             self.nonce,
            "payload":           self.payload,
            "record_id":         self.record_id,
            "record_type":       self.record_type,
            "sequence":          self.sequence,
            "signer_public_key": self.signer_public_key,
            "timestamp":         self.timestamp,
        }

    def to_chain_dict(self) -> Dict[str, Any]:
        """CONTRACT 2: identical field set to the signing surface."""
        return self.to_signing_dict()

    def to_dict(self) -> Dict[str, Any]:
        """Full serialization including signature. JSONL persistence only."""
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    def canonical_bytes_for_signing(self) -> bytes:
        return canonicalize(self.to_signing_dict())

    @staticmethod
    def _compute_causal_hash(prev: Optional["JournalEntry"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return hashlib.sha256(canonicalize(prev.to_chain_dict())).hexdigest()

    def expected_causal_hash_from(self, prev: Optional["JournalEntry"]) -> str:
        return JournalEntry._compute_causal_hash(prev)

    # ── Signing / verification ────────────────────────────────

    def sign(self, key_manager) -> "JournalEntry":
        """Sign in place and return self: JournalEntry.create(...).sign(key)."""
        self.signature = key_manager.sign(self.canonical_bytes_for_signing())
        return self

    def verify_signature(self) -> bool:
        """True iff the operator named in signer_public_key signed these exact fields."""
        return verify_signature(
            self.canonical_bytes_for_signing(),
            self.signature,
            self.signer_public_key,
        )

    def verify_chain(self, prev: Optional["JournalEntry"]) -> bool:
        return self.causal_hash == self.expected_causal_hash_from(prev)

    def verify_sequence(self, expected: int) -> bool:
        return self.sequence == expected


def _is_hex(value: Any, length: int) -> bool:
    if not isinstance(value, str) or len(value) != length:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True
