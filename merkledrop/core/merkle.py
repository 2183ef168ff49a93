"""
merkledrop/core/merkle.py

Merkle commitment rules: leaf encoding, pair hashing, proof verification.

═══════════════════════════════════════════════════════════════════
COMMITMENT CONTRACTS: changing any of these changes every root.
═══════════════════════════════════════════════════════════════════

CONTRACT 1: Leaf
    leaf = SHA-256(0x00 || SHA-256(utf8(recipient)) || uint256_be(amount))
    Both fields are exactly 32 bytes. No variable-length concatenation.

CONTRACT 2: Interior node
    node = SHA-256(0x01 || min(a, b) || max(a, b))
    Children are ordered by bytewise value, not by tree position,
    so a proof carries no direction bits.

CONTRACT 3: Domain separation
    0x00 prefixes leaves, 0x01 prefixes nodes. A 64-byte interior
    preimage can never be replayed as a leaf.

CONTRACT 4: Odd levels
    The builder carries an unpaired trailing node up unchanged.
    Its proof simply has no sibling for that level.

verify() is total: malformed input returns False, it never raises.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────

DIGEST_SIZE     = 32
LEAF_PREFIX     = b"\x00"
NODE_PREFIX     = b"\x01"
MAX_PROOF_DEPTH = 64
UINT256_MAX     = 2 ** 256 - 1


# ─────────────────────────────────────────────────────────────
# Encoding
# ─────────────────────────────────────────────────────────────

def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _as_digest(value: Any) -> Optional[bytes]:
    """Return value as 32 raw bytes, or None if it is not a digest."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if len(raw) == DIGEST_SIZE:
            return raw
    return None


def encode_amount(amount: int) -> bytes:
    """uint256 big-endian. Raises ValueError outside [0, 2**256)."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount).__name__}")
    if amount < 0 or amount > UINT256_MAX:
        raise ValueError(f"amount out of uint256 range: {amount}")
    return amount.to_bytes(DIGEST_SIZE, byteorder="big")


def encode_recipient(recipient: str) -> bytes:
    """Fixed-width recipient field: SHA-256 of the UTF-8 identity."""
    if not isinstance(recipient, str) or not recipient:
        raise ValueError("recipient must be a non-empty string")
    return _sha256(recipient.encode("utf-8"))


def encode_leaf(recipient: str, amount: int) -> bytes:
    """
    Derive the 32-byte leaf for one entitlement (CONTRACT 1).

    Raises:
        ValueError: empty/non-string recipient, or amount outside uint256.
    """
    return _sha256(LEAF_PREFIX + encode_recipient(recipient) + encode_amount(amount))


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Interior node over two children, canonically ordered (CONTRACT 2)."""
    if b < a:
        a, b = b, a
    return _sha256(NODE_PREFIX + a + b)


def digest_to_hex(digest: bytes) -> str:
    return "0x" + bytes(digest).hex()


def digest_from_hex(value: str) -> bytes:
    """
    Parse a 32-byte digest from hex, with or without 0x prefix.
    Raises ValueError on bad hex or wrong width.
    """
    if not isinstance(value, str):
        raise ValueError(f"digest must be a hex string, got {type(value).__name__}")
    text = value[2:] if value.lower().startswith("0x") else value
    raw = bytes.fromhex(text)
    if len(raw) != DIGEST_SIZE:
        raise ValueError(
            f"digest must be {DIGEST_SIZE} bytes, got {len(raw)}"
        )
    return raw


# ─────────────────────────────────────────────────────────────
# Verification
# ─────────────────────────────────────────────────────────────

def verify(
    leaf:       bytes,
    proof_path: Iterable[bytes],
    root:       bytes,
    max_depth:  int = MAX_PROOF_DEPTH,
) -> bool:
    """
    Decide whether leaf is a member of the tree committed to by root.

    Folds hash_pair() over the proof bottom-up and compares the result
    to root in constant time.

    Returns False, never raises, when:
        - leaf, root or any sibling is not exactly 32 bytes
        - proof_path is not iterable, or raises while being iterated
        - the proof is longer than max_depth

    An empty proof verifies only when leaf == root (single-entry tree).
    """
    computed = _as_digest(leaf)
    expected = _as_digest(root)
    if computed is None or expected is None:
        return False

    try:
        siblings = list(proof_path)
    except Exception:
        # caller-supplied iterables may fail in arbitrary ways
        return False

    if len(siblings) > max_depth:
        logger.debug(
            "proof length %d exceeds max depth %d", len(siblings), max_depth
        )
        return False

    for element in siblings:
        sibling = _as_digest(element)
        if sibling is None:
            return False
        computed = hash_pair(computed, sibling)

    return hmac.compare_digest(computed, expected)


class MerkleVerifier:
    """
    Stateless verifier. Owns nothing; every call is a pure function.

    Example:
        >>> tree = MerkleTree.from_entitlements([("alice", 10), ("bob", 20)])
        >>> MerkleVerifier.verify_entitlement("bob", 20, tree.proof("bob"), tree.root)
        True
    """

    @staticmethod
    def verify(
        leaf:       bytes,
        proof_path: Iterable[bytes],
        root:       bytes,
        max_depth:  int = MAX_PROOF_DEPTH,
    ) -> bool:
        return verify(leaf, proof_path, root, max_depth)

    @staticmethod
    def verify_entitlement(
        recipient:  str,
        amount:     int,
        proof_path: Iterable[bytes],
        root:       bytes,
        max_depth:  int = MAX_PROOF_DEPTH,
    ) -> bool:
        """Encode (recipient, amount) and verify. False on unencodable input."""
        try:
            leaf = encode_leaf(recipient, amount)
        except ValueError:
            return False
        return verify(leaf, proof_path, root, max_depth)


# ─────────────────────────────────────────────────────────────
# Tree builder (tooling, not part of the verification core)
# ─────────────────────────────────────────────────────────────

@dataclass
class MerkleTree:
    """
    Tree over a list of entitlements, built with the commitment contracts
    above. Leaves are sorted by digest so the root does not depend on
    input order.
    """

    levels:       List[List[bytes]]
    entitlements: Dict[str, int]
    _index:       Dict[str, int] = field(default_factory=dict, repr=False)

    @classmethod
    def from_entitlements(
        cls, pairs: Iterable[Tuple[str, int]]
    ) -> "MerkleTree":
        """
        Raises:
            ValueError: empty input, duplicate recipient, or unencodable pair.
        """
        entitlements: Dict[str, int] = {}
        for recipient, amount in pairs:
            if recipient in entitlements:
                raise ValueError(f"duplicate recipient: {recipient!r}")
            entitlements[recipient] = amount

        if not entitlements:
            raise ValueError("cannot build a tree with no entitlements")

        leaf_by_recipient = {
            r: encode_leaf(r, a) for r, a in entitlements.items()
        }
        ordered = sorted(leaf_by_recipient.items(), key=lambda kv: kv[1])
        leaves  = [leaf for _, leaf in ordered]
        index   = {recipient: i for i, (recipient, _) in enumerate(ordered)}

        levels = [leaves]
        current = leaves
        while len(current) > 1:
            nxt = []
            for i in range(0, len(current), 2):
                if i + 1 < len(current):
                    nxt.append(hash_pair(current[i], current[i + 1]))
                else:
                    nxt.append(current[i])
            levels.append(nxt)
            current = nxt

        return cls(levels=levels, entitlements=entitlements, _index=index)

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    @property
    def depth(self) -> int:
        return len(self.levels) - 1

    def leaf(self, recipient: str) -> bytes:
        return self.levels[0][self._index[recipient]]

    def proof(self, recipient: str) -> List[bytes]:
        """
        Sibling digests bottom-up for recipient.
        Raises KeyError if recipient is not in the tree.
        """
        position = self._index[recipient]
        proof: List[bytes] = []
        for level in self.levels[:-1]:
            sibling = position ^ 1
            if sibling < len(level):
                proof.append(level[sibling])
            position //= 2
        return proof

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready export: root, depth and one proof per recipient."""
        return {
            "root":       digest_to_hex(self.root),
            "depth":      self.depth,
            "leaf_count": len(self.levels[0]),
            "claims": {
                recipient: {
                    "amount": str(amount),
                    "leaf":   digest_to_hex(self.leaf(recipient)),
                    "proof":  [digest_to_hex(p) for p in self.proof(recipient)],
                }
                for recipient, amount in sorted(self.entitlements.items())
            },
        }


def proof_from_hex(values: Sequence[str]) -> List[bytes]:
    """Parse a list of hex siblings. Raises ValueError on any bad entry."""
    return [digest_from_hex(v) for v in values]
