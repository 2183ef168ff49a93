"""
merkledrop: Canonical JSON Encoding, RFC 8785 (JCS)

This is the ONLY canonicalization used for journal signing and chaining.
Merkle leaves do NOT go through here; they use fixed-width byte encoding
(see merkledrop/core/merkle.py).

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib

try:
    import jcs as _jcs
except ImportError as exc:
    raise ImportError(
        "merkledrop requires the 'jcs' package for RFC 8785 compliance.\n"
        "Install with: pip install jcs\n"
        f"Original error: {exc}"
    ) from exc


def canonicalize(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    Values must be JSON-primitive. Digests go in as hex strings,
    amounts as decimal strings (uint256 does not fit a JSON number).
    """
    return _jcs.canonicalize(obj)


def canonical_hash(obj: dict) -> str:
    """SHA-256 of the canonical form, lowercase hex (64 chars)."""
    return hashlib.sha256(canonicalize(obj)).hexdigest()
