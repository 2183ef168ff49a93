"""
merkledrop/core/crypto.py

Operator keys for the claim journal.

A claim service runs with one Ed25519 key on disk. It signs every journal
line it writes, and on restart the journal is only trusted when each line
carries a valid signature from that same key. A journal re-signed under
any other key restores as untrusted.

Wire form of a signature: base64url, '=' padding stripped.
"""

import base64
import binascii
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)

SIGNATURE_SIZE = 64
PUBLIC_KEY_HEX_LENGTH = 64


def _b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def verify_signature(data: bytes, signature: str, public_key_hex: str) -> bool:
    """
    Check an operator signature using only the signer's public key.

    False for a wrong key, a mangled signature or a malformed key string;
    the journal audit counts those as violations instead of crashing.
    """
    if not isinstance(public_key_hex, str) or len(public_key_hex) != PUBLIC_KEY_HEX_LENGTH:
        return False
    if not isinstance(signature, str) or not signature:
        return False
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        raw = _b64url_decode(signature)
    except (ValueError, binascii.Error):
        return False
    if len(raw) != SIGNATURE_SIZE:
        return False
    try:
        public_key.verify(raw, data)
    except InvalidSignature:
        return False
    return True


class Ed25519KeyManager:
    """The operator's signing key and its 64-char hex public half."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self.public_key_hex: str = (
            private_key.public_key()
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
            .hex()
        )

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Raises:
            FileNotFoundError: no key at path.
            ValueError:        the file is not an unencrypted Ed25519 PEM key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Operator key not found: {path}")
        try:
            loaded = load_pem_private_key(path.read_bytes(), password=None)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Unreadable operator key {path}: {exc}") from exc
        if not isinstance(loaded, Ed25519PrivateKey):
            raise ValueError(f"Operator key {path} is not Ed25519")
        return cls(loaded)

    @classmethod
    def load_or_generate(cls, path: Path) -> "Ed25519KeyManager":
        """First start creates the operator key; later starts reuse it."""
        path = Path(path)
        if path.exists():
            return cls.from_file(path)
        key = cls.generate()
        key.save(path)
        return key

    def sign(self, data: bytes) -> str:
        raw = self._private_key.sign(data)
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    def save(self, path: Path) -> None:
        """Write the key as unencrypted PKCS8 PEM. Raises RuntimeError on I/O failure."""
        path = Path(path)
        pem = self._private_key.private_bytes(
            encoding=             Encoding.PEM,
            format=               PrivateFormat.PKCS8,
            encryption_algorithm= NoEncryption(),
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(pem)
        except OSError as exc:
            raise RuntimeError(f"Cannot save operator key to {path}: {exc}") from exc

    def __repr__(self) -> str:
        return f"Ed25519KeyManager(public_key_hex={self.public_key_hex[:16]}...)"
