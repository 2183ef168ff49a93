"""
merkledrop Exception Hierarchy

All exceptions inherit from MerkleDropError for easy catching.
Claim failures additionally carry an ErrorKind so callers can branch
on the failure class without isinstance chains.
"""

from enum import Enum


class ErrorKind(Enum):
    """Typed failure classes reported back from a claim or admin call."""
    INVALID_PROOF   = "invalid_proof"
    ALREADY_CLAIMED = "already_claimed"
    CLAIMS_PAUSED   = "claims_paused"
    UNAUTHORIZED    = "unauthorized"
    TRANSFER_FAILED = "transfer_failed"


class MerkleDropError(Exception):
    """Base exception for all merkledrop errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ClaimError(MerkleDropError):
    """Base for every failure reported by the claim ledger"""

    kind: ErrorKind = None


class InvalidProofError(ClaimError):
    """Raised when the proof path does not reconstruct the current root"""

    kind = ErrorKind.INVALID_PROOF


class AlreadyClaimedError(ClaimError):
    """Raised when the recipient's entitlement was already redeemed"""

    kind = ErrorKind.ALREADY_CLAIMED


class ClaimsPausedError(ClaimError):
    """Raised when claims are not being accepted"""

    kind = ErrorKind.CLAIMS_PAUSED


class UnauthorizedError(ClaimError):
    """Raised when the caller lacks authority for an administrative action"""

    kind = ErrorKind.UNAUTHORIZED


class TransferFailedError(ClaimError):
    """Raised when the token ledger rejects or fails a transfer"""

    kind = ErrorKind.TRANSFER_FAILED


class JournalError(MerkleDropError):
    """Raised when journal operations fail"""
    pass


class ConfigError(MerkleDropError):
    """Raised when runtime configuration is missing or malformed"""
    pass
