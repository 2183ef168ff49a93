"""
merkledrop Claim Ledger

Critical Invariants:
- A recipient is paid at most once, ever (root rotation does not reset)
- The redemption flag is set before the transfer and cleared if it fails
- Notifications fire only after the claim is final
"""

from merkledrop.claims.engine import ClaimLedger

__all__ = ["ClaimLedger"]
