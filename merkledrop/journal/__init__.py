"""
merkledrop Journal: append-only signed log of root, claim and admin events.

The journal is the durable copy of the claim ledger's state.
"""

from merkledrop.journal.journal import (
    ClaimJournal,
    JournalReport,
    JournalViolation,
    audit_journal,
)

__all__ = ["ClaimJournal", "JournalReport", "JournalViolation", "audit_journal"]
