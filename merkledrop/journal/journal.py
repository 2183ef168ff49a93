"""
merkledrop/journal/journal.py

Claim Journal: durable state for the claim ledger.

append() MUST, in this exact order:
  1. Acquire lock
  2. JournalEntry.create(record_type, actor, signer_public_key,
                         sequence, payload, prev=last_entry)
  3. entry.sign(key_manager)
  4. Assert chain invariants (causal_hash, sequence)
  5. Append to JSONL file and fsync
  6. Advance internal state, only after confirmed write
  7. Return the signed entry

A raised JournalError means nothing was recorded.
"""

import json
import logging
import os
import threading
import warnings
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from merkledrop.core.canonical import canonical_hash
from merkledrop.core.crypto import Ed25519KeyManager
from merkledrop.core.exceptions import JournalError
from merkledrop.core.models import GENESIS_HASH, JOURNAL_VERSION, JournalEntry

logger = logging.getLogger(__name__)

JOURNAL_FILENAME = "journal.jsonl"


# ─────────────────────────────────────────────────────────────
# Audit report
# ─────────────────────────────────────────────────────────────

@dataclass
class JournalViolation:
    """A single detected violation in the journal."""
    at_line:        int
    record_id:      Optional[str]
    # parse | schema | chain_break | sequence_gap | invalid_signature | untrusted_signer
    violation_type: str
    detail:         str


@dataclass
class JournalReport:
    total_entries:      int = 0
    valid_signatures:   int = 0
    invalid_signatures: int = 0
    violations:         List[JournalViolation] = field(default_factory=list)
    record_type_counts: Dict[str, int] = field(default_factory=dict)
    signers:            List[str] = field(default_factory=list)
    first_timestamp:    Optional[str] = None
    last_timestamp:     Optional[str] = None
    head_hash:          Optional[str] = None

    @property
    def valid(self) -> bool:
        return not self.violations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "journal_version":    JOURNAL_VERSION,
            "valid":              self.valid,
            "total_entries":      self.total_entries,
            "valid_signatures":   self.valid_signatures,
            "invalid_signatures": self.invalid_signatures,
            "record_type_counts": self.record_type_counts,
            "signers":            self.signers,
            "first_timestamp":    self.first_timestamp,
            "last_timestamp":     self.last_timestamp,
            "head_hash":          self.head_hash,
            "violations": [
                {
                    "at_line":        v.at_line,
                    "record_id":      v.record_id,
                    "violation_type": v.violation_type,
                    "detail":         v.detail,
                }
                for v in self.violations
            ],
        }


def audit_journal(
    path:            Path,
    trusted_signers: Optional[Iterable[str]] = None,
) -> JournalReport:
    """
    Verify a journal file: parse, schema, chain, sequence, signatures.

    A valid signature only proves that *someone* signed the line. Pass
    trusted_signers (public key hex) to also require that the signer is
    an operator key; any other signer is an untrusted_signer violation.
    Without it the audit is structural only.

    Raises FileNotFoundError if the file does not exist. Every other
    problem is reported as a violation, not raised.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Journal not found: {path}")

    trusted = None if trusted_signers is None else set(trusted_signers)
    report = JournalReport()
    counts: Counter = Counter()
    signers: List[str] = []
    prev: Optional[JournalEntry] = None
    expected_sequence = 0

    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue

            try:
                entry = JournalEntry.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError) as exc:
                report.violations.append(JournalViolation(
                    line_no, None, "parse", f"unreadable entry: {exc}",
                ))
                continue

            report.total_entries += 1
            counts[entry.record_type] += 1
            if entry.signer_public_key not in signers:
                signers.append(entry.signer_public_key)
            if trusted is not None and entry.signer_public_key not in trusted:
                report.violations.append(JournalViolation(
                    line_no, entry.record_id, "untrusted_signer",
                    f"signed by unknown key {str(entry.signer_public_key)[:16]}...",
                ))
            if report.first_timestamp is None:
                report.first_timestamp = entry.timestamp
            report.last_timestamp = entry.timestamp

            schema = entry.validate_schema()
            if not schema:
                report.violations.append(JournalViolation(
                    line_no, entry.record_id, "schema", "; ".join(schema.errors),
                ))

            if not entry.verify_sequence(expected_sequence):
                report.violations.append(JournalViolation(
                    line_no, entry.record_id, "sequence_gap",
                    f"expected sequence {expected_sequence}, got {entry.sequence}",
                ))

            if not entry.verify_chain(prev):
                report.violations.append(JournalViolation(
                    line_no, entry.record_id, "chain_break",
                    f"causal_hash ...{entry.causal_hash[-12:]} does not match "
                    f"predecessor ...{entry.expected_causal_hash_from(prev)[-12:]}",
                ))

            try:
                signature_ok = entry.verify_signature()
            except Exception:
                signature_ok = False
            if signature_ok:
                report.valid_signatures += 1
            else:
                report.invalid_signatures += 1
                report.violations.append(JournalViolation(
                    line_no, entry.record_id, "invalid_signature",
                    "signature does not verify over canonical bytes",
                ))

            prev = entry
            # resync after a gap so one missing line is reported once
            if isinstance(entry.sequence, int):
                expected_sequence = entry.sequence + 1
            else:
                expected_sequence += 1

    report.record_type_counts = dict(counts)
    report.signers = signers
    if prev is not None:
        try:
            report.head_hash = canonical_hash(prev.to_chain_dict())
        except Exception:
            report.head_hash = None
    return report


# ─────────────────────────────────────────────────────────────
# ClaimJournal
# ─────────────────────────────────────────────────────────────

class ClaimJournal:
    """
    Append-only, signed, hash-chained JSONL journal.

    Thread-safe via internal lock (single-process only).
    State survives process restart by reloading the file on __init__.
    """

    def __init__(
        self,
        key_manager:  Ed25519KeyManager,
        operator_id:  str = "merkledrop",
        journal_path: str = ".merkledrop/journal",
        trusted_signers: Optional[Iterable[str]] = None,
    ) -> None:
        self.key_manager = key_manager
        self.operator_id = operator_id
        # previous operator keys whose lines are still accepted on restore
        self.trusted_signers: Set[str] = {key_manager.public_key_hex}
        self.trusted_signers.update(trusted_signers or ())

        self._lock:    threading.Lock     = threading.Lock()
        self._entries: List[JournalEntry] = []

        self._journal_dir  = Path(journal_path)
        self._journal_dir.mkdir(parents=True, exist_ok=True)
        self._journal_file = self._journal_dir / JOURNAL_FILENAME

        self._restore_state()

    # ── Public API ────────────────────────────────────────────

    @property
    def path(self) -> Path:
        return self._journal_file

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[JournalEntry]:
        return list(self._entries)

    def append(
        self,
        record_type: str,
        payload:     Dict[str, Any],
        actor:       Optional[str] = None,
    ) -> JournalEntry:
        """
        Append one signed entry. Raises JournalError on invariant
        violation or write failure; state does not advance in that case.
        """
        with self._lock:
            prev = self._entries[-1] if self._entries else None
            entry = JournalEntry.create(
                record_type=       record_type,
                actor=             actor or self.operator_id,
                signer_public_key= self.key_manager.public_key_hex,
                sequence=          len(self._entries),
                payload=           payload,
                prev=              prev,
            ).sign(self.key_manager)

            if not entry.verify_chain(prev):
                raise JournalError(
                    "Chain invariant violated",
                    {"sequence": entry.sequence},
                )

            self._write(entry)
            self._entries.append(entry)
            logger.debug(
                "journal append seq=%d type=%s", entry.sequence, record_type
            )
            return entry

    def verify_chain(self) -> JournalReport:
        """
        Full audit of the on-disk file from genesis. Every line must be
        signed by this operator key or one of the extra trusted keys.
        """
        if not self._journal_file.exists():
            return JournalReport(head_hash=GENESIS_HASH)
        return audit_journal(self._journal_file, self.trusted_signers)

    # ── Internal ──────────────────────────────────────────────

    def _write(self, entry: JournalEntry) -> None:
        """
        Append one line durably. On failure the file is cut back to its
        previous length, so a half-written or unsynced line can never
        share a sequence number with the next append.
        """
        line = (json.dumps(entry.to_dict()) + "\n").encode("utf-8")
        try:
            # unbuffered: nothing is left to flush on close after a failure
            f = open(self._journal_file, "ab", buffering=0)
        except OSError as exc:
            raise JournalError(f"Journal write failed: {exc}") from exc

        with f:
            start = f.seek(0, os.SEEK_END)
            try:
                remaining = memoryview(line)
                while remaining:
                    remaining = remaining[f.write(remaining):]
                os.fsync(f.fileno())
            except OSError as exc:
                try:
                    f.truncate(start)
                except OSError:
                    logger.error(
                        "journal %s may hold a partial line past byte %d",
                        self._journal_file, start,
                    )
                raise JournalError(f"Journal write failed: {exc}") from exc

    def _restore_state(self) -> None:
        """
        Reload entries from disk. Stops at the first unreadable line and
        issues a RuntimeWarning; run verify_chain() before trusting state.
        """
        if not self._journal_file.exists():
            return

        with open(self._journal_file, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    self._entries.append(JournalEntry.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, TypeError) as exc:
                    warnings.warn(
                        f"ClaimJournal: unreadable entry at line {line_no} of "
                        f"{self._journal_file}: {exc}. "
                        "Call verify_chain() before appending.",
                        RuntimeWarning,
                        stacklevel=3,
                    )
                    break
