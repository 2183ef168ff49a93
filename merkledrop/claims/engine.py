"""
Claim ledger: at-most-once redemption of Merkle-committed entitlements.

claim() MUST, in this exact order:
  1. Acquire lock; refuse if claims are paused
  2. Snapshot the root commitment (one root for the whole claim)
  3. Derive the leaf and verify the proof against the snapshot
  4. Refuse if the recipient is already marked
  5. Mark claimed and journal the reservation
  6. Call the token ledger
  7. On failure: unmark, journal the revert, raise TransferFailedError
  8. On success: journal the settlement
  9. Release lock, notify subscribers, return the instruction

Steps 5 to 8 are one failure-atomic unit: a failed transfer leaves the
recipient unclaimed. A reservation that reached the journal but never
reached settle/revert (crash mid-claim) is restored as CLAIMED and
listed by pending_reconciliation() until an authority reconciles it.
"""

import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional

from merkledrop.access.control import AccessController, Action
from merkledrop.core.exceptions import (
    AlreadyClaimedError,
    ClaimsPausedError,
    InvalidProofError,
    JournalError,
    TransferFailedError,
)
from merkledrop.core.merkle import (
    DIGEST_SIZE,
    MAX_PROOF_DEPTH,
    digest_from_hex,
    encode_leaf,
    verify,
)
from merkledrop.core.models import (
    ClaimReceipt,
    JournalEntry,
    RecordType,
    RootCommitment,
    TransferInstruction,
)
from merkledrop.journal.journal import ClaimJournal
from merkledrop.token.ledger import TokenLedger

logger = logging.getLogger(__name__)

ClaimListener = Callable[[ClaimReceipt], None]


def _require_digest(root: bytes) -> bytes:
    if not isinstance(root, (bytes, bytearray)) or len(root) != DIGEST_SIZE:
        raise ValueError(f"root must be {DIGEST_SIZE} bytes")
    return bytes(root)


class ClaimLedger:
    """
    Owns the current root and the redemption record.

    Everything else is delegated: proof checking to the Merkle verifier,
    permission and pause checks to the AccessController, funds movement
    to the TokenLedger, durability to the optional ClaimJournal.

    Thread-safe via an internal lock (single-process only).
    """

    def __init__(
        self,
        root:         bytes,
        token_ledger: TokenLedger,
        access:       AccessController,
        journal:      Optional[ClaimJournal] = None,
        max_depth:    int = MAX_PROOF_DEPTH,
    ):
        self._lock = threading.RLock()
        self._token = token_ledger
        self._access = access
        self._journal = journal
        self._commitment = RootCommitment(
            root=_require_digest(root), epoch=0, max_depth=max_depth
        )
        self._redeemed: Dict[str, bool] = {}
        self._pending: Dict[str, int] = {}
        self._listeners: List[ClaimListener] = []

        if journal is not None and len(journal) == 0:
            self._record(
                RecordType.ROOT_COMMITTED,
                self._commitment_payload(self._commitment),
                actor=access.authority,
            )

    # ── Restore ───────────────────────────────────────────────

    @classmethod
    def restore(
        cls,
        journal:      ClaimJournal,
        token_ledger: TokenLedger,
        access:       AccessController,
    ) -> "ClaimLedger":
        """
        Rebuild a ledger from its journal.

        Raises:
            JournalError: the journal fails audit, or holds no root.
        """
        report = journal.verify_chain()
        if not report.valid:
            raise JournalError(
                "Refusing to restore from a journal with violations",
                {"violations": len(report.violations)},
            )

        entries = journal.entries()
        if not entries or entries[0].record_type != RecordType.ROOT_COMMITTED:
            raise JournalError("Journal does not begin with a root commitment")

        first = entries[0].payload
        ledger = cls(
            root=digest_from_hex(first["root"]),
            token_ledger=token_ledger,
            access=access,
            journal=journal,
            max_depth=first["max_depth"],
        )
        ledger._replay(entries)
        logger.info(
            "restored claim ledger: epoch=%d claimed=%d pending=%d",
            ledger._commitment.epoch, len(ledger._redeemed), len(ledger._pending),
        )
        return ledger

    def _replay(self, entries: Iterable[JournalEntry]) -> None:
        authority = self._access.authority
        pending_authority = self._access.pending_authority
        paused = self._access.paused

        for entry in entries:
            p = entry.payload
            kind = entry.record_type
            if kind == RecordType.ROOT_COMMITTED:
                self._commitment = RootCommitment(
                    root=digest_from_hex(p["root"]),
                    epoch=p["epoch"],
                    max_depth=p["max_depth"],
                )
            elif kind == RecordType.CLAIM_RESERVED:
                self._redeemed[p["recipient"]] = True
                self._pending[p["recipient"]] = int(p["amount"])
            elif kind == RecordType.CLAIM_SETTLED:
                self._pending.pop(p["recipient"], None)
            elif kind == RecordType.CLAIM_REVERTED:
                self._redeemed.pop(p["recipient"], None)
                self._pending.pop(p["recipient"], None)
            elif kind == RecordType.PAUSED:
                paused = True
            elif kind == RecordType.UNPAUSED:
                paused = False
            elif kind == RecordType.AUTHORITY_NOMINATED:
                pending_authority = p["nominee"]
            elif kind == RecordType.AUTHORITY_ACCEPTED:
                authority = p["authority"]
                pending_authority = None

        self._access.restore(authority, pending_authority, paused)

    # ── Queries ───────────────────────────────────────────────

    @property
    def current_root(self) -> bytes:
        return self._commitment.root

    @property
    def root_commitment(self) -> RootCommitment:
        return self._commitment

    @property
    def access(self) -> AccessController:
        return self._access

    @property
    def journal(self) -> Optional[ClaimJournal]:
        return self._journal

    def is_claimed(self, recipient: str) -> bool:
        return self._redeemed.get(recipient, False)

    def claimed_count(self) -> int:
        return len(self._redeemed)

    def pending_reconciliation(self) -> Dict[str, int]:
        """Reservations with no recorded outcome, recipient -> amount."""
        with self._lock:
            return dict(self._pending)

    # ── Notifications ─────────────────────────────────────────

    def subscribe(self, listener: ClaimListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ClaimListener) -> None:
        self._listeners.remove(listener)

    def _notify(self, receipt: ClaimReceipt) -> None:
        for listener in list(self._listeners):
            try:
                listener(receipt)
            except Exception:
                # the claim is already final; a broken listener cannot undo it
                logger.exception("claim listener %r failed", listener)

    # ── Claim ─────────────────────────────────────────────────

    def claim(
        self,
        caller:     str,
        amount:     int,
        proof_path: Iterable[bytes],
    ) -> TransferInstruction:
        """
        Redeem caller's entitlement.

        Raises:
            ClaimsPausedError:   claims are paused; nothing changes.
            InvalidProofError:   proof does not reconstruct the current root.
            AlreadyClaimedError: caller already redeemed.
            TransferFailedError: token ledger refused or failed; caller stays unclaimed.
            JournalError:        the reservation could not be persisted; nothing changes.
        """
        with self._lock:
            if not self._access.is_accepting_claims():
                logger.warning("claim by %s rejected: claims paused", caller)
                raise ClaimsPausedError("Claims are paused", {"caller": caller})

            commitment = self._commitment

            try:
                leaf = encode_leaf(caller, amount)
            except ValueError as exc:
                logger.warning("claim by %s rejected: %s", caller, exc)
                raise InvalidProofError(
                    f"Entitlement cannot be encoded: {exc}", {"caller": caller}
                ) from exc

            if not verify(leaf, proof_path, commitment.root, commitment.max_depth):
                logger.warning(
                    "claim by %s rejected: invalid proof for epoch %d",
                    caller, commitment.epoch,
                )
                raise InvalidProofError(
                    "Proof does not match the current root",
                    {"caller": caller, "epoch": commitment.epoch},
                )

            if self._redeemed.get(caller):
                logger.warning("claim by %s rejected: already claimed", caller)
                raise AlreadyClaimedError(
                    "Entitlement already claimed", {"caller": caller}
                )

            payload = {
                "recipient": caller,
                "amount":    str(amount),
                "root":      commitment.root_hex,
                "epoch":     commitment.epoch,
            }

            self._redeemed[caller] = True
            try:
                self._record(RecordType.CLAIM_RESERVED, payload, actor=caller)
            except JournalError:
                del self._redeemed[caller]
                raise

            cause: Optional[BaseException] = None
            try:
                transferred = self._token.transfer(caller, amount)
            except Exception as exc:
                transferred = False
                cause = exc

            if not transferred:
                self._revert(caller, payload, cause)
                raise TransferFailedError(
                    "Token ledger rejected the transfer",
                    {"caller": caller, "amount": amount},
                ) from cause

            sequence = None
            try:
                settled = self._record(RecordType.CLAIM_SETTLED, payload, actor=caller)
                sequence = settled.sequence if settled is not None else None
            except JournalError:
                # funds moved; keep the reservation open for reconciliation
                self._pending[caller] = amount
                logger.error(
                    "claim by %s transferred but settlement not journaled", caller
                )

            receipt = ClaimReceipt(
                recipient=        caller,
                amount=           amount,
                root_epoch=       commitment.epoch,
                root_hex=         commitment.root_hex,
                journal_sequence= sequence,
            )

        logger.info(
            "claim settled: %s received %d (epoch %d)", caller, amount, commitment.epoch
        )
        self._notify(receipt)
        return TransferInstruction(recipient=caller, amount=amount)

    def _revert(
        self,
        caller:  str,
        payload: Dict,
        cause:   Optional[BaseException],
    ) -> None:
        del self._redeemed[caller]
        logger.error(
            "transfer to %s failed, reservation rolled back: %s",
            caller, cause if cause is not None else "transfer returned False",
        )
        try:
            self._record(
                RecordType.CLAIM_REVERTED,
                {**payload, "reason": repr(cause) if cause else "rejected"},
                actor=caller,
            )
        except JournalError:
            # restore will treat the reservation as claimed until reconciled
            self._pending[caller] = int(payload["amount"])
            self._redeemed[caller] = True
            logger.error("revert for %s not journaled; left pending", caller)

    # ── Administration ────────────────────────────────────────

    def rotate_root(
        self,
        caller:    str,
        new_root:  bytes,
        max_depth: Optional[int] = None,
    ) -> RootCommitment:
        """
        Replace the active root. The redemption record is untouched.

        Raises:
            UnauthorizedError: caller may not set the root.
            ValueError:        new_root is not a 32-byte digest.
        """
        self._access.require(Action.SET_ROOT, caller)
        root = _require_digest(new_root)

        with self._lock:
            current = self._commitment
            commitment = RootCommitment(
                root=root,
                epoch=current.epoch + 1,
                max_depth=current.max_depth if max_depth is None else max_depth,
            )
            self._record(
                RecordType.ROOT_COMMITTED,
                self._commitment_payload(commitment),
                actor=caller,
            )
            self._commitment = commitment

        logger.info(
            "root rotated to %s (epoch %d) by %s",
            commitment.root_hex, commitment.epoch, caller,
        )
        return commitment

    set_root = rotate_root

    def pause(self, caller: str) -> None:
        self._access.require(Action.PAUSE, caller)
        with self._lock:
            self._record(RecordType.PAUSED, {}, actor=caller)
            self._access.pause()
        logger.info("claims paused by %s", caller)

    def unpause(self, caller: str) -> None:
        self._access.require(Action.UNPAUSE, caller)
        with self._lock:
            self._record(RecordType.UNPAUSED, {}, actor=caller)
            self._access.unpause()
        logger.info("claims unpaused by %s", caller)

    def nominate_authority(self, caller: str, nominee: Optional[str]) -> None:
        with self._lock:
            previous = self._access.pending_authority
            self._access.nominate(caller, nominee)
            try:
                self._record(
                    RecordType.AUTHORITY_NOMINATED, {"nominee": nominee}, actor=caller
                )
            except JournalError:
                self._access.restore(
                    self._access.authority, previous, self._access.paused
                )
                raise

    def accept_authority(self, caller: str) -> None:
        with self._lock:
            previous = self._access.accept(caller)
            try:
                self._record(
                    RecordType.AUTHORITY_ACCEPTED,
                    {"authority": caller, "previous": previous},
                    actor=caller,
                )
            except JournalError:
                self._access.restore(previous, caller, self._access.paused)
                raise

    def reconcile(self, caller: str, recipient: str, transferred: bool) -> None:
        """
        Close a dangling reservation after checking the token ledger
        out of band. transferred=False re-opens the entitlement.

        Raises:
            UnauthorizedError: caller may not reconcile.
            KeyError:          no pending reservation for recipient.
        """
        self._access.require(Action.RECONCILE, caller)
        with self._lock:
            amount = self._pending[recipient]
            payload = {
                "recipient": recipient,
                "amount":    str(amount),
                "root":      self._commitment.root_hex,
                "epoch":     self._commitment.epoch,
                "reconciled_by": caller,
            }
            if transferred:
                self._record(RecordType.CLAIM_SETTLED, payload, actor=caller)
            else:
                self._record(RecordType.CLAIM_REVERTED, payload, actor=caller)
                self._redeemed.pop(recipient, None)
            del self._pending[recipient]
        logger.info(
            "reservation for %s reconciled by %s (transferred=%s)",
            recipient, caller, transferred,
        )

    def sweep_foreign_asset(
        self,
        caller:       str,
        asset_ledger: TokenLedger,
        to:           str,
        amount:       int,
    ) -> None:
        """
        Move an asset that was sent here by mistake.

        Raises:
            UnauthorizedError:   caller may not sweep.
            ValueError:          asset_ledger is the claim token itself.
            TransferFailedError: the asset ledger refused.
        """
        self._access.require(Action.SWEEP, caller)
        if asset_ledger is self._token:
            raise ValueError("cannot sweep the claim token")

        try:
            ok = asset_ledger.transfer(to, amount)
        except Exception as exc:
            raise TransferFailedError(
                "Sweep transfer failed", {"to": to, "amount": amount}
            ) from exc
        if not ok:
            raise TransferFailedError(
                "Sweep transfer rejected", {"to": to, "amount": amount}
            )

        with self._lock:
            self._record(
                RecordType.ASSET_SWEPT,
                {
                    "asset":  getattr(asset_ledger, "symbol", type(asset_ledger).__name__),
                    "to":     to,
                    "amount": str(amount),
                },
                actor=caller,
            )
        logger.info("swept %d to %s by %s", amount, to, caller)

    # ── Internal ──────────────────────────────────────────────

    @staticmethod
    def _commitment_payload(commitment: RootCommitment) -> Dict:
        return {
            "root":      commitment.root_hex,
            "epoch":     commitment.epoch,
            "max_depth": commitment.max_depth,
        }

    def _record(self, record_type: str, payload: Dict, actor: str) -> Optional[JournalEntry]:
        if self._journal is None:
            return None
        return self._journal.append(record_type, payload, actor=actor)

    def __repr__(self) -> str:
        return (
            f"ClaimLedger(root={self._commitment.root_hex[:18]}..., "
            f"epoch={self._commitment.epoch}, claimed={len(self._redeemed)})"
        )
