"""
Access control for merkledrop.

One capability-check collaborator consulted by every privileged
operation. The claim ledger never decides authority itself.

Authority handoff is two-phase: the current authority nominates, the
nominee accepts. Until acceptance the old authority stays in charge.
"""

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set

import yaml

from merkledrop.core.exceptions import ConfigError, UnauthorizedError

logger = logging.getLogger(__name__)


class Action(Enum):
    """Privileged actions gated by the access controller."""
    SET_ROOT           = "set_root"
    PAUSE              = "pause"
    UNPAUSE            = "unpause"
    SWEEP              = "sweep"
    TRANSFER_AUTHORITY = "transfer_authority"
    RECONCILE          = "reconcile"


class AccessController:
    """
    Authority, delegated grants and the pause switch.

    The authority holds every Action. Grants extend individual actions
    to other callers (e.g. an operations key that may only pause).
    TRANSFER_AUTHORITY is never grantable.
    """

    def __init__(
        self,
        authority: str,
        grants:    Optional[Dict[Action, Iterable[str]]] = None,
        paused:    bool = False,
    ):
        if not isinstance(authority, str) or not authority:
            raise ValueError("authority must be a non-empty string")

        self._lock = threading.Lock()
        self._authority = authority
        self._pending_authority: Optional[str] = None
        self._paused = paused
        self._grants: Dict[Action, Set[str]] = {}

        for action, callers in (grants or {}).items():
            if action is Action.TRANSFER_AUTHORITY:
                raise ValueError("transfer_authority cannot be granted")
            self._grants[action] = set(callers)

    # ── Queries ───────────────────────────────────────────────

    @property
    def authority(self) -> str:
        return self._authority

    @property
    def pending_authority(self) -> Optional[str]:
        return self._pending_authority

    @property
    def paused(self) -> bool:
        return self._paused

    def is_accepting_claims(self) -> bool:
        return not self._paused

    def is_authority_for(self, action: Action, caller: str) -> bool:
        if caller == self._authority:
            return True
        return caller in self._grants.get(action, ())

    def require(self, action: Action, caller: str) -> None:
        """Raise UnauthorizedError unless caller may perform action."""
        if not self.is_authority_for(action, caller):
            logger.warning("unauthorized %s attempt by %s", action.value, caller)
            raise UnauthorizedError(
                f"{caller} is not authorized for {action.value}",
                {"action": action.value, "caller": caller},
            )

    # ── Mutations (callers are already permission-checked) ────

    def pause(self) -> None:
        self._paused = True

    def unpause(self) -> None:
        self._paused = False

    def nominate(self, caller: str, nominee: Optional[str]) -> None:
        """
        Phase one of the handoff. Only the current authority may nominate.
        A new nomination replaces the pending one; None cancels it.
        """
        self.require(Action.TRANSFER_AUTHORITY, caller)
        if nominee is not None and (not isinstance(nominee, str) or not nominee):
            raise ValueError("nominee must be a non-empty string or None")
        with self._lock:
            self._pending_authority = nominee

    def accept(self, caller: str) -> str:
        """
        Phase two. Only the pending nominee may accept.
        Returns the previous authority.
        """
        with self._lock:
            if self._pending_authority is None or caller != self._pending_authority:
                raise UnauthorizedError(
                    f"{caller} is not the pending authority",
                    {"caller": caller},
                )
            previous = self._authority
            self._authority = caller
            self._pending_authority = None
        logger.info("authority handed from %s to %s", previous, caller)
        return previous

    def restore(
        self,
        authority:         str,
        pending_authority: Optional[str],
        paused:            bool,
    ) -> None:
        """Overwrite state from a journal replay."""
        with self._lock:
            self._authority = authority
            self._pending_authority = pending_authority
            self._paused = paused

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessController":
        """
        Build from a policy mapping:

            authority: ops-multisig
            paused: false
            grants:
              pause: [ops-oncall]
        """
        if not isinstance(data, dict) or "authority" not in data:
            raise ConfigError("access policy requires an 'authority' key")

        grants: Dict[Action, Iterable[str]] = {}
        for name, callers in (data.get("grants") or {}).items():
            try:
                action = Action(name)
            except ValueError:
                raise ConfigError(f"unknown action in grants: {name!r}")
            if not isinstance(callers, list):
                raise ConfigError(f"grants for {name!r} must be a list")
            grants[action] = callers

        try:
            return cls(
                authority=data["authority"],
                grants=grants,
                paused=bool(data.get("paused", False)),
            )
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_yaml(cls, policy_file: Path) -> "AccessController":
        """Load an access policy from a YAML file."""
        try:
            with open(policy_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"cannot read access policy {policy_file}: {exc}") from exc
        return cls.from_dict(data or {})

    def __repr__(self) -> str:
        return (
            f"AccessController(authority={self._authority!r}, "
            f"pending={self._pending_authority!r}, paused={self._paused})"
        )
