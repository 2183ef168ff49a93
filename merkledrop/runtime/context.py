"""
Runtime context for a merkledrop claim service.

Config file (YAML):

    journal_path: .merkledrop/journal
    key_path: .merkledrop/operator.pem
    operator_id: claims-service
    max_proof_depth: 32
    trusted_signers: []           # earlier operator keys, public hex
    root: "0x..."                 # required only for a fresh journal
    token:
      symbol: DROP
      treasury: treasury
      supply: 1000000
    access:                       # inline policy, or
      authority: ops-multisig
    access_policy: access.yaml    # a path relative to the config file
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from merkledrop.access.control import AccessController
from merkledrop.claims.engine import ClaimLedger
from merkledrop.core.crypto import Ed25519KeyManager
from merkledrop.core.exceptions import ConfigError
from merkledrop.core.merkle import MAX_PROOF_DEPTH, digest_from_hex
from merkledrop.journal.journal import ClaimJournal
from merkledrop.token.ledger import InMemoryTokenLedger

logger = logging.getLogger(__name__)


@dataclass
class ClaimContext:
    """Runtime context for a claim service."""

    ledger:       ClaimLedger
    journal:      ClaimJournal
    token_ledger: InMemoryTokenLedger
    access:       AccessController
    key_manager:  Ed25519KeyManager

    @classmethod
    def from_config(cls, config_file: Path) -> "ClaimContext":
        """
        Create a runtime context from a YAML config file.

        A journal that already holds entries is restored; the `root`
        key is then ignored. A fresh journal needs `root`.

        Raises:
            ConfigError: unreadable file or missing/invalid keys.
        """
        config_file = Path(config_file)
        config = _load_yaml(config_file)
        base = config_file.parent

        access = _load_access(config, base)

        token_cfg = config.get("token") or {}
        try:
            token_ledger = InMemoryTokenLedger(
                symbol=token_cfg.get("symbol", "DROP"),
                treasury=token_cfg.get("treasury", "treasury"),
                initial_supply=int(token_cfg.get("supply", 0)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid token section: {exc}") from exc

        try:
            max_depth = int(config.get("max_proof_depth", MAX_PROOF_DEPTH))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid max_proof_depth: {exc}") from exc
        if max_depth < 0:
            raise ConfigError(f"max_proof_depth must be non-negative, got {max_depth}")

        trusted = config.get("trusted_signers") or []
        if not isinstance(trusted, list):
            raise ConfigError("trusted_signers must be a list of public key hex strings")

        key_path = base / config.get("key_path", ".merkledrop/operator.pem")
        try:
            key_manager = Ed25519KeyManager.load_or_generate(key_path)
        except (ValueError, RuntimeError) as exc:
            raise ConfigError(str(exc)) from exc

        journal = ClaimJournal(
            key_manager=key_manager,
            operator_id=config.get("operator_id", "merkledrop"),
            journal_path=str(base / config.get("journal_path", ".merkledrop/journal")),
            trusted_signers=trusted,
        )

        if len(journal) > 0:
            ledger = ClaimLedger.restore(journal, token_ledger, access)
        else:
            if "root" not in config:
                raise ConfigError("config requires 'root' for a fresh journal")
            try:
                root = digest_from_hex(config["root"])
            except ValueError as exc:
                raise ConfigError(f"invalid root: {exc}") from exc
            ledger = ClaimLedger(
                root=root,
                token_ledger=token_ledger,
                access=access,
                journal=journal,
                max_depth=max_depth,
            )

        logger.info("claim context ready: %r", ledger)
        return cls(
            ledger=ledger,
            journal=journal,
            token_ledger=token_ledger,
            access=access,
            key_manager=key_manager,
        )

    def __repr__(self) -> str:
        return (
            f"ClaimContext("
            f"ledger={self.ledger!r}, "
            f"journal_entries={len(self.journal)})"
        )


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config {path} must be a mapping")
    return data


def _load_access(config: Dict[str, Any], base: Path) -> AccessController:
    inline: Optional[Dict[str, Any]] = config.get("access")
    if inline is not None:
        return AccessController.from_dict(inline)
    if "access_policy" in config:
        return AccessController.from_yaml(base / config["access_policy"])
    raise ConfigError("config requires an 'access' section or 'access_policy' path")
