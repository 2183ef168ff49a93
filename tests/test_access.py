"""
tests/test_access.py

AccessController policy loading and the operator signing key.
"""

import pytest

from merkledrop import AccessController, Action, Ed25519KeyManager, UnauthorizedError
from merkledrop.core.crypto import verify_signature
from merkledrop.core.exceptions import ConfigError


class TestAccessController:

    def test_authority_holds_every_action(self):
        access = AccessController("admin")
        for action in Action:
            assert access.is_authority_for(action, "admin")
            assert not access.is_authority_for(action, "someone")

    def test_grant(self):
        access = AccessController("admin", grants={Action.SWEEP: ["treasurer"]})
        assert access.is_authority_for(Action.SWEEP, "treasurer")
        assert not access.is_authority_for(Action.SET_ROOT, "treasurer")
        access.require(Action.SWEEP, "treasurer")
        with pytest.raises(UnauthorizedError):
            access.require(Action.SET_ROOT, "treasurer")

    def test_transfer_authority_not_grantable(self):
        with pytest.raises(ValueError):
            AccessController("admin", grants={Action.TRANSFER_AUTHORITY: ["x"]})

    def test_empty_authority_rejected(self):
        with pytest.raises(ValueError):
            AccessController("")

    def test_nomination_can_be_replaced_and_cancelled(self):
        access = AccessController("admin")
        access.nominate("admin", "first")
        access.nominate("admin", "second")
        with pytest.raises(UnauthorizedError):
            access.accept("first")
        access.nominate("admin", None)
        with pytest.raises(UnauthorizedError):
            access.accept("second")
        assert access.authority == "admin"

    def test_accept_returns_previous(self):
        access = AccessController("admin")
        access.nominate("admin", "next")
        assert access.accept("next") == "admin"
        assert access.authority == "next"

    def test_bad_nominee(self):
        with pytest.raises(ValueError):
            AccessController("admin").nominate("admin", "")


class TestPolicyLoading:

    def test_from_yaml(self, tmp_path):
        policy = tmp_path / "access.yaml"
        policy.write_text(
            "authority: ops-multisig\n"
            "paused: true\n"
            "grants:\n"
            "  pause: [ops-oncall]\n"
            "  reconcile: [ops-oncall, auditor]\n",
            encoding="utf-8",
        )
        access = AccessController.from_yaml(policy)
        assert access.authority == "ops-multisig"
        assert access.paused
        assert access.is_authority_for(Action.PAUSE, "ops-oncall")
        assert access.is_authority_for(Action.RECONCILE, "auditor")
        assert not access.is_authority_for(Action.UNPAUSE, "ops-oncall")

    def test_missing_authority(self):
        with pytest.raises(ConfigError):
            AccessController.from_dict({"grants": {}})

    def test_unknown_action(self):
        with pytest.raises(ConfigError, match="unknown action"):
            AccessController.from_dict({"authority": "a", "grants": {"mint": ["x"]}})

    def test_grants_must_be_lists(self):
        with pytest.raises(ConfigError):
            AccessController.from_dict({"authority": "a", "grants": {"pause": "x"}})

    def test_transfer_authority_grant_is_config_error(self):
        with pytest.raises(ConfigError):
            AccessController.from_dict(
                {"authority": "a", "grants": {"transfer_authority": ["x"]}}
            )

    def test_unreadable_policy(self, tmp_path):
        with pytest.raises(ConfigError):
            AccessController.from_yaml(tmp_path / "missing.yaml")
        bad = tmp_path / "bad.yaml"
        bad.write_text("authority: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            AccessController.from_yaml(bad)


class TestOperatorKey:

    def test_sign_and_verify(self):
        key = Ed25519KeyManager.generate()
        sig = key.sign(b"payload")
        assert "=" not in sig
        assert verify_signature(b"payload", sig, key.public_key_hex)
        assert not verify_signature(b"other", sig, key.public_key_hex)

    def test_other_key_rejected(self):
        key = Ed25519KeyManager.generate()
        other = Ed25519KeyManager.generate()
        assert not verify_signature(b"payload", key.sign(b"payload"), other.public_key_hex)

    def test_verify_signature_never_raises(self):
        assert not verify_signature(b"x", "!!!", "ab" * 32)
        assert not verify_signature(b"x", "", None)
        assert not verify_signature(b"x", "AAAA", "zz" * 32)

    def test_load_or_generate_persists(self, tmp_path):
        path = tmp_path / "keys" / "operator.pem"
        first = Ed25519KeyManager.load_or_generate(path)
        second = Ed25519KeyManager.load_or_generate(path)
        assert path.exists()
        assert first.public_key_hex == second.public_key_hex

    def test_from_file_errors(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Ed25519KeyManager.from_file(tmp_path / "absent.pem")
        junk = tmp_path / "junk.pem"
        junk.write_bytes(b"not a key")
        with pytest.raises(ValueError):
            Ed25519KeyManager.from_file(junk)
