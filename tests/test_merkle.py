"""
tests/test_merkle.py

Merkle commitment rules and the verifier.

  ENCODING
    Leaves are fixed-width and domain-separated
    Amounts outside uint256 are rejected
  VERIFY
    Completeness: every built entitlement verifies
    Soundness: mutated proofs, roots and leaves never verify
    Malformed input returns False instead of raising
  BUILDER
    Root is order-independent, duplicates and empty input rejected
"""

import hashlib
import random

import pytest

from merkledrop.core.merkle import (
    DIGEST_SIZE,
    LEAF_PREFIX,
    MAX_PROOF_DEPTH,
    UINT256_MAX,
    MerkleTree,
    MerkleVerifier,
    digest_from_hex,
    digest_to_hex,
    encode_amount,
    encode_leaf,
    encode_recipient,
    hash_pair,
    verify,
)


def _random_digest(rng: random.Random) -> bytes:
    return bytes(rng.getrandbits(8) for _ in range(DIGEST_SIZE))


def _flip(digest: bytes, rng: random.Random) -> bytes:
    i = rng.randrange(len(digest))
    return digest[:i] + bytes([digest[i] ^ (1 << rng.randrange(8))]) + digest[i + 1:]


# ─────────────────────────────────────────────────────────────
# Encoding
# ─────────────────────────────────────────────────────────────

class TestEncoding:

    def test_leaf_is_32_bytes(self):
        assert len(encode_leaf("A", 10)) == DIGEST_SIZE

    def test_leaf_matches_contract(self):
        expected = hashlib.sha256(
            LEAF_PREFIX
            + hashlib.sha256(b"A").digest()
            + (10).to_bytes(32, "big")
        ).digest()
        assert encode_leaf("A", 10) == expected

    def test_adjacent_fields_cannot_collide(self):
        """Shifting bytes between recipient and amount gives a different leaf."""
        assert encode_leaf("A1", 0) != encode_leaf("A", 10)
        assert encode_leaf("A", 1) != encode_leaf("A", 256)

    def test_amount_bounds(self):
        assert encode_amount(0) == bytes(32)
        assert encode_amount(UINT256_MAX) == b"\xff" * 32
        with pytest.raises(ValueError):
            encode_amount(-1)
        with pytest.raises(ValueError):
            encode_amount(UINT256_MAX + 1)

    def test_amount_type_is_strict(self):
        with pytest.raises(ValueError):
            encode_amount(True)
        with pytest.raises(ValueError):
            encode_amount(10.0)

    def test_recipient_must_be_non_empty_string(self):
        with pytest.raises(ValueError):
            encode_recipient("")
        with pytest.raises(ValueError):
            encode_recipient(b"A")

    def test_hash_pair_is_order_independent(self):
        rng = random.Random(1)
        a, b = _random_digest(rng), _random_digest(rng)
        assert hash_pair(a, b) == hash_pair(b, a)

    def test_node_is_not_a_leaf(self):
        """A node preimage reinterpreted as a leaf hashes differently."""
        a, b = encode_leaf("A", 10), encode_leaf("B", 20)
        lo, hi = sorted([a, b])
        assert hash_pair(a, b) != hashlib.sha256(LEAF_PREFIX + lo + hi).digest()

    def test_hex_round_trip_and_width(self):
        digest = encode_leaf("A", 10)
        assert digest_from_hex(digest_to_hex(digest)) == digest
        assert digest_from_hex(digest.hex()) == digest
        with pytest.raises(ValueError):
            digest_from_hex("0x" + "ab" * 31)
        with pytest.raises(ValueError):
            digest_from_hex("0xzz")


# ─────────────────────────────────────────────────────────────
# Verification
# ─────────────────────────────────────────────────────────────

class TestCompleteness:

    @pytest.mark.parametrize("size", [1, 2, 3, 4, 5, 7, 8, 9, 16, 17, 33])
    def test_every_entitlement_verifies(self, size):
        pairs = [(f"recipient-{i}", i * 7 + 1) for i in range(size)]
        tree = MerkleTree.from_entitlements(pairs)
        for recipient, amount in pairs:
            proof = tree.proof(recipient)
            assert len(proof) <= tree.depth
            assert verify(encode_leaf(recipient, amount), proof, tree.root)

    def test_single_leaf_tree(self):
        tree = MerkleTree.from_entitlements([("solo", 5)])
        assert tree.depth == 0
        assert tree.proof("solo") == []
        assert tree.root == encode_leaf("solo", 5)
        assert verify(tree.root, [], tree.root)

    def test_scenario_proof_has_two_elements(self, tree):
        assert len(tree.proof("B")) == 2
        assert MerkleVerifier.verify_entitlement("B", 20, tree.proof("B"), tree.root)


class TestSoundness:

    SEED = 20240601
    ROUNDS = 200

    @pytest.fixture
    def big_tree(self):
        return MerkleTree.from_entitlements([(f"r{i}", i + 1) for i in range(37)])

    def test_mutated_sibling_fails(self, big_tree):
        rng = random.Random(self.SEED)
        for _ in range(self.ROUNDS):
            i = rng.randrange(37)
            leaf = encode_leaf(f"r{i}", i + 1)
            proof = big_tree.proof(f"r{i}")
            j = rng.randrange(len(proof))
            proof[j] = _flip(proof[j], rng)
            assert not verify(leaf, proof, big_tree.root)

    def test_mutated_root_fails(self, big_tree):
        rng = random.Random(self.SEED + 1)
        for _ in range(self.ROUNDS):
            i = rng.randrange(37)
            leaf = encode_leaf(f"r{i}", i + 1)
            assert not verify(leaf, big_tree.proof(f"r{i}"), _flip(big_tree.root, rng))

    def test_mutated_leaf_fails(self, big_tree):
        rng = random.Random(self.SEED + 2)
        for _ in range(self.ROUNDS):
            i = rng.randrange(37)
            leaf = _flip(encode_leaf(f"r{i}", i + 1), rng)
            assert not verify(leaf, big_tree.proof(f"r{i}"), big_tree.root)

    def test_truncated_or_extended_proof_fails(self, big_tree):
        rng = random.Random(self.SEED + 3)
        for _ in range(self.ROUNDS):
            i = rng.randrange(37)
            leaf = encode_leaf(f"r{i}", i + 1)
            proof = big_tree.proof(f"r{i}")
            assert not verify(leaf, proof[:-1], big_tree.root)
            assert not verify(leaf, proof + [_random_digest(rng)], big_tree.root)

    def test_random_proofs_fail(self, big_tree):
        rng = random.Random(self.SEED + 4)
        for _ in range(self.ROUNDS):
            proof = [_random_digest(rng) for _ in range(rng.randrange(1, 8))]
            assert not verify(encode_leaf("r0", 1), proof, big_tree.root)

    def test_other_recipients_proof_fails(self, tree):
        assert not verify(encode_leaf("B", 20), tree.proof("A"), tree.root)

    def test_empty_proof_requires_leaf_equals_root(self, tree):
        assert not verify(encode_leaf("A", 10), [], tree.root)


class TestMalformedInput:

    def test_wrong_width_sibling(self, tree):
        proof = tree.proof("B")
        proof[0] = proof[0][:31]
        assert verify(encode_leaf("B", 20), proof, tree.root) is False

    def test_non_bytes_sibling(self, tree):
        proof = [p.hex() for p in tree.proof("B")]
        assert verify(encode_leaf("B", 20), proof, tree.root) is False

    def test_non_iterable_proof(self, tree):
        assert verify(encode_leaf("B", 20), None, tree.root) is False
        assert verify(encode_leaf("B", 20), 42, tree.root) is False

    def test_proof_that_fails_mid_iteration(self, tree):
        def siblings():
            yield tree.proof("B")[0]
            raise ValueError("sibling source went away")

        assert verify(encode_leaf("B", 20), siblings(), tree.root) is False

    def test_bad_leaf_or_root(self, tree):
        proof = tree.proof("B")
        assert verify(b"short", proof, tree.root) is False
        assert verify(encode_leaf("B", 20), proof, "not-bytes") is False

    def test_proof_longer_than_max_depth(self):
        rng = random.Random(7)
        proof = [_random_digest(rng) for _ in range(MAX_PROOF_DEPTH + 1)]
        assert verify(encode_leaf("A", 1), proof, _random_digest(rng)) is False

    def test_valid_proof_rejected_beyond_configured_depth(self, tree):
        proof = tree.proof("B")
        assert verify(encode_leaf("B", 20), proof, tree.root, max_depth=1) is False
        assert verify(encode_leaf("B", 20), proof, tree.root, max_depth=2) is True

    def test_bytearray_inputs_accepted(self, tree):
        proof = [bytearray(p) for p in tree.proof("B")]
        assert verify(bytearray(encode_leaf("B", 20)), proof, bytearray(tree.root))

    def test_unencodable_entitlement_is_not_verified(self, tree):
        assert MerkleVerifier.verify_entitlement("B", -20, tree.proof("B"), tree.root) is False
        assert MerkleVerifier.verify_entitlement("", 20, tree.proof("B"), tree.root) is False


# ─────────────────────────────────────────────────────────────
# Builder
# ─────────────────────────────────────────────────────────────

class TestMerkleTree:

    def test_root_independent_of_input_order(self):
        pairs = [("A", 10), ("B", 20), ("C", 30), ("D", 40), ("E", 50)]
        shuffled = list(pairs)
        random.Random(3).shuffle(shuffled)
        assert (
            MerkleTree.from_entitlements(pairs).root
            == MerkleTree.from_entitlements(shuffled).root
        )

    def test_odd_node_is_carried_up(self):
        tree = MerkleTree.from_entitlements([("A", 1), ("B", 2), ("C", 3)])
        lengths = sorted(len(tree.proof(r)) for r in ("A", "B", "C"))
        assert lengths == [1, 2, 2]

    def test_duplicate_recipient_rejected(self):
        with pytest.raises(ValueError, match="duplicate"):
            MerkleTree.from_entitlements([("A", 1), ("A", 2)])

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            MerkleTree.from_entitlements([])

    def test_unknown_recipient_proof(self, tree):
        with pytest.raises(KeyError):
            tree.proof("Z")

    def test_export_shape(self, tree):
        data = tree.to_dict()
        assert data["root"] == digest_to_hex(tree.root)
        assert data["depth"] == 2
        assert data["leaf_count"] == 4
        assert data["claims"]["B"]["amount"] == "20"
        assert len(data["claims"]["B"]["proof"]) == 2
