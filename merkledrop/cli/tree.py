"""
merkledrop/cli/tree.py

Tree tooling commands: build, prove, check-proof.

Usage:
    merkledrop build entitlements.csv --out tree.json
    merkledrop prove tree.json alice
    merkledrop check-proof --root 0x.. --recipient alice --amount 10 -p 0x.. -p 0x..

Exit codes:
    0  success / proof valid
    1  proof invalid
    2  input error (missing file, malformed CSV or hex)
"""

import csv
import json
import sys
from pathlib import Path
from typing import List, Tuple

import click

from merkledrop.core.merkle import (
    MAX_PROOF_DEPTH,
    MerkleTree,
    MerkleVerifier,
    digest_from_hex,
    digest_to_hex,
    proof_from_hex,
)


def _fail(msg: str) -> None:
    click.echo(f"error: {msg}", err=True)
    sys.exit(2)


def load_entitlements(path: Path) -> List[Tuple[str, int]]:
    """
    Read recipient,amount rows. Header is required.
    Raises ValueError on a missing header or a non-integer amount.
    """
    rows: List[Tuple[str, int]] = []
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        fields = reader.fieldnames or []
        if "recipient" not in fields or "amount" not in fields:
            raise ValueError("CSV needs header: recipient,amount")
        for line_no, row in enumerate(reader, 2):
            recipient = (row.get("recipient") or "").strip()
            amount = (row.get("amount") or "").strip()
            if not recipient and not amount:
                continue
            if not amount.isdigit():
                raise ValueError(f"line {line_no}: amount must be a non-negative integer")
            rows.append((recipient, int(amount)))
    return rows


@click.command(name="build")
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--out", "out_path",
    type=click.Path(dir_okay=False),
    default="tree.json",
    show_default=True,
    help="Where to write root, depth and proofs.",
)
def build_command(csv_path: str, out_path: str) -> None:
    """Build a Merkle tree from CSV_PATH (header: recipient,amount)."""
    try:
        tree = MerkleTree.from_entitlements(load_entitlements(Path(csv_path)))
    except ValueError as e:
        _fail(str(e))

    Path(out_path).write_text(json.dumps(tree.to_dict(), indent=2), encoding="utf-8")
    click.echo(f"root   {digest_to_hex(tree.root)}")
    click.echo(f"depth  {tree.depth}")
    click.echo(f"leaves {len(tree.entitlements)}")
    click.echo(f"wrote  {out_path}")


@click.command(name="prove")
@click.argument("tree_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("recipient")
def prove_command(tree_path: str, recipient: str) -> None:
    """Print RECIPIENT's amount and proof from a built TREE_PATH."""
    try:
        data = json.loads(Path(tree_path).read_text(encoding="utf-8"))
        entry = data["claims"][recipient]
    except json.JSONDecodeError as e:
        _fail(f"malformed tree file: {e}")
    except KeyError:
        _fail(f"{recipient} is not in {tree_path}")

    click.echo(json.dumps({
        "root":      data["root"],
        "recipient": recipient,
        "amount":    entry["amount"],
        "proof":     entry["proof"],
    }, indent=2))


@click.command(name="check-proof")
@click.option("--root", required=True, help="32-byte root as hex.")
@click.option("--recipient", required=True)
@click.option("--amount", required=True, type=int)
@click.option("--proof", "-p", "proof", multiple=True, help="Sibling digest, repeat bottom-up.")
@click.option("--max-depth", type=int, default=MAX_PROOF_DEPTH, show_default=True)
def check_proof_command(
    root:      str,
    recipient: str,
    amount:    int,
    proof:     Tuple[str, ...],
    max_depth: int,
) -> None:
    """Verify that (RECIPIENT, AMOUNT) is committed to ROOT."""
    try:
        root_bytes = digest_from_hex(root)
        siblings = proof_from_hex(list(proof))
    except ValueError as e:
        _fail(str(e))

    if MerkleVerifier.verify_entitlement(recipient, amount, siblings, root_bytes, max_depth):
        click.echo("VALID")
        sys.exit(0)
    click.echo("INVALID")
    sys.exit(1)
