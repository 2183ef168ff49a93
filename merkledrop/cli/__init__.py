"""
merkledrop/cli/__init__.py

merkledrop CLI, root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    merkledrop = "merkledrop.cli:cli"
"""

import logging

import click

from merkledrop.cli.audit import audit_command
from merkledrop.cli.tree import build_command, check_proof_command, prove_command


@click.group()
@click.version_option(package_name="merkledrop")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v, -vv).")
def cli(verbose: int) -> None:
    """
    merkledrop: Merkle-proof claim tooling.

    \b
    Commands:
      build        Build a tree from a recipient,amount CSV.
      prove        Print the proof for one recipient.
      check-proof  Verify a proof against a root.
      audit        Verify a claim journal: chain, signatures, schema.
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(build_command)
cli.add_command(prove_command)
cli.add_command(check_proof_command)
cli.add_command(audit_command)
