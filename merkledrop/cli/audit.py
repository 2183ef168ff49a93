"""
merkledrop/cli/audit.py

merkledrop audit: claim journal verification.

Usage:
    merkledrop audit <journal>                    Human output (default)
    merkledrop audit <journal> --format json      Machine-readable JSON
    merkledrop audit <journal> --format compact   One-line pipeline output
    merkledrop audit <journal> --quiet            Exit code only
    merkledrop audit <journal> --signer <hex>     Also require this operator key

Exit codes:
    0  Journal fully valid (chain + signatures + schema)
    1  Journal has violations
    2  Error (file missing, unreadable)
"""

import json
import sys
import time
from pathlib import Path
from typing import Tuple

import click

from merkledrop.journal.journal import JournalReport, audit_journal


class _Color:
    """
    Minimal ANSI color wrapper.
    Auto-disables when not a TTY or --no-color is passed.
    """
    _on: bool = True

    @classmethod
    def configure(cls, enabled: bool) -> None:
        cls._on = enabled and sys.stdout.isatty()

    @classmethod
    def green(cls, s: str) -> str:
        return f"\033[32m{s}\033[0m" if cls._on else s

    @classmethod
    def red(cls, s: str) -> str:
        return f"\033[31m{s}\033[0m" if cls._on else s

    @classmethod
    def dim(cls, s: str) -> str:
        return f"\033[2m{s}\033[0m" if cls._on else s


def _row(label: str, value: str) -> str:
    return f"  {_Color.dim(f'{label:<16}')}  {value}"


@click.command(name="audit")
@click.argument("journal", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json", "compact"], case_sensitive=False),
    default="human",
    show_default=True,
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Exit code only (0=valid, 1=invalid, 2=error).",
)
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
@click.option(
    "--signer", "signers",
    multiple=True,
    help="Trusted operator public key (hex). Repeatable. Lines signed by any "
         "other key are reported as untrusted_signer.",
)
def audit_command(
    journal:  str,
    fmt:      str,
    quiet:    bool,
    no_color: bool,
    signers:  Tuple[str, ...],
) -> None:
    """
    Verify a claim journal: chain integrity, signatures, schema.

    JOURNAL is a journal.jsonl file or the directory that holds it.
    """
    _Color.configure(not no_color)

    path = Path(journal)
    if path.is_dir():
        path = path / "journal.jsonl"

    t_start = time.perf_counter()
    try:
        report = audit_journal(path, signers or None)
    except FileNotFoundError as e:
        _emit_error(str(e), fmt, quiet)
        sys.exit(2)
    except OSError as e:
        _emit_error(f"Unreadable journal: {e}", fmt, quiet)
        sys.exit(2)
    elapsed = time.perf_counter() - t_start

    if quiet:
        sys.exit(0 if report.valid else 1)

    if fmt == "json":
        out = report.to_dict()
        out["journal"] = str(path)
        out["elapsed_seconds"] = round(elapsed, 3)
        click.echo(json.dumps({"merkledrop_audit": out}, indent=2))
    elif fmt == "compact":
        status = "VALID" if report.valid else "INVALID"
        colored = _Color.green(f"{status:<8}") if report.valid else _Color.red(f"{status:<8}")
        click.echo(
            f"{colored}  {path.name}  {report.total_entries:,} entries  "
            f"{len(report.violations)} violation(s)  {elapsed:.3f}s"
        )
    else:
        _output_human(report, path, elapsed)

    sys.exit(0 if report.valid else 1)


def _output_human(report: JournalReport, path: Path, elapsed: float) -> None:
    bar = "─" * 60
    click.echo()
    click.echo(f"  merkledrop  ·  claim journal audit")
    click.echo(f"  {bar}")
    click.echo(_row("Journal", str(path)))
    click.echo(_row("Entries", f"{report.total_entries:,}"))
    click.echo(_row("Signatures",
        f"{report.valid_signatures:,} valid, {report.invalid_signatures:,} invalid"
    ))
    for record_type, count in sorted(report.record_type_counts.items()):
        click.echo(_row(record_type, f"{count:,}"))
    if report.head_hash:
        click.echo(_row("Head hash", report.head_hash))
    click.echo(_row("Elapsed", f"{elapsed:.3f}s"))
    click.echo()

    if report.violations:
        click.echo(f"  {bar}")
        for v in report.violations:
            click.echo(f"  {_Color.red(str(v.at_line)):>6}  {v.violation_type:<18}  {v.detail}")
        click.echo(f"  {bar}")

    if report.valid:
        click.echo(_Color.green("  VALID  ·  0 violations"))
    else:
        click.echo(_Color.red(f"  INVALID  ·  {len(report.violations)} violation(s)"))
    click.echo()


def _emit_error(msg: str, fmt: str, quiet: bool) -> None:
    """Emit error in the requested format. Never raises."""
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({"merkledrop_audit": {"error": msg, "valid": False}}))
    else:
        click.echo(_Color.red(f"\n  ERROR: {msg}\n"), err=True)
