"""
capsulecoin/cli/verify.py

capsulecoin verify — offline claim bundle verification
=======================================================

Recomputes every claim digest from its plaintext fields and checks that the
proof recovers to the claim's `from` address. Nothing is settled.

Usage:
    capsulecoin verify <bundle>                  Human output (default)
    capsulecoin verify <bundle> --format json    Machine-readable JSON
    capsulecoin verify <bundle> --quiet          Exit code only
    capsulecoin verify <bundle> --no-color       Disable ANSI

Exit codes:
    0  Every proof is valid
    1  At least one proof is invalid
    2  Error  (file missing, malformed JSON, malformed claim entry)
"""

import json
import sys
from pathlib import Path
from typing import List

import click

from capsulecoin.cli.output import Color, claim_row, emit_error, header, row, summary
from capsulecoin.core.crypto import verify_claim_signature
from capsulecoin.core.exceptions import CapsuleError
from capsulecoin.core.models import ClaimBundle


def check_bundle(bundle: ClaimBundle) -> List[dict]:
    """One result dict per claim, in bundle order."""
    results = []
    for claim in bundle:
        results.append({
            "from":     claim.issuer,
            "to":       claim.destination,
            "amount":   str(claim.amount),
            "validity": claim.valid_from_block,
            "nonce":    claim.nonce,
            "valid":    verify_claim_signature(claim.hash(), claim.signature, claim.issuer),
        })
    return results


def _duplicate_keys(bundle: ClaimBundle) -> List[dict]:
    seen = set()
    duplicates = []
    for claim in bundle:
        if claim.key in seen:
            duplicates.append({"from": claim.issuer, "nonce": claim.nonce})
        seen.add(claim.key)
    return duplicates


@click.command(name="verify")
@click.argument("bundle", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format: human (default) or json (CI/automation).",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable ANSI color output.",
)
def verify_command(bundle: str, fmt: str, quiet: bool, no_color: bool) -> None:
    """
    Verify every proof in a claim bundle.

    BUNDLE is the path to a JSON file produced by `capsulecoin claims`.
    """
    Color.configure(not no_color)
    bundle_path = Path(bundle)

    if not bundle_path.exists():
        emit_error(f"Bundle not found: {bundle}", fmt, quiet)
        sys.exit(2)

    try:
        loaded = ClaimBundle.load(bundle_path)
    except (CapsuleError, OSError) as e:
        emit_error(str(e), fmt, quiet)
        sys.exit(2)

    results    = check_bundle(loaded)
    duplicates = _duplicate_keys(loaded)
    invalid    = [r for r in results if not r["valid"]]
    all_valid  = not invalid and not duplicates

    if quiet:
        sys.exit(0 if all_valid else 1)

    if fmt == "json":
        click.echo(json.dumps({
            "status":           "valid" if all_valid else "invalid",
            "bundle":           str(bundle_path),
            "fingerprint":      loaded.fingerprint(),
            "total":            len(results),
            "valid_proofs":     len(results) - len(invalid),
            "invalid_proofs":   len(invalid),
            "duplicate_nonces": duplicates,
            "claims":           results,
        }, indent=2))
        sys.exit(0 if all_valid else 1)

    header("Claim Bundle Verification")
    click.echo(row("Bundle", str(bundle_path)))
    click.echo(row("Fingerprint", loaded.fingerprint()))
    click.echo(row("Claims", f"{len(results):,} for {len(loaded.claims):,} destinations"))
    click.echo()

    for r in results:
        if r["valid"]:
            detail = f"{r['to']}  amount={r['amount']}  block={r['validity']}"
        else:
            detail = Color.red("proof does not match from ") + r["from"]
        click.echo(claim_row(r["nonce"], r["valid"], detail))

    for d in duplicates:
        click.echo(row("duplicate", f"nonce {d['nonce']} reused by {d['from']}", ok=False))

    if all_valid:
        summary(True, "All proofs valid")
    else:
        summary(False, f"{len(invalid)} invalid proof(s), {len(duplicates)} duplicate nonce(s)")

    sys.exit(0 if all_valid else 1)
