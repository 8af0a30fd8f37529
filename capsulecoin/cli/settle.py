"""
capsulecoin/cli/settle.py

capsulecoin settle — dry-run settlement of a claim bundle
=========================================================

Deploys a fresh in-memory token with the bundle's issuer as vault (the full
cap is allocated to it), sets the chain to --height and settles every claim
in bundle order through the settlement engine.

With --journal (or journal_path in the configuration) consumed nonces are
persisted, so a second run against the same journal reports the claims as
already used.

Exit codes:
    0  Every claim settled
    1  At least one claim was rejected
    2  Error  (file missing, malformed bundle, more than one issuer, bad journal,
              issuer that cannot hold the supply)
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from capsulecoin.cli.output import Color, claim_row, emit_error, header, row, summary
from capsulecoin.config import Settings
from capsulecoin.core.chain import Chain
from capsulecoin.core.exceptions import CapsuleError
from capsulecoin.core.models import ClaimBundle, SettlementState
from capsulecoin.ledger.ledger import ReplayLedger
from capsulecoin.settlement.engine import SettlementEngine
from capsulecoin.token.token import CapsuleToken


@click.command(name="settle")
@click.argument("bundle", type=click.Path(exists=False))
@click.option("--height", required=True, type=click.IntRange(min=0),
              help="Chain height to settle at.")
@click.option("--journal", type=click.Path(dir_okay=False), default=None,
              help="Replay journal (JSONL). Defaults to configuration.")
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
)
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
@click.pass_obj
def settle_command(
    settings: Settings,
    bundle:   str,
    height:   int,
    journal:  Optional[str],
    fmt:      str,
    no_color: bool,
) -> None:
    """
    Settle every claim in BUNDLE against a fresh deployment.
    """
    Color.configure(not no_color)

    try:
        loaded = ClaimBundle.load(Path(bundle))
    except (CapsuleError, OSError) as e:
        emit_error(str(e), fmt, False)
        sys.exit(2)

    issuers = {claim.issuer for claim in loaded}
    if len(issuers) > 1:
        emit_error(f"Bundle has {len(issuers)} issuers; settle needs exactly one", fmt, False)
        sys.exit(2)
    if not issuers:
        emit_error("Bundle contains no claims", fmt, False)
        sys.exit(2)
    vault = issuers.pop()

    journal_path = journal or settings.journal_path
    try:
        replay = ReplayLedger(Path(journal_path) if journal_path else None)
    except CapsuleError as e:
        emit_error(str(e), fmt, False)
        sys.exit(2)

    try:
        token = CapsuleToken.deploy(
            vault,
            cap=settings.cap,
            name=settings.token_name,
            symbol=settings.token_symbol,
            decimals=settings.decimals,
        )
    except CapsuleError as e:
        emit_error(str(e), fmt, False)
        sys.exit(2)
    engine = SettlementEngine(token, Chain(height=height), replay)

    outcomes = []
    for claim in loaded:
        try:
            engine.settle(claim)
            state = SettlementState.CONSUMED
        except CapsuleError as e:
            state = SettlementState.for_error(e)
        outcomes.append({
            "to":       claim.destination,
            "amount":   str(claim.amount),
            "validity": claim.valid_from_block,
            "nonce":    claim.nonce,
            "state":    state.value,
        })

    settled = all(o["state"] == SettlementState.CONSUMED.value for o in outcomes)

    if fmt == "json":
        click.echo(json.dumps({
            "status":         "settled" if settled else "rejected",
            "issuer":         vault,
            "height":         height,
            "issuer_balance": str(token.balance_of(vault)),
            "stats":          engine.get_settlement_stats(),
            "claims":         outcomes,
        }, indent=2))
        sys.exit(0 if settled else 1)

    header("Claim Settlement (dry run)")
    click.echo(row("Bundle", bundle))
    click.echo(row("Issuer", vault))
    click.echo(row("Height", str(height)))
    if journal_path:
        click.echo(row("Journal", str(journal_path)))
    click.echo()

    for o in outcomes:
        consumed = o["state"] == SettlementState.CONSUMED.value
        if consumed:
            detail = f"{o['to']}  amount={o['amount']}"
        else:
            detail = f"{o['to']}  {Color.red(o['state'])}"
        click.echo(claim_row(o["nonce"], consumed, detail))

    rejected = sum(1 for o in outcomes if o["state"] != SettlementState.CONSUMED.value)
    if settled:
        summary(True, f"All {len(outcomes)} claim(s) settled")
    else:
        summary(False, f"{rejected} of {len(outcomes)} claim(s) rejected")
    sys.exit(0 if settled else 1)
