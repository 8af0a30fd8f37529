"""
capsulecoin/cli/claims.py

capsulecoin claims — compile a vesting description into a signed bundle
capsulecoin hash   — print the digest for one claim

Usage:
    capsulecoin claims --key-file issuer.key --json vesting.json \\
        --nonce 1 --block-number 1200 --block-timestamp 1700000000
    capsulecoin claims --mnemonic "$CAPSULE_MNEMONIC" --addr 0xf39F… \\
        --json vesting.json --nonce 1 --block-number 1200 --output claims.json
    capsulecoin hash 0xISSUER 0xDEST 10000 1200 1
"""

import json
from pathlib import Path
from typing import Optional

import click

from capsulecoin.config import Settings
from capsulecoin.core.canonical import hash_for_claim, normalize_address
from capsulecoin.core.crypto import ClaimKeyManager, KeyRing
from capsulecoin.core.exceptions import CapsuleError
from capsulecoin.core.models import BlockSnapshot
from capsulecoin.core.time import unix_now
from capsulecoin.vesting.compiler import VestingCompiler


def load_signer(
    key_file:      Optional[str],
    mnemonic:      Optional[str],
    account_index: int,
    account_count: int,
    addr:          Optional[str],
) -> ClaimKeyManager:
    """
    Resolve the one signing key a command needs.

    --key-file wins over --mnemonic. With --mnemonic and --addr the derived
    accounts are looked up by address; without --addr --account-index is used.
    """
    if key_file:
        key = ClaimKeyManager.from_file(Path(key_file))
        if addr and normalize_address(addr, "addr") != key.address:
            raise click.ClickException(
                f"Key file holds {key.address}, not {addr}"
            )
        return key

    if mnemonic:
        if addr:
            return KeyRing.from_mnemonic(mnemonic, account_count).get(addr)
        return ClaimKeyManager.from_mnemonic(mnemonic, account_index)

    raise click.UsageError("Provide --key-file or --mnemonic")


@click.command(name="claims")
@click.option(
    "--json", "json_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Vesting description to compile.",
)
@click.option(
    "--nonce", "start_nonce",
    required=True,
    type=click.IntRange(min=0),
    help="First nonce; incremented for every claim.",
)
@click.option(
    "--block-number",
    required=True,
    type=click.IntRange(min=0),
    help="Current chain height.",
)
@click.option(
    "--block-timestamp",
    type=int,
    default=None,
    help="Unix timestamp of --block-number. Defaults to now.",
)
@click.option("--key-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="File holding the issuer's hex private key.")
@click.option("--mnemonic", envvar="CAPSULE_MNEMONIC", default=None,
              help="Mnemonic to derive the issuer key from.")
@click.option("--account-index", type=click.IntRange(min=0), default=0, show_default=True,
              help="Derivation index used with --mnemonic when --addr is absent.")
@click.option("--accounts", "account_count", type=click.IntRange(min=1), default=20,
              show_default=True, help="How many derived accounts --addr is looked up in.")
@click.option("--addr", default=None, help="Address of the account creating the claims.")
@click.option("--decimals", type=click.IntRange(0, 77), default=None,
              help="Token decimals. Defaults to configuration.")
@click.option("--seconds-per-block", type=click.IntRange(min=1), default=None,
              help="Estimated block time. Defaults to configuration.")
@click.option("--output", type=click.Path(dir_okay=False), default=None,
              help="Write the bundle here instead of stdout.")
@click.pass_obj
def claims_command(
    settings:          Settings,
    json_path:         str,
    start_nonce:       int,
    block_number:      int,
    block_timestamp:   Optional[int],
    key_file:          Optional[str],
    mnemonic:          Optional[str],
    account_index:     int,
    account_count:     int,
    addr:              Optional[str],
    decimals:          Optional[int],
    seconds_per_block: Optional[int],
    output:            Optional[str],
) -> None:
    """
    Create offchain claims for the vesting entries in a JSON file.
    """
    try:
        signer = load_signer(key_file, mnemonic, account_index, account_count, addr)
        with open(json_path, "r", encoding="utf-8") as f:
            description = json.load(f)

        compiler = VestingCompiler(
            signer,
            decimals=decimals if decimals is not None else settings.decimals,
            seconds_per_block=(
                seconds_per_block if seconds_per_block is not None
                else settings.seconds_per_block
            ),
        )
        snapshot = BlockSnapshot(
            number=block_number,
            timestamp=block_timestamp if block_timestamp is not None else unix_now(),
        )
        bundle = compiler.compile(description, snapshot, start_nonce)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {json_path}: {e}") from e
    except (CapsuleError, ValueError, OSError) as e:
        raise click.ClickException(str(e)) from e

    if output:
        bundle.write(Path(output))
        click.echo(
            f"Wrote {len(bundle)} claims from {signer.address} to {output}", err=True
        )
    else:
        click.echo(bundle.to_json())


@click.command(name="hash")
@click.argument("issuer")
@click.argument("destination")
@click.argument("amount", type=click.IntRange(min=0))
@click.argument("valid_from_block", type=click.IntRange(min=0))
@click.argument("nonce", type=click.IntRange(min=0))
def hash_command(
    issuer:           str,
    destination:      str,
    amount:           int,
    valid_from_block: int,
    nonce:            int,
) -> None:
    """
    Print the claim digest ISSUER must sign.

    AMOUNT is the raw integer amount (already scaled by decimals).
    """
    try:
        digest = hash_for_claim(issuer, destination, amount, valid_from_block, nonce)
    except CapsuleError as e:
        raise click.ClickException(str(e)) from e
    click.echo("0x" + digest.hex())
