"""
capsulecoin/cli/keys.py

capsulecoin accounts — list addresses derived from a mnemonic
capsulecoin keygen   — create a private key file for a claim issuer
"""

from pathlib import Path

import click

from capsulecoin.core.crypto import ClaimKeyManager, KeyRing


@click.command(name="accounts")
@click.option("--mnemonic", envvar="CAPSULE_MNEMONIC", required=True,
              help="Mnemonic to derive accounts from.")
@click.option("--count", type=click.IntRange(min=1), default=20, show_default=True,
              help="Number of accounts to derive.")
def accounts_command(mnemonic: str, count: int) -> None:
    """Print the addresses derived from a mnemonic, one per line."""
    try:
        ring = KeyRing.from_mnemonic(mnemonic, count)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    for address in ring.addresses():
        click.echo(address)


@click.command(name="keygen")
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file.")
def keygen_command(output: str, force: bool) -> None:
    """Write a new random private key to OUTPUT and print its address."""
    path = Path(output)
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")
    key = ClaimKeyManager.generate()
    try:
        key.save(path)
    except RuntimeError as e:
        raise click.ClickException(str(e)) from e
    click.echo(key.address)
