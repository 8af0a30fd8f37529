"""
capsulecoin/cli/__init__.py

Capsule Coin CLI — root Click command group.

This file is the sole entry point for the `capsulecoin` terminal command.
It is registered in pyproject.toml as:

    [project.scripts]
    capsulecoin = "capsulecoin.cli:cli"

Adding a new command:
    1. Create capsulecoin/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click

from capsulecoin.cli.claims import claims_command, hash_command
from capsulecoin.cli.keys import accounts_command, keygen_command
from capsulecoin.cli.settle import settle_command
from capsulecoin.cli.verify import verify_command
from capsulecoin.config import Settings
from capsulecoin.core.exceptions import ConfigError


@click.group()
@click.version_option(package_name="capsulecoin")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    envvar="CAPSULE_CONFIG",
    help="YAML settings file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], log_level: Optional[str]) -> None:
    """
    Capsule Coin — offchain claim tooling.

    \b
    Commands:
      claims    Compile a JSON vesting description into signed claims.
      hash      Print the digest an issuer signs for one claim.
      verify    Check every proof in a claim bundle offline.
      settle    Dry-run settlement of a bundle against a fresh deployment.
      accounts  List addresses derived from a mnemonic.
      keygen    Write a new private key file.

    \b
    Quick start:
      capsulecoin keygen issuer.key
      capsulecoin claims --key-file issuer.key --json vesting.json \\
          --nonce 1 --block-number 1200 --output claims.json
      capsulecoin verify claims.json
    """
    try:
        settings = Settings.load(Path(config_path) if config_path else None)
        if log_level:
            settings = replace(settings, log_level=log_level.upper())
    except ConfigError as e:
        raise click.BadParameter(str(e), param_hint="--config") from e

    logging.basicConfig(
        level=settings.log_level_value,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


cli.add_command(claims_command)
cli.add_command(hash_command)
cli.add_command(verify_command)
cli.add_command(settle_command)
cli.add_command(accounts_command)
cli.add_command(keygen_command)
