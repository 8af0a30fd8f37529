"""
capsulecoin/cli/output.py

Terminal formatting shared by the bundle commands (verify, settle).

Every bundle report has the same shape: a header, info rows, one row per
claim keyed by nonce, then a single summary line.
"""

import json
import sys
from typing import Optional

import click

BAR_HEAVY = "═" * 68
LABEL_WIDTH = 16

_ANSI = {"green": "32", "red": "31", "bold": "1", "dim": "2"}


class Color:
    """ANSI styling, on only for a TTY and only until --no-color turns it off."""
    _on: bool = True

    @classmethod
    def configure(cls, enabled: bool) -> None:
        cls._on = enabled and sys.stdout.isatty()

    @classmethod
    def apply(cls, style: str, s: str) -> str:
        return f"\033[{_ANSI[style]}m{s}\033[0m" if cls._on else s

    @classmethod
    def green(cls, s: str) -> str:
        return cls.apply("green", s)

    @classmethod
    def red(cls, s: str) -> str:
        return cls.apply("red", s)

    @classmethod
    def bold(cls, s: str) -> str:
        return cls.apply("bold", s)

    @classmethod
    def dim(cls, s: str) -> str:
        return cls.apply("dim", s)


def _mark(ok: Optional[bool]) -> str:
    if ok is None:
        return "  "
    return Color.green("✅") if ok else Color.red("❌")


def row(label: str, value: str, ok: Optional[bool] = None) -> str:
    """One report line. ok=None is an info row with a dimmed value."""
    label_col = Color.dim(f"{label:<{LABEL_WIDTH}}")
    if ok is None:
        return f"  {label_col}     {Color.dim(value)}"
    return f"  {label_col}  {_mark(ok)}  {value}"


def claim_row(nonce: int, ok: bool, detail: str) -> str:
    return row(f"nonce {nonce}", detail, ok)


def header(title: str) -> None:
    click.echo()
    click.echo(Color.bold(f"  {BAR_HEAVY}"))
    click.echo(Color.bold(f"  Capsule Coin  ·  {title}"))
    click.echo(Color.bold(f"  {BAR_HEAVY}"))
    click.echo()


def summary(ok: bool, message: str) -> None:
    """Closing verdict of a bundle report."""
    paint = Color.green if ok else Color.red
    click.echo()
    click.echo(paint(Color.bold(f"  {_mark(ok)}  {message}")))
    click.echo()


def emit_error(message: str, fmt: str, quiet: bool) -> None:
    """Report an error in the requested format (stderr for humans)."""
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({"status": "error", "error": message}, indent=2))
    else:
        click.echo(Color.red(f"  Error: {message}"), err=True)
