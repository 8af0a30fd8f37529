"""
Capsule Coin configuration.

Precedence, lowest to highest:
    defaults  <  YAML file  <  CAPSULE_* environment  <  CLI flags

Example capsule.yaml:

    token_name: Capsule Coin
    token_symbol: CAPS
    decimals: 18
    cap_tokens: 2500000000
    seconds_per_block: 30
    journal_path: .capsule/replay.jsonl
    log_level: INFO
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from capsulecoin.core.canonical import UINT256_MAX
from capsulecoin.core.exceptions import ConfigError

ENV_PREFIX = "CAPSULE_"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    """Process-wide settings for the token and claim tooling."""
    token_name:        str           = "Capsule Coin"
    token_symbol:      str           = "CAPS"
    decimals:          int           = 18
    cap_tokens:        int           = 2_500_000_000
    seconds_per_block: int           = 30
    journal_path:      Optional[str] = None
    log_level:         str           = "WARNING"

    def __post_init__(self):
        for name in ("token_name", "token_symbol", "log_level"):
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ConfigError(f"{name} must be a string", {name: value})
        if self.journal_path is not None and not isinstance(self.journal_path, str):
            raise ConfigError(
                "journal_path must be a string", {"journal_path": self.journal_path}
            )
        for name in ("decimals", "cap_tokens", "seconds_per_block"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer", {name: value})
        if not 0 <= self.decimals <= 77:
            raise ConfigError("decimals must be in [0, 77]", {"decimals": self.decimals})
        if self.cap_tokens <= 0:
            raise ConfigError("cap_tokens must be positive", {"cap_tokens": self.cap_tokens})
        if self.cap > UINT256_MAX:
            raise ConfigError(
                "cap_tokens × 10**decimals exceeds uint256",
                {"cap_tokens": self.cap_tokens, "decimals": self.decimals},
            )
        if self.seconds_per_block <= 0:
            raise ConfigError(
                "seconds_per_block must be positive",
                {"seconds_per_block": self.seconds_per_block},
            )
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigError("Unknown log_level", {"log_level": self.log_level})

    @property
    def cap(self) -> int:
        """Supply cap in raw units."""
        return self.cap_tokens * 10**self.decimals

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper())

    # ── Loading ───────────────────────────────────────────────

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: Optional["Settings"] = None) -> "Settings":
        """Overlay a mapping on base (or defaults). Unknown keys raise ConfigError."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError("Unknown configuration keys", {"keys": unknown})
        return replace(base or cls(), **dict(data))

    @classmethod
    def from_yaml(cls, path: Path, base: Optional["Settings"] = None) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as exc:
            raise ConfigError(f"Config file not found: {path}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return cls.from_mapping(data, base)

    @classmethod
    def from_env(
        cls,
        base: Optional["Settings"] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        """Overlay CAPSULE_<FIELD> environment variables on base."""
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.name in ("decimals", "cap_tokens", "seconds_per_block"):
                try:
                    overrides[f.name] = int(raw)
                except ValueError as exc:
                    raise ConfigError(
                        f"{ENV_PREFIX}{f.name.upper()} must be an integer", {"value": raw}
                    ) from exc
            else:
                overrides[f.name] = raw
        return cls.from_mapping(overrides, base)

    @classmethod
    def load(
        cls,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        """Defaults, then the YAML file if given, then the environment."""
        settings = cls.from_yaml(path) if path else cls()
        return cls.from_env(settings, environ)
