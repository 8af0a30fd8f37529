"""
capsulecoin/core/models.py

Claim Data Model

═══════════════════════════════════════════════════════════════════
WIRE CONTRACTS — changes break every bundle already issued.
═══════════════════════════════════════════════════════════════════

CONTRACT 1 — Digest
    digest = hash_for_claim(issuer, destination, amount, valid_from_block, nonce)
    defined in capsulecoin/core/canonical.py — nowhere else

CONTRACT 2 — Bundle claim fields
    proof     0x-prefixed hex of the 65-byte signature
    from      issuer address
    to        destination address
    amount    decimal STRING of the raw integer amount (post-decimals)
    validity  int block height
    nonce     int

CONTRACT 3 — Bundle shape
    { "<destination address>": [ claim, claim, ... ], ... }
    claim order within a destination is preserved.
═══════════════════════════════════════════════════════════════════
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List

from capsulecoin.core.canonical import (
    canonical_hash,
    hash_for_claim,
    normalize_address,
    require_uint256,
)
from capsulecoin.core.crypto import signature_to_bytes
from capsulecoin.core.exceptions import CapsuleError, ValidationError


_CLAIM_FIELDS = ("proof", "from", "to", "amount", "validity", "nonce")
_DECIMAL_RE   = re.compile(r"[0-9]+")


class SettlementState(str, Enum):
    """Terminal outcome of one settlement attempt."""
    CONSUMED                      = "CONSUMED"
    REJECTED_MALFORMED_SIGNATURE  = "REJECTED_MALFORMED_SIGNATURE"
    REJECTED_BAD_PROOF            = "REJECTED_BAD_PROOF"
    REJECTED_TOO_EARLY            = "REJECTED_TOO_EARLY"
    REJECTED_ALREADY_USED         = "REJECTED_ALREADY_USED"
    REJECTED_INSUFFICIENT_BALANCE = "REJECTED_INSUFFICIENT_BALANCE"
    REJECTED_INVALID              = "REJECTED_INVALID"

    @classmethod
    def for_error(cls, exc: CapsuleError) -> "SettlementState":
        state = getattr(exc, "state", None)
        if state is None:
            return cls.REJECTED_INVALID
        return cls(state)


@dataclass(frozen=True)
class BlockSnapshot:
    """Chain height and timestamp (unix seconds) captured at one instant."""
    number:    int
    timestamp: int


@dataclass(frozen=True)
class Claim:
    """
    A signed promise by issuer to pay amount to destination from
    valid_from_block onward, usable once per (issuer, nonce).

    Addresses are normalized to checksum form on construction.
    """
    issuer:           str
    destination:      str
    amount:           int
    valid_from_block: int
    nonce:            int
    signature:        bytes = b""

    def __post_init__(self):
        object.__setattr__(self, "issuer", normalize_address(self.issuer, "issuer"))
        object.__setattr__(
            self, "destination", normalize_address(self.destination, "destination")
        )
        require_uint256(self.amount, "amount")
        require_uint256(self.valid_from_block, "valid_from_block")
        require_uint256(self.nonce, "nonce")
        if not isinstance(self.signature, bytes):
            object.__setattr__(self, "signature", signature_to_bytes(self.signature))

    def hash(self) -> bytes:
        """Recompute the claim digest from the five signed fields."""
        return hash_for_claim(
            self.issuer,
            self.destination,
            self.amount,
            self.valid_from_block,
            self.nonce,
        )

    @property
    def proof(self) -> str:
        return "0x" + self.signature.hex()

    @property
    def key(self) -> tuple:
        """Replay key for this claim."""
        return (self.issuer, self.nonce)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the bundle wire format."""
        return {
            "proof":    self.proof,
            "from":     self.issuer,
            "to":       self.destination,
            "amount":   str(self.amount),
            "validity": self.valid_from_block,
            "nonce":    self.nonce,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Claim":
        """
        Parse a bundle claim entry.
        Raises ValidationError on missing fields or wrong types.
        """
        if not isinstance(data, dict):
            raise ValidationError("Claim entry must be an object")
        missing = [f for f in _CLAIM_FIELDS if f not in data]
        if missing:
            raise ValidationError("Claim entry missing fields", {"missing": missing})

        amount = data["amount"]
        if isinstance(amount, str):
            if not _DECIMAL_RE.fullmatch(amount):
                raise ValidationError("Claim amount must be a decimal string", {"amount": amount})
            amount = int(amount)

        return cls(
            issuer=           data["from"],
            destination=      data["to"],
            amount=           amount,
            valid_from_block= data["validity"],
            nonce=            data["nonce"],
            signature=        signature_to_bytes(data["proof"]),
        )


@dataclass
class ClaimBundle:
    """Signed claims grouped by destination, in issue order."""

    claims: Dict[str, List[Claim]] = field(default_factory=dict)

    def add(self, claim: Claim) -> None:
        self.claims.setdefault(claim.destination, []).append(claim)

    def for_destination(self, destination: str) -> List[Claim]:
        return list(self.claims.get(normalize_address(destination), []))

    def __iter__(self) -> Iterator[Claim]:
        for claims in self.claims.values():
            yield from claims

    def __len__(self) -> int:
        return sum(len(c) for c in self.claims.values())

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            destination: [c.to_dict() for c in claims]
            for destination, claims in self.claims.items()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaimBundle":
        if not isinstance(data, dict):
            raise ValidationError("Claim bundle must be an object")
        bundle = cls()
        for destination, entries in data.items():
            if not isinstance(entries, list):
                raise ValidationError(
                    "Claim bundle entries must be a list",
                    {"destination": destination},
                )
            key = normalize_address(destination, "destination")
            bundle.claims.setdefault(key, [])
            for entry in entries:
                claim = Claim.from_dict(entry)
                if claim.destination != key:
                    raise ValidationError(
                        "Claim destination does not match bundle key",
                        {"key": key, "to": claim.destination},
                    )
                bundle.claims[key].append(claim)
        return bundle

    def to_json(self, indent: int = 4) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def fingerprint(self) -> str:
        """SHA-256 of the canonical JSON form. Independent of key order."""
        return canonical_hash(self.to_dict())

    def write(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json() + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> "ClaimBundle":
        """
        Raises:
            FileNotFoundError — bundle file does not exist
            ValidationError   — malformed JSON or claim entries
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValidationError(f"Invalid JSON in {path}: {exc}") from exc
        return cls.from_dict(data)


@dataclass(frozen=True)
class SettlementReceipt:
    """Record of a successfully settled claim."""
    issuer:           str
    destination:      str
    amount:           int
    valid_from_block: int
    nonce:            int
    claim_hash:       str
    block_number:     int
    settled_at:       str
    state:            SettlementState = SettlementState.CONSUMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issuer":           self.issuer,
            "destination":      self.destination,
            "amount":           str(self.amount),
            "valid_from_block": self.valid_from_block,
            "nonce":            str(self.nonce),
            "claim_hash":       self.claim_hash,
            "block_number":     self.block_number,
            "settled_at":       self.settled_at,
            "state":            self.state.value,
        }
