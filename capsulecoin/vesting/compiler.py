"""
capsulecoin/vesting/compiler.py

Vesting Schedule Compiler

Turns a JSON vesting description into a bundle of signed claims:

    description + chain snapshot + signing key + start nonce → ClaimBundle

Per vesting entry:
    valid_from_block = snapshot.number
                       + floor((unlock_time - snapshot.timestamp) / seconds_per_block)
    amount           = tokens × 10**decimals   (exact integer, Decimal arithmetic)

Accepted description shapes (keys are destination addresses):

    { "0xabc…": { "vesting1Epoch": 1700000000, "vesting1price": 1000,
                  "vesting2Epoch": 1710000000, "vesting2price": "2500", … } }

    { "0xabc…": [ { "epoch": 1700000000, "tokens": 1000 }, … ] }

The compiler only hashes and signs. It never reads or writes the replay
ledger and never settles anything.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Tuple, Union

from capsulecoin.core.canonical import hash_for_claim, normalize_address, require_uint256
from capsulecoin.core.chain import DEFAULT_SECONDS_PER_BLOCK
from capsulecoin.core.crypto import ClaimKeyManager
from capsulecoin.core.exceptions import ValidationError
from capsulecoin.core.models import BlockSnapshot, Claim, ClaimBundle

logger = logging.getLogger(__name__)

_NUMBERED_KEY_RE = re.compile(r"^vesting(\d+)(Epoch|price)$")

TokenCount = Union[int, str, Decimal]


@dataclass(frozen=True)
class VestingEntry:
    """One unlock: calendar time (unix seconds) and a whole-token count."""
    unlock_time: int
    tokens:      TokenCount


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", {field: value})
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"-?[0-9]+", value.strip()):
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer", {field: value})


def _parse_entries(destination: str, raw: Any) -> List[VestingEntry]:
    if isinstance(raw, list):
        entries = []
        for i, item in enumerate(raw):
            if not isinstance(item, dict) or "epoch" not in item or "tokens" not in item:
                raise ValidationError(
                    "Vesting entry needs 'epoch' and 'tokens'",
                    {"destination": destination, "position": i},
                )
            entries.append(VestingEntry(_as_int(item["epoch"], "epoch"), item["tokens"]))
        return entries

    if isinstance(raw, dict):
        numbered: Dict[int, Dict[str, Any]] = {}
        for key, value in raw.items():
            match = _NUMBERED_KEY_RE.match(str(key))
            if not match:
                if str(key).lower().startswith("vesting"):
                    raise ValidationError(
                        "Unrecognized vesting key",
                        {"destination": destination, "key": key},
                    )
                continue
            numbered.setdefault(int(match.group(1)), {})[match.group(2)] = value

        entries = []
        for number in sorted(numbered):
            parts = numbered[number]
            if "Epoch" not in parts or "price" not in parts:
                raise ValidationError(
                    f"vesting{number} needs both Epoch and price",
                    {"destination": destination},
                )
            entries.append(
                VestingEntry(_as_int(parts["Epoch"], f"vesting{number}Epoch"), parts["price"])
            )
        return entries

    raise ValidationError(
        "Vesting description must be a list or an object",
        {"destination": destination},
    )


def parse_schedule(description: Dict[str, Any]) -> List[Tuple[str, List[VestingEntry]]]:
    """
    Parse a vesting description into (destination, entries) pairs.

    Destination order follows the description. Numbered entries are ordered
    by their number, list entries keep their position.
    """
    if not isinstance(description, dict):
        raise ValidationError("Vesting description must be an object")
    return [
        (normalize_address(destination, "destination"), _parse_entries(destination, raw))
        for destination, raw in description.items()
    ]


def block_for_unlock(
    unlock_time:       int,
    snapshot:          BlockSnapshot,
    seconds_per_block: int = DEFAULT_SECONDS_PER_BLOCK,
) -> int:
    """
    Estimated block height reached at unlock_time.

    Floors toward negative infinity, so an unlock in the past maps to a block
    at or below the snapshot. Never returns less than 0.
    """
    if isinstance(seconds_per_block, bool) or not isinstance(seconds_per_block, int) \
            or seconds_per_block <= 0:
        raise ValidationError(
            "seconds_per_block must be a positive integer",
            {"seconds_per_block": seconds_per_block},
        )
    in_blocks = (unlock_time - snapshot.timestamp) // seconds_per_block
    return max(snapshot.number + in_blocks, 0)


def scale_amount(tokens: TokenCount, decimals: int) -> int:
    """
    Convert a token count to the raw integer amount.

    tokens may be an int, a decimal string or a Decimal. Fractions are allowed
    as long as the scaled result is a whole number. Floats are rejected.
    """
    if isinstance(tokens, (bool, float)):
        raise ValidationError(
            "Token count must be an integer or decimal string", {"tokens": tokens}
        )
    try:
        value = Decimal(tokens.strip() if isinstance(tokens, str) else tokens)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError("Invalid token count", {"tokens": tokens}) from exc

    if not value.is_finite() or value < 0:
        raise ValidationError("Token count must be non-negative", {"tokens": tokens})

    # Integer arithmetic on the digits, no context rounding.
    _, digits, exponent = value.as_tuple()
    coefficient = int("".join(map(str, digits)) or "0")
    shift = exponent + decimals
    if shift >= 0:
        scaled = coefficient * 10**shift
    else:
        scaled, remainder = divmod(coefficient, 10**-shift)
        if remainder:
            raise ValidationError(
                "Token count has more precision than the token's decimals",
                {"tokens": str(tokens), "decimals": decimals},
            )
    return require_uint256(scaled, "amount")


class VestingCompiler:
    """
    Compiles vesting descriptions into signed claim bundles.

    Usage:
        compiler = VestingCompiler(key_manager, decimals=18)
        bundle = compiler.compile(description, chain.snapshot(), start_nonce=1)
        bundle.write(Path("claims.json"))
    """

    def __init__(
        self,
        key_manager:       ClaimKeyManager,
        decimals:          int,
        seconds_per_block: int = DEFAULT_SECONDS_PER_BLOCK,
    ):
        self.key_manager       = key_manager
        self.decimals          = decimals
        self.seconds_per_block = seconds_per_block

    def create_claim(
        self,
        destination:      str,
        amount:           int,
        valid_from_block: int,
        nonce:            int,
    ) -> Claim:
        """Hash and sign a single claim issued by this compiler's key."""
        digest = hash_for_claim(
            self.key_manager.address, destination, amount, valid_from_block, nonce
        )
        return Claim(
            issuer=           self.key_manager.address,
            destination=      destination,
            amount=           amount,
            valid_from_block= valid_from_block,
            nonce=            nonce,
            signature=        self.key_manager.sign_claim_hash(digest),
        )

    def compile(
        self,
        description: Dict[str, Any],
        snapshot:    BlockSnapshot,
        start_nonce: int,
    ) -> ClaimBundle:
        """
        Sign one claim per vesting entry.

        Nonces start at start_nonce and increase by one per claim across the
        whole bundle, in description order.
        """
        nonce = require_uint256(start_nonce, "start_nonce")
        schedule = parse_schedule(description)
        bundle = ClaimBundle()

        for destination, entries in schedule:
            bundle.claims.setdefault(destination, [])
            for entry in entries:
                claim = self.create_claim(
                    destination=      destination,
                    amount=           scale_amount(entry.tokens, self.decimals),
                    valid_from_block= block_for_unlock(
                        entry.unlock_time, snapshot, self.seconds_per_block
                    ),
                    nonce=            nonce,
                )
                bundle.add(claim)
                nonce += 1

        logger.info(
            "Vesting schedule compiled",
            extra={
                "event": "vesting.compiled",
                "issuer": self.key_manager.address[:10],
                "destinations": len(schedule),
                "claims": len(bundle),
                "next_nonce": nonce,
            },
        )
        return bundle
