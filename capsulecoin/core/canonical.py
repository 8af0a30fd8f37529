"""
Capsule Coin: Canonical Encodings

Two encodings live here and nowhere else:

    hash_for_claim()        keccak256(abi.encodePacked(address issuer,
                                                       address destination,
                                                       uint256 amount,
                                                       uint256 validFromBlock,
                                                       uint256 nonce))
    canonical_json_encode() RFC 8785 (JCS) bytes for journal and bundle hashing

The claim digest is the compatibility surface between the offline signer and
the settlement verifier. Field order and widths are fixed: 20 + 20 + 32 + 32 +
32 = 136 packed bytes, hashed with keccak-256 to 32 bytes.

The signer never signs the digest directly. It signs claim_message(digest),
the EIP-191 personal message wrapping:

    keccak256("\\x19Ethereum Signed Message:\\n32" || digest)
"""

import hashlib

import jcs
from eth_abi.packed import encode_packed
from eth_account.messages import SignableMessage, encode_defunct
from eth_utils import is_address, keccak, to_checksum_address

from capsulecoin.core.exceptions import ValidationError


UINT256_MAX  = 2**256 - 1
ZERO_ADDRESS = "0x" + "0" * 40

CLAIM_DIGEST_LENGTH = 32

_CLAIM_ABI_TYPES = ["address", "address", "uint256", "uint256", "uint256"]


def normalize_address(value, field: str = "address") -> str:
    """
    Return the EIP-55 checksum form of an address.

    Accepts lowercase, uppercase or correctly checksummed hex.
    Raises ValidationError for anything else.
    """
    if not isinstance(value, str) or not is_address(value):
        raise ValidationError(f"Invalid {field}", {field: value})
    return to_checksum_address(value)


def require_uint256(value, field: str) -> int:
    """Raise ValidationError unless value is an int in [0, 2**256)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"{field} must be an integer", {field: repr(value)}
        )
    if value < 0 or value > UINT256_MAX:
        raise ValidationError(f"{field} out of uint256 range", {field: value})
    return value


def hash_for_claim(
    issuer:           str,
    destination:      str,
    amount:           int,
    valid_from_block: int,
    nonce:            int,
) -> bytes:
    """
    Compute the 32-byte claim digest.

    Deterministic across processes and implementations. Any change to any of
    the five fields yields a different digest.

    Raises:
        ValidationError: malformed address or out-of-range integer.
    """
    packed = encode_packed(
        _CLAIM_ABI_TYPES,
        [
            normalize_address(issuer, "issuer"),
            normalize_address(destination, "destination"),
            require_uint256(amount, "amount"),
            require_uint256(valid_from_block, "valid_from_block"),
            require_uint256(nonce, "nonce"),
        ],
    )
    return keccak(packed)


def claim_message(digest: bytes) -> SignableMessage:
    """Wrap a claim digest as an EIP-191 personal message."""
    if not isinstance(digest, (bytes, bytearray)) or len(digest) != CLAIM_DIGEST_LENGTH:
        raise ValidationError(
            "Claim digest must be 32 bytes",
            {"length": len(digest) if isinstance(digest, (bytes, bytearray)) else None},
        )
    return encode_defunct(primitive=bytes(digest))


def canonical_json_encode(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    Values must be JSON primitives; large integers should be passed as
    decimal strings.
    """
    return jcs.canonicalize(obj)


def _ints_as_strings(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, dict):
        return {k: _ints_as_strings(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_ints_as_strings(v) for v in value]
    return value


def canonical_hash(obj: dict) -> str:
    """
    Lowercase hex SHA-256 of the canonical JSON form.

    Integers are hashed as decimal strings. JCS encodes numbers as IEEE
    doubles, which would merge uint256 values differing past 2**53.
    """
    return hashlib.sha256(canonical_json_encode(_ints_as_strings(obj))).hexdigest()
