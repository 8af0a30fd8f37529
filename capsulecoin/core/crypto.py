"""
capsulecoin/core/crypto.py

Claim signing and signer recovery — secp256k1 via eth-account.

Key contracts:
    address                 : @property → EIP-55 checksum address (NO parentheses)
    sign_claim_hash(digest) : 32-byte digest → 65-byte signature r || s || v, v ∈ {27, 28}
                              signs claim_message(digest), never the raw digest
    recover_signer(...)     : @staticmethod — recovers an address from digest + signature

recover_signer() failure model:
    MalformedSignature  — not hex, len != 65, v ∉ {27, 28}, r or s out of range,
                          s in the upper half of the curve order
    arbitrary address   — structurally valid but wrong signature. NEVER raises.
                          Callers compare the result against the expected issuer.
"""

from pathlib import Path
from typing import Dict, Iterator, Optional, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as EthKeysValidationError

from capsulecoin.core.canonical import (
    ZERO_ADDRESS,
    claim_message,
    normalize_address,
)
from capsulecoin.core.exceptions import (
    KeyNotFoundError,
    MalformedSignature,
    ValidationError,
)


SIGNATURE_LENGTH = 65

SECP256K1_N      = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

# BIP-44 Ethereum path, same derivation Hardhat uses for its mnemonic accounts.
DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/{index}"

SignatureLike = Union[bytes, bytearray, str]

Account.enable_unaudited_hdwallet_features()


def signature_to_bytes(signature: SignatureLike) -> bytes:
    """
    Decode a signature given as raw bytes or hex (with or without 0x).
    Raises MalformedSignature if it is not decodable.
    """
    if isinstance(signature, (bytes, bytearray)):
        return bytes(signature)
    if isinstance(signature, str):
        raw = signature.strip()
        if raw[:2] in ("0x", "0X"):
            raw = raw[2:]
        try:
            return bytes.fromhex(raw)
        except ValueError as exc:
            raise MalformedSignature("Signature is not valid hex") from exc
    raise MalformedSignature(
        "Signature must be bytes or a hex string",
        {"type": type(signature).__name__},
    )


def _check_signature_structure(sig: bytes) -> None:
    if len(sig) != SIGNATURE_LENGTH:
        raise MalformedSignature(
            "Invalid signature length", {"length": len(sig)}
        )

    r = int.from_bytes(sig[0:32], "big")
    s = int.from_bytes(sig[32:64], "big")
    v = sig[64]

    if v not in (27, 28):
        raise MalformedSignature("Invalid signature 'v' value", {"v": v})
    if not 0 < r < SECP256K1_N:
        raise MalformedSignature("Invalid signature 'r' value")
    # Upper-half s values are the malleable twin of a valid signature.
    if not 0 < s <= SECP256K1_HALF_N:
        raise MalformedSignature("Invalid signature 's' value")


class ClaimKeyManager:
    """
    secp256k1 key manager for claim issuers.

    Public surface:
        ClaimKeyManager.generate()                     → new random key
        ClaimKeyManager.from_private_key(key)          → 32-byte key, bytes or hex
        ClaimKeyManager.from_file(path)                → hex key file
        ClaimKeyManager.from_mnemonic(words, index)    → BIP-44 derived key
        ClaimKeyManager.recover_signer(digest, sig)    → @staticmethod

        key.address                   (@property) → checksum address
        key.sign_claim_hash(digest)               → 65-byte signature
        key.save(path)                            → write hex key file
    """

    def __init__(self, account: LocalAccount) -> None:
        self._account: LocalAccount = account
        self._address: str          = account.address

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "ClaimKeyManager":
        """Generate a new random secp256k1 key."""
        return cls(Account.create())

    @classmethod
    def from_private_key(cls, key: Union[bytes, str]) -> "ClaimKeyManager":
        """
        Load a key from 32 raw bytes or 64 hex characters (0x optional).
        Raises ValueError if the key is malformed.
        """
        if isinstance(key, str):
            key = key.strip()
            if key[:2] in ("0x", "0X"):
                key = key[2:]
            if len(key) != 64:
                raise ValueError(
                    f"Private key must be 64 hex characters, got {len(key)}"
                )
            key = bytes.fromhex(key)
        if len(key) != 32:
            raise ValueError(f"Private key must be 32 bytes, got {len(key)}")
        return cls(Account.from_key(key))

    @classmethod
    def from_file(cls, path: Path) -> "ClaimKeyManager":
        """
        Load a private key from a file holding its hex encoding.
        Raises FileNotFoundError if path does not exist.
        Raises ValueError if the file does not contain a valid key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        try:
            return cls.from_private_key(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ValueError(f"Failed to load key from {path}: {exc}") from exc

    @classmethod
    def from_mnemonic(
        cls,
        mnemonic:      str,
        account_index: int = 0,
    ) -> "ClaimKeyManager":
        """Derive the key at m/44'/60'/0'/0/<account_index>."""
        if account_index < 0:
            raise ValueError("account_index must be non-negative")
        try:
            account = Account.from_mnemonic(
                mnemonic,
                account_path=DEFAULT_DERIVATION_PATH.format(index=account_index),
            )
        except Exception as exc:
            raise ValueError(f"Failed to derive key from mnemonic: {exc}") from exc
        return cls(account)

    # ── Identity ──────────────────────────────────────────────

    @property
    def address(self) -> str:
        """EIP-55 checksum address of this key."""
        return self._address

    # ── Signing ───────────────────────────────────────────────

    def sign_claim_hash(self, digest: bytes) -> bytes:
        """
        Sign a claim digest as a personal message.

        Returns:
            65 bytes, r || s || v with v ∈ {27, 28}.
        """
        signed = self._account.sign_message(claim_message(digest))
        return bytes(signed.signature)

    # ── Recovery ──────────────────────────────────────────────

    @staticmethod
    def recover_signer(digest: bytes, signature: SignatureLike) -> str:
        """
        Recover the address that signed claim_message(digest).

        Raises:
            MalformedSignature: structural problem with the signature bytes.

        Returns:
            Checksum address. For a well-formed signature that was not made
            over this digest the result is some unrelated address, or
            ZERO_ADDRESS when no public key satisfies the signature.
        """
        sig = signature_to_bytes(signature)
        _check_signature_structure(sig)
        message = claim_message(digest)
        try:
            return Account.recover_message(message, signature=sig)
        except (BadSignature, EthKeysValidationError, ValueError):
            return ZERO_ADDRESS

    # ── Persistence ───────────────────────────────────────────

    def save(self, path: Path) -> None:
        """
        Write the private key as 0x hex text.
        Creates parent directories if needed.
        Raises RuntimeError on write failure.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            path.write_text("0x" + bytes(self._account.key).hex() + "\n", encoding="utf-8")
        except OSError as exc:
            raise RuntimeError(f"Failed to save key to {path}: {exc}") from exc

    def __repr__(self) -> str:
        return f"ClaimKeyManager(address={self._address})"


def recover_signer(digest: bytes, signature: SignatureLike) -> str:
    """Module-level alias for ClaimKeyManager.recover_signer()."""
    return ClaimKeyManager.recover_signer(digest, signature)


def verify_claim_signature(
    digest:    bytes,
    signature: SignatureLike,
    expected:  str,
) -> bool:
    """
    True if signature recovers to expected over digest.
    False for a mismatch or a malformed signature. Never raises for those.
    """
    try:
        recovered = ClaimKeyManager.recover_signer(digest, signature)
    except MalformedSignature:
        return False
    return recovered != ZERO_ADDRESS and recovered == normalize_address(expected)


class KeyRing:
    """
    Signing keys indexed by address.

    Replaces scanning every available account for a matching address:
    callers ask for the one key they need with get(address).
    """

    def __init__(self, keys: Optional[Dict[str, ClaimKeyManager]] = None) -> None:
        self._keys: Dict[str, ClaimKeyManager] = {}
        for key in (keys or {}).values():
            self.add(key)

    @classmethod
    def from_mnemonic(cls, mnemonic: str, count: int = 20) -> "KeyRing":
        """Derive the first count accounts of a mnemonic."""
        ring = cls()
        for index in range(count):
            ring.add(ClaimKeyManager.from_mnemonic(mnemonic, index))
        return ring

    def add(self, key: ClaimKeyManager) -> None:
        self._keys[key.address] = key

    def get(self, address: str) -> ClaimKeyManager:
        """Raises KeyNotFoundError if no key in the ring matches address."""
        checksum = normalize_address(address)
        try:
            return self._keys[checksum]
        except KeyError:
            raise KeyNotFoundError(
                "No signing key for address", {"address": checksum}
            ) from None

    def addresses(self) -> list:
        return list(self._keys)

    def __contains__(self, address: str) -> bool:
        try:
            return normalize_address(address) in self._keys
        except ValidationError:
            return False

    def __iter__(self) -> Iterator[ClaimKeyManager]:
        return iter(self._keys.values())

    def __len__(self) -> int:
        return len(self._keys)
