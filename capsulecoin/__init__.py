"""
capsulecoin/__init__.py

Capsule Coin: capped ERC20-style token with offchain claims.

A holder signs a claim (destination, amount, valid-from block, nonce) offline;
anyone later submits it to the settlement engine, which checks the proof,
the block height and the replay ledger before moving funds exactly once.
"""

__version__ = "0.3.0"

from capsulecoin.core.canonical import (
    canonical_json_encode,
    claim_message,
    hash_for_claim,
)
from capsulecoin.core.chain import Chain
from capsulecoin.core.crypto import (
    ClaimKeyManager,
    KeyRing,
    recover_signer,
    verify_claim_signature,
)
from capsulecoin.core.exceptions import (
    AlreadyUsed,
    BadProof,
    CapExceeded,
    CapsuleError,
    InsufficientBalance,
    MalformedSignature,
    OwnershipError,
    TooEarly,
    ValidationError,
)
from capsulecoin.core.models import (
    BlockSnapshot,
    Claim,
    ClaimBundle,
    SettlementReceipt,
    SettlementState,
)
from capsulecoin.ledger.ledger import ReplayLedger
from capsulecoin.settlement.engine import SettlementEngine
from capsulecoin.token.token import CapsuleToken
from capsulecoin.vesting.compiler import VestingCompiler

__all__ = [
    # Core types
    "BlockSnapshot",
    "CapsuleToken",
    "Chain",
    "Claim",
    "ClaimBundle",
    "ClaimKeyManager",
    "KeyRing",
    "ReplayLedger",
    "SettlementEngine",
    "SettlementReceipt",
    "SettlementState",
    "VestingCompiler",
    # Errors
    "AlreadyUsed",
    "BadProof",
    "CapExceeded",
    "CapsuleError",
    "InsufficientBalance",
    "MalformedSignature",
    "OwnershipError",
    "TooEarly",
    "ValidationError",
    # Helpers
    "canonical_json_encode",
    "claim_message",
    "hash_for_claim",
    "recover_signer",
    "verify_claim_signature",
]
