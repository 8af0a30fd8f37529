"""
Settlement engine for offchain claims.

Takes the plaintext claim fields plus a proof and, if every check passes,
moves amount from issuer to destination and consumes (issuer, nonce).
"""

import logging
import threading
from typing import Dict, Optional

from capsulecoin.core.canonical import ZERO_ADDRESS, hash_for_claim, normalize_address
from capsulecoin.core.chain import Chain
from capsulecoin.core.crypto import ClaimKeyManager, SignatureLike
from capsulecoin.core.exceptions import (
    AlreadyConsumed,
    AlreadyUsed,
    BadProof,
    CapsuleError,
    TooEarly,
)
from capsulecoin.core.models import Claim, SettlementReceipt, SettlementState
from capsulecoin.core.time import utc_timestamp
from capsulecoin.ledger.ledger import ReplayLedger
from capsulecoin.token.token import CapsuleToken

logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Settles signed claims against the token ledger.

    Check order (first failure wins):
        1. Recompute digest from the supplied fields
        2. Recover signer; must equal issuer        → BadProof
        3. One height snapshot ≥ valid_from_block   → TooEarly
        4. (issuer, nonce) not consumed             → AlreadyUsed
        5. Transfer issuer → destination            → InsufficientBalance (unchanged)
        6. Consume (issuer, nonce)

    Steps 4–6 run inside token.transaction(): the balance move and the nonce
    consumption become visible together or not at all. Steps 1–3 hold no lock.

    Anyone may submit a claim. The signature is the only authorization.
    """

    def __init__(
        self,
        token:         CapsuleToken,
        chain:         Chain,
        replay_ledger: Optional[ReplayLedger] = None,
    ):
        """
        Initialize settlement engine.

        Args:
            token: Token ledger balances move through
            chain: Source of the current block height
            replay_ledger: Consumed-nonce store; a fresh in-memory one by default
        """
        self.token  = token
        self.chain  = chain
        self.replay = replay_ledger if replay_ledger is not None else ReplayLedger()

        self._stats_lock = threading.Lock()
        self._stats: Dict[SettlementState, int] = {}

    # ── Read-only surface ─────────────────────────────────────

    @staticmethod
    def hash_for_claim(
        issuer:           str,
        destination:      str,
        amount:           int,
        valid_from_block: int,
        nonce:            int,
    ) -> bytes:
        """Digest an issuer must sign to authorize this claim."""
        return hash_for_claim(issuer, destination, amount, valid_from_block, nonce)

    def nonce_used(self, issuer: str, nonce: int) -> bool:
        return self.replay.is_consumed(issuer, nonce)

    # ── Settlement ────────────────────────────────────────────

    def claim_offchain_grant(
        self,
        signature:        SignatureLike,
        issuer:           str,
        destination:      str,
        amount:           int,
        valid_from_block: int,
        nonce:            int,
    ) -> SettlementReceipt:
        """
        Settle one claim.

        Returns:
            SettlementReceipt on success.

        Raises:
            ValidationError, MalformedSignature, BadProof, TooEarly,
            AlreadyUsed, InsufficientBalance. No state changes on any of them.
        """
        try:
            receipt = self._settle(
                signature, issuer, destination, amount, valid_from_block, nonce
            )
        except CapsuleError as exc:
            state = SettlementState.for_error(exc)
            self._record(state)
            logger.warning(
                "Claim rejected",
                extra={
                    "event": "settlement.rejected",
                    "reason": state.value,
                    "nonce": nonce,
                },
            )
            raise

        self._record(SettlementState.CONSUMED)
        logger.info(
            "Claim settled",
            extra={
                "event": "settlement.settled",
                "issuer": receipt.issuer[:10],
                "destination": receipt.destination[:10],
                "amount": receipt.amount,
                "nonce": receipt.nonce,
                "block": receipt.block_number,
            },
        )
        return receipt

    def settle(self, claim: Claim) -> SettlementReceipt:
        """Settle a parsed Claim (e.g. one entry of a ClaimBundle)."""
        return self.claim_offchain_grant(
            claim.signature,
            claim.issuer,
            claim.destination,
            claim.amount,
            claim.valid_from_block,
            claim.nonce,
        )

    def _settle(
        self,
        signature:        SignatureLike,
        issuer:           str,
        destination:      str,
        amount:           int,
        valid_from_block: int,
        nonce:            int,
    ) -> SettlementReceipt:
        # Step 1 — digest from caller-supplied fields, never from stored data
        digest = hash_for_claim(issuer, destination, amount, valid_from_block, nonce)
        issuer = normalize_address(issuer, "issuer")
        destination = normalize_address(destination, "destination")

        # Step 2 — one error for every mismatch cause
        recovered = ClaimKeyManager.recover_signer(digest, signature)
        if recovered == ZERO_ADDRESS or recovered != issuer:
            raise BadProof("Invalid claim proof")

        # Step 3 — the only height read of this attempt
        height = self.chain.height
        if height < valid_from_block:
            raise TooEarly(
                "Claim not valid yet",
                {"valid_from_block": valid_from_block, "height": height},
            )

        # Steps 4–6 — atomic check, transfer, consume
        with self.token.transaction():
            if self.replay.is_consumed(issuer, nonce):
                raise AlreadyUsed("Claim already used", {"nonce": nonce})

            self.token.transfer(issuer, destination, amount)

            try:
                self.replay.consume(
                    issuer,
                    nonce,
                    record={
                        "destination": destination,
                        "amount": str(amount),
                        "valid_from_block": valid_from_block,
                        "claim_hash": "0x" + digest.hex(),
                        "block_number": height,
                    },
                )
            except AlreadyConsumed as exc:
                raise AlreadyUsed("Claim already used", {"nonce": nonce}) from exc

        return SettlementReceipt(
            issuer=           issuer,
            destination=      destination,
            amount=           amount,
            valid_from_block= valid_from_block,
            nonce=            nonce,
            claim_hash=       "0x" + digest.hex(),
            block_number=     height,
            settled_at=       utc_timestamp(),
        )

    # ── Stats ─────────────────────────────────────────────────

    def _record(self, state: SettlementState) -> None:
        with self._stats_lock:
            self._stats[state] = self._stats.get(state, 0) + 1

    def get_settlement_stats(self) -> dict:
        """
        Get settlement outcome counts.

        Returns:
            Dict with attempt counts by state
        """
        with self._stats_lock:
            by_state = {state.value: count for state, count in self._stats.items()}
        return {
            "total": sum(by_state.values()),
            "by_state": by_state,
            "consumed_nonces": len(self.replay),
        }
