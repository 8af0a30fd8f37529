"""
Capsule Coin Settlement Engine

The Settlement Engine reconciles:
- a signed claim (what the issuer AUTHORIZED)
- the chain height (WHEN it may be paid)
- the replay ledger (WHETHER it was already paid)

Critical Invariants:
- (issuer, nonce) settles at most once, ever
- Any altered field fails as BadProof, indistinguishable from a bad signature
- No settlement before valid_from_block
- Balance move and nonce consumption are one atomic unit
"""

from capsulecoin.settlement.engine import SettlementEngine

__all__ = ["SettlementEngine"]
