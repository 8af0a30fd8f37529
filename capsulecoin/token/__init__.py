"""
Capsule Coin token ledger.

The balance store claim settlement moves funds through. Settlement depends on
transfer() being atomic and raising InsufficientBalance without side effects.
"""

from capsulecoin.token.token import CapsuleToken, TransferEvent

__all__ = ["CapsuleToken", "TransferEvent"]
