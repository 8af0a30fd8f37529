"""
Capsule Coin Replay Ledger - consumed (issuer, nonce) keys

Owned by the settlement engine. Entries are permanent.
"""

from capsulecoin.ledger.ledger import JournalEntry, ReplayLedger

__all__ = ["JournalEntry", "ReplayLedger"]
