"""
Capsule Coin Vesting - off-chain schedule compilation into signed claims.
"""

from capsulecoin.vesting.compiler import (
    VestingCompiler,
    VestingEntry,
    block_for_unlock,
    parse_schedule,
    scale_amount,
)

__all__ = [
    "VestingCompiler",
    "VestingEntry",
    "block_for_unlock",
    "parse_schedule",
    "scale_amount",
]
