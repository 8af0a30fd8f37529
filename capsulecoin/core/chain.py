"""
capsulecoin/core/chain.py

Local chain clock: the block height and timestamp that settlement is
evaluated against. Height never decreases.
"""

import logging
import threading
from typing import Optional

from capsulecoin.core.exceptions import ValidationError
from capsulecoin.core.models import BlockSnapshot
from capsulecoin.core.time import unix_now

logger = logging.getLogger(__name__)

DEFAULT_SECONDS_PER_BLOCK = 30


class Chain:
    """
    Thread-safe block counter.

    Usage:
        chain = Chain(height=100)
        chain.mine(5)
        snap = chain.snapshot()   # BlockSnapshot(number=105, timestamp=...)
    """

    def __init__(self, height: int = 0, timestamp: Optional[int] = None) -> None:
        if isinstance(height, bool) or not isinstance(height, int) or height < 0:
            raise ValidationError("Chain height must be a non-negative integer")
        self._lock      = threading.Lock()
        self._height    = height
        self._timestamp = unix_now() if timestamp is None else int(timestamp)

    @property
    def height(self) -> int:
        with self._lock:
            return self._height

    @property
    def timestamp(self) -> int:
        with self._lock:
            return self._timestamp

    def snapshot(self) -> BlockSnapshot:
        """Height and timestamp read together."""
        with self._lock:
            return BlockSnapshot(number=self._height, timestamp=self._timestamp)

    def mine(
        self,
        blocks:            int = 1,
        seconds_per_block: int = DEFAULT_SECONDS_PER_BLOCK,
    ) -> BlockSnapshot:
        """Advance the chain by blocks, each seconds_per_block apart."""
        if blocks < 0:
            raise ValidationError("Cannot mine a negative number of blocks")
        with self._lock:
            self._height    += blocks
            self._timestamp += blocks * seconds_per_block
            snap = BlockSnapshot(number=self._height, timestamp=self._timestamp)

        logger.debug(
            "Chain advanced",
            extra={"event": "chain.mine", "height": snap.number, "blocks": blocks},
        )
        return snap

    def __repr__(self) -> str:
        return f"Chain(height={self.height})"
