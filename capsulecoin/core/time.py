"""
capsulecoin/core/time.py

THE ONLY WALL-CLOCK TIMESTAMP FUNCTIONS IN CAPSULE COIN.

Wire format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)
"""

import time
from datetime import datetime, timezone


def utc_timestamp() -> str:
    """
    Return current UTC time in wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"


def unix_now() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())
