"""
Replay ledger for offchain claims.

Tracks which (issuer, nonce) keys have been consumed. Absence means
unconsumed; an entry is never removed once written.

Optional persistence is an append-only JSONL journal, one entry per
consumed key, hash-chained from a genesis hash:

    previous_hash[0] = "0" * 64
    previous_hash[i] = sha256(JCS(entry[i - 1]))
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from capsulecoin.core.canonical import (
    canonical_hash,
    normalize_address,
    require_uint256,
)
from capsulecoin.core.exceptions import AlreadyConsumed, LedgerError, ValidationError
from capsulecoin.core.time import utc_timestamp

logger = logging.getLogger(__name__)

ReplayKey = Tuple[str, int]


@dataclass(frozen=True)
class JournalEntry:
    """A single consumed key in the journal."""
    index:         int
    previous_hash: str
    issuer:        str
    nonce:         int
    timestamp:     str
    record:        dict

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "previous_hash": self.previous_hash,
            "issuer": self.issuer,
            "nonce": str(self.nonce),
            "timestamp": self.timestamp,
            "record": self.record,
        }

    @staticmethod
    def from_dict(data: dict) -> "JournalEntry":
        return JournalEntry(
            index=data["index"],
            previous_hash=data["previous_hash"],
            issuer=normalize_address(data["issuer"], "issuer"),
            nonce=int(data["nonce"]),
            timestamp=data["timestamp"],
            record=data.get("record") or {},
        )

    def compute_hash(self) -> str:
        """Hash of this entry for chaining."""
        return canonical_hash(self.to_dict())


class ReplayLedger:
    """
    Per-issuer set of consumed nonces.

    Thread-safe. consume() is check-and-set under one lock, so two callers
    racing on the same key cannot both succeed.
    """

    GENESIS_HASH = "0" * 64

    def __init__(self, journal_path: Optional[Path] = None):
        self.journal_path = Path(journal_path) if journal_path else None
        self._lock:     threading.Lock     = threading.Lock()
        self._consumed: Set[ReplayKey]     = set()
        self._entries:  List[JournalEntry] = []

        if self.journal_path is not None and self.journal_path.exists():
            self._load()
            self.verify_or_raise()

    # ── Queries ───────────────────────────────────────────────

    def is_consumed(self, issuer: str, nonce: int) -> bool:
        key = self._key(issuer, nonce)
        with self._lock:
            return key in self._consumed

    def entries(self) -> List[JournalEntry]:
        with self._lock:
            return list(self._entries)

    def get_stats(self) -> dict:
        """Counts of consumed keys, total and by issuer."""
        with self._lock:
            by_issuer: Dict[str, int] = {}
            for issuer, _ in self._consumed:
                by_issuer[issuer] = by_issuer.get(issuer, 0) + 1
            return {
                "total_consumed": len(self._consumed),
                "by_issuer": by_issuer,
                "journal": str(self.journal_path) if self.journal_path else None,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._consumed)

    # ── Mutation ──────────────────────────────────────────────

    def consume(self, issuer: str, nonce: int, record: Optional[dict] = None) -> JournalEntry:
        """
        Mark (issuer, nonce) consumed.

        The journal line is written before in-memory state changes, so a
        failed write leaves the key unconsumed.

        Raises:
            AlreadyConsumed: key was consumed before
            LedgerError: journal write failed
        """
        key = self._key(issuer, nonce)
        with self._lock:
            if key in self._consumed:
                raise AlreadyConsumed(
                    "Nonce already consumed", {"issuer": key[0], "nonce": key[1]}
                )

            entry = JournalEntry(
                index=len(self._entries),
                previous_hash=(
                    self._entries[-1].compute_hash() if self._entries else self.GENESIS_HASH
                ),
                issuer=key[0],
                nonce=key[1],
                timestamp=utc_timestamp(),
                record=dict(record or {}),
            )
            if self.journal_path is not None:
                self._write_entry(entry)

            self._consumed.add(key)
            self._entries.append(entry)

        logger.debug(
            "Nonce consumed",
            extra={"event": "replay.consumed", "issuer": key[0][:10], "nonce": key[1]},
        )
        return entry

    # ── Integrity ─────────────────────────────────────────────

    def verify_or_raise(self) -> None:
        """Verify journal chain linkage and key uniqueness or raise LedgerError."""
        with self._lock:
            entries = list(self._entries)

        seen: Set[ReplayKey] = set()
        for i, entry in enumerate(entries):
            if entry.index != i:
                raise LedgerError(f"Index gap at position {i}: found {entry.index}")

            expected = entries[i - 1].compute_hash() if i else self.GENESIS_HASH
            if entry.previous_hash != expected:
                raise LedgerError(
                    f"Chain break at index {i}: "
                    f"expected {expected}, got {entry.previous_hash}"
                )

            key = (entry.issuer, entry.nonce)
            if key in seen:
                raise LedgerError(
                    f"Duplicate consumed key at index {i}",
                    {"issuer": entry.issuer, "nonce": entry.nonce},
                )
            seen.add(key)

    # ── Internal ──────────────────────────────────────────────

    @staticmethod
    def _key(issuer: str, nonce: int) -> ReplayKey:
        return (normalize_address(issuer, "issuer"), require_uint256(nonce, "nonce"))

    def _write_entry(self, entry: JournalEntry) -> None:
        """
        Append one line to the journal and fsync.

        On failure the file is truncated back to its previous length, so a
        partially written line never outlives the failed consume().
        """
        self.journal_path.parent.mkdir(parents=True, exist_ok=True)
        offset = self.journal_path.stat().st_size if self.journal_path.is_file() else 0
        try:
            with open(self.journal_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            self._truncate_journal(offset)
            raise LedgerError(f"Failed to write journal entry: {e}") from e

    def _truncate_journal(self, offset: int) -> None:
        if not self.journal_path.is_file():
            return
        try:
            os.truncate(self.journal_path, offset)
        except OSError as e:
            logger.error(
                "Journal rollback failed",
                extra={
                    "event": "replay.rollback_failed",
                    "path": str(self.journal_path),
                    "offset": offset,
                    "error": str(e),
                },
            )

    def _load(self) -> None:
        """Rebuild consumed keys from the journal."""
        self._entries = []
        self._consumed = set()

        try:
            with open(self.journal_path, "r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, 1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = JournalEntry.from_dict(json.loads(line))
                    except (json.JSONDecodeError, KeyError, TypeError, ValueError, ValidationError) as e:
                        raise LedgerError(f"Invalid journal entry at line {line_num}: {e}") from e
                    self._entries.append(entry)
                    self._consumed.add((entry.issuer, entry.nonce))
        except OSError as e:
            raise LedgerError(f"Failed to load journal: {e}") from e

        logger.info(
            "Replay journal loaded",
            extra={
                "event": "replay.loaded",
                "path": str(self.journal_path),
                "entries": len(self._entries),
            },
        )
