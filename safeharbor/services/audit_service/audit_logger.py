"""Crisis audit log - append-only, hash-chained record of crisis events.

Entries are keyed by (session id hash, timestamp). Recording the same key
twice returns the existing entry. Each entry carries the hash of the
previous one so tampering is detectable with ``verify_chain``.
"""
import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple
import uuid

from safeharbor.shared.storage import KeyValueStore
from safeharbor.services.crisis_engine.events import CrisisEvent

logger = logging.getLogger(__name__)

GENESIS_HASH = "genesis"

AuditKey = Tuple[str, str]


@dataclass(frozen=True)
class CrisisAuditEntry:
    """Immutable audit log entry.

    ``payload`` is the notification payload; the remaining fields are
    audit-only.
    """
    entry_id: str
    session_id: str
    timestamp: datetime
    detection_method: str
    payload: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = ""
    entry_hash: str = ""

    @property
    def key(self) -> AuditKey:
        return (self.session_id, self.timestamp.isoformat())

    def compute_hash(self) -> str:
        """Compute SHA-256 hash of entry for verification.

        Returns:
            Hex-encoded hash string
        """
        content = {
            "entry_id": self.entry_id,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "detection_method": self.detection_method,
            "payload": self.payload,
            "previous_hash": self.previous_hash,
        }
        content_str = json.dumps(content, sort_keys=True)
        return hashlib.sha256(content_str.encode()).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        record = dict(self.payload)
        record.update({
            "entryId": self.entry_id,
            "detectionMethod": self.detection_method,
            "previousHash": self.previous_hash,
            "entryHash": self.entry_hash,
        })
        return record


class CrisisAuditLog:
    """Append-only crisis audit log.

    Without a store every entry is kept in memory in append order. With a
    store, each entry is also written under ``<prefix>:<session>:<timestamp>``
    and only the most recent ``max_cached_entries`` stay in memory; older
    keys are checked against the store for duplicates. A store write
    failure is logged and the in-memory entry is kept.

    Args:
        store: Durable store holding the full log
        key_prefix: Prefix for stored entry keys
        max_cached_entries: In-memory window when a store is set
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        key_prefix: str = "safeharbor:audit",
        max_cached_entries: int = 1000,
    ):
        self.store = store
        self.key_prefix = key_prefix
        self.max_cached_entries = max_cached_entries
        self._entries: Deque[CrisisAuditEntry] = deque()
        self._by_key: Dict[AuditKey, CrisisAuditEntry] = {}
        self._last_hash: str = GENESIS_HASH
        # previous_hash of the oldest entry still in memory
        self._anchor_hash: str = GENESIS_HASH
        self._count = 0
        self._lock = asyncio.Lock()

        logger.info(
            "AUDIT_LOGGER_INITIALIZED",
            extra={"persistent": store is not None, "max_cached_entries": max_cached_entries}
        )

    def __len__(self) -> int:
        return self._count

    @property
    def cached_count(self) -> int:
        return len(self._entries)

    async def record(self, event: CrisisEvent) -> CrisisAuditEntry:
        """Append an entry for a crisis event.

        Args:
            event: Crisis event to record

        Returns:
            The new entry, or the existing one for the same key

        Logs:
            - AUDIT_ENTRY_CREATED: After entry is stored
            - AUDIT_ENTRY_DUPLICATE: Key already recorded
        """
        async with self._lock:
            key = (event.session_id, event.timestamp.isoformat())
            existing = self._by_key.get(key)
            if existing is None and self._count > len(self._entries):
                existing = await self._load(event)
            if existing is not None:
                logger.info(
                    "AUDIT_ENTRY_DUPLICATE",
                    extra={"entry_id": existing.entry_id, "session_id_hash": event.session_id}
                )
                return existing

            entry = CrisisAuditEntry(
                entry_id=f"audit_{uuid.uuid4().hex[:16]}",
                session_id=event.session_id,
                timestamp=event.timestamp,
                detection_method=event.detection_method,
                payload=event.to_notification_payload(),
                previous_hash=self._last_hash,
            )
            entry = replace(entry, entry_hash=entry.compute_hash())

            self._entries.append(entry)
            self._by_key[key] = entry
            self._last_hash = entry.entry_hash
            self._count += 1
            if self.store is not None:
                self._trim()

        logger.info(
            "AUDIT_ENTRY_CREATED",
            extra={
                "entry_id": entry.entry_id,
                "session_id_hash": entry.session_id,
                "severity": event.severity.value,
                "entry_hash": entry.entry_hash[:16],  # Truncated for logs
            }
        )

        if self.store is not None:
            await self._persist(entry)
        return entry

    def get(self, session_id: str, timestamp: datetime) -> Optional[CrisisAuditEntry]:
        """Entry for a key, if it is still held in memory."""
        return self._by_key.get((session_id, timestamp.isoformat()))

    def entries_for(self, session_id: str) -> List[CrisisAuditEntry]:
        return [e for e in self._entries if e.session_id == session_id]

    def verify_chain(self) -> bool:
        """Verify integrity of the in-memory audit chain.

        Returns:
            True if chain is valid, False if tampered
        """
        expected_prev = self._anchor_hash
        for entry in self._entries:
            if entry.previous_hash != expected_prev:
                logger.critical(
                    "AUDIT_CHAIN_VERIFICATION_FAILED",
                    extra={
                        "entry_id": entry.entry_id,
                        "expected_prev": expected_prev[:16],
                        "actual_prev": entry.previous_hash[:16],
                    }
                )
                return False

            computed = entry.compute_hash()
            if computed != entry.entry_hash:
                logger.critical(
                    "AUDIT_ENTRY_HASH_MISMATCH",
                    extra={
                        "entry_id": entry.entry_id,
                        "computed": computed[:16],
                        "stored": entry.entry_hash[:16],
                    }
                )
                return False

            expected_prev = entry.entry_hash

        logger.info("AUDIT_CHAIN_VERIFIED", extra={"entry_count": len(self._entries)})
        return True

    async def _persist(self, entry: CrisisAuditEntry) -> None:
        key = self._store_key(entry.session_id, entry.timestamp)
        try:
            await self.store.set(key, json.dumps(entry.to_dict(), sort_keys=True))
        except Exception as e:
            logger.critical(
                "AUDIT_ENTRY_PERSIST_FAILED",
                extra={
                    "entry_id": entry.entry_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )

    def _trim(self) -> None:
        while len(self._entries) > self.max_cached_entries:
            dropped = self._entries.popleft()
            del self._by_key[dropped.key]
            self._anchor_hash = dropped.entry_hash

    def _store_key(self, session_id: str, timestamp: datetime) -> str:
        return f"{self.key_prefix}:{session_id}:{timestamp.isoformat()}"

    async def _load(self, event: CrisisEvent) -> Optional[CrisisAuditEntry]:
        """Stored entry for the event's key, or None."""
        try:
            raw = await self.store.get(self._store_key(event.session_id, event.timestamp))
        except Exception as e:
            logger.error(
                "AUDIT_ENTRY_LOOKUP_FAILED",
                extra={
                    "session_id_hash": event.session_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return None
        if raw is None:
            return None

        record = json.loads(raw)
        return CrisisAuditEntry(
            entry_id=record.pop("entryId"),
            session_id=event.session_id,
            timestamp=event.timestamp,
            detection_method=record.pop("detectionMethod"),
            previous_hash=record.pop("previousHash"),
            entry_hash=record.pop("entryHash"),
            payload=record,
        )
