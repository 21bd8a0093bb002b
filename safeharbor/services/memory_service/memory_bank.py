"""Memory Bank - tiered, decaying store of conversation facts.

Three tiers hold views over the same MemoryPiece objects:
- short-term: every memory, FIFO-bounded
- working: important or emotionally charged memories, bounded by importance
- long-term: very important or traumatic memories, pruned by retained value

Writers (``add_memory``, ``consolidate``, ``clear_session_tiers``) hold a
single asyncio.Lock. Tiers are immutable tuples replaced on write, so a
reader that grabbed a tier always sees a consistent one.

A full snapshot is written to the key-value store after every mutation.
Persistence failures are logged and the bank keeps working in memory.
"""
import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from safeharbor.shared.storage import KeyValueStore
from safeharbor.shared.utils import Clock, SystemClock
from .config import (
    LONG_TERM_EMOTIONS,
    SNAPSHOT_VERSION,
    WORKING_EMOTIONS,
    MemoryConfig,
)
from .context import estimate_importance, extract_emotions, extract_topics
from .retention import hours_between, retention_factor

logger = logging.getLogger(__name__)


class MemoryRole(Enum):
    PATIENT = "patient"
    ASSISTANT = "assistant"


@dataclass
class MemoryPiece:
    """One remembered message.

    ``last_accessed`` and ``access_count`` change when retrieval reinforces
    the memory; ``forget_factor`` is recomputed by consolidation.
    """
    id: str
    timestamp: datetime
    content: str
    role: MemoryRole
    emotional_context: FrozenSet[str]
    topic_context: FrozenSet[str]
    importance: float
    last_accessed: datetime
    access_count: int = 1
    forget_factor: float = 1.0

    def __post_init__(self):
        if not 0.0 <= self.importance <= 1.0:
            raise ValueError(f"Importance must be 0.0-1.0, got {self.importance}")
        if self.access_count < 1:
            raise ValueError(f"access_count must be >= 1, got {self.access_count}")

    @property
    def tags(self) -> FrozenSet[str]:
        return self.emotional_context | self.topic_context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "content": self.content,
            "role": self.role.value,
            "emotionalContext": sorted(self.emotional_context),
            "topicContext": sorted(self.topic_context),
            "importance": self.importance,
            "lastAccessed": self.last_accessed.isoformat(),
            "accessCount": self.access_count,
            "forgetFactor": self.forget_factor,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryPiece":
        """Rebuild a piece from its snapshot form.

        Raises:
            KeyError, ValueError, TypeError: If the record is malformed
        """
        return cls(
            id=str(data["id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            content=str(data["content"]),
            role=MemoryRole(data["role"]),
            emotional_context=frozenset(data["emotionalContext"]),
            topic_context=frozenset(data["topicContext"]),
            importance=float(data["importance"]),
            last_accessed=datetime.fromisoformat(data["lastAccessed"]),
            access_count=int(data["accessCount"]),
            forget_factor=float(data.get("forgetFactor", 1.0)),
        )


@dataclass
class PatientProfile:
    """Aggregate of what the patient talks about and how they feel."""
    topic_counts: Dict[str, int] = field(default_factory=dict)
    emotion_counts: Dict[str, int] = field(default_factory=dict)
    significant_events: List[str] = field(default_factory=list)
    last_updated: Optional[datetime] = None

    def record(self, piece: MemoryPiece, significant: bool, max_events: int) -> None:
        for topic in piece.topic_context:
            self.topic_counts[topic] = self.topic_counts.get(topic, 0) + 1
        for emotion in piece.emotional_context:
            self.emotion_counts[emotion] = self.emotion_counts.get(emotion, 0) + 1
        if significant:
            self.significant_events = (self.significant_events + [piece.id])[-max_events:]
        self.last_updated = piece.timestamp

    def top_topics(self, limit: int = 3) -> List[str]:
        ranked = sorted(self.topic_counts.items(), key=lambda item: (-item[1], item[0]))
        return [topic for topic, _ in ranked[:limit]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topicCounts": dict(self.topic_counts),
            "emotionCounts": dict(self.emotion_counts),
            "significantEvents": list(self.significant_events),
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatientProfile":
        last_updated = data.get("lastUpdated")
        return cls(
            topic_counts={str(k): int(v) for k, v in data["topicCounts"].items()},
            emotion_counts={str(k): int(v) for k, v in data["emotionCounts"].items()},
            significant_events=[str(e) for e in data.get("significantEvents", [])],
            last_updated=datetime.fromisoformat(last_updated) if last_updated else None,
        )


@dataclass(frozen=True)
class ConsolidationReport:
    promoted: int
    expired: int
    long_term_size: int


def _default_id() -> str:
    return f"mem_{uuid.uuid4().hex[:12]}"


class MemoryBank:
    """Tiered memory store for one conversation partner.

    Args:
        store: Durable key-value store for snapshots
        namespace: Suffix for the snapshot keys (e.g. a hashed session id)
        config: Capacities and thresholds
        clock: Time source
        id_factory: Produces memory ids
    """

    def __init__(
        self,
        store: KeyValueStore,
        namespace: str = "default",
        config: Optional[MemoryConfig] = None,
        clock: Optional[Clock] = None,
        id_factory: Callable[[], str] = _default_id,
    ):
        self.config = config or MemoryConfig()
        self.clock = clock or SystemClock()
        self._store = store
        self._id_factory = id_factory
        self._lock = asyncio.Lock()

        self._short_term: Tuple[MemoryPiece, ...] = ()
        self._working: Tuple[MemoryPiece, ...] = ()
        self._long_term: Tuple[MemoryPiece, ...] = ()
        self.profile = PatientProfile()

        self.snapshot_key = f"{self.config.snapshot_key_prefix}:{namespace}"
        self.backup_key = f"{self.snapshot_key}:backup"
        self._last_backup_at: Optional[datetime] = None
        self.persistence_healthy = True

    @property
    def short_term(self) -> Tuple[MemoryPiece, ...]:
        return self._short_term

    @property
    def working(self) -> Tuple[MemoryPiece, ...]:
        return self._working

    @property
    def long_term(self) -> Tuple[MemoryPiece, ...]:
        return self._long_term

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    def all_pieces(self) -> List[MemoryPiece]:
        """Every distinct piece across tiers, oldest first."""
        seen: Dict[str, MemoryPiece] = {}
        for tier in (self._short_term, self._working, self._long_term):
            for piece in tier:
                seen.setdefault(piece.id, piece)
        return sorted(seen.values(), key=lambda p: (p.timestamp, p.id))

    async def add_memory(
        self,
        content: str,
        role: MemoryRole,
        emotions: Optional[Iterable[str]] = None,
        topics: Optional[Iterable[str]] = None,
        importance: Optional[float] = None,
    ) -> MemoryPiece:
        """Store a message in short-term memory and mirror it where it qualifies.

        Args:
            content: Message text
            role: Who said it
            emotions: Emotion tags; extracted from content when omitted
            topics: Topic tags; extracted from content when omitted
            importance: 0.0-1.0; estimated from content when omitted

        Returns:
            The stored MemoryPiece

        Logs:
            - MEMORY_ADDED: After tiers are updated
        """
        emotion_tags = frozenset(emotions) if emotions is not None else extract_emotions(content)
        topic_tags = frozenset(topics) if topics is not None else extract_topics(content)
        if importance is None:
            importance = estimate_importance(content, emotion_tags, topic_tags)
        importance = max(0.0, min(1.0, importance))

        async with self._lock:
            now = self.clock.now()
            piece = MemoryPiece(
                id=self._id_factory(),
                timestamp=now,
                content=content,
                role=role,
                emotional_context=emotion_tags,
                topic_context=topic_tags,
                importance=importance,
                last_accessed=now,
            )

            short_term = self._short_term + (piece,)
            self._short_term = short_term[-self.config.short_term_capacity:]

            in_working = (
                importance > self.config.working_importance_threshold
                or bool(emotion_tags & WORKING_EMOTIONS)
            )
            if in_working:
                self._working = self._evict_least_important(
                    self._working + (piece,), self.config.working_capacity
                )

            in_long_term = (
                importance > self.config.long_term_importance_threshold
                or bool(emotion_tags & LONG_TERM_EMOTIONS)
            )
            if in_long_term:
                self._long_term = self._prune_long_term(self._long_term + (piece,), now)

            if role == MemoryRole.PATIENT:
                self.profile.record(
                    piece,
                    significant=importance >= self.config.significant_event_importance,
                    max_events=self.config.max_significant_events,
                )

            logger.debug(
                "MEMORY_ADDED",
                extra={
                    "memory_id": piece.id,
                    "role": role.value,
                    "importance": importance,
                    "working": in_working,
                    "long_term": in_long_term,
                }
            )

            await self._persist()
        return piece

    async def consolidate(self) -> ConsolidationReport:
        """Promote aged important short-term memories and expire the rest.

        Short-term items older than the consolidation age move to long-term
        when their importance is above the consolidation threshold
        (idempotent by id), and all aged items leave short-term. Long-term
        forget factors are then recomputed.

        Logs:
            - MEMORY_CONSOLIDATED: With promoted/expired counts
        """
        async with self._lock:
            now = self.clock.now()
            long_term_ids = {piece.id for piece in self._long_term}
            promoted: List[MemoryPiece] = []
            kept: List[MemoryPiece] = []
            expired = 0

            for piece in self._short_term:
                age = hours_between(piece.timestamp, now)
                if age <= self.config.consolidation_age_hours:
                    kept.append(piece)
                    continue
                expired += 1
                if (
                    piece.importance > self.config.consolidation_importance_threshold
                    and piece.id not in long_term_ids
                ):
                    promoted.append(piece)
                    long_term_ids.add(piece.id)

            for piece in self._long_term + tuple(promoted):
                piece.forget_factor = retention_factor(
                    hours_between(piece.last_accessed, now),
                    piece.importance,
                    piece.access_count,
                )

            self._short_term = tuple(kept)
            self._long_term = self._prune_long_term(self._long_term + tuple(promoted), now)

            report = ConsolidationReport(
                promoted=len(promoted),
                expired=expired,
                long_term_size=len(self._long_term),
            )
            logger.info(
                "MEMORY_CONSOLIDATED",
                extra={
                    "promoted": report.promoted,
                    "expired": report.expired,
                    "long_term_size": report.long_term_size,
                }
            )

            await self._persist()
        return report

    async def clear_session_tiers(self) -> None:
        """Forget the current conversation. Long-term memory and the profile stay."""
        async with self._lock:
            self._short_term = ()
            self._working = ()
            logger.info(
                "MEMORY_SESSION_TIERS_CLEARED",
                extra={"long_term_size": len(self._long_term)}
            )
            await self._persist()

    def reinforce(self, pieces: Iterable[MemoryPiece]) -> None:
        """Mark pieces as accessed now. Called by retrieval."""
        now = self.clock.now()
        for piece in pieces:
            piece.last_accessed = now
            piece.access_count += 1

    async def initialize(self) -> bool:
        """Load the newest valid snapshot.

        Tries the primary snapshot, then the backup copy. Never raises.

        Returns:
            True if a snapshot was restored, False if starting empty
        """
        for source, key in (("primary", self.snapshot_key), ("backup", self.backup_key)):
            try:
                raw = await self._store.get(key)
            except Exception as e:
                logger.error(
                    "MEMORY_SNAPSHOT_LOAD_FAILED",
                    extra={"source": source, "error": str(e), "error_type": type(e).__name__}
                )
                continue

            if raw is None:
                continue

            try:
                self._restore(json.loads(raw))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(
                    "MEMORY_SNAPSHOT_INVALID",
                    extra={"source": source, "error": str(e), "error_type": type(e).__name__}
                )
                continue

            logger.info(
                "MEMORY_BANK_RESTORED",
                extra={"source": source, **self.status()}
            )
            return True

        logger.info("MEMORY_BANK_EMPTY_START", extra={"snapshot_key": self.snapshot_key})
        return False

    def snapshot(self) -> Dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "shortTermMemory": [piece.to_dict() for piece in self._short_term],
            "workingMemory": [piece.to_dict() for piece in self._working],
            "longTermMemory": [piece.to_dict() for piece in self._long_term],
            "patientProfile": self.profile.to_dict(),
        }

    def status(self) -> Dict[str, Any]:
        return {
            "short_term": len(self._short_term),
            "working": len(self._working),
            "long_term": len(self._long_term),
            "significant_events": len(self.profile.significant_events),
            "top_topics": self.profile.top_topics(),
        }

    def _restore(self, data: Dict[str, Any]) -> None:
        if data.get("version") != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version {data.get('version')!r}")

        # Pieces shared between tiers are restored as one object
        pieces: Dict[str, MemoryPiece] = {}

        def load(records: List[Dict[str, Any]]) -> Tuple[MemoryPiece, ...]:
            tier = []
            for record in records:
                piece = pieces.get(record["id"]) or MemoryPiece.from_dict(record)
                pieces[piece.id] = piece
                tier.append(piece)
            return tuple(tier)

        short_term = load(data["shortTermMemory"])
        working = load(data["workingMemory"])
        long_term = load(data["longTermMemory"])
        profile = PatientProfile.from_dict(data["patientProfile"])

        self._short_term = short_term[-self.config.short_term_capacity:]
        # A snapshot from a larger configuration is cut down the same way adds are
        self._working = self._evict_least_important(working, self.config.working_capacity)
        self._long_term = self._prune_long_term(long_term, self.clock.now())
        self.profile = profile

    async def _persist(self) -> None:
        payload = json.dumps(self.snapshot())
        try:
            await self._store.set(self.snapshot_key, payload)
            now = self.clock.now()
            backup_due = (
                self._last_backup_at is None
                or (now - self._last_backup_at).total_seconds() >= self.config.backup_interval_seconds
            )
            if backup_due:
                await self._store.set(self.backup_key, payload)
                self._last_backup_at = now
            self.persistence_healthy = True
        except Exception as e:
            self.persistence_healthy = False
            logger.error(
                "MEMORY_SNAPSHOT_PERSIST_FAILED",
                extra={
                    "snapshot_key": self.snapshot_key,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "CONTINUING_IN_MEMORY",
                }
            )

    @staticmethod
    def _evict_least_important(
        tier: Tuple[MemoryPiece, ...], capacity: int
    ) -> Tuple[MemoryPiece, ...]:
        pieces = list(tier)
        while len(pieces) > capacity:
            victim = min(pieces, key=lambda p: (p.importance, p.timestamp))
            pieces.remove(victim)
        return tuple(pieces)

    def _prune_long_term(
        self, tier: Tuple[MemoryPiece, ...], now: datetime
    ) -> Tuple[MemoryPiece, ...]:
        pieces = list(tier)
        if len(pieces) <= self.config.long_term_capacity:
            return tuple(pieces)

        def retained_value(piece: MemoryPiece) -> float:
            return piece.importance * retention_factor(
                hours_between(piece.last_accessed, now),
                piece.importance,
                piece.access_count,
            )

        ranked = sorted(pieces, key=lambda p: (retained_value(p), p.timestamp))
        dropped = {p.id for p in ranked[:len(pieces) - self.config.long_term_capacity]}
        return tuple(p for p in pieces if p.id not in dropped)
