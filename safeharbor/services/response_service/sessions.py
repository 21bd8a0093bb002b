"""Per-session state and the one-turn-at-a-time guard."""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

from safeharbor.shared.errors import SessionBusyError
from safeharbor.shared.utils import Clock, SystemClock, hash_pii
from safeharbor.services.conversation_service import (
    ConversationConfig,
    ConversationState,
    FeedbackLoopDetector,
)
from safeharbor.services.crisis_engine import SessionCrisisState
from safeharbor.services.memory_service import MemoryBank, MemoryGrounder

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Everything the pipeline keeps for one session."""
    session_id_hash: str
    conversation: ConversationState
    loop_detector: FeedbackLoopDetector
    crisis: SessionCrisisState
    memory_bank: MemoryBank
    grounder: MemoryGrounder
    initialized: bool = False
    last_active: Optional[datetime] = None

    async def start_new_conversation(self, now: datetime, config: ConversationConfig) -> None:
        """Reset conversation and crisis state; long-term memory stays."""
        self.conversation = ConversationState.create(config)
        self.loop_detector.state = self.conversation
        self.crisis.reset(now)
        await self.memory_bank.clear_session_tiers()


class SessionRegistry:
    """Owns session state and rejects overlapping turns for a session.

    A second turn for a session whose previous turn is still in flight
    raises SessionBusyError; it is never queued. Idle sessions are dropped
    by ``evict_idle``; their Memory Bank comes back from its snapshot on the
    next turn.

    Args:
        factory: Builds fresh state for a hashed session id
        clock: Time source for idle tracking
    """

    def __init__(self, factory: Callable[[str], SessionState], clock: Optional[Clock] = None):
        self._factory = factory
        self._clock = clock or SystemClock()
        self._sessions: Dict[str, SessionState] = {}
        self._in_flight: Set[str] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id_hash: str):
        return self._sessions.get(session_id_hash)

    def is_busy(self, session_id_hash: str) -> bool:
        return session_id_hash in self._in_flight

    def banks(self) -> List[MemoryBank]:
        return [session.memory_bank for session in self._sessions.values()]

    def evict_idle(self, max_idle_seconds: float, crisis_idle_seconds: float) -> int:
        """Drop sessions with no completed turn for longer than the idle limit.

        Sessions with a turn in flight are never dropped. A session in an
        active crisis is held for ``crisis_idle_seconds`` instead, since its
        crisis record lives only in memory.

        Returns:
            Number of sessions evicted
        """
        now = self._clock.now()
        evicted = []
        for session_id_hash, session in self._sessions.items():
            if session_id_hash in self._in_flight:
                continue
            in_crisis = session.crisis.consecutive_crisis_count > 0
            limit = crisis_idle_seconds if in_crisis else max_idle_seconds
            last = session.last_active
            if last is None or (now - last).total_seconds() > limit:
                evicted.append(session_id_hash)

        for session_id_hash in evicted:
            del self._sessions[session_id_hash]
        if evicted:
            logger.info(
                "SESSIONS_EVICTED",
                extra={"evicted": len(evicted), "remaining": len(self._sessions)}
            )
        return len(evicted)

    @asynccontextmanager
    async def turn(self, session_id: str) -> AsyncIterator[SessionState]:
        """Hold the session for the duration of one turn.

        Raises:
            SessionBusyError: A turn for this session is already running
        """
        session_id_hash = hash_pii(session_id)
        # Check and mark with no await in between
        if session_id_hash in self._in_flight:
            logger.warning("SESSION_TURN_REJECTED", extra={"session_id_hash": session_id_hash})
            raise SessionBusyError(session_id_hash)
        self._in_flight.add(session_id_hash)

        try:
            session = self._sessions.get(session_id_hash)
            if session is None:
                session = self._factory(session_id_hash)
                self._sessions[session_id_hash] = session
                logger.info("SESSION_CREATED", extra={"session_id_hash": session_id_hash})
            if not session.initialized:
                await session.memory_bank.initialize()
                session.initialized = True
            yield session
            session.last_active = self._clock.now()
        finally:
            self._in_flight.discard(session_id_hash)
