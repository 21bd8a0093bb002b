"""Feedback-Loop Detector - catches the assistant repeating itself.

Tracks recent generated responses and the user's complaints. When a loop is
found, a recovery reply built from what the user actually said replaces the
offending response and the repetition counters start over.
"""
import logging
import random
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, List, Optional, Sequence

from safeharbor.shared.utils.text import normalize_text, overlap_ratio, strip_punctuation
from safeharbor.services.memory_service.context import extract_emotions
from .config import (
    COMPLAINT_PATTERNS,
    EMOTION_REPLIES,
    GENERIC_REPLIES,
    GRIEF_PATTERN,
    GRIEF_REPLIES,
    PET_LOSS_PATTERN,
    PET_LOSS_REPLIES,
    RECOVERY_PREFIX,
    ConversationConfig,
)

logger = logging.getLogger(__name__)

# Emotions reported back to the user, most specific first
_EMOTION_WORDS = (
    ("grief", "grief-stricken"),
    ("devastated", "devastated"),
    ("scared", "scared"),
    ("anxious", "anxious"),
    ("angry", "angry"),
    ("hopeless", "hopeless"),
    ("lonely", "lonely"),
    ("sad", "sad"),
)


@dataclass
class ConversationState:
    """Per-session conversation tracking."""
    user_message_history: Deque[str] = field(default_factory=lambda: deque(maxlen=10))
    roger_response_history: Deque[str] = field(default_factory=lambda: deque(maxlen=5))
    feedback_loop_detected: bool = False
    repetition_count: Dict[str, int] = field(default_factory=dict)
    last_user_message_at: Optional[datetime] = None
    message_count: int = 0

    @classmethod
    def create(cls, config: ConversationConfig) -> "ConversationState":
        return cls(
            user_message_history=deque(maxlen=config.user_history_size),
            roger_response_history=deque(maxlen=config.response_buffer_size),
        )

    def record_user_message(self, text: str, at: datetime) -> None:
        self.user_message_history.append(text)
        self.last_user_message_at = at
        self.message_count += 1


@dataclass(frozen=True)
class LoopCheckResult:
    detected: bool
    reason: str = ""
    recovery_response: Optional[str] = None

    def __bool__(self) -> bool:
        return self.detected


class FeedbackLoopDetector:
    """Detects repetitive responses and complaints for one session.

    Args:
        state: Conversation state to track into
        config: Thresholds
        rng: Seeded random source for recovery phrasing
    """

    def __init__(
        self,
        state: Optional[ConversationState] = None,
        config: Optional[ConversationConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or ConversationConfig()
        self.state = state or ConversationState.create(self.config)
        self._rng = rng or random.Random()
        self._complaints = [re.compile(p, re.IGNORECASE) for p in COMPLAINT_PATTERNS]
        self._pet_loss = re.compile(PET_LOSS_PATTERN, re.IGNORECASE)
        self._grief = re.compile(GRIEF_PATTERN, re.IGNORECASE)

    def track_response(self, text: str) -> None:
        """Record a response that was sent to the user.

        A normalised text seen twice in the buffer sets
        ``feedback_loop_detected``. Three pairwise-dissimilar responses in a
        row clear it.
        """
        state = self.state
        normalized = strip_punctuation(text)
        state.roger_response_history.append(text)

        in_buffer = {strip_punctuation(r) for r in state.roger_response_history}
        state.repetition_count = {
            key: count for key, count in state.repetition_count.items() if key in in_buffer
        }
        state.repetition_count[normalized] = state.repetition_count.get(normalized, 0) + 1

        if state.repetition_count[normalized] >= self.config.repetition_limit:
            if not state.feedback_loop_detected:
                logger.warning(
                    "FEEDBACK_LOOP_REPETITION",
                    extra={"repetitions": state.repetition_count[normalized]}
                )
            state.feedback_loop_detected = True
        elif state.feedback_loop_detected and self._recent_responses_dissimilar():
            state.feedback_loop_detected = False
            logger.info("FEEDBACK_LOOP_CLEARED")

    def check_feedback_loop(
        self, user_input: str, user_history: Sequence[str] = ()
    ) -> LoopCheckResult:
        """Decide whether the conversation is stuck.

        Detected when the user complains, when the last two responses
        overlap by at least the similarity threshold, or when a response has
        repeated. On detection the repetition counters are reset and a
        recovery reply is returned.

        Logs:
            - FEEDBACK_LOOP_DETECTED: With the reason
        """
        reason = ""
        if self.is_complaint(user_input):
            reason = "user_complaint"
        elif self._last_two_similar():
            reason = "similar_responses"
        elif self.state.feedback_loop_detected:
            reason = "repeated_response"

        if not reason:
            return LoopCheckResult(detected=False)

        recovery = self.build_recovery(user_input, user_history)
        self.state.repetition_count = {}
        self.state.feedback_loop_detected = False

        logger.warning(
            "FEEDBACK_LOOP_DETECTED",
            extra={"reason": reason, "tracked_responses": len(self.state.roger_response_history)}
        )
        return LoopCheckResult(detected=True, reason=reason, recovery_response=recovery)

    def is_complaint(self, text: str) -> bool:
        lowered = normalize_text(text)
        return any(pattern.search(lowered) for pattern in self._complaints)

    def build_recovery(self, user_input: str, user_history: Sequence[str] = ()) -> str:
        """Topic-specific reply for the latest thing the user said.

        Pet loss, then grief, then a named emotion, then a generic
        re-engagement, checked against the input first and recent history
        second.
        """
        sources: List[str] = [user_input] + list(reversed(list(user_history)[-3:]))
        for source in sources:
            if self._pet_loss.search(source):
                return f"{RECOVERY_PREFIX} {self._rng.choice(PET_LOSS_REPLIES)}"
        for source in sources:
            if self._grief.search(source):
                return f"{RECOVERY_PREFIX} {self._rng.choice(GRIEF_REPLIES)}"
        for source in sources:
            emotions = extract_emotions(source)
            for tag, word in _EMOTION_WORDS:
                if tag in emotions:
                    reply = self._rng.choice(EMOTION_REPLIES).format(emotion=word)
                    return f"{RECOVERY_PREFIX} {reply}"
        return f"{RECOVERY_PREFIX} {self._rng.choice(GENERIC_REPLIES)}"

    def _last_two_similar(self) -> bool:
        history = self.state.roger_response_history
        if len(history) < 2:
            return False
        return overlap_ratio(history[-1], history[-2]) >= self.config.similarity_threshold

    def _recent_responses_dissimilar(self) -> bool:
        recent = list(self.state.roger_response_history)[-self.config.dissimilar_window:]
        if len(recent) < self.config.dissimilar_window:
            return False
        return all(
            overlap_ratio(a, b) < self.config.similarity_threshold
            for i, a in enumerate(recent)
            for b in recent[i + 1:]
        )
