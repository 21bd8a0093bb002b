"""Detects when the user is starting a new conversation.

A new conversation starts when the whole message asks to start over, or
after a long gap since the last user message.
"""
import logging
import re
from datetime import datetime
from typing import Optional

from safeharbor.shared.utils.text import normalize_text
from .config import RESET_PATTERN, ConversationConfig
from .feedback_loop import ConversationState

logger = logging.getLogger(__name__)

EXPLICIT_RESET = "explicit_reset"
INACTIVITY_GAP = "inactivity_gap"


class NewConversationDetector:

    def __init__(self, config: Optional[ConversationConfig] = None):
        self.config = config or ConversationConfig()
        self._reset = re.compile(RESET_PATTERN, re.IGNORECASE)

    def detect(self, text: str, state: ConversationState, now: datetime) -> Optional[str]:
        """Reason a new conversation is starting, or None.

        Args:
            text: Current user message
            state: Session conversation state (before this message is recorded)
            now: Arrival time of the message
        """
        if self._reset.match(normalize_text(text)):
            return EXPLICIT_RESET

        last = state.last_user_message_at
        if last is not None:
            gap_minutes = (now - last).total_seconds() / 60.0
            if gap_minutes > self.config.inactivity_gap_minutes:
                logger.info(
                    "CONVERSATION_INACTIVITY_GAP",
                    extra={"gap_minutes": round(gap_minutes, 1)}
                )
                return INACTIVITY_GAP
        return None
