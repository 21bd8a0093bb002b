"""Conversation Service: feedback-loop detection and conversation boundaries.

Components:
- feedback_loop.py: ConversationState and FeedbackLoopDetector
- new_conversation.py: NewConversationDetector
- config.py: complaint lexicons, recovery replies and thresholds
"""

from .config import ConversationConfig
from .feedback_loop import ConversationState, FeedbackLoopDetector, LoopCheckResult
from .new_conversation import EXPLICIT_RESET, INACTIVITY_GAP, NewConversationDetector

__all__ = [
    "ConversationConfig",
    "ConversationState",
    "FeedbackLoopDetector",
    "LoopCheckResult",
    "EXPLICIT_RESET",
    "INACTIVITY_GAP",
    "NewConversationDetector",
]
