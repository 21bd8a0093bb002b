"""Conversation service lexicons and thresholds."""
from dataclasses import dataclass
from typing import Tuple

# Complaints aimed at the assistant: repeating itself, not listening, or
# missing the point. Each pattern needs "you" (or "yourself") so a user
# talking about their own attention or a robot toy does not match.
COMPLAINT_PATTERNS: Tuple[str, ...] = (
    r"\bi (?:just|already) (?:told|said to) you\b",
    r"\bi already said (?:that|this|it)\b",
    r"\byou (?:already|just) said (?:that|this|it)\b",
    r"\byou said (?:that|this|it) already\b",
    r"\byou(?:'re| are)? (?:not|never) (?:listening|paying attention|hearing me)\b",
    r"\b(?:are|were) you (?:even )?(?:listening|paying attention)\b",
    r"\brepeating yourself\b",
    r"\byou(?:'re| are) repeating\b",
    r"\byou keep (?:saying|repeating|asking)\b",
    r"\byou(?:'re| are| sound)? like a broken record\b",
    r"\bdid you (?:even )?read\b",
    r"\byou sound like a (?:robot|bot)\b",
    r"\byou(?:'re| are) (?:just )?a (?:robot|bot)\b",
    r"\bthat's not what i (?:said|meant)\b",
    r"\bwhy do you keep\b",
    r"\byou(?:'re| are)? not (?:understanding|hearing) me\b",
    r"\byou don't understand\b",
)

# A whole message asking to start over. Anchored so a reset phrase inside a
# longer disclosure never wipes the conversation.
RESET_PATTERN = (
    r"^(?:(?:ok|okay|so|um|hey|jk|actually|just kidding),? )*"
    r"(?:(?:can|could) we (?:just )?|let's (?:just )?|lets (?:just )?|i (?:just )?want to |i'd like to )?"
    r"(?:start (?:over|fresh|again|from scratch)|(?:start )?a new conversation|new conversation)"
    r"(?: please)?[.!?]*$"
)

RECOVERY_PREFIX = "I apologize for not properly acknowledging what you've shared."

PET_LOSS_PATTERN = (
    r"\b(?:dog|cat|pet|puppy|kitten|hamster|rabbit)\b.*\b(?:died|passed|lost|put down|gone|ran away)\b"
    r"|\b(?:lost|died|put down)\b.*\b(?:dog|cat|pet|puppy|kitten)\b"
)
GRIEF_PATTERN = r"\b(?:died|passed away|death|funeral|lost my|grief|grieving|mourning)\b"

PET_LOSS_REPLIES: Tuple[str, ...] = (
    "I'm truly sorry about your loss. Losing a pet can be devastating. "
    "Would you like to tell me more about them?",
    "I'm so sorry. A pet is family, and losing them leaves a real hole. "
    "What was your pet like?",
)
GRIEF_REPLIES: Tuple[str, ...] = (
    "Losing someone you love is one of the hardest things a person can go through. "
    "I'm here, and I'd like to hear about them if you want to share.",
    "Grief can feel overwhelming and it doesn't follow a schedule. "
    "Would it help to talk about the person you lost?",
)
EMOTION_REPLIES: Tuple[str, ...] = (
    "It sounds like you're feeling {emotion}, and that matters. "
    "What's weighing on you the most right now?",
    "I can hear that you're feeling {emotion}. "
    "Can you tell me more about what's been happening?",
)
GENERIC_REPLIES: Tuple[str, ...] = (
    "I want to make sure I'm really hearing you. "
    "Could you tell me again, in your own words, what's on your mind?",
    "Let me slow down and listen properly. What would be most helpful to talk about right now?",
)


@dataclass(frozen=True)
class ConversationConfig:
    """Feedback-loop and conversation-boundary thresholds."""

    user_history_size: int = 10
    response_buffer_size: int = 5
    similarity_threshold: float = 0.7
    repetition_limit: int = 2
    dissimilar_window: int = 3
    inactivity_gap_minutes: float = 30.0
