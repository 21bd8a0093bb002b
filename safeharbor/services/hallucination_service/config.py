"""Hallucination detector patterns and thresholds."""
from dataclasses import dataclass
from typing import Tuple

# Group 1 captures the claimed content up to the end of the sentence
MEMORY_REFERENCE_PATTERN = (
    r"\b(?:you(?:'ve)? (?:mentioned|said|told me|shared|brought up)"
    r"|i remember(?: you (?:saying|telling me|sharing|mentioning))?"
    r"|earlier you (?:said|mentioned|told me|shared))"
    r"(?: that)?,?\s+([^.!?]*)"
)

CONTINUITY_PHRASES: Tuple[str, ...] = (
    "as we discussed",
    "as we've discussed",
    "as we've been discussing",
    "as we were saying",
    "as i said before",
    "last time",
    "like we talked about",
    "continuing our conversation",
    "in our previous conversation",
    "when we last spoke",
)

# (positive, negative) attributions that cannot both describe the user
OPPOSITE_EMOTIONS: Tuple[Tuple[str, str], ...] = (
    ("happy", "sad"),
    ("calm", "anxious"),
    ("relaxed", "stressed"),
    ("better", "worse"),
    ("hopeful", "hopeless"),
    ("fine", "upset"),
)

# Claims the assistant cannot make: diagnosing, prescribing, acting in the
# world, or reading records
CAPABILITY_PATTERNS: Tuple[str, ...] = (
    r"\bi (?:can|could|will) (?:diagnose|prescribe|treat|cure|heal)\b",
    r"\bi(?:'m| am) (?:a|an|your) (?:doctor|therapist|psychiatrist|psychologist|counselor|nurse|licensed \w+)\b",
    r"\bi(?:'ll| will) (?:send|email|call|text|contact|schedule|book)\b",
    r"\b(?:let me|i can) (?:order|arrange|book|schedule|reserve)\b",
    r"\bi (?:can|could) (?:access|retrieve|look up|check) your (?:medical|health) (?:records?|history|files?|chart)\b",
    r"\bi(?:'ve| have) (?:scheduled|booked|contacted|emailed|notified)\b",
    r"\byou (?:have|are suffering from) (?:clinical depression|depression|anxiety disorder|bipolar|ptsd|ocd|adhd|schizophrenia)\b",
    r"\bi diagnose\b",
    r"\btake (?:\d+ ?mg|this medication|(?:some )?(?:xanax|prozac|zoloft|lexapro|ativan|sertraline))\b",
)

GENERIC_MEMORY_REPLACEMENT = "I want to make sure I understand what you're sharing with me."
GENERIC_CONTINUITY_REPLACEMENT = "I'm here with you now."
GENERIC_CAPABILITY_REPLACEMENT = (
    "I can't do that myself, but a doctor or counselor can help with it."
)
GENERIC_EMOTION_REPLACEMENT = "I don't want to assume how you're feeling."
EMPTY_RESPONSE_FALLBACK = "I'm here to listen. Can you tell me more about what's on your mind?"


@dataclass(frozen=True)
class HallucinationConfig:
    """Scoring weights and decision thresholds."""

    # False-memory match score weights
    direct_memory_weight: float = 0.4
    history_weight: float = 0.3
    topic_weight: float = 0.2
    recency_weight: float = 0.1

    # Combined score at or above this counts as supported
    memory_match_threshold: float = 0.6
    # Below this an unsupported reference is high severity
    high_severity_ceiling: float = 0.2

    # History at or below this length makes any memory reference unsupported
    min_history_for_references: int = 2
    early_reference_confidence: float = 0.9
    continuity_confidence: float = 0.85
    capability_confidence: float = 0.9
    emotion_contradiction_confidence: float = 0.8

    repetition_threshold: float = 0.8
    min_sentence_words: int = 4

    # High flags at or above this confidence are corrected
    substitution_confidence: float = 0.8
    recency_buffer_size: int = 3
