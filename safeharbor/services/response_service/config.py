"""Response assembly configuration.

Fallback texts, final-verification lexicons and pipeline settings.
"""
import os
from dataclasses import dataclass
from typing import Optional, Tuple

SAFE_FALLBACK_RESPONSE = (
    "I'm here with you, and I want to understand what you're going through. "
    "Could you tell me a little more about what's on your mind?"
)

CRISIS_FALLBACK_RESPONSE = (
    "I want to make sure you're safe right now. Please call or text 988 to reach "
    "the Suicide & Crisis Lifeline, available 24/7. If you are in immediate danger, "
    "call 911 or go to your nearest emergency room. I'm here with you."
)

RESOURCE_REMINDER = (
    "If things start to feel unsafe, you can call or text 988 any time, day or night."
)

DEPRESSION_PATTERN = r"\bdepress(?:ed|ion|ing|ive)?\b"

# Any of these means the response already acknowledges how the user feels
ACKNOWLEDGMENT_TOKENS: Tuple[str, ...] = (
    "depress",
    "i hear",
    "sounds",
    "sorry",
    "understand",
    "that must",
    "difficult",
    "hard",
    "heavy",
)

DEPRESSION_ACKNOWLEDGMENT = (
    "I hear that you're dealing with depression, and I'm really glad you told me."
)

# Responses containing any of these never reach the user
HARMFUL_PHRASES: Tuple[str, ...] = (
    "kill yourself",
    "end your life",
    "you should die",
    "harm yourself",
    "hurt yourself",
    "commit suicide",
    "nobody would miss you",
    "you deserve to suffer",
    "stop taking your medication",
)

SYSTEM_PROMPT = """You are a warm, person-centred companion. Your role is to:

1. Listen actively and reflect feelings back without judgment
2. Ask open questions that help the person explore what they feel
3. Encourage healthy coping and reaching out to people they trust
4. NEVER provide medical advice, diagnoses or medication guidance
5. NEVER claim to remember things the person has not said
6. NEVER claim to contact, schedule or book anything

You are a supportive presence, not a replacement for professional care."""


@dataclass(frozen=True)
class PipelineConfig:
    """Per-turn pipeline settings."""

    # Baseline generation
    generation_timeout_seconds: float = 10.0

    # Confidence penalties
    high_flag_penalty: float = 0.2
    fallback_penalty: float = 0.3
    stage_failure_penalty: float = 0.2

    # Randomness for phrase selection; None seeds from the OS
    random_seed: Optional[int] = None

    # Idle sessions are dropped from memory; crisis sessions are held longer
    session_idle_seconds: float = 7200.0
    crisis_session_idle_seconds: float = 86400.0

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create config from environment variables.

        Environment variables:
            SAFEHARBOR_GENERATION_TIMEOUT_SECONDS: Generator timeout (default 10)
            SAFEHARBOR_RANDOM_SEED: Seed for phrase selection (default unseeded)
            SAFEHARBOR_SESSION_IDLE_SECONDS: Idle time before a session is dropped (default 7200)
            SAFEHARBOR_CRISIS_SESSION_IDLE_SECONDS: Same, for sessions in crisis (default 86400)
        """
        seed = os.getenv("SAFEHARBOR_RANDOM_SEED")
        return cls(
            generation_timeout_seconds=float(os.getenv("SAFEHARBOR_GENERATION_TIMEOUT_SECONDS", "10")),
            random_seed=int(seed) if seed else None,
            session_idle_seconds=float(os.getenv("SAFEHARBOR_SESSION_IDLE_SECONDS", "7200")),
            crisis_session_idle_seconds=float(
                os.getenv("SAFEHARBOR_CRISIS_SESSION_IDLE_SECONDS", "86400")
            ),
        )
