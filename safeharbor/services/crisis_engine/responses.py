"""Crisis response templates and lexicons.

Every crisis response names the 988 Suicide & Crisis Lifeline. Critical
responses add 911 and the nearest emergency room. Type-specific hotlines
(NEDA, SAMHSA, Crisis Text Line) are added on top, never instead.
"""
import re
from typing import Dict, Optional, Sequence, Tuple

from safeharbor.shared.models import CrisisType, SeverityLevel
from safeharbor.shared.utils.text import normalize_text
from .location import LocationInfo, local_resources

OPENINGS: Dict[SeverityLevel, str] = {
    SeverityLevel.MEDIUM: "It sounds like you're carrying a lot right now, and I'm glad you told me.",
    SeverityLevel.HIGH: "I'm really concerned about what you're sharing, and I want you to be safe.",
    SeverityLevel.CRITICAL: (
        "I'm very concerned about your safety right now. What you're describing "
        "is an emergency and you deserve help immediately."
    ),
}

TYPE_BODIES: Dict[CrisisType, str] = {
    CrisisType.SUICIDE: (
        "Please call or text the 988 Suicide & Crisis Lifeline now. Trained "
        "counselors are available 24/7 and will listen without judgment."
    ),
    CrisisType.SELF_HARM: (
        "The 988 Suicide & Crisis Lifeline (call or text 988) is available 24/7, "
        "and you can also text HOME to 741741 to reach the Crisis Text Line."
    ),
    CrisisType.EATING_DISORDER: (
        "The NEDA helpline (1-800-931-2237) offers support for eating concerns, "
        "and the 988 Suicide & Crisis Lifeline (call or text 988) is there any time "
        "things feel overwhelming."
    ),
    CrisisType.SUBSTANCE_USE: (
        "The SAMHSA National Helpline (1-800-662-4357) provides free, confidential, "
        "24/7 support, and the 988 Suicide & Crisis Lifeline (call or text 988) is "
        "available if you feel unsafe."
    ),
    CrisisType.GENERAL_CRISIS: (
        "You don't have to go through this alone. The 988 Suicide & Crisis Lifeline "
        "(call or text 988) is available 24/7, or you can text HOME to 741741."
    ),
}

EMERGENCY_LINE = (
    "If you are in immediate danger, call 911 or go to your nearest emergency room."
)

CLOSING = "I'm here with you, and I'd like to keep talking."

LOCATION_QUESTION = (
    "If you're comfortable sharing, what area or city are you in? "
    "I can look for support close to you."
)

PERSISTENT_CRISIS_TEMPLATE = (
    "I'm still very worried about you, and I'm not going to move past what you've "
    "told me. Please reach out right now: call or text 988 to talk with someone at "
    "the Suicide & Crisis Lifeline, or call 911 or go to your nearest emergency "
    "room if you might act on these feelings. If you can, ask someone you trust to "
    "stay with you. I'm here, and I want you to get through tonight safely."
)

# Indexed by refusal count, the last entry repeats
REFUSAL_RESPONSES: Tuple[str, ...] = (
    "That's okay, and I hear you. Calling someone can feel like a lot. If it's "
    "easier, you can text 988 instead of calling. Can you tell me what feels "
    "hardest about reaching out?",
    "I understand you don't want to call right now. I'm not going anywhere. "
    "Is there a friend or family member who could be with you tonight? 988 is "
    "still there whenever you're ready, by call or text.",
    "I respect that this is your choice. I still care about your safety, so I'll "
    "keep 988 here for you: you can call, text, or chat at 988lifeline.org "
    "without giving your name. What would help you feel a little safer in the "
    "next hour?",
    "I'm staying right here with you. You don't have to call anyone to keep "
    "talking with me. If things get worse, 988 and 911 are there for you any "
    "time. Can we focus on getting through the next few minutes together?",
)

DECEPTION_PHRASES: Tuple[str, ...] = (
    "just kidding",
    "jk",
    "was joking",
    "just joking",
    "didn't mean it",
    "not serious",
    "wasn't serious",
    "was testing",
    "just testing",
)

REFUSAL_PATTERNS: Tuple[str, ...] = (
    r"\b(?:won't|will not|not going to|not gonna|don't want to|refuse to|can't|cannot) "
    r"(?:call|text|contact|use)(?: the)? (?:988|hotline|lifeline|crisis line|911|anyone|them)\b",
    r"\b(?:not|won't be|never) going to (?:the )?(?:hospital|er|emergency room)\b",
    r"\bdon't need (?:a |any )?(?:hotlines?|therapy|therapists?|help)\b",
    r"\bhotlines? (?:don't|do not|never) help\b",
    r"\bi'm not calling\b",
)

_DECEPTION_PATTERNS = [
    (phrase, re.compile(r"\b" + re.escape(phrase) + r"\b")) for phrase in DECEPTION_PHRASES
]
_REFUSAL_REGEXES = [re.compile(p) for p in REFUSAL_PATTERNS]


def match_deception(text: str) -> Optional[str]:
    """First deception phrase in ``text``, or None."""
    lowered = normalize_text(text)
    for phrase, pattern in _DECEPTION_PATTERNS:
        if pattern.search(lowered):
            return phrase
    return None


def is_resource_refusal(text: str) -> bool:
    lowered = normalize_text(text)
    return any(p.search(lowered) for p in _REFUSAL_REGEXES)


def refusal_response(refusal_count: int) -> str:
    index = min(max(refusal_count, 1), len(REFUSAL_RESPONSES)) - 1
    return REFUSAL_RESPONSES[index]


def crisis_response(
    severity: SeverityLevel,
    crisis_type: CrisisType,
    location: Optional[LocationInfo] = None,
    ask_location: bool = False,
) -> str:
    """Compose the templated crisis response.

    Args:
        severity: Classified severity (medium or above)
        crisis_type: Classified crisis type
        location: Best known location; local lines are added when it is known
        ask_location: Append the question asking where the user is

    Returns:
        Response text, always containing 988
    """
    parts = [OPENINGS.get(severity, OPENINGS[SeverityLevel.MEDIUM]), TYPE_BODIES[crisis_type]]
    if severity == SeverityLevel.CRITICAL:
        parts.append(EMERGENCY_LINE)
    parts.extend(local_resources(location, crisis_type))
    if ask_location:
        parts.append(LOCATION_QUESTION)
    parts.append(CLOSING)
    return " ".join(parts)


def contains_resources(text: str, markers: Sequence[str] = ("988",)) -> bool:
    return all(marker in text for marker in markers)
