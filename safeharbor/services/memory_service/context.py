"""Emotion and topic tagging for conversation memories.

Tags come from fixed lexicons so the same text always yields the same tags.
Retrieval, the hallucination detector and the loop detector all share them.
"""
import re
from typing import Dict, FrozenSet, Iterable, Optional, Pattern, Set, Tuple

EMOTION_LEXICON: Dict[str, Tuple[str, ...]] = {
    "sad": ("sad", "unhappy", "down", "crying", "cried", "depressed", "miserable", "heartbroken"),
    "angry": ("angry", "mad", "furious", "pissed", "frustrated", "hate", "resent"),
    "anxious": ("anxious", "anxiety", "nervous", "worried", "worry", "panic", "stressed", "stress"),
    "scared": ("scared", "afraid", "terrified", "frightened", "fear"),
    "grief": ("grief", "grieving", "passed away", "died", "loss", "lost my", "funeral", "mourning", "miss him", "miss her"),
    "trauma": ("trauma", "traumatic", "abuse", "abused", "assaulted", "ptsd", "flashback", "flashbacks"),
    "crisis": ("suicide", "suicidal", "kill myself", "end my life", "self-harm", "overdose", "want to die"),
    "lonely": ("lonely", "alone", "isolated", "no friends"),
    "hopeless": ("hopeless", "worthless", "pointless", "empty"),
    "devastated": ("devastated", "crushed", "shattered"),
    "happy": ("happy", "glad", "excited", "grateful", "proud", "relieved"),
}

TOPIC_LEXICON: Dict[str, Tuple[str, ...]] = {
    "pet": ("dog", "cat", "puppy", "kitten", "pet", "vet", "hamster", "rabbit", "bird"),
    "family": ("mom", "dad", "mother", "father", "sister", "brother", "parents", "family", "grandma", "grandpa", "son", "daughter"),
    "work": ("job", "work", "boss", "coworker", "office", "fired", "career"),
    "school": ("school", "exam", "class", "teacher", "homework", "college", "university", "grades"),
    "relationship": ("boyfriend", "girlfriend", "partner", "husband", "wife", "breakup", "broke up", "divorce", "dating"),
    "health": ("doctor", "sick", "illness", "hospital", "pain", "medication", "diagnosis", "therapy", "therapist"),
    "sleep": ("sleep", "insomnia", "tired", "nightmare", "nightmares", "exhausted"),
    "friends": ("friend", "friends", "friendship"),
    "money": ("money", "rent", "debt", "bills", "afford"),
    "death": ("died", "death", "passed away", "funeral", "dead"),
}

HIGH_INTENSITY_EMOTIONS: FrozenSet[str] = frozenset({
    "angry", "scared", "anxious", "devastated", "grief", "trauma",
})

# Topics that count as a problem the user is dealing with
PROBLEM_TOPICS: FrozenSet[str] = frozenset({"death", "health", "relationship", "money"})


def _compile(lexicon: Dict[str, Tuple[str, ...]]) -> Dict[str, Pattern]:
    return {
        tag: re.compile(r"\b(?:" + "|".join(re.escape(term) for term in terms) + r")\b", re.IGNORECASE)
        for tag, terms in lexicon.items()
    }


_EMOTION_PATTERNS = _compile(EMOTION_LEXICON)
_TOPIC_PATTERNS = _compile(TOPIC_LEXICON)


def extract_emotions(text: str) -> FrozenSet[str]:
    return frozenset(tag for tag, pattern in _EMOTION_PATTERNS.items() if pattern.search(text))


def extract_topics(text: str) -> FrozenSet[str]:
    return frozenset(tag for tag, pattern in _TOPIC_PATTERNS.items() if pattern.search(text))


def estimate_importance(
    content: str,
    emotions: Optional[Iterable[str]] = None,
    topics: Optional[Iterable[str]] = None,
) -> float:
    """Estimate how important a memory is from its content and tags.

    Base 0.5. Long messages add 0.1 (over 50 words) and another 0.1 (over
    100). High-intensity emotions add 0.2, any other emotion 0.1. Problem
    topics add 0.2. Each "!" or "?" adds 0.02, capped at 0.1.

    Returns:
        Importance clamped to [0.1, 1.0]
    """
    emotion_set: Set[str] = set(emotions) if emotions is not None else set(extract_emotions(content))
    topic_set: Set[str] = set(topics) if topics is not None else set(extract_topics(content))

    importance = 0.5
    word_count = len(content.split())
    if word_count > 50:
        importance += 0.1
    if word_count > 100:
        importance += 0.1

    if emotion_set & HIGH_INTENSITY_EMOTIONS:
        importance += 0.2
    elif emotion_set:
        importance += 0.1

    if topic_set & PROBLEM_TOPICS:
        importance += 0.2

    intensity = content.count("!") + content.count("?")
    importance += min(0.1, 0.02 * intensity)

    return max(0.1, min(1.0, round(importance, 4)))
