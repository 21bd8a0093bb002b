"""Memory retrieval and grounding.

AttentionScorer ranks Memory Bank contents against the current message.
MemoryGrounder turns the best match into a natural reference that is
prepended to a generated response.
"""
import logging
import random
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from safeharbor.shared.utils import Clock, SystemClock
from safeharbor.shared.utils.text import extract_keywords, keyword_match_ratio, normalize_text
from .config import MEMORY_REFERENCE_MARKERS, MemoryConfig
from .context import extract_emotions, extract_topics
from .memory_bank import MemoryBank, MemoryPiece, MemoryRole
from .retention import hours_between, retention_factor

logger = logging.getLogger(__name__)

KEYWORD_WEIGHT = 0.5
CONTEXT_WEIGHT = 0.3
RETENTION_WEIGHT = 0.2


@dataclass(frozen=True)
class ScoredMemory:
    piece: MemoryPiece
    score: float
    keyword_match: float
    context_match: float
    retention: float


class AttentionScorer:
    """Scores memories by keyword overlap, shared tags and retention.

    score = (0.5 * keyword_match + 0.3 * context_match + 0.2 * retention)
            * importance
    """

    def __init__(
        self,
        bank: MemoryBank,
        config: Optional[MemoryConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.bank = bank
        self.config = config or bank.config
        self.clock = clock or bank.clock or SystemClock()

    def candidates(
        self,
        topic_filter: Optional[Iterable[str]] = None,
        emotion_filter: Optional[Iterable[str]] = None,
    ) -> List[MemoryPiece]:
        """Working memory, recent short-term and important long-term memories.

        With filters, only pieces sharing at least one filtered tag remain.
        """
        # Grab each tier once so the pool is consistent even if a writer swaps tiers
        working = self.bank.working
        recent = self.bank.short_term[-self.config.recent_short_term_count:]
        long_term = self.bank.long_term

        pool: List[MemoryPiece] = []
        seen = set()
        for piece in list(working) + list(recent) + [
            p for p in long_term if p.importance > self.config.long_term_retrieval_importance
        ]:
            if piece.id not in seen:
                seen.add(piece.id)
                pool.append(piece)

        topics = set(topic_filter or ())
        emotions = set(emotion_filter or ())
        if topics or emotions:
            pool = [
                p for p in pool
                if (p.topic_context & topics) or (p.emotional_context & emotions)
            ]
        return pool

    def retrieve(
        self,
        text: str,
        topic_filter: Optional[Iterable[str]] = None,
        emotion_filter: Optional[Iterable[str]] = None,
        k: Optional[int] = None,
        reinforce: bool = True,
    ) -> List[ScoredMemory]:
        """Top-k memories for ``text``, highest score first.

        Ties go to the newer memory, then to the smaller id.

        Args:
            text: Current user message
            topic_filter: Restrict to pieces with these topics
            emotion_filter: Restrict to pieces with these emotions
            k: Result count (config default 5)
            reinforce: Update last_accessed/access_count on returned pieces
        """
        k = self.config.retrieval_k if k is None else k
        topic_filter = set(topic_filter or ())
        emotion_filter = set(emotion_filter or ())

        if topic_filter or emotion_filter:
            context_tags = topic_filter | emotion_filter
        else:
            context_tags = set(extract_topics(text)) | set(extract_emotions(text))
        keywords = extract_keywords(text)
        now = self.clock.now()

        scored = [
            self._score(piece, keywords, context_tags, now)
            for piece in self.candidates(topic_filter, emotion_filter)
        ]
        scored.sort(key=lambda s: (-s.score, -s.piece.timestamp.timestamp(), s.piece.id))
        top = scored[:k]

        if reinforce and top:
            self.bank.reinforce(s.piece for s in top)

        logger.debug(
            "MEMORY_RETRIEVED",
            extra={
                "candidate_count": len(scored),
                "returned": len(top),
                "top_score": top[0].score if top else 0.0,
            }
        )
        return top

    def _score(self, piece, keywords, context_tags, now) -> ScoredMemory:
        keyword_match = keyword_match_ratio(keywords, piece.content)
        context_match = (
            len(piece.tags & context_tags) / len(context_tags) if context_tags else 0.0
        )
        retention = retention_factor(
            hours_between(piece.last_accessed, now), piece.importance, piece.access_count
        )
        score = (
            KEYWORD_WEIGHT * keyword_match
            + CONTEXT_WEIGHT * context_match
            + RETENTION_WEIGHT * retention
        ) * piece.importance
        return ScoredMemory(piece, score, keyword_match, context_match, retention)


# Each phrase ends at the snippet so a reference claim is only the snippet
REFERENCE_PHRASES = (
    "Earlier you mentioned that {snippet}.",
    "Before, you told me that {snippet}.",
    "I remember you sharing that {snippet}.",
    "You've mentioned that {snippet}.",
    "I remember you telling me that {snippet}.",
)

_PRONOUN_SWAPS = {
    "i": "you",
    "me": "you",
    "my": "your",
    "mine": "yours",
    "myself": "yourself",
    "i'm": "you're",
    "i've": "you've",
    "i'll": "you'll",
    "i'd": "you'd",
    "am": "are",
}

_SNIPPET_MAX_WORDS = 14


def to_second_person(text: str) -> str:
    """Rewrite a first-person snippet as second person ("my dog" -> "your dog")."""
    out: List[str] = []
    previous = ""
    for word in text.split():
        bare = word.lower().strip(".,!?;:")
        trailing = word[len(word.rstrip(".,!?;:")):]
        if bare == "was" and previous == "i":
            replacement = "were"
        else:
            replacement = _PRONOUN_SWAPS.get(bare)
        out.append(replacement + trailing if replacement else word)
        previous = bare
    return " ".join(out)


@dataclass(frozen=True)
class GroundingResult:
    text: str
    applied: bool
    memory_id: Optional[str] = None
    reason: str = ""


class MemoryGrounder:
    """Weaves a reference to a retrieved memory into a response.

    Phrasing comes from a fixed pool via a seeded random source and never
    repeats the previous phrasing back to back.
    """

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or MemoryConfig()
        self._rng = rng or random.Random()
        self._last_phrase: Optional[str] = None

    def ground(
        self,
        response: str,
        history_length: int,
        retrieved: Sequence[ScoredMemory],
    ) -> GroundingResult:
        """Prepend a memory reference to ``response`` when one is warranted.

        Skipped when the conversation is too short, when the response already
        refers back to something, or when no patient memory matches.
        """
        if history_length < self.config.grounding_min_history:
            return GroundingResult(response, False, reason="history_too_short")

        lowered = normalize_text(response)
        if any(marker in lowered for marker in MEMORY_REFERENCE_MARKERS):
            return GroundingResult(response, False, reason="already_referenced")

        best = next(
            (
                s for s in retrieved
                if s.piece.role == MemoryRole.PATIENT
                and s.keyword_match >= self.config.grounding_min_keyword_match
            ),
            None,
        )
        if best is None:
            return GroundingResult(response, False, reason="no_relevant_memory")

        if normalize_text(best.piece.content) in lowered:
            return GroundingResult(response, False, reason="already_present")

        snippet = self._snippet(best.piece.content)
        if not snippet:
            return GroundingResult(response, False, reason="empty_snippet")

        phrase = self._pick_phrase()
        grounded = f"{phrase.format(snippet=snippet)} {response}"
        return GroundingResult(grounded, True, memory_id=best.piece.id)

    def _pick_phrase(self) -> str:
        options = [p for p in REFERENCE_PHRASES if p != self._last_phrase]
        phrase = self._rng.choice(options)
        self._last_phrase = phrase
        return phrase

    @staticmethod
    def _snippet(content: str) -> str:
        first_sentence = re.split(r"(?<=[.!?])\s+", content.strip())[0]
        words = first_sentence.split()[:_SNIPPET_MAX_WORDS]
        return to_second_person(" ".join(words)).rstrip(".,!?;: ")
