"""Hallucination Detector - flags unsupported claims in candidate responses.

Four kinds of claims are checked:
- false-memory-reference: "you mentioned X" where X is nowhere in the
  conversation or the Memory Bank
- false-continuity: "as we discussed" at the start of a conversation
- logical-contradiction: repeated sentences or opposite emotion attributions
- capability-hallucination: diagnosing, prescribing, scheduling or reading
  records

Detection is pure. Only high-severity flags with enough confidence are acted
on, by HallucinationCorrector.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence, Set

from safeharbor.shared.models import FlagSeverity, HallucinationFlag, HallucinationType
from safeharbor.shared.utils.text import (
    extract_keywords,
    keyword_match_ratio,
    normalize_text,
    overlap_ratio,
    split_sentences,
)
from safeharbor.services.memory_service.context import extract_topics
from safeharbor.services.memory_service.memory_bank import MemoryBank, MemoryRole
from .config import (
    CAPABILITY_PATTERNS,
    CONTINUITY_PHRASES,
    EMPTY_RESPONSE_FALLBACK,
    GENERIC_CAPABILITY_REPLACEMENT,
    GENERIC_CONTINUITY_REPLACEMENT,
    GENERIC_EMOTION_REPLACEMENT,
    GENERIC_MEMORY_REPLACEMENT,
    MEMORY_REFERENCE_PATTERN,
    OPPOSITE_EMOTIONS,
    HallucinationConfig,
)

logger = logging.getLogger(__name__)


def _attribution_pattern(word: str) -> Pattern:
    return re.compile(
        r"\byou(?:'re| are| seem| sound| look| feel)(?: to be)?(?: so| really| very| much)? "
        + re.escape(word) + r"\b",
        re.IGNORECASE,
    )


def _sentence_containing(sentences: Sequence[str], fragment: str) -> str:
    for sentence in sentences:
        if fragment in sentence:
            return sentence
    return fragment


class HallucinationDetector:
    """Evaluates ``(response, input, history, memory bank)`` into flags."""

    def __init__(self, config: Optional[HallucinationConfig] = None):
        self.config = config or HallucinationConfig()
        self._memory_pattern = re.compile(MEMORY_REFERENCE_PATTERN, re.IGNORECASE)
        self._capability_patterns = [re.compile(p, re.IGNORECASE) for p in CAPABILITY_PATTERNS]
        self._emotion_pairs = [
            (_attribution_pattern(positive), _attribution_pattern(negative))
            for positive, negative in OPPOSITE_EMOTIONS
        ]

    def detect(
        self,
        response: str,
        user_input: str,
        history: Sequence[str],
        memory_bank: Optional[MemoryBank] = None,
    ) -> List[HallucinationFlag]:
        """Run every check against a candidate response.

        Args:
            response: Candidate response text
            user_input: Current user message
            history: Prior user messages, oldest first
            memory_bank: Memory Bank to verify memory references against

        Returns:
            Flags in check order (memory, continuity, contradiction, capability)
        """
        sentences = split_sentences(response)
        flags: List[HallucinationFlag] = []
        flags.extend(self._check_memory_references(response, sentences, user_input, history, memory_bank))
        flags.extend(self._check_continuity(response, sentences, history))
        flags.extend(self._check_contradictions(response, sentences))
        flags.extend(self._check_capabilities(response, sentences))

        if flags:
            logger.info(
                "HALLUCINATION_FLAGS_RAISED",
                extra={
                    "flag_types": [f.flag_type.value for f in flags],
                    "high_severity": sum(1 for f in flags if f.severity == FlagSeverity.HIGH),
                }
            )
        return flags

    def memory_match_score(
        self,
        claim: str,
        user_input: str,
        history: Sequence[str],
        memory_bank: Optional[MemoryBank] = None,
    ) -> float:
        """Combined evidence that ``claim`` was really said.

        0.4 direct Memory Bank match + 0.3 history match + 0.2 topic overlap
        + 0.1 recency buffer match.
        """
        keywords = extract_keywords(claim)
        if not keywords:
            return 0.0

        said = list(history) + [user_input]
        patient_memories = []
        known_topics: Set[str] = set()
        if memory_bank is not None:
            patient_memories = [
                p.content for p in memory_bank.all_pieces() if p.role == MemoryRole.PATIENT
            ]
            known_topics.update(memory_bank.profile.topic_counts)
        for message in said:
            known_topics.update(extract_topics(message))

        direct = max((keyword_match_ratio(keywords, m) for m in patient_memories), default=0.0)
        history_match = max((keyword_match_ratio(keywords, m) for m in said), default=0.0)

        claim_topics = extract_topics(claim)
        topic = len(claim_topics & known_topics) / len(claim_topics) if claim_topics else 0.0

        recent = " ".join(said[-self.config.recency_buffer_size:])
        recency = keyword_match_ratio(keywords, recent)

        return round(
            self.config.direct_memory_weight * direct
            + self.config.history_weight * history_match
            + self.config.topic_weight * topic
            + self.config.recency_weight * recency,
            6,
        )

    def _check_memory_references(self, response, sentences, user_input, history, memory_bank):
        flags = []
        for match in self._memory_pattern.finditer(response):
            claim = match.group(1).strip()
            offending = _sentence_containing(sentences, match.group(0))

            if len(history) <= self.config.min_history_for_references:
                flags.append(HallucinationFlag(
                    flag_type=HallucinationType.FALSE_MEMORY_REFERENCE,
                    severity=FlagSeverity.HIGH,
                    description="Memory reference with almost no prior conversation",
                    confidence_score=self.config.early_reference_confidence,
                    offending_text=offending,
                ))
                continue

            if not extract_keywords(claim):
                flags.append(HallucinationFlag(
                    flag_type=HallucinationType.FALSE_MEMORY_REFERENCE,
                    severity=FlagSeverity.MEDIUM,
                    description="Vague memory reference that cannot be verified",
                    confidence_score=0.5,
                    offending_text=offending,
                ))
                continue

            score = self.memory_match_score(claim, user_input, history, memory_bank)
            if score >= self.config.memory_match_threshold:
                continue

            severity = (
                FlagSeverity.HIGH if score < self.config.high_severity_ceiling else FlagSeverity.MEDIUM
            )
            flags.append(HallucinationFlag(
                flag_type=HallucinationType.FALSE_MEMORY_REFERENCE,
                severity=severity,
                description=f"Referenced content not found in conversation (match {score:.2f})",
                confidence_score=round(1.0 - score, 3),
                offending_text=offending,
            ))
        return flags

    def _check_continuity(self, response, sentences, history):
        if len(history) > self.config.min_history_for_references:
            return []
        lowered = normalize_text(response)
        for phrase in CONTINUITY_PHRASES:
            if phrase in lowered:
                offending = next(
                    (s for s in sentences if phrase in normalize_text(s)), response
                )
                return [HallucinationFlag(
                    flag_type=HallucinationType.FALSE_CONTINUITY,
                    severity=FlagSeverity.HIGH,
                    description=f"Continuity phrase '{phrase}' at the start of a conversation",
                    confidence_score=self.config.continuity_confidence,
                    offending_text=offending,
                )]
        return []

    def _check_contradictions(self, response, sentences):
        flags = []
        long_sentences = [
            s for s in sentences if len(s.split()) >= self.config.min_sentence_words
        ]
        for i, earlier in enumerate(long_sentences):
            for later in long_sentences[i + 1:]:
                ratio = overlap_ratio(earlier, later)
                if ratio > self.config.repetition_threshold:
                    flags.append(HallucinationFlag(
                        flag_type=HallucinationType.LOGICAL_CONTRADICTION,
                        severity=FlagSeverity.MEDIUM,
                        description="Response repeats itself",
                        confidence_score=round(min(1.0, ratio), 3),
                        offending_text=later,
                    ))

        for positive, negative in self._emotion_pairs:
            positive_match = positive.search(response)
            negative_match = negative.search(response)
            if positive_match and negative_match:
                second = max(positive_match, negative_match, key=lambda m: m.start())
                flags.append(HallucinationFlag(
                    flag_type=HallucinationType.LOGICAL_CONTRADICTION,
                    severity=FlagSeverity.HIGH,
                    description="Opposite emotions attributed to the user",
                    confidence_score=self.config.emotion_contradiction_confidence,
                    offending_text=_sentence_containing(sentences, second.group(0)),
                ))
        return flags

    def _check_capabilities(self, response, sentences):
        flags = []
        for pattern in self._capability_patterns:
            match = pattern.search(response)
            if match:
                flags.append(HallucinationFlag(
                    flag_type=HallucinationType.CAPABILITY_HALLUCINATION,
                    severity=FlagSeverity.HIGH,
                    description=f"Claims a capability it does not have: '{match.group(0)}'",
                    confidence_score=self.config.capability_confidence,
                    offending_text=_sentence_containing(sentences, match.group(0)),
                ))
        return flags


_REPLACEMENTS = {
    HallucinationType.FALSE_MEMORY_REFERENCE: GENERIC_MEMORY_REPLACEMENT,
    HallucinationType.FALSE_CONTINUITY: GENERIC_CONTINUITY_REPLACEMENT,
    HallucinationType.CAPABILITY_HALLUCINATION: GENERIC_CAPABILITY_REPLACEMENT,
    HallucinationType.LOGICAL_CONTRADICTION: GENERIC_EMOTION_REPLACEMENT,
}


@dataclass(frozen=True)
class CorrectionResult:
    text: str
    corrected: List[HallucinationFlag] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.corrected)


class HallucinationCorrector:
    """Substitutes offending clauses of high-severity, high-confidence flags.

    Medium and low flags are left for the caller to record.
    """

    def __init__(self, config: Optional[HallucinationConfig] = None):
        self.config = config or HallucinationConfig()

    def should_correct(self, flag: HallucinationFlag) -> bool:
        return (
            flag.severity == FlagSeverity.HIGH
            and flag.confidence_score >= self.config.substitution_confidence
        )

    def correct(self, response: str, flags: Sequence[HallucinationFlag]) -> CorrectionResult:
        text = response
        corrected: List[HallucinationFlag] = []
        used_replacements: Set[str] = set()

        for flag in flags:
            if not self.should_correct(flag) or not flag.offending_text:
                continue
            if flag.offending_text not in text:
                continue
            replacement = _REPLACEMENTS[flag.flag_type]
            # One generic sentence per kind is enough
            if replacement in used_replacements:
                replacement = ""
            text = text.replace(flag.offending_text, replacement, 1)
            used_replacements.add(replacement)
            corrected.append(flag)

        text = re.sub(r"\s{2,}", " ", text).strip()
        if not text:
            text = EMPTY_RESPONSE_FALLBACK

        if corrected:
            logger.warning(
                "HALLUCINATION_CORRECTED",
                extra={"flag_types": [f.flag_type.value for f in corrected]}
            )
        return CorrectionResult(text=text, corrected=corrected)
