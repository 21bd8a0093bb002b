"""Tests for HallucinationDetector and HallucinationCorrector."""
import pytest

from safeharbor.shared.models import FlagSeverity, HallucinationFlag, HallucinationType
from safeharbor.shared.storage import InMemoryKeyValueStore
from safeharbor.shared.utils import ManualClock
from safeharbor.services.hallucination_service.config import (
    EMPTY_RESPONSE_FALLBACK,
    GENERIC_CAPABILITY_REPLACEMENT,
    GENERIC_MEMORY_REPLACEMENT,
)
from safeharbor.services.hallucination_service.detector import (
    HallucinationCorrector,
    HallucinationDetector,
)
from safeharbor.services.memory_service.memory_bank import MemoryBank, MemoryRole

LONG_HISTORY = [
    "Hi, I wanted to talk about something",
    "My sister moved away for college",
    "The house feels empty without her",
]


@pytest.fixture
def detector():
    return HallucinationDetector()


@pytest.fixture
def corrector():
    return HallucinationCorrector()


def types_of(flags):
    return [f.flag_type for f in flags]


class TestFalseMemoryReference:
    """Memory references must be backed by the conversation or Memory Bank."""

    def test_reference_early_in_conversation_is_high(self, detector):
        flags = detector.detect(
            "You mentioned your brother is a pilot. How is he?",
            user_input="hello",
            history=["hi"],
        )

        assert types_of(flags) == [HallucinationType.FALSE_MEMORY_REFERENCE]
        assert flags[0].severity == FlagSeverity.HIGH
        assert flags[0].confidence_score == pytest.approx(0.9)
        assert flags[0].offending_text == "You mentioned your brother is a pilot."

    def test_supported_reference_not_flagged(self, detector):
        flags = detector.detect(
            "You mentioned that your sister moved away for college. That is a big change.",
            user_input="I keep thinking about her",
            history=LONG_HISTORY,
        )

        assert flags == []

    def test_unsupported_reference_flagged_high(self, detector):
        flags = detector.detect(
            "You told me about your vacation in Hawaii with your cousins.",
            user_input="I keep thinking about her",
            history=LONG_HISTORY,
        )

        assert len(flags) == 1
        assert flags[0].severity == FlagSeverity.HIGH
        assert flags[0].confidence_score == pytest.approx(1.0)

    def test_partial_support_is_medium(self, detector):
        flags = detector.detect(
            "I remember you saying your sister hates college football.",
            user_input="I miss her",
            history=LONG_HISTORY,
        )

        assert len(flags) == 1
        assert flags[0].severity == FlagSeverity.MEDIUM

    @pytest.mark.asyncio
    async def test_memory_bank_supports_reference(self, detector):
        bank = MemoryBank(InMemoryKeyValueStore(), clock=ManualClock())
        await bank.add_memory(
            "My dog Buddy ran away last week", MemoryRole.PATIENT,
            emotions=["sad"], topics=["pet"], importance=0.8,
        )

        flags = detector.detect(
            "Earlier you mentioned that your dog Buddy ran away last week.",
            user_input="I'm having a rough day",
            history=["hello", "work was long", "I'm tired"],
            memory_bank=bank,
        )

        assert flags == []

    def test_memory_match_score_weights(self, detector):
        history = ["college is far", "my sister moved away", "I miss my sister"]

        score = detector.memory_match_score("your sister moved away", "ok", history)

        # history 1.0 * 0.3 + topic 1.0 * 0.2 + recency 1.0 * 0.1, no memory bank
        assert score == pytest.approx(0.6)


class TestFalseContinuity:

    def test_continuity_phrase_in_new_conversation(self, detector):
        flags = detector.detect(
            "As we discussed, breathing exercises can help.",
            user_input="I'm stressed",
            history=[],
        )

        assert types_of(flags) == [HallucinationType.FALSE_CONTINUITY]
        assert flags[0].severity == FlagSeverity.HIGH

    def test_continuity_phrase_allowed_later(self, detector):
        flags = detector.detect(
            "As we discussed, breathing exercises can help.",
            user_input="I'm stressed",
            history=LONG_HISTORY,
        )

        assert flags == []


class TestLogicalContradiction:

    def test_repeated_sentence(self, detector):
        flags = detector.detect(
            "That sounds really hard for you. That sounds really hard for you.",
            user_input="rough day",
            history=LONG_HISTORY,
        )

        assert types_of(flags) == [HallucinationType.LOGICAL_CONTRADICTION]
        assert flags[0].severity == FlagSeverity.MEDIUM

    def test_opposite_emotions(self, detector):
        flags = detector.detect(
            "You seem happy today. You sound so sad though.",
            user_input="meh",
            history=LONG_HISTORY,
        )

        assert types_of(flags) == [HallucinationType.LOGICAL_CONTRADICTION]
        assert flags[0].severity == FlagSeverity.HIGH
        assert flags[0].offending_text == "You sound so sad though."


class TestCapabilityHallucination:

    @pytest.mark.parametrize("response", [
        "I can diagnose what is going on with you.",
        "I'll schedule an appointment for you tomorrow.",
        "I can access your medical records to check.",
        "I'm a licensed therapist, so trust me.",
        "It sounds like you have depression.",
        "You should take 50mg of something to sleep.",
    ])
    def test_capability_claims(self, detector, response):
        flags = detector.detect(response, user_input="help", history=LONG_HISTORY)

        assert HallucinationType.CAPABILITY_HALLUCINATION in types_of(flags)

    def test_supportive_reply_is_clean(self, detector):
        flags = detector.detect(
            "I can't diagnose anything, but talking to a doctor could really help.",
            user_input="am I sick?",
            history=LONG_HISTORY,
        )

        assert flags == []


class TestCorrector:
    """Only high-severity, high-confidence flags change the response."""

    def test_substitutes_high_confidence_clause(self, detector, corrector):
        response = "You mentioned your brother is a pilot. How are you feeling today?"
        flags = detector.detect(response, user_input="hi", history=[])

        result = corrector.correct(response, flags)

        assert result.changed is True
        assert result.text == f"{GENERIC_MEMORY_REPLACEMENT} How are you feeling today?"

    def test_medium_flags_pass_through(self, corrector):
        flag = HallucinationFlag(
            flag_type=HallucinationType.FALSE_MEMORY_REFERENCE,
            severity=FlagSeverity.MEDIUM,
            description="partial",
            confidence_score=0.95,
            offending_text="I remember that.",
        )

        result = corrector.correct("I remember that. Tell me more.", [flag])

        assert result.changed is False
        assert result.text == "I remember that. Tell me more."

    def test_low_confidence_high_flag_passes_through(self, corrector):
        flag = HallucinationFlag(
            flag_type=HallucinationType.CAPABILITY_HALLUCINATION,
            severity=FlagSeverity.HIGH,
            description="x",
            confidence_score=0.7,
            offending_text="I'll call you.",
        )

        assert corrector.correct("I'll call you.", [flag]).text == "I'll call you."

    def test_capability_replacement(self, detector, corrector):
        response = "I'll schedule an appointment for you."
        flags = detector.detect(response, user_input="help", history=LONG_HISTORY)

        result = corrector.correct(response, flags)

        assert result.text == GENERIC_CAPABILITY_REPLACEMENT

    def test_duplicate_replacements_collapse(self, corrector):
        flags = [
            HallucinationFlag(HallucinationType.CAPABILITY_HALLUCINATION, FlagSeverity.HIGH,
                              "a", 0.9, "I'll call them."),
            HallucinationFlag(HallucinationType.CAPABILITY_HALLUCINATION, FlagSeverity.HIGH,
                              "b", 0.9, "I'll email them too."),
        ]

        result = corrector.correct("I'll call them. I'll email them too.", flags)

        assert result.text == GENERIC_CAPABILITY_REPLACEMENT

    def test_empty_result_falls_back(self, corrector):
        assert corrector.correct("   ", []).text == EMPTY_RESPONSE_FALLBACK
