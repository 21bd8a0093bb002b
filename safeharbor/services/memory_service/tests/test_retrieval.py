"""Tests for retention, tagging, AttentionScorer and MemoryGrounder."""
import itertools
import random
import re

import pytest

from safeharbor.shared.storage import InMemoryKeyValueStore
from safeharbor.shared.utils import ManualClock
from safeharbor.services.memory_service.config import MemoryConfig
from safeharbor.services.memory_service.context import (
    estimate_importance,
    extract_emotions,
    extract_topics,
)
from safeharbor.services.memory_service.memory_bank import MemoryBank, MemoryRole
from safeharbor.services.memory_service.retention import retention_factor
from safeharbor.services.hallucination_service.config import MEMORY_REFERENCE_PATTERN
from safeharbor.services.memory_service.retrieval import (
    REFERENCE_PHRASES,
    AttentionScorer,
    MemoryGrounder,
    to_second_person,
)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def bank(clock):
    counter = itertools.count(1)
    return MemoryBank(
        InMemoryKeyValueStore(),
        clock=clock,
        id_factory=lambda: f"mem_{next(counter):03d}",
    )


class TestRetentionFactor:
    """Tests for the forgetting curve."""

    def test_strictly_decreasing_in_time(self):
        values = [retention_factor(h, 0.6, 2) for h in (0, 1, 5, 24, 72)]

        assert values[0] == 1.0
        assert all(a > b for a, b in zip(values, values[1:]))

    def test_importance_slows_decay(self):
        assert retention_factor(12, 0.9, 1) > retention_factor(12, 0.3, 1)

    def test_access_count_slows_decay(self):
        assert retention_factor(12, 0.5, 10) > retention_factor(12, 0.5, 1)

    def test_clamped(self):
        assert retention_factor(-5, 0.5, 1) == 1.0
        assert 0.0 <= retention_factor(10_000, 0.1, 1) <= 1.0


class TestContextTagging:
    """Tests for lexicon tagging and importance estimation."""

    def test_emotions(self):
        assert extract_emotions("I'm so anxious and scared") == {"anxious", "scared"}

    def test_topics(self):
        assert extract_topics("My dog died last week") == {"pet", "death"}

    def test_base_importance(self):
        assert estimate_importance("hello there", emotions=[], topics=[]) == 0.5

    def test_emotion_bonus(self):
        assert estimate_importance("x", emotions=["sad"], topics=[]) == pytest.approx(0.6)
        assert estimate_importance("x", emotions=["grief"], topics=[]) == pytest.approx(0.7)

    def test_problem_topic_bonus(self):
        assert estimate_importance("x", emotions=[], topics=["health"]) == pytest.approx(0.7)

    def test_punctuation_bonus_capped(self):
        assert estimate_importance("why?!!", emotions=[], topics=[]) == pytest.approx(0.56)
        assert estimate_importance("!" * 20, emotions=[], topics=[]) == pytest.approx(0.6)

    def test_length_bonus(self):
        assert estimate_importance(" ".join(["word"] * 60), [], []) == pytest.approx(0.6)
        assert estimate_importance(" ".join(["word"] * 120), [], []) == pytest.approx(0.7)

    def test_clamped_to_one(self):
        text = " ".join(["word"] * 120) + "!!!!!!"
        assert estimate_importance(text, ["trauma"], ["death"]) == 1.0


async def seed(bank):
    await bank.add_memory(
        "My dog Buddy ran away last week", MemoryRole.PATIENT,
        emotions=["sad"], topics=["pet"], importance=0.8,
    )
    await bank.add_memory(
        "Work has been stressful with my boss", MemoryRole.PATIENT,
        emotions=["anxious"], topics=["work"], importance=0.6,
    )
    await bank.add_memory(
        "That sounds hard.", MemoryRole.ASSISTANT, emotions=[], topics=[], importance=0.3,
    )


class TestAttentionScorer:
    """Tests for retrieval ranking."""

    @pytest.mark.asyncio
    async def test_best_match_ranked_first(self, bank):
        await seed(bank)
        scorer = AttentionScorer(bank)

        results = scorer.retrieve("I really miss Buddy")

        assert results[0].piece.content.startswith("My dog Buddy")
        assert results[0].keyword_match == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_ordering_is_deterministic(self, bank):
        await seed(bank)
        scorer = AttentionScorer(bank)

        first = [s.piece.id for s in scorer.retrieve("stressful week", reinforce=False)]
        second = [s.piece.id for s in scorer.retrieve("stressful week", reinforce=False)]

        assert first == second

    @pytest.mark.asyncio
    async def test_reinforcement_updates_access(self, bank, clock):
        await seed(bank)
        scorer = AttentionScorer(bank)
        clock.advance(minutes=5)

        results = scorer.retrieve("Buddy", k=1)

        assert results[0].piece.access_count == 2
        assert results[0].piece.last_accessed == clock.now()

    @pytest.mark.asyncio
    async def test_no_reinforcement_when_disabled(self, bank):
        await seed(bank)

        results = AttentionScorer(bank).retrieve("Buddy", reinforce=False)

        assert all(s.piece.access_count == 1 for s in results)

    @pytest.mark.asyncio
    async def test_ties_prefer_newer(self, bank, clock):
        await bank.add_memory("same words here", MemoryRole.PATIENT, [], [], 0.5)
        clock.advance(minutes=1)
        newer = await bank.add_memory("same words here", MemoryRole.PATIENT, [], [], 0.5)
        # Equal retention for both
        for piece in bank.short_term:
            piece.last_accessed = clock.now()

        results = AttentionScorer(bank).retrieve("same words", reinforce=False)

        assert results[0].piece is newer

    @pytest.mark.asyncio
    async def test_filters_restrict_candidates(self, bank):
        await seed(bank)

        results = AttentionScorer(bank).retrieve("anything", topic_filter={"work"})

        assert [s.piece.content for s in results] == ["Work has been stressful with my boss"]
        assert results[0].context_match == 1.0

    @pytest.mark.asyncio
    async def test_k_limits_results(self, bank):
        await seed(bank)

        assert len(AttentionScorer(bank).retrieve("anything", k=2)) == 2

    @pytest.mark.asyncio
    async def test_unimportant_long_term_only_memory_excluded(self, bank):
        old = await bank.add_memory("grandma's funeral", MemoryRole.PATIENT, ["grief"], [], 0.5)
        for i in range(10):
            await bank.add_memory(f"filler {i}", MemoryRole.PATIENT, [], [], 0.5)

        ids = {p.id for p in AttentionScorer(bank).candidates()}

        assert old in bank.long_term
        assert old.id not in ids


class TestMemoryGrounder:
    """Tests for weaving memory references into responses."""

    @pytest.mark.asyncio
    async def test_grounds_with_patient_memory(self, bank):
        await seed(bank)
        retrieved = AttentionScorer(bank).retrieve("I really miss Buddy")
        grounder = MemoryGrounder(rng=random.Random(3))

        result = grounder.ground("That must be so painful.", history_length=4, retrieved=retrieved)

        assert result.applied is True
        assert "your dog Buddy ran away last week" in result.text
        assert result.text.endswith("That must be so painful.")
        assert result.memory_id == "mem_001"

    @pytest.mark.asyncio
    async def test_skipped_early_in_conversation(self, bank):
        await seed(bank)
        retrieved = AttentionScorer(bank).retrieve("I really miss Buddy")

        result = MemoryGrounder().ground("That hurts.", history_length=2, retrieved=retrieved)

        assert result.applied is False
        assert result.text == "That hurts."
        assert result.reason == "history_too_short"

    @pytest.mark.asyncio
    async def test_skipped_when_response_already_references_memory(self, bank):
        await seed(bank)
        retrieved = AttentionScorer(bank).retrieve("I really miss Buddy")
        response = "You mentioned Buddy earlier, and I can hear how much you miss him."

        result = MemoryGrounder().ground(response, history_length=5, retrieved=retrieved)

        assert result.applied is False
        assert result.reason == "already_referenced"

    @pytest.mark.asyncio
    async def test_no_relevant_memory(self, bank):
        await seed(bank)
        retrieved = AttentionScorer(bank).retrieve("tell me a joke")

        result = MemoryGrounder().ground("Sure.", history_length=5, retrieved=retrieved)

        assert result.applied is False

    @pytest.mark.asyncio
    async def test_phrasing_not_repeated_back_to_back(self, bank):
        await seed(bank)
        grounder = MemoryGrounder(rng=random.Random(7))
        phrases = []
        for _ in range(6):
            retrieved = AttentionScorer(bank).retrieve("I really miss Buddy")
            grounder.ground("That is hard.", history_length=5, retrieved=retrieved)
            phrases.append(grounder._last_phrase)

        assert all(a != b for a, b in zip(phrases, phrases[1:]))

    def test_to_second_person(self):
        assert to_second_person("I was scared my dog died") == "you were scared your dog died"
        assert to_second_person("I'm tired.") == "you're tired."

    @pytest.mark.parametrize("phrase", REFERENCE_PHRASES)
    def test_reference_claim_is_only_the_snippet(self, phrase):
        """The memory-reference check must see the snippet and nothing after it."""
        snippet = "your dog Buddy ran away last week"
        text = phrase.format(snippet=snippet) + " That must be so painful."

        match = re.search(MEMORY_REFERENCE_PATTERN, text, re.IGNORECASE)

        assert match is not None
        assert match.group(1).strip() == snippet
