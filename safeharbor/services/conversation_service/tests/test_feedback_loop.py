"""Tests for FeedbackLoopDetector and NewConversationDetector."""
import random
import pytest

from safeharbor.shared.utils import ManualClock
from safeharbor.services.conversation_service.config import RECOVERY_PREFIX
from safeharbor.services.conversation_service.feedback_loop import (
    ConversationState,
    FeedbackLoopDetector,
)
from safeharbor.services.conversation_service.new_conversation import (
    EXPLICIT_RESET,
    INACTIVITY_GAP,
    NewConversationDetector,
)

GENERIC_A = "I hear you. Can you tell me more about how you are feeling today?"
GENERIC_B = "I hear you! Can you tell me more about how you are feeling today"


@pytest.fixture
def detector():
    return FeedbackLoopDetector(rng=random.Random(0))


class TestTrackResponse:
    """Tests for the response ring buffer and repetition counter."""

    def test_buffer_is_bounded(self, detector):
        for i in range(8):
            detector.track_response(f"response number {i} is unique")

        assert len(detector.state.roger_response_history) == 5

    def test_identical_after_normalisation_sets_flag(self, detector):
        detector.track_response(GENERIC_A)
        assert detector.state.feedback_loop_detected is False

        detector.track_response(GENERIC_B)

        assert detector.state.feedback_loop_detected is True

    def test_three_dissimilar_responses_clear_flag(self, detector):
        detector.track_response(GENERIC_A)
        detector.track_response(GENERIC_A)
        assert detector.state.feedback_loop_detected is True

        detector.track_response("Walking outside sometimes helps clear the head.")
        detector.track_response("What did you have for breakfast this morning?")
        detector.track_response("Music can be a good way to unwind after work.")

        assert detector.state.feedback_loop_detected is False

    def test_counter_forgets_responses_leaving_buffer(self, detector):
        detector.track_response(GENERIC_A)
        for i in range(5):
            detector.track_response(f"completely different reply {i} here")

        detector.track_response(GENERIC_A)

        assert detector.state.repetition_count[
            "i hear you can you tell me more about how you are feeling today"
        ] == 1


class TestCheckFeedbackLoop:
    """Tests for loop detection and recovery."""

    def test_no_loop(self, detector):
        detector.track_response("That sounds hard.")
        detector.track_response("What helps you relax?")

        result = detector.check_feedback_loop("I like painting")

        assert result.detected is False
        assert not result
        assert result.recovery_response is None

    @pytest.mark.parametrize("complaint", [
        "I just told you that!",
        "You’re not listening to me",
        "why are you repeating yourself",
        "you sound like a robot",
        "that's not what I said",
    ])
    def test_complaint_detected(self, detector, complaint):
        result = detector.check_feedback_loop(complaint)

        assert result.detected is True
        assert result.reason == "user_complaint"
        assert result.recovery_response.startswith(RECOVERY_PREFIX)

    @pytest.mark.parametrize("message", [
        "I can't pay attention in class anymore",
        "I keep doing the same thing over and over",
        "my little brother got a robot for his birthday",
        "the bot in my game keeps winning",
        "I told you about my mom last week and it got worse",
    ])
    def test_ordinary_message_is_not_a_complaint(self, detector, message):
        """Complaints must be aimed at the assistant, not just share its words."""
        assert detector.is_complaint(message) is False
        assert detector.check_feedback_loop(message).detected is False

    def test_similar_responses_detected_and_counters_reset(self, detector):
        detector.track_response(GENERIC_A)
        detector.track_response(GENERIC_B)

        result = detector.check_feedback_loop("ok")

        assert result.detected is True
        assert result.reason == "similar_responses"
        assert detector.state.repetition_count == {}
        assert detector.state.feedback_loop_detected is False

    def test_repeated_nonconsecutive_response_detected(self, detector):
        detector.track_response(GENERIC_A)
        detector.track_response("Tell me about your weekend plans.")
        detector.track_response(GENERIC_A)

        result = detector.check_feedback_loop("sure")

        assert result.reason == "repeated_response"

    def test_recovery_reply_tracked_breaks_similarity(self, detector):
        detector.track_response(GENERIC_A)
        detector.track_response(GENERIC_B)
        result = detector.check_feedback_loop("ok")
        detector.track_response(result.recovery_response)

        assert detector.check_feedback_loop("thanks").detected is False


class TestRecoveryReplies:
    """Recovery reply follows the topic of the latest user input."""

    def test_pet_loss(self, detector):
        reply = detector.build_recovery("My dog died yesterday and you keep saying the same thing")

        assert reply.startswith(RECOVERY_PREFIX)
        assert "pet" in reply.lower()

    def test_grief(self, detector):
        reply = detector.build_recovery("my grandfather passed away last month")

        assert any(word in reply for word in ("Losing someone", "Grief"))

    def test_emotion(self, detector):
        reply = detector.build_recovery("I'm just so anxious all the time")

        assert "anxious" in reply

    def test_topic_from_history(self, detector):
        reply = detector.build_recovery("you already said that", ["my cat died last week"])

        assert "pet" in reply.lower()

    def test_generic(self, detector):
        reply = detector.build_recovery("you already said that")

        assert reply.startswith(RECOVERY_PREFIX)

    def test_seeded_choice_is_reproducible(self):
        first = FeedbackLoopDetector(rng=random.Random(42)).build_recovery("ugh")
        second = FeedbackLoopDetector(rng=random.Random(42)).build_recovery("ugh")

        assert first == second


class TestNewConversationDetector:

    def test_explicit_reset(self):
        state = ConversationState()

        reason = NewConversationDetector().detect("Can we start over?", state, ManualClock().now())

        assert reason == EXPLICIT_RESET

    def test_inactivity_gap(self):
        clock = ManualClock()
        state = ConversationState()
        state.record_user_message("hello", clock.now())
        clock.advance(minutes=31)

        assert NewConversationDetector().detect("hi again", state, clock.now()) == INACTIVITY_GAP

    def test_short_gap_continues(self):
        clock = ManualClock()
        state = ConversationState()
        state.record_user_message("hello", clock.now())
        clock.advance(minutes=29)

        assert NewConversationDetector().detect("anyway", state, clock.now()) is None

    def test_first_message_is_not_a_reset(self):
        assert NewConversationDetector().detect("hello", ConversationState(), ManualClock().now()) is None

    @pytest.mark.parametrize("message", [
        "start over",
        "Let's start fresh.",
        "jk, let's start fresh",
        "I'd like to start a new conversation please",
    ])
    def test_whole_message_reset(self, message):
        reason = NewConversationDetector().detect(message, ConversationState(), ManualClock().now())

        assert reason == EXPLICIT_RESET

    @pytest.mark.parametrize("message", [
        "I just want to start over. I want to kill myself tonight",
        "I wish I could start over my whole life",
        "moving schools felt like a new conversation with everyone",
    ])
    def test_reset_phrase_inside_longer_message_is_ignored(self, message):
        reason = NewConversationDetector().detect(message, ConversationState(), ManualClock().now())

        assert reason is None
