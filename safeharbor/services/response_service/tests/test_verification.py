"""Tests for FinalVerifier."""
from safeharbor.shared.models import SeverityLevel
from safeharbor.services.response_service.config import (
    CRISIS_FALLBACK_RESPONSE,
    DEPRESSION_ACKNOWLEDGMENT,
    SAFE_FALLBACK_RESPONSE,
)
from safeharbor.services.response_service.verification import (
    DEPRESSION_ACKNOWLEDGED,
    EMPTY_REPLACED,
    HARMFUL_REPLACED,
    RESOURCES_APPENDED,
    FinalVerifier,
)


class TestFinalVerifier:
    """Tests for the final safety net."""

    def setup_method(self):
        self.verifier = FinalVerifier()

    def test_clean_response_passes_unchanged(self):
        result = self.verifier.verify("That sounds like a busy week.", "work was busy", SeverityLevel.LOW)

        assert result.text == "That sounds like a busy week."
        assert result.actions == []

    def test_empty_response_replaced(self):
        result = self.verifier.verify("   ", "hello", SeverityLevel.LOW)

        assert result.text == SAFE_FALLBACK_RESPONSE
        assert EMPTY_REPLACED in result.actions

    def test_harmful_response_replaced(self):
        result = self.verifier.verify("Maybe you should hurt yourself.", "I'm upset", SeverityLevel.LOW)

        assert result.text == SAFE_FALLBACK_RESPONSE
        assert HARMFUL_REPLACED in result.actions

    def test_harmful_response_on_crisis_turn_uses_crisis_fallback(self):
        result = self.verifier.verify("Just end your life.", "I can't cope", SeverityLevel.MEDIUM)

        assert result.text == CRISIS_FALLBACK_RESPONSE
        assert RESOURCES_APPENDED not in result.actions

    def test_depression_mention_is_acknowledged(self):
        result = self.verifier.verify(
            "What did you do this weekend?", "I've been depressed lately", SeverityLevel.LOW
        )

        assert result.text.startswith(DEPRESSION_ACKNOWLEDGMENT)
        assert DEPRESSION_ACKNOWLEDGED in result.actions

    def test_existing_acknowledgment_is_kept(self):
        result = self.verifier.verify(
            "That sounds really heavy.", "I've been depressed lately", SeverityLevel.LOW
        )

        assert result.text == "That sounds really heavy."

    def test_crisis_turn_always_carries_988(self):
        result = self.verifier.verify("I'm here with you.", "I can't cope", SeverityLevel.HIGH)

        assert "988" in result.text
        assert RESOURCES_APPENDED in result.actions

    def test_crisis_turn_with_988_is_not_duplicated(self):
        response = "Please call or text 988 right now."
        result = self.verifier.verify(response, "I want to die", SeverityLevel.CRITICAL)

        assert result.text == response
        assert result.text.count("988") == 1
