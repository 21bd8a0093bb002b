"""Tests for baseline response generators."""
import pytest

from safeharbor.services.response_service.generator import (
    MAX_PROMPT_LENGTH,
    CallableResponseGenerator,
    ReflectiveResponseGenerator,
)


class TestValidatePrompt:
    """Tests for prompt validation."""

    def setup_method(self):
        self.generator = ReflectiveResponseGenerator()

    def test_empty_prompt_rejected(self):
        assert self.generator.validate_prompt("") is False
        assert self.generator.validate_prompt("   ") is False

    def test_long_prompt_rejected(self):
        assert self.generator.validate_prompt("a" * (MAX_PROMPT_LENGTH + 1)) is False

    def test_normal_prompt_accepted(self):
        assert self.generator.validate_prompt("How are you?") is True


class TestReflectiveResponseGenerator:
    """Tests for the deterministic fallback generator."""

    @pytest.mark.asyncio
    async def test_reflects_named_emotion(self):
        generator = ReflectiveResponseGenerator()

        response = await generator.generate("I feel so lonely these days")

        assert response.startswith("It sounds like you're feeling lonely")

    @pytest.mark.asyncio
    async def test_reflects_first_sentence_in_second_person(self):
        generator = ReflectiveResponseGenerator()

        response = await generator.generate("I started a new job. It is going okay.")

        assert response == "It sounds like you started a new job. Can you tell me more about that?"

    @pytest.mark.asyncio
    async def test_is_deterministic(self):
        generator = ReflectiveResponseGenerator()

        first = await generator.generate("My brother moved away")
        second = await generator.generate("My brother moved away")

        assert first == second


class TestCallableResponseGenerator:
    """Tests for wrapping a coroutine function."""

    @pytest.mark.asyncio
    async def test_passes_arguments_through(self):
        seen = {}

        async def fn(text, history, system_prompt):
            seen.update(text=text, history=history, system_prompt=system_prompt)
            return "ok"

        generator = CallableResponseGenerator(fn)
        result = await generator.generate("hi", ("earlier",), "be kind")

        assert result == "ok"
        assert seen == {"text": "hi", "history": ["earlier"], "system_prompt": "be kind"}
