"""Baseline response generators.

The pipeline treats generation as an opaque async call. Anything that can
turn the user's message and recent history into text can be plugged in by
subclassing ResponseGenerator or wrapping a coroutine function with
CallableResponseGenerator.
"""
import logging
import re
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Sequence

from safeharbor.services.memory_service.context import extract_emotions
from safeharbor.services.memory_service.retrieval import to_second_person

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 10000

GeneratorFn = Callable[[str, Sequence[str], Optional[str]], Awaitable[str]]


class ResponseGenerator(ABC):
    """Abstract base class for baseline response generators."""

    @abstractmethod
    async def generate(
        self,
        text: str,
        history: Sequence[str] = (),
        system_prompt: Optional[str] = None,
    ) -> str:
        """Generate a baseline response.

        Args:
            text: Current user message
            history: Prior user messages, oldest first
            system_prompt: Optional system prompt for context

        Returns:
            Response text

        Raises:
            GenerationError: If generation fails
        """
        pass

    def validate_prompt(self, text: str) -> bool:
        """Validate the user message before generation.

        Args:
            text: The message to validate

        Returns:
            True if valid, False otherwise
        """
        if not text or not text.strip():
            logger.warning("GENERATION_PROMPT_EMPTY")
            return False

        if len(text) > MAX_PROMPT_LENGTH:
            logger.warning("GENERATION_PROMPT_TOO_LONG", extra={"length": len(text)})
            return False

        return True


class CallableResponseGenerator(ResponseGenerator):
    """Adapts ``async fn(text, history, system_prompt) -> str``."""

    def __init__(self, fn: GeneratorFn):
        self._fn = fn

    async def generate(self, text, history=(), system_prompt=None) -> str:
        return await self._fn(text, list(history), system_prompt)


_EMOTION_REFLECTIONS = (
    ("hopeless", "things feel hopeless"),
    ("grief", "you're grieving"),
    ("anxious", "you're feeling anxious"),
    ("scared", "you're feeling scared"),
    ("angry", "you're feeling angry"),
    ("lonely", "you're feeling lonely"),
    ("sad", "you're feeling sad"),
)


class ReflectiveResponseGenerator(ResponseGenerator):
    """Deterministic reflective listener.

    Used when no language model is configured so the service still answers
    with a plain, safe reflection of what the user said.
    """

    async def generate(self, text, history=(), system_prompt=None) -> str:
        emotions = extract_emotions(text)
        for tag, reflection in _EMOTION_REFLECTIONS:
            if tag in emotions:
                return f"It sounds like {reflection}. What has that been like for you?"

        first_sentence = re.split(r"(?<=[.!?])\s+", text.strip())[0]
        snippet = to_second_person(" ".join(first_sentence.split()[:12])).rstrip(".,!?;: ")
        if snippet:
            return f"It sounds like {snippet}. Can you tell me more about that?"
        return "I'm listening. Can you tell me more about what's on your mind?"
