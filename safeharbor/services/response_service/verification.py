"""Final verification net.

Runs on every turn, including short-circuited ones. Never makes a response
less safe: harmful text is replaced, depression mentions get acknowledged
and crisis turns always carry a 988 line.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List

from safeharbor.shared.models import SeverityLevel
from .config import (
    ACKNOWLEDGMENT_TOKENS,
    CRISIS_FALLBACK_RESPONSE,
    DEPRESSION_ACKNOWLEDGMENT,
    DEPRESSION_PATTERN,
    HARMFUL_PHRASES,
    RESOURCE_REMINDER,
    SAFE_FALLBACK_RESPONSE,
)

logger = logging.getLogger(__name__)

HARMFUL_REPLACED = "harmful-content-replaced"
EMPTY_REPLACED = "empty-response-replaced"
DEPRESSION_ACKNOWLEDGED = "depression-acknowledged"
RESOURCES_APPENDED = "crisis-resources-appended"


@dataclass(frozen=True)
class VerificationResult:
    text: str
    actions: List[str] = field(default_factory=list)


class FinalVerifier:

    def __init__(self):
        self._depression = re.compile(DEPRESSION_PATTERN, re.IGNORECASE)

    def verify(self, response: str, user_input: str, severity: SeverityLevel) -> VerificationResult:
        """Apply the final safety checks.

        Args:
            response: Candidate response after all enhancement stages
            user_input: Current user message
            severity: This turn's classified severity

        Returns:
            VerificationResult with the final text and the actions taken
        """
        actions: List[str] = []
        crisis = severity.at_least(SeverityLevel.MEDIUM)
        text = (response or "").strip()

        if not text:
            text = CRISIS_FALLBACK_RESPONSE if crisis else SAFE_FALLBACK_RESPONSE
            actions.append(EMPTY_REPLACED)

        lowered = text.lower()
        harmful = next((p for p in HARMFUL_PHRASES if p in lowered), None)
        if harmful is not None:
            logger.critical("HARMFUL_CONTENT_IN_RESPONSE", extra={"pattern": harmful})
            text = CRISIS_FALLBACK_RESPONSE if crisis else SAFE_FALLBACK_RESPONSE
            actions.append(HARMFUL_REPLACED)
            lowered = text.lower()

        if self._depression.search(user_input or "") and not any(
            token in lowered for token in ACKNOWLEDGMENT_TOKENS
        ):
            text = f"{DEPRESSION_ACKNOWLEDGMENT} {text}"
            actions.append(DEPRESSION_ACKNOWLEDGED)

        if crisis and "988" not in text:
            text = f"{text} {RESOURCE_REMINDER}"
            actions.append(RESOURCES_APPENDED)

        if actions:
            logger.info("FINAL_VERIFICATION_APPLIED", extra={"actions": actions})
        return VerificationResult(text=text, actions=actions)
