"""Crisis Classifier - deterministic severity and type classification.

A pure function of the input text. Every decision is explainable by the
rule labels it returns; there is no model and no state.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence, Tuple

from safeharbor.shared.errors import ClassificationError
from safeharbor.shared.models import CrisisType, SeverityLevel
from safeharbor.shared.utils import hash_text_for_audit
from safeharbor.shared.utils.text import normalize_text
from .config import (
    HARM_TOKENS,
    SEVERITY_RULES,
    TYPE_RULES,
    ClassifierConfig,
    Rule,
)

logger = logging.getLogger(__name__)

_HARM_TOKEN_RE = re.compile(
    r"\b(?:" + "|".join(sorted(HARM_TOKENS)) + r")\b", re.IGNORECASE
)


@dataclass(frozen=True)
class RuleMatch:
    label: str
    priority: int
    matched_text: str

    def describe(self) -> str:
        return f"{self.label}:{self.matched_text}"


class RuleMatcher:
    """Evaluates a ``(pattern, label, priority)`` table against text.

    Rules are sorted by priority once at construction. Sorting is stable so
    table order breaks ties.
    """

    def __init__(self, rules: Sequence[Rule]):
        ordered = sorted(enumerate(rules), key=lambda item: (item[1][2], item[0]))
        self._rules: List[Tuple[Pattern, str, int]] = [
            (re.compile(pattern, re.IGNORECASE), label, priority)
            for _, (pattern, label, priority) in ordered
        ]

    def __len__(self) -> int:
        return len(self._rules)

    def first_match(self, text: str) -> Optional[RuleMatch]:
        """Highest-priority match, or None.

        Raises:
            ClassificationError: If evaluation fails
        """
        try:
            for pattern, label, priority in self._rules:
                found = pattern.search(text)
                if found:
                    return RuleMatch(label, priority, found.group(0))
        except Exception as e:
            raise ClassificationError(f"Rule evaluation failed: {e}") from e
        return None

    def all_matches(self, text: str) -> List[RuleMatch]:
        """Every matching rule, in evaluation order."""
        try:
            return [
                RuleMatch(label, priority, found.group(0))
                for pattern, label, priority in self._rules
                for found in [pattern.search(text)]
                if found
            ]
        except Exception as e:
            raise ClassificationError(f"Rule evaluation failed: {e}") from e


@dataclass(frozen=True)
class Classification:
    """Result of classifying one message."""
    severity: SeverityLevel
    crisis_type: CrisisType
    matched_rules: List[str] = field(default_factory=list)
    fail_safe: bool = False
    pattern_version: str = ""

    @property
    def is_crisis(self) -> bool:
        """Severity at or above medium triggers the crisis path."""
        return self.severity.at_least(SeverityLevel.MEDIUM)

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "crisis_type": self.crisis_type.value,
            "matched_rules": self.matched_rules,
            "fail_safe": self.fail_safe,
            "pattern_version": self.pattern_version,
        }


class CrisisClassifier:
    """Maps text to a severity tier and a crisis type.

    Severity tiers are evaluated critical first, then high, then medium; the
    first tier that matches wins and is never downgraded. Type evaluation is
    independent and falls back to general-crisis.

    If rule evaluation fails, the classifier fails safe: high when any harm
    token (kill, harm, hurt, die, dead) is present, low otherwise.
    """

    def __init__(
        self,
        config: Optional[ClassifierConfig] = None,
        severity_rules: Sequence[Rule] = SEVERITY_RULES,
        type_rules: Sequence[Rule] = TYPE_RULES,
    ):
        self.config = config or ClassifierConfig()
        self._severity_matcher = RuleMatcher(severity_rules)
        self._type_matcher = RuleMatcher(type_rules)

        logger.info(
            "CRISIS_CLASSIFIER_INITIALIZED",
            extra={
                "severity_rule_count": len(self._severity_matcher),
                "type_rule_count": len(self._type_matcher),
                "pattern_version": self.config.pattern_version,
            }
        )

    def classify_severity(self, text: str) -> SeverityLevel:
        return self.classify(text).severity

    def classify_type(self, text: str) -> CrisisType:
        return self.classify(text).crisis_type

    def classify(self, text: str) -> Classification:
        """Classify a message.

        Args:
            text: Raw user message

        Returns:
            Classification with severity, type and the rules that matched

        Logs:
            - CRISIS_CLASSIFIED: When severity is medium or above
            - CRISIS_CLASSIFIER_FAILSAFE: When rule evaluation failed
        """
        try:
            normalized = normalize_text(text)
            severity_match = self._severity_matcher.first_match(normalized)
            type_match = self._type_matcher.first_match(normalized)
        except (ClassificationError, AttributeError, TypeError) as e:
            return self._fail_safe(text, e)

        severity = SeverityLevel(severity_match.label) if severity_match else SeverityLevel.LOW
        crisis_type = CrisisType(type_match.label) if type_match else CrisisType.GENERAL_CRISIS
        matched = [m.describe() for m in (severity_match, type_match) if m is not None]

        result = Classification(
            severity=severity,
            crisis_type=crisis_type,
            matched_rules=matched,
            pattern_version=self.config.pattern_version,
        )

        if result.is_crisis and self.config.log_matches:
            logger.warning(
                "CRISIS_CLASSIFIED",
                extra={
                    "severity": severity.value,
                    "crisis_type": crisis_type.value,
                    "rule_labels": [m.label for m in (severity_match, type_match) if m],
                    "text_hash": hash_text_for_audit(normalized)[:16],
                    "pattern_version": self.config.pattern_version,
                }
            )
        return result

    def _fail_safe(self, text, error: Exception) -> Classification:
        raw = text if isinstance(text, str) else str(text or "")
        has_harm_token = bool(_HARM_TOKEN_RE.search(raw))
        severity = SeverityLevel.HIGH if has_harm_token else SeverityLevel.LOW

        logger.critical(
            "CRISIS_CLASSIFIER_FAILSAFE",
            extra={
                "error": str(error),
                "error_type": type(error).__name__,
                "fail_safe_severity": severity.value,
                "text_hash": hash_text_for_audit(raw)[:16],
            }
        )
        return Classification(
            severity=severity,
            crisis_type=CrisisType.GENERAL_CRISIS,
            fail_safe=True,
            pattern_version=self.config.pattern_version,
        )
