"""Safety Service: deterministic crisis classification.

Every message is classified before anything else in the turn runs.
Classification is rule based so each decision can be explained by the rule
labels that matched.

Components:
- config.py: ordered (pattern, label, priority) rule tables
- classifier.py: RuleMatcher and CrisisClassifier

Usage:
    from safeharbor.services.safety_service import CrisisClassifier
    result = CrisisClassifier().classify("I can't cope anymore")
    result.severity, result.crisis_type
"""

from .classifier import Classification, CrisisClassifier, RuleMatch, RuleMatcher
from .config import ClassifierConfig, HARM_TOKENS, SEVERITY_RULES, TYPE_RULES

__all__ = [
    "Classification",
    "CrisisClassifier",
    "RuleMatch",
    "RuleMatcher",
    "ClassifierConfig",
    "HARM_TOKENS",
    "SEVERITY_RULES",
    "TYPE_RULES",
]
