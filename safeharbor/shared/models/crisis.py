"""Crisis severity and type domain models.

Severity is ordered; comparisons between levels go through ``rank`` so that
the escalation rules read as plain threshold checks.
"""
from enum import Enum


class SeverityLevel(Enum):
    """Crisis severity for a single user message."""
    LOW = "low"             # No crisis language, pipeline continues
    MEDIUM = "medium"       # Distress language, supportive resources offered
    HIGH = "high"           # Self-harm or hopelessness, crisis response
    CRITICAL = "critical"   # Lethal intent, plan or immediacy, 988 + 911

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def at_least(self, other: "SeverityLevel") -> bool:
        """True if this level is the same as or more severe than ``other``."""
        return self.rank >= other.rank


_SEVERITY_RANK = {
    SeverityLevel.LOW: 0,
    SeverityLevel.MEDIUM: 1,
    SeverityLevel.HIGH: 2,
    SeverityLevel.CRITICAL: 3,
}


class CrisisType(Enum):
    """Crisis category used to pick resources. Listed in match priority order."""
    SUICIDE = "suicide"
    SELF_HARM = "self-harm"
    EATING_DISORDER = "eating-disorder"
    SUBSTANCE_USE = "substance-use"
    GENERAL_CRISIS = "general-crisis"
