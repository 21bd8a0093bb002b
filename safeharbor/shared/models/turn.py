"""Turn input/output models and hallucination flags.

``to_dict`` methods produce the camelCase wire format used by the HTTP
surface and by clients of the pipeline.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

MAX_HISTORY_ITEMS = 20


class HallucinationType(Enum):
    """Kinds of unsupported claims a candidate response can contain."""
    FALSE_MEMORY_REFERENCE = "false-memory-reference"
    FALSE_CONTINUITY = "false-continuity"
    LOGICAL_CONTRADICTION = "logical-contradiction"
    CAPABILITY_HALLUCINATION = "capability-hallucination"


class FlagSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class HallucinationFlag:
    """A single unsupported claim found in a candidate response.

    ``offending_text`` is the clause the corrector replaces. It is kept out
    of the wire format.
    """
    flag_type: HallucinationType
    severity: FlagSeverity
    description: str
    confidence_score: float
    offending_text: str = ""

    def __post_init__(self):
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError(
                f"Confidence must be 0.0-1.0, got {self.confidence_score}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.flag_type.value,
            "severity": self.severity.value,
            "description": self.description,
            "confidenceScore": round(self.confidence_score, 3),
        }


@dataclass(frozen=True)
class TurnInput:
    """One user message plus the bounded recent history the caller holds."""
    text: str
    session_id: str
    history: List[str] = field(default_factory=list)
    user_agent: Optional[str] = None

    def __post_init__(self):
        if not self.session_id:
            raise ValueError("session_id is required")
        if len(self.history) > MAX_HISTORY_ITEMS:
            object.__setattr__(self, "history", list(self.history[-MAX_HISTORY_ITEMS:]))


@dataclass
class TurnMetadata:
    """Diagnostics attached to every assembled response."""
    confidence: float = 1.0
    systems_engaged: List[str] = field(default_factory=list)
    processing_time_ms: float = 0.0
    flags: List[HallucinationFlag] = field(default_factory=list)
    annotations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence": round(self.confidence, 3),
            "systemsEngaged": list(self.systems_engaged),
            "processingTimeMs": round(self.processing_time_ms, 2),
            "flags": [flag.to_dict() for flag in self.flags],
            "annotations": list(self.annotations),
        }


@dataclass
class TurnOutput:
    """Final response for a turn, always a well-formed string."""
    text: str
    crisis_flag: bool = False
    concern_type: Optional[str] = None
    metadata: TurnMetadata = field(default_factory=TurnMetadata)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "text": self.text,
            "crisisFlag": self.crisis_flag,
            "metadata": self.metadata.to_dict(),
        }
        if self.concern_type is not None:
            result["concernType"] = self.concern_type
        return result
