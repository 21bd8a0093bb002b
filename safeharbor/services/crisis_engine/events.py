"""Crisis events and their wire payloads.

A CrisisEvent is created once per crisis turn (severity medium or above) and
never modified. The notification payload is the fixed schema consumed by
the alert transport; the audit log stores a superset of it.
"""
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from safeharbor.shared.models import CrisisType, SeverityLevel
from .location import LocationInfo

RISK_ASSESSMENTS = {
    SeverityLevel.CRITICAL: "CRITICAL RISK - Immediate safety assessment required",
    SeverityLevel.HIGH: "HIGH RISK - Immediate intervention required",
    SeverityLevel.MEDIUM: "MODERATE RISK - Close monitoring needed",
    SeverityLevel.LOW: "BASELINE RISK - Standard crisis protocols",
}

# (pattern, note) checked against the user message
CLINICAL_INDICATORS = (
    (r"\b(?:plan|planning|method|means|how to)\b", "ALERT: Possible plan, method or means"),
    (r"\b(?:tonight|today|right now|soon|ready)\b", "ALERT: Temporal immediacy indicators present"),
    (r"\b(?:alone|no one|nobody|isolated)\b", "Risk factor: Social isolation mentioned"),
    (r"\b(?:family|kids|children|pet|dog|cat)\b", "Protective factor: Family or dependents mentioned"),
)


def risk_assessment_for(severity: SeverityLevel, crisis_type: CrisisType) -> str:
    assessment = RISK_ASSESSMENTS[severity]
    if crisis_type == CrisisType.SUICIDE and severity.at_least(SeverityLevel.HIGH):
        assessment += " - suicide risk, do not leave unattended"
    return assessment


def clinical_notes_for(text: str, crisis_type: CrisisType, severity: SeverityLevel) -> str:
    """Deterministic notes for the reviewing clinician.

    Always opens with type and severity, then any indicator found in the
    message.
    """
    lowered = text.lower()
    notes = [f"Patient expressed {crisis_type.value} concerns at {severity.value} severity"]
    notes.extend(note for pattern, note in CLINICAL_INDICATORS if re.search(pattern, lowered))
    return "; ".join(notes)


def format_duration(elapsed: timedelta) -> str:
    """Render a session duration as ``"<m>m <s>s"``."""
    total = max(0, int(elapsed.total_seconds()))
    minutes, seconds = divmod(total, 60)
    return f"{minutes}m {seconds}s"


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class CrisisEvent:
    """Immutable record of a crisis turn.

    ``session_id`` is always the hashed session id.
    """
    timestamp: datetime
    session_id: str
    crisis_type: CrisisType
    severity: SeverityLevel
    user_message: str
    generated_response: str
    location: Optional[LocationInfo]
    risk_assessment: str
    clinical_notes: str
    detection_method: str
    session_duration: str
    user_agent: Optional[str] = None
    event_id: str = field(default_factory=lambda: f"crisis_{uuid.uuid4().hex[:12]}")

    def to_notification_payload(self) -> Dict[str, Any]:
        """Fixed payload for the alert transport."""
        return {
            "timestamp": _iso(self.timestamp),
            "sessionId": self.session_id,
            "crisisType": self.crisis_type.value,
            "severity": self.severity.value,
            "userMessage": self.user_message,
            "rogerResponse": self.generated_response,
            "locationInfo": (
                self.location.to_dict() if self.location
                else {"city": None, "region": None, "coordinates": None}
            ),
            "clinicalNotes": self.clinical_notes,
            "riskAssessment": self.risk_assessment,
            "userAgent": self.user_agent,
            "sessionDuration": self.session_duration,
        }

    def to_kinesis_payload(self) -> Dict[str, Any]:
        """Convert to Kinesis record payload.

        Returns:
            Dictionary for Kinesis put_record Data field
        """
        return {
            "event_id": self.event_id,
            "event_type": "safeharbor.crisis.detected",
            "timestamp": _iso(self.timestamp),
            "source": "crisis-engine",
            "data": self.to_notification_payload(),
        }
