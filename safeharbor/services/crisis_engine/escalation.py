"""Crisis escalation state machine.

Phases: NORMAL -> CRISIS_ACTIVE -> PERSISTENT_CRISIS, back to NORMAL only
on an explicit new conversation. Deception ("just kidding" shortly after a
crisis turn) is an orthogonal marker: it is recorded and never softens a
crisis response already issued.

Every crisis turn builds an immutable CrisisEvent and hands it to the
notifier without waiting.
"""
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from safeharbor.shared.models import CrisisType, SeverityLevel
from safeharbor.shared.utils import Clock, SystemClock
from safeharbor.shared.utils.pii import hash_text_for_audit
from .events import CrisisEvent, clinical_notes_for, format_duration, risk_assessment_for
from .location import (
    AwaitingLocation,
    LocationConcern,
    LocationInfo,
    LocationResolver,
    NoLocationConcern,
    extract_location,
)
from .notifier import CrisisNotifier
from .responses import (
    PERSISTENT_CRISIS_TEMPLATE,
    crisis_response,
    is_resource_refusal,
    match_deception,
    refusal_response,
)

logger = logging.getLogger(__name__)


class CrisisPhase(Enum):
    NORMAL = "normal"
    CRISIS_ACTIVE = "crisis_active"
    PERSISTENT_CRISIS = "persistent_crisis"


@dataclass(frozen=True)
class DeceptionRecord:
    timestamp: datetime
    message: str
    seconds_since_crisis: float
    matched_phrase: str


@dataclass(frozen=True)
class EscalationConfig:
    """Escalation thresholds and alert transport settings."""
    deception_window_seconds: float = 60.0
    persistent_threshold: int = 2
    location_timeout_seconds: float = 2.0
    stream_name: str = "safeharbor-crisis-events"
    alerts_enabled: bool = False

    @classmethod
    def from_env(cls) -> "EscalationConfig":
        """Create config from environment variables.

        Environment variables:
            SAFEHARBOR_DECEPTION_WINDOW_SECONDS: Deception window (default 60)
            SAFEHARBOR_PERSISTENT_THRESHOLD: Crisis turns before override (default 2)
            SAFEHARBOR_LOCATION_TIMEOUT_SECONDS: Location lookup timeout (default 2)
            SAFEHARBOR_CRISIS_STREAM: Kinesis stream name
            SAFEHARBOR_ALERTS_ENABLED: true to publish to Kinesis
        """
        return cls(
            deception_window_seconds=float(os.getenv("SAFEHARBOR_DECEPTION_WINDOW_SECONDS", "60")),
            persistent_threshold=int(os.getenv("SAFEHARBOR_PERSISTENT_THRESHOLD", "2")),
            location_timeout_seconds=float(os.getenv("SAFEHARBOR_LOCATION_TIMEOUT_SECONDS", "2")),
            stream_name=os.getenv("SAFEHARBOR_CRISIS_STREAM", "safeharbor-crisis-events"),
            alerts_enabled=os.getenv("SAFEHARBOR_ALERTS_ENABLED", "false").lower() == "true",
        )


@dataclass
class SessionCrisisState:
    """Crisis state for one session. Reset only on a new conversation."""
    session_started_at: datetime
    consecutive_crisis_count: int = 0
    recent_crisis_message: Optional[str] = None
    last_crisis_timestamp: Optional[datetime] = None
    last_crisis_type: Optional[CrisisType] = None
    last_crisis_severity: Optional[SeverityLevel] = None
    deception_history: List[DeceptionRecord] = field(default_factory=list)
    refusal_count: int = 0
    location_concern: LocationConcern = field(default_factory=NoLocationConcern)
    location: Optional[LocationInfo] = None

    def phase(self, persistent_threshold: int = 2) -> CrisisPhase:
        if self.consecutive_crisis_count >= persistent_threshold:
            return CrisisPhase.PERSISTENT_CRISIS
        if self.consecutive_crisis_count > 0:
            return CrisisPhase.CRISIS_ACTIVE
        return CrisisPhase.NORMAL

    @property
    def deception_flagged(self) -> bool:
        return bool(self.deception_history)

    @property
    def awaiting_location(self) -> bool:
        return isinstance(self.location_concern, AwaitingLocation)

    def reset(self, now: datetime) -> None:
        """Back to NORMAL for a new conversation.

        The deception history is append-only for the life of the session and
        survives the reset.
        """
        self.session_started_at = now
        self.consecutive_crisis_count = 0
        self.recent_crisis_message = None
        self.last_crisis_timestamp = None
        self.last_crisis_type = None
        self.last_crisis_severity = None
        self.refusal_count = 0
        self.location_concern = NoLocationConcern()
        self.location = None


@dataclass(frozen=True)
class CrisisOutcome:
    response: str
    event: CrisisEvent
    persistent: bool = False
    asked_location: bool = False


class CrisisEscalation:
    """Applies crisis transitions to a SessionCrisisState."""

    def __init__(
        self,
        config: Optional[EscalationConfig] = None,
        notifier: Optional[CrisisNotifier] = None,
        location_resolver: Optional[LocationResolver] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or EscalationConfig()
        self.notifier = notifier or CrisisNotifier()
        self.location_resolver = location_resolver or LocationResolver(
            timeout_seconds=self.config.location_timeout_seconds
        )
        self.clock = clock or SystemClock()

    def new_state(self) -> SessionCrisisState:
        return SessionCrisisState(session_started_at=self.clock.now())

    async def handle_crisis(
        self,
        state: SessionCrisisState,
        text: str,
        severity: SeverityLevel,
        crisis_type: CrisisType,
        session_id_hash: str,
        detection_method: str = "rule-engine",
        user_agent: Optional[str] = None,
    ) -> CrisisOutcome:
        """Advance the state for a crisis turn and build its response.

        Args:
            state: Session crisis state, mutated in place
            text: User message
            severity: Classified severity, medium or above
            crisis_type: Classified crisis type
            session_id_hash: Hashed session id for the event
            detection_method: How the crisis was detected
            user_agent: Client user agent, if known

        Returns:
            CrisisOutcome with the response and the dispatched event

        Logs:
            - CRISIS_ESCALATED: Every crisis turn (CRITICAL)
        """
        now = self.clock.now()
        state.consecutive_crisis_count += 1
        state.recent_crisis_message = text
        state.last_crisis_timestamp = now
        state.last_crisis_type = crisis_type
        state.last_crisis_severity = severity

        persistent = state.consecutive_crisis_count >= self.config.persistent_threshold
        asked_location = False
        if persistent:
            response = PERSISTENT_CRISIS_TEMPLATE
        else:
            if state.location is None:
                state.location = await self.location_resolver.resolve(session_id_hash)
            asked_location = state.location.is_fallback
            response = crisis_response(severity, crisis_type, state.location, ask_location=asked_location)
            if asked_location:
                state.location_concern = AwaitingLocation(
                    concern_type=crisis_type, message_id=f"msg_{uuid.uuid4().hex[:12]}"
                )

        event = CrisisEvent(
            timestamp=now,
            session_id=session_id_hash,
            crisis_type=crisis_type,
            severity=severity,
            user_message=text,
            generated_response=response,
            location=state.location,
            risk_assessment=risk_assessment_for(severity, crisis_type),
            clinical_notes=clinical_notes_for(text, crisis_type, severity),
            detection_method=detection_method,
            session_duration=format_duration(now - state.session_started_at),
            user_agent=user_agent,
        )

        logger.critical(
            "CRISIS_ESCALATED",
            extra={
                "event_id": event.event_id,
                "session_id_hash": session_id_hash,
                "severity": severity.value,
                "crisis_type": crisis_type.value,
                "consecutive_crisis_count": state.consecutive_crisis_count,
                "phase": state.phase(self.config.persistent_threshold).value,
                "text_hash": hash_text_for_audit(text),
            }
        )

        self.notifier.dispatch(event)
        return CrisisOutcome(
            response=response, event=event, persistent=persistent, asked_location=asked_location
        )

    def check_deception(self, state: SessionCrisisState, text: str) -> Optional[DeceptionRecord]:
        """Record a retraction made shortly after a crisis turn."""
        if state.last_crisis_timestamp is None:
            return None
        now = self.clock.now()
        elapsed = (now - state.last_crisis_timestamp).total_seconds()
        if elapsed > self.config.deception_window_seconds:
            return None
        phrase = match_deception(text)
        if phrase is None:
            return None

        record = DeceptionRecord(
            timestamp=now,
            message=text,
            seconds_since_crisis=elapsed,
            matched_phrase=phrase,
        )
        state.deception_history.append(record)
        logger.warning(
            "CRISIS_DECEPTION_FLAGGED",
            extra={
                "matched_phrase": phrase,
                "seconds_since_crisis": round(elapsed, 1),
                "deception_count": len(state.deception_history),
            }
        )
        return record

    def check_refusal(self, state: SessionCrisisState, text: str) -> Optional[str]:
        """Refusal reply when resources are declined during an active crisis."""
        if state.consecutive_crisis_count < 1 or not is_resource_refusal(text):
            return None
        state.refusal_count += 1
        logger.warning(
            "CRISIS_RESOURCES_REFUSED",
            extra={
                "refusal_count": state.refusal_count,
                "crisis_type": state.last_crisis_type.value if state.last_crisis_type else None,
            }
        )
        return refusal_response(state.refusal_count)

    def record_location(self, state: SessionCrisisState, text: str) -> Optional[LocationInfo]:
        """Resolve a pending location question from the user's reply."""
        if not state.awaiting_location:
            return None
        location = extract_location(text)
        if location is None:
            return None
        state.location = location
        state.location_concern = NoLocationConcern()
        logger.info("CRISIS_LOCATION_RECORDED", extra={"region": location.region})
        return location
