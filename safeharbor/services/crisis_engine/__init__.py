"""Crisis Engine: escalation state, crisis responses and alerting.

A crisis turn (severity medium or above) gets a templated, resource-bearing
response immediately. Notification and audit run in the background and
never delay or alter that response.
"""

from .alert_publisher import CrisisAlertPublisher
from .escalation import (
    CrisisEscalation,
    CrisisOutcome,
    CrisisPhase,
    DeceptionRecord,
    EscalationConfig,
    SessionCrisisState,
)
from .events import CrisisEvent, clinical_notes_for, format_duration, risk_assessment_for
from .location import (
    FALLBACK_LOCATION,
    AwaitingLocation,
    LocationInfo,
    LocationProvider,
    LocationResolver,
    NoLocationConcern,
    StaticLocationProvider,
    extract_location,
    local_resources,
)
from .notifier import CrisisNotifier
from .responses import PERSISTENT_CRISIS_TEMPLATE, crisis_response

__all__ = [
    "CrisisAlertPublisher",
    "CrisisEscalation",
    "CrisisOutcome",
    "CrisisPhase",
    "DeceptionRecord",
    "EscalationConfig",
    "SessionCrisisState",
    "CrisisEvent",
    "clinical_notes_for",
    "format_duration",
    "risk_assessment_for",
    "FALLBACK_LOCATION",
    "AwaitingLocation",
    "LocationInfo",
    "LocationProvider",
    "LocationResolver",
    "NoLocationConcern",
    "StaticLocationProvider",
    "extract_location",
    "local_resources",
    "CrisisNotifier",
    "PERSISTENT_CRISIS_TEMPLATE",
    "crisis_response",
]
