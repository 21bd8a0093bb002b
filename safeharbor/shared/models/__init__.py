"""Shared domain models for SafeHarbor."""
from .crisis import SeverityLevel, CrisisType
from .turn import (
    MAX_HISTORY_ITEMS,
    FlagSeverity,
    HallucinationFlag,
    HallucinationType,
    TurnInput,
    TurnMetadata,
    TurnOutput,
)

__all__ = [
    "SeverityLevel",
    "CrisisType",
    "MAX_HISTORY_ITEMS",
    "FlagSeverity",
    "HallucinationFlag",
    "HallucinationType",
    "TurnInput",
    "TurnMetadata",
    "TurnOutput",
]
