"""Memory service configuration.

Tier capacities and thresholds for the Memory Bank, retrieval scoring and
consolidation.
"""
import os
from dataclasses import dataclass
from typing import FrozenSet, Tuple

# Emotions that mirror a memory into the working tier regardless of importance
WORKING_EMOTIONS: FrozenSet[str] = frozenset({"angry", "sad", "anxious", "scared"})

# Emotions that mirror a memory into the long-term tier regardless of importance
LONG_TERM_EMOTIONS: FrozenSet[str] = frozenset({"trauma", "crisis", "grief"})

# Phrases that mean a response already refers back to something the user said
MEMORY_REFERENCE_MARKERS: Tuple[str, ...] = (
    "you mentioned",
    "you said",
    "you told me",
    "you shared",
    "you've mentioned",
    "you brought up",
    "i remember",
    "earlier you",
    "as you said",
)

SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class MemoryConfig:
    """Memory Bank capacities and thresholds."""

    short_term_capacity: int = 50
    working_capacity: int = 20
    long_term_capacity: int = 500

    # Mirror thresholds (strictly greater than)
    working_importance_threshold: float = 0.7
    long_term_importance_threshold: float = 0.8

    # Consolidation: short-term items older than this are promoted or evicted
    consolidation_age_hours: float = 24.0
    consolidation_importance_threshold: float = 0.6
    consolidation_period_seconds: float = 300.0

    # Patient profile
    significant_event_importance: float = 0.9
    max_significant_events: int = 50

    # Retrieval
    retrieval_k: int = 5
    recent_short_term_count: int = 10
    long_term_retrieval_importance: float = 0.7
    grounding_min_keyword_match: float = 0.25
    grounding_min_history: int = 3

    # Persistence
    snapshot_key_prefix: str = "safeharbor:memory"
    backup_interval_seconds: float = 300.0

    @classmethod
    def from_env(cls) -> "MemoryConfig":
        """Create config from environment variables.

        Environment variables:
            SAFEHARBOR_MEMORY_SHORT_TERM_CAP: Short-term capacity (default 50)
            SAFEHARBOR_MEMORY_WORKING_CAP: Working capacity (default 20)
            SAFEHARBOR_MEMORY_LONG_TERM_CAP: Long-term capacity (default 500)
            SAFEHARBOR_CONSOLIDATION_PERIOD_SECONDS: Consolidation period (default 300)
            SAFEHARBOR_MEMORY_BACKUP_INTERVAL_SECONDS: Backup interval (default 300)
            SAFEHARBOR_MEMORY_KEY_PREFIX: Storage key prefix
        """
        return cls(
            short_term_capacity=int(os.getenv("SAFEHARBOR_MEMORY_SHORT_TERM_CAP", "50")),
            working_capacity=int(os.getenv("SAFEHARBOR_MEMORY_WORKING_CAP", "20")),
            long_term_capacity=int(os.getenv("SAFEHARBOR_MEMORY_LONG_TERM_CAP", "500")),
            consolidation_period_seconds=float(
                os.getenv("SAFEHARBOR_CONSOLIDATION_PERIOD_SECONDS", "300")
            ),
            backup_interval_seconds=float(
                os.getenv("SAFEHARBOR_MEMORY_BACKUP_INTERVAL_SECONDS", "300")
            ),
            snapshot_key_prefix=os.getenv("SAFEHARBOR_MEMORY_KEY_PREFIX", "safeharbor:memory"),
        )
