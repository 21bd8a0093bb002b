"""Memory Service: tiered conversation memory, retrieval and grounding.

Components:
- memory_bank.py: MemoryBank with short-term, working and long-term tiers
- retention.py: forgetting curve
- context.py: emotion/topic tagging and importance estimation
- retrieval.py: AttentionScorer and MemoryGrounder
- scheduler.py: periodic consolidation
"""

from .config import MemoryConfig
from .context import estimate_importance, extract_emotions, extract_topics
from .memory_bank import ConsolidationReport, MemoryBank, MemoryPiece, MemoryRole, PatientProfile
from .retention import retention_factor
from .retrieval import AttentionScorer, GroundingResult, MemoryGrounder, ScoredMemory
from .scheduler import ConsolidationScheduler

__all__ = [
    "MemoryConfig",
    "estimate_importance",
    "extract_emotions",
    "extract_topics",
    "ConsolidationReport",
    "MemoryBank",
    "MemoryPiece",
    "MemoryRole",
    "PatientProfile",
    "retention_factor",
    "AttentionScorer",
    "GroundingResult",
    "MemoryGrounder",
    "ScoredMemory",
    "ConsolidationScheduler",
]
