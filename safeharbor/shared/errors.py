"""Error taxonomy for the SafeHarbor pipeline.

Every error raised inside a turn is caught at the stage boundary that owns it.
None of these may reach the user as raw text.
"""


class SafeHarborError(Exception):
    """Base class for pipeline errors."""
    pass


class ClassificationError(SafeHarborError):
    """Rule engine fault while classifying text. Handled by the fail-safe."""
    pass


class TransportError(SafeHarborError):
    """Crisis notification or audit delivery failed."""
    pass


class PersistenceError(SafeHarborError):
    """Snapshot read or write against durable storage failed."""
    pass


class GenerationError(SafeHarborError):
    """Baseline response generator failed or timed out."""
    pass


class EnhancementError(SafeHarborError):
    """Retrieval grounding or hallucination correction failed."""
    pass


class SessionBusyError(SafeHarborError):
    """A turn for this session is already in flight."""

    def __init__(self, session_id_hash: str):
        super().__init__(f"Session {session_id_hash[:12]} already has a turn in flight")
        self.session_id_hash = session_id_hash
