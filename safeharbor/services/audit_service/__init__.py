"""Audit Service: append-only crisis audit trail.

Every crisis event is recorded with a hash chain for tamper detection.
Recording is fire-and-forget from the turn; failures are logged only.
"""

from .audit_logger import CrisisAuditLog, CrisisAuditEntry, GENESIS_HASH

__all__ = [
    "CrisisAuditLog",
    "CrisisAuditEntry",
    "GENESIS_HASH",
]
