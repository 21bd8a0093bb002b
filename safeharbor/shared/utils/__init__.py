"""Shared utilities for SafeHarbor."""
from .pii import hash_pii, hash_text_for_audit, configure_pii_salt, is_pii_salt_configured
from .clock import Clock, SystemClock, ManualClock, utc_now

__all__ = [
    "hash_pii",
    "hash_text_for_audit",
    "configure_pii_salt",
    "is_pii_salt_configured",
    "Clock",
    "SystemClock",
    "ManualClock",
    "utc_now",
]
