"""PII handling for session identifiers and message text.

Session identifiers and raw user messages never appear in logs or alert
payload partition keys. They are hashed with a process-wide salt that is
configured once at startup.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)

MIN_SALT_LENGTH = 32

_salt: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Set the process-wide salt used by ``hash_pii``.

    Call once at startup (the HTTP app does this from SAFEHARBOR_PII_SALT).
    Reconfiguring changes every session hash, so existing Memory Bank
    snapshots would no longer be found.

    Raises:
        ValueError: Salt shorter than MIN_SALT_LENGTH
    """
    global _salt
    if len(salt or "") < MIN_SALT_LENGTH:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"min_length": MIN_SALT_LENGTH, "length": len(salt or "")}
        )
        raise ValueError(f"PII salt must be at least {MIN_SALT_LENGTH} characters")

    _salt = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def is_pii_salt_configured() -> bool:
    return _salt is not None


def _require_salt() -> str:
    if _salt is None:
        logger.critical("PII_HASH_FAILED", extra={"reason": "salt_not_configured"})
        raise RuntimeError("PII salt not configured; call configure_pii_salt() at startup")
    return _salt


def hash_pii(value: str) -> str:
    """Salted SHA-256 hex digest of a session id.

    The digest is what the pipeline uses as the session key, the Memory
    Bank namespace and the Kinesis partition key.

    Raises:
        RuntimeError: Salt not configured
    """
    salted = _require_salt() + value
    return hashlib.sha256(salted.encode("utf-8")).hexdigest()


def hash_text_for_audit(text: str) -> str:
    """Unsalted fingerprint of message text, for matching without exposing it."""
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()
