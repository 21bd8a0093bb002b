"""Fire-and-forget crisis notification and audit.

``dispatch`` schedules delivery on the running loop and returns at once.
Pending tasks are held here so they are not garbage collected mid-flight;
``drain`` awaits them on shutdown and in tests.
"""
import asyncio
import logging
from typing import Optional, Set

from .alert_publisher import CrisisAlertPublisher
from .events import CrisisEvent

logger = logging.getLogger(__name__)


class CrisisNotifier:
    """Delivers crisis events to the alert publisher and the audit log.

    ``audit_log`` is anything with an async ``record(event)``, normally a
    ``CrisisAuditLog``.
    """

    def __init__(self, publisher: Optional[CrisisAlertPublisher] = None, audit_log=None):
        self.publisher = publisher
        self.audit_log = audit_log
        self._pending: Set[asyncio.Task] = set()
        self.dispatched_count = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def dispatch(self, event: CrisisEvent) -> Optional[asyncio.Task]:
        """Schedule delivery of ``event`` without waiting for it."""
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(event))
        except RuntimeError as e:
            # No running loop, nothing can be scheduled
            logger.critical(
                "CRISIS_NOTIFICATION_NOT_SCHEDULED",
                extra={
                    "event_id": event.event_id,
                    "payload": event.to_notification_payload(),
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return None

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self.dispatched_count += 1
        return task

    async def drain(self) -> None:
        """Wait for all pending deliveries."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, event: CrisisEvent) -> None:
        if self.audit_log is not None:
            try:
                await self.audit_log.record(event)
            except Exception as e:
                logger.critical(
                    "CRISIS_AUDIT_FAILED",
                    extra={
                        "event_id": event.event_id,
                        "session_id_hash": event.session_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

        if self.publisher is not None:
            try:
                await self.publisher.publish(event)
            except Exception as e:
                logger.critical(
                    "CRISIS_EVENT_PUBLISH_FAILED",
                    extra={
                        "event_id": event.event_id,
                        "session_id_hash": event.session_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                        "action": "MANUAL_REVIEW_REQUIRED",
                    }
                )
