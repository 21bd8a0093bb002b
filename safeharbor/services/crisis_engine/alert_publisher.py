"""Crisis alert publisher.

Publishes crisis events to a Kinesis stream so the human escalation path is
decoupled from the chat turn. Publishing never blocks the crisis response;
the notifier runs it as a background task.
"""
import asyncio
import json
import logging
import os
from typing import Optional

from safeharbor.shared.errors import TransportError
from .events import CrisisEvent

logger = logging.getLogger(__name__)

DEFAULT_STREAM = "safeharbor-crisis-events"


class CrisisAlertPublisher:
    """Sends crisis events to the escalation stream.

    When publishing is disabled, or no Kinesis client can be created, the
    full payload is written to the log at CRITICAL so on-call staff can pick
    it up by hand. A put_record failure raises TransportError; the notifier
    logs it and the turn is unaffected.

    Args:
        stream_name: Kinesis stream receiving crisis events
        enabled: False in local development
        region: AWS region, AWS_REGION when omitted
    """

    def __init__(
        self,
        stream_name: str = DEFAULT_STREAM,
        enabled: bool = True,
        region: Optional[str] = None,
    ):
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._client = None

        logger.info(
            "CRISIS_ALERT_PUBLISHER_READY",
            extra={"stream_name": stream_name, "enabled": enabled, "region": self.region}
        )

    @property
    def kinesis_client(self):
        """Kinesis client, created on first use; None if creation failed."""
        if self._client is None and self.enabled:
            self._client = self._create_client()
        return self._client

    def _create_client(self):
        try:
            import boto3
            return boto3.client("kinesis", region_name=self.region)
        except Exception as e:
            logger.error(
                "KINESIS_CLIENT_INIT_FAILED",
                extra={"region": self.region, "error": str(e), "error_type": type(e).__name__}
            )
            return None

    async def publish(self, event: CrisisEvent) -> bool:
        """Put one crisis event on the stream.

        Returns:
            True when Kinesis accepted the record, False when it was only
            logged for manual processing

        Raises:
            TransportError: put_record failed
        """
        record = json.dumps(event.to_kinesis_payload())
        client = self.kinesis_client
        if client is None:
            self._log_for_manual_processing(event, record)
            return False

        try:
            # Partitioning by session keeps one session's events in order
            result = await asyncio.to_thread(
                client.put_record,
                StreamName=self.stream_name,
                Data=record,
                PartitionKey=event.session_id,
            )
        except Exception as e:
            raise TransportError(f"Kinesis put_record failed for {event.event_id}: {e}") from e

        logger.critical(
            "CRISIS_EVENT_PUBLISHED",
            extra={
                "event_id": event.event_id,
                "session_id_hash": event.session_id,
                "severity": event.severity.value,
                "crisis_type": event.crisis_type.value,
                "shard_id": result.get("ShardId"),
                "sequence_number": result.get("SequenceNumber"),
            }
        )
        return True

    def _log_for_manual_processing(self, event: CrisisEvent, record: str) -> None:
        logger.critical(
            "CRISIS_EVENT_FALLBACK_LOG",
            extra={
                "event_id": event.event_id,
                "session_id_hash": event.session_id,
                "payload": record,
                "reason": "kinesis_client_unavailable" if self.enabled else "publishing_disabled",
                "action": "MANUAL_PROCESSING_REQUIRED",
            }
        )
