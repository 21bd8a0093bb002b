"""Tests for CrisisAuditLog - append-only crisis audit trail."""
import json
import pytest
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from safeharbor.shared.models import CrisisType, SeverityLevel
from safeharbor.shared.storage import InMemoryKeyValueStore
from safeharbor.services.audit_service.audit_logger import CrisisAuditLog, GENESIS_HASH
from safeharbor.services.crisis_engine.events import CrisisEvent

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_event(session_id="hash_abc", timestamp=T0, severity=SeverityLevel.HIGH):
    return CrisisEvent(
        timestamp=timestamp,
        session_id=session_id,
        crisis_type=CrisisType.SELF_HARM,
        severity=severity,
        user_message="I've been cutting myself",
        generated_response="The 988 Suicide & Crisis Lifeline is available 24/7.",
        location=None,
        risk_assessment="HIGH RISK - Immediate intervention required",
        clinical_notes="Patient expressed self-harm concerns at high severity",
        detection_method="rule-engine/2026.02.03",
        session_duration="1m 0s",
    )


@pytest.fixture
def audit_log():
    return CrisisAuditLog()


class TestAuditEntryCreation:

    @pytest.mark.asyncio
    async def test_record_creates_entry(self, audit_log):
        entry = await audit_log.record(make_event())

        assert entry.entry_id.startswith("audit_")
        assert entry.key == ("hash_abc", T0.isoformat())
        assert entry.payload["severity"] == "high"
        assert len(entry.entry_hash) == 64  # SHA-256 hex

    @pytest.mark.asyncio
    async def test_entry_is_superset_of_payload(self, audit_log):
        event = make_event()
        entry = await audit_log.record(event)
        record = entry.to_dict()

        for key, value in event.to_notification_payload().items():
            assert record[key] == value
        assert record["detectionMethod"] == "rule-engine/2026.02.03"
        assert record["entryHash"] == entry.entry_hash

    @pytest.mark.asyncio
    async def test_same_key_is_idempotent(self, audit_log):
        first = await audit_log.record(make_event())
        second = await audit_log.record(make_event())

        assert first is second
        assert len(audit_log) == 1

    @pytest.mark.asyncio
    async def test_lookup_by_key_and_session(self, audit_log):
        await audit_log.record(make_event())
        await audit_log.record(make_event(timestamp=T0 + timedelta(seconds=5)))
        await audit_log.record(make_event(session_id="hash_other"))

        assert audit_log.get("hash_abc", T0) is not None
        assert len(audit_log.entries_for("hash_abc")) == 2


class TestHashChain:

    @pytest.mark.asyncio
    async def test_entries_form_chain(self, audit_log):
        first = await audit_log.record(make_event())
        second = await audit_log.record(make_event(timestamp=T0 + timedelta(seconds=1)))

        assert first.previous_hash == GENESIS_HASH
        assert second.previous_hash == first.entry_hash
        assert audit_log.verify_chain() is True

    @pytest.mark.asyncio
    async def test_tampering_detected(self, audit_log):
        await audit_log.record(make_event())
        entry = audit_log._entries[0]
        audit_log._entries[0] = replace(entry, payload={**entry.payload, "severity": "low"})

        assert audit_log.verify_chain() is False

    def test_empty_chain_is_valid(self, audit_log):
        assert audit_log.verify_chain() is True


class TestPersistence:

    @pytest.mark.asyncio
    async def test_entry_written_to_store(self):
        store = InMemoryKeyValueStore()
        audit_log = CrisisAuditLog(store=store)

        entry = await audit_log.record(make_event())

        key = f"safeharbor:audit:hash_abc:{T0.isoformat()}"
        assert key in store
        assert json.loads(await store.get(key))["entryId"] == entry.entry_id

    @pytest.mark.asyncio
    async def test_store_failure_keeps_entry(self):
        store = MagicMock()
        store.set = AsyncMock(side_effect=RuntimeError("throttled"))
        audit_log = CrisisAuditLog(store=store)

        await audit_log.record(make_event())

        assert len(audit_log) == 1

    @pytest.mark.asyncio
    async def test_memory_window_is_bounded_with_store(self):
        store = InMemoryKeyValueStore()
        audit_log = CrisisAuditLog(store=store, max_cached_entries=3)

        for i in range(10):
            await audit_log.record(make_event(timestamp=T0 + timedelta(seconds=i)))

        assert len(audit_log) == 10
        assert audit_log.cached_count == 3
        assert len(audit_log._by_key) == 3
        assert audit_log.get("hash_abc", T0) is None
        assert audit_log.verify_chain() is True

    @pytest.mark.asyncio
    async def test_duplicate_outside_window_found_in_store(self):
        store = InMemoryKeyValueStore()
        audit_log = CrisisAuditLog(store=store, max_cached_entries=2)
        first = await audit_log.record(make_event())
        for i in range(1, 5):
            await audit_log.record(make_event(timestamp=T0 + timedelta(seconds=i)))

        again = await audit_log.record(make_event())

        assert again.entry_id == first.entry_id
        assert again.entry_hash == first.entry_hash
        assert len(audit_log) == 5

    @pytest.mark.asyncio
    async def test_no_store_keeps_every_entry(self):
        audit_log = CrisisAuditLog(max_cached_entries=2)

        for i in range(5):
            await audit_log.record(make_event(timestamp=T0 + timedelta(seconds=i)))

        assert audit_log.cached_count == 5
