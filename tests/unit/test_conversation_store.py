"""Tests for conversation storage and locking."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.conversation.locks import ConversationBusyError, ConversationLocks
from app.core.conversation.models import Conversation
from app.core.conversation.state import BookingDraft, ConversationState
from app.core.conversation.store import ConversationStore

NOW = datetime(2025, 6, 8, 6, 0, tzinfo=timezone.utc)


class TestBookingDraft:
    """Draft serialization."""

    def test_empty_draft(self):
        assert BookingDraft().is_empty
        assert BookingDraft().to_dict() == {}

    def test_only_set_fields_are_serialized(self):
        draft = BookingDraft(service_id="s1", date="2025-06-09")
        assert draft.to_dict() == {"service_id": "s1", "date": "2025-06-09"}
        assert not draft.is_empty

    def test_from_dict_ignores_unknown_keys(self):
        draft = BookingDraft.from_dict({"doctor_id": "d1", "legacy": True})
        assert draft == BookingDraft(doctor_id="d1")

    def test_state_parse(self):
        assert ConversationState.parse("CONFIRMING") is ConversationState.CONFIRMING
        assert ConversationState.parse("NOPE") is None


class TestConversationModel:
    """Conversation record."""

    def test_json_round_trip_keeps_unknown_state(self):
        conversation = Conversation(
            tenant_id="t1",
            phone="966500000001",
            state="SOMETHING_OLD",
            draft=BookingDraft(service_id="s1"),
        )

        restored = Conversation.from_json(conversation.to_json())

        assert restored.state == "SOMETHING_OLD"
        assert restored.current_state is None
        assert restored.draft.service_id == "s1"

    def test_lapse_needs_previous_expiry(self):
        conversation = Conversation(tenant_id="t1", phone="1")
        assert not conversation.is_lapsed(NOW)

        conversation.previous_expires_at = NOW - timedelta(seconds=1)
        assert conversation.is_lapsed(NOW)

        conversation.previous_expires_at = NOW + timedelta(seconds=1)
        assert not conversation.is_lapsed(NOW)


class TestConversationStore:
    """Redis-backed store with in-memory fallback."""

    @pytest.fixture
    def mock_redis(self):
        """Create mock Redis client."""
        mock = AsyncMock()
        mock.get = AsyncMock(return_value=None)
        mock.setex = AsyncMock()
        mock.delete = AsyncMock(return_value=1)
        return mock

    @pytest.fixture(autouse=True)
    def frozen_now(self):
        with patch("app.core.conversation.store._utcnow", return_value=NOW):
            yield

    @pytest.mark.asyncio
    async def test_create_writes_with_ttl(self, mock_redis):
        store = ConversationStore(mock_redis, ttl=1800)

        conversation = await store.get_or_create("t1", "966500000001")

        assert conversation.state == ConversationState.IDLE.value
        assert conversation.previous_expires_at is None
        assert conversation.expires_at == NOW + timedelta(seconds=1800)
        key, ttl, _ = mock_redis.setex.call_args.args
        assert key == "clinicbot:v1:conversation:t1:966500000001"
        assert ttl == 1800

    @pytest.mark.asyncio
    async def test_existing_record_remembers_previous_expiry(self, mock_redis):
        stored = Conversation(
            tenant_id="t1",
            phone="1",
            state=ConversationState.SELECTING_DATE.value,
            expires_at=NOW - timedelta(minutes=5),
        )
        mock_redis.get = AsyncMock(return_value=stored.to_json())
        store = ConversationStore(mock_redis, ttl=1800)

        conversation = await store.get_or_create("t1", "1")

        assert conversation.id == stored.id
        assert conversation.previous_expires_at == NOW - timedelta(minutes=5)
        assert conversation.expires_at == NOW + timedelta(seconds=1800)
        assert conversation.is_lapsed(NOW)

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, mock_redis):
        store = ConversationStore(mock_redis)
        conversation = Conversation(
            tenant_id="t1", phone="1", draft=BookingDraft(service_id="s1")
        )

        await store.update(conversation, state=ConversationState.SELECTING_DOCTOR)
        assert conversation.state == ConversationState.SELECTING_DOCTOR.value
        assert conversation.draft.service_id == "s1"

        await store.update(conversation, patient_id="p1")
        assert conversation.patient_id == "p1"
        assert conversation.state == ConversationState.SELECTING_DOCTOR.value
        assert mock_redis.setex.await_count == 2

    @pytest.mark.asyncio
    async def test_reset_clears_draft(self, mock_redis):
        store = ConversationStore(mock_redis)
        conversation = Conversation(
            tenant_id="t1",
            phone="1",
            state=ConversationState.CONFIRMING.value,
            draft=BookingDraft(service_id="s1", doctor_id="d1"),
        )

        await store.reset(conversation)

        assert conversation.state == ConversationState.IDLE.value
        assert conversation.draft.is_empty

    @pytest.mark.asyncio
    async def test_fallback_without_redis(self):
        store = ConversationStore(None)

        created = await store.get_or_create("t1", "1")
        await store.update(created, state=ConversationState.MAIN_MENU)
        loaded = await store._load(store._key("t1", "1"))

        assert loaded.id == created.id
        assert loaded.state == ConversationState.MAIN_MENU.value
        assert "clinicbot:v1:conversation:t1:1" in store._in_memory_fallback

    @pytest.mark.asyncio
    async def test_tenants_do_not_share_conversations(self):
        store = ConversationStore(None)

        first = await store.get_or_create("t1", "1")
        second = await store.get_or_create("t2", "1")

        assert first.id != second.id


class TestConversationLocks:
    """Per-conversation mutual exclusion."""

    @pytest.mark.asyncio
    async def test_same_conversation_is_serialized(self):
        locks = ConversationLocks(None)
        order = []

        async def work(tag: str):
            async with locks.hold("t1", "1"):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(work("a"), work("b"))

        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    @pytest.mark.asyncio
    async def test_redis_lock_acquired_and_released(self):
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=True)
        lock.release = AsyncMock()
        redis = MagicMock()
        redis.lock = MagicMock(return_value=lock)

        async with ConversationLocks(redis).hold("t1", "1"):
            pass

        assert redis.lock.call_args.args[0] == "clinicbot:v1:lock:conversation:t1:1"
        lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_busy_conversation_raises(self):
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=False)
        redis = MagicMock()
        redis.lock = MagicMock(return_value=lock)

        with pytest.raises(ConversationBusyError):
            async with ConversationLocks(redis).hold("t1", "1"):
                pass
