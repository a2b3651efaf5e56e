"""Redis-based conversation store."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from redis.asyncio import Redis

from app.config import settings
from app.infra.redis import APP_PREFIX
from .models import Conversation
from .state import BookingDraft, ConversationState


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)

logger = logging.getLogger(__name__)

CONVERSATION_PREFIX = f"{APP_PREFIX}conversation:"


class ConversationStore:
    """
    TTL-bounded conversation records.

    Key pattern: clinicbot:v1:conversation:{tenant_id}:{phone}

    Every write refreshes the idle window. Gracefully handles Redis
    unavailability with an in-memory fallback, where records do not
    expire on their own and the engine's lapse check does the work.
    """

    def __init__(self, redis_client: Optional[Redis], ttl: Optional[int] = None):
        """Initialize store.

        Args:
            redis_client: Connected client, or None for in-memory mode
            ttl: Idle window in seconds (defaults to 30 minutes)
        """
        self.redis = redis_client
        self._ttl = ttl or settings.conversation_ttl_seconds
        self._in_memory_fallback: dict[str, str] = {}

    def _key(self, tenant_id: str, phone: str) -> str:
        """Generate Redis key."""
        return f"{CONVERSATION_PREFIX}{tenant_id}:{phone}"

    async def _load(self, key: str) -> Optional[Conversation]:
        if self.redis is not None:
            data = await self.redis.get(key)
        else:
            data = self._in_memory_fallback.get(key)
        return Conversation.from_json(data) if data else None

    async def _save(self, conversation: Conversation) -> None:
        now = _utcnow()
        conversation.updated_at = now
        conversation.expires_at = now + timedelta(seconds=self._ttl)

        key = self._key(conversation.tenant_id, conversation.phone)
        if self.redis is not None:
            await self.redis.setex(key, self._ttl, conversation.to_json())
        else:
            self._in_memory_fallback[key] = conversation.to_json()

    async def get_or_create(self, tenant_id: str, phone: str) -> Conversation:
        """
        Fetch the conversation for (tenant, phone), creating it as IDLE.

        An existing record has its expiry pushed out; the expiry it had
        before is kept in `previous_expires_at`.

        Args:
            tenant_id: Tenant identifier
            phone: Patient phone (E.164 digits as sent by the provider)

        Returns:
            Existing or new Conversation
        """
        conversation = await self._load(self._key(tenant_id, phone))

        if conversation is None:
            conversation = Conversation(tenant_id=tenant_id, phone=phone)
            logger.debug(f"Conversation created: {conversation.id}")
        else:
            conversation.previous_expires_at = conversation.expires_at

        if self.redis is None:
            logger.warning(
                f"Redis unavailable, using in-memory fallback for conversation {conversation.id}"
            )

        await self._save(conversation)
        return conversation

    async def update(
        self,
        conversation: Conversation,
        state: Optional[ConversationState] = None,
        draft: Optional[BookingDraft] = None,
        patient_id: Optional[str] = None,
    ) -> Conversation:
        """
        Merge the provided fields into the conversation and persist it.

        The draft, when given, replaces the stored one as a whole.
        """
        if state is not None:
            if conversation.state != state.value:
                logger.debug(
                    f"Conversation {conversation.id}: {conversation.state} -> {state.value}"
                )
            conversation.state = state.value
        if draft is not None:
            conversation.draft = draft
        if patient_id is not None:
            conversation.patient_id = patient_id

        await self._save(conversation)
        return conversation

    async def reset(self, conversation: Conversation) -> Conversation:
        """Back to IDLE with an empty draft."""
        logger.debug(f"Conversation {conversation.id}: {conversation.state} -> IDLE (reset)")
        conversation.state = ConversationState.IDLE.value
        conversation.draft = BookingDraft()
        await self._save(conversation)
        return conversation
