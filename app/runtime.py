"""
Process wiring.

Builds every long-lived handle of the API process once (database, Redis,
RQ job queue, WhatsApp client, optional Claude client) and the services on
top of them. The lifespan starts from `Runtime.build()` and ends with
`Runtime.close()`. RQ jobs build their own handles (see
`app.core.notifications.services`).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from app.config import Settings, settings as default_settings
from app.core.booking.availability import AvailabilityCalculator
from app.core.booking.repository import BookingRepository
from app.core.conversation import (
    BotServices,
    ConversationEngine,
    ConversationLocks,
    ConversationStore,
)
from app.core.intelligence.intent import build_intent_extractor
from app.core.notifications import ReminderScheduler
from app.infra.claude import ClaudeClient
from app.infra.database import Database
from app.infra.jobs import JobQueue
from app.infra.redis import MessageDeduplicator, RedisClient
from app.infra.whatsapp import WhatsAppClient

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    database: Database
    redis: RedisClient
    jobs: JobQueue
    gateway: WhatsAppClient
    claude: Optional[ClaudeClient]
    repository: BookingRepository
    dedupe: MessageDeduplicator
    engine: ConversationEngine

    @classmethod
    async def build(cls, settings: Optional[Settings] = None) -> "Runtime":
        settings = settings or default_settings

        database = Database(settings.database_url)
        redis = RedisClient(settings.redis_url)
        client = await redis.connect()
        if client is None:
            logger.warning("Redis unavailable - running in degraded mode")

        jobs = JobQueue.from_url(settings.redis_url, job_timeout=settings.job_timeout_seconds)
        gateway = WhatsAppClient(settings.whatsapp_api_base_url, settings.whatsapp_timeout_seconds)
        claude = ClaudeClient(settings.anthropic_api_key) if settings.intent_model_enabled else None

        repository = BookingRepository(database)
        services = BotServices(
            store=ConversationStore(client, ttl=settings.conversation_ttl_seconds),
            repository=repository,
            availability=AvailabilityCalculator(repository, settings.slot_duration_minutes),
            intents=build_intent_extractor(settings, claude),
            reminders=ReminderScheduler(jobs),
            gateway=gateway,
        )

        return cls(
            settings=settings,
            database=database,
            redis=redis,
            jobs=jobs,
            gateway=gateway,
            claude=claude,
            repository=repository,
            dedupe=MessageDeduplicator(client, ttl=settings.message_dedupe_ttl_seconds),
            engine=ConversationEngine(services, ConversationLocks(client)),
        )

    async def close(self) -> None:
        await self.gateway.close()
        if self.claude is not None:
            await self.claude.close()
        self.jobs.close()
        await self.redis.close()
        await self.database.close()
        logger.info("Runtime closed")
