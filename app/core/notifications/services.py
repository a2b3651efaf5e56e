"""Dependencies for code running inside an RQ job."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from app.config import Settings, settings as default_settings
from app.core.booking.repository import BookingRepository
from app.infra.database import Database
from app.infra.jobs import JobQueue
from app.infra.whatsapp import WhatsAppClient


@dataclass
class JobServices:
    repository: BookingRepository
    gateway: WhatsAppClient
    jobs: JobQueue


@asynccontextmanager
async def job_services(settings: Optional[Settings] = None) -> AsyncIterator[JobServices]:
    """
    Build the handles one job needs and close them afterwards.

    Each job runs in its own event loop (`asyncio.run`), so connections are
    not shared between jobs.
    """
    settings = settings or default_settings
    database = Database(settings.database_url)
    gateway = WhatsAppClient(settings.whatsapp_api_base_url, settings.whatsapp_timeout_seconds)
    jobs = JobQueue.from_url(settings.redis_url, job_timeout=settings.job_timeout_seconds)
    try:
        yield JobServices(
            repository=BookingRepository(database),
            gateway=gateway,
            jobs=jobs,
        )
    finally:
        await gateway.close()
        jobs.close()
        await database.close()
