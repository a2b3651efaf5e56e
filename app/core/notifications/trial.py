"""
Trial-expiry notices.

Once a day the `scheduler` queue runs the sweep: every active tenant whose
trial started exactly (trial length - notice days) calendar days ago, and
that has an owner phone, gets a "trial ends in 2 days" message from its
own WhatsApp number. Nothing records who was notified, so the sweep must
run at most once per day: one job per day with a dated id
(`trial-check-daily:YYYYMMDD`), no retries, and each run schedules the next.
"""

import asyncio
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Optional

import httpx

from app.config import settings
from app.core.booking.repository import BookingRepository
from app.core.conversation.messages import text
from app.core.notifications.services import JobServices, job_services
from app.infra.jobs import JobQueue
from app.infra.whatsapp import TextMessage, WhatsAppClient, WhatsAppSendError

logger = logging.getLogger(__name__)

SCHEDULER_QUEUE = "scheduler"
TRIAL_CHECK_KEY = "trial-check-daily"


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def next_run_at(now: datetime, hour: Optional[int] = None) -> datetime:
    """Next occurrence of hour:00 UTC strictly after `now`."""
    hour = settings.trial_check_hour_utc if hour is None else hour
    candidate = datetime.combine(now.date(), time(hour), tzinfo=timezone.utc)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def trial_check_key(run_at: datetime) -> str:
    return f"{TRIAL_CHECK_KEY}:{run_at:%Y%m%d}"


async def schedule_next(jobs: JobQueue, now: Optional[datetime] = None) -> Optional[str]:
    """Schedule the next daily sweep unless that day's job already exists."""
    now = now or _utcnow()
    run_at = next_run_at(now)
    job_id = trial_check_key(run_at)

    if await jobs.exists(job_id):
        logger.debug(f"Trial expiry check {job_id} already scheduled")
        return None

    await jobs.enqueue_at(
        SCHEDULER_QUEUE,
        run_at,
        trial_check_job,
        job_id=job_id,
        result_ttl=2 * 86400,
    )
    logger.info(f"Trial expiry check scheduled for {run_at.isoformat()}")
    return job_id


async def run_trial_check(services: JobServices, now: Optional[datetime] = None) -> int:
    """Sweep, then schedule tomorrow's run even if the sweep failed."""
    try:
        return await TrialExpiryNotifier(services.repository, services.gateway).run(now)
    finally:
        await schedule_next(services.jobs, now)


def trial_check_job() -> int:
    """RQ entry point for the daily sweep."""

    async def _run() -> int:
        async with job_services() as services:
            return await run_trial_check(services)

    return asyncio.run(_run())


class TrialExpiryNotifier:
    """Finds tenants two days from the end of their trial and warns the owner."""

    def __init__(self, repository: BookingRepository, gateway: WhatsAppClient):
        self.repository = repository
        self.gateway = gateway
        self.days_since_start = settings.trial_length_days - settings.trial_notice_days_before

    async def run(self, now: Optional[datetime] = None) -> int:
        """
        One sweep.

        Returns:
            Number of owners notified
        """
        now = now or _utcnow()
        started_on = now.date() - timedelta(days=self.days_since_start)
        start = datetime.combine(started_on, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)

        tenants = await self.repository.trial_tenants(start, end)
        notified = 0

        for tenant in tenants:
            body = text(tenant.locale.value if tenant.locale else "AR", "trial_ending", clinic=tenant.name)
            try:
                await self.gateway.send(
                    tenant.phone_number_id,
                    tenant.access_token,
                    TextMessage(to=tenant.owner_phone, body=body),
                )
                notified += 1
            except (WhatsAppSendError, httpx.HTTPError) as e:
                # Continue with the remaining tenants
                logger.error(f"Trial notice to tenant {tenant.id} failed: {e!r}")

        logger.info(f"Trial expiry sweep: {notified}/{len(tenants)} owners notified")
        return notified
