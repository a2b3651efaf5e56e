"""
Appointment reminders.

`ReminderScheduler` schedules two RQ jobs per confirmed appointment,
24 hours and 2 hours before it; `send_reminder_job` runs one of them
through `ReminderWorker`. Job ids are `{appointment_id}-24h` /
`{appointment_id}-2h`, so re-scheduling replaces and cancelling removes them.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from rq import Retry

from app.config import settings
from app.core.booking.availability import resolve_timezone
from app.core.booking.repository import BookingRepository
from app.core.conversation.messages import format_when, text
from app.core.notifications.services import JobServices, job_services
from app.infra.jobs import JobQueue
from app.infra.whatsapp import TextMessage, WhatsAppClient
from app.models.database import AppointmentStatus, Locale

logger = logging.getLogger(__name__)

REMINDER_QUEUE = "reminders"

REMINDER_OFFSETS: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "2h": timedelta(hours=2),
}


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def reminder_key(appointment_id, kind: str) -> str:
    return f"{appointment_id}-{kind}"


def reminder_retry() -> Retry:
    return Retry(max=settings.reminder_max_retries, interval=settings.reminder_retry_intervals)


async def run_reminder(services: JobServices, appointment_id: str, kind: str) -> Optional[str]:
    worker = ReminderWorker(services.repository, services.gateway)
    return await worker.handle({"appointment_id": appointment_id, "kind": kind})


def send_reminder_job(appointment_id: str, kind: str) -> Optional[str]:
    """RQ entry point. A raised error makes RQ retry the job."""

    async def _run() -> Optional[str]:
        async with job_services() as services:
            return await run_reminder(services, appointment_id, kind)

    return asyncio.run(_run())


class ReminderScheduler:
    """Producer side: keyed reminder jobs on the `reminders` queue."""

    def __init__(self, jobs: JobQueue):
        self.jobs = jobs

    async def schedule(self, appointment_id: UUID, scheduled_at: datetime) -> list[str]:
        """
        Schedule the reminders whose fire time is still ahead.

        Returns:
            Ids of the jobs scheduled
        """
        now = _utcnow()
        queued = []

        for kind, offset in REMINDER_OFFSETS.items():
            fire_at = scheduled_at - offset
            if fire_at <= now:
                logger.debug(f"Skipping {kind} reminder for {appointment_id}, already due")
                continue

            key = await self.jobs.enqueue_at(
                REMINDER_QUEUE,
                fire_at,
                send_reminder_job,
                str(appointment_id),
                kind,
                job_id=reminder_key(appointment_id, kind),
                retry=reminder_retry(),
            )
            queued.append(key)

        logger.info(f"Reminders scheduled for {appointment_id}: {queued or 'none'}")
        return queued

    async def cancel(self, appointment_id: UUID) -> None:
        """Withdraw both reminders. Idempotent."""
        for kind in REMINDER_OFFSETS:
            await self.jobs.remove(reminder_key(appointment_id, kind))


class ReminderWorker:
    """Consumer side: send the reminder if the appointment still stands."""

    def __init__(self, repository: BookingRepository, gateway: WhatsAppClient):
        self.repository = repository
        self.gateway = gateway

    async def handle(self, payload: dict) -> Optional[str]:
        """
        Run one reminder task.

        Returns:
            The message body sent, or None when the task was a no-op
        """
        kind = payload.get("kind")
        try:
            appointment_id = UUID(str(payload.get("appointment_id")))
        except ValueError:
            logger.error(f"Dropping reminder with bad payload: {payload}")
            return None
        if kind not in REMINDER_OFFSETS:
            logger.error(f"Dropping reminder with unknown kind: {payload}")
            return None

        appointment = await self.repository.get_appointment_for_reminder(appointment_id)
        if appointment is None or appointment.status != AppointmentStatus.CONFIRMED:
            logger.debug(f"Reminder {kind} for {appointment_id} skipped, appointment not confirmed")
            return None

        already_sent = appointment.reminder_24h_sent if kind == "24h" else appointment.reminder_2h_sent
        if already_sent:
            logger.debug(f"Reminder {kind} for {appointment_id} already sent")
            return None

        tenant, patient, doctor = appointment.tenant, appointment.patient, appointment.doctor
        locale = (patient.language_preference or tenant.locale or Locale.AR).value
        local_time = appointment.scheduled_at.astimezone(resolve_timezone(tenant.timezone))

        body = text(
            locale,
            f"reminder_{kind}",
            doctor=doctor.display_name(locale),
            when=format_when(local_time, locale),
        )
        await self.gateway.send(
            tenant.phone_number_id,
            tenant.access_token,
            TextMessage(to=patient.phone, body=body),
        )
        await self.repository.mark_reminder_sent(appointment_id, kind)

        logger.info(f"Sent {kind} reminder for appointment {appointment_id}")
        return body
