"""Booking confirmation: quota check, appointment creation, reschedule completion."""

import logging
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from app.infra.jobs import TaskQueueError
from app.infra.whatsapp import TextMessage
from app.models.database import monthly_limit
from ..messages import format_when, text
from ..state import ConversationState
from .base import BotContext, parse_uuid
from .booking import expire_session, send_date_picker

logger = logging.getLogger(__name__)


def month_start(local_now: datetime) -> datetime:
    """Midnight on the first of the current month, in local_now's zone."""
    return local_now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def handle_confirming(ctx: BotContext, user_text: str) -> None:
    selection = user_text.strip().lower()

    if selection == "confirm":
        await _confirm(ctx)
        return

    if selection == "change_date":
        draft = replace(ctx.draft, date=None, time=None, scheduled_at=None)
        await ctx.transition(ConversationState.SELECTING_DATE, draft=draft)
        await send_date_picker(ctx)
        return

    await ctx.reset()
    await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "booking_abandoned")))


async def _confirm(ctx: BotContext) -> None:
    doctor_id = parse_uuid(ctx.draft.doctor_id)
    if doctor_id is None or not ctx.draft.scheduled_at:
        await expire_session(ctx)
        return
    scheduled_at = datetime.fromisoformat(ctx.draft.scheduled_at)

    rescheduling_id = parse_uuid(ctx.draft.rescheduling_appointment_id)
    if rescheduling_id is not None:
        await _complete_reschedule(ctx, rescheduling_id, scheduled_at)
        return

    repository = ctx.services.repository
    limit = monthly_limit(ctx.tenant.subscription_tier)
    if limit is not None:
        booked = await repository.count_appointments_since(
            ctx.tenant.id, month_start(ctx.local_now)
        )
        if booked >= limit:
            logger.warning(
                f"Tenant {ctx.tenant.id} hit its monthly limit ({booked}/{limit}), booking refused"
            )
            await ctx.reset()
            await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "quota_reached")))
            return

    appointment = await repository.create_appointment(
        tenant_id=ctx.tenant.id,
        patient_id=ctx.patient.id,
        doctor_id=doctor_id,
        service_id=parse_uuid(ctx.draft.service_id),
        scheduled_at=scheduled_at,
    )
    await ctx.reset()
    await _arm_reminders(ctx, appointment.id, scheduled_at, replace_existing=False)

    await ctx.send(TextMessage(
        to=ctx.phone,
        body=text(ctx.locale, "booked", reference=appointment.reference),
    ))


async def _complete_reschedule(ctx: BotContext, appointment_id: UUID, scheduled_at: datetime) -> None:
    """Move the existing appointment instead of creating one; no quota."""
    appointment = await ctx.services.repository.reschedule_appointment(
        tenant_id=ctx.tenant.id,
        patient_id=ctx.patient.id,
        appointment_id=appointment_id,
        scheduled_at=scheduled_at,
    )
    await ctx.reset()

    if appointment is None:
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "appointment_not_found")))
        return

    await _arm_reminders(ctx, appointment.id, scheduled_at, replace_existing=True)

    await ctx.send(TextMessage(
        to=ctx.phone,
        body=text(
            ctx.locale,
            "rescheduled",
            when=format_when(scheduled_at.astimezone(ctx.tz), ctx.locale),
            reference=appointment.reference,
        ),
    ))


async def _arm_reminders(
    ctx: BotContext,
    appointment_id: UUID,
    scheduled_at: datetime,
    replace_existing: bool,
) -> None:
    """The appointment stands even if its reminders cannot be queued."""
    reminders = ctx.services.reminders
    try:
        if replace_existing:
            await reminders.cancel(appointment_id)
        await reminders.schedule(appointment_id, scheduled_at)
    except TaskQueueError:
        logger.exception(f"Could not queue reminders for appointment {appointment_id}")
