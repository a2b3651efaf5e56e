"""Existing appointments: listing, cancellation and picking one to reschedule."""

import logging

from app.infra.jobs import TaskQueueError
from app.infra.whatsapp import ListMessage, ListRow, ListSection, TextMessage
from app.models.database import Appointment
from ..messages import format_short, format_when, text
from ..state import BookingDraft, ConversationState
from .base import BotContext, parse_uuid
from .booking import send_date_picker

logger = logging.getLogger(__name__)

MAX_LISTED = 5


def _rows(ctx: BotContext, appointments: list[Appointment]) -> list[ListRow]:
    return [
        ListRow(
            id=str(appointment.id),
            title=appointment.doctor.display_name(ctx.locale),
            description=format_short(appointment.scheduled_at.astimezone(ctx.tz), ctx.locale),
        )
        for appointment in appointments
    ]


async def _upcoming(ctx: BotContext) -> list[Appointment]:
    return await ctx.services.repository.upcoming_appointments(
        ctx.tenant.id, ctx.patient.id, ctx.now, limit=MAX_LISTED
    )


async def show_appointments(ctx: BotContext) -> None:
    """MAIN_MENU `my_appointments`: acknowledge, then list without actions."""
    await ctx.transition(ConversationState.SHOWING_APPOINTMENTS, draft=BookingDraft())
    await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "loading_appointments")))

    appointments = await _upcoming(ctx)
    if not appointments:
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "no_upcoming")))
        return

    lines = [text(ctx.locale, "appointments_title"), ""]
    for number, appointment in enumerate(appointments, start=1):
        doctor = appointment.doctor.display_name(ctx.locale)
        when = format_when(appointment.scheduled_at.astimezone(ctx.tz), ctx.locale)
        lines.append(f"{number}. {doctor} - {when} ({appointment.reference})")
    lines += ["", text(ctx.locale, "appointments_footer")]

    await ctx.send(TextMessage(to=ctx.phone, body="\n".join(lines)))


async def start_cancelling(ctx: BotContext) -> None:
    await ctx.transition(ConversationState.CANCELLING, draft=BookingDraft())
    await handle_cancelling(ctx, "")


async def handle_cancelling(ctx: BotContext, user_text: str) -> None:
    """List the soonest confirmed appointments; the input itself is not used."""
    appointments = await _upcoming(ctx)

    if not appointments:
        await ctx.reset()
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "no_cancellable")))
        return

    await ctx.transition(ConversationState.CONFIRM_CANCEL)
    await ctx.send(ListMessage(
        to=ctx.phone,
        header=text(ctx.locale, "cancel_header"),
        body=text(ctx.locale, "cancel_body"),
        button_text=text(ctx.locale, "appointments_button"),
        sections=[ListSection(rows=_rows(ctx, appointments))],
    ))


async def handle_confirm_cancel(ctx: BotContext, user_text: str) -> None:
    """Input is the appointment id picked from the list."""
    repository = ctx.services.repository
    appointment_id = parse_uuid(user_text)
    appointment = None
    if appointment_id is not None:
        appointment = await repository.find_patient_appointment(
            ctx.tenant.id, ctx.patient.id, appointment_id
        )

    if appointment is None or not await repository.cancel_appointment(appointment.id):
        await ctx.reset()
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "appointment_not_found")))
        return

    await ctx.reset()
    try:
        await ctx.services.reminders.cancel(appointment.id)
    except TaskQueueError:
        # Reminder tasks re-check the status before sending
        logger.exception(f"Could not withdraw reminders for appointment {appointment.id}")

    logger.info(f"Appointment {appointment.id} cancelled by patient")
    await ctx.send(TextMessage(
        to=ctx.phone,
        body=text(
            ctx.locale,
            "cancelled",
            doctor=appointment.doctor.display_name(ctx.locale),
            when=format_when(appointment.scheduled_at.astimezone(ctx.tz), ctx.locale),
        ),
    ))


async def start_rescheduling(ctx: BotContext) -> None:
    """List confirmed appointments to move."""
    appointments = await _upcoming(ctx)

    if not appointments:
        await ctx.reset()
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "no_reschedulable")))
        return

    await ctx.transition(ConversationState.RESCHEDULING, draft=BookingDraft())
    await ctx.send(ListMessage(
        to=ctx.phone,
        header=text(ctx.locale, "reschedule_header"),
        body=text(ctx.locale, "reschedule_body"),
        button_text=text(ctx.locale, "appointments_button"),
        sections=[ListSection(rows=_rows(ctx, appointments))],
    ))


async def handle_rescheduling(ctx: BotContext, user_text: str) -> None:
    """Input is the appointment id; continue with the date/time sub-flow."""
    appointment_id = parse_uuid(user_text)
    appointment = None
    if appointment_id is not None:
        appointment = await ctx.services.repository.find_patient_appointment(
            ctx.tenant.id, ctx.patient.id, appointment_id
        )

    if appointment is None:
        await ctx.reset()
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "appointment_not_found")))
        return

    draft = BookingDraft(
        rescheduling_appointment_id=str(appointment.id),
        doctor_id=str(appointment.doctor_id),
        service_id=str(appointment.service_id) if appointment.service_id else None,
    )
    await ctx.transition(ConversationState.SELECTING_DATE, draft=draft)
    await send_date_picker(ctx)
