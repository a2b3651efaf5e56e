"""Service, doctor, date and time selection."""

import asyncio
import logging
from dataclasses import replace
from datetime import date, datetime, time, timedelta

from app.config import settings
from app.infra.whatsapp import Button, ButtonMessage, ListMessage, ListRow, ListSection, TextMessage
from ..messages import format_day_title, format_long_date, text
from ..state import BookingDraft, ConversationState
from .base import HHMM, ISO_DATE, BotContext, parse_uuid

logger = logging.getLogger(__name__)

DATE_WINDOW_DAYS = 7
MAX_DATES = 5
MAX_SLOTS_PER_BUCKET = 5
AFTERNOON_STARTS = "13:00"


async def expire_session(ctx: BotContext) -> None:
    """The draft lacks what this state needs; start over."""
    logger.warning(f"Conversation {ctx.conversation.id} in {ctx.conversation.state} with incomplete draft")
    await ctx.reset()
    await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "session_expired")))


async def start_booking(ctx: BotContext) -> None:
    """MAIN_MENU `book`: list the tenant's active services."""
    services = await ctx.services.repository.active_services(ctx.tenant.id)

    if not services:
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "no_services")))
        return

    await ctx.transition(ConversationState.SELECTING_SERVICE, draft=BookingDraft())

    rows = [
        ListRow(
            id=str(service.id),
            title=service.display_name(ctx.locale),
            description=text(ctx.locale, "price", price=service.price) if service.price else None,
        )
        for service in services
    ]
    await ctx.send(ListMessage(
        to=ctx.phone,
        header=text(ctx.locale, "services_header"),
        body=text(ctx.locale, "services_body"),
        button_text=text(ctx.locale, "services_button"),
        sections=[ListSection(title=text(ctx.locale, "services_section"), rows=rows)],
    ))


async def handle_selecting_service(ctx: BotContext, user_text: str) -> None:
    service_id = parse_uuid(user_text)
    service = None
    if service_id is not None:
        service = await ctx.services.repository.get_service(ctx.tenant.id, service_id)

    if service is None or not service.is_active:
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "pick_service")))
        return

    doctors = await ctx.services.repository.doctors_for_service(ctx.tenant.id, service.id)
    draft = replace(ctx.draft, service_id=str(service.id))

    if not doctors:
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "no_doctors")))
        return

    if len(doctors) == 1:
        # Skip doctor selection
        draft = replace(draft, doctor_id=str(doctors[0].id))
        await ctx.transition(ConversationState.SELECTING_DATE, draft=draft)
        await send_date_picker(ctx)
        return

    await ctx.transition(ConversationState.SELECTING_DOCTOR, draft=draft)
    await ctx.send(ListMessage(
        to=ctx.phone,
        header=text(ctx.locale, "doctors_header"),
        body=text(ctx.locale, "doctors_body"),
        button_text=text(ctx.locale, "doctors_button"),
        sections=[ListSection(rows=[
            ListRow(
                id=str(doctor.id),
                title=doctor.display_name(ctx.locale),
                description=doctor.specialty,
            )
            for doctor in doctors
        ])],
    ))


async def handle_selecting_doctor(ctx: BotContext, user_text: str) -> None:
    doctor_id = parse_uuid(user_text)
    doctor = None
    if doctor_id is not None:
        doctor = await ctx.services.repository.get_doctor(ctx.tenant.id, doctor_id)

    if doctor is None or not doctor.is_active:
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "pick_doctor")))
        return

    await ctx.transition(
        ConversationState.SELECTING_DATE,
        draft=replace(ctx.draft, doctor_id=str(doctor.id)),
    )
    await send_date_picker(ctx)


async def send_date_picker(ctx: BotContext) -> None:
    """
    List up to five days with open slots among the seven days after today.

    Sends "no slots" and leaves the state alone when none qualify.
    """
    doctor_id = parse_uuid(ctx.draft.doctor_id)
    if doctor_id is None:
        await expire_session(ctx)
        return

    today = ctx.local_now.date()
    available: list[date] = []
    for offset in range(1, DATE_WINDOW_DAYS + 1):
        day = today + timedelta(days=offset)
        if await ctx.services.availability.slots(doctor_id, day, ctx.tz):
            available.append(day)
        if len(available) >= MAX_DATES:
            break

    if not available:
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "no_dates")))
        return

    await ctx.send(ListMessage(
        to=ctx.phone,
        header=text(ctx.locale, "dates_header"),
        body=text(ctx.locale, "dates_body"),
        button_text=text(ctx.locale, "dates_button"),
        sections=[ListSection(rows=[
            ListRow(id=day.isoformat(), title=format_day_title(day, ctx.locale))
            for day in available
        ])],
    ))


def _parse_iso_date(value: str):
    if not ISO_DATE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def bucket_slots(slots: list[str]) -> tuple[list[str], list[str]]:
    """Split at 13:00 into morning and afternoon, five each at most."""
    morning = [s for s in slots if s < AFTERNOON_STARTS][:MAX_SLOTS_PER_BUCKET]
    afternoon = [s for s in slots if s >= AFTERNOON_STARTS][:MAX_SLOTS_PER_BUCKET]
    return morning, afternoon


async def handle_selecting_date(ctx: BotContext, user_text: str) -> None:
    """
    Input is a yyyy-mm-dd row id or free text for the intent extractor.

    Dates past the booking horizon are treated as not understood. The
    state only moves to SELECTING_TIME once the day has slots.
    """
    raw = user_text.strip()
    today = ctx.local_now.date()
    day = _parse_iso_date(raw)

    if day is None and raw:
        result = await ctx.services.intents.extract(raw, ctx.locale, today=today)
        if result.entities.date:
            day = _parse_iso_date(result.entities.date)

    if day is None or day > today + timedelta(days=settings.booking_horizon_days):
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "date_not_understood")))
        return

    doctor_id = parse_uuid(ctx.draft.doctor_id)
    if doctor_id is None:
        await expire_session(ctx)
        return

    slots: list[str] = []
    if day >= today:
        slots = await ctx.services.availability.slots(doctor_id, day, ctx.tz)

    if not slots:
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "no_slots_that_day")))
        await send_date_picker(ctx)
        return

    draft = replace(ctx.draft, date=day.isoformat(), time=None, scheduled_at=None)
    await ctx.transition(ConversationState.SELECTING_TIME, draft=draft)

    morning, afternoon = bucket_slots(slots)
    sections = []
    if morning:
        sections.append(ListSection(
            title=text(ctx.locale, "morning"),
            rows=[ListRow(id=s, title=s) for s in morning],
        ))
    if afternoon:
        sections.append(ListSection(
            title=text(ctx.locale, "afternoon"),
            rows=[ListRow(id=s, title=s) for s in afternoon],
        ))

    await ctx.send(ListMessage(
        to=ctx.phone,
        header=text(ctx.locale, "times_header"),
        body=text(ctx.locale, "times_body"),
        button_text=text(ctx.locale, "times_button"),
        sections=sections,
    ))


async def handle_selecting_time(ctx: BotContext, user_text: str) -> None:
    """Input is "HH:MM"; stores the full timestamp and shows the summary."""
    chosen = user_text.strip()
    if not HHMM.match(chosen):
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "pick_time")))
        return

    doctor_id = parse_uuid(ctx.draft.doctor_id)
    day = _parse_iso_date(ctx.draft.date or "")
    if doctor_id is None or day is None:
        await expire_session(ctx)
        return

    slots = await ctx.services.availability.slots(doctor_id, day, ctx.tz)
    if chosen not in slots:
        await ctx.send(TextMessage(to=ctx.phone, body=text(ctx.locale, "pick_time")))
        return

    hours, minutes = (int(part) for part in chosen.split(":"))
    scheduled_at = datetime.combine(day, time(hours, minutes), tzinfo=ctx.tz)

    service_id = parse_uuid(ctx.draft.service_id)
    doctor, service = await asyncio.gather(
        ctx.services.repository.get_doctor(ctx.tenant.id, doctor_id),
        ctx.services.repository.get_service(ctx.tenant.id, service_id) if service_id else _none(),
    )
    if doctor is None:
        await expire_session(ctx)
        return

    await ctx.transition(
        ConversationState.CONFIRMING,
        draft=replace(ctx.draft, time=chosen, scheduled_at=scheduled_at.isoformat()),
    )

    lines = [text(ctx.locale, "summary_title"), ""]
    if service is not None:
        lines.append(text(ctx.locale, "summary_service", value=service.display_name(ctx.locale)))
    lines += [
        text(ctx.locale, "summary_doctor", value=doctor.display_name(ctx.locale)),
        text(ctx.locale, "summary_date", value=format_long_date(day, ctx.locale)),
        text(ctx.locale, "summary_time", value=chosen),
        "",
        text(
            ctx.locale,
            "summary_question_reschedule" if ctx.draft.rescheduling_appointment_id else "summary_question",
        ),
    ]

    await ctx.send(ButtonMessage(
        to=ctx.phone,
        body="\n".join(lines),
        buttons=[
            Button(id="confirm", title=text(ctx.locale, "btn_confirm")),
            Button(id="change_date", title=text(ctx.locale, "btn_change_date")),
            Button(id="cancel_flow", title=text(ctx.locale, "btn_abort")),
        ],
    ))


async def _none():
    return None
