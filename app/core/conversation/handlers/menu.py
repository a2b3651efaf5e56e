"""Entry points: greeting, main menu and the appointment listing state."""

import logging
import re

from app.infra.whatsapp import Button, ButtonMessage
from ..messages import text
from ..state import BookingDraft, ConversationState
from .appointments import show_appointments, start_cancelling, start_rescheduling
from .base import BotContext
from .booking import start_booking

logger = logging.getLogger(__name__)

ARABIC_GREETINGS = ("مرحبا", "أهلا", "هلا", "السلام عليكم", "وعليكم", "صباح", "مساء")
LATIN_GREETING = re.compile(r"^(hi|hello|hey|سلام)", re.IGNORECASE)


def is_greeting(user_text: str) -> bool:
    stripped = user_text.strip()
    return any(g in stripped for g in ARABIC_GREETINGS) or bool(LATIN_GREETING.match(stripped))


async def handle_idle(ctx: BotContext, user_text: str) -> None:
    """Any input shows the main menu."""
    await ctx.transition(ConversationState.MAIN_MENU, draft=BookingDraft())

    if is_greeting(user_text):
        name = ctx.patient.display_name
        greeting = (
            text(ctx.locale, "greeting_named", name=name) if name
            else text(ctx.locale, "greeting")
        )
    else:
        greeting = text(ctx.locale, "welcome", clinic=ctx.tenant.name)

    await ctx.send(ButtonMessage(
        to=ctx.phone,
        body=text(ctx.locale, "menu_prompt", greeting=greeting),
        buttons=[
            Button(id="book", title=text(ctx.locale, "btn_book")),
            Button(id="my_appointments", title=text(ctx.locale, "btn_my_appointments")),
            Button(id="cancel", title=text(ctx.locale, "btn_cancel")),
        ],
    ))


async def handle_main_menu(ctx: BotContext, user_text: str) -> None:
    selection = user_text.strip().lower()

    if selection == "book":
        await start_booking(ctx)
    elif selection == "my_appointments":
        await show_appointments(ctx)
    elif selection == "cancel":
        await start_cancelling(ctx)
    elif selection == "reschedule":
        await start_rescheduling(ctx)
    else:
        # Menu is shown again on the next message
        await ctx.transition(ConversationState.IDLE)


async def handle_showing_appointments(ctx: BotContext, user_text: str) -> None:
    selection = user_text.strip().lower()

    if selection == "cancel":
        await start_cancelling(ctx)
    elif selection == "reschedule":
        await start_rescheduling(ctx)
    else:
        await handle_idle(ctx, user_text)
