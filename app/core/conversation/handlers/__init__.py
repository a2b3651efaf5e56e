"""State handlers. Each takes (BotContext, user_text) and never raises on bad input."""

from .appointments import handle_cancelling, handle_confirm_cancel, handle_rescheduling
from .base import BotContext, BotServices
from .booking import (
    handle_selecting_date,
    handle_selecting_doctor,
    handle_selecting_service,
    handle_selecting_time,
    send_date_picker,
)
from .confirming import handle_confirming
from .menu import handle_idle, handle_main_menu, handle_showing_appointments

__all__ = [
    "BotContext",
    "BotServices",
    "handle_idle",
    "handle_main_menu",
    "handle_selecting_service",
    "handle_selecting_doctor",
    "handle_selecting_date",
    "handle_selecting_time",
    "handle_confirming",
    "handle_cancelling",
    "handle_confirm_cancel",
    "handle_rescheduling",
    "handle_showing_appointments",
    "send_date_picker",
]
