"""
Conversation Engine

Turns one inbound WhatsApp message into state changes and replies:

    lock (tenant, phone)
      -> get_or_create conversation (reset if the idle window lapsed)
      -> upsert patient
      -> HANDLERS[state](context, user_text)

The handler table is the whole transition map; an unrecognized stored
state is routed to the IDLE handler.
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from app.core.booking.availability import resolve_timezone
from app.models.database import Tenant
from app.models.webhook import IncomingMessage
from .handlers import (
    BotContext,
    BotServices,
    handle_cancelling,
    handle_confirm_cancel,
    handle_confirming,
    handle_idle,
    handle_main_menu,
    handle_rescheduling,
    handle_selecting_date,
    handle_selecting_doctor,
    handle_selecting_service,
    handle_selecting_time,
    handle_showing_appointments,
)
from .handlers.base import locale_for
from .locks import ConversationLocks
from .models import Conversation
from .state import ConversationState

logger = logging.getLogger(__name__)

StateHandler = Callable[[BotContext, str], Awaitable[None]]

HANDLERS: dict[ConversationState, StateHandler] = {
    ConversationState.IDLE: handle_idle,
    ConversationState.MAIN_MENU: handle_main_menu,
    ConversationState.SELECTING_SERVICE: handle_selecting_service,
    ConversationState.SELECTING_DOCTOR: handle_selecting_doctor,
    ConversationState.SELECTING_DATE: handle_selecting_date,
    ConversationState.SELECTING_TIME: handle_selecting_time,
    ConversationState.CONFIRMING: handle_confirming,
    ConversationState.CANCELLING: handle_cancelling,
    ConversationState.CONFIRM_CANCEL: handle_confirm_cancel,
    ConversationState.RESCHEDULING: handle_rescheduling,
    ConversationState.SHOWING_APPOINTMENTS: handle_showing_appointments,
}


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def handler_for(conversation: Conversation) -> StateHandler:
    state = conversation.current_state
    if state is None:
        logger.warning(
            f"Conversation {conversation.id} has unknown state {conversation.state!r}, treating as IDLE"
        )
        return handle_idle
    return HANDLERS.get(state, handle_idle)


class ConversationEngine:
    """Routes inbound messages through the state handlers."""

    def __init__(self, services: BotServices, locks: ConversationLocks):
        self.services = services
        self.locks = locks

    async def handle_message(self, tenant: Tenant, message: IncomingMessage) -> None:
        """
        Process one inbound message for a tenant.

        State is persisted before each reply goes out, so a failed send
        leaves the conversation advanced.

        Raises:
            ConversationBusyError: if the conversation lock is not obtained
            WhatsAppSendError: if a reply is rejected
        """
        tenant_id = str(tenant.id)
        phone = message.sender

        async with self.locks.hold(tenant_id, phone):
            now = _utcnow()
            store = self.services.store

            conversation = await store.get_or_create(tenant_id, phone)
            if conversation.is_lapsed(now) and conversation.state != ConversationState.IDLE.value:
                logger.info(f"Conversation {conversation.id} lapsed in {conversation.state}, resetting")
                await store.reset(conversation)

            patient = await self.services.repository.upsert_patient(tenant, phone, now)
            if conversation.patient_id != str(patient.id):
                await store.update(conversation, patient_id=str(patient.id))

            ctx = BotContext(
                services=self.services,
                tenant=tenant,
                patient=patient,
                conversation=conversation,
                locale=locale_for(patient, tenant),
                tz=resolve_timezone(tenant.timezone),
                now=now,
            )

            handler = handler_for(conversation)
            logger.debug(
                f"Conversation {conversation.id} in {conversation.state} -> {handler.__name__}"
            )
            await handler(ctx, message.user_text)
