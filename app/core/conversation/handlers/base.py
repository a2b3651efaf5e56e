"""Shared handler plumbing: collaborators, per-message context, input parsing."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Protocol
from uuid import UUID
from zoneinfo import ZoneInfo

from app.core.booking.availability import AvailabilityCalculator
from app.core.booking.repository import BookingRepository
from app.core.intelligence.intent import IntentExtractor
from app.infra.whatsapp import OutboundMessage
from app.models.database import Locale, Patient, Tenant
from ..models import Conversation
from ..state import BookingDraft, ConversationState
from ..store import ConversationStore

if TYPE_CHECKING:
    from app.core.notifications.reminders import ReminderScheduler

logger = logging.getLogger(__name__)

HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class MessageSender(Protocol):
    async def send(self, phone_number_id: str, access_token: str, message: OutboundMessage) -> dict:
        ...


@dataclass
class BotServices:
    """Collaborators built once at startup and shared by every message."""

    store: ConversationStore
    repository: BookingRepository
    availability: AvailabilityCalculator
    intents: IntentExtractor
    reminders: "ReminderScheduler"
    gateway: MessageSender


@dataclass
class BotContext:
    """Everything a state handler needs for one inbound message."""

    services: BotServices
    tenant: Tenant
    patient: Patient
    conversation: Conversation
    locale: str
    tz: ZoneInfo
    now: datetime

    @property
    def phone(self) -> str:
        return self.conversation.phone

    @property
    def draft(self) -> BookingDraft:
        return self.conversation.draft

    @property
    def local_now(self) -> datetime:
        return self.now.astimezone(self.tz)

    async def send(self, message: OutboundMessage) -> None:
        await self.services.gateway.send(
            self.tenant.phone_number_id,
            self.tenant.access_token,
            message,
        )

    async def transition(
        self,
        state: ConversationState,
        draft: Optional[BookingDraft] = None,
    ) -> None:
        await self.services.store.update(self.conversation, state=state, draft=draft)

    async def reset(self) -> None:
        await self.services.store.reset(self.conversation)


def parse_uuid(value: Optional[str]) -> Optional[UUID]:
    """UUID from user input, or None for anything malformed."""
    if not value:
        return None
    try:
        return UUID(value.strip())
    except (ValueError, AttributeError):
        return None


def locale_for(patient: Patient, tenant: Tenant) -> str:
    """Patient's language, else the tenant's."""
    for candidate in (patient.language_preference, tenant.locale):
        if candidate:
            return candidate.value if isinstance(candidate, Locale) else str(candidate)
    return Locale.AR.value
