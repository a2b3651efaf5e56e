"""
WhatsApp conversation state machine.

Usage:
    from app.core.conversation import ConversationEngine, BotServices

    engine = ConversationEngine(services, locks)
    await engine.handle_message(tenant, incoming)
"""

from .engine import HANDLERS, ConversationEngine
from .handlers import BotContext, BotServices
from .locks import ConversationBusyError, ConversationLocks
from .models import Conversation
from .state import BookingDraft, ConversationState
from .store import ConversationStore

__all__ = [
    "ConversationEngine",
    "HANDLERS",
    "BotContext",
    "BotServices",
    "ConversationLocks",
    "ConversationBusyError",
    "Conversation",
    "ConversationStore",
    "ConversationState",
    "BookingDraft",
]
