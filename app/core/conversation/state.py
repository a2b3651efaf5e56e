"""Conversation states and the booking draft carried between them."""

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Optional


class ConversationState(str, Enum):
    """States of the WhatsApp booking dialogue."""

    # Resting
    IDLE = "IDLE"
    MAIN_MENU = "MAIN_MENU"

    # Booking
    SELECTING_SERVICE = "SELECTING_SERVICE"
    SELECTING_DOCTOR = "SELECTING_DOCTOR"
    SELECTING_DATE = "SELECTING_DATE"
    SELECTING_TIME = "SELECTING_TIME"
    CONFIRMING = "CONFIRMING"

    # Existing appointments
    CANCELLING = "CANCELLING"
    CONFIRM_CANCEL = "CONFIRM_CANCEL"
    RESCHEDULING = "RESCHEDULING"
    SHOWING_APPOINTMENTS = "SHOWING_APPOINTMENTS"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ConversationState"]:
        """Stored value -> state, or None when unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class BookingDraft:
    """
    Selections accumulated during booking or rescheduling.

    Immutable: handlers derive the next draft with `dataclasses.replace`,
    so earlier selections always carry forward. Ids are stored as strings;
    `date` is yyyy-mm-dd, `time` is HH:MM, `scheduled_at` is an ISO
    timestamp with offset.
    """

    service_id: Optional[str] = None
    doctor_id: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    scheduled_at: Optional[str] = None
    rescheduling_appointment_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not any(asdict(self).values())

    def to_dict(self) -> dict:
        """Only the fields that are set."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "BookingDraft":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
