"""Intent types for booking-domain classification."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Intent(str, Enum):
    """Patient intent categories."""

    BOOK_APPOINTMENT = "BOOK_APPOINTMENT"
    VIEW_APPOINTMENTS = "VIEW_APPOINTMENTS"
    CANCEL_APPOINTMENT = "CANCEL_APPOINTMENT"
    GREETING = "GREETING"
    HELP = "HELP"

    # Fallback
    UNKNOWN = "UNKNOWN"


@dataclass
class IntentEntities:
    """Entities pulled out of free text. Dates are ISO yyyy-mm-dd, times HH:MM."""

    date: Optional[str] = None
    time: Optional[str] = None
    doctor_name: Optional[str] = None
    service_name: Optional[str] = None


@dataclass
class IntentResult:
    """Result of intent extraction."""

    intent: Intent
    confidence: float  # 0.0 - 1.0
    entities: IntentEntities = field(default_factory=IntentEntities)

    # Raw LLM output for debugging
    raw_response: Optional[str] = None

    @classmethod
    def unknown(cls, raw_response: Optional[str] = None) -> "IntentResult":
        return cls(intent=Intent.UNKNOWN, confidence=0.0, raw_response=raw_response)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "intent": self.intent.value,
            "confidence": self.confidence,
            "entities": {
                "date": self.entities.date,
                "time": self.entities.time,
                "doctor_name": self.entities.doctor_name,
                "service_name": self.entities.service_name,
            },
        }
