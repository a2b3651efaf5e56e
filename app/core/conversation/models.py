"""Conversation record stored per (tenant, phone)."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from .state import BookingDraft, ConversationState


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class Conversation:
    """
    Dialogue state for one patient phone within one tenant.

    `state` is kept as the raw stored string so an unrecognized value
    survives a round trip; the engine maps it to a handler.
    `previous_expires_at` is the expiry as it stood before the latest
    refresh, which is what decides whether the session had lapsed.
    """

    tenant_id: str
    phone: str
    id: str = field(default_factory=lambda: str(uuid4()))
    state: str = ConversationState.IDLE.value
    draft: BookingDraft = field(default_factory=BookingDraft)
    patient_id: Optional[str] = None
    expires_at: datetime = field(default_factory=_utcnow)
    previous_expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def current_state(self) -> Optional[ConversationState]:
        return ConversationState.parse(self.state)

    def is_lapsed(self, now: datetime) -> bool:
        """True when the previous expiry had already passed at `now`."""
        return self.previous_expires_at is not None and self.previous_expires_at <= now

    def to_json(self) -> str:
        """Convert to JSON string for Redis storage."""
        return json.dumps({
            "id": self.id,
            "tenant_id": self.tenant_id,
            "phone": self.phone,
            "state": self.state,
            "draft": self.draft.to_dict(),
            "patient_id": self.patient_id,
            "expires_at": self.expires_at.isoformat(),
            "previous_expires_at": (
                self.previous_expires_at.isoformat() if self.previous_expires_at else None
            ),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        })

    @classmethod
    def from_json(cls, json_str: str) -> "Conversation":
        """Create from JSON string."""
        data = json.loads(json_str)
        previous = data.get("previous_expires_at")
        return cls(
            id=data["id"],
            tenant_id=data["tenant_id"],
            phone=data["phone"],
            state=data.get("state", ConversationState.IDLE.value),
            draft=BookingDraft.from_dict(data.get("draft")),
            patient_id=data.get("patient_id"),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            previous_expires_at=datetime.fromisoformat(previous) if previous else None,
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )
