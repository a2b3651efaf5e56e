"""
WhatsApp Webhook Models

Pydantic models for the Cloud API event payload
(entry[].changes[].value.{metadata, messages[]}) and the normalized
`IncomingMessage` handed to the conversation engine.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _Lenient(BaseModel):
    """Provider payloads carry many fields we do not read."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextBody(_Lenient):
    body: str = ""


class ReplyRef(_Lenient):
    id: str
    title: Optional[str] = None
    description: Optional[str] = None


class InteractiveBody(_Lenient):
    type: str
    button_reply: Optional[ReplyRef] = None
    list_reply: Optional[ReplyRef] = None


class WebhookMessage(_Lenient):
    """A single inbound message as delivered by the provider."""
    id: str
    from_: str = Field(alias="from")
    timestamp: Optional[str] = None
    type: str
    text: Optional[TextBody] = None
    interactive: Optional[InteractiveBody] = None


class Metadata(_Lenient):
    phone_number_id: str
    display_phone_number: Optional[str] = None


class ChangeValue(_Lenient):
    messaging_product: Optional[str] = None
    metadata: Metadata
    messages: list[WebhookMessage] = Field(default_factory=list)


class Change(_Lenient):
    field: Optional[str] = None
    value: ChangeValue


class Entry(_Lenient):
    id: Optional[str] = None
    changes: list[Change] = Field(default_factory=list)


class WebhookPayload(_Lenient):
    """Top-level event delivery body."""
    object: Optional[str] = None
    entry: list[Entry] = Field(default_factory=list)


class IncomingMessage(BaseModel):
    """
    Normalized inbound message.

    `interactive_id` is the selected button/list row id for interactive
    replies; `text` is the body for text messages.
    """

    message_id: str
    sender: str
    type: str
    text: Optional[str] = None
    interactive_id: Optional[str] = None

    @classmethod
    def from_webhook(cls, message: WebhookMessage) -> "IncomingMessage":
        interactive_id = None
        if message.interactive is not None:
            reply = message.interactive.button_reply or message.interactive.list_reply
            interactive_id = reply.id if reply else None

        return cls(
            message_id=message.id,
            sender=message.from_,
            type=message.type,
            text=message.text.body if message.text else None,
            interactive_id=interactive_id,
        )

    @property
    def user_text(self) -> str:
        """What the state handlers receive: the selected id or the body."""
        if self.interactive_id:
            return self.interactive_id
        return (self.text or "").strip()

    @property
    def is_supported(self) -> bool:
        return self.type in ("text", "interactive")
