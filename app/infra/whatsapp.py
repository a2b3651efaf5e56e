"""
WhatsApp Cloud API sender.

The conversation engine, reminder worker and trial notifier describe what
to send with the message dataclasses below; `WhatsAppClient` renders them
to the Cloud API wire format and posts them.

Docs: https://developers.facebook.com/docs/whatsapp/cloud-api/messages
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

# Cloud API limits for interactive messages
MAX_BUTTONS = 3
MAX_LIST_ROWS = 10
BUTTON_TITLE_MAX = 20
ROW_TITLE_MAX = 24
ROW_DESCRIPTION_MAX = 72


class WhatsAppSendError(Exception):
    """Raised when the Cloud API rejects a message."""

    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self.body = body
        super().__init__(f"WhatsApp API error {status_code}: {body}")


@dataclass(frozen=True)
class Button:
    id: str
    title: str


@dataclass(frozen=True)
class ListRow:
    id: str
    title: str
    description: Optional[str] = None


@dataclass(frozen=True)
class ListSection:
    rows: list[ListRow]
    title: Optional[str] = None


@dataclass(frozen=True)
class TextMessage:
    to: str
    body: str


@dataclass(frozen=True)
class ButtonMessage:
    to: str
    body: str
    buttons: list[Button]


@dataclass(frozen=True)
class ListMessage:
    to: str
    body: str
    button_text: str
    sections: list[ListSection]
    header: Optional[str] = None
    footer: Optional[str] = None


@dataclass(frozen=True)
class TemplateMessage:
    to: str
    template_name: str
    language_code: str
    components: list[dict] = field(default_factory=list)


OutboundMessage = Union[TextMessage, ButtonMessage, ListMessage, TemplateMessage]


def _clip(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[: limit - 1] + "…"


def _list_sections(sections: list[ListSection]) -> list[dict]:
    """Render sections, keeping at most MAX_LIST_ROWS rows in total."""
    rendered = []
    remaining = MAX_LIST_ROWS

    for section in sections:
        if remaining <= 0:
            break
        rows = []
        for row in section.rows[:remaining]:
            item = {"id": row.id, "title": _clip(row.title, ROW_TITLE_MAX)}
            if row.description:
                item["description"] = _clip(row.description, ROW_DESCRIPTION_MAX)
            rows.append(item)
        remaining -= len(rows)

        entry: dict[str, Any] = {"rows": rows}
        if section.title:
            entry["title"] = _clip(section.title, ROW_TITLE_MAX)
        rendered.append(entry)

    return rendered


def build_payload(message: OutboundMessage) -> dict[str, Any]:
    """
    Render a message intent into a Cloud API request body.

    Raises:
        TypeError: for anything that is not one of the four message shapes
    """
    if isinstance(message, TextMessage):
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": message.to,
            "type": "text",
            "text": {"body": message.body, "preview_url": False},
        }

    if isinstance(message, ButtonMessage):
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": message.to,
            "type": "interactive",
            "interactive": {
                "type": "button",
                "body": {"text": message.body},
                "action": {
                    "buttons": [
                        {
                            "type": "reply",
                            "reply": {
                                "id": b.id,
                                "title": _clip(b.title, BUTTON_TITLE_MAX),
                            },
                        }
                        for b in message.buttons[:MAX_BUTTONS]
                    ],
                },
            },
        }

    if isinstance(message, ListMessage):
        interactive: dict[str, Any] = {
            "type": "list",
            "body": {"text": message.body},
            "action": {
                "button": _clip(message.button_text, BUTTON_TITLE_MAX),
                "sections": _list_sections(message.sections),
            },
        }
        if message.header:
            interactive["header"] = {"type": "text", "text": message.header}
        if message.footer:
            interactive["footer"] = {"text": message.footer}
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": message.to,
            "type": "interactive",
            "interactive": interactive,
        }

    if isinstance(message, TemplateMessage):
        return {
            "messaging_product": "whatsapp",
            "to": message.to,
            "type": "template",
            "template": {
                "name": message.template_name,
                "language": {"code": message.language_code},
                "components": list(message.components),
            },
        }

    raise TypeError(f"Unsupported outbound message: {type(message).__name__}")


class WhatsAppClient:
    """
    HTTP client for the WhatsApp Cloud API.

    One instance per process; the per-tenant phone-number id and access
    token are passed on every call.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize client.

        Args:
            base_url: Graph API base URL (defaults to settings)
            timeout: Request timeout in seconds
            http_client: Preconfigured httpx client (for testing)
        """
        self.base_url = base_url or settings.whatsapp_api_base_url
        self.timeout = timeout or settings.whatsapp_timeout_seconds
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(
        self,
        phone_number_id: str,
        access_token: str,
        message: OutboundMessage,
    ) -> dict:
        """Send one message.

        Args:
            phone_number_id: Sending number's Cloud API id (per tenant)
            access_token: Tenant's access token
            message: Message intent

        Returns:
            Parsed API response body

        Raises:
            WhatsAppSendError: on any non-2xx response
            httpx.HTTPError: on transport failure
        """
        payload = build_payload(message)
        client = await self._get_client()

        response = await client.post(
            f"/{phone_number_id}/messages",
            json=payload,
            headers={"Authorization": f"Bearer {access_token}"},
        )

        if response.is_success:
            return response.json()

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        logger.error(
            f"WhatsApp send to {message.to} failed with {response.status_code}: {body}"
        )
        raise WhatsAppSendError(response.status_code, body)
