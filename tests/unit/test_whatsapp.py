"""Tests for the WhatsApp Cloud API client and payload rendering."""

import json

import httpx
import pytest

from app.infra.whatsapp import (
    Button,
    ButtonMessage,
    ListMessage,
    ListRow,
    ListSection,
    TemplateMessage,
    TextMessage,
    WhatsAppClient,
    WhatsAppSendError,
    build_payload,
)


class TestBuildPayload:
    """Message intent -> wire format."""

    def test_text(self):
        payload = build_payload(TextMessage(to="966500000001", body="Hello"))

        assert payload == {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": "966500000001",
            "type": "text",
            "text": {"body": "Hello", "preview_url": False},
        }

    def test_buttons_are_capped_and_clipped(self):
        message = ButtonMessage(
            to="1",
            body="Pick one",
            buttons=[
                Button(id="a", title="A button title that is far too long"),
                Button(id="b", title="B"),
                Button(id="c", title="C"),
                Button(id="d", title="D"),
            ],
        )

        buttons = build_payload(message)["interactive"]["action"]["buttons"]

        assert [b["reply"]["id"] for b in buttons] == ["a", "b", "c"]
        assert len(buttons[0]["reply"]["title"]) == 20
        assert buttons[0]["type"] == "reply"

    def test_list_keeps_ten_rows_across_sections(self):
        morning = ListSection(title="Morning", rows=[ListRow(id=f"m{i}", title=f"0{i}:00") for i in range(6)])
        afternoon = ListSection(title="Afternoon", rows=[ListRow(id=f"a{i}", title=f"1{i}:00") for i in range(6)])
        message = ListMessage(
            to="1",
            body="Pick a time",
            button_text="Times",
            header="Available times",
            sections=[morning, afternoon],
        )

        interactive = build_payload(message)["interactive"]

        sections = interactive["action"]["sections"]
        assert [len(s["rows"]) for s in sections] == [6, 4]
        assert sections[0]["title"] == "Morning"
        assert interactive["header"] == {"type": "text", "text": "Available times"}
        assert "footer" not in interactive

    def test_row_description_is_optional_and_clipped(self):
        message = ListMessage(
            to="1",
            body="b",
            button_text="Go",
            sections=[ListSection(rows=[
                ListRow(id="x", title="Row", description="d" * 100),
                ListRow(id="y", title="Row"),
            ])],
        )

        rows = build_payload(message)["interactive"]["action"]["sections"][0]["rows"]

        assert len(rows[0]["description"]) == 72
        assert "description" not in rows[1]

    def test_template(self):
        payload = build_payload(TemplateMessage(
            to="1", template_name="appointment_reminder", language_code="ar",
        ))

        assert payload["type"] == "template"
        assert payload["template"] == {
            "name": "appointment_reminder",
            "language": {"code": "ar"},
            "components": [],
        }

    def test_unknown_message_type(self):
        with pytest.raises(TypeError):
            build_payload({"to": "1", "body": "raw dict"})


class TestWhatsAppClient:
    """HTTP behaviour."""

    @pytest.mark.asyncio
    async def test_posts_to_phone_number_endpoint(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

        http = httpx.AsyncClient(
            base_url="https://graph.example.test/v21.0",
            transport=httpx.MockTransport(handler),
        )
        client = WhatsAppClient(http_client=http)

        result = await client.send("12345", "tok", TextMessage(to="966500000001", body="Hi"))

        assert result == {"messages": [{"id": "wamid.1"}]}
        assert seen["url"] == "https://graph.example.test/v21.0/12345/messages"
        assert seen["auth"] == "Bearer tok"
        assert seen["body"]["to"] == "966500000001"
        await client.close()

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "Invalid OAuth access token"}})

        http = httpx.AsyncClient(
            base_url="https://graph.example.test/v21.0",
            transport=httpx.MockTransport(handler),
        )
        client = WhatsAppClient(http_client=http)

        with pytest.raises(WhatsAppSendError) as excinfo:
            await client.send("12345", "bad", TextMessage(to="1", body="Hi"))

        assert excinfo.value.status_code == 401
        assert excinfo.value.body["error"]["message"] == "Invalid OAuth access token"
        await client.close()
