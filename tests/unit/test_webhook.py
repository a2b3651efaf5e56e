"""Tests for the WhatsApp webhook endpoints."""

import hashlib
import hmac
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.routes import webhook
from app.config import settings
from app.core.conversation.messages import text
from app.models.webhook import IncomingMessage, WebhookPayload
from tests.fakes import FakeBookingRepository, FakeGateway, make_tenant


def event(*messages: dict, phone_number_id: str = "1098765") -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {"display_phone_number": "966110000000", "phone_number_id": phone_number_id},
                    "contacts": [{"profile": {"name": "Sara"}, "wa_id": "966500000001"}],
                    "messages": list(messages),
                },
            }],
        }],
    }


def text_message(body: str, message_id: str = "wamid.1") -> dict:
    return {
        "from": "966500000001",
        "id": message_id,
        "timestamp": "1717830000",
        "type": "text",
        "text": {"body": body},
    }


def list_reply(row_id: str) -> dict:
    return {
        "from": "966500000001",
        "id": "wamid.2",
        "type": "interactive",
        "interactive": {"type": "list_reply", "list_reply": {"id": row_id, "title": "Cleaning"}},
    }


class TestIncomingMessage:
    """Payload normalization."""

    def test_text(self):
        payload = WebhookPayload.model_validate(event(text_message("  hello  ")))
        message = IncomingMessage.from_webhook(payload.entry[0].changes[0].value.messages[0])

        assert message.sender == "966500000001"
        assert message.user_text == "hello"
        assert message.is_supported

    def test_list_reply_uses_row_id(self):
        payload = WebhookPayload.model_validate(event(list_reply("svc-1")))
        message = IncomingMessage.from_webhook(payload.entry[0].changes[0].value.messages[0])

        assert message.interactive_id == "svc-1"
        assert message.user_text == "svc-1"

    def test_button_reply_uses_button_id(self):
        raw = {
            "from": "1",
            "id": "wamid.3",
            "type": "interactive",
            "interactive": {"type": "button_reply", "button_reply": {"id": "confirm", "title": "Confirm"}},
        }
        message = IncomingMessage.from_webhook(
            WebhookPayload.model_validate(event(raw)).entry[0].changes[0].value.messages[0]
        )

        assert message.user_text == "confirm"

    def test_media_is_not_supported(self):
        raw = {"from": "1", "id": "wamid.4", "type": "image", "image": {"id": "media-1"}}
        message = IncomingMessage.from_webhook(
            WebhookPayload.model_validate(event(raw)).entry[0].changes[0].value.messages[0]
        )

        assert not message.is_supported
        assert message.user_text == ""


class TestWebhookEndpoints:
    """Verification handshake and event delivery."""

    @pytest.fixture
    def runtime(self):
        repository = FakeBookingRepository()
        tenant = repository.add_tenant(make_tenant())
        return SimpleNamespace(
            repository=repository,
            tenant=tenant,
            gateway=FakeGateway(),
            dedupe=SimpleNamespace(first_delivery=AsyncMock(return_value=True)),
            engine=SimpleNamespace(handle_message=AsyncMock()),
        )

    @pytest.fixture
    def client(self, runtime):
        app = FastAPI()
        app.include_router(webhook.router)
        app.state.runtime = runtime
        return TestClient(app)

    def test_verify_echoes_challenge(self, client):
        response = client.get("/webhook/whatsapp", params={
            "hub.mode": "subscribe",
            "hub.verify_token": settings.whatsapp_verify_token,
            "hub.challenge": "1158201444",
        })

        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_verify_rejects_wrong_token(self, client):
        response = client.get("/webhook/whatsapp", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "wrong",
            "hub.challenge": "1158201444",
        })

        assert response.status_code == 403

    def test_message_is_acknowledged_and_dispatched(self, client, runtime):
        response = client.post("/webhook/whatsapp", json=event(text_message("hi")))

        assert response.status_code == 200
        assert response.text == "OK"
        runtime.engine.handle_message.assert_awaited_once()
        tenant, message = runtime.engine.handle_message.await_args.args
        assert tenant is runtime.tenant
        assert message.user_text == "hi"

    def test_unknown_tenant_is_dropped(self, client, runtime):
        response = client.post(
            "/webhook/whatsapp", json=event(text_message("hi"), phone_number_id="999")
        )

        assert response.status_code == 200
        runtime.engine.handle_message.assert_not_awaited()

    def test_inactive_tenant_is_dropped(self, client, runtime):
        runtime.tenant.is_active = False

        client.post("/webhook/whatsapp", json=event(text_message("hi")))

        runtime.engine.handle_message.assert_not_awaited()

    def test_status_only_events_are_ignored(self, client, runtime):
        body = event()
        body["entry"][0]["changes"][0]["value"]["statuses"] = [{"id": "wamid.1", "status": "read"}]

        response = client.post("/webhook/whatsapp", json=body)

        assert response.status_code == 200
        runtime.engine.handle_message.assert_not_awaited()

    def test_redelivery_is_skipped(self, client, runtime):
        runtime.dedupe.first_delivery = AsyncMock(return_value=False)

        client.post("/webhook/whatsapp", json=event(text_message("hi")))

        runtime.engine.handle_message.assert_not_awaited()

    def test_media_gets_a_polite_reply(self, client, runtime):
        image = {"from": "966500000001", "id": "wamid.9", "type": "image", "image": {"id": "m"}}

        client.post("/webhook/whatsapp", json=event(image))

        runtime.engine.handle_message.assert_not_awaited()
        assert runtime.gateway.last.body == text("EN", "unsupported_media")
        assert runtime.gateway.last.to == "966500000001"

    def test_empty_text_is_ignored(self, client, runtime):
        client.post("/webhook/whatsapp", json=event(text_message("   ")))

        runtime.engine.handle_message.assert_not_awaited()
        assert runtime.gateway.sent == []

    def test_processing_error_still_acknowledged(self, client, runtime):
        runtime.engine.handle_message = AsyncMock(side_effect=RuntimeError("boom"))

        response = client.post(
            "/webhook/whatsapp",
            json=event(text_message("hi", "wamid.a"), text_message("again", "wamid.b")),
        )

        assert response.status_code == 200
        assert runtime.engine.handle_message.await_count == 2

    def test_unparseable_body_is_acknowledged(self, client, runtime):
        response = client.post("/webhook/whatsapp", content=b"not json")

        assert response.status_code == 200
        runtime.engine.handle_message.assert_not_awaited()

    def test_signature_is_enforced_when_secret_set(self, client, runtime):
        body = json.dumps(event(text_message("hi"))).encode()
        good = "sha256=" + hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

        with patch.object(settings, "whatsapp_app_secret", "s3cret"):
            rejected = client.post(
                "/webhook/whatsapp",
                content=body,
                headers={"X-Hub-Signature-256": "sha256=deadbeef", "Content-Type": "application/json"},
            )
            accepted = client.post(
                "/webhook/whatsapp",
                content=body,
                headers={"X-Hub-Signature-256": good, "Content-Type": "application/json"},
            )

        assert rejected.status_code == 403
        assert accepted.status_code == 200
        runtime.engine.handle_message.assert_awaited_once()


class TestVerifySignature:
    """HMAC check."""

    def test_valid(self):
        signature = "sha256=" + hmac.new(b"k", b"body", hashlib.sha256).hexdigest()
        assert webhook.verify_signature(b"body", signature, "k")

    def test_missing_prefix(self):
        digest = hmac.new(b"k", b"body", hashlib.sha256).hexdigest()
        assert not webhook.verify_signature(b"body", digest, "k")

    def test_empty(self):
        assert not webhook.verify_signature(b"body", "", "k")
