"""
WhatsApp Webhook Endpoints

GET  /webhook/whatsapp  verification handshake
POST /webhook/whatsapp  event delivery; acknowledged at once, processed in
                        the background

A message whose processing fails is logged and dropped. The provider has
already received 200 and will not redeliver it.
"""

import hashlib
import hmac
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from app.config import settings
from app.core.conversation.messages import text
from app.infra.whatsapp import TextMessage
from app.models.database import Tenant
from app.models.webhook import IncomingMessage, WebhookPayload
from app.runtime import Runtime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhook"])


def verify_signature(body: bytes, signature: str, app_secret: str) -> bool:
    """Check X-Hub-Signature-256 ("sha256=<hex>") against the raw body."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.removeprefix("sha256="))


@router.get(
    "/whatsapp",
    response_class=PlainTextResponse,
    summary="Webhook verification",
)
async def verify(
    mode: str = Query("", alias="hub.mode"),
    token: str = Query("", alias="hub.verify_token"),
    challenge: str = Query("", alias="hub.challenge"),
) -> PlainTextResponse:
    """Echo the challenge when the verify token matches."""
    if mode == "subscribe" and hmac.compare_digest(token, settings.whatsapp_verify_token):
        logger.info("Webhook verified")
        return PlainTextResponse(challenge)

    logger.warning("Webhook verification failed")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


@router.post(
    "/whatsapp",
    response_class=PlainTextResponse,
    summary="Inbound events",
)
async def receive(request: Request, background_tasks: BackgroundTasks) -> PlainTextResponse:
    """Acknowledge immediately; messages are handled after the response."""
    body = await request.body()

    if settings.whatsapp_app_secret:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not verify_signature(body, signature, settings.whatsapp_app_secret):
            logger.warning("Webhook signature mismatch")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        payload = WebhookPayload.model_validate_json(body)
    except ValidationError as e:
        # Acknowledge and drop
        logger.error(f"Unparseable webhook body dropped: {e}")
        return PlainTextResponse("OK")

    runtime: Runtime = request.app.state.runtime
    background_tasks.add_task(process_payload, runtime, payload)
    return PlainTextResponse("OK")


async def process_payload(runtime: Runtime, payload: WebhookPayload) -> None:
    """Route each message to its tenant's conversation."""
    for entry in payload.entry:
        for change in entry.changes:
            value = change.value
            if not value.messages:
                continue

            phone_number_id = value.metadata.phone_number_id
            try:
                tenant = await runtime.repository.get_tenant_by_phone_number_id(phone_number_id)
            except Exception:
                logger.exception(f"Tenant lookup failed for {phone_number_id}, dropping batch")
                continue

            if tenant is None or not tenant.is_active:
                logger.warning(f"No active tenant for phone_number_id {phone_number_id}")
                continue

            for raw in value.messages:
                try:
                    await process_message(runtime, tenant, IncomingMessage.from_webhook(raw))
                except Exception:
                    logger.exception(f"Failed to process message {raw.id} for tenant {tenant.id}")


async def process_message(runtime: Runtime, tenant: Tenant, message: IncomingMessage) -> None:
    if not await runtime.dedupe.first_delivery(message.message_id):
        return

    if not message.is_supported:
        locale = tenant.locale.value if tenant.locale else "AR"
        await runtime.gateway.send(
            tenant.phone_number_id,
            tenant.access_token,
            TextMessage(to=message.sender, body=text(locale, "unsupported_media")),
        )
        return

    if not message.user_text:
        logger.debug(f"Empty message {message.message_id} ignored")
        return

    await runtime.engine.handle_message(tenant, message)
