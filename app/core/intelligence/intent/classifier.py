"""
Intent extraction.

Two interchangeable extractors share the `extract(text, locale, today=None)`
contract, where `today` is the date relative dates resolve against (the
tenant-local date; UTC when omitted):

- KeywordIntentExtractor: deterministic keyword sets, no entities.
- ClaudeIntentExtractor: Claude with a fixed JSON contract, temperature 0.
  Any API or parse failure yields UNKNOWN with confidence 0.

`build_intent_extractor` picks Claude when an API key is configured.
"""

import json
import logging
import re
from datetime import date, datetime, timezone
from typing import Optional, Protocol

from app.config import Settings, settings as default_settings
from app.infra.claude import ClaudeClient, ClaudeClientError
from .types import Intent, IntentEntities, IntentResult

logger = logging.getLogger(__name__)

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

KEYWORD_CONFIDENCE = 0.6

# Checked in this order; the first set with a hit wins.
KEYWORDS: list[tuple[Intent, tuple[str, ...]]] = [
    (Intent.GREETING, ("hi", "hello", "hey", "مرحبا", "أهلا", "هلا", "سلام")),
    (Intent.BOOK_APPOINTMENT, ("book", "حجز", "أحجز", "موعد", "appointment", "reserve")),
    (Intent.CANCEL_APPOINTMENT, ("cancel", "إلغاء", "ألغي", "إلغي")),
    (Intent.VIEW_APPOINTMENTS, ("view", "show", "مواعيدي", "appointments", "my")),
]


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class IntentExtractor(Protocol):
    async def extract(self, text: str, locale: str, today: Optional[date] = None) -> IntentResult:
        ...


class KeywordIntentExtractor:
    """
    Zero-dependency fallback.

    Substring match on the case-folded text, so "hi" also fires inside
    longer words. Never extracts entities.
    """

    async def extract(self, text: str, locale: str, today: Optional[date] = None) -> IntentResult:
        folded = text.casefold()
        for intent, words in KEYWORDS:
            if any(word in folded for word in words):
                return IntentResult(intent=intent, confidence=KEYWORD_CONFIDENCE)
        return IntentResult(intent=Intent.UNKNOWN, confidence=KEYWORD_CONFIDENCE)


SYSTEM_PROMPT = """You classify WhatsApp messages sent to a medical clinic's booking assistant.
Messages may be in Arabic or English. Today's date is {today}.

Intents:
- BOOK_APPOINTMENT: wants a new appointment
- VIEW_APPOINTMENTS: wants to see their upcoming appointments
- CANCEL_APPOINTMENT: wants to cancel an appointment
- GREETING: greeting only
- HELP: asks how to use the assistant
- UNKNOWN: anything else

Resolve relative dates ("tomorrow", "next Sunday", "بكرة") against today's date.

Respond with ONLY valid JSON:
{{
    "intent": "<intent>",
    "confidence": <0.0-1.0>,
    "entities": {{
        "date": "<yyyy-mm-dd or null>",
        "time": "<HH:MM 24h or null>",
        "doctorName": "<name or null>",
        "serviceName": "<name or null>"
    }}
}}"""


class ClaudeIntentExtractor:
    """Claude-backed extractor. Fails closed to UNKNOWN."""

    def __init__(self, claude_client: ClaudeClient, model: Optional[str] = None):
        """Initialize extractor.

        Args:
            claude_client: Shared Claude client
            model: Model override (defaults to settings.claude_intent_model)
        """
        self._client = claude_client
        self._model = model or default_settings.claude_intent_model

    async def extract(self, text: str, locale: str, today: Optional[date] = None) -> IntentResult:
        text = text.strip()
        if not text:
            return IntentResult.unknown()

        today = today or _utcnow().date()
        system_prompt = SYSTEM_PROMPT.format(today=today.isoformat())

        try:
            response = await self._client.generate(
                prompt=f"Locale: {locale}\nMessage: {text}",
                system_prompt=system_prompt,
                model=self._model,
                max_tokens=200,
                temperature=0.0,
            )
        except ClaudeClientError as e:
            logger.error(f"Claude API error: {e}")
            return IntentResult.unknown()
        except Exception as e:
            logger.error(f"Intent extraction failed: {e}")
            return IntentResult.unknown()

        result = self._parse_response(response.content)
        logger.debug(f"Extracted intent: {result.intent.value} (confidence: {result.confidence:.2f})")
        return result

    def _parse_response(self, response: str) -> IntentResult:
        """Parse the JSON contract; anything malformed is UNKNOWN."""
        # Clean markdown if present
        response = response.strip()
        if response.startswith("```"):
            lines = response.split("\n")[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            response = "\n".join(lines).strip()

        try:
            data = json.loads(response)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")

            try:
                intent = Intent(str(data.get("intent", "UNKNOWN")).upper())
            except ValueError:
                intent = Intent.UNKNOWN

            confidence = min(max(float(data.get("confidence", 0.0)), 0.0), 1.0)
            entities = self._parse_entities(data.get("entities") or {})

        except (ValueError, TypeError) as e:
            logger.error(f"Failed to parse: {e}\nResponse: {response}")
            return IntentResult.unknown(raw_response=response)

        return IntentResult(
            intent=intent,
            confidence=confidence,
            entities=entities,
            raw_response=response,
        )

    def _parse_entities(self, raw: dict) -> IntentEntities:
        if not isinstance(raw, dict):
            return IntentEntities()

        found_date = raw.get("date")
        if isinstance(found_date, str) and ISO_DATE.match(found_date):
            try:
                date.fromisoformat(found_date)
            except ValueError:
                found_date = None
        else:
            found_date = None

        found_time = raw.get("time")
        if not (isinstance(found_time, str) and HHMM.match(found_time)):
            found_time = None

        return IntentEntities(
            date=found_date,
            time=found_time,
            doctor_name=raw.get("doctorName") or None,
            service_name=raw.get("serviceName") or None,
        )


def build_intent_extractor(
    settings: Settings,
    claude_client: Optional[ClaudeClient] = None,
) -> IntentExtractor:
    """Claude when configured, keywords otherwise."""
    if settings.intent_model_enabled and claude_client is not None:
        logger.info(f"Intent extraction via Claude ({settings.claude_intent_model})")
        return ClaudeIntentExtractor(claude_client, model=settings.claude_intent_model)
    logger.info("Intent extraction via keyword matcher")
    return KeywordIntentExtractor()
