"""
Intelligence Layer Module

Intent extraction for inbound patient messages.

Usage:
    from app.core.intelligence import build_intent_extractor

    extractor = build_intent_extractor(settings, claude_client)
    result = await extractor.extract("book tomorrow at 10", "EN")
    print(result.intent)  # Intent.BOOK_APPOINTMENT
"""

from app.core.intelligence.intent import (
    ClaudeIntentExtractor,
    Intent,
    IntentEntities,
    IntentExtractor,
    IntentResult,
    KeywordIntentExtractor,
    build_intent_extractor,
)

__all__ = [
    "Intent",
    "IntentEntities",
    "IntentResult",
    "IntentExtractor",
    "KeywordIntentExtractor",
    "ClaudeIntentExtractor",
    "build_intent_extractor",
]
