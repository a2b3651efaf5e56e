"""Intent extraction module."""

from .types import Intent, IntentEntities, IntentResult
from .classifier import (
    ClaudeIntentExtractor,
    IntentExtractor,
    KeywordIntentExtractor,
    build_intent_extractor,
)

__all__ = [
    # Types
    "Intent",
    "IntentEntities",
    "IntentResult",
    # Extractors
    "IntentExtractor",
    "KeywordIntentExtractor",
    "ClaudeIntentExtractor",
    "build_intent_extractor",
]
