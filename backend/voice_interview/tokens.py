"""Approximate token accounting for calls whose provider reports no usage."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Optional

TOKENS_PER_WORD = 1.3
MESSAGE_OVERHEAD = 4
REQUEST_OVERHEAD = 3


def count_tokens(text: Optional[str]) -> int:
    if not text or not isinstance(text, str):
        return 0
    return math.ceil(len(text.split()) * TOKENS_PER_WORD)


def calculate_message_tokens(messages: Iterable[Any]) -> int:
    """Estimate a chat request: content tokens, 4 per message, 3 per request."""
    total = 0
    for message in messages:
        content = message.get("content") if isinstance(message, Mapping) else getattr(message, "content", None)
        total += count_tokens(content) + MESSAGE_OVERHEAD
    return total + REQUEST_OVERHEAD
