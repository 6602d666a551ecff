"""Advisory request encoding and response text extraction.

Accepted response shapes, tried in this order (first non-empty wins):

1. ``{"content": "..."}``                                  direct content
2. ``{"choices": [{"message": {"content": "..."}}]}``      provider style
3. ``{"message": "..."}``                                  generic message

The order is part of the contract: a body carrying several shapes yields
the text of the earliest one. Whitespace-only text counts as empty.
"""

from __future__ import annotations

from typing import Any, Callable

from rescue_console.schemas.advisory import ChatMessage, ChatRequest
from rescue_console.schemas.snapshot import StatusSnapshot
from rescue_console.utils.config import NOMINAL_ADVICE, SYSTEM_PROMPT

Extractor = Callable[[Any], "str | None"]


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_content(body: Any) -> str | None:
    """Direct ``content`` field."""
    if isinstance(body, dict):
        return _text(body.get("content"))
    return None


def extract_choice_content(body: Any) -> str | None:
    """``choices[0].message.content`` of a provider-style completion."""
    if not isinstance(body, dict):
        return None
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    return _text(message.get("content"))


def extract_message(body: Any) -> str | None:
    """Generic top-level ``message`` field."""
    if isinstance(body, dict):
        return _text(body.get("message"))
    return None


EXTRACTORS: tuple[Extractor, ...] = (
    extract_content,
    extract_choice_content,
    extract_message,
)


def extract_advice(
    body: Any,
    extractors: tuple[Extractor, ...] = EXTRACTORS,
    default: str = NOMINAL_ADVICE,
) -> str:
    """Return the first non-empty advice text found in ``body``."""
    for extractor in extractors:
        text = extractor(body)
        if text is not None:
            return text
    return default


def build_request(snapshot: StatusSnapshot, system_prompt: str = SYSTEM_PROMPT) -> ChatRequest:
    """Encode the system instruction and the full snapshot as a chat request."""
    return ChatRequest(messages=[
        ChatMessage(role="system", content=system_prompt),
        ChatMessage(role="user", content=snapshot.model_dump_json()),
    ])
