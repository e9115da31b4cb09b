"""Structural checks for requests sent to and records received from /api/chat.

Violations raise ``ValidationError`` on the first problem found; nothing
is repaired silently.
"""

from __future__ import annotations

import logging
from typing import Any

from ollama_bridge.errors import ValidationError
from ollama_bridge.types import WIRE_ROLES, ChatRequest

_logger = logging.getLogger(__name__)

_COUNT_FIELDS = ("prompt_eval_count", "eval_count")
_DURATION_FIELDS = (
    "total_duration",
    "load_duration",
    "prompt_eval_duration",
    "eval_duration",
)

# Advisory threshold for completed content
LONG_CONTENT_CHARS = 100_000


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def validate_request(request: ChatRequest) -> None:
    """Check an outbound request before it is sent."""
    if not request.model or not isinstance(request.model, str):
        raise ValidationError(
            "Invalid request: model name is required and must be a string",
        )
    if not isinstance(request.messages, list):
        raise ValidationError("Invalid request: messages must be a list")
    if not request.messages:
        raise ValidationError("Invalid request: messages cannot be empty")
    for i, msg in enumerate(request.messages):
        if msg.role not in WIRE_ROLES:
            raise ValidationError(
                f'Invalid request: message {i} has invalid role "{msg.role}"',
            )
        if not isinstance(msg.content, str):
            raise ValidationError(
                f"Invalid request: message {i} content must be a string",
            )


def validate_record(data: Any, *, streamed: bool = False) -> None:
    """Validate one record from the endpoint.

    ``streamed`` records may omit ``message.role``; single-shot responses
    must carry it and additionally get advisory content warnings.
    """
    prefix = "Invalid streaming chunk" if streamed else "Invalid response"

    if not isinstance(data, dict):
        raise ValidationError(f"{prefix}: not a JSON object")

    if "done" not in data:
        raise ValidationError(f'{prefix}: missing "done" field')
    if not isinstance(data["done"], bool):
        raise ValidationError(f'{prefix}: "done" must be a boolean')

    message = data.get("message")
    if "message" in data and message is not None:
        if not isinstance(message, dict):
            raise ValidationError(f"{prefix}: message is not an object")
        _validate_message(message, prefix, streamed)

    if data["done"]:
        for name in _COUNT_FIELDS:
            if name in data and (not _is_int(data[name]) or data[name] < 0):
                raise ValidationError(
                    f"{prefix}: {name} must be a non-negative integer",
                )
        for name in _DURATION_FIELDS:
            if name in data and (not _is_number(data[name]) or data[name] < 0):
                raise ValidationError(
                    f"{prefix}: {name} must be a non-negative number",
                )
        if not streamed:
            _warn_on_content(message)


def _validate_message(message: dict[str, Any], prefix: str, streamed: bool) -> None:
    role = message.get("role")
    if role is None:
        if not streamed:
            raise ValidationError(f"{prefix}: message missing role")
    elif role not in WIRE_ROLES:
        raise ValidationError(f'{prefix}: invalid message role "{role}"')

    if "content" in message:
        content = message["content"]
        if not isinstance(content, str):
            raise ValidationError(f"{prefix}: message content must be a string")
        if "\0" in content:
            raise ValidationError(f"{prefix}: contains null bytes (corrupted)")


def _warn_on_content(message: Any) -> None:
    content = message.get("content") if isinstance(message, dict) else None
    if not content or not content.strip():
        _logger.warning("Received empty content for completed response")
    elif len(content) > LONG_CONTENT_CHARS:
        _logger.warning(
            "Received unusually long response: %d characters", len(content),
        )
