"""Mapping between provider-neutral turns and /api/chat wire messages.

Wire messages are flat ``{role, content}`` strings, so anything that is
not text is rendered into the content.  Only function calls come back
out again, through the recovery parser.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from ollama_bridge.types import (
    ROLE_MODEL,
    ROLE_SYSTEM,
    ROLE_USER,
    FunctionCallPart,
    FunctionDeclaration,
    FunctionResultPart,
    Part,
    PartKind,
    StreamRecord,
    TextPart,
    Turn,
    WireMessage,
)

from .response_parser import FUNCTION_CALL_MARKER, parse_function_calls

_logger = logging.getLogger(__name__)

_NEUTRAL_TO_WIRE = {
    ROLE_USER: "user",
    ROLE_MODEL: "assistant",
    ROLE_SYSTEM: "system",
}
_WIRE_TO_NEUTRAL = {v: k for k, v in _NEUTRAL_TO_WIRE.items()}


def to_wire_role(role: str) -> str:
    """Neutral role -> wire role.  Unknown roles become ``user``."""
    if role == "assistant":
        return "assistant"
    return _NEUTRAL_TO_WIRE.get(role, "user")


def from_wire_role(role: str | None) -> str:
    return _WIRE_TO_NEUTRAL.get(role or "", ROLE_MODEL)


def _to_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def render_function_call(part: FunctionCallPart) -> str:
    return f"Function call: {part.name}({_to_json(part.arguments)})"


def render_function_result(part: FunctionResultPart) -> str:
    return f"Function response: {_to_json(part.response)}"


# ---------------------------------------------------------------------------
# Neutral -> wire
# ---------------------------------------------------------------------------

@dataclass
class _SortedParts:
    text: str = ""
    calls: list[FunctionCallPart] = field(default_factory=list)
    results: list[FunctionResultPart] = field(default_factory=list)


def _sort_parts(parts: Iterable[Part]) -> _SortedParts:
    """Group a turn's parts; text-like parts are joined with one space."""
    sorted_parts = _SortedParts()
    texts: list[str] = []
    for part in parts:
        if part.kind is PartKind.TEXT:
            if part.text:
                texts.append(part.text)
        elif part.kind is PartKind.FUNCTION_CALL:
            sorted_parts.calls.append(part)
        elif part.kind is PartKind.FUNCTION_RESULT:
            sorted_parts.results.append(part)
        elif part.kind is PartKind.INLINE_DATA:
            texts.append(f"[Inline data: {part.mime_type}]")
        elif part.kind is PartKind.FILE_REF:
            texts.append(f"[File: {part.uri}]")
        else:
            raise TypeError(f"Unsupported part kind: {part.kind!r}")
    sorted_parts.text = " ".join(texts).strip()
    return sorted_parts


def turn_to_wire(turn: Turn) -> list[WireMessage]:
    """Flatten one turn into one or more wire messages.

    Text comes first, then one message per call, then one per result.
    A turn with nothing in it still yields one (empty) message.
    """
    role = to_wire_role(turn.role)
    grouped = _sort_parts(turn.parts)

    messages: list[WireMessage] = []
    if grouped.text or not (grouped.calls or grouped.results):
        messages.append(WireMessage(role, grouped.text))
    messages.extend(
        WireMessage(role, render_function_call(c)) for c in grouped.calls
    )
    messages.extend(
        WireMessage(role, render_function_result(r)) for r in grouped.results
    )
    return messages


def to_wire(turns: Iterable[Turn]) -> list[WireMessage]:
    messages: list[WireMessage] = []
    for turn in turns:
        messages.extend(turn_to_wire(turn))
    return messages


# ---------------------------------------------------------------------------
# Wire -> neutral
# ---------------------------------------------------------------------------

def from_wire(record: StreamRecord | str) -> list[Part]:
    """Recover parts from a finished response (or its content string)."""
    content = record if isinstance(record, str) else (record.content or "")
    return parse_function_calls(content)


def record_to_turn(record: StreamRecord) -> Turn:
    return Turn(role=from_wire_role(record.role), parts=tuple(from_wire(record)))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def normalize_contents(contents: Any) -> list[Turn]:
    """Accept a string, a Turn, a list of Turns, or a list of Parts."""
    if isinstance(contents, str):
        return [Turn.from_text(contents)]
    if isinstance(contents, Turn):
        return [contents]
    items = list(contents)
    if not items:
        return []
    if all(isinstance(item, Turn) for item in items):
        return items
    if any(isinstance(item, Turn) for item in items):
        raise TypeError(
            "contents mixes Turn objects with parts; "
            "pass either a list of Turns or a list of parts",
        )
    parts: list[Part] = []
    for item in items:
        parts.append(TextPart(item) if isinstance(item, str) else item)
    return [Turn(role=ROLE_USER, parts=tuple(parts))]


def extract_text(turn: Turn) -> str:
    """Readable text of a turn, with calls and results rendered inline."""
    chunks: list[str] = []
    for part in turn.parts:
        if part.kind is PartKind.TEXT:
            chunks.append(part.text)
        elif part.kind is PartKind.FUNCTION_CALL:
            chunks.append(render_function_call(part))
        elif part.kind is PartKind.FUNCTION_RESULT:
            chunks.append(render_function_result(part))
    return "".join(chunks)


def extract_all_text(turns: Iterable[Turn]) -> str:
    return " ".join(extract_text(t) for t in turns)


def system_instruction_text(instruction: str | Turn) -> str:
    if isinstance(instruction, str):
        return instruction
    return extract_text(instruction)


def render_tool_instructions(tools: Iterable[FunctionDeclaration]) -> str:
    """Describe the callable functions and the marker convention."""
    tools = list(tools)
    if not tools:
        return ""

    lines = [
        "You have access to the following functions. When you need to call "
        "a function, respond with a structured function call in this exact format:",
        "",
        FUNCTION_CALL_MARKER,
        '{"name": "function_name", "arguments": {"param1": "value1", "param2": "value2"}}',
        "",
        "Available functions:",
    ]
    for tool in tools:
        lines.append(f"• {tool.name}: {tool.description or 'No description'}")
        params = tool.parameter_names
        if params:
            lines.append(f"  Parameters: {', '.join(params)}")
    lines.append("")
    lines.append(
        f"Always use the exact {FUNCTION_CALL_MARKER[:-1]} format above when calling functions.",
    )
    return "\n".join(lines)
