"""Function-call recovery from plain assistant text.

The endpoint has no native tool calling.  The model is told (through an
injected system turn) to announce a call as::

    FUNCTION_CALL:
    {"name": "function_name", "arguments": {"param": "value"}}

``parse_function_calls`` turns a finished response back into parts,
degrading to plain text whenever the announced block does not parse.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

from ollama_bridge.errors import RecoveryParseError
from ollama_bridge.types import FunctionCallPart, Part, TextPart

_logger = logging.getLogger(__name__)

FUNCTION_CALL_MARKER = "FUNCTION_CALL:"

# Give up on a call block once this much unparseable text has piled up
_MAX_CALL_BUFFER = 1000

_STATE_TEXT = "text"
_STATE_CALL = "call"


def new_call_id() -> str:
    return f"call_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _try_parse_call(raw: str) -> FunctionCallPart:
    """Parse *raw* as ``{"name": str, "arguments": object}``."""
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        raise RecoveryParseError(f"not valid JSON yet: {e}") from e
    if not isinstance(data, dict):
        raise RecoveryParseError("call block is not a JSON object")
    name = data.get("name")
    arguments = data.get("arguments")
    if not isinstance(name, str) or not name:
        raise RecoveryParseError("call block has no function name")
    if not isinstance(arguments, dict):
        raise RecoveryParseError("call block has no arguments object")
    return FunctionCallPart(name=name, arguments=arguments, call_id=new_call_id())


class FunctionCallParser:
    """Line-oriented state machine over one finished response.

    States:
      text - collecting ordinary lines into pending text
      call - collecting lines after the marker until they parse as a call
    """

    def __init__(self) -> None:
        self.parts: list[Part] = []
        self.state = _STATE_TEXT
        self.pending_lines: list[str] = []
        self.call_buffer = ""

    def feed_line(self, line: str) -> None:
        if self.state == _STATE_TEXT:
            if line.strip() == FUNCTION_CALL_MARKER:
                self._flush_text()
                self.state = _STATE_CALL
                self.call_buffer = ""
            else:
                self.pending_lines.append(line)
            return

        self.call_buffer += line.strip()
        try:
            call = _try_parse_call(self.call_buffer)
        except RecoveryParseError as e:
            if len(self.call_buffer) > _MAX_CALL_BUFFER:
                _logger.debug("Abandoning function call block: %s", e)
                self.parts.append(
                    TextPart(f"{FUNCTION_CALL_MARKER}\n{self.call_buffer}"),
                )
                self.call_buffer = ""
                self.state = _STATE_TEXT
            return
        self.parts.append(call)
        self.call_buffer = ""
        self.state = _STATE_TEXT

    def finish(self) -> list[Part]:
        self._flush_text()
        if self.state == _STATE_CALL and self.call_buffer:
            self.parts.append(
                TextPart(f"{FUNCTION_CALL_MARKER}\n{self.call_buffer}"),
            )
        self.call_buffer = ""
        self.state = _STATE_TEXT
        return self.parts

    def _flush_text(self) -> None:
        text = "\n".join(self.pending_lines).strip()
        if text:
            self.parts.append(TextPart(text))
        self.pending_lines = []


def has_call_marker(content: str) -> bool:
    return any(
        line.strip() == FUNCTION_CALL_MARKER for line in content.split("\n")
    )


def parse_function_calls(content: str) -> list[Part]:
    """Split *content* into text and function-call parts.

    Never fails and never returns an empty list: with nothing recovered
    the original content comes back as a single text part.  Content
    without a marker line is returned verbatim.
    """
    if not has_call_marker(content):
        return [TextPart(content)]

    parser = FunctionCallParser()
    for line in content.split("\n"):
        parser.feed_line(line)
    parts = parser.finish()
    if not parts:
        return [TextPart(content)]
    return parts
