"""Merge a caller's chat request with the effective settings."""

from __future__ import annotations

from dataclasses import replace

from ollama_bridge.config import OllamaSettings
from ollama_bridge.types import ChatRequest, WireMessage


def compose_request(request: ChatRequest, settings: OllamaSettings) -> ChatRequest:
    """Return a copy of *request* with settings filled in.

    Explicit request values win; anything unset falls back to *settings*.
    A configured system prompt is prepended unless the request already
    carries a system message.  ``stream`` is left as the caller set it.
    """
    options = replace(
        request.options,
        num_ctx=request.options.num_ctx or settings.context_size,
        temperature=(
            request.options.temperature
            if request.options.temperature is not None
            else settings.temperature
        ),
        top_p=(
            request.options.top_p
            if request.options.top_p is not None
            else settings.top_p
        ),
    )

    messages = list(request.messages)
    if settings.system_prompt and not any(m.role == "system" for m in messages):
        messages.insert(0, WireMessage("system", settings.system_prompt))

    return replace(
        request,
        model=request.model or settings.model,
        messages=messages,
        options=options,
        keep_alive=request.keep_alive or settings.keep_alive,
    )
