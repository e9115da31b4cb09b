"""Provider-neutral generation on top of ``OllamaService``.

``generate`` and ``generate_stream`` take a ``GenerateRequest`` made of
turns and parts, translate it to wire messages, and translate the
endpoint's answer back, recovering text-announced function calls.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, AsyncIterator

from ollama_bridge.config import OllamaSettings
from ollama_bridge.errors import BridgeError
from ollama_bridge.types import (
    ChatOptions,
    ChatRequest,
    FinishReason,
    GenerateRequest,
    GenerateResponse,
    ModelInfo,
    StreamRecord,
    TextPart,
    Usage,
    WireMessage,
)

from .service import OllamaService
from .translator import (
    extract_all_text,
    from_wire,
    normalize_contents,
    render_tool_instructions,
    system_instruction_text,
    to_wire,
)

_logger = logging.getLogger(__name__)

_CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token count when the endpoint reports none."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


class OllamaBridge:
    """Generate content against a local Ollama endpoint.

    Usage::

        async with OllamaBridge() as bridge:
            response = await bridge.generate(GenerateRequest(contents="Hi"))
            async for chunk in bridge.generate_stream(request):
                ...
            final = bridge.last_response
    """

    def __init__(
        self,
        service: OllamaService | None = None,
        model: str | None = None,
        settings: OllamaSettings | None = None,
    ) -> None:
        self._service = service or OllamaService(settings=settings)
        self.model = model
        self._last_response: GenerateResponse | None = None

    async def __aenter__(self) -> OllamaBridge:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def service(self) -> OllamaService:
        return self._service

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def build_chat_request(self, request: GenerateRequest) -> ChatRequest:
        """Translate a neutral request into an /api/chat request."""
        turns = normalize_contents(request.contents)
        messages = to_wire(turns)

        if request.system_instruction:
            messages.insert(
                0,
                WireMessage("system", system_instruction_text(request.system_instruction)),
            )
        tool_text = render_tool_instructions(request.tools)
        if tool_text:
            messages.insert(0, WireMessage("system", tool_text))

        cfg = request.config
        options = ChatOptions(
            temperature=cfg.temperature,
            top_p=cfg.top_p,
            top_k=cfg.top_k,
            num_predict=cfg.max_output_tokens,
            stop=list(cfg.stop_sequences) if cfg.stop_sequences else None,
        )
        return ChatRequest(
            messages=messages,
            model=request.model or self.model or "",
            options=options,
        )

    # ------------------------------------------------------------------
    # Single-shot
    # ------------------------------------------------------------------

    async def generate(
        self,
        request: GenerateRequest,
        cancel: asyncio.Event | None = None,
    ) -> GenerateResponse:
        """Generate one complete response."""
        start = time.monotonic()
        chat_request = self.build_chat_request(request)
        try:
            record = await self._service.chat(chat_request, cancel=cancel)
        except BridgeError as e:
            _logger.error("Generation failed: %s", e)
            raise

        content = record.content or ""
        response = GenerateResponse(
            parts=from_wire(content),
            finish_reason=FinishReason.from_done(record.done),
            done=record.done,
            usage=self._usage_for(record, chat_request, content),
            model=record.model or chat_request.model or self._service.settings.model,
            latency_ms=(time.monotonic() - start) * 1000,
        )
        _logger.debug(
            "Generated %d parts, %d tokens in %.0f ms",
            len(response.parts), response.usage.total_tokens, response.latency_ms,
        )
        return response

    @staticmethod
    def _usage_for(record: StreamRecord, request: ChatRequest, content: str) -> Usage:
        estimated = False
        prompt_tokens = record.prompt_eval_count
        if prompt_tokens is None:
            prompt_tokens = estimate_tokens(" ".join(m.content for m in request.messages))
            estimated = True
        completion_tokens = record.eval_count
        if completion_tokens is None:
            completion_tokens = estimate_tokens(content)
            estimated = True
        return Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            estimated=estimated,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def generate_stream(
        self,
        request: GenerateRequest,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[GenerateResponse]:
        """Yield one partial response per streamed record.

        The record with ``done=True`` carries the final usage.  Once the
        stream is exhausted, ``last_response`` holds the whole response
        with function calls recovered.
        """
        start = time.monotonic()
        chat_request = self.build_chat_request(request)
        self._last_response = None
        usage = Usage()
        collected: list[str] = []
        model_name = chat_request.model or self._service.settings.model
        done = False

        stream = self._service.chat_stream(chat_request, cancel=cancel)
        try:
            async for record in stream:
                if record.prompt_eval_count:
                    usage.prompt_tokens = record.prompt_eval_count
                if record.eval_count:
                    usage.completion_tokens = record.eval_count
                model_name = record.model or model_name
                done = record.done
                fragment = record.content or ""
                collected.append(fragment)

                yield GenerateResponse(
                    parts=[TextPart(fragment)],
                    finish_reason=FinishReason.from_done(record.done),
                    done=record.done,
                    usage=Usage(usage.prompt_tokens, usage.completion_tokens),
                    model=model_name,
                    latency_ms=(time.monotonic() - start) * 1000,
                )
        except BridgeError as e:
            _logger.error("Streaming generation failed: %s", e)
            raise
        finally:
            await stream.aclose()

        content = "".join(collected)
        self._last_response = GenerateResponse(
            parts=from_wire(content),
            finish_reason=FinishReason.from_done(done),
            done=done,
            usage=usage,
            model=model_name,
            latency_ms=(time.monotonic() - start) * 1000,
        )

    @property
    def last_response(self) -> GenerateResponse | None:
        """The aggregated response from the last finished ``generate_stream()``."""
        return self._last_response

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def count_tokens(self, contents: Any) -> int:
        """Estimate tokens; the endpoint has no counting API."""
        return estimate_tokens(extract_all_text(normalize_contents(contents)))

    async def embed_content(self, contents: Any) -> list[float]:
        text = extract_all_text(normalize_contents(contents))
        try:
            return await self._service.embed(self.model or "", text)
        except BridgeError as e:
            _logger.error("Embedding failed: %s", e)
            raise

    async def list_models(self) -> list[ModelInfo]:
        return await self._service.list_models()

    async def test_connection(self) -> bool:
        return await self._service.test_connection()

    async def close(self) -> None:
        await self._service.close()
