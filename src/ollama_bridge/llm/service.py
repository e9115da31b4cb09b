"""Client for the Ollama native API (``/api/tags``, ``/api/chat``, ``/api/embeddings``).

Every public call works on the settings snapshot taken when it starts;
``update_settings`` only affects calls started afterwards.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import replace
from typing import Any, AsyncIterator, Iterator

import httpx

from ollama_bridge.config import OllamaSettings, get_effective_settings
from ollama_bridge.errors import (
    ApiError,
    BridgeError,
    RequestAborted,
    TransportError,
    ValidationError,
    describe_http_error,
    enhance_error,
)
from ollama_bridge.types import ChatRequest, ModelInfo, StreamRecord

from .composer import compose_request
from .stream_parser import iter_stream_records
from .transport import Transport, run_cancellable
from .validator import validate_record, validate_request

_logger = logging.getLogger(__name__)

_CONNECTION_TEST_TIMEOUT = 5  # seconds


@contextlib.contextmanager
def cancel_after(seconds: float) -> Iterator[asyncio.Event]:
    """An event that sets itself after *seconds* (a timed abort signal).

    The timer is dropped on exit, so leaving the block early leaves
    nothing scheduled on the loop.
    """
    event = asyncio.Event()
    handle = asyncio.get_running_loop().call_later(seconds, event.set)
    try:
        yield event
    finally:
        handle.cancel()


async def _next_record(records: AsyncIterator[StreamRecord]) -> StreamRecord | None:
    try:
        return await records.__anext__()
    except StopAsyncIteration:
        return None


class OllamaService:
    """Async service for one Ollama endpoint."""

    def __init__(
        self,
        settings: OllamaSettings | None = None,
        max_retries: int = 3,
        transport: Transport | None = None,
    ) -> None:
        self._settings = settings or get_effective_settings()
        self._transport = transport or Transport(
            timeout_ms=self._settings.timeout_ms, max_retries=max_retries,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def settings(self) -> OllamaSettings:
        return self._settings

    def update_settings(self, **overrides: Any) -> OllamaSettings:
        """Apply overrides (validated), or reload effective settings."""
        if overrides:
            merged = {**self._settings.model_dump(), **overrides}
            self._settings = OllamaSettings(**merged)
        else:
            self._settings = get_effective_settings()
        return self._settings

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        """Return True when ``GET /api/tags`` answers with success."""
        settings = self._settings
        try:
            with cancel_after(_CONNECTION_TEST_TIMEOUT) as cancel:
                resp = await self._transport.send(
                    "GET", f"{settings.base_url}/api/tags", cancel=cancel,
                )
        except (BridgeError, httpx.HTTPError) as e:
            _logger.info("Connection test against %s failed: %s", settings.endpoint, e)
            return False
        return resp.is_success

    async def list_models(self) -> list[ModelInfo]:
        settings = self._settings
        try:
            resp = await self._transport.send(
                "GET", f"{settings.base_url}/api/tags",
                timeout_ms=settings.timeout_ms,
            )
            if not resp.is_success:
                raise ApiError(
                    f"Failed to fetch models: {resp.reason_phrase or resp.status_code}",
                    status_code=resp.status_code,
                )
            data = resp.json()
        except (BridgeError, httpx.HTTPError) as e:
            raise enhance_error(e, "list_models", settings.endpoint) from e
        except ValueError as e:
            raise enhance_error(
                ValidationError("Invalid response: body is not JSON"),
                "list_models", settings.endpoint,
            ) from e
        return [ModelInfo.from_wire(m) for m in data.get("models") or []]

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        request: ChatRequest,
        cancel: asyncio.Event | None = None,
    ) -> StreamRecord:
        """Single-shot chat.  Returns the validated final record."""
        settings = self._settings
        try:
            enriched = replace(compose_request(request, settings), stream=False)
            validate_request(enriched)
            resp = await self._transport.send(
                "POST",
                f"{settings.base_url}/api/chat",
                json=enriched.to_payload(),
                cancel=cancel,
                timeout_ms=settings.timeout_ms,
            )
            if not resp.is_success:
                raise ApiError(
                    describe_http_error(resp.status_code, resp.text),
                    status_code=resp.status_code,
                )
            try:
                data = resp.json()
            except ValueError as e:
                raise ValidationError("Invalid response: body is not JSON") from e
            validate_record(data)
        except (BridgeError, httpx.HTTPError) as e:
            raise enhance_error(e, "chat", settings.endpoint) from e
        return StreamRecord.from_wire(data)

    async def chat_stream(
        self,
        request: ChatRequest,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamRecord]:
        """Streamed chat.  Yields validated records; bad lines are skipped.

        The HTTP response is released when the stream ends, fails, or the
        consumer stops early.
        """
        settings = self._settings
        try:
            enriched = replace(
                compose_request(request, settings),
                stream=settings.stream_response,
            )
            validate_request(enriched)
            resp = await self._transport.open_stream(
                "POST",
                f"{settings.base_url}/api/chat",
                json=enriched.to_payload(),
                cancel=cancel,
                timeout_ms=settings.timeout_ms,
            )
        except (BridgeError, httpx.HTTPError) as e:
            raise enhance_error(e, "chat_stream", settings.endpoint) from e

        records: AsyncIterator[StreamRecord] | None = None
        try:
            if not resp.is_success:
                body = (await resp.aread()).decode(errors="replace")
                raise enhance_error(
                    ApiError(
                        describe_http_error(resp.status_code, body),
                        status_code=resp.status_code,
                    ),
                    "chat_stream", settings.endpoint,
                )
            records = iter_stream_records(resp.aiter_bytes())
            while True:
                # A stalled body read must not outlive the caller's signal
                if cancel is None:
                    record = await _next_record(records)
                elif cancel.is_set():
                    raise RequestAborted("Stream aborted")
                else:
                    record = await run_cancellable(
                        _next_record(records), cancel, "Stream aborted",
                    )
                if record is None:
                    break
                yield record
        except RequestAborted as e:
            raise enhance_error(e, "chat_stream", settings.endpoint) from e
        except httpx.HTTPError as e:
            raise enhance_error(
                TransportError(f"Stream interrupted: {e}"),
                "chat_stream", settings.endpoint,
            ) from e
        finally:
            if records is not None:
                await records.aclose()
            await resp.aclose()

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def embed(self, model: str, prompt: str) -> list[float]:
        settings = self._settings
        try:
            resp = await self._transport.send(
                "POST",
                f"{settings.base_url}/api/embeddings",
                json={"model": model or settings.model, "prompt": prompt},
                timeout_ms=settings.timeout_ms,
            )
            if not resp.is_success:
                raise ApiError(
                    describe_http_error(resp.status_code, resp.text),
                    status_code=resp.status_code,
                )
            data = resp.json()
        except (BridgeError, httpx.HTTPError) as e:
            raise enhance_error(e, "embed", settings.endpoint) from e
        except ValueError as e:
            raise enhance_error(
                ValidationError("Invalid response: body is not JSON"),
                "embed", settings.endpoint,
            ) from e
        embedding = data.get("embedding")
        if not isinstance(embedding, list):
            raise enhance_error(
                ValidationError('Invalid response: missing "embedding" list'),
                "embed", settings.endpoint,
            )
        return embedding

    async def close(self) -> None:
        await self._transport.close()
