"""Tests for error messages and troubleshooting hints."""

import pytest

from ollama_bridge.errors import (
    ApiError,
    BridgeError,
    MalformedChunkError,
    RequestAborted,
    TransportError,
    ValidationError,
    describe_http_error,
    enhance_error,
)

ENDPOINT = "http://localhost:11434"


class TestDescribeHttpError:
    @pytest.mark.parametrize("status,body,expected", [
        (400, "model is required", "Model error: model is required. Check if the model exists with 'ollama list'"),
        (400, "bad json", "Bad request: bad json"),
        (404, 'model "x" not found', "Model not found. Install it with: ollama pull <model-name>"),
        (404, "nothing here", "Not found: nothing here"),
        (500, "oom", "Ollama server error: oom. Try restarting Ollama service"),
        (503, "loading", "Ollama service unavailable: loading. Check if Ollama is running"),
        (418, "teapot", "Ollama API error (418): teapot"),
    ])
    def test_messages(self, status, body, expected):
        assert describe_http_error(status, body) == expected


class TestEnhanceError:
    def test_connection_hint(self):
        err = enhance_error(TransportError("Connection refused"), "chat", ENDPOINT)
        assert isinstance(err, TransportError)
        assert Exception.__str__(err) == "chat failed: Connection refused"
        assert "ollama serve" in err.hint
        assert ENDPOINT in err.hint

    def test_timeout_hint(self):
        err = enhance_error(TransportError("Request timeout"), "chat", ENDPOINT)
        assert "Increase the timeout" in err.hint

    def test_model_hint(self):
        err = enhance_error(
            ApiError("Model not found", status_code=404), "chat", ENDPOINT,
        )
        assert isinstance(err, ApiError)
        assert err.status_code == 404
        assert "ollama list" in err.hint

    def test_no_hint(self):
        err = enhance_error(ApiError("Bad request: x", status_code=400), "chat", ENDPOINT)
        assert err.hint is None
        assert str(err) == "chat failed: Bad request: x"

    def test_existing_hint_kept(self):
        err = enhance_error(
            ValidationError("odd", hint="check the proxy"), "chat", ENDPOINT,
        )
        assert err.hint == "check the proxy"

    def test_malformed_chunk_becomes_validation_error(self):
        err = enhance_error(
            MalformedChunkError("bad", chunk_index=3), "chat_stream", ENDPOINT,
        )
        assert type(err) is ValidationError
        assert "Chunk 3 parse error: bad" in str(err)

    def test_foreign_error_wrapped(self):
        cause = RuntimeError("boom")
        err = enhance_error(cause, "embed", ENDPOINT)
        assert type(err) is BridgeError
        assert err.__cause__ is cause

    def test_abort_keeps_type(self):
        err = enhance_error(RequestAborted("Request aborted"), "chat", ENDPOINT)
        assert isinstance(err, RequestAborted)

    def test_str_includes_troubleshooting(self):
        err = BridgeError("failed", hint="• do this")
        assert str(err) == "failed\n\nTroubleshooting:\n• do this"
