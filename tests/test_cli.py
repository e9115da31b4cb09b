"""Tests for the command-line entry point."""

from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from ollama_bridge.cli import _format_size, main
from ollama_bridge.errors import TransportError
from ollama_bridge.types import (
    FinishReason,
    FunctionCallPart,
    GenerateResponse,
    ModelInfo,
    TextPart,
    Usage,
)


class TestCli:
    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_ping_ok(self):
        with patch("ollama_bridge.cli.OllamaBridge.test_connection",
                   new_callable=AsyncMock, return_value=True):
            result = CliRunner().invoke(main, ["ping"])
        assert result.exit_code == 0
        assert "reachable" in result.output

    def test_ping_unreachable(self):
        with patch("ollama_bridge.cli.OllamaBridge.test_connection",
                   new_callable=AsyncMock, return_value=False):
            result = CliRunner().invoke(main, ["ping"])
        assert result.exit_code == 1
        assert "Cannot reach" in result.output

    def test_models(self):
        found = [ModelInfo(name="llama3.2:latest", size=2 * 1024 ** 3)]
        with patch("ollama_bridge.cli.OllamaBridge.list_models",
                   new_callable=AsyncMock, return_value=found):
            result = CliRunner().invoke(main, ["models"])
        assert result.exit_code == 0
        assert "llama3.2:latest" in result.output
        assert "2.0 GB" in result.output

    def test_chat_no_stream(self):
        response = GenerateResponse(
            parts=[TextPart("Hello there"), FunctionCallPart(name="now")],
            finish_reason=FinishReason.STOP,
            done=True,
            usage=Usage(5, 3, estimated=True),
        )
        with patch("ollama_bridge.cli.OllamaBridge.generate",
                   new_callable=AsyncMock, return_value=response) as mock_gen:
            result = CliRunner().invoke(main, ["chat", "--no-stream", "-t", "0.2", "Hi"])
        assert result.exit_code == 0
        assert "Hello there" in result.output
        assert "now" in result.output
        assert "(estimated)" in result.output
        sent = mock_gen.await_args.args[0]
        assert sent.contents == "Hi"
        assert sent.config.temperature == 0.2

    def test_chat_error(self):
        error = TransportError("chat failed: Connection refused", hint="• ollama serve")
        with patch("ollama_bridge.cli.OllamaBridge.generate",
                   new_callable=AsyncMock, side_effect=error):
            result = CliRunner().invoke(main, ["chat", "--no-stream", "Hi"])
        assert result.exit_code == 1
        assert "Connection refused" in result.output
        assert "ollama serve" in result.output

    def test_format_size(self):
        assert _format_size(512 * 1024 ** 2) == "512 MB"
        assert _format_size(3 * 1024 ** 3) == "3.0 GB"
