"""Tests for merging chat requests with effective settings."""

from ollama_bridge.config import OllamaSettings
from ollama_bridge.llm.composer import compose_request
from ollama_bridge.types import ChatOptions, ChatRequest, WireMessage


def _settings(**overrides) -> OllamaSettings:
    return OllamaSettings(**overrides)


def _request(**kwargs) -> ChatRequest:
    kwargs.setdefault("messages", [WireMessage("user", "Hi")])
    return ChatRequest(**kwargs)


class TestComposeRequest:
    def test_defaults_from_settings(self):
        out = compose_request(_request(), _settings())
        assert out.model == "llama3.2:latest"
        assert out.options.temperature == 0.7
        assert out.options.top_p == 0.9
        assert out.options.num_ctx == 4096
        assert out.keep_alive == "5m"

    def test_explicit_temperature_wins(self):
        out = compose_request(
            _request(options=ChatOptions(temperature=0.1)),
            _settings(temperature=1.5),
        )
        assert out.options.temperature == 0.1

    def test_zero_temperature_is_explicit(self):
        out = compose_request(
            _request(options=ChatOptions(temperature=0.0)),
            _settings(temperature=1.5),
        )
        assert out.options.temperature == 0.0

    def test_absent_temperature_falls_back(self):
        out = compose_request(_request(), _settings(temperature=1.5))
        assert out.options.temperature == 1.5

    def test_request_model_wins(self):
        out = compose_request(_request(model="qwen3:8b"), _settings())
        assert out.model == "qwen3:8b"

    def test_other_options_preserved(self):
        out = compose_request(
            _request(options=ChatOptions(num_predict=64, stop=["\n\n"], num_ctx=8192)),
            _settings(),
        )
        assert out.options.num_predict == 64
        assert out.options.stop == ["\n\n"]
        assert out.options.num_ctx == 8192

    def test_system_prompt_injected(self):
        out = compose_request(_request(), _settings(system_prompt="Be brief."))
        assert out.messages[0] == WireMessage("system", "Be brief.")
        assert out.messages[1] == WireMessage("user", "Hi")

    def test_existing_system_message_not_duplicated(self):
        messages = [WireMessage("system", "Own prompt"), WireMessage("user", "Hi")]
        out = compose_request(
            _request(messages=messages), _settings(system_prompt="Be brief."),
        )
        assert [m.content for m in out.messages] == ["Own prompt", "Hi"]

    def test_input_not_mutated(self):
        request = _request()
        compose_request(request, _settings(system_prompt="Be brief."))
        assert len(request.messages) == 1
        assert request.options.temperature is None

    def test_stream_flag_untouched(self):
        assert compose_request(_request(stream=True), _settings()).stream is True
        assert compose_request(_request(), _settings(stream_response=True)).stream is False

    def test_payload_shape(self):
        payload = compose_request(_request(), _settings()).to_payload()
        assert payload["messages"] == [{"role": "user", "content": "Hi"}]
        assert payload["options"] == {"temperature": 0.7, "top_p": 0.9, "num_ctx": 4096}
        assert payload["keep_alive"] == "5m"
        assert payload["stream"] is False
