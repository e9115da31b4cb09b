"""Tests for request and response structural validation."""

import logging

import pytest

from ollama_bridge.errors import ValidationError
from ollama_bridge.llm.validator import validate_record, validate_request
from ollama_bridge.types import ChatRequest, WireMessage


def _final(**overrides):
    data = {
        "model": "llama3.2:latest",
        "message": {"role": "assistant", "content": "Hello"},
        "done": True,
        "prompt_eval_count": 10,
        "eval_count": 5,
        "total_duration": 123456,
    }
    data.update(overrides)
    return data


class TestValidateRecord:
    def test_valid_final_response(self):
        validate_record(_final())

    def test_not_an_object(self):
        with pytest.raises(ValidationError, match="not a JSON object"):
            validate_record(["done", True])

    def test_missing_done(self):
        data = _final()
        del data["done"]
        with pytest.raises(ValidationError, match='missing "done"'):
            validate_record(data)

    def test_done_must_be_bool(self):
        with pytest.raises(ValidationError, match="boolean"):
            validate_record(_final(done="true"))

    def test_message_not_object(self):
        with pytest.raises(ValidationError, match="message is not an object"):
            validate_record(_final(message="Hello"))

    def test_invalid_role(self):
        with pytest.raises(ValidationError, match='invalid message role "tool"'):
            validate_record(_final(message={"role": "tool", "content": "x"}))

    def test_missing_role_rejected_for_single_shot(self):
        with pytest.raises(ValidationError, match="missing role"):
            validate_record(_final(message={"content": "x"}))

    def test_missing_role_tolerated_when_streamed(self):
        validate_record({"message": {"content": "x"}, "done": False}, streamed=True)

    def test_content_must_be_string(self):
        with pytest.raises(ValidationError, match="content must be a string"):
            validate_record(_final(message={"role": "assistant", "content": 42}))

    def test_null_bytes_rejected(self):
        with pytest.raises(ValidationError, match="null bytes"):
            validate_record(_final(message={"role": "assistant", "content": "a\0b"}))

    @pytest.mark.parametrize("value", [-1, 1.5, True, "3"])
    def test_bad_counts(self, value):
        with pytest.raises(ValidationError, match="eval_count"):
            validate_record(_final(eval_count=value))

    @pytest.mark.parametrize("value", [-0.1, "fast", None])
    def test_bad_durations(self, value):
        with pytest.raises(ValidationError, match="load_duration"):
            validate_record(_final(load_duration=value))

    def test_float_duration_ok(self):
        validate_record(_final(eval_duration=12.5))

    def test_counts_not_checked_mid_stream(self):
        validate_record(
            {"message": {"role": "assistant", "content": "x"}, "done": False, "eval_count": -1},
            streamed=True,
        )

    def test_empty_content_only_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            validate_record(_final(message={"role": "assistant", "content": "   "}))
        assert "empty content" in caplog.text

    def test_long_content_only_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            validate_record(
                _final(message={"role": "assistant", "content": "a" * 100_001}),
            )
        assert "unusually long" in caplog.text


class TestValidateRequest:
    def test_valid(self):
        validate_request(
            ChatRequest(messages=[WireMessage("user", "hi")], model="m"),
        )

    def test_model_required(self):
        with pytest.raises(ValidationError, match="model name is required"):
            validate_request(ChatRequest(messages=[WireMessage("user", "hi")]))

    def test_messages_required(self):
        with pytest.raises(ValidationError, match="cannot be empty"):
            validate_request(ChatRequest(messages=[], model="m"))

    def test_bad_role(self):
        with pytest.raises(ValidationError, match="message 1 has invalid role"):
            validate_request(
                ChatRequest(
                    messages=[WireMessage("user", "hi"), WireMessage("model", "x")],
                    model="m",
                ),
            )
