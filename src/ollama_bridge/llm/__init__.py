"""Streaming inference bridge for the Ollama native API."""

from ollama_bridge.llm.bridge import OllamaBridge, estimate_tokens
from ollama_bridge.llm.composer import compose_request
from ollama_bridge.llm.response_parser import FUNCTION_CALL_MARKER, parse_function_calls
from ollama_bridge.llm.service import OllamaService
from ollama_bridge.llm.stream_parser import NDJSONStreamParser, iter_stream_records
from ollama_bridge.llm.transport import Transport
from ollama_bridge.llm.translator import from_wire, to_wire

__all__ = [
    "FUNCTION_CALL_MARKER",
    "NDJSONStreamParser",
    "OllamaBridge",
    "OllamaService",
    "Transport",
    "compose_request",
    "estimate_tokens",
    "from_wire",
    "iter_stream_records",
    "parse_function_calls",
    "to_wire",
]
