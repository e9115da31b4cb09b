"""Shared data types for the Ollama bridge."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union


# ---------------------------------------------------------------------------
# Provider-neutral conversation model
# ---------------------------------------------------------------------------

class PartKind(enum.Enum):
    """Discriminator for the Part variants."""

    TEXT = "text"
    FUNCTION_CALL = "function_call"
    FUNCTION_RESULT = "function_result"
    INLINE_DATA = "inline_data"
    FILE_REF = "file_ref"


@dataclass(frozen=True)
class TextPart:
    text: str
    kind: PartKind = field(default=PartKind.TEXT, init=False, repr=False)


@dataclass(frozen=True)
class FunctionCallPart:
    """A structured call the model asked the caller to perform."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str | None = None
    kind: PartKind = field(default=PartKind.FUNCTION_CALL, init=False, repr=False)


@dataclass(frozen=True)
class FunctionResultPart:
    """The caller's answer to an earlier function call."""

    response: Any
    name: str | None = None
    kind: PartKind = field(default=PartKind.FUNCTION_RESULT, init=False, repr=False)


@dataclass(frozen=True)
class InlineDataPart:
    """Opaque binary payload; only its MIME type reaches the endpoint."""

    mime_type: str
    data: bytes = b""
    kind: PartKind = field(default=PartKind.INLINE_DATA, init=False, repr=False)


@dataclass(frozen=True)
class FileRefPart:
    uri: str
    mime_type: str = ""
    kind: PartKind = field(default=PartKind.FILE_REF, init=False, repr=False)


Part = Union[TextPart, FunctionCallPart, FunctionResultPart, InlineDataPart, FileRefPart]


# Neutral role names.  The assistant side is called "model" here and
# "assistant" on the wire.
ROLE_USER = "user"
ROLE_MODEL = "model"
ROLE_SYSTEM = "system"


@dataclass(frozen=True)
class Turn:
    """One message in a conversation: a role plus ordered parts."""

    role: str = ROLE_USER
    parts: tuple[Part, ...] = ()

    def __post_init__(self) -> None:
        # Accept any sequence but store an immutable tuple
        if not isinstance(self.parts, tuple):
            object.__setattr__(self, "parts", tuple(self.parts))

    @classmethod
    def from_text(cls, text: str, role: str = ROLE_USER) -> Turn:
        return cls(role=role, parts=(TextPart(text),))


# ---------------------------------------------------------------------------
# Wire model (Ollama /api/chat)
# ---------------------------------------------------------------------------

WIRE_ROLES = ("user", "assistant", "system")


@dataclass(frozen=True)
class WireMessage:
    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatOptions:
    """Sampling options sent under ``options`` in the request body."""

    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    num_predict: int | None = None
    stop: list[str] | None = None
    seed: int | None = None
    num_ctx: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            k: v for k, v in self.__dict__.items() if v is not None
        }


@dataclass
class ChatRequest:
    """Body of a ``POST /api/chat`` call before settings are applied."""

    messages: list[WireMessage]
    model: str = ""
    stream: bool = False
    options: ChatOptions = field(default_factory=ChatOptions)
    keep_alive: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "stream": self.stream,
        }
        options = self.options.to_dict()
        if options:
            payload["options"] = options
        if self.keep_alive:
            payload["keep_alive"] = self.keep_alive
        return payload


_USAGE_FIELDS = ("prompt_eval_count", "eval_count")
_DURATION_FIELDS = (
    "total_duration",
    "load_duration",
    "prompt_eval_duration",
    "eval_duration",
)


@dataclass
class StreamRecord:
    """One validated record from ``/api/chat``.

    Single-shot responses are a single record with ``done=True``.
    """

    done: bool
    role: str | None = None
    content: str | None = None
    model: str = ""
    created_at: str = ""
    done_reason: str | None = None
    total_duration: float | None = None
    load_duration: float | None = None
    prompt_eval_count: int | None = None
    prompt_eval_duration: float | None = None
    eval_count: int | None = None
    eval_duration: float | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> StreamRecord:
        """Build a record from an already validated JSON object."""
        message = data.get("message") or {}
        kwargs: dict[str, Any] = {
            name: data[name]
            for name in _USAGE_FIELDS + _DURATION_FIELDS
            if name in data
        }
        return cls(
            done=data["done"],
            role=message.get("role"),
            content=message.get("content"),
            model=data.get("model", ""),
            created_at=data.get("created_at", ""),
            done_reason=data.get("done_reason"),
            raw=data,
            **kwargs,
        )


# ---------------------------------------------------------------------------
# Bridge request / response
# ---------------------------------------------------------------------------

class FinishReason(enum.Enum):
    """The endpoint has no semantic finish reasons, only ``done``."""

    STOP = "stop"
    OTHER = "other"

    @classmethod
    def from_done(cls, done: bool) -> FinishReason:
        return cls.STOP if done else cls.OTHER


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    estimated: bool = False

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class FunctionDeclaration:
    """A callable the model may announce, described in JSON-schema terms."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def parameter_names(self) -> list[str]:
        props = self.parameters.get("properties")
        if isinstance(props, dict):
            return list(props)
        return []


@dataclass
class GenerationConfig:
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_output_tokens: int | None = None
    stop_sequences: list[str] | None = None


@dataclass
class GenerateRequest:
    """Provider-neutral generation request."""

    contents: Any
    system_instruction: str | Turn | None = None
    config: GenerationConfig = field(default_factory=GenerationConfig)
    tools: list[FunctionDeclaration] = field(default_factory=list)
    model: str | None = None


@dataclass
class GenerateResponse:
    """Provider-neutral response (whole, or one streamed fragment)."""

    parts: list[Part] = field(default_factory=list)
    finish_reason: FinishReason = FinishReason.OTHER
    done: bool = False
    usage: Usage = field(default_factory=Usage)
    model: str = ""
    latency_ms: float = 0

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if p.kind is PartKind.TEXT)

    @property
    def function_calls(self) -> list[FunctionCallPart]:
        return [p for p in self.parts if p.kind is PartKind.FUNCTION_CALL]

    @property
    def has_function_calls(self) -> bool:
        return len(self.function_calls) > 0


@dataclass
class ModelInfo:
    """One entry of ``GET /api/tags``."""

    name: str
    model: str = ""
    modified_at: str = ""
    size: int = 0
    digest: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ModelInfo:
        return cls(
            name=data.get("name", ""),
            model=data.get("model", data.get("name", "")),
            modified_at=data.get("modified_at", ""),
            size=data.get("size", 0) or 0,
            digest=data.get("digest", ""),
            details=data.get("details") or {},
        )
