"""Exception hierarchy for the Ollama bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all bridge errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        message = super().__str__()
        if self.hint:
            return f"{message}\n\nTroubleshooting:\n{self.hint}"
        return message


class TransportError(BridgeError):
    """Network or deadline failure that survived every retry."""


class RequestAborted(BridgeError):
    """The caller's cancellation signal fired.  Never retried."""


class ApiError(BridgeError):
    """The endpoint answered with a non-success HTTP status."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code


class ValidationError(BridgeError):
    """A request or response broke the structural contract."""


class MalformedChunkError(ValidationError):
    """One streamed line could not be parsed or validated."""

    def __init__(self, message: str, *, chunk_index: int = 0) -> None:
        super().__init__(f"Chunk {chunk_index} parse error: {message}")
        self.chunk_index = chunk_index


class RecoveryParseError(BridgeError):
    """Text after a function-call marker is not (yet) a valid call."""


# ---------------------------------------------------------------------------
# Human-readable messages
# ---------------------------------------------------------------------------

def describe_http_error(status: int, body: str) -> str:
    """Turn an endpoint error status and body into a readable message."""
    if status == 400:
        if "model" in body:
            return f"Model error: {body}. Check if the model exists with 'ollama list'"
        return f"Bad request: {body}"
    if status == 404:
        if "model" in body or "not found" in body:
            return "Model not found. Install it with: ollama pull <model-name>"
        return f"Not found: {body}"
    if status == 500:
        return f"Ollama server error: {body}. Try restarting Ollama service"
    if status == 503:
        return f"Ollama service unavailable: {body}. Check if Ollama is running"
    return f"Ollama API error ({status}): {body}"


def _troubleshooting_hint(message: str, endpoint: str) -> str | None:
    lower = message.lower()
    if "econnrefused" in lower or "connection" in lower:
        return (
            "• Start the inference server: ollama serve\n"
            f"• Check endpoint: {endpoint}"
        )
    if "timeout" in lower or "timed out" in lower:
        return (
            "• Increase the timeout setting\n"
            "• Check network connection\n"
            "• Verify Ollama is responding"
        )
    if "model" in lower:
        return (
            "• List models: ollama list\n"
            "• Install the model: ollama pull <model-name>"
        )
    return None


def enhance_error(error: Exception, operation: str, endpoint: str) -> BridgeError:
    """Prefix *error* with the failed operation and attach a hint.

    The returned exception keeps the class of *error* when it is already a
    ``BridgeError`` so callers can still tell transport from API failures.
    """
    if isinstance(error, BridgeError):
        base = Exception.__str__(error)
    else:
        base = str(error) or error.__class__.__name__
    message = f"{operation} failed: {base}"
    hint = _troubleshooting_hint(base, endpoint)
    if isinstance(error, BridgeError):
        hint = hint or error.hint
        if isinstance(error, ApiError):
            enhanced: BridgeError = ApiError(
                message, hint=hint, status_code=error.status_code,
            )
        elif isinstance(error, MalformedChunkError):
            enhanced = ValidationError(message, hint=hint)
        else:
            enhanced = type(error)(message, hint=hint)
    else:
        enhanced = BridgeError(message, hint=hint)
    enhanced.__cause__ = error
    return enhanced
