"""Effective settings for the local inference endpoint.

Settings discovery (first match wins):
  1. explicit ``path`` argument
  2. ``./ollama_bridge.yaml``
  3. ``~/.config/ollama-bridge/settings.yaml``
  4. Built-in defaults

Environment variables (``OLLAMA_ENDPOINT``, ``OLLAMA_MODEL``,
``OLLAMA_CONTEXT_SIZE``, ``OLLAMA_TIMEOUT``, ``OLLAMA_TEMPERATURE``) are
applied on top of whatever was loaded.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

_logger = logging.getLogger(__name__)

_ENDPOINT_RE = re.compile(r"^https?://.+")


class OllamaSettings(BaseModel):
    """Immutable snapshot of the endpoint configuration."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    endpoint: str = "http://localhost:11434"
    model: str = Field("llama3.2:latest", min_length=1)
    context_size: int = Field(4096, ge=512, le=32768)
    timeout_ms: int = Field(30000, ge=1000, le=300000)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    top_p: float = Field(0.9, ge=0.0, le=1.0)
    stream_response: bool = True
    keep_alive: str = "5m"
    system_prompt: str | None = None

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, v: str) -> str:
        if not _ENDPOINT_RE.match(v):
            raise ValueError("Endpoint must be a valid HTTP/HTTPS URL")
        return v

    @property
    def base_url(self) -> str:
        return self.endpoint.rstrip("/")

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000


SETTING_DESCRIPTIONS: dict[str, str] = {
    "endpoint": "Ollama server endpoint URL (e.g., http://localhost:11434)",
    "model": "Model name to use for generation (e.g., llama3.2:latest)",
    "context_size": "Maximum context window size in tokens (512-32768)",
    "timeout_ms": "Request timeout in milliseconds (1000-300000)",
    "temperature": "Randomness in responses (0.0 = deterministic, 2.0 = very random)",
    "top_p": "Nucleus sampling parameter (0.0-1.0, controls diversity)",
    "stream_response": "Enable streaming responses for real-time output",
    "keep_alive": 'How long to keep model loaded in memory (e.g., "5m", "1h")',
    "system_prompt": "Optional system prompt to prepend to all conversations",
}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def validate_settings(settings: Mapping[str, Any]) -> list[str]:
    """Return human-readable problems with a (partial) settings mapping."""
    errors: list[str] = []

    endpoint = settings.get("endpoint")
    if not endpoint:
        errors.append("Endpoint is required")
    elif not isinstance(endpoint, str) or not _ENDPOINT_RE.match(endpoint):
        errors.append("Endpoint must be a valid HTTP/HTTPS URL")

    if not settings.get("model"):
        errors.append("Model is required")

    ctx = settings.get("context_size")
    if ctx is not None and (not _is_int(ctx) or not 512 <= ctx <= 32768):
        errors.append("Context size must be between 512 and 32768")

    timeout = settings.get("timeout_ms")
    if timeout is not None and (not _is_int(timeout) or not 1000 <= timeout <= 300000):
        errors.append("Timeout must be between 1000ms and 300000ms (5 minutes)")

    temperature = settings.get("temperature")
    if temperature is not None and (
        not _is_number(temperature) or not 0 <= temperature <= 2
    ):
        errors.append("Temperature must be between 0.0 and 2.0")

    top_p = settings.get("top_p")
    if top_p is not None and (not _is_number(top_p) or not 0 <= top_p <= 1):
        errors.append("Top P must be between 0.0 and 1.0")

    return errors


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./ollama_bridge.yaml"),
    Path.home() / ".config" / "ollama-bridge" / "settings.yaml",
]


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"expected a mapping, got {type(raw).__name__}")
    return raw


def load_settings(path: str | Path | None = None) -> OllamaSettings:
    """Load stored settings merged over the defaults.

    Never raises: a missing or broken file yields the defaults.
    """
    settings_path: Path | None = None

    if path is not None:
        settings_path = Path(path)
        if not settings_path.exists():
            _logger.warning("Settings file not found: %s, using defaults", path)
            return OllamaSettings()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                settings_path = candidate
                break

    if settings_path is None:
        _logger.info("No settings file found, using defaults")
        return OllamaSettings()

    _logger.info("Loading settings from %s", settings_path)
    try:
        raw = _read_yaml(settings_path)
        return OllamaSettings(**raw)
    except (OSError, yaml.YAMLError, ValueError, ValidationError) as e:
        _logger.warning("Failed to load settings from %s: %s", settings_path, e)
        return OllamaSettings()


def _env_number(
    environ: Mapping[str, str],
    name: str,
    cast: type,
    low: float,
    high: float,
) -> Any:
    value = environ.get(name)
    if not value:
        return None
    try:
        parsed = cast(value)
    except ValueError:
        _logger.warning("Ignoring %s=%r: not a number", name, value)
        return None
    if not low <= parsed <= high:
        _logger.warning("Ignoring %s=%r: outside %s-%s", name, value, low, high)
        return None
    return parsed


def get_effective_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> OllamaSettings:
    """Stored settings with environment overrides applied."""
    env = os.environ if environ is None else environ
    settings = load_settings(path)
    overrides: dict[str, Any] = {}

    endpoint = env.get("OLLAMA_ENDPOINT")
    if endpoint:
        if _ENDPOINT_RE.match(endpoint):
            overrides["endpoint"] = endpoint
        else:
            _logger.warning("Ignoring OLLAMA_ENDPOINT=%r: not an HTTP URL", endpoint)
    if env.get("OLLAMA_MODEL"):
        overrides["model"] = env["OLLAMA_MODEL"]

    numeric = (
        ("context_size", "OLLAMA_CONTEXT_SIZE", int, 512, 32768),
        ("timeout_ms", "OLLAMA_TIMEOUT", int, 1000, 300000),
        ("temperature", "OLLAMA_TEMPERATURE", float, 0.0, 2.0),
    )
    for field_name, var, cast, low, high in numeric:
        parsed = _env_number(env, var, cast, low, high)
        if parsed is not None:
            overrides[field_name] = parsed

    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings
