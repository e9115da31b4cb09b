"""Ollama bridge: provider-neutral chat generation against a local Ollama server."""

__version__ = "0.1.0"
