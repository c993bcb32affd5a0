"""Concrete LLM backends for ingestkit-tables."""

from __future__ import annotations

from ingestkit_tables.backends.ollama import OllamaLLM

__all__ = ["OllamaLLM"]
