"""Collaborator protocols for the ingestkit-tables pipeline.

Defines the structural-subtyping interfaces that sheet readers, LLM backends,
header oracles and oracle caches must satisfy.  All protocols are
``@runtime_checkable`` so callers can optionally verify conformance with
``isinstance`` checks.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SheetSource(Protocol):
    """A single worksheet as produced by a spreadsheet reader."""

    name: str

    def rows(self) -> list[list[str]]:
        """Return the raw per-row cell values, top to bottom."""
        ...

    def merges(self) -> list[tuple[str, str, str]]:
        """Return merged ranges as ``(start_ref, end_ref, anchor_value)``."""
        ...


@runtime_checkable
class LLMBackend(Protocol):
    """Interface for LLM backends (e.g. Ollama)."""

    def classify(
        self,
        prompt: str,
        model: str,
        temperature: float = 0.1,
        timeout: float | None = None,
    ) -> dict:
        """Send a classification prompt and return the parsed JSON response."""
        ...


@runtime_checkable
class HeaderOracle(Protocol):
    """Optional advisor whose header-boundary answers override the core."""

    def suggest_header_boundary(self, rows_snippet: list[str]) -> tuple[int, int] | None:
        """Return ``(header_row_index, data_start_index)`` or ``None``."""
        ...

    def is_likely_data_table(
        self, header: list[str], sample_rows: list[list[str]]
    ) -> tuple[bool, float] | None:
        """Return ``(is_table, confidence)`` or ``None`` when undecided."""
        ...


@runtime_checkable
class OracleCache(Protocol):
    """Key/value store for memoised oracle answers."""

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` on a miss or expiry."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store *value* under *key*."""
        ...
