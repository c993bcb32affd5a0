"""Optional LLM oracle for header boundaries and table plausibility.

Wraps an :class:`~ingestkit_tables.protocols.LLMBackend` behind the
:class:`~ingestkit_tables.protocols.HeaderOracle` interface.  Responses are
validated against Pydantic schemas, retried once with a correction hint, and
memoised in an injectable TTL cache keyed by a content hash.  Any failure is
recorded as an :class:`IngestError` and reported to the caller as "no
suggestion", so the deterministic core always has the final word.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ingestkit_tables.cache import TTLOracleCache, content_key
from ingestkit_tables.config import TableExtractorConfig
from ingestkit_tables.errors import ErrorCode, IngestError
from ingestkit_tables.models import Grid
from ingestkit_tables.protocols import LLMBackend, OracleCache

logger = logging.getLogger("ingestkit_tables")

_ResponseT = TypeVar("_ResponseT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HeaderBoundaryResponse(BaseModel):
    """Inclusive header row span within the snippet."""

    header_start: int
    header_end: int


class DataTableResponse(BaseModel):
    """Whether a table looks like real data rather than a layout artefact.

    ``confidence`` is clamped into ``[0, 1]`` after validation.
    """

    is_table: bool
    confidence: float


_BOUNDARY_TEXT_RE = re.compile(
    r"header_start\W*(\d+)\D+?header_end\W*(\d+)", re.DOTALL
)

_JSON_HINT = (
    "\n\nIMPORTANT: Your previous response was not valid JSON. "
    "Respond with ONLY a JSON object."
)


def _boundary_from_text(text: str) -> HeaderBoundaryResponse | None:
    match = _BOUNDARY_TEXT_RE.search(text)
    if match is None:
        return None
    return HeaderBoundaryResponse(
        header_start=int(match.group(1)), header_end=int(match.group(2))
    )


def snippet_lines(block: Grid, limit: int) -> list[str]:
    """Render the first *limit* rows of a block as ``" | "``-joined lines."""
    return [" | ".join(v for v in row if v.strip()) for row in block[:limit]]


# ---------------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------------


class LLMHeaderOracle:
    """Header oracle backed by an LLM.

    Parameters
    ----------
    llm:
        Backend used for every request.
    config:
        Model name, temperature, timeout and retry budget.
    cache:
        Optional cache; defaults to a private :class:`TTLOracleCache`.
    """

    def __init__(
        self,
        llm: LLMBackend,
        config: TableExtractorConfig | None = None,
        cache: OracleCache | None = None,
    ) -> None:
        self._llm = llm
        self._config = config or TableExtractorConfig()
        self._cache = cache if cache is not None else TTLOracleCache(self._config.cache_ttl_seconds)
        self._errors: list[IngestError] = []
        self._lock = threading.Lock()

    # -- public API ----------------------------------------------------------

    @property
    def last_errors(self) -> list[IngestError]:
        with self._lock:
            return list(self._errors)

    def drain_errors(self) -> list[IngestError]:
        """Return and forget every error recorded so far."""
        with self._lock:
            errors, self._errors = self._errors, []
        return errors

    def suggest_header_boundary(self, rows_snippet: list[str]) -> tuple[int, int] | None:
        """Ask where the header ends in the given row snippet.

        Returns:
            ``(header_row_index, data_start_index)`` relative to the snippet,
            or ``None`` when the oracle has no valid answer.
        """
        if not rows_snippet:
            return None

        key = content_key("header_boundary", rows_snippet)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        def check(response: HeaderBoundaryResponse) -> str | None:
            if not 0 <= response.header_start <= response.header_end < len(rows_snippet):
                return (
                    f"header span {response.header_start}-{response.header_end} "
                    f"outside snippet of {len(rows_snippet)} rows"
                )
            return None

        response = self._ask(
            self._build_boundary_prompt(rows_snippet),
            HeaderBoundaryResponse,
            stage="oracle_header",
            check=check,
            text_fallback=_boundary_from_text,
        )
        if response is None:
            return None

        answer = (response.header_start, response.header_end + 1)
        self._cache.set(key, answer)
        return answer

    def is_likely_data_table(
        self, header: list[str], sample_rows: list[list[str]]
    ) -> tuple[bool, float] | None:
        """Ask whether a detected table holds real tabular data.

        Returns:
            ``(is_table, confidence)`` or ``None`` when the oracle has no
            valid answer.
        """
        lines = ["\t".join(header), *("\t".join(row) for row in sample_rows)]
        key = content_key("data_table", lines)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        response = self._ask(
            self._build_table_prompt(lines), DataTableResponse, stage="oracle_table"
        )
        if response is None:
            return None

        answer = (response.is_table, max(0.0, min(1.0, response.confidence)))
        self._cache.set(key, answer)
        return answer

    # -- internal helpers ----------------------------------------------------

    def _record(self, code: ErrorCode, message: str, stage: str) -> None:
        if code.value.startswith("E_"):
            logger.warning("Oracle %s: %s", code.value, message)
        with self._lock:
            self._errors.append(
                IngestError(code=code, message=message, stage=stage, recoverable=True)
            )

    def _ask(
        self,
        prompt: str,
        schema: type[_ResponseT],
        stage: str,
        check: Callable[[_ResponseT], str | None] | None = None,
        text_fallback: Callable[[str], _ResponseT | None] | None = None,
    ) -> _ResponseT | None:
        max_attempts = max(1, self._config.oracle_max_attempts)

        for attempt in range(max_attempts):
            if attempt > 0:
                self._record(
                    ErrorCode.W_ORACLE_RETRY,
                    f"Retrying oracle request (attempt {attempt + 1}/{max_attempts})",
                    stage,
                )

            try:
                raw = self._llm.classify(
                    prompt=prompt,
                    model=self._config.oracle_model,
                    temperature=self._config.oracle_temperature,
                    timeout=self._config.backend_timeout_seconds,
                )
            except json.JSONDecodeError as exc:
                self._record(
                    ErrorCode.E_ORACLE_MALFORMED, f"Oracle returned unparseable JSON: {exc}", stage
                )
                prompt = prompt + _JSON_HINT
                continue
            except TimeoutError:
                self._record(
                    ErrorCode.E_ORACLE_TIMEOUT,
                    f"Oracle backend timed out after {self._config.backend_timeout_seconds}s",
                    stage,
                )
                continue
            except Exception as exc:
                self._record(ErrorCode.E_ORACLE_MALFORMED, f"Oracle backend error: {exc}", stage)
                prompt = prompt + _JSON_HINT
                continue

            if self._config.log_oracle_prompts:
                logger.debug("Oracle prompt:\n%s", prompt)
                logger.debug("Oracle response: %s", raw)

            response = self._parse(raw, schema, text_fallback)
            if response is None:
                self._record(
                    ErrorCode.E_ORACLE_SCHEMA_INVALID,
                    f"Oracle response does not match {schema.__name__}",
                    stage,
                )
                prompt = prompt + _JSON_HINT
                continue

            problem = check(response) if check is not None else None
            if problem is not None:
                self._record(ErrorCode.E_ORACLE_SCHEMA_INVALID, problem, stage)
                continue

            return response

        return None

    @staticmethod
    def _parse(
        raw: Any,
        schema: type[_ResponseT],
        text_fallback: Callable[[str], _ResponseT | None] | None,
    ) -> _ResponseT | None:
        try:
            return schema.model_validate(raw)
        except ValidationError:
            if text_fallback is None:
                return None
        return text_fallback(json.dumps(raw, ensure_ascii=False, default=str))

    @staticmethod
    def _build_boundary_prompt(rows_snippet: Sequence[str]) -> str:
        rows = "\n".join(f"{i}\t{line}" for i, line in enumerate(rows_snippet))
        return (
            "You are inspecting the top of a table taken from a supplier price "
            "list spreadsheet.\n"
            "Each line below is '<row index><TAB><cell values separated by |>'.\n"
            "Find the rows that form the column header. The header may span "
            "several rows; data rows follow it.\n"
            "\n"
            "Respond with JSON only:\n"
            '{"header_start": <first header row index>, '
            '"header_end": <last header row index>}\n'
            "\n"
            "Rows:\n"
            f"{rows}"
        )

    @staticmethod
    def _build_table_prompt(lines: Sequence[str]) -> str:
        body = "\n".join(lines)
        return (
            "You are checking a table extracted from a supplier price list "
            "spreadsheet.\n"
            "The first line is the header; the following lines are sample rows, "
            "cells separated by TAB.\n"
            "Decide whether this is a real data table (products, prices, "
            "quantities) rather than a note, a title block or contact details.\n"
            "\n"
            "Respond with JSON only:\n"
            '{"is_table": true | false, "confidence": <float between 0.0 and 1.0>}\n'
            "\n"
            "Table:\n"
            f"{body}"
        )
