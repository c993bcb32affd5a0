"""Ollama backend for the LLMBackend protocol.

Talks to a local Ollama server over its HTTP API with ``httpx``, retrying
transient failures with exponential backoff.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from ingestkit_tables.config import TableExtractorConfig

logger = logging.getLogger("ingestkit_tables")

_JSON_RETRY_HINT = (
    "\n\nIMPORTANT: Your previous response was not valid JSON. "
    "Respond with valid JSON only."
)


class OllamaLLM:
    """Ollama-backed LLM.

    Satisfies :class:`~ingestkit_tables.protocols.LLMBackend` via structural
    subtyping.

    Parameters
    ----------
    base_url:
        Ollama server base URL (e.g. ``"http://localhost:11434"``).
    config:
        Pipeline configuration providing timeout and retry settings.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        config: TableExtractorConfig | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._config = config or TableExtractorConfig()

    def _backoff(self, attempt: int, max_attempts: int, reason: str) -> None:
        sleep_time = self._config.backend_backoff_base * (2**attempt)
        logger.warning(
            "Ollama %s (attempt %d/%d), retrying in %.1fs",
            reason,
            attempt + 1,
            max_attempts,
            sleep_time,
        )
        time.sleep(sleep_time)

    def _post(
        self,
        endpoint: str,
        payload: dict[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """POST *payload* to Ollama and return the decoded JSON body.

        Raises:
            TimeoutError: When every attempt timed out.
            ConnectionError: When every attempt failed otherwise.
        """
        url = f"{self._base_url}{endpoint}"
        effective_timeout = timeout or self._config.backend_timeout_seconds
        max_attempts = 1 + self._config.backend_max_retries
        last_exc: Exception | None = None

        for attempt in range(max_attempts):
            try:
                response = httpx.post(url, json=payload, timeout=effective_timeout)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as exc:
                last_exc = exc
                reason = "request timed out"
            except httpx.HTTPStatusError as exc:
                last_exc = exc
                reason = f"request failed with HTTP {exc.response.status_code}"
            except httpx.ConnectError as exc:
                last_exc = exc
                reason = "connection failed"
            if attempt < max_attempts - 1:
                self._backoff(attempt, max_attempts, reason)

        if isinstance(last_exc, httpx.TimeoutException):
            raise TimeoutError(
                f"Ollama request timed out after {max_attempts} attempts: {last_exc}"
            ) from last_exc

        raise ConnectionError(
            f"Ollama connection failed after {max_attempts} attempts: {last_exc}"
        ) from last_exc

    # ------------------------------------------------------------------
    # Protocol methods
    # ------------------------------------------------------------------

    def classify(
        self,
        prompt: str,
        model: str,
        temperature: float = 0.1,
        timeout: float | None = None,
    ) -> dict:
        """Send a JSON-mode prompt and return the decoded response object.

        Posts to ``/api/generate`` with ``format="json"``; a malformed reply
        is retried once with a hint appended to the prompt.
        """
        payload: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"temperature": temperature},
        }

        try:
            data = self._post("/api/generate", payload, timeout=timeout)
            return json.loads(data.get("response", ""))
        except json.JSONDecodeError as exc:
            logger.warning("Ollama classify returned malformed JSON (attempt 1/2): %s", exc)

        payload = {**payload, "prompt": prompt + _JSON_RETRY_HINT}
        data = self._post("/api/generate", payload, timeout=timeout)
        return json.loads(data.get("response", ""))
