"""JSON-over-HTTP plumbing shared by the provider adapters."""

from __future__ import annotations

import http.client
import json
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from urllib import error, request

from md2slack.errors import LLMError

logger = logging.getLogger(__name__)


class JSONTransport:
    """POST JSON payloads with bounded retries.

    Retries cover connection failures and 5xx/429 responses. A streamed
    request is only retried while opening the connection; once chunks have
    been handed to the caller the request is never replayed.
    """

    def __init__(self, *, provider: str, max_retries: int = 1, backoff_s: float = 0.5) -> None:
        self.provider = provider
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)

    def post_json(
        self, url: str, payload: dict[str, Any], headers: dict[str, str], timeout_s: float
    ) -> dict[str, Any]:
        with self._open_with_retry(url, payload, headers, timeout_s) as response:
            try:
                body = response.read().decode("utf-8", errors="replace")
            except (TimeoutError, OSError, http.client.HTTPException) as exc:
                raise self._read_failed(exc) from exc
        try:
            decoded = json.loads(body)
        except ValueError as exc:
            raise LLMError(f"{self.provider} returned invalid JSON: {body[:200]}") from exc
        if not isinstance(decoded, dict):
            raise LLMError(f"{self.provider} returned unexpected payload type")
        return decoded

    def post_lines(
        self, url: str, payload: dict[str, Any], headers: dict[str, str], timeout_s: float
    ) -> Iterator[str]:
        with self._open_with_retry(url, payload, headers, timeout_s) as response:
            try:
                for raw in response:
                    line = raw.decode("utf-8", errors="replace").strip()
                    if line:
                        yield line
            except (TimeoutError, OSError, http.client.HTTPException) as exc:
                raise self._read_failed(exc) from exc

    def _read_failed(self, exc: Exception) -> LLMError:
        logger.warning("llm event=response_failed provider=%s reason=%s", self.provider, exc)
        return LLMError(f"{self.provider} response failed: {exc}")

    @contextmanager
    def _open_with_retry(
        self, url: str, payload: dict[str, Any], headers: dict[str, str], timeout_s: float
    ) -> Iterator[Any]:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                response = self._open(url, payload, headers, timeout_s)
            except (TimeoutError, error.URLError) as exc:
                last_error = exc
                retryable = not isinstance(exc, error.HTTPError) or _retryable_status(exc.code)
                logger.warning(
                    "llm event=request_failed provider=%s attempt=%d/%d reason=%s",
                    self.provider,
                    attempt + 1,
                    self.max_retries + 1,
                    exc,
                )
                if not retryable:
                    break
                if attempt < self.max_retries and self.backoff_s > 0:
                    time.sleep(self.backoff_s * (attempt + 1))
                continue
            with response:
                yield response
            return
        if last_error is None:
            raise LLMError(f"{self.provider} request failed with unknown error")
        raise LLMError(f"{self.provider} request failed: {last_error}") from last_error

    def _open(
        self, url: str, payload: dict[str, Any], headers: dict[str, str], timeout_s: float
    ) -> Any:
        if _trace_enabled():
            logger.warning(
                "llm event=trace_request provider=%s url=%s timeout_s=%s",
                self.provider,
                url,
                timeout_s,
            )
        req = request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={"Content-Type": "application/json", **headers},
        )
        try:
            return request.urlopen(req, timeout=timeout_s)  # noqa: S310
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            raise error.HTTPError(
                exc.url,
                exc.code,
                f"{self.provider} API request failed: {raw_error}",
                exc.headers,
                exc.fp,
            ) from exc


def _retryable_status(code: int) -> bool:
    return code == 429 or code >= 500


def _trace_enabled() -> bool:
    return os.getenv("MD2SLACK_LLM_TRACE", "0").strip() == "1"
