from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Optional, Sequence

import requests


logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_SECONDS = (0.25, 0.6, 1.2)
DEFAULT_USER_AGENT = "hashmark-chronicles/1.0 (+https://hashmarkchronicles.com)"


class ProviderError(RuntimeError):
    """Transport or shape failure after the retry budget is spent."""


class PayloadShapeError(ProviderError):
    """The upstream answered, but not with anything we know how to read."""


def _sleep(seconds: float) -> None:
    time.sleep(seconds)


class RetryingJsonClient:
    """
    GET-only JSON client with bounded retry.

    One attempt per backoff entry; each failed attempt waits its backoff
    delay plus up to `jitter_seconds` of random jitter before the next. The
    worst-case wall clock per call is therefore bounded by
    len(backoff) * (timeout + max(backoff) + jitter).
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        headers: Optional[dict[str, str]] = None,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 9.0,
        backoff_seconds: Sequence[float] = DEFAULT_BACKOFF_SECONDS,
        jitter_seconds: float = 0.15,
        sleep_fn: Callable[[float], None] = _sleep,
        rand_fn: Callable[[], float] = random.random,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"}
        self._headers.update(headers or {})
        self._session = session or requests.Session()
        self._timeout = timeout_seconds
        self._backoff = tuple(backoff_seconds) or DEFAULT_BACKOFF_SECONDS
        self._jitter = jitter_seconds
        self._sleep = sleep_fn
        self._rand = rand_fn

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self._base_url}{path}"

    def _attempt(self, method: str, url: str, params: Optional[dict[str, Any]], *, expect_json: bool) -> Any:
        resp = self._session.request(
            method=method,
            url=url,
            headers=self._headers,
            params=params,
            timeout=self._timeout,
        )
        if not resp.ok:
            raise ProviderError(f"HTTP {resp.status_code} for {method} {url}")
        if not expect_json:
            return resp.text
        content_type = resp.headers.get("Content-Type", "") or resp.headers.get("content-type", "")
        if "json" not in content_type.lower():
            raise ProviderError(f"non-JSON response ({content_type or 'no content-type'}) for {method} {url}")
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"invalid JSON body for {method} {url}: {e}") from e

    def _request(self, method: str, path: str, *, params: Optional[dict[str, Any]] = None, expect_json: bool = True) -> Any:
        url = self._url(path)
        last_error: Optional[Exception] = None
        attempts = len(self._backoff)
        for attempt, delay in enumerate(self._backoff, start=1):
            try:
                return self._attempt(method, url, params, expect_json=expect_json)
            except (requests.RequestException, ProviderError) as e:
                last_error = e
                logger.debug("attempt %d/%d failed for %s: %s", attempt, attempts, url, e)
            if attempt < attempts:
                self._sleep(delay + self._rand() * self._jitter)

        raise ProviderError(f"Request failed after {attempts} attempts: {method} {url} ({last_error})")

    def get_json(self, path: str, *, params: Optional[dict[str, Any]] = None) -> Any:
        return self._request("GET", path, params=params)

    def get_text(self, path: str, *, params: Optional[dict[str, Any]] = None) -> str:
        return self._request("GET", path, params=params, expect_json=False)
