"""Blocking HTTP client shared by SignalFusion sources.

Handles request staggering, retry with backoff on 429/5xx/timeouts, and
defensive JSON parsing. Failures are raised as typed UpstreamError
subclasses so the calling source's circuit breaker can classify them.

No business logic lives here: the client returns parsed payloads only.
Sources call it from worker threads via asyncio.to_thread().
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests
from requests import Session
from requests.adapters import HTTPAdapter

from signalfusion.errors import MalformedPayload, UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(__name__)

_RETRY_STATUSES = (500, 502, 503, 504)

# Some upstreams prepend stray header lines or an XSSI guard before the body
_BODY_PREFIXES = ("HTTP/", ")]}'")


def _safe_parse_json(text: str) -> Optional[Any]:
    """Parse a JSON body, skipping leading garbage lines.

    Returns:
        Parsed object, or None if nothing JSON-like could be parsed.
    """
    if not text or not text.strip():
        return None

    lines = text.split("\n")
    start = 0
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith(("{", "[")):
            start = i
            break
        if stripped.startswith(_BODY_PREFIXES) or ":" in stripped:
            start = i + 1
    if start:
        text = "\n".join(lines[start:]).strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Unparseable response body: %.200s", text)
        return None


class HTTPClient:
    """Thread-safe HTTP GET client with manual retry and request stagger.

    Args:
        max_retries: Retry attempts after the first request on transient errors.
        backoff_base: Base seconds for backoff (exponential on 429/timeouts).
        request_timeout: Per-request socket timeout in seconds.
        stagger_seconds: Minimum seconds between successive requests.
        user_agent: User-Agent header value.
        clock: Monotonic clock used for request deadlines.
    """

    _USER_AGENT = "SignalFusion/1.0 (+https://github.com/signalfusion)"

    def __init__(
        self,
        max_retries: int = 2,
        backoff_base: float = 1.0,
        request_timeout: float = 15.0,
        stagger_seconds: float = 0.5,
        user_agent: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.request_timeout = request_timeout
        self.stagger_seconds = stagger_seconds
        self.user_agent = user_agent or self._USER_AGENT
        self._clock = clock
        self._last_request_time: float = 0.0
        self._request_lock = threading.Lock()

        self._session = Session()
        adapter = HTTPAdapter(max_retries=0)   # retries are handled in _get_with_retry
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def close(self) -> None:
        self._session.close()

    def _enforce_stagger(self) -> None:
        """Enforce the minimum delay between requests across threads."""
        with self._request_lock:
            elapsed = self._clock() - self._last_request_time
            if elapsed < self.stagger_seconds:
                time.sleep(self.stagger_seconds - elapsed)
            self._last_request_time = self._clock()

    def _get_with_retry(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """GET ``url`` and return the body text.

        Args:
            timeout: Total budget in seconds across all attempts and backoffs.
                Each request's socket timeout is clamped to what remains.

        Raises:
            UpstreamTimeout: every attempt timed out, or the budget ran out.
            UpstreamUnavailable: non-retryable status, connection failure, or
                exhausted retries.
        """
        request_headers = {"User-Agent": self.user_agent}
        request_headers.update(headers or {})
        deadline = self._clock() + timeout if timeout is not None else None
        last_error = "no attempt made"
        timed_out = False

        for attempt in range(self.max_retries + 1):
            self._enforce_stagger()
            request_timeout = self.request_timeout
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    last_error, timed_out = "deadline exceeded", True
                    break
                request_timeout = min(request_timeout, remaining)

            wait = 0.0
            try:
                resp = self._session.get(
                    url, params=params, headers=request_headers, timeout=request_timeout
                )

                if resp.status_code == 429:
                    wait = self.backoff_base * (2 ** attempt)
                    logger.warning("Rate limited (429) by %s, backing off %.1fs", url, wait)
                    last_error, timed_out = "HTTP 429", False
                elif resp.status_code in _RETRY_STATUSES:
                    wait = self.backoff_base * (attempt + 1)
                    logger.warning(
                        "Server error %d from %s, retrying in %.1fs (attempt %d/%d)",
                        resp.status_code, url, wait, attempt + 1, self.max_retries + 1,
                    )
                    last_error, timed_out = f"HTTP {resp.status_code}", False
                elif resp.status_code != 200:
                    raise UpstreamUnavailable(f"HTTP {resp.status_code} from {url}", source=url)
                else:
                    return resp.text

            except requests.exceptions.Timeout:
                wait = self.backoff_base * (2 ** attempt)
                logger.warning(
                    "Request timeout for %s, retrying in %.1fs (attempt %d/%d)",
                    url, wait, attempt + 1, self.max_retries + 1,
                )
                last_error, timed_out = "request timed out", True
            except requests.exceptions.ConnectionError as exc:
                wait = self.backoff_base * (2 ** attempt)
                logger.warning("Connection error for %s: %s, retrying in %.1fs", url, exc, wait)
                last_error, timed_out = f"connection error: {exc}", False
            except requests.exceptions.RequestException as exc:
                raise UpstreamUnavailable(f"Request to {url} failed: {exc}", source=url) from exc

            if attempt == self.max_retries:
                break
            if deadline is not None and self._clock() + wait >= deadline:
                logger.warning("Deadline for %s leaves no room for another attempt", url)
                timed_out = True
                break
            time.sleep(wait)

        logger.error("Giving up on %s after %d attempt(s) (%s)", url, attempt + 1, last_error)
        if timed_out:
            raise UpstreamTimeout(f"{url}: {last_error}", source=url)
        raise UpstreamUnavailable(f"{url}: {last_error} after {attempt + 1} attempts", source=url)

    def get_text(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Fetch ``url`` and return the raw body."""
        return self._get_with_retry(url, params=params, headers=headers, timeout=timeout)

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Fetch ``url`` and parse the body as JSON.

        Raises:
            MalformedPayload: the body is not JSON.
        """
        text = self._get_with_retry(url, params=params, headers=headers, timeout=timeout)
        parsed = _safe_parse_json(text)
        if parsed is None:
            raise MalformedPayload(f"Response from {url} is not valid JSON", source=url)
        return parsed
