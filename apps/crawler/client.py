"""
GitHub REST client with shared rate limiting.

Every request of one crawl goes through a single RateLimiter:

- requests start at least ``min_interval`` seconds apart (GitHub allows 5000
  requests/hour; 0.75 s spacing keeps us at 80/minute);
- once a response reports ``x-ratelimit-remaining`` at or below the floor,
  no request is issued before the advertised ``x-ratelimit-reset``.

We stop a few requests short of zero because GitHub may not have propagated
the reset by the time the window rolls over.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Callable

from django.conf import settings

logger = logging.getLogger(__name__)

USER_AGENT = "org-donations/distribute"
ACCEPT = "application/vnd.github.v3+json"
PER_PAGE = 100
# GitHub asks clients to wait at least a minute after a secondary rate limit.
SECONDARY_RATE_LIMIT_WAIT = 60

_LINK_NEXT_RE = re.compile(r'<([^>]+)>;\s*rel="next"')


class GithubApiError(Exception):
    """Unrecoverable GitHub API failure (auth, 4xx, or 5xx after retries)."""

    def __init__(self, status: int | None, message: str, url: str = ""):
        self.status = status
        self.url = url
        super().__init__(f"GitHub API error ({status}) for {url}: {message}")


def _lower_headers(headers: Any) -> dict[str, str]:
    if not headers:
        return {}
    return {str(k).lower(): v for k, v in headers.items()}


def parse_next_link(link_header: str | None) -> str | None:
    """Return the rel="next" URL of a Link header, if any."""
    if not link_header:
        return None
    match = _LINK_NEXT_RE.search(link_header)
    return match.group(1) if match else None


class RateLimiter:
    """Request pacing shared by all threads of one crawl."""

    def __init__(
        self,
        min_interval: float | None = None,
        floor: int | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = (
            min_interval
            if min_interval is not None
            else float(getattr(settings, "GITHUB_MIN_REQUEST_INTERVAL", 0.75))
        )
        self.floor = floor if floor is not None else int(getattr(settings, "GITHUB_RATE_LIMIT_FLOOR", 5))
        self.clock = clock
        self.sleep = sleep
        self._lock = threading.Lock()
        self._last_request_at: float | None = None
        self._resume_at = 0.0

    @property
    def resume_at(self) -> float:
        return self._resume_at

    def wait(self) -> float:
        """
        Block until the next request may be issued, then claim the slot.

        The lock is not held while sleeping, so a reset recorded by observe()
        in the meantime is honoured before the slot is claimed.

        Returns:
            The clock time the slot was claimed at.
        """
        while True:
            with self._lock:
                now = self.clock()
                ready_at = self._resume_at
                if self._last_request_at is not None:
                    ready_at = max(ready_at, self._last_request_at + self.min_interval)
                if ready_at <= now:
                    self._last_request_at = now
                    return now
                delay = ready_at - now
            self.sleep(delay)

    def defer_for(self, seconds: float) -> None:
        """Hold back every request for ``seconds`` from now."""
        self._defer_until(self.clock() + seconds)

    def observe(self, headers: Any) -> None:
        """Record the quota advertised by a response."""
        lowered = _lower_headers(headers)

        retry_after = lowered.get("retry-after")
        if retry_after is not None:
            self._defer_until(self.clock() + float(retry_after))

        remaining = lowered.get("x-ratelimit-remaining")
        reset = lowered.get("x-ratelimit-reset")
        if remaining is None or reset is None:
            return
        if int(remaining) <= self.floor:
            self._defer_until(float(reset))

    def _defer_until(self, when: float) -> None:
        with self._lock:
            if when > self._resume_at:
                self._resume_at = when
                logger.warning(
                    f"Rate limited; continuing at {when:.0f} "
                    f"({time.strftime('%Y-%m-%d %H:%M:%S', time.gmtime(when))} UTC)"
                )


@dataclass
class GithubResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


class GithubClient:
    """
    Minimal GitHub REST client.

    Usage:
        client = GithubClient(token)
        repos = client.paginate("orgs/flossbank/repos")
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        rate_limiter: RateLimiter | None = None,
        max_retries: int | None = None,
        backoff_factor: float = 2.0,
        timeout: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.token = token
        self.base_url = (base_url or getattr(settings, "GITHUB_API_URL", "https://api.github.com")).rstrip("/")
        self.rate_limiter = rate_limiter or RateLimiter()
        self.max_retries = (
            max_retries if max_retries is not None else int(getattr(settings, "GITHUB_MAX_RETRIES", 3))
        )
        self.backoff_factor = backoff_factor
        self.timeout = timeout if timeout is not None else int(getattr(settings, "GITHUB_REQUEST_TIMEOUT", 30))
        self.sleep = sleep

    def build_url(self, path: str, params: dict[str, Any] | None = None) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            url = path
        else:
            url = f"{self.base_url}/{path.lstrip('/')}"
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        return url

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> GithubResponse:
        """
        Issue one API call.

        Rate-limit responses are absorbed by waiting and retrying. 5xx and
        transport errors are retried with exponential backoff.

        Raises:
            GithubApiError: On 4xx (other than rate limiting) or once retries
                are exhausted.
        """
        url = self.build_url(path, params)
        request_headers = {"Accept": ACCEPT, "User-Agent": USER_AGENT}
        if self.token:
            request_headers["Authorization"] = f"token {self.token}"
        if headers:
            request_headers.update(headers)
        payload = None
        if data is not None:
            payload = json.dumps(data).encode("utf-8")
            request_headers["Content-Type"] = "application/json"

        attempt = 0
        while True:
            self.rate_limiter.wait()
            request = urllib.request.Request(
                url, data=payload, headers=request_headers, method=method.upper()
            )
            try:
                with urllib.request.urlopen(request, timeout=self.timeout) as response:
                    status = response.getcode()
                    response_headers = _lower_headers(response.headers)
                    raw = response.read()
            except urllib.error.HTTPError as e:
                error_headers = _lower_headers(e.headers)
                error_body = e.read().decode("utf-8", errors="replace") if e.fp else str(e)
                self.rate_limiter.observe(error_headers)

                if e.code in (403, 429) and self._is_rate_limited(error_headers, error_body):
                    if not self._has_reset_hint(error_headers):
                        # Secondary limits may come without a reset time.
                        self.rate_limiter.defer_for(SECONDARY_RATE_LIMIT_WAIT)
                    logger.warning(f"GitHub rate limit hit on {url}; waiting for reset")
                    continue
                if e.code >= 500 and attempt < self.max_retries:
                    attempt += 1
                    self._backoff(url, attempt, f"HTTP {e.code}")
                    continue
                raise GithubApiError(e.code, error_body, url) from e
            except urllib.error.URLError as e:
                if attempt < self.max_retries:
                    attempt += 1
                    self._backoff(url, attempt, str(e.reason))
                    continue
                raise GithubApiError(None, str(e.reason), url) from e

            self.rate_limiter.observe(response_headers)
            body = json.loads(raw.decode("utf-8")) if raw else None
            return GithubResponse(status=status, headers=response_headers, body=body)

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params).body

    def post(self, path: str, data: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> Any:
        return self.request("POST", path, data=data or {}, headers=headers).body

    def paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        transform: Callable[[Any], list[Any]] | None = None,
    ) -> list[Any]:
        """
        Follow Link-header pagination and collect every page's items.

        Args:
            path: API path of the first page.
            params: Query parameters for the first page.
            transform: Maps a page body to the items to keep. Defaults to the
                body itself for list endpoints, or its ``items`` for search.
        """
        query = {"per_page": PER_PAGE, **(params or {})}
        url: str | None = self.build_url(path, query)
        items: list[Any] = []
        while url:
            response = self.request("GET", url)
            if transform is not None:
                items.extend(transform(response.body))
            elif isinstance(response.body, list):
                items.extend(response.body)
            else:
                items.extend((response.body or {}).get("items", []))
            url = parse_next_link(response.headers.get("link"))
        return items

    def _is_rate_limited(self, headers: dict[str, str], body: str = "") -> bool:
        if headers.get("x-ratelimit-remaining") == "0" or "retry-after" in headers:
            return True
        # Secondary (abuse) limits are only identified by their message.
        return "rate limit" in (body or "").lower()

    def _has_reset_hint(self, headers: dict[str, str]) -> bool:
        """Whether observe() already recorded when requests may resume."""
        if "retry-after" in headers:
            return True
        return headers.get("x-ratelimit-remaining") == "0" and "x-ratelimit-reset" in headers

    def _backoff(self, url: str, attempt: int, reason: str) -> None:
        delay = self.backoff_factor**attempt
        logger.warning(f"GitHub request to {url} failed ({reason}); retry {attempt} in {delay:.1f}s")
        self.sleep(delay)
