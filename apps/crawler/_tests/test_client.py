"""Tests for the GitHub client and rate limiter."""

import io
import json
import threading
import time
import urllib.error
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase

from apps.crawler.client import GithubApiError, GithubClient, RateLimiter, parse_next_link

API = "https://api.test"


class FakeClock:
    """Clock whose sleep() advances time instead of blocking."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _mock_urlopen(body, headers=None, status_code=200):
    """Create a mock context manager for urllib.request.urlopen."""
    mock_resp = MagicMock()
    mock_resp.read.return_value = json.dumps(body).encode("utf-8")
    mock_resp.getcode.return_value = status_code
    mock_resp.headers = headers or {}
    mock_resp.__enter__ = MagicMock(return_value=mock_resp)
    mock_resp.__exit__ = MagicMock(return_value=False)
    return mock_resp


def _http_error(code, headers=None, body="error"):
    return urllib.error.HTTPError(
        f"{API}/x", code, "error", headers or {}, io.BytesIO(body.encode("utf-8"))
    )


class RateLimiterTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(
            min_interval=0.75, floor=5, clock=self.clock, sleep=self.clock.sleep
        )

    def test_first_request_does_not_wait(self):
        self.limiter.wait()

        assert self.clock.sleeps == []

    def test_requests_are_spaced_by_min_interval(self):
        self.limiter.wait()
        self.limiter.wait()
        self.limiter.wait()

        assert self.clock.sleeps == [0.75, 0.75]

    def test_no_wait_when_interval_already_elapsed(self):
        self.limiter.wait()
        self.clock.now += 2

        self.limiter.wait()

        assert self.clock.sleeps == []

    def test_waits_for_reset_when_remaining_at_floor(self):
        reset = self.clock.now + 120
        self.limiter.wait()
        self.limiter.observe({"X-RateLimit-Remaining": "5", "X-RateLimit-Reset": str(int(reset))})

        self.limiter.wait()

        assert self.limiter.resume_at == reset
        assert self.clock.now >= reset

    def test_no_wait_above_floor(self):
        self.limiter.observe(
            {"X-RateLimit-Remaining": "6", "X-RateLimit-Reset": str(int(self.clock.now + 120))}
        )

        self.limiter.wait()

        assert self.clock.sleeps == []

    def test_retry_after_defers_requests(self):
        self.limiter.observe({"Retry-After": "30"})

        self.limiter.wait()

        assert self.clock.sleeps == [30.0]

    def test_earlier_reset_does_not_shorten_wait(self):
        self.limiter.observe({"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1700000100"})
        self.limiter.observe({"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1700000050"})

        assert self.limiter.resume_at == 1_700_000_100


class SharedClock(FakeClock):
    """FakeClock safe to share between threads.

    The first sleep can be gated: it blocks until ``release`` is set, which
    lets a test act while a thread is parked inside RateLimiter.wait().
    """

    def __init__(self, start=1_700_000_000.0, gate_first_sleep=False):
        super().__init__(start)
        self._mutex = threading.Lock()
        self._gated = gate_first_sleep
        self.sleeping = threading.Event()
        self.release = threading.Event()

    def __call__(self):
        with self._mutex:
            return self.now

    def sleep(self, seconds):
        if self._gated:
            self._gated = False
            self.sleeping.set()
            self.release.wait(timeout=5)
        with self._mutex:
            self.sleeps.append(seconds)
            self.now += seconds
        time.sleep(0)


class RateLimiterConcurrencyTests(SimpleTestCase):
    def test_reset_recorded_while_a_thread_waits_is_honoured(self):
        clock = SharedClock(start=1000.0, gate_first_sleep=True)
        limiter = RateLimiter(min_interval=0.75, floor=5, clock=clock, sleep=clock.sleep)
        limiter.wait()

        issued = []
        waiter = threading.Thread(target=lambda: issued.append(limiter.wait()))
        waiter.start()
        assert clock.sleeping.wait(timeout=5)

        # The low-quota response lands while the waiter sleeps out the spacing.
        observer = threading.Thread(
            target=limiter.observe,
            args=({"x-ratelimit-remaining": "3", "x-ratelimit-reset": "5000"},),
        )
        observer.start()
        observer.join(timeout=1)
        clock.release.set()
        waiter.join(timeout=5)
        observer.join(timeout=5)

        assert issued and issued[0] >= 5000

    def test_concurrent_requests_after_low_quota_wait_for_reset(self):
        clock = SharedClock()
        limiter = RateLimiter(min_interval=0.75, floor=5, clock=clock, sleep=clock.sleep)
        limiter.wait()
        reset = clock() + 100
        limiter.observe({"x-ratelimit-remaining": "2", "x-ratelimit-reset": str(int(reset))})

        issued = []
        issued_lock = threading.Lock()

        def request():
            claimed = limiter.wait()
            with issued_lock:
                issued.append(claimed)

        threads = [threading.Thread(target=request) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert len(issued) == 8
        issued.sort()
        assert issued[0] >= reset
        gaps = [later - earlier for earlier, later in zip(issued, issued[1:])]
        assert min(gaps) >= 0.75 - 1e-6


class ParseNextLinkTests(SimpleTestCase):
    def test_finds_next(self):
        header = (
            f'<{API}/orgs/acme/repos?page=2>; rel="next", '
            f'<{API}/orgs/acme/repos?page=5>; rel="last"'
        )

        assert parse_next_link(header) == f"{API}/orgs/acme/repos?page=2"

    def test_last_page(self):
        assert parse_next_link(f'<{API}/orgs/acme/repos?page=1>; rel="prev"') is None
        assert parse_next_link(None) is None


class GithubClientTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.client = GithubClient(
            token="secret",
            base_url=API,
            rate_limiter=RateLimiter(
                min_interval=0, floor=5, clock=self.clock, sleep=self.clock.sleep
            ),
            max_retries=2,
            sleep=self.clock.sleep,
        )

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_get_sends_auth_and_decodes_json(self, mock_urlopen):
        mock_urlopen.return_value = _mock_urlopen({"login": "acme"})

        body = self.client.get("orgs/acme")

        assert body == {"login": "acme"}
        request = mock_urlopen.call_args[0][0]
        assert request.full_url == f"{API}/orgs/acme"
        assert request.get_header("Authorization") == "token secret"

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_paginate_follows_link_header(self, mock_urlopen):
        mock_urlopen.side_effect = [
            _mock_urlopen(
                [{"id": 1}, {"id": 2}],
                headers={"Link": f'<{API}/orgs/acme/repos?page=2>; rel="next"'},
            ),
            _mock_urlopen([{"id": 3}]),
        ]

        items = self.client.paginate("orgs/acme/repos")

        assert [item["id"] for item in items] == [1, 2, 3]
        first, second = (c[0][0] for c in mock_urlopen.call_args_list)
        assert "per_page=100" in first.full_url
        assert second.full_url == f"{API}/orgs/acme/repos?page=2"

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_paginate_collects_search_items(self, mock_urlopen):
        mock_urlopen.return_value = _mock_urlopen({"total_count": 1, "items": [{"name": "a"}]})

        assert self.client.paginate("search/code", params={"q": "x"}) == [{"name": "a"}]

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_rate_limit_response_waits_for_reset_and_retries(self, mock_urlopen):
        reset = int(self.clock.now) + 60
        mock_urlopen.side_effect = [
            _http_error(403, {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(reset)}),
            _mock_urlopen({"ok": True}),
        ]

        body = self.client.get("orgs/acme")

        assert body == {"ok": True}
        assert mock_urlopen.call_count == 2
        assert self.clock.now >= reset

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_server_errors_retry_then_raise(self, mock_urlopen):
        mock_urlopen.side_effect = [_http_error(502), _http_error(502), _http_error(502)]

        with self.assertRaises(GithubApiError) as ctx:
            self.client.get("orgs/acme")

        assert ctx.exception.status == 502
        assert mock_urlopen.call_count == 3
        assert self.clock.sleeps == [2.0, 4.0]

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_server_error_recovers(self, mock_urlopen):
        mock_urlopen.side_effect = [_http_error(500), _mock_urlopen({"ok": True})]

        assert self.client.get("orgs/acme") == {"ok": True}

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_client_error_raises_immediately(self, mock_urlopen):
        mock_urlopen.side_effect = [_http_error(404, body='{"message": "Not Found"}')]

        with self.assertRaises(GithubApiError) as ctx:
            self.client.get("orgs/missing")

        assert ctx.exception.status == 404
        assert "Not Found" in str(ctx.exception)
        assert mock_urlopen.call_count == 1

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_transport_errors_are_retried(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.URLError("connection refused")

        with self.assertRaises(GithubApiError) as ctx:
            self.client.get("orgs/acme")

        assert ctx.exception.status is None
        assert mock_urlopen.call_count == 3

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_post_sends_json_body(self, mock_urlopen):
        mock_urlopen.return_value = _mock_urlopen({"token": "t"}, status_code=201)

        self.client.post("app/installations/1/access_tokens", data={"a": 1})

        request = mock_urlopen.call_args[0][0]
        assert request.get_method() == "POST"
        assert json.loads(request.data) == {"a": 1}

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_secondary_rate_limit_is_waited_out(self, mock_urlopen):
        start = self.clock.now
        mock_urlopen.side_effect = [
            _http_error(
                403,
                body='{"message": "You have exceeded a secondary rate limit. Please wait a few minutes before you try again."}',
            ),
            _mock_urlopen({"ok": True}),
        ]

        body = self.client.get("search/code", params={"q": "filename:package.json"})

        assert body == {"ok": True}
        assert mock_urlopen.call_count == 2
        assert self.clock.now >= start + 60

    @patch("apps.crawler.client.urllib.request.urlopen")
    def test_forbidden_without_rate_limit_still_raises(self, mock_urlopen):
        mock_urlopen.side_effect = [_http_error(403, body='{"message": "Resource not accessible by integration"}')]

        with self.assertRaises(GithubApiError) as ctx:
            self.client.get("orgs/acme/repos")

        assert ctx.exception.status == 403
        assert mock_urlopen.call_count == 1
