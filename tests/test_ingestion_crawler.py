"""Tests for the ingestion crawler module."""

import asyncio
import random

import httpx
import pytest

from art_import.core.errors import NetworkError
from art_import.ingestion.config import HttpConfig, RateLimitConfig
from art_import.ingestion.crawler import HttpClient, RateLimiter, parse_retry_after


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_client(handler, sleep: SleepRecorder, **kwargs) -> HttpClient:
    """Create an HttpClient backed by a mock transport."""
    return HttpClient(transport=httpx.MockTransport(handler), sleep=sleep, **kwargs)


class TestRateLimiter:
    """Tests for the RateLimiter politeness delay."""

    @pytest.mark.asyncio
    async def test_delay_within_jitter_bounds(self) -> None:
        """Test that every wait is between delay and delay + jitter."""
        sleep = SleepRecorder()
        limiter = RateLimiter(1500, 500, sleep=sleep, rng=random.Random(42))

        for _ in range(50):
            await limiter.wait()

        assert len(sleep.calls) == 50
        assert all(1.5 <= d <= 2.0 for d in sleep.calls)

    @pytest.mark.asyncio
    async def test_wait_returns_slept_seconds(self) -> None:
        """Test that wait returns the delay it slept for."""
        sleep = SleepRecorder()
        limiter = RateLimiter(100, 0, sleep=sleep)

        slept = await limiter.wait()

        assert slept == pytest.approx(0.1)
        assert sleep.calls == [pytest.approx(0.1)]

    def test_zero_jitter_is_exact(self) -> None:
        """Test that without jitter the delay is constant."""
        limiter = RateLimiter(250, 0)
        assert {limiter.next_delay() for _ in range(10)} == {0.25}

    def test_defaults(self) -> None:
        """Test default delay and jitter."""
        limiter = RateLimiter()
        assert limiter.delay_ms == 1500
        assert limiter.jitter_ms == 500

    def test_reconfigure(self) -> None:
        """Test changing delay and jitter after creation."""
        limiter = RateLimiter(1500, 500)
        limiter.set_delay(200)
        limiter.set_jitter(0)
        assert limiter.next_delay() == pytest.approx(0.2)

    def test_negative_values_rejected(self) -> None:
        """Test that negative delay or jitter raises."""
        with pytest.raises(ValueError):
            RateLimiter(-1, 0)
        limiter = RateLimiter()
        with pytest.raises(ValueError):
            limiter.set_jitter(-5)

    def test_from_config(self) -> None:
        """Test creating a limiter from configuration."""
        limiter = RateLimiter.from_config(RateLimitConfig(delay_ms=10, jitter_ms=5))
        assert limiter.delay_ms == 10
        assert limiter.jitter_ms == 5


class TestParseRetryAfter:
    """Tests for Retry-After header parsing."""

    def test_seconds(self) -> None:
        assert parse_retry_after("3") == 3
        assert parse_retry_after(" 0 ") == 0

    def test_invalid(self) -> None:
        assert parse_retry_after(None) is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
        assert parse_retry_after("-1") is None


class TestHttpClient:
    """Tests for HttpClient retries, backoff and timeouts."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self) -> None:
        """Test a fetch that succeeds immediately."""
        sleep = SleepRecorder()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="hello")

        async with make_client(handler, sleep) as client:
            body = await client.fetch("https://example.org/art")

        assert body == "hello"
        assert sleep.calls == []
        assert client.requests_made == 1
        assert client.failures == 0

    @pytest.mark.asyncio
    async def test_succeeds_on_fourth_attempt(self) -> None:
        """Test that three failures followed by a success returns the body."""
        sleep = SleepRecorder()
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] <= 3:
                return httpx.Response(500)
            return httpx.Response(200, text="finally")

        async with make_client(handler, sleep, initial_delay_ms=1000) as client:
            body = await client.fetch("https://example.org/art")

        assert body == "finally"
        assert calls["n"] == 4
        assert sleep.calls == [1.0, 2.0, 4.0]
        assert client.failures == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_four_attempts(self) -> None:
        """Test that a fetch failing every attempt raises after exactly four."""
        sleep = SleepRecorder()
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            return httpx.Response(503)

        async with make_client(handler, sleep) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.fetch("https://example.org/down")

        error = exc_info.value
        assert calls["n"] == 4
        assert error.attempts == 4
        assert error.url == "https://example.org/down"
        assert str(error).startswith("Failed to fetch after 4 attempts: HTTP 503")
        assert len(sleep.calls) == 3

    @pytest.mark.asyncio
    async def test_retry_after_is_honored(self) -> None:
        """Test that Retry-After sleeps before the normal backoff."""
        sleep = SleepRecorder()
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(429, headers={"Retry-After": "2"})
            return httpx.Response(200, text="ok")

        async with make_client(handler, sleep, initial_delay_ms=500) as client:
            body = await client.fetch("https://example.org/busy")

        assert body == "ok"
        assert sleep.calls == [2.0, 0.5]

    @pytest.mark.asyncio
    async def test_retry_after_on_success_response(self) -> None:
        """Test that Retry-After is honored even on a successful response."""
        sleep = SleepRecorder()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="ok", headers={"Retry-After": "1"})

        async with make_client(handler, sleep) as client:
            assert await client.fetch("https://example.org/") == "ok"

        assert sleep.calls == [1.0]

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self) -> None:
        """Test that an attempt exceeding its deadline fails."""
        sleep = SleepRecorder()

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, text="too late")

        async with make_client(handler, sleep, max_retries=0, timeout_ms=50) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.fetch("https://example.org/slow")

        assert exc_info.value.attempts == 1
        assert "Timeout" in exc_info.value.last_error

    @pytest.mark.asyncio
    async def test_httpx_timeout_follows_timeout_ms(self) -> None:
        """Test that httpx's own timeout is the per-attempt deadline, not its 5s default."""
        sleep = SleepRecorder()
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.extensions["timeout"])
            return httpx.Response(200, text="ok")

        async with make_client(handler, sleep, timeout_ms=30000) as client:
            assert client._get_client().timeout == httpx.Timeout(30.0)
            await client.fetch("https://example.org/a")
            await client.fetch("https://example.org/b", timeout_ms=45000)

        assert seen[0]["read"] == 30.0
        assert seen[0]["connect"] == 30.0
        assert seen[1]["read"] == 45.0

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self) -> None:
        """Test that connection errors are retried."""
        sleep = SleepRecorder()
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, text="ok")

        async with make_client(handler, sleep) as client:
            assert await client.fetch("https://example.org/") == "ok"

        assert calls["n"] == 2

    @pytest.mark.asyncio
    async def test_redirect_range_accepted(self) -> None:
        """Test that 3xx statuses without a redirect target count as success."""
        sleep = SleepRecorder()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(304, text="")

        async with make_client(handler, sleep) as client:
            assert await client.fetch("https://example.org/") == ""

    @pytest.mark.asyncio
    async def test_sends_user_agent(self) -> None:
        """Test that requests carry the configured User-Agent."""
        sleep = SleepRecorder()
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["user-agent"])
            return httpx.Response(200, text="ok")

        async with make_client(handler, sleep, user_agent="ArtImport-Test/1.0") as client:
            await client.fetch("https://example.org/")

        assert seen == ["ArtImport-Test/1.0"]

    @pytest.mark.asyncio
    async def test_fetch_json(self) -> None:
        """Test JSON decoding of a fetched body."""
        sleep = SleepRecorder()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": [1, 2]})

        async with make_client(handler, sleep) as client:
            assert await client.fetch_json("https://example.org/feed") == {"items": [1, 2]}

    def test_backoff_delay(self) -> None:
        """Test exponential backoff without jitter."""
        client = HttpClient(initial_delay_ms=1000)
        assert [client.backoff_delay(a) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_from_config(self) -> None:
        """Test creating a client from configuration."""
        client = HttpClient.from_config(HttpConfig(max_retries=1, timeout_ms=500))
        assert client.max_retries == 1
        assert client.timeout_ms == 500
