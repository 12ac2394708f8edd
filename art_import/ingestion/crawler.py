"""
Crawler Network Module
======================

Provides the politeness delay between outbound requests and an HTTP client
with per-attempt timeouts, exponential backoff and ``Retry-After`` support.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from art_import.core.errors import NetworkError
from art_import.ingestion.config import DEFAULT_USER_AGENT, HttpConfig, RateLimitConfig

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class RateLimiter:
    """
    Fixed delay plus uniform jitter between requests.

    Each ``wait()`` suspends the caller for ``delay_ms + uniform(0, jitter_ms)``
    milliseconds. The limiter holds no state besides its own settings.
    """

    def __init__(
        self,
        delay_ms: float = 1500.0,
        jitter_ms: float = 500.0,
        *,
        sleep: SleepFunc | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._delay_ms = 0.0
        self._jitter_ms = 0.0
        self.set_delay(delay_ms)
        self.set_jitter(jitter_ms)
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: RateLimitConfig, **kwargs: Any) -> RateLimiter:
        """Create from configuration."""
        return cls(delay_ms=config.delay_ms, jitter_ms=config.jitter_ms, **kwargs)

    @property
    def delay_ms(self) -> float:
        return self._delay_ms

    @property
    def jitter_ms(self) -> float:
        return self._jitter_ms

    def set_delay(self, delay_ms: float) -> None:
        """Set the base delay in milliseconds."""
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {delay_ms}")
        self._delay_ms = float(delay_ms)

    def set_jitter(self, jitter_ms: float) -> None:
        """Set the maximum random jitter in milliseconds."""
        if jitter_ms < 0:
            raise ValueError(f"jitter_ms must be >= 0, got {jitter_ms}")
        self._jitter_ms = float(jitter_ms)

    def next_delay(self) -> float:
        """Draw the next delay, in seconds, without sleeping."""
        jitter = self._rng.uniform(0.0, self._jitter_ms) if self._jitter_ms > 0 else 0.0
        return (self._delay_ms + jitter) / 1000.0

    async def wait(self) -> float:
        """
        Sleep for the configured delay plus jitter.

        Returns:
            The number of seconds slept
        """
        delay = self.next_delay()
        logger.debug(f"Rate limiting: waiting {delay * 1000:.0f}ms")
        await self._sleep(delay)
        return delay


class _BadStatusError(Exception):
    """Response status outside the accepted range."""


def parse_retry_after(value: str | None) -> int | None:
    """
    Parse a ``Retry-After`` header given in seconds.

    HTTP-date values and malformed input are ignored.

    Returns:
        Seconds to wait, or None
    """
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class HttpClient:
    """
    HTTP fetcher with retries and exponential backoff.

    Features:
    - ``max_retries + 1`` attempts per fetch
    - Backoff of ``initial_delay_ms * 2**attempt`` between attempts (no jitter)
    - Per-attempt timeout enforced as a cancellation deadline
    - Honors ``Retry-After`` (seconds) on any response that sets it
    - Accepts status codes in [200, 400)
    """

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay_ms: float = 1000.0,
        timeout_ms: float = 30000.0,
        user_agent: str = DEFAULT_USER_AGENT,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFunc | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self.max_retries = max_retries
        self.initial_delay_ms = initial_delay_ms
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent

        self._client = client
        self._owns_client = client is None
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._log = log or logger

        self.requests_made = 0
        self.failures = 0

    @classmethod
    def from_config(cls, config: HttpConfig, **kwargs: Any) -> HttpClient:
        """Create from configuration."""
        return cls(
            max_retries=config.max_retries,
            initial_delay_ms=config.initial_delay_ms,
            timeout_ms=config.timeout_ms,
            user_agent=config.user_agent,
            **kwargs,
        )

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=self.timeout_ms / 1000.0,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
        return self._client

    def backoff_delay(self, attempt: int) -> float:
        """Backoff before the attempt after ``attempt``, in seconds."""
        return self.initial_delay_ms * (2**attempt) / 1000.0

    async def fetch(self, url: str, *, timeout_ms: float | None = None) -> str:
        """
        Fetch a URL and return its body as text.

        Args:
            url: URL to fetch
            timeout_ms: Per-attempt deadline, overriding the client default

        Returns:
            Response body

        Raises:
            NetworkError: After every attempt failed
        """
        deadline = (timeout_ms if timeout_ms is not None else self.timeout_ms) / 1000.0
        total_attempts = self.max_retries + 1
        last_error: str | None = None

        for attempt in range(total_attempts):
            self._log.debug(f"Fetching {url} (attempt {attempt + 1}/{total_attempts})")
            try:
                text = await self._attempt(url, deadline)
                self._log.debug(f"Fetched {url} ({len(text)} chars)")
                return text
            except TimeoutError:
                last_error = f"Timeout after {deadline:g}s"
            except httpx.HTTPError as e:
                last_error = str(e) or e.__class__.__name__
            except _BadStatusError as e:
                last_error = str(e)
            except Exception as e:
                last_error = f"{e.__class__.__name__}: {e}"

            self.failures += 1
            self._log.warning(
                f"Fetch attempt {attempt + 1}/{total_attempts} failed for {url}: {last_error}"
            )

            if attempt < self.max_retries:
                delay = self.backoff_delay(attempt)
                self._log.debug(f"Waiting {delay * 1000:.0f}ms before retry")
                await self._sleep(delay)

        raise NetworkError(
            f"Failed to fetch after {total_attempts} attempts: {last_error or 'Unknown error'}",
            url=url,
            attempts=total_attempts,
            last_error=last_error,
        )

    async def fetch_json(self, url: str, *, timeout_ms: float | None = None) -> Any:
        """
        Fetch a URL and decode its body as JSON.

        Raises:
            NetworkError: After every attempt failed
            ValueError: If the body is not valid JSON
        """
        text = await self.fetch(url, timeout_ms=timeout_ms)
        return json.loads(text)

    async def _attempt(self, url: str, deadline: float) -> str:
        """Run a single attempt under its own deadline."""
        client = self._get_client()
        self.requests_made += 1

        async with asyncio.timeout(deadline):
            request = client.build_request("GET", url, timeout=deadline)
            response = await client.send(request, stream=True)

        try:
            retry_after = parse_retry_after(response.headers.get("retry-after"))
            if retry_after is not None:
                self._log.warning(f"Rate limit detected for {url}, waiting {retry_after}s")
                await self._sleep(float(retry_after))

            if not 200 <= response.status_code < 400:
                raise _BadStatusError(f"HTTP {response.status_code}: {response.reason_phrase}")

            async with asyncio.timeout(deadline):
                await response.aread()
            return response.text
        finally:
            await response.aclose()
