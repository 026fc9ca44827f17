"""In-memory request cache with in-flight deduplication and bounded retries.

Three tables are kept per key: successful payloads (valid for ``cache_ttl``),
requests currently in flight, and recent failures (suppressed for
``failure_cooldown``). A key is never in the success and failure tables at
the same time. All bookkeeping happens on the event loop thread and no
``await`` separates a table lookup from the matching write.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from ..config import FetchSettings
from ..errors import (
    ClientRejected,
    FetchError,
    PayloadError,
    RecentFailureCooldown,
    ServerError,
    TransportFailure,
    TransportTimeout,
)
from .keys import RequestDescriptor

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]

_USER_AGENT = "chatembed (+https://github.com/chatembed/chatembed)"
_MAX_RETRY_DELAY = 30.0


class CacheState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    FAILED_COOLDOWN = "failed-cooldown"


@dataclass
class CacheEntry:
    payload: Any
    fetched_at: float


def _retry_after_seconds(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


class RequestCache:
    def __init__(
        self,
        settings: FetchSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings or FetchSettings()
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._sleep = sleep
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self._failures: dict[str, float] = {}
        self._generation = 0
        self.network_attempts = 0

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": _USER_AGENT},
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def state(self, key: str) -> CacheState | None:
        now = self._clock()
        failed_at = self._failures.get(key)
        if failed_at is not None and now - failed_at < self.settings.failure_cooldown:
            return CacheState.FAILED_COOLDOWN
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now - entry.fetched_at < self.settings.cache_ttl:
            return CacheState.FRESH
        return CacheState.STALE

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def clear(self) -> None:
        """Reset every table; in-flight work finishing later is discarded."""
        self._generation += 1
        self._entries.clear()
        self._pending.clear()
        self._failures.clear()

    async def fetch(self, descriptor: RequestDescriptor, key: str | None = None) -> Any:
        """Return the payload for ``descriptor``, or a ``ClientRejected``.

        Raises a ``FetchError`` subclass when the request failed, including
        ``RecentFailureCooldown`` while a previous failure is still cooling.
        """
        if key is None:
            key = descriptor.cache_key()
        now = self._clock()

        entry = self._entries.get(key)
        if entry is not None:
            if now - entry.fetched_at < self.settings.cache_ttl:
                return entry.payload
            del self._entries[key]

        pending = self._pending.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        failed_at = self._failures.get(key)
        if failed_at is not None:
            elapsed = now - failed_at
            if elapsed < self.settings.failure_cooldown:
                raise RecentFailureCooldown(
                    key, self.settings.failure_cooldown - elapsed
                )
            del self._failures[key]

        task = asyncio.ensure_future(
            self._run(key, descriptor, self._generation)
        )
        self._pending[key] = task
        return await asyncio.shield(task)

    async def _run(self, key: str, descriptor: RequestDescriptor, generation: int) -> Any:
        try:
            payload = await self._request_with_retry(key, descriptor)
        except BaseException as exc:
            if generation == self._generation:
                self._pending.pop(key, None)
                self._entries.pop(key, None)
                if not isinstance(exc, asyncio.CancelledError):
                    self._failures[key] = self._clock()
            raise
        if generation == self._generation:
            self._pending.pop(key, None)
            self._failures.pop(key, None)
            self._entries[key] = CacheEntry(payload=payload, fetched_at=self._clock())
        return payload

    def _retry_delay_seconds(self, attempt: int) -> float:
        base = self.settings.retry_delay * (2 ** max(0, attempt - 1))
        return min(_MAX_RETRY_DELAY, base)

    async def _request_with_retry(self, key: str, descriptor: RequestDescriptor) -> Any:
        max_attempts = max(1, self.settings.max_attempts)
        previous_wait = 0.0
        attempt = 1
        while True:
            try:
                return await self._attempt(key, descriptor)
            except FetchError as exc:
                if not exc.retryable:
                    raise
                if attempt >= max_attempts:
                    logger.info(
                        "%s failed after %d attempt(s): %s",
                        descriptor.describe(),
                        max_attempts,
                        exc,
                    )
                    raise
                # A Retry-After hint raises the floor for every later wait.
                wait = max(
                    self._retry_delay_seconds(attempt),
                    getattr(exc, "retry_after", None) or 0.0,
                    previous_wait * 2,
                )
                wait = min(_MAX_RETRY_DELAY, wait)
                logger.debug(
                    "%s failed (%s); retrying in %.1fs (attempt %d/%d)",
                    descriptor.describe(),
                    exc,
                    wait,
                    attempt,
                    max_attempts,
                )
                await self._sleep(wait)
                previous_wait = wait
                attempt += 1

    async def _attempt(self, key: str, descriptor: RequestDescriptor) -> Any:
        self.network_attempts += 1
        try:
            response = await asyncio.wait_for(
                self._send(descriptor), timeout=self.settings.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise TransportTimeout(
                f"{descriptor.describe()} timed out ({type(exc).__name__})", key=key
            ) from exc
        except httpx.TransportError as exc:
            raise TransportFailure(
                f"{descriptor.describe()} transport error ({type(exc).__name__})",
                key=key,
            ) from exc

        status = response.status_code
        if status >= 500 or status == 429:
            raise ServerError(status, key=key, retry_after=_retry_after_seconds(response))
        if status >= 400:
            logger.debug("%s rejected with status %d", descriptor.describe(), status)
            return ClientRejected(status=status, url=descriptor.url)

        if descriptor.parse_as == "json":
            try:
                return response.json()
            except ValueError as exc:
                raise PayloadError(
                    f"{descriptor.describe()} returned invalid JSON", key=key
                ) from exc
        return response.text

    async def _send(self, descriptor: RequestDescriptor) -> httpx.Response:
        response = await self.client.request(
            descriptor.method,
            descriptor.url,
            params=list(descriptor.params) or None,
            headers=dict(descriptor.headers) or None,
        )
        return response
