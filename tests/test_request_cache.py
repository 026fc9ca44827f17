from __future__ import annotations

import asyncio

import httpx
import pytest

from chatembed.cache import CacheState, RequestCache, RequestDescriptor
from chatembed.config import FetchSettings
from chatembed.errors import (
    ClientRejected,
    PayloadError,
    RecentFailureCooldown,
    ServerError,
    TransportTimeout,
)


class _FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def _cache(handler, **settings) -> tuple[RequestCache, _FakeClock, _RecordingSleep]:
    clock = _FakeClock()
    sleep = _RecordingSleep()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    cache = RequestCache(FetchSettings(**settings), client=client, clock=clock, sleep=sleep)
    return cache, clock, sleep


def _descriptor(url: str = "https://api.example.com/item", **params) -> RequestDescriptor:
    return RequestDescriptor.get(url, params=params or None, label="item lookup")


def test_fresh_entry_is_served_without_network_until_ttl_expires() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(200, json={"n": len(calls)})

    async def run():
        cache, clock, _ = _cache(handler, cache_ttl=120)
        first = await cache.fetch(_descriptor())
        clock.advance(119)
        second = await cache.fetch(_descriptor())
        clock.advance(2)
        third = await cache.fetch(_descriptor())
        await cache.aclose()
        return first, second, third

    first, second, third = asyncio.run(run())
    assert first == {"n": 1}
    assert second == {"n": 1}
    assert third == {"n": 2}
    assert len(calls) == 2


def test_concurrent_callers_share_one_network_attempt() -> None:
    calls = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        await asyncio.sleep(0)
        return httpx.Response(200, json={"guild": {"name": "xyz"}})

    async def run():
        cache, _, _ = _cache(handler)
        results = await asyncio.gather(*(cache.fetch(_descriptor()) for _ in range(5)))
        attempts = cache.network_attempts
        await cache.aclose()
        return results, attempts

    results, attempts = asyncio.run(run())
    assert len(calls) == 1
    assert attempts == 1
    assert all(result == {"guild": {"name": "xyz"}} for result in results)


def test_equivalent_descriptors_share_a_key() -> None:
    first = RequestDescriptor.get("https://API.example.com/item/", params={"b": 2, "a": 1})
    second = RequestDescriptor.get("https://api.example.com/item", params={"a": "1", "b": "2"})
    other = RequestDescriptor.get("https://api.example.com/item", parse_as="text")

    assert first.cache_key() == second.cache_key()
    assert first.cache_key() != other.cache_key()


def test_server_errors_retry_with_increasing_delay_then_fail() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(503)

    async def run():
        cache, _, sleep = _cache(handler, max_attempts=3, retry_delay=0.5)
        with pytest.raises(ServerError) as excinfo:
            await cache.fetch(_descriptor())
        key = _descriptor().cache_key()
        state = cache.state(key)
        pending = cache.is_pending(key)
        await cache.aclose()
        return excinfo.value, sleep.delays, state, pending

    error, delays, state, pending = asyncio.run(run())
    assert error.status == 503
    assert len(calls) == 3
    assert delays == [0.5, 1.0]
    assert state is CacheState.FAILED_COOLDOWN
    assert pending is False


def test_transient_failure_recovers_within_attempt_budget() -> None:
    statuses = iter([502, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        if status == 200:
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(status)

    async def run():
        cache, _, sleep = _cache(handler)
        payload = await cache.fetch(_descriptor())
        key = _descriptor().cache_key()
        state = cache.state(key)
        await cache.aclose()
        return payload, sleep.delays, state, cache.network_attempts

    payload, delays, state, attempts = asyncio.run(run())
    assert payload == {"ok": True}
    assert delays == [0.5]
    assert attempts == 2
    assert state is CacheState.FRESH


def test_rate_limit_honours_retry_after() -> None:
    responses = iter(
        [httpx.Response(429, headers={"Retry-After": "3"}), httpx.Response(200, json=[])]
    )

    async def run():
        cache, _, sleep = _cache(lambda request: next(responses))
        payload = await cache.fetch(_descriptor())
        await cache.aclose()
        return payload, sleep.delays

    payload, delays = asyncio.run(run())
    assert payload == []
    assert delays == [3.0]


def test_retry_after_keeps_later_waits_increasing() -> None:
    responses = iter(
        [
            httpx.Response(429, headers={"Retry-After": "5"}),
            httpx.Response(503),
            httpx.Response(503),
        ]
    )

    async def run():
        cache, _, sleep = _cache(
            lambda request: next(responses), max_attempts=3, retry_delay=0.5
        )
        with pytest.raises(ServerError) as excinfo:
            await cache.fetch(_descriptor())
        await cache.aclose()
        return excinfo.value, sleep.delays

    error, delays = asyncio.run(run())
    assert error.status == 503
    assert delays == [5.0, 10.0]
    assert all(earlier < later for earlier, later in zip(delays, delays[1:]))


def test_client_rejection_is_a_cached_non_fatal_result() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(404)

    async def run():
        cache, _, sleep = _cache(handler)
        first = await cache.fetch(_descriptor())
        second = await cache.fetch(_descriptor())
        await cache.aclose()
        return first, second, sleep.delays

    first, second, delays = asyncio.run(run())
    assert isinstance(first, ClientRejected)
    assert first.status == 404
    assert not first
    assert second == first
    assert len(calls) == 1
    assert delays == []


def test_failure_cooldown_suppresses_retries_across_callers() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        if len(calls) <= 3:
            return httpx.Response(500)
        return httpx.Response(200, json={"back": True})

    async def run():
        cache, clock, _ = _cache(handler, failure_cooldown=30)
        with pytest.raises(ServerError):
            await cache.fetch(_descriptor())
        clock.advance(10)
        with pytest.raises(RecentFailureCooldown) as cooldown:
            await cache.fetch(_descriptor())
        calls_during_cooldown = len(calls)
        clock.advance(25)
        payload = await cache.fetch(_descriptor())
        await cache.aclose()
        return cooldown.value, calls_during_cooldown, payload

    cooldown, calls_during_cooldown, payload = asyncio.run(run())
    assert cooldown.remaining == pytest.approx(20)
    assert calls_during_cooldown == 3
    assert payload == {"back": True}
    assert len(calls) == 4


def test_concurrent_callers_observe_the_same_failure() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(503)

    async def run():
        cache, _, _ = _cache(handler)
        results = await asyncio.gather(
            cache.fetch(_descriptor()), cache.fetch(_descriptor()), return_exceptions=True
        )
        await cache.aclose()
        return results

    first, second = asyncio.run(run())
    assert isinstance(first, ServerError)
    assert second is first
    assert len(calls) == 3


def test_timeouts_are_retryable() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        raise httpx.ReadTimeout("slow", request=request)

    async def run():
        cache, _, sleep = _cache(handler, max_attempts=2)
        with pytest.raises(TransportTimeout):
            await cache.fetch(_descriptor())
        await cache.aclose()
        return sleep.delays

    delays = asyncio.run(run())
    assert len(calls) == 2
    assert delays == [0.5]


def test_undecodable_json_is_not_retried() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(200, text="<html>not json</html>")

    async def run():
        cache, _, sleep = _cache(handler)
        with pytest.raises(PayloadError):
            await cache.fetch(_descriptor())
        await cache.aclose()
        return sleep.delays

    delays = asyncio.run(run())
    assert len(calls) == 1
    assert delays == []


def test_clear_resets_every_table() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/bad":
            return httpx.Response(500)
        return httpx.Response(200, json={})

    async def run():
        cache, _, _ = _cache(handler, max_attempts=1)
        good = _descriptor("https://api.example.com/good")
        bad = _descriptor("https://api.example.com/bad")
        await cache.fetch(good)
        with pytest.raises(ServerError):
            await cache.fetch(bad)
        before = (cache.state(good.cache_key()), cache.state(bad.cache_key()))
        cache.clear()
        after = (cache.state(good.cache_key()), cache.state(bad.cache_key()))
        await cache.aclose()
        return before, after

    before, after = asyncio.run(run())
    assert before == (CacheState.FRESH, CacheState.FAILED_COOLDOWN)
    assert after == (None, None)
