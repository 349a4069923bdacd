import asyncio

import pytest

from kbridge._core.buildctl.caching import ExpiringCache, InstanceCache


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return InstanceCache(ttl=30, clock=clock)


def test_default_ttl_is_taken_from_the_settings():
    cache = InstanceCache()
    assert cache.ttl == 30.0


def test_empty_cache_has_nothing(cache):
    assert len(cache) == 0
    assert cache.get('app1') is None


def test_stored_values_are_kept_until_the_ttl(cache, clock):
    value = [{'name': 'pod-1'}]
    cache.put('app1', value)
    clock.now += 30
    assert cache.get('app1') is value


def test_stored_values_expire_after_the_ttl(cache, clock):
    cache.put('app1', [{'name': 'pod-1'}])
    clock.now += 30.001
    assert cache.get('app1') is None
    assert len(cache) == 0


def test_keys_are_independent(cache, clock):
    cache.put('app1', [{'name': 'pod-1'}])
    clock.now += 20
    cache.put('app2', [{'name': 'pod-2'}])
    clock.now += 20
    assert cache.get('app1') is None
    assert cache.get('app2') == [{'name': 'pod-2'}]


async def test_hit_returns_the_same_value_without_fetching(cache, clock, mocker):
    value = [{'name': 'pod-1'}]
    fetcher = mocker.AsyncMock(return_value=value)

    result1 = await cache.get_or_fetch('app1', fetcher)
    clock.now += 29
    result2 = await cache.get_or_fetch('app1', fetcher)

    assert result1 is value
    assert result2 is value
    assert fetcher.await_count == 1
    assert fetcher.await_args_list[0][0][0] == 'app1'


async def test_expired_entry_is_refetched(cache, clock, mocker):
    fetcher = mocker.AsyncMock(side_effect=[[{'name': 'pod-1'}], [{'name': 'pod-2'}]])

    result1 = await cache.get_or_fetch('app1', fetcher)
    clock.now += 31
    result2 = await cache.get_or_fetch('app1', fetcher)

    assert result1 == [{'name': 'pod-1'}]
    assert result2 == [{'name': 'pod-2'}]
    assert fetcher.await_count == 2


async def test_ttl_counts_from_the_storing_not_from_the_request(cache, clock):

    async def slow_fetcher(key):
        clock.now += 10  # as if the utility was slow
        return [{'name': 'pod-1'}]

    await cache.get_or_fetch('app1', slow_fetcher)
    clock.now += 30
    assert cache.get('app1') == [{'name': 'pod-1'}]


async def test_failures_are_not_cached(cache, mocker):
    fetcher = mocker.AsyncMock(side_effect=[RuntimeError("boo"), [{'name': 'pod-1'}]])

    with pytest.raises(RuntimeError, match="boo"):
        await cache.get_or_fetch('app1', fetcher)
    assert len(cache) == 0

    result = await cache.get_or_fetch('app1', fetcher)
    assert result == [{'name': 'pod-1'}]
    assert fetcher.await_count == 2


async def test_concurrent_misses_are_fetched_once(cache):
    calls = []
    release = asyncio.Event()

    async def fetcher(key):
        calls.append(key)
        await release.wait()
        return [{'name': 'pod-1'}]

    tasks = [asyncio.create_task(cache.get_or_fetch('app1', fetcher)) for _ in range(5)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*tasks)

    assert calls == ['app1']
    assert all(result is results[0] for result in results)


async def test_concurrent_misses_share_the_failure(cache):
    calls = []
    release = asyncio.Event()

    async def fetcher(key):
        calls.append(key)
        await release.wait()
        raise RuntimeError("boo")

    tasks = [asyncio.create_task(cache.get_or_fetch('app1', fetcher)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert calls == ['app1']
    assert all(isinstance(result, RuntimeError) for result in results)
    assert len(cache) == 0


async def test_concurrent_misses_on_different_keys_are_fetched_separately(cache):
    calls = []

    async def fetcher(key):
        calls.append(key)
        await asyncio.sleep(0)
        return [{'name': key}]

    result1, result2 = await asyncio.gather(
        cache.get_or_fetch('app1', fetcher),
        cache.get_or_fetch('app2', fetcher),
    )

    assert sorted(calls) == ['app1', 'app2']
    assert result1 == [{'name': 'app1'}]
    assert result2 == [{'name': 'app2'}]


async def test_generic_cache_works_with_any_keys_and_values(clock):
    cache: ExpiringCache = ExpiringCache(ttl=1, clock=clock)
    cache.put(('ns', 'app'), 'value')
    assert cache.get(('ns', 'app')) == 'value'


async def test_cancelled_first_caller_does_not_break_the_others(cache):
    calls = []
    started = asyncio.Event()
    release = asyncio.Event()

    async def fetcher(key):
        calls.append(key)
        started.set()
        await release.wait()
        return [{'name': 'pod-1'}]

    task1 = asyncio.create_task(cache.get_or_fetch('app1', fetcher))
    await started.wait()
    task2 = asyncio.create_task(cache.get_or_fetch('app1', fetcher))
    await asyncio.sleep(0)

    task1.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task1

    release.set()
    result = await task2

    assert result == [{'name': 'pod-1'}]
    assert calls == ['app1']
    assert cache.get('app1') == [{'name': 'pod-1'}]


async def test_fill_completes_even_if_all_callers_are_cancelled(cache):
    release = asyncio.Event()

    async def fetcher(key):
        await release.wait()
        return [{'name': 'pod-1'}]

    task = asyncio.create_task(cache.get_or_fetch('app1', fetcher))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    release.set()
    for _ in range(3):
        await asyncio.sleep(0)
    assert cache.get('app1') == [{'name': 'pod-1'}]


async def test_expired_entry_is_dropped_when_requested_again(cache, clock, mocker):
    cache.put('app1', [{'name': 'pod-1'}])
    clock.now += 31
    fetcher = mocker.AsyncMock(side_effect=RuntimeError("boo"))
    with pytest.raises(RuntimeError):
        await cache.get_or_fetch('app1', fetcher)
    assert len(cache) == 0


def test_abandoned_entries_are_purged_on_storing(cache, clock):
    cache.put('app1', [{'name': 'pod-1'}])
    cache.put('app2', [{'name': 'pod-2'}])
    clock.now += 31
    cache.put('app3', [{'name': 'pod-3'}])
    assert len(cache) == 1
    assert cache.get('app3') == [{'name': 'pod-3'}]


def test_explicit_purge_keeps_the_fresh_entries(cache, clock):
    cache.put('app1', [{'name': 'pod-1'}])
    clock.now += 20
    cache.put('app2', [{'name': 'pod-2'}])
    clock.now += 20
    cache.purge()
    assert len(cache) == 1
    assert cache.get('app2') == [{'name': 'pod-2'}]
