"""
A short-lived cache of the apps' instance listings.

The listings are polled often by the hosting runtime, and every listing
costs a subprocess of the utility. So, they are kept in memory for a while,
and the stale listings are tolerated for that long (even after the app updates).

The entries only expire by time; there is no eviction by size and no explicit
invalidation. The expired entries are refreshed on the next request for them,
and the abandoned ones are purged whenever a new value is stored.

Concurrent misses on the same key are coalesced: only one fetch runs per key,
all the callers await its result (or its error). A failed fetch is not
stored, so the next request tries again.
"""
import asyncio
import dataclasses
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, List, Optional, TypeVar

from kbridge._cogs.configs import configuration
from kbridge._cogs.structs import metadata

_K = TypeVar('_K', bound=Hashable)
_V = TypeVar('_V')


@dataclasses.dataclass(frozen=True)
class CacheEntry(Generic[_V]):
    value: _V
    expires_at: float


class ExpiringCache(Generic[_K, _V]):

    def __init__(
            self,
            *,
            ttl: float,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[_K, CacheEntry[_V]] = {}
        self._pending: Dict[_K, 'asyncio.Future[_V]'] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: _K) -> Optional[_V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def put(self, key: _K, value: _V) -> None:
        now = self.clock()
        self.purge(now=now)
        self._entries[key] = CacheEntry(value=value, expires_at=now + self.ttl)

    def purge(self, *, now: Optional[float] = None) -> None:
        """ Forget the expired entries, including those never requested again. """
        now = self.clock() if now is None else now
        for key in [key for key, entry in self._entries.items() if now > entry.expires_at]:
            del self._entries[key]

    async def get_or_fetch(self, key: _K, fetcher: Callable[[_K], Awaitable[_V]]) -> _V:
        entry = self._entries.get(key)
        if entry is not None:
            if self.clock() <= entry.expires_at:
                return entry.value
            del self._entries[key]

        # The fill belongs to none of the callers: a cancelled caller stops waiting,
        # but the others still get the result (or the error) of the same fetch.
        fill = self._pending.get(key)
        if fill is None:
            fill = asyncio.ensure_future(self._fill(key, fetcher))
            fill.add_done_callback(_consume_exception)
            self._pending[key] = fill
        return await asyncio.shield(fill)

    async def _fill(self, key: _K, fetcher: Callable[[_K], Awaitable[_V]]) -> _V:
        try:
            value = await fetcher(key)
        finally:
            del self._pending[key]
        self.put(key, value)
        return value


def _consume_exception(fill: 'asyncio.Future[Any]') -> None:
    # Mark as retrieved, in case all the callers were cancelled before the failure.
    if not fill.cancelled():
        fill.exception()


class InstanceCache(ExpiringCache[str, List[metadata.PodInstance]]):
    """
    The instance listings per app name.

    Constructed once per bridge (or shared between bridges explicitly),
    never as a hidden process-wide singleton.
    """

    def __init__(
            self,
            *,
            ttl: Optional[float] = None,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(ttl=ttl if ttl is not None else configuration.CachingSettings().instances_ttl,
                         clock=clock)
