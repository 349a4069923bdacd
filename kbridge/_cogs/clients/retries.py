"""
Retrying of the cluster API calls on transient errors.

Only the errors that can go away by themselves are retried: the connectivity
issues, the timeouts, the server-side errors (5xx), and the throttling (429).
All other errors, such as the missing objects or the malformed payloads,
are escalated immediately, since repeating the same call gives the same result.

The retrying is bounded by the number of attempts (the backoffs + 1),
and optionally by the total duration of all attempts (the deadline).
On exhaustion, the last error is re-raised as is.
"""
import asyncio
import collections.abc
import itertools
import time
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import aiohttp

from kbridge._cogs.clients import errors
from kbridge._cogs.configs import configuration
from kbridge._cogs.helpers import typedefs

_T = TypeVar('_T')

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    aiohttp.ClientConnectionError,
    asyncio.TimeoutError,
    errors.APIServerError,
    errors.APITooManyRequestsError,
)


async def with_retry(
        fn: Callable[[], Awaitable[_T]],
        *,
        settings: configuration.BridgeSettings,
        logger: typedefs.Logger,
        what: str = "Request",
        transient: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
        clock: Callable[[], float] = time.monotonic,
) -> _T:
    backoffs = settings.networking.error_backoffs
    backoffs = backoffs if isinstance(backoffs, collections.abc.Iterable) else [backoffs]
    count = len(backoffs) + 1 if isinstance(backoffs, collections.abc.Sized) else None
    deadline = settings.networking.retry_deadline
    started = clock()
    backoff: Optional[float]
    for retry, backoff in enumerate(itertools.chain(backoffs, [None]), start=1):
        idx = f"#{retry}/{count}" if count is not None else f"#{retry}"
        try:
            if retry > 1:
                logger.debug(f"{what} attempt {idx}")
            result = await fn()
        except transient as e:
            if backoff is None:  # i.e. the last or the only attempt.
                logger.error(f"{what} attempt {idx} failed; escalating: {e!r}")
                raise
            elif deadline is not None and clock() - started + backoff > deadline:
                logger.error(f"{what} attempt {idx} failed; escalating at the deadline: {e!r}")
                raise
            else:
                logger.error(f"{what} attempt {idx} failed; will retry: {e!r}")
                await asyncio.sleep(backoff)  # non-awakable! but still cancellable.
        else:
            if retry > 1:
                logger.debug(f"{what} attempt {idx} succeeded")
            return result

    raise RuntimeError("Broken retryable routine.")  # impossible, but needed for type-checking.
