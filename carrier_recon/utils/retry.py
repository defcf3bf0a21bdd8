"""Retry policy values and a generic async retry wrapper.

A :class:`RetryPolicy` describes *how* to retry (attempt budget, backoff
schedule, which exceptions qualify); :func:`retry_call` applies it to any
coroutine function using tenacity.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from carrier_recon.errors import OracleTimeout
from carrier_recon.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff schedule.

    Attributes:
        max_attempts: Total attempts including the first call.
        backoff: Seconds to wait before the 2nd, 3rd, ... attempt. The last
            entry is reused when attempts outnumber the schedule.
        retry_on: Exception types that trigger another attempt.
    """

    max_attempts: int = 3
    backoff: tuple[float, ...] = (1.0, 2.0, 4.0)
    retry_on: tuple[type[BaseException], ...] = (OracleTimeout,)

    def delay_for(self, attempt: int) -> float:
        """Return the wait in seconds after the given (1-based) attempt."""
        if not self.backoff:
            return 0.0
        return self.backoff[min(attempt - 1, len(self.backoff) - 1)]

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retry_on)


NO_RETRY = RetryPolicy(max_attempts=1, backoff=())


async def retry_call(
    policy: RetryPolicy,
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Await ``fn(*args, **kwargs)`` under the given retry policy.

    Non-qualifying exceptions propagate immediately; once the attempt budget
    is spent the last qualifying exception is re-raised unchanged.

    Args:
        policy: Retry policy to apply.
        fn: Coroutine function to call.

    Returns:
        Whatever ``fn`` returns on the first successful attempt.
    """

    def _wait(state: RetryCallState) -> float:
        return policy.delay_for(state.attempt_number)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(policy.max_attempts, 1)),
        wait=_wait,
        retry=retry_if_exception_type(policy.retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return await retrying(fn, *args, **kwargs)
