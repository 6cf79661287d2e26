"""
Bounded retry with linear backoff.

Wraps a fallible async operation: after failed attempt ``n`` the coordinator
waits ``base_delay * n`` seconds before trying again, and re-raises the last
error once attempts are exhausted.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]
SleepFunction = Callable[[float], Awaitable[None]]


def _retry_everything(error: BaseException) -> bool:
    return isinstance(error, Exception)


class RetryCoordinator:
    """Runs async operations under a fixed retry policy."""

    def __init__(
        self,
        attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Optional[SleepFunction] = None
    ):
        """Initialize the coordinator.

        Args:
            attempts: Total number of attempts, including the first
            base_delay: Seconds to wait after the first failure
            sleep: Awaitable sleep used between attempts (defaults to asyncio.sleep)

        Raises:
            ValueError: If attempts < 1 or base_delay < 0
        """
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")

        self.attempts = attempts
        self.base_delay = base_delay
        self._sleep = sleep or asyncio.sleep

    def _retrying(self, retryable: Optional[RetryPredicate]) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.attempts),
            wait=wait_incrementing(start=self.base_delay, increment=self.base_delay),
            retry=retry_if_exception(retryable or _retry_everything),
            before_sleep=before_sleep_log(LOGGER, logging.WARNING),
            sleep=self._sleep,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        retryable: Optional[RetryPredicate] = None
    ) -> T:
        """Run ``operation`` until it succeeds or the policy gives up.

        Args:
            operation: Zero-argument coroutine function, invoked once per attempt
            retryable: Predicate deciding whether an error is worth retrying
                (defaults to every exception)

        Returns:
            The first successful result

        Raises:
            Exception: The last error, unchanged, when attempts are exhausted
                or the predicate rejects it
        """
        async for attempt in self._retrying(retryable):
            with attempt:
                result = await operation()
        return result


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    retryable: Optional[RetryPredicate] = None,
    sleep: Optional[SleepFunction] = None
) -> T:
    """Functional form of RetryCoordinator.run."""
    coordinator = RetryCoordinator(attempts=attempts, base_delay=base_delay, sleep=sleep)
    return await coordinator.run(operation, retryable=retryable)
