"""
Retry With Exponential Backoff
==============================
Bounded retry primitive used to absorb read-after-write lag.

Attempts run strictly one after another. Between attempts the executor
suspends cooperatively (asyncio), so other tasks keep running while it waits.

Usage:
    policy = RetryPolicy(max_retries=3, initial_delay=1.0, max_delay=30.0)
    position = await retry(fetch_position, policy)

    # Or bind the policy once
    executor = RetryExecutor(policy)
    position = await executor.run(fetch_position)

Delay before retry k (1-indexed, first attempt excluded):
    min(initial_delay * backoff_multiplier ** (k - 1), max_delay)
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar, Union

from lpcycle.shared.system.errors import RetryCancelledError
from lpcycle.shared.system.logging import Logger

T = TypeVar("T")

Operation = Callable[[], Union[T, Awaitable[T]]]
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Immutable retry configuration.

    Delays are in seconds. max_retries=0 means a single attempt.
    """

    max_retries: int
    initial_delay: float = 0.1
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    debug: bool = False

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for_retry(self, k: int) -> float:
        """Wait applied before retry k (k >= 1)."""
        if k < 1:
            raise ValueError("retry index is 1-based")
        return min(self.initial_delay * self.backoff_multiplier ** (k - 1), self.max_delay)


async def _wait(delay: float, sleep: SleepFn, cancel_event: Optional[asyncio.Event]) -> None:
    """Suspend for `delay`, returning early with an error if cancel_event fires."""
    if cancel_event is None:
        await sleep(delay)
        return

    if cancel_event.is_set():
        raise RetryCancelledError("Retry cancelled before wait")

    sleeper = asyncio.ensure_future(sleep(delay))
    watcher = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, watcher):
            if not task.done():
                task.cancel()

    if cancel_event.is_set():
        raise RetryCancelledError(f"Retry cancelled during {delay:.2f}s wait")

    # Surface a failing sleep instead of retrying without a pause
    if sleeper.done() and not sleeper.cancelled():
        sleeper.result()


async def retry(
    operation: Operation,
    policy: RetryPolicy,
    *,
    sleep: SleepFn = asyncio.sleep,
    cancel_event: Optional[asyncio.Event] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "operation",
) -> T:
    """
    Run `operation` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument callable; may return a value or an awaitable
        policy: Attempt bound and backoff shape
        sleep: Awaitable sleep used between attempts (injectable for tests)
        cancel_event: Setting it aborts a pending wait with RetryCancelledError
        retry_on: Exception types that trigger a retry; others propagate at once
        label: Name used in debug traces

    Returns:
        The value of the first successful attempt.

    Raises:
        The exact exception of the last attempt once every attempt has failed.
    """
    delay = policy.initial_delay

    if policy.debug:
        Logger.info(f"[RETRY] {label}: up to {policy.max_attempts} attempt(s)")

    for attempt in range(policy.max_retries + 1):
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except retry_on as e:
            if attempt == policy.max_retries:
                if policy.debug:
                    Logger.warning(f"[RETRY] {label}: attempt {attempt + 1} failed, giving up ({e})")
                raise

            wait_s = min(delay, policy.max_delay)
            if policy.debug:
                Logger.warning(
                    f"[RETRY] {label}: attempt {attempt + 1}/{policy.max_attempts} failed ({e}), "
                    f"retrying in {wait_s:.2f}s"
                )

            await _wait(wait_s, sleep, cancel_event)

            # Growth compounds on the uncapped value
            delay *= policy.backoff_multiplier
            continue

        if policy.debug:
            Logger.info(f"[RETRY] {label}: succeeded on attempt {attempt + 1}")
        return result

    raise AssertionError("unreachable: retry loop exited without result")


class RetryExecutor:
    """Binds a RetryPolicy (and optional cancel event) for repeated use."""

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: SleepFn = asyncio.sleep,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.policy = policy
        self._sleep = sleep
        self.cancel_event = cancel_event if cancel_event is not None else asyncio.Event()

    async def run(
        self,
        operation: Operation,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        label: str = "operation",
    ) -> T:
        return await retry(
            operation,
            self.policy,
            sleep=self._sleep,
            cancel_event=self.cancel_event,
            retry_on=retry_on,
            label=label,
        )

    def cancel(self) -> None:
        """Abort any pending (or future) wait of this executor."""
        self.cancel_event.set()
