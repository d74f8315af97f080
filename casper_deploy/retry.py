import asyncio
import dataclasses
import logging
import time
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff: stop after `attempts` tries or `deadline` seconds."""
    attempts: int = 5
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 8.0
    deadline: float = 60.0

    def delays(self):
        """Yield the wait before each retry (attempts - 1 values)."""
        delay = self.initial_delay
        for _ in range(max(self.attempts - 1, 0)):
            yield min(delay, self.max_delay)
            delay *= self.multiplier


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...],
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `operation` until it succeeds, retrying only on `retry_on` errors.

    The last error is re-raised once attempts or the deadline are exhausted.
    Any other exception propagates immediately.
    """
    started = time.monotonic()
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except retry_on as e:
            wait_time = next(delays, None)
            elapsed = time.monotonic() - started
            if wait_time is None or elapsed + wait_time > policy.deadline:
                logger.warning(f"{description} failed after {attempt} attempt(s): {e}")
                raise
            logger.info(f"{description} not ready (attempt {attempt}/{policy.attempts}), retrying in {wait_time:.1f}s: {e}")
            await sleep(wait_time)
