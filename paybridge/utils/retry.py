"""
Bounded exponential-backoff retry for any awaitable operation.

delay(attempt) = min(initial_delay * multiplier ** attempt, max_delay), attempt counted from 0.
The operation runs at most max_retries + 1 times; the last error is re-raised on exhaustion.
Delays use asyncio.sleep so other in-flight webhooks keep being served.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from paybridge.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryObserver = Callable[[int, Exception], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 30.0
    multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            initial_delay=settings.retry_initial_delay_ms / 1000,
            max_delay=settings.retry_max_delay_ms / 1000,
            multiplier=settings.retry_backoff_multiplier,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows zero-based *attempt*."""
        return min(self.initial_delay * (self.multiplier ** attempt), self.max_delay)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    on_retry: Optional[RetryObserver] = None,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run *operation* until it succeeds or the policy is exhausted.

    on_retry(attempt_number, error) runs before each retry (attempt_number is 1-based).
    Its own failures are logged and swallowed - they never abort the retry loop.
    """
    last_error: Optional[Exception] = None

    for attempt in range(policy.max_attempts):
        try:
            result = await operation()
            if attempt > 0:
                logger.info("%s succeeded on attempt %d", description, attempt + 1)
            return result
        except Exception as e:
            last_error = e

            if attempt >= policy.max_retries:
                logger.error(
                    "%s failed: all %d attempts exhausted: %s",
                    description, policy.max_attempts, str(e),
                )
                break

            delay = policy.delay_for(attempt)
            logger.warning(
                "%s attempt %d/%d failed, retrying in %.2fs: %s",
                description, attempt + 1, policy.max_attempts, delay, str(e),
            )

            if on_retry is not None:
                try:
                    await on_retry(attempt + 1, e)
                except Exception as observer_error:
                    logger.warning(
                        "Retry observer for %s failed: %s", description, str(observer_error)
                    )

            await sleep(delay)

    assert last_error is not None
    raise last_error
