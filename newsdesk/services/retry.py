"""
Retry/backoff executor for single network operations.

Each attempt is bounded by `asyncio.wait_for`; retryable failures (timeouts,
connection errors, 408/429/5xx) back off exponentially before the next
attempt. When retries are exhausted the last error is re-raised for the caller
to record against the circuit breaker.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import aiohttp

from newsdesk.utils.error_monitoring import MalformedPayloadError, SourceFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = {408, 429}


@dataclass
class RetryPolicy:
    """Retry configuration for one class of operation"""
    retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    timeout: float = 30.0

    def backoff(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)


def error_status(error: BaseException) -> Optional[int]:
    status = getattr(error, "status", None)
    return status if isinstance(status, int) else None


def is_retryable_error(error: BaseException) -> bool:
    """Timeouts, connection failures, 408, 429 and 5xx are retryable; other 4xx are not."""
    if isinstance(error, MalformedPayloadError):
        return False
    if isinstance(error, asyncio.TimeoutError):
        return True

    status = error_status(error)
    if status is not None:
        return status in RETRYABLE_STATUSES or 500 <= status < 600

    if isinstance(error, (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, ConnectionError)):
        return True
    if isinstance(error, (SourceFetchError, aiohttp.ClientError)):
        # No status attached: network-level failure
        return True
    return False


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    label: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `operation` with bounded retries and a per-attempt timeout.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry counts and delays
        label: Name used in log messages
        sleep: Injected for tests

    Raises:
        The last error once retries are exhausted or a non-retryable error occurs
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as error:
            if attempt >= policy.retries or not is_retryable_error(error):
                if attempt:
                    logger.warning(f"❌ {label} failed after {attempt + 1} attempts: {error!r}")
                raise

            delay = policy.backoff(attempt)
            retry_after = getattr(error, "retry_after", None)
            if error_status(error) == 429 and retry_after:
                delay = min(float(retry_after), policy.max_delay)

            attempt += 1
            logger.info(
                f"⏳ {label} attempt {attempt}/{policy.retries + 1} failed ({type(error).__name__}: {error}); "
                f"retrying in {delay:.2f}s"
            )
            await sleep(delay)
