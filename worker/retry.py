"""
Retry policy — decides whether a failed external call gets another attempt.

Two outcomes for each failure:
1. kind is retryable and attempts remain → wait, then call again
2. kind is non-retryable, or attempts are exhausted → re-raise

Backoff is exponential:

    attempt 1 fails → sleep base_delay * 1
    attempt 2 fails → sleep base_delay * 2
    attempt 3 fails → give up (max_attempts = 3)

Non-retryable kinds are the ones where trying again cannot help: bad
credentials, a request the provider rejects, a response with nothing in it.
Rate limits, timeouts, dropped connections and provider 5xx are transient.

The policy knows nothing about OpenAI or analysis jobs. It wraps any async
callable that raises ExternalServiceError, and its `sleep` is injectable so
tests can run the whole schedule without waiting.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from models.enums import ExternalErrorKind
from models.errors import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_NON_RETRYABLE = frozenset({
    ExternalErrorKind.AUTHENTICATION,
    ExternalErrorKind.MALFORMED_REQUEST,
    ExternalErrorKind.MALFORMED_RESPONSE,
})


class RetryPolicy:

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        non_retryable: Optional[Iterable[ExternalErrorKind]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.non_retryable = (
            frozenset(non_retryable) if non_retryable is not None else DEFAULT_NON_RETRYABLE
        )
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return self.base_delay * (2 ** (attempt - 1))

    def is_retryable(self, error: ExternalServiceError) -> bool:
        return error.kind not in self.non_retryable

    async def run(self, fn: Callable[..., Awaitable[T]], *args) -> T:
        """
        Await fn(*args) under this policy.

        Raises:
            the last ExternalServiceError, with `attempts` set to how many
            calls were made. Any other exception propagates immediately.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await fn(*args)
            except ExternalServiceError as e:
                e.attempts = attempt
                if not self.is_retryable(e) or attempt >= self.max_attempts:
                    if attempt > 1:
                        logger.warning(
                            f"Giving up after {attempt}/{self.max_attempts} attempts: {e}"
                        )
                    raise

                delay = self.delay_for(attempt)
                logger.info(
                    f"Attempt {attempt}/{self.max_attempts} failed ({e.kind.value}), "
                    f"retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
