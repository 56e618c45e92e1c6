"""
Bounded exponential backoff around provider calls.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from encyclopedia.errors import ProviderError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryObserver = Callable[[int, float, TransientError], None]

DEFAULT_ATTEMPTS = 3
BASE_DELAY_SECONDS = 2.0

QUOTA_HINT = (
    "Please wait, or switch to 'Llama 3 (Local)' in Settings for unlimited usage."
)


class RetryController:
    """Retries TransientError with 2s, 4s, 8s... waits; everything else propagates."""

    def __init__(
        self,
        attempts: int = DEFAULT_ATTEMPTS,
        base_delay: float = BASE_DELAY_SECONDS,
        on_retry: Optional[RetryObserver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        exhausted_hint: str = QUOTA_HINT,
    ):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.attempts = attempts
        self.base_delay = base_delay
        self.on_retry = on_retry
        self.exhausted_hint = exhausted_hint
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Wait before retrying after the given 0-based failed attempt."""
        return self.base_delay * (2 ** attempt)

    async def run(self, call: Callable[[], Awaitable[T]], *, label: str = "Provider") -> T:
        """
        Invoke call until it succeeds or the budget is spent.

        Args:
            call: Zero-argument coroutine factory; a fresh coroutine per attempt
            label: Provider name used in logs and the exhausted-budget message

        Raises:
            ProviderError: budget exhausted on TransientError (with remediation hint)
            Any non-transient error from call, unchanged, on first occurrence
        """
        last_error: Optional[TransientError] = None
        for attempt in range(self.attempts):
            try:
                return await call()
            except TransientError as e:
                last_error = e
                logger.warning("%s attempt %d/%d failed: %s", label, attempt + 1, self.attempts, e)
                if attempt == self.attempts - 1:
                    break
                delay = self.delay_for(attempt)
                logger.info("Rate limit hit. Retrying in %dms...", int(delay * 1000))
                if self.on_retry:
                    self.on_retry(attempt + 1, delay, e)
                await self._sleep(delay)

        raise ProviderError(
            f"{label} Quota Exceeded. {self.exhausted_hint}",
            status=last_error.status if last_error else None,
        ) from last_error
