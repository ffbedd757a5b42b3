"""
Bounded retry with exponential backoff for one-shot backend calls.

The delay function and the random source are injectable so tests can run the
loop without sleeping.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

RETRYABLE_MARKERS = ("503", "429", "overloaded", "unavailable")
OVERLOAD_MARKERS = ("503", "overloaded")

logger = logging.getLogger("Retry")


def _error_text(exc: BaseException) -> str:
    return str(exc).lower()


def is_retryable_error(exc: BaseException) -> bool:
    text = _error_text(exc)
    return any(marker in text for marker in RETRYABLE_MARKERS)


def is_overload_error(exc: BaseException) -> bool:
    text = _error_text(exc)
    return any(marker in text for marker in OVERLOAD_MARKERS)


def is_rate_limit_error(exc: BaseException) -> bool:
    return "429" in _error_text(exc)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 2.5
    multiplier: float = 2.5
    jitter: float = 1.0

    def delay_for(self, retry_index: int, rng: random.Random | None = None) -> float:
        """Delay before retry number ``retry_index`` (0-based)."""
        rng = rng or random
        return self.base_delay * self.multiplier ** retry_index + rng.uniform(0, self.jitter)


SUMMARY_RETRY_POLICY = RetryPolicy(max_attempts=5, base_delay=2.5)
SPEECH_RETRY_POLICY = RetryPolicy(max_attempts=4, base_delay=1.2)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy = SUMMARY_RETRY_POLICY,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: random.Random | None = None,
    label: str = "backend call",
) -> T:
    """Run ``operation`` until it succeeds, fails for good, or attempts run out."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt - 1, rng)
            logger.warning(
                f"{label} failed (attempt {attempt}/{policy.max_attempts}): {exc}; "
                f"retrying in {delay:.1f}s"
            )
            await sleep(delay)
