"""
OpsLink Hosting - Bounded retry with exponential backoff
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, TypeVar

from opslink.config import Settings
from opslink.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 3.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0 or self.multiplier < 1:
            raise ValueError("initial_delay must be >= 0 and multiplier >= 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.PROVISION_MAX_ATTEMPTS,
            initial_delay=settings.PROVISION_INITIAL_DELAY_SECONDS,
            multiplier=settings.PROVISION_BACKOFF_MULTIPLIER,
        )

    def delays(self) -> Iterator[float]:
        """Sleep durations between attempts (max_attempts - 1 of them)."""
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            yield delay
            delay *= self.multiplier


def call_with_retry(
    func: Callable[[int], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    """
    Call func(attempt) until it succeeds or policy.max_attempts is reached.

    Every exception counts as a failed attempt. Raises RetryExhaustedError
    carrying the last error once the bound is hit.
    """
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            return func(attempt)
        except Exception as e:
            delay = next(delays, None)
            if delay is None:
                logger.error(f"Attempt {attempt}/{policy.max_attempts} failed, giving up: {e}")
                raise RetryExhaustedError(attempt, e) from e
            logger.warning(f"Attempt {attempt}/{policy.max_attempts} failed, retrying in {delay:.1f}s: {e}")
            if on_retry:
                on_retry(attempt, e, delay)
            sleep(delay)
