"""Retry remote calls with exponential backoff and jitter."""
import logging
import random
import time
from typing import Any, Callable, Optional

from lokalise_manager.errors import RetriesExhaustedError, is_transient

logger = logging.getLogger(__name__)

# Delays are expressed in seconds.
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_CAP = 32.0
DEFAULT_JITTER_RANGE = 1.0


class BackoffExecutor:
    """
    Runs an operation and retries it with exponential backoff and jitter
    whenever it fails with a transient error (rate limiting, malformed response).

    Args:
        base (float): The base delay in seconds.
        cap (float): The maximum delay in seconds, jitter excluded.
        jitter (float): Upper bound (exclusive) of the random jitter added to every delay.
        sleep_func (Optional[Callable]): Replacement for time.sleep.
        random_func (Optional[Callable]): Replacement for random.uniform.
    """

    def __init__(self, base: float = DEFAULT_BACKOFF_BASE, cap: float = DEFAULT_BACKOFF_CAP,
                 jitter: float = DEFAULT_JITTER_RANGE, sleep_func: Optional[Callable[[float], Any]] = None,
                 random_func: Optional[Callable[[float, float], float]] = None):
        self.base = base
        self.cap = cap
        self.jitter = jitter
        self._sleep = sleep_func or time.sleep
        self._random = random_func or random.uniform

    def delay_for(self, attempt: int) -> float:
        """Return the delay to wait after the given zero-based attempt."""
        delay = min(self.base * (2 ** attempt), self.cap)
        if self.jitter > 0:
            delay += self._random(0, self.jitter)
        return delay

    def sleep(self, attempt: int) -> float:
        delay = self.delay_for(attempt)
        self._sleep(delay)
        return delay

    def run(self, operation: Callable[[], Any], max_retries: int) -> Any:
        """
        Call `operation` until it succeeds, retrying transient failures.

        Args:
            operation (Callable): A zero-argument callable performing the remote call.
            max_retries (int): How many times a transient failure may be retried.
                Negative values behave like 0.

        Returns:
            Whatever `operation` returns.

        Raises:
            RetriesExhaustedError: When a transient failure persists after `max_retries` retries.
            Exception: Any non-transient failure, unchanged.
        """
        max_retries = max(max_retries or 0, 0)
        attempt = 0
        while True:
            try:
                return operation()
            except Exception as exc:
                if not is_transient(exc):
                    raise
                if attempt >= max_retries:
                    logger.error("Giving up after %d retries: %s - %s",
                                 attempt, exc.__class__.__name__, exc)
                    raise RetriesExhaustedError(exc, retries=attempt, attempts=attempt + 1) from exc
                delay = self.sleep(attempt)
                attempt += 1
                logger.warning("%s: %s. Retrying in %.2f seconds (Attempt %d/%d)",
                               exc.__class__.__name__, exc, delay, attempt, max_retries)
