"""
Bounded retry with exponential backoff.

A failed attempt is either an exception from the wrapped call or a result the
``accept`` predicate rejects. Sleeps only happen between attempts, so with the
default three attempts the total delay before giving up is ``base + 2 * base``.
"""

import logging
import time
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 5.0


class RetryExhausted(Exception):
    """Raised when every attempt of a retried call failed."""

    def __init__(self, description: str, attempts: int, last_error: Optional[BaseException] = None):
        message = f"Failed to {description} after {attempts} attempts"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


class RetryPolicy:
    """Retry a callable a fixed number of times, doubling the delay each time."""

    def __init__(
        self,
        attempts: int = DEFAULT_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    ):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.base_delay = base_delay
        self.sleep = sleep
        self.retry_on = retry_on

    @classmethod
    def from_settings(cls, settings, sleep: Callable[[float], None] = time.sleep) -> "RetryPolicy":
        return cls(attempts=settings.RETRY_MAX, base_delay=settings.RETRY_DELAY, sleep=sleep)

    def delays(self) -> list[float]:
        """Delays slept between consecutive attempts."""
        return [self.base_delay * (2 ** i) for i in range(self.attempts - 1)]

    def call(
        self,
        func: Callable[[], Any],
        description: str,
        accept: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """
        Run *func* until it succeeds or the attempt budget is spent.

        Args:
            func: Zero-argument callable to run
            description: Human readable action, used in log lines ("fetch license")
            accept: Optional predicate; a result it rejects counts as a failure

        Returns:
            The first accepted result

        Raises:
            RetryExhausted: If no attempt succeeded
        """
        delay = self.base_delay
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.attempts + 1):
            try:
                result = func()
            except self.retry_on as e:
                last_error = e
                logger.debug(f"{description} raised: {e}")
            else:
                if accept is None or accept(result):
                    return result
                last_error = None

            logger.warning(f"Failed to {description} (attempt {attempt}/{self.attempts})")
            if attempt < self.attempts:
                logger.info(f"Retrying in {delay:g}s...")
                self.sleep(delay)
                delay *= 2

        raise RetryExhausted(description, self.attempts, last_error)
