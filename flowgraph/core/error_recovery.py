"""Retry support for storage writes.

Node executors are never retried by the engine; a failed node ends its run.
"""

import logging
import random
import time
from typing import Callable, Any, Optional, List, Type
from functools import wraps

from .exceptions import FlowGraphError, TransientError, StorageError
from .logging import get_logger, log_with_context


logger = get_logger(__name__)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.1,
        max_delay: float = 5.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Optional[List[Type[Exception]]] = None
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions or [TransientError, StorageError]

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if an exception should be retried."""
        if attempt >= self.max_attempts:
            return False

        if not any(isinstance(exception, exc_type) for exc_type in self.retryable_exceptions):
            return False

        if isinstance(exception, FlowGraphError):
            return exception.recoverable

        return True

    def get_delay(self, attempt: int) -> float:
        """Calculate the backoff delay before the next attempt."""
        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)

        return delay


def with_retry(config: Optional[RetryConfig] = None):
    """Decorator retrying a function on recoverable storage errors."""
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            return _execute_with_retry(func, config, *args, **kwargs)
        return wrapper

    return decorator


def _execute_with_retry(func: Callable, config: RetryConfig, *args, **kwargs) -> Any:
    operation = func.__name__

    attempt = 1
    while True:
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            if not config.should_retry(e, attempt):
                if attempt > 1:
                    log_with_context(
                        logger, logging.ERROR, f"Giving up on {operation} after {attempt} attempts",
                        operation=operation, attempts=attempt, error_type=type(e).__name__,
                    )
                raise
            delay = config.get_delay(attempt)
            log_with_context(
                logger, logging.WARNING,
                f"{operation} failed ({type(e).__name__}: {e}); attempt {attempt}/{config.max_attempts}, "
                f"retrying in {delay:.2f}s",
                operation=operation, attempts=attempt, error_type=type(e).__name__,
            )
            time.sleep(delay)
            attempt += 1
            continue

        if attempt > 1:
            log_with_context(
                logger, logging.INFO, f"{operation} succeeded on attempt {attempt}",
                operation=operation, attempts=attempt,
            )
        return result
