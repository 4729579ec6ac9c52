"""Retry policies and the retry executor used by every cloudrpc call."""

import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Callable, FrozenSet, Optional, TypeVar

import structlog

from .exceptions import (
    RETRYABLE_CODES,
    UNKNOWN_CODE,
    CancelledError,
    ServiceError,
    classify,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RetryStrategy(Enum):
    """Retry strategy types."""
    EXPONENTIAL_BACKOFF = "exponential_backoff"
    LINEAR_BACKOFF = "linear_backoff"
    CONSTANT = "constant"


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts, first one included (default: 6)
        initial_backoff: Initial backoff delay in seconds (default: 1.0)
        max_backoff: Maximum backoff delay in seconds (default: 32.0)
        backoff_multiplier: Backoff multiplier for exponential strategy (default: 2.0)
        jitter: Add random jitter to backoff (default: True)
        strategy: Retry strategy to use (default: EXPONENTIAL_BACKOFF)
        total_timeout: Give up once this many seconds have elapsed, 0 for no
            limit (default: 50.0)
        retryable_codes: Status codes worth retrying (default: 500, 502, 503, 504)
    """
    max_attempts: int = 6
    initial_backoff: float = 1.0
    max_backoff: float = 32.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF
    total_timeout: float = 50.0
    retryable_codes: FrozenSet[int] = RETRYABLE_CODES

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_backoff < 0:
            raise ValueError("initial_backoff must be >= 0")
        if self.max_backoff < 0:
            raise ValueError("max_backoff must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if self.total_timeout < 0:
            raise ValueError("total_timeout must be >= 0")
        object.__setattr__(self, "retryable_codes", frozenset(self.retryable_codes))

    @classmethod
    def no_retries(cls) -> "RetryPolicy":
        return cls(max_attempts=1, initial_backoff=0.0, jitter=False)

    def should_retry(self, error: ServiceError, attempt: int) -> bool:
        """Check if an error should trigger a retry.

        Args:
            error: The classified error
            attempt: Current attempt number (0-indexed)

        Returns:
            True if should retry, False otherwise
        """
        if attempt + 1 >= self.max_attempts:
            return False

        if not error.retryable:
            return False

        # Unknown outcome: only safe to repeat idempotent calls
        if error.code == UNKNOWN_CODE and not error.idempotent:
            return False

        return True

    def get_backoff_delay(self, attempt: int) -> float:
        """Calculate backoff delay for the given attempt.

        Args:
            attempt: Attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        if self.strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
            delay = self.initial_backoff * (self.backoff_multiplier ** attempt)
        elif self.strategy == RetryStrategy.LINEAR_BACKOFF:
            delay = self.initial_backoff * (attempt + 1)
        else:  # CONSTANT
            delay = self.initial_backoff

        if self.jitter:
            delay = delay * (0.5 + random.random())

        return min(delay, self.max_backoff)


class RetryExecutor:
    """Runs single RPC attempts under a retry policy.

    Example:
        >>> executor = RetryExecutor(RetryPolicy(max_attempts=3))
        >>> dataset = executor.execute(lambda: transport.call("GET", path), idempotent=True)
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.policy = policy or RetryPolicy()
        self._clock = clock

    def execute(
        self,
        call: Callable[[], T],
        idempotent: bool,
        policy: Optional[RetryPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> T:
        """Run ``call`` until it succeeds or the policy gives up.

        Args:
            call: Performs exactly one attempt
            idempotent: Whether repeating the call after an unknown outcome is safe
            policy: Overrides the executor's policy for this call
            cancel_event: Set it to stop retrying at the next backoff

        Returns:
            Whatever ``call`` returns

        Raises:
            ServiceError: The last classified failure
            CancelledError: If ``cancel_event`` was set during a backoff
        """
        policy = policy or self.policy
        sleeper = cancel_event or threading.Event()
        start = self._clock()
        attempt = 0

        while True:
            if sleeper.is_set():
                raise CancelledError("Retry cancelled")
            try:
                return call()
            except Exception as e:
                error = classify(e, idempotent, policy.retryable_codes)

            if not policy.should_retry(error, attempt):
                if attempt > 0:
                    logger.warning(
                        "rpc_retries_exhausted",
                        attempts=attempt + 1,
                        code=error.code,
                        retryable=error.retryable,
                    )
                raise error

            delay = policy.get_backoff_delay(attempt)
            elapsed = self._clock() - start
            if policy.total_timeout and elapsed + delay > policy.total_timeout:
                logger.warning(
                    "rpc_retry_timeout",
                    attempts=attempt + 1,
                    elapsed=round(elapsed, 3),
                    code=error.code,
                )
                raise error

            logger.debug(
                "rpc_retry",
                attempt=attempt + 1,
                delay=round(delay, 3),
                code=error.code,
                message=error.message,
            )
            if sleeper.wait(delay):
                raise CancelledError("Retry cancelled") from error
            attempt += 1


def execute(
    call: Callable[[], T],
    idempotent: bool,
    policy: Optional[RetryPolicy] = None,
) -> T:
    """Run ``call`` with a one-off RetryExecutor."""
    return RetryExecutor(policy).execute(call, idempotent)


def with_retry(retry_policy: Optional[RetryPolicy] = None, idempotent: bool = True):
    """Decorator to add retry logic to functions.

    Args:
        retry_policy: Retry policy to use (default: RetryPolicy())
        idempotent: Whether the decorated call is safe to repeat

    Example:
        @with_retry(RetryPolicy(max_attempts=5))
        def get_dataset():
            return transport.call("GET", "datasets/sales")
    """
    executor = RetryExecutor(retry_policy)

    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            return executor.execute(lambda: func(*args, **kwargs), idempotent)

        return wrapper
    return decorator
