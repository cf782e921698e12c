"""Retry logic with exponential backoff."""

import logging
import time
from typing import Callable, TypeVar

from ..exceptions import TransferExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry(
    max_attempts: int,
    base_delay: float,
    operation: Callable[[], T],
    description: str = "Operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Execute an operation, retrying every failure with exponential backoff.

    The delay starts at ``base_delay`` and doubles after each failed
    attempt. There is no jitter and no upper bound, so callers must pick
    a sane base delay for their ``max_attempts``. No sleep happens after
    the final attempt.

    Args:
        max_attempts: Maximum number of calls (at least 1)
        base_delay: Seconds to wait after the first failure
        operation: Callable to execute
        description: Label used in log messages
        sleep: Sleep function, injectable for tests

    Returns:
        Result of the first successful call

    Raises:
        TransferExhaustedError: If every attempt failed; chained from the
            last underlying error
        ValueError: If max_attempts is smaller than 1
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    delay = base_delay
    attempt = 1

    while True:
        try:
            return operation()
        except Exception as e:
            if attempt >= max_attempts:
                raise TransferExhaustedError(max_attempts, e) from e
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}): "
                f"{e} - retrying in {delay:.1f}s"
            )
        sleep(delay)
        delay *= 2
        attempt += 1
