"""
Retry with exponential backoff for async operations.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger("utils.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry behavior.

    ``max_retries`` counts retries after the first attempt, so the operation
    runs at most ``max_retries + 1`` times. The wait before retry ``n`` is
    ``base_delay * 2**(n - 1)`` capped at ``max_delay``.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)


def _log_retry(retry_state) -> None:
    logger.warning(
        f"Attempt {retry_state.attempt_number} failed, retrying in "
        f"{retry_state.next_action.sleep:.2f}s: {retry_state.outcome.exception()}"
    )


async def retry_async(fn: Callable[[], Awaitable[T]], config: RetryConfig = RetryConfig()) -> T:
    """
    Call ``fn`` until it succeeds or retries are exhausted.

    Raises:
        Exception: The error from the last attempt
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(config.max_retries + 1),
        wait=wait_exponential(multiplier=config.base_delay, max=config.max_delay),
        retry=retry_if_exception_type(config.retry_on),
        before_sleep=_log_retry,
        reraise=True,
    )
    return await retrying(fn)
