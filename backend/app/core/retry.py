"""Retry with exponential backoff for flaky external calls"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable_status(status_code: int) -> bool:
    """Rate limiting and server-side failures"""
    return status_code == 429 or 500 <= status_code < 600


def _log_retry(label: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        logger.info(
            "%s failed (%s), retry %d/%d in %.1fs",
            label, state.outcome.exception(), state.attempt_number, max_attempts - 1,
            state.next_action.sleep
        )
    return before_sleep


async def retry_with_backoff(
    call: Callable[[], Awaitable[T]],
    is_retryable: Callable[[BaseException], bool],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "request",
) -> T:
    """Await call() up to max_attempts times.

    Waits base_delay * 2**(attempt - 1) between attempts. Non-retryable errors
    and the error of the last attempt propagate unchanged.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception(is_retryable),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay),
        sleep=sleep,
        before_sleep=_log_retry(label, max_attempts),
        reraise=True,
    )
    return await retrying(call)
