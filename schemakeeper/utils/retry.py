"""Retry policy for transient connection failures."""
import logging
from typing import Any, Callable

from sqlalchemy.exc import InterfaceError, OperationalError
from tenacity import (
    AsyncRetrying,
    after_log,
    before_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


# Errors raised while a connection is being established that may go away on retry
TRANSIENT_EXCEPTIONS = (
    OSError,
    TimeoutError,
    OperationalError,
    InterfaceError,
)


def connect_retrying(
    max_attempts: int = 3,
    wait_multiplier: float = 0.5,
    wait_max: float = 5,
) -> AsyncRetrying:
    """
    Build an async retry controller for connection acquisition.

    Only wrap the act of connecting with this: statements executed on an
    open connection must never be retried.

    Args:
        max_attempts: Maximum number of attempts, including the first one
        wait_multiplier: Multiplier for exponential backoff
        wait_max: Maximum wait time between attempts
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=wait_multiplier, max=wait_max),
        retry=retry_if_exception_type(TRANSIENT_EXCEPTIONS),
        before=before_log(logger, logging.DEBUG),
        after=after_log(logger, logging.WARNING),
        reraise=True,
    )


async def call_with_retry(
    func: Callable,
    *args: Any,
    max_attempts: int = 3,
    wait_multiplier: float = 0.5,
    wait_max: float = 5,
    **kwargs: Any,
) -> Any:
    """Await ``func(*args, **kwargs)`` under the connection retry policy."""
    retrying = connect_retrying(max_attempts=max_attempts, wait_multiplier=wait_multiplier, wait_max=wait_max)
    async for attempt in retrying:
        with attempt:
            return await func(*args, **kwargs)
