"""Retry helper for transient upstream failures."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Tuple, Type
import structlog

from app.config import settings

logger = structlog.get_logger(__name__)


async def retry_with_backoff(
    func: Callable[..., Awaitable[Any]],
    *args,
    max_retries: Optional[int] = None,
    retry_on: Tuple[Type[BaseException], ...] = (),
    **kwargs,
) -> Any:
    """
    Retry an async function with exponential backoff.

    Only exceptions listed in `retry_on` are retried; anything else propagates
    immediately.

    Args:
        func: Async function to retry
        *args: Function args
        max_retries: Maximum attempts (defaults to settings.max_retries)
        retry_on: Exception types considered transient
        **kwargs: Function kwargs

    Returns:
        Function result

    Raises:
        Exception: The last transient error once attempts are exhausted
    """
    attempts = max(1, max_retries if max_retries is not None else settings.max_retries)

    for attempt in range(attempts):
        try:
            return await func(*args, **kwargs)
        except retry_on as e:
            if attempt >= attempts - 1:
                raise

            backoff = min(
                settings.retry_backoff_base_seconds * (2 ** attempt),
                settings.retry_backoff_max_seconds,
            )
            retry_after = getattr(e, "retry_after", None)
            if retry_after:
                backoff = max(backoff, float(retry_after))
            else:
                # Add jitter
                backoff = backoff * (0.5 + 0.5 * (time.time() % 1))

            logger.warning(
                "retrying_after_transient_error",
                func=getattr(func, "__name__", repr(func)),
                attempt=attempt + 1,
                max_retries=attempts,
                backoff=backoff,
                error=str(e),
            )
            await asyncio.sleep(backoff)
