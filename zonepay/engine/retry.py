"""
Exponential backoff retry logic for payment provider calls.

Only retriable failures are retried: 429 rate limits, 5xx responses, and
transport errors/timeouts. Callers must make the retried call idempotent;
for request-to-pay that means reusing the same X-Reference-Id on every
attempt so the provider never sees two distinct payment instructions.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from zonepay.engine.errors import ProviderError

logger = logging.getLogger("zonepay.retry")

RETRIABLE_STATUS_CODES = {429, 500, 502, 503, 504}
MAX_RETRIES = 2
BASE_DELAY = 0.5
MAX_DELAY = 10.0


def is_retriable_status(status_code: Optional[int]) -> bool:
    return status_code in RETRIABLE_STATUS_CODES


async def with_retry(
    func: Callable[..., Any],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with exponential backoff on retriable errors.

    Args:
        func: Async callable to execute.
        max_retries: Maximum number of retry attempts (0 disables retrying).
        base_delay: Delay before the first retry, doubled on each attempt.

    Returns:
        The result of the function call.

    Raises:
        ProviderError: On a non-retriable failure or once retries are exhausted.
    """
    delay = base_delay

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except ProviderError as e:
            if not e.retriable:
                raise

            if attempt >= max_retries:
                if max_retries:
                    logger.error("Exhausted %d retries for provider call: %s", max_retries, e)
                raise

            sleep_for = min(delay, MAX_DELAY)
            logger.warning(
                "Retriable error on attempt %d/%d: %s - sleeping %.1fs",
                attempt + 1,
                max_retries + 1,
                e,
                sleep_for,
            )
            await asyncio.sleep(sleep_for)
            delay = min(delay * 2, MAX_DELAY)

    raise ProviderError("Unknown error after retries")
