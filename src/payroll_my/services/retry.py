"""Retry with exponential backoff for transient store failures."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError

from payroll_my.config import get_settings
from payroll_my.exceptions import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (OperationalError, TransientStoreError)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    key: tuple[object, ...],
    attempts: int | None = None,
    base_delay: float | None = None,
) -> T:
    """Run ``operation`` retrying transient store errors.

    ``operation`` must be idempotent for ``key`` (typically
    ``(run_id, employee_id, operation_name)``): each call opens its own
    transaction. The delay doubles per attempt; after ``attempts`` tries the
    last error propagates.
    """
    settings = get_settings()
    attempts = attempts if attempts is not None else settings.store_retry_attempts
    base_delay = base_delay if base_delay is not None else settings.store_retry_base_delay
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except RETRYABLE_ERRORS as e:
            if attempt >= attempts:
                logger.error("Giving up on %s after %d attempts: %s", key, attempt, e)
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "Transient store error on %s (attempt %d/%d), retrying in %.3fs: %s",
                key,
                attempt,
                attempts,
                delay,
                e,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
