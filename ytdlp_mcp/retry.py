"""Bounded retry with linear backoff for classified failures."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from ytdlp_mcp.errors import ErrorKind, ToolFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
) -> T:
    """
    Run ``operation`` until it succeeds or the attempt budget is spent.

    A ToolFailure marked non-retryable propagates on first occurrence. Any
    other failure is retried after ``base_delay * attempt`` seconds. When the
    last attempt fails, a non-retryable ToolFailure wrapping the last message
    and the attempt count is raised.

    Args:
        operation: Zero-argument callable returning an awaitable
        max_attempts: Maximum number of invocations of ``operation``
        base_delay: Backoff unit in seconds

    Returns:
        The value produced by the first successful attempt
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except ToolFailure as e:
            if not e.retryable:
                raise
            last_error: Exception = e
        except Exception as e:
            last_error = e

        if attempt == max_attempts:
            break

        delay = base_delay * attempt
        logger.warning(
            f"Attempt {attempt}/{max_attempts} failed: {last_error}. "
            f"Retrying in {delay:.2f}s..."
        )
        await asyncio.sleep(delay)

    message = getattr(last_error, "message", None) or str(last_error)
    raise ToolFailure(
        f"Operation failed after {max_attempts} attempts: {message}",
        ErrorKind.unclassified,
        retryable=False,
        attempts=max_attempts,
    ) from last_error
