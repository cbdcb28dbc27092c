"""
Tests for the retry executor in ytdlp_mcp/retry.py.

asyncio.sleep is patched so the backoff schedule can be asserted without
waiting.
"""

from unittest.mock import AsyncMock, call, patch

import pytest

from ytdlp_mcp.errors import ErrorKind, ToolFailure
from ytdlp_mcp.retry import with_retry


def flaky(failures: list[Exception], result="ok"):
    """Build an operation that raises each failure in turn, then returns result."""
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if failures:
            raise failures.pop(0)
        return result

    return operation, calls


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        operation, calls = flaky([])
        with patch("ytdlp_mcp.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await with_retry(operation) == "ok"
        assert calls["count"] == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_two_retryable_failures_then_success(self):
        operation, calls = flaky(
            [
                ToolFailure("connection reset", ErrorKind.network_error),
                ToolFailure("connection reset", ErrorKind.network_error),
            ]
        )
        with patch("ytdlp_mcp.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await with_retry(operation, max_attempts=3, base_delay=1.0) == "ok"
        assert calls["count"] == 3
        # Linear backoff: one unit, then two
        assert sleep.await_args_list == [call(1.0), call(2.0)]

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self):
        failure = ToolFailure("Video not found", ErrorKind.target_not_found)
        operation, calls = flaky([failure])
        with patch("ytdlp_mcp.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ToolFailure) as exc_info:
                await with_retry(operation, max_attempts=5)
        assert exc_info.value is failure
        assert calls["count"] == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_unclassified_exceptions_are_retried(self):
        operation, calls = flaky([RuntimeError("boom")])
        with patch("ytdlp_mcp.retry.asyncio.sleep", new_callable=AsyncMock):
            assert await with_retry(operation) == "ok"
        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_exhaustion_wraps_last_failure(self):
        last = ToolFailure("still down", ErrorKind.network_error)
        operation, calls = flaky(
            [ToolFailure("down", ErrorKind.network_error), last], result=None
        )
        with patch("ytdlp_mcp.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ToolFailure) as exc_info:
                await with_retry(operation, max_attempts=2, base_delay=0.5)

        error = exc_info.value
        assert calls["count"] == 2
        assert error.message == "Operation failed after 2 attempts: still down"
        assert error.kind is ErrorKind.unclassified
        assert error.retryable is False
        assert error.attempts == 2
        assert error.__cause__ is last
        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_exhaustion_with_plain_exception_message(self):
        operation, _ = flaky([ValueError("bad"), ValueError("worse")])
        with patch("ytdlp_mcp.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ToolFailure, match="Operation failed after 2 attempts: worse"):
                await with_retry(operation, max_attempts=2)

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self):
        operation, calls = flaky([RuntimeError("boom")])
        with patch("ytdlp_mcp.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ToolFailure):
                await with_retry(operation, max_attempts=1)
        assert calls["count"] == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_attempt_budget(self):
        operation, calls = flaky([])
        with pytest.raises(ValueError):
            await with_retry(operation, max_attempts=0)
        assert calls["count"] == 0
