"""
Tests for the bounded fixed-interval task poller.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from companion.generation.poller import poll
from companion.generation.types import ProviderErrorType, ProviderId, TaskHandle, TaskStatus


@pytest.fixture
def handle():
    return TaskHandle(provider_id=ProviderId.FLUX, external_task_id="task-123")


def pending_then_success(pending_calls: int, payload=None):
    statuses = [TaskStatus.pending()] * pending_calls + [TaskStatus.succeeded(payload or {"sample": "url"})]
    return AsyncMock(side_effect=statuses)


class TestPoll:
    @pytest.mark.asyncio
    async def test_resolves_on_call_after_pending(self, handle):
        """Test N pending reports then success resolves on call N+1."""
        fetch = pending_then_success(4, {"sample": "https://img"})
        result = await poll(handle, fetch, max_attempts=10, interval_seconds=0)
        assert result.success is True
        assert result.payload == {"sample": "https://img"}
        assert result.attempts == 5
        assert fetch.await_count == 5

    @pytest.mark.asyncio
    async def test_never_resolves_times_out_after_exact_attempts(self, handle):
        fetch = AsyncMock(return_value=TaskStatus.pending())
        result = await poll(handle, fetch, max_attempts=7, interval_seconds=0)
        assert result.success is False
        assert result.reason is ProviderErrorType.TIMEOUT
        assert result.attempts == 7
        assert fetch.await_count == 7

    @pytest.mark.asyncio
    async def test_terminal_failure_stops_immediately(self, handle):
        fetch = AsyncMock(side_effect=[TaskStatus.pending(), TaskStatus.failed("Content Moderated")])
        result = await poll(handle, fetch, max_attempts=10, interval_seconds=0)
        assert result.success is False
        assert result.reason is ProviderErrorType.PROVIDER_ERROR
        assert result.message == "Content Moderated"
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_fetch_error_consumes_attempt(self, handle):
        """Test a transient fetch exception counts as a pending attempt."""
        fetch = AsyncMock(side_effect=[ConnectionError("reset"), TaskStatus.succeeded("done")])
        result = await poll(handle, fetch, max_attempts=3, interval_seconds=0)
        assert result.success is True
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts_only(self, handle):
        """Test no sleep follows the final attempt."""
        fetch = AsyncMock(return_value=TaskStatus.pending())
        with patch("companion.generation.poller.asyncio.sleep", new=AsyncMock()) as sleep:
            await poll(handle, fetch, max_attempts=4, interval_seconds=2.0)
        assert sleep.await_count == 3
        sleep.assert_awaited_with(2.0)

    @pytest.mark.asyncio
    async def test_cancelled_before_first_attempt(self, handle):
        cancel = asyncio.Event()
        cancel.set()
        fetch = AsyncMock(return_value=TaskStatus.pending())
        result = await poll(handle, fetch, max_attempts=5, interval_seconds=0, cancel_event=cancel)
        assert result.reason is ProviderErrorType.CANCELLED
        assert result.attempts == 0
        fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_during_wait_stops_polling(self, handle):
        cancel = asyncio.Event()

        async def fetch(_):
            cancel.set()
            return TaskStatus.pending()

        result = await poll(handle, fetch, max_attempts=5, interval_seconds=30, cancel_event=cancel)
        assert result.reason is ProviderErrorType.CANCELLED
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_rejects_non_positive_budget(self, handle):
        with pytest.raises(ValueError):
            await poll(handle, AsyncMock(), max_attempts=0)
