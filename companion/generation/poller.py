"""
Async Task Poller - bounded fixed-interval polling for providers that hand back a task id

All loop state (attempt counter, last status) is local to one call, so
concurrent generations never share polling state. Worst-case wait is
``max_attempts * interval_seconds``; no sleep follows the final attempt.
"""

from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, Optional

from companion.utils.logging import get_logger
from .types import PollResult, ProviderErrorType, TaskHandle, TaskState, TaskStatus

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 30
DEFAULT_INTERVAL_SECONDS = 2.0

FetchStatus = Callable[[TaskHandle], Awaitable[TaskStatus]]


async def sleep_or_cancel(interval_seconds: float, cancel_event: Optional[asyncio.Event]) -> bool:
    """Sleep for the interval; return True if the cancel signal fired first"""
    if cancel_event is None:
        await asyncio.sleep(interval_seconds)
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=interval_seconds)
        return True
    except asyncio.TimeoutError:
        return False


async def poll(
    handle: TaskHandle,
    fetch_status: FetchStatus,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    cancel_event: Optional[asyncio.Event] = None,
) -> PollResult:
    """
    Poll a provider task until it reaches a terminal state or the budget runs out.

    Args:
        handle: Task to observe
        fetch_status: Coroutine returning the task's current TaskStatus
        max_attempts: Exact number of fetch_status calls before giving up
        interval_seconds: Fixed delay between attempts
        cancel_event: Set by the owner to stop scheduling further work

    Returns:
        PollResult; success carries the provider payload, failure carries
        TIMEOUT, PROVIDER_ERROR or CANCELLED.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    task_ref = f"{handle.provider_id.value}:{handle.external_task_id}"
    last_state: Optional[TaskState] = None

    for attempt in range(1, max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Polling cancelled - task: {task_ref}, attempts: {attempt - 1}")
            return PollResult(
                success=False,
                attempts=attempt - 1,
                reason=ProviderErrorType.CANCELLED,
                message="Polling cancelled by owner",
            )

        try:
            status = await fetch_status(handle)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # A failed status fetch consumes an attempt but is not terminal
            logger.warning(f"Polling error - task: {task_ref}, attempt: {attempt}: {e}")
            status = TaskStatus.pending()

        if status.state != last_state:
            logger.debug(f"Task state - task: {task_ref}, {last_state.value if last_state else 'init'} -> {status.state.value}")
            last_state = status.state

        if status.state is TaskState.SUCCEEDED:
            return PollResult(success=True, attempts=attempt, payload=status.payload)

        if status.state is TaskState.FAILED:
            return PollResult(
                success=False,
                attempts=attempt,
                reason=ProviderErrorType.PROVIDER_ERROR,
                message=status.reason or "Task failed",
            )

        if attempt < max_attempts:
            if await sleep_or_cancel(interval_seconds, cancel_event):
                logger.info(f"Polling cancelled - task: {task_ref}, attempts: {attempt}")
                return PollResult(
                    success=False,
                    attempts=attempt,
                    reason=ProviderErrorType.CANCELLED,
                    message="Polling cancelled by owner",
                )

    logger.warning(f"Polling timed out - task: {task_ref}, attempts: {max_attempts}")
    return PollResult(
        success=False,
        attempts=max_attempts,
        reason=ProviderErrorType.TIMEOUT,
        message=f"Task {handle.external_task_id} timed out after {max_attempts * interval_seconds:.0f} seconds",
    )
