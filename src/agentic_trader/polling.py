"""Await an external operation's terminal state with a bounded poll."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_delay, wait_fixed

logger = structlog.get_logger()

T = TypeVar("T")


class PollTimeoutError(TimeoutError):
    """Raised when polling gives up before a terminal state was observed."""


async def await_terminal_state(
    poll: Callable[[], Awaitable[T]],
    is_terminal: Callable[[T], bool],
    *,
    timeout: float,
    interval: float,
    on_timeout: Callable[[], Awaitable[None]] | None = None,
    label: str = "operation",
) -> T:
    """
    Poll `poll()` every `interval` seconds until `is_terminal(result)`.

    Exceptions raised by `poll` propagate immediately. On timeout the
    optional `on_timeout` hook (e.g. cancel the pending order) is awaited,
    then PollTimeoutError is raised.
    """
    retrying = AsyncRetrying(
        stop=stop_after_delay(timeout),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda result: not is_terminal(result)),
    )
    try:
        return await retrying(poll)
    except RetryError:
        logger.warning("poll_timeout", label=label, timeout=timeout)
        if on_timeout is not None:
            try:
                await on_timeout()
            except Exception:
                logger.exception("poll_cancel_failed", label=label)
        raise PollTimeoutError(f"{label} not terminal after {timeout}s") from None
