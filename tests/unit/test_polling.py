"""Unit tests for await_terminal_state: bounded poll with cancel-on-timeout."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from agentic_trader.polling import PollTimeoutError, await_terminal_state


class TestAwaitTerminalState:
    async def test_returns_first_terminal_result(self):
        poll = AsyncMock(side_effect=["pending", "pending", "filled"])
        result = await await_terminal_state(
            poll, lambda s: s == "filled", timeout=1.0, interval=0.01
        )
        assert result == "filled"
        assert poll.await_count == 3

    async def test_immediately_terminal_polls_once(self):
        poll = AsyncMock(return_value="filled")
        await await_terminal_state(poll, lambda s: s == "filled", timeout=1.0, interval=0.01)
        assert poll.await_count == 1

    async def test_timeout_cancels_and_raises(self):
        poll = AsyncMock(return_value="pending")
        cancel = AsyncMock()
        with pytest.raises(PollTimeoutError):
            await await_terminal_state(
                poll,
                lambda s: s == "filled",
                timeout=0.05,
                interval=0.01,
                on_timeout=cancel,
                label="order 42",
            )
        cancel.assert_awaited_once()

    async def test_cancel_failure_still_raises_timeout(self):
        poll = AsyncMock(return_value="pending")
        cancel = AsyncMock(side_effect=RuntimeError("cancel rejected"))
        with pytest.raises(PollTimeoutError):
            await await_terminal_state(
                poll, lambda s: False, timeout=0.05, interval=0.01, on_timeout=cancel
            )

    async def test_poll_exception_propagates(self):
        poll = AsyncMock(side_effect=ConnectionError("rpc gone"))
        cancel = AsyncMock()
        with pytest.raises(ConnectionError):
            await await_terminal_state(
                poll, lambda s: True, timeout=1.0, interval=0.01, on_timeout=cancel
            )
        cancel.assert_not_awaited()

    def test_poll_timeout_is_a_timeout_error(self):
        assert issubclass(PollTimeoutError, TimeoutError)
