import asyncio
import inspect

import pytest

from agent_engine.cancellation import CancellationToken, guarded
from agent_engine.exceptions import ExecutionCancelled


async def answer(value, delay=0):
    await asyncio.sleep(delay)
    return value


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.reason is None
        token.raise_if_cancelled()

    def test_first_reason_sticks(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled is True
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.cancel("operator stop")
        with pytest.raises(ExecutionCancelled, match="operator stop"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        token = CancellationToken()
        assert await token.run(answer(42)) == 42

    @pytest.mark.asyncio
    async def test_run_propagates_errors(self):
        async def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await CancellationToken().run(boom())

    @pytest.mark.asyncio
    async def test_run_interrupted_by_cancel(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")

        with pytest.raises(ExecutionCancelled, match="stop"):
            await token.run(answer("late", delay=10))

    @pytest.mark.asyncio
    async def test_run_refuses_after_cancel_and_closes_coroutine(self):
        token = CancellationToken()
        token.cancel()
        coro = answer(1)
        with pytest.raises(ExecutionCancelled):
            await token.run(coro)
        assert inspect.getcoroutinestate(coro) == inspect.CORO_CLOSED


class TestGuarded:
    @pytest.mark.asyncio
    async def test_without_token(self):
        assert await guarded(answer("x"), None) == "x"

    @pytest.mark.asyncio
    async def test_with_token(self):
        assert await guarded(answer("y"), CancellationToken()) == "y"
