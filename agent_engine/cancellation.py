"""Cooperative cancellation for in-flight model and tool calls."""

import asyncio
import inspect
from typing import Awaitable, Optional, TypeVar

from agent_engine.exceptions import ExecutionCancelled

T = TypeVar("T")


class CancellationToken:
    """Signal shared between a caller and one running invocation.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(agent.invoke("...", cancel_token=token))
        token.cancel("operator pressed stop")
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ExecutionCancelled(self.reason or "cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        The losing task is cancelled. Raises ExecutionCancelled when the
        token wins.
        """
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work.done():
            return work.result()
        work.cancel()
        raise ExecutionCancelled(self.reason or "cancelled")


async def guarded(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """Await directly when no token is given, else race against it."""
    if token is None:
        return await awaitable
    return await token.run(awaitable)
