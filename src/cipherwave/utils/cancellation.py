"""Cooperative cancellation for long-running async operations.

A CancellationToken is handed to an operation when it starts. Whoever
supersedes the operation calls cancel(); the operation checks the token at
its own suspension points (or wraps awaits in guard()) and stops promptly.
"""

import asyncio
import itertools
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_token_ids = itertools.count(1)


class OperationCancelledError(Exception):
    """Raised inside an operation whose token has been cancelled."""

    pass


class CancellationToken:
    """One-shot cancellation signal."""

    def __init__(self, label: str = "operation"):
        self.token_id = next(_token_ids)
        self.label = label
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Signal cancellation. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        logger.debug(f"Cancelled {self.label} (token {self.token_id})")
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation (immediately if already cancelled)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError(f"{self.label} was cancelled")

    async def wait(self) -> None:
        """Wait until the token is cancelled."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await something, abandoning it as soon as the token is cancelled.

        Raises:
            OperationCancelledError: If cancelled before the awaitable finished
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()

        raise OperationCancelledError(f"{self.label} was cancelled")

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancellationToken(id={self.token_id}, label={self.label!r}, {state})"
