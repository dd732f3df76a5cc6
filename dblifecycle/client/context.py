from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

from dblifecycle.core.errors import DeadlineExceededError, OperationCancelledError


T = TypeVar("T")


class CallContext:
    """Cancellation signal and optional deadline for one or more operations.

    Every client operation takes a context as its first argument. Cancelling
    a context (or any context it was derived from) aborts the in-flight
    transport call and fails the operation with ``OperationCancelledError``;
    an elapsed deadline fails it with ``DeadlineExceededError``. The client
    layer never imposes a timeout of its own.
    """

    def __init__(self, *, deadline: float | None = None, parent: CallContext | None = None) -> None:
        # Deadlines are absolute time.monotonic() values.
        self._deadline = deadline
        self._parent = parent
        self._cancelled = asyncio.Event()

    @classmethod
    def background(cls) -> CallContext:
        return cls()

    @classmethod
    def with_deadline_in(cls, seconds: float) -> CallContext:
        return cls(deadline=time.monotonic() + seconds)

    def with_timeout(self, seconds: float) -> CallContext:
        return CallContext(deadline=time.monotonic() + seconds, parent=self)

    def child(self) -> CallContext:
        return CallContext(parent=self)

    def _chain(self) -> list[CallContext]:
        chain: list[CallContext] = []
        node: CallContext | None = self
        while node is not None:
            chain.append(node)
            node = node._parent
        return chain

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return any(ctx._cancelled.is_set() for ctx in self._chain())

    @property
    def deadline(self) -> float | None:
        deadlines = [ctx._deadline for ctx in self._chain() if ctx._deadline is not None]
        return min(deadlines) if deadlines else None

    def remaining(self) -> float | None:
        deadline = self.deadline
        if deadline is None:
            return None
        return deadline - time.monotonic()

    def check(self) -> None:
        if self.cancelled:
            raise OperationCancelledError("Operation cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise DeadlineExceededError("Deadline exceeded")

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        """Run ``call()`` until it completes, the context is cancelled or the deadline passes."""
        self.check()
        task = asyncio.ensure_future(call())
        waiters = [asyncio.ensure_future(ctx._cancelled.wait()) for ctx in self._chain()]
        try:
            done, _ = await asyncio.wait(
                {task, *waiters},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            for waiter in waiters:
                waiter.cancel()
        if task in done:
            return task.result()
        # Abort the in-flight call and wait for it to unwind before reporting.
        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is None:
            return task.result()
        if self.cancelled:
            raise OperationCancelledError("Operation cancelled")
        raise DeadlineExceededError("Deadline exceeded")
