"""
Supersede-don't-queue cancellation for asynchronous operations.

A ``CancellableOperation`` owns a single "current operation" slot. Every run
gets a fresh ``OperationToken``; starting a new run cancels the task of the
previous one and marks its token superseded. Completion handlers call
``is_current(token)`` before committing results to shared state, so a late
completion can never overwrite a fresher one.
"""

import asyncio
import logging
import itertools
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_token_ids = itertools.count(1)


class OperationToken:
    """Identity of one run of a cancellable operation."""

    __slots__ = ("id", "superseded")

    def __init__(self):
        self.id = next(_token_ids)
        self.superseded = False

    def __repr__(self) -> str:
        return f"OperationToken(id={self.id}, superseded={self.superseded})"


class CancellableOperation:
    """
    Single-slot runner where a newer run cancels the older one.

    ``run`` returns the result of the wrapped coroutine, or ``None`` when the
    run was superseded. Cancellation of the caller itself still propagates.
    """

    def __init__(self, name: str = "operation"):
        self.name = name
        self._current: Optional[OperationToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_current(self, token: OperationToken) -> bool:
        return token is self._current and not token.superseded

    async def run(self, func: Callable[[OperationToken], Awaitable[T]]) -> Optional[T]:
        self.cancel()
        token = OperationToken()
        self._current = token
        task = asyncio.ensure_future(func(token))
        self._task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if token.superseded:
                logger.debug(f"{self.name} run {token.id} superseded")
                return None
            raise
        finally:
            if self._task is task:
                self._task = None

        if token.superseded:
            # Finished, but a newer run started before this caller resumed.
            logger.debug(f"{self.name} run {token.id} discarded after completion")
            return None
        return result

    def cancel(self) -> None:
        """Supersede the current run, if any."""
        if self._current is not None:
            self._current.superseded = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def reset(self) -> None:
        self.cancel()
        self._current = None


class OperationRegistry:
    """One ``CancellableOperation`` per consumer id."""

    def __init__(self, name: str):
        self.name = name
        self._operations: dict[str, CancellableOperation] = {}

    def for_consumer(self, consumer: str) -> CancellableOperation:
        operation = self._operations.get(consumer)
        if operation is None:
            operation = CancellableOperation(f"{self.name}[{consumer}]")
            self._operations[consumer] = operation
        return operation

    async def run(
        self,
        consumer: str,
        func: Callable[[CancellableOperation, OperationToken], Awaitable[T]],
    ) -> Optional[T]:
        """
        Run ``func`` in the consumer's slot.

        The slot is dropped once nothing is in flight for the consumer, so
        idle consumers hold no state.
        """
        operation = self.for_consumer(consumer)
        try:
            return await operation.run(lambda token: func(operation, token))
        finally:
            if self._operations.get(consumer) is operation and not operation.in_flight:
                del self._operations[consumer]

    def cancel(self, consumer: str) -> None:
        """Supersede the consumer's in-flight run without creating a slot."""
        operation = self._operations.get(consumer)
        if operation is not None:
            operation.cancel()

    def release(self, consumer: str) -> None:
        operation = self._operations.pop(consumer, None)
        if operation is not None:
            operation.cancel()

    def __len__(self) -> int:
        return len(self._operations)

    def reset(self) -> None:
        for operation in self._operations.values():
            operation.cancel()
        self._operations.clear()
