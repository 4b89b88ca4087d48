"""
One-Shot Future / Promise

A Future/Promise pair carries exactly one outcome from a producer thread
to a consumer thread.

    future, promise = Future.create()

    # producer thread
    with promise:
        promise.resolve(dispatcher.send(request))

    # consumer thread
    order = future.wait(timeout=5.0)

Outcomes:
    - resolve(value)    -> wait() returns value
    - reject(error)     -> wait() raises error
    - close() unused    -> wait() raises FutureDropped

The promise is a context manager; leaving the block without resolving
drops it, so a consumer is never left waiting on a producer that died.
Completion happens-before wait() returns, and a completion that lands
before the consumer starts waiting is never lost. A future has one
consumer, so completing notifies one waiter.
"""

import threading
from typing import Any, Generic, Optional, Tuple, TypeVar

from core.errors import FutureAlreadyAwaited, FutureDropped, FutureTimeout, PromiseAlreadyUsed

T = TypeVar("T")

_PENDING = "pending"
_RESOLVED = "resolved"
_REJECTED = "rejected"
_DROPPED = "dropped"


class _Cell:
    """Shared slot guarded by a condition variable."""

    def __init__(self) -> None:
        self.condition = threading.Condition()
        self.state = _PENDING
        self.value: Any = None
        self.error: Optional[BaseException] = None
        self.awaited = False


class Promise(Generic[T]):
    """Producer half. Each completion method may be used once."""

    def __init__(self, cell: _Cell):
        self._cell = cell

    def _complete(self, state: str, value: Any = None, error: Optional[BaseException] = None) -> None:
        with self._cell.condition:
            if self._cell.state != _PENDING:
                raise PromiseAlreadyUsed(f"Promise already {self._cell.state}")
            self._cell.state = state
            self._cell.value = value
            self._cell.error = error
            self._cell.condition.notify()

    def resolve(self, value: T) -> None:
        self._complete(_RESOLVED, value=value)

    def reject(self, error: BaseException) -> None:
        if not isinstance(error, BaseException):
            raise TypeError(f"reject() expects an exception, got {type(error).__name__}")
        self._complete(_REJECTED, error=error)

    def close(self) -> None:
        """Drop the promise if it is still pending; no-op otherwise."""
        with self._cell.condition:
            if self._cell.state != _PENDING:
                return
            self._cell.state = _DROPPED
            self._cell.condition.notify()

    @property
    def completed(self) -> bool:
        with self._cell.condition:
            return self._cell.state != _PENDING

    def __enter__(self) -> "Promise[T]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class Future(Generic[T]):
    """Consumer half. May be waited on once."""

    def __init__(self, cell: _Cell):
        self._cell = cell

    @staticmethod
    def create() -> Tuple["Future[Any]", Promise[Any]]:
        cell = _Cell()
        return Future(cell), Promise(cell)

    def done(self) -> bool:
        with self._cell.condition:
            return self._cell.state != _PENDING

    def wait(self, timeout: Optional[float] = None) -> T:
        """
        Block until the promise completes.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Raises:
            FutureDropped: The promise was closed without a value
            FutureTimeout: The timeout expired first (the future may be waited on again)
            FutureAlreadyAwaited: A previous wait() already consumed the outcome
            Exception: Whatever the producer passed to reject()
        """
        cell = self._cell
        with cell.condition:
            if cell.awaited:
                raise FutureAlreadyAwaited("Future outcome already consumed")
            if not cell.condition.wait_for(lambda: cell.state != _PENDING, timeout=timeout):
                raise FutureTimeout(f"Future not completed within {timeout}s")
            cell.awaited = True
            state, value, error = cell.state, cell.value, cell.error

        if state == _RESOLVED:
            return value
        if state == _REJECTED:
            raise error
        raise FutureDropped()

    def __repr__(self) -> str:
        return f"<Future state={self._cell.state}>"
