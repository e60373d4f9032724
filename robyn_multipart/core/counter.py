"""Join barrier over in-flight file storage operations."""

import asyncio
from collections.abc import Callable


class PendingCounter:
    """Counts in-flight operations and notifies waiters each time the count drains to zero.

    Waiters registered with :meth:`when_zero` are one-shot: they run once, in
    registration order, the next time :meth:`decrement` brings the count to zero,
    or immediately when the count is already zero.
    """

    __slots__ = ("_value", "_waiters")

    def __init__(self) -> None:
        self._value = 0
        self._waiters: list[Callable[[], None]] = []

    @property
    def value(self) -> int:
        return self._value

    def increment(self) -> None:
        self._value += 1

    def decrement(self) -> None:
        if self._value == 0:
            raise ValueError("PendingCounter cannot go below zero")
        self._value -= 1
        if self._value == 0:
            waiters, self._waiters = self._waiters, []
            for callback in waiters:
                callback()

    def when_zero(self, callback: Callable[[], None]) -> None:
        if self._value == 0:
            callback()
            return
        self._waiters.append(callback)

    async def wait_drained(self) -> None:
        """Suspend until the count is zero."""
        if self._value == 0:
            return
        drained = asyncio.get_running_loop().create_future()
        self.when_zero(lambda: drained.done() or drained.set_result(None))
        await drained

    def __repr__(self) -> str:
        return f"PendingCounter(value={self._value}, waiters={len(self._waiters)})"
