from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Callable, Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")

_UNSET = object()


class StateCell(Generic[T]):
    """
    Reactive single-value holder shared by screens.

    Subscribers get the current value immediately, then every later value.
    Setting a value equal to the current one notifies nobody. A slow
    subscriber only sees the latest value (intermediate ones are conflated).

    Must be mutated from the event loop thread.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._version = 0
        self._waiters: set[asyncio.Event] = set()

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        """Store value and wake subscribers. Returns False if unchanged."""
        if value == self._value:
            return False
        self._value = value
        self._version += 1
        for changed in self._waiters:
            changed.set()
        return True

    def compare_and_set(self, expected: T, value: T) -> bool:
        if self._value != expected:
            return False
        self.set(value)
        return True

    async def subscribe(self) -> AsyncIterator[T]:
        changed = asyncio.Event()
        self._waiters.add(changed)
        try:
            version = self._version
            yield self._value
            while True:
                await changed.wait()
                changed.clear()
                if self._version != version:
                    version = self._version
                    yield self._value
        finally:
            self._waiters.discard(changed)

    def __aiter__(self) -> AsyncIterator[T]:
        return self.subscribe()

    async def map(self, fn: Callable[[T], R]) -> AsyncIterator[R]:
        """Derived stream of fn(value), skipping repeats."""
        last = _UNSET
        async with aclosing(self.subscribe()) as values:
            async for value in values:
                mapped = fn(value)
                if mapped != last:
                    last = mapped
                    yield mapped

    @property
    def subscriber_count(self) -> int:
        return len(self._waiters)
