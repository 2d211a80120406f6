"""
Table-level change notification for the local cache.

Writers call ``tracker.notify(*tables)`` after committing. A ``LiveQuery``
re-runs its fetch whenever one of the tables it reads is notified, so
readers of a join see changes to either side.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, Dict, Generic, Iterable, Set, TypeVar

from utils.logger import get_logger

_logger = get_logger(__name__)

T = TypeVar("T")

_UNSET = object()


class InvalidationTracker:
    def __init__(self) -> None:
        self._listeners: Dict[str, Set[Callable[[], None]]] = {}

    def add_listener(
        self, tables: Iterable[str], callback: Callable[[], None]
    ) -> Callable[[], None]:
        """Register callback for tables; returns a function that removes it."""
        tables = tuple(tables)
        for table in tables:
            self._listeners.setdefault(table, set()).add(callback)

        def remove() -> None:
            for table in tables:
                self._listeners.get(table, set()).discard(callback)

        return remove

    def notify(self, *tables: str) -> None:
        callbacks: Set[Callable[[], None]] = set()
        for table in tables:
            callbacks |= self._listeners.get(table, set())
        _logger.debug(f"Tables changed: {', '.join(tables)} ({len(callbacks)} live)")
        for callback in callbacks:
            callback()

    def listener_count(self, table: str) -> int:
        return len(self._listeners.get(table, ()))


tracker = InvalidationTracker()


class LiveQuery(Generic[T]):
    """
    Cold, re-iterable observable query.

    Each ``async for`` opens an independent subscription: the query runs once
    immediately, then again after every change to one of ``tables``. A result
    equal to the previous one is not emitted again. Closing the iterator
    (or cancelling the task driving it) unsubscribes.
    """

    def __init__(
        self,
        tables: Iterable[str],
        fetch: Callable[[], Awaitable[T]],
        source: InvalidationTracker | None = None,
    ):
        self.tables = tuple(tables)
        self._fetch = fetch
        self._source = source or tracker

    def __aiter__(self) -> AsyncIterator[T]:
        return self.subscribe()

    async def subscribe(self) -> AsyncIterator[T]:
        changed = asyncio.Event()
        changed.set()
        remove = self._source.add_listener(self.tables, changed.set)
        last = _UNSET
        try:
            while True:
                await changed.wait()
                changed.clear()
                value = await self._fetch()
                if value != last:
                    last = value
                    yield value
        finally:
            remove()

    async def first(self) -> T:
        """Current snapshot without staying subscribed."""
        async with aclosing(self.subscribe()) as values:
            async for value in values:
                return value
        raise RuntimeError("live query ended without a value")
