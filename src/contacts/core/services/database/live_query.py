"""Live queries: result sets that re-emit whenever their tables change."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Generic, TypeVar

from loguru import logger

if TYPE_CHECKING:
    from src.contacts.core.services.database.record_store import RecordStore

T = TypeVar("T")


class LiveQuery(Generic[T]):
    """A query over the store that can be read once or subscribed to.

    Each subscription first delivers the current result, then a freshly
    recomputed full result after every committed write to one of ``tables``.
    Several writes that land while a snapshot is being computed may collapse
    into a single follow-up emission; the emitted snapshot is always current.
    """

    def __init__(
        self,
        store: RecordStore,
        tables: Iterable[str],
        query: Callable[[], T],
        description: str = "",
    ):
        self.store = store
        self.tables = frozenset(tables)
        self._query = query
        self.description = description

    async def fetch(self) -> T:
        """Compute the result once on the store's worker thread."""
        return await self.store.run(self._query)

    def subscribe(self) -> Subscription[T]:
        return Subscription(self)

    def __aiter__(self) -> Subscription[T]:
        return self.subscribe()

    def __repr__(self) -> str:
        return f"LiveQuery({self.description or sorted(self.tables)})"


class Subscription(Generic[T]):
    """Async iterator of snapshots for one subscriber of a :class:`LiveQuery`.

    After :meth:`close` no further snapshot is returned, even one whose query
    was already running when ``close`` was called. Closing the store closes
    every subscription on it, ending any pending iteration.
    """

    def __init__(self, live_query: LiveQuery[T]):
        self._live_query = live_query
        self._dirty = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._remove_listener: Callable[[], None] | None = None
        self._started = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_invalidated(self, tables: set[str]) -> None:
        # Called from whichever thread committed the write
        loop = self._loop
        if self._closed or loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._dirty.set)

    def _on_store_closed(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            self._closed = True
            self._remove_listener = None
            return
        loop.call_soon_threadsafe(self.close)

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration

        if not self._started:
            self._started = True
            self._loop = asyncio.get_running_loop()
            self._remove_listener = self._live_query.store.invalidations.add_listener(
                self._live_query.tables,
                self._on_invalidated,
                on_close=self._on_store_closed,
            )
        else:
            await self._dirty.wait()
            if self._closed:
                raise StopAsyncIteration

        self._dirty.clear()
        try:
            snapshot = await self._live_query.fetch()
        except BaseException:
            self.close()
            raise

        if self._closed:
            raise StopAsyncIteration
        return snapshot

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        # Wake a pending __anext__ so it can observe the close
        self._dirty.set()
        logger.debug("Closed subscription to {!r}", self._live_query)

    async def aclose(self) -> None:
        self.close()
