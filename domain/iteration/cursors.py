"""Iteration Bounded Context - Cursor Iterators.

Three collection shapes, chosen when a collection class is defined rather
than discovered per call:

- IndexedCollection: addressable by position `base..base+count-1`, count
  re-read on demand (raster bands use base 1, as GDAL numbers them)
- CursorCollection: only `first()`/`next()` over one shared native cursor
- MaterializedMap: whole content fetched in one call, then walked locally

Each shape offers `for_each(visitor)` (a visitor returning exactly False
stops the walk), a blocking iterator and an async iterator. Async sessions
fetch exactly one element per step through the bridge, without read-ahead,
so concurrent mutation shows up element for element as in the blocking
form. A fetch error propagates as an exception; only exhaustion ends the
iteration normally.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Iterator
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")
V = TypeVar("V")

STOP = False

Visitor = Callable[[T, int], "bool | None"]
EntryVisitor = Callable[[V, str], "bool | None"]


# ---------------------------------------------------------------------------
# Indexed collections
# ---------------------------------------------------------------------------
class IndexedCollection(ABC, Generic[T]):
    """Collection addressable by a live, re-readable count."""

    #: Index of the first element
    base: int = 0

    @abstractmethod
    def count(self) -> int: ...

    @abstractmethod
    def get(self, index: int) -> T: ...

    @abstractmethod
    async def count_async(self) -> int: ...

    @abstractmethod
    async def get_async(self, index: int) -> T: ...

    def for_each(self, visitor: Visitor[T]) -> None:
        """Visit every element with its index until the visitor returns False."""
        n = self.count()
        for i in range(self.base, self.base + n):
            if visitor(self.get(i), i) is STOP:
                return

    def __iter__(self) -> IndexedSession[T]:
        return IndexedSession(self)

    def __aiter__(self) -> AsyncIndexedSession[T]:
        return AsyncIndexedSession(self)


class IndexedSession(Iterator[T]):
    """One walk over an IndexedCollection; always starts at `base`."""

    def __init__(self, collection: IndexedCollection[T]) -> None:
        self._collection = collection
        self.position = collection.base
        self._done = False

    def __iter__(self) -> IndexedSession[T]:
        return self

    def __next__(self) -> T:
        if self._done:
            raise StopIteration
        collection = self._collection
        if self.position >= collection.base + collection.count():
            self._done = True
            raise StopIteration
        value = collection.get(self.position)
        self.position += 1
        return value


class AsyncIndexedSession(AsyncIterator[T]):
    def __init__(self, collection: IndexedCollection[T]) -> None:
        self._collection = collection
        self.position = collection.base
        self._done = False

    def __aiter__(self) -> AsyncIndexedSession[T]:
        return self

    async def __anext__(self) -> T:
        if self._done:
            raise StopAsyncIteration
        collection = self._collection
        count = await collection.count_async()
        if self.position >= collection.base + count:
            self._done = True
            raise StopAsyncIteration
        value = await collection.get_async(self.position)
        self.position += 1
        return value


# ---------------------------------------------------------------------------
# Cursor-advance collections
# ---------------------------------------------------------------------------
class CursorState(Enum):
    BEFORE_FIRST = "before-first"
    ON_ELEMENT = "on-element"
    EXHAUSTED = "exhausted"


class CursorCollection(ABC, Generic[T]):
    """Collection exposing only first/next over a single shared position.

    Every session drives the same native cursor: restarting one session
    (`first()`) rewinds all of them, and two sessions consumed in turn see
    interleaved elements. This mirrors the collaborator and is not guarded.
    """

    @abstractmethod
    def first(self) -> T | None:
        """Rewind the shared cursor and return the first element (None if empty)."""

    @abstractmethod
    def next(self) -> T | None:
        """Advance the shared cursor; None once exhausted."""

    @abstractmethod
    async def first_async(self) -> T | None: ...

    @abstractmethod
    async def next_async(self) -> T | None: ...

    def for_each(self, visitor: Visitor[T]) -> None:
        i = 0
        element = self.first()
        while element is not None:
            if visitor(element, i) is STOP:
                return
            i += 1
            element = self.next()

    def __iter__(self) -> CursorSession[T]:
        return CursorSession(self)

    def __aiter__(self) -> AsyncCursorSession[T]:
        return AsyncCursorSession(self)


class CursorSession(Iterator[T]):
    def __init__(self, collection: CursorCollection[T]) -> None:
        self._collection = collection
        self.state = CursorState.BEFORE_FIRST

    def __iter__(self) -> CursorSession[T]:
        return self

    def __next__(self) -> T:
        if self.state is CursorState.EXHAUSTED:
            raise StopIteration
        if self.state is CursorState.BEFORE_FIRST:
            element = self._collection.first()
        else:
            element = self._collection.next()
        return self._advance(element)

    def _advance(self, element: T | None) -> T:
        if element is None:
            self.state = CursorState.EXHAUSTED
            raise StopIteration
        self.state = CursorState.ON_ELEMENT
        return element


class AsyncCursorSession(AsyncIterator[T]):
    def __init__(self, collection: CursorCollection[T]) -> None:
        self._collection = collection
        self.state = CursorState.BEFORE_FIRST

    def __aiter__(self) -> AsyncCursorSession[T]:
        return self

    async def __anext__(self) -> T:
        if self.state is CursorState.EXHAUSTED:
            raise StopAsyncIteration
        if self.state is CursorState.BEFORE_FIRST:
            element = await self._collection.first_async()
        else:
            element = await self._collection.next_async()
        if element is None:
            self.state = CursorState.EXHAUSTED
            raise StopAsyncIteration
        self.state = CursorState.ON_ELEMENT
        return element


# ---------------------------------------------------------------------------
# Materialized maps
# ---------------------------------------------------------------------------
class MaterializedMap(ABC, Generic[V]):
    """Collection fetched whole; entries keep the collaborator's order."""

    @abstractmethod
    def to_object(self) -> dict[str, V]: ...

    @abstractmethod
    async def to_object_async(self) -> dict[str, V]: ...

    def for_each(self, visitor: EntryVisitor[V]) -> None:
        """Visit `(value, key)` pairs until the visitor returns False."""
        for key, value in self.to_object().items():
            if visitor(value, key) is STOP:
                return

    def to_json(self) -> str:
        return json.dumps(self.to_object())

    def __iter__(self) -> Iterator[tuple[str, V]]:
        return iter(list(self.to_object().items()))

    def __aiter__(self) -> AsyncMapSession[V]:
        return AsyncMapSession(self)


class AsyncMapSession(AsyncIterator[tuple[str, V]]):
    def __init__(self, mapping: MaterializedMap[V]) -> None:
        self._mapping = mapping
        self._entries: Iterator[tuple[str, Any]] | None = None

    def __aiter__(self) -> AsyncMapSession[V]:
        return self

    async def __anext__(self) -> tuple[str, V]:
        if self._entries is None:
            snapshot = await self._mapping.to_object_async()
            self._entries = iter(list(snapshot.items()))
        try:
            return next(self._entries)
        except StopIteration:
            raise StopAsyncIteration from None
