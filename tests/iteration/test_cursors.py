"""Tests for the three collection shapes and their sync/async sessions."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from domain.errors import NativeOperationError
from domain.iteration.cursors import (
    CursorCollection,
    CursorState,
    IndexedCollection,
    MaterializedMap,
)


# =============================================================================
# Fakes
# =============================================================================
class ListCollection(IndexedCollection[str]):
    """Indexed collection over a mutable list, recording each fetch."""

    def __init__(self, items: list[str], base: int = 0) -> None:
        self.items = items
        self.base = base
        self.fetches: list[int] = []
        self.fail_at: int | None = None

    def count(self) -> int:
        return len(self.items)

    def get(self, index: int) -> str:
        self.fetches.append(index)
        if index == self.fail_at:
            raise NativeOperationError(-1, "Invalid element")
        return self.items[index - self.base]

    async def count_async(self) -> int:
        await asyncio.sleep(0)
        return self.count()

    async def get_async(self, index: int) -> str:
        await asyncio.sleep(0)
        return self.get(index)


class ReaderCollection(CursorCollection[str]):
    """Cursor collection with one shared read position, like an OGR layer."""

    def __init__(self, items: list[str]) -> None:
        self.items = items
        self.position = 0
        self.advances = 0

    def first(self) -> str | None:
        self.position = 0
        return self.next()

    def next(self) -> str | None:
        self.advances += 1
        if self.position >= len(self.items):
            return None
        item = self.items[self.position]
        self.position += 1
        return item

    async def first_async(self) -> str | None:
        await asyncio.sleep(0)
        return self.first()

    async def next_async(self) -> str | None:
        await asyncio.sleep(0)
        return self.next()


class DictMap(MaterializedMap[Any]):
    def __init__(self, values: dict[str, Any]) -> None:
        self.values = values
        self.snapshots = 0

    def to_object(self) -> dict[str, Any]:
        self.snapshots += 1
        return dict(self.values)

    async def to_object_async(self) -> dict[str, Any]:
        await asyncio.sleep(0)
        return self.to_object()


async def collect(iterator) -> list:
    return [item async for item in iterator]


# =============================================================================
# Indexed collections
# =============================================================================
class TestIndexedCollection:
    def test_for_each_passes_index(self) -> None:
        collection = ListCollection(["a", "b", "c"])
        seen = []

        collection.for_each(lambda item, i: seen.append((i, item)))

        assert seen == [(0, "a"), (1, "b"), (2, "c")]

    def test_for_each_stops_on_false(self) -> None:
        collection = ListCollection(["a", "b", "c"])
        seen = []

        def visitor(item: str, i: int) -> bool:
            seen.append(item)
            return i < 1

        collection.for_each(visitor)

        assert seen == ["a", "b"]

    def test_for_each_ignores_other_falsy_results(self) -> None:
        collection = ListCollection(["a", "b"])
        seen = []

        collection.for_each(lambda item, i: seen.append(item) or 0)

        assert seen == ["a", "b"]

    def test_one_based_collection(self) -> None:
        collection = ListCollection(["b1", "b2"], base=1)
        seen = []

        collection.for_each(lambda item, i: seen.append((i, item)))

        assert seen == [(1, "b1"), (2, "b2")]
        assert list(collection) == ["b1", "b2"]
        assert collection.fetches == [1, 2, 1, 2]

    def test_sessions_are_independent(self) -> None:
        collection = ListCollection(["a", "b", "c"])
        first, second = iter(collection), iter(collection)

        assert next(first) == "a"
        assert next(first) == "b"
        assert next(second) == "a"
        assert list(first) == ["c"]

    def test_session_sees_appended_elements(self) -> None:
        collection = ListCollection(["a"])
        session = iter(collection)

        assert next(session) == "a"
        collection.items.append("b")
        assert next(session) == "b"

    def test_exhausted_session_stays_exhausted(self) -> None:
        collection = ListCollection([])
        session = iter(collection)

        assert list(session) == []
        collection.items.append("late")
        assert list(session) == []

    def test_fetch_error_propagates(self) -> None:
        collection = ListCollection(["a", "b"])
        collection.fail_at = 1

        with pytest.raises(NativeOperationError):
            list(collection)

    def test_async_session_fetches_one_per_step(self) -> None:
        collection = ListCollection(["a", "b", "c"])

        async def main() -> tuple[list[str], list[int]]:
            session = collection.__aiter__()
            first = await session.__anext__()
            fetched_after_first = list(collection.fetches)
            rest = [item async for item in session]
            return [first, *rest], fetched_after_first

        items, fetched_after_first = asyncio.run(main())

        assert items == ["a", "b", "c"]
        assert fetched_after_first == [0]

    def test_async_matches_sync(self) -> None:
        collection = ListCollection(["x", "y"], base=1)

        assert asyncio.run(collect(collection)) == list(collection)

    def test_async_fetch_error_rejects(self) -> None:
        collection = ListCollection(["a", "b"])
        collection.fail_at = 0

        with pytest.raises(NativeOperationError):
            asyncio.run(collect(collection))


# =============================================================================
# Cursor collections
# =============================================================================
class TestCursorCollection:
    def test_iteration_rewinds_then_advances(self) -> None:
        collection = ReaderCollection(["f1", "f2", "f3"])
        collection.position = 2

        assert list(collection) == ["f1", "f2", "f3"]

    def test_for_each_stops_on_false(self) -> None:
        collection = ReaderCollection(["f1", "f2", "f3"])
        seen = []

        collection.for_each(lambda item, i: seen.append(item) or i != 1)

        assert seen == ["f1", "f2"]

    def test_empty_collection(self) -> None:
        collection = ReaderCollection([])
        session = iter(collection)

        assert list(session) == []
        assert session.state is CursorState.EXHAUSTED

    def test_sessions_share_the_cursor(self) -> None:
        collection = ReaderCollection(["f1", "f2", "f3", "f4"])
        first, second = iter(collection), iter(collection)

        assert next(first) == "f1"
        # Starting a second session rewinds the shared position
        assert next(second) == "f1"
        assert next(first) == "f2"
        assert next(second) == "f3"

    def test_session_states(self) -> None:
        collection = ReaderCollection(["f1"])
        session = iter(collection)
        assert session.state is CursorState.BEFORE_FIRST

        next(session)
        assert session.state is CursorState.ON_ELEMENT

        with pytest.raises(StopIteration):
            next(session)
        assert session.state is CursorState.EXHAUSTED

    def test_async_session(self) -> None:
        collection = ReaderCollection(["f1", "f2"])

        assert asyncio.run(collect(collection)) == ["f1", "f2"]
        assert collection.advances == 3


# =============================================================================
# Materialized maps
# =============================================================================
class TestMaterializedMap:
    def test_for_each_passes_value_and_key(self) -> None:
        mapping = DictMap({"name": "road", "lanes": 2})
        seen = []

        mapping.for_each(lambda value, key: seen.append((key, value)))

        assert seen == [("name", "road"), ("lanes", 2)]

    def test_for_each_stops_on_false(self) -> None:
        mapping = DictMap({"a": 1, "b": 2, "c": 3})
        seen = []

        mapping.for_each(lambda value, key: seen.append(key) or False)

        assert seen == ["a"]

    def test_iteration_walks_one_snapshot(self) -> None:
        mapping = DictMap({"a": 1, "b": 2})
        session = iter(mapping)

        assert next(session) == ("a", 1)
        mapping.values["c"] = 3
        assert list(session) == [("b", 2)]
        assert mapping.snapshots == 1

    def test_to_json(self) -> None:
        mapping = DictMap({"a": 1, "b": None})

        assert json.loads(mapping.to_json()) == {"a": 1, "b": None}

    def test_async_entries(self) -> None:
        mapping = DictMap({"a": 1, "b": 2})

        assert asyncio.run(collect(mapping)) == [("a", 1), ("b", 2)]
        assert mapping.snapshots == 1
