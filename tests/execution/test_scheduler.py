"""Tests for per-handle FIFO turn bookkeeping."""

from __future__ import annotations

from domain.execution.scheduler import HandleScheduler
from domain.execution.work import WorkItem, WorkState
from tests.conftest_utils import recording_item


class TestEnqueue:
    def test_first_item_on_key_is_ready(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        item = recording_item(make_dataset(), "a")

        assert scheduler.enqueue(item)
        assert item.state is WorkState.READY

    def test_second_item_on_same_key_waits(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        ds = make_dataset()
        first, second = recording_item(ds, "a"), recording_item(ds, "b")

        scheduler.enqueue(first)

        assert not scheduler.enqueue(second)
        assert second.state is WorkState.QUEUED
        assert scheduler.queued_on(ds.lock_key) == 2

    def test_distinct_keys_do_not_wait(self, make_dataset) -> None:
        scheduler = HandleScheduler()

        assert scheduler.enqueue(recording_item(make_dataset(), "a"))
        assert scheduler.enqueue(recording_item(make_dataset(), "b"))

    def test_keyless_item_is_always_ready(self) -> None:
        scheduler = HandleScheduler()
        item = WorkItem(lambda _ch: None)

        assert item.keys == ()
        assert scheduler.enqueue(item)


class TestEnqueueIfIdle:
    def test_idle_keys_grant_turn(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        ds = make_dataset()
        item = recording_item(ds, "a")

        assert scheduler.enqueue_if_idle(item)
        assert item.state is WorkState.READY
        assert scheduler.queued_on(ds.lock_key) == 1

    def test_busy_key_leaves_queues_untouched(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        src, dst = make_dataset("src"), make_dataset("dst")
        scheduler.enqueue(recording_item(dst, "busy"))
        item = recording_item(src, "a", others=(dst,))

        assert not scheduler.enqueue_if_idle(item)
        assert item.state is WorkState.QUEUED
        assert scheduler.queued_on(src.lock_key) == 0
        assert scheduler.queued_on(dst.lock_key) == 1


class TestComplete:
    def test_completion_promotes_next_in_fifo_order(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        ds = make_dataset()
        items = [recording_item(ds, str(i)) for i in range(3)]
        for item in items:
            scheduler.enqueue(item)

        assert scheduler.start(items[0])
        assert scheduler.complete(items[0]) == [items[1]]
        assert items[1].state is WorkState.READY
        assert items[2].state is WorkState.QUEUED

    def test_multi_key_item_waits_for_all_heads(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        src, dst = make_dataset("src"), make_dataset("dst")
        on_src = recording_item(src, "src-only")
        on_dst = recording_item(dst, "dst-only")
        both = recording_item(src, "both", others=(dst,))

        scheduler.enqueue(on_src)
        scheduler.enqueue(on_dst)
        assert not scheduler.enqueue(both)

        scheduler.start(on_src)
        assert scheduler.complete(on_src) == []
        assert both.state is WorkState.QUEUED

        scheduler.start(on_dst)
        assert scheduler.complete(on_dst) == [both]

    def test_queues_are_dropped_when_empty(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        ds = make_dataset()
        item = recording_item(ds, "a")
        scheduler.enqueue(item)
        scheduler.start(item)
        scheduler.complete(item)

        assert scheduler.queued_on(ds.lock_key) == 0
        assert scheduler.pending() == []


class TestWithdraw:
    def test_withdraw_queued_item(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        ds = make_dataset()
        first, second = recording_item(ds, "a"), recording_item(ds, "b")
        scheduler.enqueue(first)
        scheduler.enqueue(second)

        withdrawn, ready = scheduler.withdraw(second)

        assert withdrawn
        assert ready == []
        assert second.state is WorkState.CANCELLED
        assert not scheduler.start(second)

    def test_withdrawing_head_promotes_successor(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        ds = make_dataset()
        first, second = recording_item(ds, "a"), recording_item(ds, "b")
        scheduler.enqueue(first)
        scheduler.enqueue(second)

        withdrawn, ready = scheduler.withdraw(first)

        assert withdrawn
        assert ready == [second]

    def test_running_item_cannot_be_withdrawn(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        item = recording_item(make_dataset(), "a")
        scheduler.enqueue(item)
        scheduler.start(item)

        assert scheduler.withdraw(item) == (False, [])
        assert item.state is WorkState.RUNNING

    def test_pending_lists_unstarted_items(self, make_dataset) -> None:
        scheduler = HandleScheduler()
        ds = make_dataset()
        running, waiting = recording_item(ds, "a"), recording_item(ds, "b")
        scheduler.enqueue(running)
        scheduler.enqueue(waiting)
        scheduler.start(running)

        assert scheduler.pending() == [waiting]
