"""Tests for the execution bridge: ordering, cancellation, async equivalence."""

from __future__ import annotations

import asyncio
import os
import threading
from concurrent.futures import wait

import pytest

from domain.errors import (
    BridgeShutdownError,
    Cancelled,
    ClosedHandleError,
    ReentrantCallError,
)
from domain.execution.bridge import ExecutionBridge, resolve_max_workers
from domain.execution.progress import ProgressChannel
from domain.execution.value_objects import ProgressTick
from domain.execution.work import WorkItem
from domain.handles.registry import HandleRegistry
from tests.conftest_utils import WAIT_TIMEOUT, Gate, recording_item, ticking_item


# =============================================================================
# Blocking form
# =============================================================================
class TestRun:
    def test_runs_on_calling_thread(self, bridge: ExecutionBridge, make_dataset) -> None:
        ds = make_dataset()
        caller = threading.get_ident()

        def operation(_channel: ProgressChannel) -> int:
            return threading.get_ident()

        assert bridge.run(WorkItem(operation, handles=(ds,))) == caller

    def test_returns_result(self, bridge: ExecutionBridge, make_dataset) -> None:
        ds = make_dataset()

        assert bridge.run(recording_item(ds, "read", result="ok")) == "ok"
        assert ds.native.calls == ["read"]

    def test_closed_handle_raises_without_native_call(
        self, bridge: ExecutionBridge, registry: HandleRegistry, make_dataset
    ) -> None:
        ds = make_dataset()
        native = ds.native
        registry.close(ds)

        with pytest.raises(ClosedHandleError):
            bridge.run(recording_item(ds, "read"))
        assert native.calls == []

    def test_ticks_delivered_before_return(self, bridge: ExecutionBridge, make_dataset) -> None:
        seen: list[ProgressTick] = []
        item = ticking_item(make_dataset(), [0.25, 0.5, 1.0], progress=seen.append)

        assert bridge.run(item) == 3
        assert [t.fraction for t in seen] == [0.25, 0.5, 1.0]

    def test_waits_for_queued_work_on_same_dataset(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        ds = make_dataset()
        log: list[str] = []
        gate = Gate()
        first = bridge.submit(recording_item(ds, "first", log=log, gate=gate))
        assert gate.entered.wait(WAIT_TIMEOUT)

        threading.Timer(0.05, gate.open).start()
        bridge.run(recording_item(ds, "second", log=log))

        assert first.result(WAIT_TIMEOUT) is None
        assert log == ["first", "second"]

    def test_reentrant_call_does_not_deadlock(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        ds = make_dataset()

        def outer(_channel: ProgressChannel) -> str:
            return bridge.run(recording_item(ds, "inner", result="inner-done"))

        assert bridge.run(WorkItem(outer, handles=(ds,))) == "inner-done"

    def test_nested_call_on_extra_idle_dataset_runs(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        src, dst = make_dataset("src"), make_dataset("dst")
        log: list[str] = []

        def handler(_tick: ProgressTick) -> None:
            if not log:
                bridge.run(recording_item(src, "nested", log=log, others=(dst,)))

        item = ticking_item(src, [0.5, 1.0], progress=handler)
        caller = threading.Thread(target=bridge.run, args=(item,))
        caller.start()
        caller.join(WAIT_TIMEOUT)

        assert not caller.is_alive(), "nested blocking call hung"
        assert log == ["nested"]
        assert src.native.calls == ["nested", "algorithm"]
        assert bridge.scheduler.queued_on(dst.lock_key) == 0

    def test_nested_call_on_busy_dataset_fails_fast(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        src, dst = make_dataset("src"), make_dataset("dst")
        gate = Gate()
        busy = bridge.submit(recording_item(dst, "busy", gate=gate))
        assert gate.entered.wait(WAIT_TIMEOUT)

        def outer(_channel: ProgressChannel) -> None:
            bridge.run(recording_item(src, "nested", others=(dst,)))

        try:
            with pytest.raises(ReentrantCallError):
                bridge.run(WorkItem(outer, handles=(src,)))
        finally:
            gate.open()

        busy.result(WAIT_TIMEOUT)
        assert src.native.calls == []
        assert dst.native.calls == ["busy"]
        assert bridge.run(recording_item(src, "after", others=(dst,))) is None

    def test_handler_false_cancels(self, bridge: ExecutionBridge, make_dataset) -> None:
        ds = make_dataset()
        item = ticking_item(ds, [0.1, 0.2, 0.3], progress=lambda tick: tick.seq < 1)

        with pytest.raises(Cancelled):
            bridge.run(item)
        assert "algorithm" not in ds.native.calls

    def test_handler_exception_is_raised(self, bridge: ExecutionBridge, make_dataset) -> None:
        def handler(_tick: ProgressTick) -> None:
            raise ZeroDivisionError("handler")

        with pytest.raises(ZeroDivisionError):
            bridge.run(ticking_item(make_dataset(), [0.5, 1.0], progress=handler))


# =============================================================================
# Non-blocking form
# =============================================================================
class TestSubmit:
    def test_same_key_runs_in_submission_order(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        ds = make_dataset()
        log: list[str] = []
        gate = Gate()
        futures = [bridge.submit(recording_item(ds, "0", log=log, gate=gate))]
        futures += [bridge.submit(recording_item(ds, str(i), log=log)) for i in range(1, 6)]

        gate.open()
        wait(futures, timeout=WAIT_TIMEOUT)

        assert log == [str(i) for i in range(6)]

    def test_distinct_keys_run_concurrently(self, bridge: ExecutionBridge, make_dataset) -> None:
        barrier = threading.Barrier(2, timeout=WAIT_TIMEOUT)

        def operation(_channel: ProgressChannel) -> bool:
            barrier.wait()
            return True

        a = bridge.submit(WorkItem(operation, handles=(make_dataset("a"),)))
        b = bridge.submit(WorkItem(operation, handles=(make_dataset("b"),)))

        assert a.result(WAIT_TIMEOUT) and b.result(WAIT_TIMEOUT)

    def test_closed_handle_rejects_future(
        self, bridge: ExecutionBridge, registry: HandleRegistry, make_dataset
    ) -> None:
        ds = make_dataset()
        registry.close(ds)

        future = bridge.submit(recording_item(ds, "read"))

        with pytest.raises(ClosedHandleError):
            future.result(WAIT_TIMEOUT)

    def test_item_cannot_be_scheduled_twice(self, bridge: ExecutionBridge, make_dataset) -> None:
        item = recording_item(make_dataset(), "read")
        bridge.submit(item).result(WAIT_TIMEOUT)

        with pytest.raises(RuntimeError):
            bridge.submit(item)


# =============================================================================
# Cancellation
# =============================================================================
class TestCancel:
    def test_cancel_before_start_makes_no_native_call(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        ds = make_dataset()
        gate = Gate()
        running = bridge.submit(recording_item(ds, "running", gate=gate))
        queued = bridge.submit(recording_item(ds, "queued"))
        assert gate.entered.wait(WAIT_TIMEOUT)

        assert queued.cancel()
        gate.open()

        with pytest.raises(Cancelled):
            queued.result(WAIT_TIMEOUT)
        running.result(WAIT_TIMEOUT)
        assert ds.native.calls == ["running"]

    def test_cancel_during_run_stops_at_next_tick(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        ds = make_dataset()
        gate = Gate()
        future = bridge.submit(ticking_item(ds, [0.1, 0.2, 0.3], gate=gate))
        assert gate.entered.wait(WAIT_TIMEOUT)

        assert not future.cancel()
        assert future.progress.is_cancelled()
        gate.open()

        with pytest.raises(Cancelled):
            future.result(WAIT_TIMEOUT)
        assert ds.native.calls == []

    def test_cancel_after_completion_is_noop(self, bridge: ExecutionBridge, make_dataset) -> None:
        future = bridge.submit(recording_item(make_dataset(), "read", result=1))
        assert future.result(WAIT_TIMEOUT) == 1

        assert not future.cancel()
        assert future.result() == 1

    def test_cancelled_head_lets_successor_run(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        ds = make_dataset()
        gate = Gate()
        blocker = bridge.submit(recording_item(ds, "blocker", gate=gate))
        victim = bridge.submit(recording_item(ds, "victim"))
        survivor = bridge.submit(recording_item(ds, "survivor"))
        assert gate.entered.wait(WAIT_TIMEOUT)

        victim.cancel()
        gate.open()

        blocker.result(WAIT_TIMEOUT)
        survivor.result(WAIT_TIMEOUT)
        assert ds.native.calls == ["blocker", "survivor"]


# =============================================================================
# Async form
# =============================================================================
class TestRunAsync:
    def test_same_result_as_blocking(self, bridge: ExecutionBridge, make_dataset) -> None:
        ds = make_dataset()

        sync_result = bridge.run(ticking_item(ds, [0.5, 1.0]))
        async_result = asyncio.run(bridge.run_async(ticking_item(ds, [0.5, 1.0])))

        assert sync_result == async_result == 2
        assert ds.native.calls == ["algorithm", "algorithm"]

    def test_ticks_delivered_on_loop_thread_in_order(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        seen: list[tuple[int, int]] = []
        loop_thread = threading.get_ident()

        def handler(tick: ProgressTick) -> None:
            seen.append((tick.seq, threading.get_ident()))

        fractions = [i / 10 for i in range(1, 11)]
        asyncio.run(bridge.run_async(ticking_item(make_dataset(), fractions, progress=handler)))

        assert [seq for seq, _ in seen] == list(range(10))
        assert {ident for _, ident in seen} == {loop_thread}

    def test_gathered_items_on_one_dataset_keep_order(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        ds = make_dataset()
        log: list[str] = []

        async def main() -> list[str]:
            return await asyncio.gather(
                *(bridge.run_async(recording_item(ds, str(i), log=log, result=str(i)))
                  for i in range(5))
            )

        assert asyncio.run(main()) == [str(i) for i in range(5)]
        assert log == [str(i) for i in range(5)]

    def test_errors_surface_as_exceptions(
        self, bridge: ExecutionBridge, registry: HandleRegistry, make_dataset
    ) -> None:
        ds = make_dataset()
        registry.close(ds)

        with pytest.raises(ClosedHandleError):
            asyncio.run(bridge.run_async(recording_item(ds, "read")))

    def test_handler_exception_is_raised(self, bridge: ExecutionBridge, make_dataset) -> None:
        def handler(_tick: ProgressTick) -> None:
            raise ZeroDivisionError("handler")

        item = ticking_item(make_dataset(), [0.5, 1.0], progress=handler)

        with pytest.raises(ZeroDivisionError):
            asyncio.run(bridge.run_async(item))


# =============================================================================
# Lifecycle
# =============================================================================
class TestLifecycle:
    def test_close_handle_runs_after_pending_work(
        self, bridge: ExecutionBridge, make_dataset
    ) -> None:
        ds = make_dataset()
        native = ds.native
        gate = Gate()
        pending = bridge.submit(recording_item(ds, "write", gate=gate))
        assert gate.entered.wait(WAIT_TIMEOUT)

        closer = threading.Thread(target=bridge.close_handle, args=(ds,))
        closer.start()
        gate.open()
        closer.join(WAIT_TIMEOUT)

        pending.result(WAIT_TIMEOUT)
        assert native.calls == ["write"]
        assert native.released == 1
        assert not ds.is_open

    def test_close_handle_is_idempotent(self, bridge: ExecutionBridge, make_dataset) -> None:
        ds = make_dataset()
        native = ds.native

        bridge.close_handle(ds)
        bridge.close_handle(ds)

        assert native.released == 1

    def test_shutdown_cancels_pending_items(self, registry: HandleRegistry, make_dataset) -> None:
        bridge = ExecutionBridge(registry, max_workers=1)
        ds = make_dataset()
        gate = Gate()
        running = bridge.submit(recording_item(ds, "running", gate=gate))
        queued = bridge.submit(recording_item(ds, "queued"))
        assert gate.entered.wait(WAIT_TIMEOUT)

        bridge.shutdown(wait=False)
        gate.open()

        with pytest.raises(Cancelled):
            queued.result(WAIT_TIMEOUT)
        running.result(WAIT_TIMEOUT)
        with pytest.raises(BridgeShutdownError):
            bridge.submit(recording_item(ds, "late"))
        with pytest.raises(BridgeShutdownError):
            bridge.run(recording_item(ds, "late"))

    def test_context_manager_shuts_down(self, registry: HandleRegistry, make_dataset) -> None:
        with ExecutionBridge(registry, max_workers=1) as bridge:
            bridge.submit(recording_item(make_dataset(), "read")).result(WAIT_TIMEOUT)

        with pytest.raises(BridgeShutdownError):
            bridge.submit(recording_item(make_dataset(), "read"))

    def test_closed_handle_reported_before_shutdown(
        self, registry: HandleRegistry, make_dataset
    ) -> None:
        bridge = ExecutionBridge(registry, max_workers=1)
        ds = make_dataset()
        registry.close(ds)
        bridge.shutdown()

        with pytest.raises(ClosedHandleError):
            bridge.run(recording_item(ds, "read"))
        with pytest.raises(ClosedHandleError):
            bridge.submit(recording_item(ds, "read"))

    def test_close_handle_after_shutdown_releases(
        self, registry: HandleRegistry, make_dataset
    ) -> None:
        bridge = ExecutionBridge(registry, max_workers=1)
        ds = make_dataset()
        native = ds.native
        bridge.shutdown()

        bridge.close_handle(ds)

        assert native.released == 1
        assert not ds.is_open


class TestResolveMaxWorkers:
    def test_explicit_value(self) -> None:
        assert resolve_max_workers(3) == 3

    @pytest.mark.parametrize("value", [None, 0, -1])
    def test_defaults_to_cpu_count(self, value) -> None:
        assert resolve_max_workers(value) == max(1, os.cpu_count() or 1)
