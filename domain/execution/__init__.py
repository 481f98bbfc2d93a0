"""Execution Bounded Context.

Responsible for driving blocking native calls synchronously and asynchronously:
- Value Objects: ProgressTick
- Progress: ProgressChannel (thread-safe tick mailbox + cancellation flag)
- Work: WorkItem, WorkFuture
- Services: SyncCallFacade, HandleScheduler, ExecutionBridge
"""
