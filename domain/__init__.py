"""GeoBridge Domain Layer.

This package contains the bridge-plus-iteration core, organized by bounded
contexts. Nothing here imports the native collaborator:
- handles: native resource lifecycle (open/closed latch, child cascade)
- execution: blocking and asynchronous invocation, progress, cancellation
- iteration: cursor iterators over the three collection shapes
"""

# Imports alphabetized per project style (isort)
from domain import execution, handles, iteration

__all__ = ["execution", "handles", "iteration"]
