"""Root pytest configuration for all tests.

Core fixtures (registry, bridge, fake natives) shared by the unit tests.
GDAL-backed fixtures live in tests/gdal/conftest.py.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest

from domain.execution.bridge import ExecutionBridge
from domain.handles.registry import Handle, HandleRegistry
from domain.handles.value_objects import HandleKind
from tests.conftest_utils import FakeNative, release_native


@pytest.fixture
def registry() -> HandleRegistry:
    return HandleRegistry()


@pytest.fixture
def bridge(registry: HandleRegistry) -> Iterator[ExecutionBridge]:
    """Bridge with a small pool; shut down after each test."""
    execution_bridge = ExecutionBridge(registry, max_workers=4)
    yield execution_bridge
    execution_bridge.shutdown()


@pytest.fixture
def make_dataset(registry: HandleRegistry) -> Callable[..., Handle]:
    """Factory registering a root handle around a fresh FakeNative."""

    def _make(name: str = "ds") -> Handle:
        return registry.register(FakeNative(name), HandleKind.DATASET, release=release_native)

    return _make
