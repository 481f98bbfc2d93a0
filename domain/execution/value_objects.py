"""Execution Bounded Context - Value Objects.

Immutable data structures exchanged between worker threads and the caller.
All validation occurs at construction time via Pydantic.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ProgressTick(BaseModel):
    """One progress report emitted by a native algorithm (Value Object).

    `seq` is assigned by the channel in emission order; gaps mean ticks were
    dropped by a full queue, never reordered.
    """

    seq: int = Field(ge=0)
    fraction: float = Field(ge=0.0, le=1.0)  # completed share of the work
    message: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def percent(self) -> float:
        return self.fraction * 100.0
