"""Handles Bounded Context - Value Objects."""

from __future__ import annotations

from enum import Enum


class HandleKind(str, Enum):
    """Closed set of native resource kinds a Handle can wrap."""

    DATASET = "dataset"
    BAND = "band"
    OVERVIEW = "overview"
    LAYER = "layer"
    FEATURE = "feature"
    FIELD_SET = "field set"
    GEOMETRY = "geometry"
