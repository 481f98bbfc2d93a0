"""GDAL adapter - Value Objects.

Immutable results handed back across the call boundary. Validation occurs at
construction time via Pydantic.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RasterSize(BaseModel):
    """Raster dimensions in pixels."""

    x: int = Field(ge=0)  # width
    y: int = Field(ge=0)  # height

    model_config = ConfigDict(frozen=True)


class FieldDefn(BaseModel):
    """Attribute field definition of a layer."""

    name: str
    type: str  # OGR field type name, e.g. "Integer", "Real", "String"
    width: int = 0
    precision: int = 0

    model_config = ConfigDict(frozen=True)
