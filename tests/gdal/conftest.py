"""Pytest configuration for GDAL integration tests.

Every test module in this directory calls `pytest.importorskip("osgeo")`
first, so the suite degrades to the pure core tests where the GDAL bindings
are not installed. Raster fixture files are generated once per session with
rasterio (scripts/gen_fixtures.py), never by the code under test.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import numpy as np
import pytest

from shared.fixtures_expected import RAMP_SIZE, RAMP_STEP


@pytest.fixture(scope="session")
def fixtures_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Directory holding the generated GeoTIFF fixtures."""
    pytest.importorskip("rasterio")
    from scripts.gen_fixtures import generate_all

    out = tmp_path_factory.mktemp("fixtures")
    generate_all(out)
    return out


@pytest.fixture(scope="session")
def vector_driver() -> str:
    """In-memory vector driver name (merged into MEM on recent GDAL)."""
    from osgeo import gdal

    mem = gdal.GetDriverByName("MEM")
    if mem is not None and mem.GetMetadataItem(gdal.DCAP_VECTOR) == "YES":
        return "MEM"
    return "Memory"


@pytest.fixture
def geo() -> Iterator:
    from infrastructure.config import BridgeSettings
    from infrastructure.gdal import GeoBridge

    bridge = GeoBridge(BridgeSettings(max_workers=2))
    yield bridge
    bridge.close()


@pytest.fixture
def ramp_dataset(geo):
    """64x64 Byte MEM raster where every pixel of row y holds 4 * y."""
    ds = geo.open("ramp", "w", driver="MEM", x_size=RAMP_SIZE, y_size=RAMP_SIZE, band_count=1)
    rows = np.arange(RAMP_SIZE, dtype=np.uint8) * RAMP_STEP
    data = np.repeat(rows[:, np.newaxis], RAMP_SIZE, axis=1)
    ds.bands.get(1).pixels.write(0, 0, RAMP_SIZE, RAMP_SIZE, data)
    yield ds
    ds.close()


@pytest.fixture
def vector_dataset(geo, vector_driver: str):
    ds = geo.open("vectors", "w", driver=vector_driver)
    yield ds
    ds.close()


@pytest.fixture
def contour_layer(vector_dataset):
    """Line layer with an integer id field (0) and a real elevation field (1)."""
    layer = vector_dataset.layers.create("contours", geom_type="LineString")
    layer.fields.add("id", "Integer")
    layer.fields.add("elev", "Real")
    return layer
