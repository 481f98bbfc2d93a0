"""GeoBridge: entry point wiring GDAL to the handle registry and the bridge.

Usage:
    with GeoBridge() as geo:
        with geo.open("dem.tif") as ds:
            band = ds.bands.get(1)
            checksum = checksum_image(band)

Each GeoBridge owns one HandleRegistry and one ExecutionBridge (and so one
worker pool). Wrappers created through it route every native call through
that bridge.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable, Sequence
from typing import Any, TypeVar

from osgeo import gdal

from domain.errors import MarshalingError, NativeOperationError
from domain.execution.bridge import ExecutionBridge
from domain.execution.progress import ProgressChannel, ProgressHandler
from domain.execution.work import WorkItem
from domain.handles.registry import Handle, HandleRegistry
from domain.handles.value_objects import HandleKind
from infrastructure.config import BridgeSettings, get_settings
from infrastructure.gdal.dataset import Dataset, data_type_code, release_dataset
from infrastructure.gdal.geometry import Geometry, geojson_to_native, wkt_to_native
from infrastructure.gdal.native import enable_exceptions, translate_gdal_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

OPEN_MODES = ("r", "r+", "w")


class GeoBridge:
    """Owner of the registry, the execution bridge and the GDAL setup.

    Parameters
    ----------
    settings: BridgeSettings | None
        Defaults to the cached environment settings.
    max_workers: int | None
        Overrides `settings.max_workers`.
    """

    def __init__(
        self, settings: BridgeSettings | None = None, *, max_workers: int | None = None
    ) -> None:
        self.settings = settings or get_settings()
        enable_exceptions()
        for key, value in self.settings.gdal_config.items():
            gdal.SetConfigOption(key, value)
            logger.debug("GDAL config %s=%s", key, value)
        self.registry = HandleRegistry()
        self.bridge = ExecutionBridge(
            self.registry,
            max_workers=max_workers or self.settings.max_workers,
            translator=translate_gdal_error,
        )
        logger.info("GeoBridge ready (GDAL %s)", gdal.__version__)

    # -- work construction ---------------------------------------------------
    def work(
        self,
        label: str,
        fn: Callable[[ProgressChannel], T],
        *,
        handles: Iterable[Handle] = (),
        persist: Iterable[Any] = (),
        progress: ProgressHandler | None = None,
    ) -> WorkItem[T]:
        """Package a native call as a WorkItem with its own progress channel."""
        channel = ProgressChannel(progress, maxsize=self.settings.progress_queue_size)

        def operation(ch: ProgressChannel) -> T:
            # Stale errors from an earlier call must not leak into this one
            gdal.ErrorReset()
            return fn(ch)

        return WorkItem(
            operation,
            handles=tuple(handles),
            channel=channel,
            label=label,
            persist=tuple(persist),
        )

    def adopt_geometry(self, native: Any) -> Geometry:
        """Register a standalone (owned, cloned) geometry."""
        handle = self.registry.register(native, HandleKind.GEOMETRY)
        return Geometry(self, handle)

    # -- datasets ------------------------------------------------------------
    def _open_work(
        self,
        path: str | os.PathLike,
        mode: str,
        driver: str | None,
        x_size: int,
        y_size: int,
        band_count: int,
        data_type: str | int,
        creation_options: Sequence[str] | None,
    ) -> WorkItem[Dataset]:
        if mode not in OPEN_MODES:
            raise MarshalingError(f"Invalid open mode {mode!r}, expected one of {OPEN_MODES}")
        if mode == "w" and driver is None:
            raise MarshalingError("Creating a dataset (mode 'w') requires a driver")
        path = os.fspath(path)
        type_code = data_type_code(data_type) if band_count else gdal.GDT_Unknown
        options = list(creation_options or [])

        def _open(_ch: ProgressChannel) -> Dataset:
            if mode == "w":
                drv = gdal.GetDriverByName(driver)
                if drv is None:
                    raise NativeOperationError(-1, f"Unknown driver {driver!r}")
                native = drv.Create(path, x_size, y_size, band_count, type_code, options)
            else:
                flags = gdal.OF_VERBOSE_ERROR | (gdal.OF_UPDATE if mode == "r+" else gdal.OF_READONLY)
                native = gdal.OpenEx(path, flags, allowed_drivers=[driver] if driver else None)
            if native is None:
                raise NativeOperationError(-1, f"Error opening dataset {path!r}")
            handle = self.registry.register(native, HandleKind.DATASET, release=release_dataset)
            logger.debug("Opened %s (mode=%s) as %r", path, mode, handle)
            return Dataset(self, handle)

        return self.work(f"open {path}", _open)

    def open(
        self,
        path: str | os.PathLike,
        mode: str = "r",
        *,
        driver: str | None = None,
        x_size: int = 0,
        y_size: int = 0,
        band_count: int = 0,
        data_type: str | int = "Byte",
        creation_options: Sequence[str] | None = None,
    ) -> Dataset:
        """Open (modes "r", "r+") or create (mode "w") a dataset.

        Args:
            path: File path, or any name for in-memory drivers
            mode: "r" read-only, "r+" update, "w" create with `driver`
            driver: Driver short name; restricts opening, required to create
            x_size, y_size, band_count, data_type: Raster shape when creating;
                leave at 0 for vector-only datasets
            creation_options: Driver creation options ("COMPRESS=DEFLATE", ...)

        Raises:
            MarshalingError: Invalid mode, data type or missing driver
            NativeOperationError: GDAL could not open or create the dataset
        """
        return self.bridge.run(
            self._open_work(
                path, mode, driver, x_size, y_size, band_count, data_type, creation_options
            )
        )

    async def open_async(
        self,
        path: str | os.PathLike,
        mode: str = "r",
        *,
        driver: str | None = None,
        x_size: int = 0,
        y_size: int = 0,
        band_count: int = 0,
        data_type: str | int = "Byte",
        creation_options: Sequence[str] | None = None,
    ) -> Dataset:
        return await self.bridge.run_async(
            self._open_work(
                path, mode, driver, x_size, y_size, band_count, data_type, creation_options
            )
        )

    # -- geometries ----------------------------------------------------------
    def geometry_from_wkt(self, wkt: str) -> Geometry:
        return self.bridge.run(
            self.work("geometry_from_wkt", lambda _ch: self.adopt_geometry(wkt_to_native(wkt)))
        )

    def geometry_from_json(self, value: str | dict[str, Any]) -> Geometry:
        """Geometry from GeoJSON text or an already parsed GeoJSON object."""
        return self.bridge.run(
            self.work(
                "geometry_from_json", lambda _ch: self.adopt_geometry(geojson_to_native(value))
            )
        )

    # -- lifecycle -----------------------------------------------------------
    def close(self) -> None:
        """Close every open dataset and geometry, then stop the worker pool."""
        self.bridge.shutdown()
        self.registry.close_all()
        logger.info("GeoBridge closed")

    def __enter__(self) -> GeoBridge:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
