"""Convert image activity — turn a downloaded radar PNG into a GeoTIFF.

This is the default transform capability used by the transformation phase.
It reads the PNG with rasterio, writes ``{canonical_name}.tif`` next to it
(deflate-compressed, colormap preserved), and, when bounds are configured,
georeferences the raster so it can be dropped straight into a GIS.

Operations (in order):
1. **Read** all bands and the dataset mask of the source PNG.
2. **Georeference** with ``rasterio.transform.from_bounds`` if bounds are set.
3. **Write** the GeoTIFF; copy the palette of single-band images.

The echo coverage (share of unmasked pixels) is logged and returned so an
operator can tell an empty radar frame from a busy one.
"""

from __future__ import annotations

import contextlib
import logging
import time
import warnings
from pathlib import Path
from typing import Any

import numpy as np

from ims_radar.core.constants import CONVERTED_EXTENSION, DEFAULT_GEOREF_CRS
from ims_radar.core.exceptions import RadarError

logger = logging.getLogger("ims_radar.activities.convert_image")


class ConversionError(RadarError):
    """Raised when a radar image cannot be converted.

    Attributes:
        message: Human-readable error description.
        retryable: Whether converting again may succeed.
    """

    default_stage = "transformation"
    default_code = "CONVERSION_FAILED"

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message, retryable=retryable)


class GeoTiffConverter:
    """Transform capability writing a GeoTIFF beside each radar PNG.

    Args:
        bounds: Optional ``(west, south, east, north)`` of the radar frame.
        crs: CRS the bounds are expressed in.
    """

    def __init__(
        self,
        *,
        bounds: tuple[float, float, float, float] | None = None,
        crs: str = DEFAULT_GEOREF_CRS,
    ) -> None:
        self.bounds = bounds
        self.crs = crs

    def __call__(self, local_path: Path) -> dict[str, Any]:
        return convert_to_geotiff(local_path, bounds=self.bounds, crs=self.crs)


def convert_to_geotiff(
    source_path: Path,
    *,
    output_path: Path | None = None,
    bounds: tuple[float, float, float, float] | None = None,
    crs: str = DEFAULT_GEOREF_CRS,
) -> dict[str, Any]:
    """Convert *source_path* into a GeoTIFF.

    Args:
        source_path: Downloaded radar image.
        output_path: Destination; defaults to *source_path* with ``.tif``.
        bounds: Optional ``(west, south, east, north)`` for georeferencing.
        crs: CRS of *bounds*.

    Returns:
        A dict containing ``source_path``, ``output_path``, ``width``,
        ``height``, ``bands``, ``georeferenced``, ``echo_coverage`` (0-1),
        ``output_size_bytes`` and ``processing_duration_seconds``.

    Raises:
        ConversionError: If the source is missing or unreadable, or the
            GeoTIFF cannot be written.
    """
    import rasterio
    from rasterio.crs import CRS
    from rasterio.errors import NotGeoreferencedWarning, RasterioError
    from rasterio.transform import from_bounds

    source = Path(source_path)
    output = Path(output_path) if output_path else source.with_suffix(CONVERTED_EXTENSION)

    if not source.is_file():
        msg = f"Source image does not exist: {source}"
        raise ConversionError(msg)

    start_time = time.monotonic()
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with rasterio.open(source) as src:
                data = src.read()
                mask = src.dataset_mask()
                colormap: dict[int, tuple[int, ...]] | None = None
                if src.count == 1:
                    with contextlib.suppress(ValueError):
                        colormap = src.colormap(1)
                width, height, bands = src.width, src.height, src.count

        profile: dict[str, Any] = {
            "driver": "GTiff",
            "width": width,
            "height": height,
            "count": bands,
            "dtype": data.dtype,
            "compress": "deflate",
        }
        if bounds is not None:
            profile["crs"] = CRS.from_user_input(crs)
            profile["transform"] = from_bounds(*bounds, width, height)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with rasterio.open(output, "w", **profile) as dst:
                dst.write(data)
                if colormap:
                    dst.write_colormap(1, colormap)
    except (RasterioError, OSError, ValueError) as exc:
        msg = f"Cannot convert {source.name} to GeoTIFF: {exc}"
        raise ConversionError(msg) from exc

    coverage = echo_coverage(mask)
    duration = time.monotonic() - start_time
    output_size = output.stat().st_size

    logger.info(
        "Converted | source=%s | output=%s | size=%dx%d | bands=%d | "
        "georeferenced=%s | coverage=%.3f | duration=%.2fs",
        source.name,
        output.name,
        width,
        height,
        bands,
        bounds is not None,
        coverage,
        duration,
    )

    return {
        "source_path": str(source),
        "output_path": str(output),
        "width": width,
        "height": height,
        "bands": bands,
        "georeferenced": bounds is not None,
        "echo_coverage": coverage,
        "output_size_bytes": output_size,
        "processing_duration_seconds": round(duration, 3),
    }


def echo_coverage(mask: np.ndarray) -> float:
    """Return the fraction of valid (non-zero) pixels in a dataset mask."""
    if mask.size == 0:
        return 0.0
    return float(np.count_nonzero(mask)) / float(mask.size)
