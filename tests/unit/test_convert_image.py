"""Tests for the convert_image activity.

Radar PNGs are written to ``tmp_path`` with rasterio, converted, and the
resulting GeoTIFF is read back.  Failure paths use mocked rasterio calls.
"""

from __future__ import annotations

import unittest
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest
import rasterio
from rasterio.errors import RasterioIOError

from ims_radar.activities.convert_image import (
    ConversionError,
    GeoTiffConverter,
    convert_to_geotiff,
    echo_coverage,
)

ISRAEL_BOUNDS = (31.0, 29.0, 37.0, 34.5)

pytestmark = pytest.mark.filterwarnings("ignore::rasterio.errors.NotGeoreferencedWarning")


def _write_palette_png(path: Path, width: int = 8, height: int = 6) -> Path:
    data = np.zeros((1, height, width), dtype=np.uint8)
    data[0, :2, :] = 1
    with rasterio.open(
        path, "w", driver="PNG", width=width, height=height, count=1, dtype="uint8"
    ) as dst:
        dst.write(data)
        dst.write_colormap(1, {0: (0, 0, 0, 255), 1: (255, 0, 0, 255)})
    return path


def _write_rgba_png(path: Path, width: int = 4, height: int = 4) -> Path:
    data = np.full((4, height, width), 200, dtype=np.uint8)
    data[3] = 255
    data[3, :, : width // 2] = 0  # left half transparent
    with rasterio.open(
        path, "w", driver="PNG", width=width, height=height, count=4, dtype="uint8"
    ) as dst:
        dst.write(data)
    return path


class TestConvertToGeoTiff:
    def test_writes_tif_beside_png(self, tmp_path: Path) -> None:
        source = _write_palette_png(tmp_path / "2026_03_15_12_34.png")

        result = convert_to_geotiff(source)

        output = tmp_path / "2026_03_15_12_34.tif"
        assert result["output_path"] == str(output)
        assert output.is_file()
        assert result["width"] == 8
        assert result["height"] == 6
        assert result["bands"] == 1
        assert result["georeferenced"] is False
        assert result["output_size_bytes"] == output.stat().st_size
        with rasterio.open(output) as dst:
            assert dst.driver == "GTiff"
            assert dst.read(1)[0, 0] == 1
            assert dst.read(1)[5, 0] == 0

    def test_preserves_palette(self, tmp_path: Path) -> None:
        source = _write_palette_png(tmp_path / "radar.png")

        convert_to_geotiff(source)

        with rasterio.open(tmp_path / "radar.tif") as dst:
            assert dst.colormap(1)[1] == (255, 0, 0, 255)

    def test_georeferences_with_bounds(self, tmp_path: Path) -> None:
        source = _write_palette_png(tmp_path / "radar.png")

        result = convert_to_geotiff(source, bounds=ISRAEL_BOUNDS)

        assert result["georeferenced"] is True
        with rasterio.open(tmp_path / "radar.tif") as dst:
            assert dst.crs.to_epsg() == 4326
            assert dst.bounds.left == pytest.approx(31.0)
            assert dst.bounds.bottom == pytest.approx(29.0)
            assert dst.bounds.right == pytest.approx(37.0)
            assert dst.bounds.top == pytest.approx(34.5)

    def test_echo_coverage_from_alpha(self, tmp_path: Path) -> None:
        source = _write_rgba_png(tmp_path / "radar.png")

        result = convert_to_geotiff(source)

        assert result["bands"] == 4
        assert result["echo_coverage"] == pytest.approx(0.5)

    def test_explicit_output_path(self, tmp_path: Path) -> None:
        source = _write_palette_png(tmp_path / "radar.png")
        output = tmp_path / "out" / "converted.tif"
        output.parent.mkdir()

        result = convert_to_geotiff(source, output_path=output)

        assert result["output_path"] == str(output)
        assert output.is_file()

    def test_missing_source(self, tmp_path: Path) -> None:
        with pytest.raises(ConversionError) as exc_info:
            convert_to_geotiff(tmp_path / "absent.png")
        assert exc_info.value.code == "CONVERSION_FAILED"
        assert exc_info.value.stage == "transformation"

    def test_corrupt_source(self, tmp_path: Path) -> None:
        source = tmp_path / "radar.png"
        source.write_bytes(b"\x89PNG truncated")

        with pytest.raises(ConversionError) as exc_info:
            convert_to_geotiff(source)
        assert "radar.png" in exc_info.value.message
        assert not (tmp_path / "radar.tif").exists()

    def test_open_failure_is_wrapped(self, tmp_path: Path) -> None:
        source = _write_palette_png(tmp_path / "radar.png")

        with (
            patch("rasterio.open", side_effect=RasterioIOError("disk gone")),
            pytest.raises(ConversionError) as exc_info,
        ):
            convert_to_geotiff(source)
        assert isinstance(exc_info.value.__cause__, RasterioIOError)


class TestGeoTiffConverter:
    def test_call_uses_configured_bounds(self, tmp_path: Path) -> None:
        converter = GeoTiffConverter(bounds=ISRAEL_BOUNDS, crs="EPSG:4326")
        source = tmp_path / "radar.png"

        with patch(
            "ims_radar.activities.convert_image.convert_to_geotiff",
            return_value={"ok": True},
        ) as mock_convert:
            assert converter(source) == {"ok": True}

        mock_convert.assert_called_once_with(source, bounds=ISRAEL_BOUNDS, crs="EPSG:4326")


class TestEchoCoverage(unittest.TestCase):
    """echo_coverage over dataset masks."""

    def test_full(self) -> None:
        self.assertEqual(echo_coverage(np.full((2, 2), 255, dtype=np.uint8)), 1.0)

    def test_none(self) -> None:
        self.assertEqual(echo_coverage(np.zeros((2, 2), dtype=np.uint8)), 0.0)

    def test_quarter(self) -> None:
        mask = np.zeros((2, 2), dtype=np.uint8)
        mask[0, 0] = 255
        self.assertAlmostEqual(echo_coverage(mask), 0.25)

    def test_empty(self) -> None:
        self.assertEqual(echo_coverage(np.zeros((0, 0), dtype=np.uint8)), 0.0)
