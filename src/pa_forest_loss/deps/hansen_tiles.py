from __future__ import annotations

import math
import re
from pathlib import Path
from typing import Iterable

from shapely.geometry.base import BaseGeometry


DATASET_VERSION_DEFAULT = "2024-v1.12"

_TILE_ID_RE = re.compile(r"([0-9]{2}[NS]_[0-9]{3}[EW])", flags=re.IGNORECASE)
_DATASET_YEAR_RE = re.compile(r"(?<![0-9])(20[0-9]{2})(?![0-9])")


def geometries_bbox(geometries: Iterable[BaseGeometry]) -> tuple[float, float, float, float]:
    bounds = [g.bounds for g in geometries if g is not None and not g.is_empty]
    if not bounds:
        raise ValueError("No non-empty geometries to compute a bbox from")
    return (
        min(b[0] for b in bounds),
        min(b[1] for b in bounds),
        max(b[2] for b in bounds),
        max(b[3] for b in bounds),
    )


def _band_start(value: float, band_size: int = 10) -> int:
    return int(math.floor(value / band_size) * band_size)


def _lat_band_start(value: float, band_size: int = 10) -> int:
    return int(math.ceil(value / band_size) * band_size)


def _band_range(min_value: float, max_value: float, band_size: int = 10) -> list[int]:
    min_band = _band_start(min_value, band_size)
    max_band = _band_start(max_value - 1e-9, band_size)
    return list(range(min_band, max_band + band_size, band_size))


def _lat_band_range(min_value: float, max_value: float, band_size: int = 10) -> list[int]:
    min_band = _lat_band_start(min_value + 1e-9, band_size)
    max_band = _lat_band_start(max_value - 1e-9, band_size)
    return list(range(min_band, max_band + band_size, band_size))


def _format_lat_band(lat: int) -> str:
    suffix = "N" if lat >= 0 else "S"
    return f"{abs(lat):02d}{suffix}"


def _format_lon_band(lon: int) -> str:
    suffix = "E" if lon >= 0 else "W"
    return f"{abs(lon):03d}{suffix}"


def hansen_tile_ids_for_bbox(bbox: tuple[float, float, float, float]) -> list[str]:
    """Return Global Forest Change tile ids (e.g. ``10S_060W``) covering `bbox`.

    Tiles are 10x10 degrees and named after their top-left corner, the way the
    GFC download files are (``Hansen_GFC-2024-v1.12_lossyear_10S_060W.tif``).
    """

    minx, miny, maxx, maxy = bbox
    lat_bands = _lat_band_range(miny, maxy)
    lon_bands = _band_range(minx, maxx)
    return sorted(
        f"{_format_lat_band(lat)}_{_format_lon_band(lon)}" for lat in lat_bands for lon in lon_bands
    )


def tile_id_from_path(path: Path) -> str | None:
    parent_name = path.parent.name.upper()
    if _TILE_ID_RE.fullmatch(parent_name):
        return parent_name
    match = _TILE_ID_RE.search(path.stem.upper())
    if match is not None:
        return match.group(1)
    return None


def filter_tiles_by_bbox(
    paths: list[Path],
    *,
    bbox_wgs84: tuple[float, float, float, float],
) -> list[Path]:
    """Keep tiles whose id falls inside `bbox_wgs84`.

    Files without a recognisable tile id (single-file test rasters, mosaics)
    are all kept.
    """

    required_ids = set(hansen_tile_ids_for_bbox(bbox_wgs84))
    detected = [(path, tile_id_from_path(path)) for path in paths]
    if not any(tile_id is not None for _, tile_id in detected):
        return paths
    return [path for path, tile_id in detected if tile_id is not None and tile_id in required_ids]


def latest_year_from_dataset_version(dataset_version: str) -> int:
    """Return the last loss year covered by a GFC dataset version.

    ``"2024-v1.12"`` and ``"GFC-2023-v1.11"`` carry the year explicitly.
    """

    match = _DATASET_YEAR_RE.search(dataset_version or "")
    if match is None:
        raise ValueError(f"Cannot infer the last loss year from dataset version {dataset_version!r}")
    return int(match.group(1))
