from __future__ import annotations

import math
from typing import Any

import numpy as np
from pyproj import Geod
from rasterio.crs import CRS
from rasterio.features import sieve


HANSEN_BASE_YEAR = 2000


def _pixel_footprint_area_m2(geod: Geod, transform: Any, row: int, col: int) -> float:
    x0, y0 = transform * (col, row)
    x1, y1 = transform * (col + 1, row + 1)
    lons = [x0, x1, x1, x0]
    lats = [y0, y0, y1, y1]
    area, _ = geod.polygon_area_perimeter(lons, lats)
    return abs(area)


def pixel_area_m2_raster(transform: Any, height: int, width: int, crs: Any) -> np.ndarray:
    """Return per-pixel area in square meters for a raster.

    Geographic rasters get geodesic WGS84 footprints (pyproj.Geod). For
    north-up grids all pixels of a row share one area, so it is computed once
    per row. Projected rasters use the constant affine pixel size.
    """

    if height <= 0 or width <= 0:
        return np.zeros((max(height, 0), max(width, 0)), dtype=np.float64)

    if crs is None:
        raise ValueError("CRS is required to compute pixel areas")

    crs_obj = CRS.from_user_input(crs)
    if not crs_obj.is_geographic:
        pixel_area = abs(float(transform.a) * float(transform.e))
        return np.full((height, width), pixel_area, dtype=np.float64)

    geod = Geod(ellps="WGS84")
    area_m2 = np.zeros((height, width), dtype=np.float64)
    north_up = transform.b == 0 and transform.d == 0
    for row in range(height):
        if north_up:
            area_m2[row, :] = _pixel_footprint_area_m2(geod, transform, row, 0)
            continue
        for col in range(width):
            area_m2[row, col] = _pixel_footprint_area_m2(geod, transform, row, col)
    return area_m2


def forest_mask_for_year(
    treecover2000: np.ndarray,
    lossyear: np.ndarray,
    min_cover_pct: float,
    year: int,
) -> np.ndarray:
    """Return the forest still standing at the end of `year`.

    `lossyear` codes are calendar_year - 2000 (0 = no loss). Year 2000 yields
    the baseline canopy mask.
    """

    forest2000 = treecover2000 >= min_cover_pct
    lost_by_year = (lossyear > 0) & (lossyear <= (year - HANSEN_BASE_YEAR))
    return forest2000 & ~lost_by_year


def min_patch_pixels(min_patch_size_ha: float, pixel_area_m2: np.ndarray) -> int:
    """Translate a minimum patch size into a pixel count using the mean pixel area."""

    if min_patch_size_ha <= 0 or pixel_area_m2.size == 0:
        return 0
    mean_area = float(np.mean(pixel_area_m2, dtype=np.float64))
    if mean_area <= 0:
        return 0
    return int(math.ceil(min_patch_size_ha * 10_000.0 / mean_area))


def drop_small_patches(mask: np.ndarray, min_pixels: int, *, connectivity: int = 8) -> np.ndarray:
    """Remove connected forest patches smaller than `min_pixels`.

    The sieve also fills small holes, so its result is intersected with the
    input mask: patches are only ever removed, never grown.
    """

    if min_pixels <= 1 or not mask.any():
        return mask
    sieved = sieve(mask.astype(np.uint8), size=min_pixels, connectivity=connectivity)
    return mask & (sieved == 1)


def zonal_area_ha(mask_bool: np.ndarray, pixel_area_m2: np.ndarray) -> float:
    if mask_bool.shape != pixel_area_m2.shape:
        raise ValueError("mask_bool and pixel_area_m2 must share shape")
    area_m2 = np.sum(pixel_area_m2[mask_bool], dtype=np.float64)
    return float(area_m2) / 10_000.0
