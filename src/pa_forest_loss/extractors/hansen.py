from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import numpy as np
import rasterio
from rasterio.errors import RasterioIOError
from rasterio.mask import mask as rio_mask
from rasterio.warp import transform_geom
from shapely.geometry import mapping

from pa_forest_loss.deps.hansen_tiles import (
    DATASET_VERSION_DEFAULT,
    filter_tiles_by_bbox,
    geometries_bbox,
    latest_year_from_dataset_version,
)
from pa_forest_loss.errors import ConfigError
from pa_forest_loss.extractors.base import (
    AREA_FIELD,
    INDICATOR_FIELD,
    YEAR_FIELD,
    ZONE_FIELD,
    IndicatorExtractor,
)
from pa_forest_loss.geo.forest_area_core import (
    HANSEN_BASE_YEAR,
    drop_small_patches,
    forest_mask_for_year,
    min_patch_pixels,
    pixel_area_m2_raster,
    zonal_area_ha,
)
from pa_forest_loss.reports.determinism import canonical_json_bytes, sha256_bytes, sha256_file, write_json
from pa_forest_loss.zones import AnalysisUnit


LOGGER = logging.getLogger(__name__)

TILE_DIR_ENV = "PA_FOREST_LOSS_HANSEN_TILE_DIR"
DATASET_VERSION_ENV = "PA_FOREST_LOSS_HANSEN_DATASET_VERSION"
CACHE_DIR_ENV = "PA_FOREST_LOSS_CACHE_DIR"

TREECOVER_LAYER = "treecover2000"
LOSSYEAR_LAYER = "lossyear"


@dataclass(frozen=True)
class HansenExtractorConfig:
    tile_dir: Path
    cache_dir: Path | None = None
    dataset_version: str = DATASET_VERSION_DEFAULT
    first_year: int = HANSEN_BASE_YEAR
    last_year: int | None = None
    all_touched: bool = False

    def years(self) -> list[int]:
        last_year = self.last_year
        if last_year is None:
            last_year = latest_year_from_dataset_version(self.dataset_version)
        if self.first_year < HANSEN_BASE_YEAR:
            raise ValueError(f"first_year must be >= {HANSEN_BASE_YEAR}, got {self.first_year}")
        if last_year < self.first_year:
            raise ValueError(f"last_year {last_year} is before first_year {self.first_year}")
        return list(range(self.first_year, last_year + 1))


def load_hansen_extractor_config(
    *,
    tile_dir: Path | None = None,
    cache_dir: Path | None = None,
    dataset_version: str | None = None,
    first_year: int | None = None,
    last_year: int | None = None,
) -> HansenExtractorConfig:
    if tile_dir is None:
        env = os.environ.get(TILE_DIR_ENV)
        if not env:
            raise ConfigError(f"{TILE_DIR_ENV} must be set for Hansen processing")
        tile_dir = Path(env)
    if cache_dir is None:
        env_cache = os.environ.get(CACHE_DIR_ENV)
        cache_dir = Path(env_cache) if env_cache else None
    if dataset_version is None:
        dataset_version = os.environ.get(DATASET_VERSION_ENV, DATASET_VERSION_DEFAULT)

    config = HansenExtractorConfig(
        tile_dir=tile_dir,
        cache_dir=cache_dir,
        dataset_version=dataset_version,
        first_year=HANSEN_BASE_YEAR if first_year is None else first_year,
        last_year=last_year,
    )
    try:
        config.years()
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    return config


@dataclass(frozen=True)
class TileProvenance:
    layer: str
    relpath: str
    sha256: str


class TileSource:
    def list_layer_files(self, layer: str) -> list[Path]:
        raise NotImplementedError

    def tile_relpath(self, path: Path) -> str:
        raise NotImplementedError


class LocalTileSource(TileSource):
    """GFC tiles on local disk.

    Supported layouts: ``<dir>/<layer>/*.tif``, ``<dir>/<layer>.tif``,
    ``<dir>/<layer>_*.tif`` and the upstream file names
    ``<dir>/Hansen_GFC-<version>_<layer>_<tile>.tif``.
    """

    def __init__(self, tile_dir: Path) -> None:
        self._tile_dir = tile_dir

    def list_layer_files(self, layer: str) -> list[Path]:
        if not self._tile_dir.exists():
            return []

        layer_dir = self._tile_dir / layer
        candidates: list[Path] = []
        if layer_dir.is_dir():
            candidates.extend(sorted(layer_dir.glob("*.tif")))
        else:
            direct = self._tile_dir / f"{layer}.tif"
            if direct.is_file():
                candidates.append(direct)
            candidates.extend(sorted(self._tile_dir.glob(f"{layer}_*.tif")))
            candidates.extend(sorted(self._tile_dir.glob(f"Hansen_GFC-*_{layer}_*.tif")))
        return sorted(set(candidates))

    def tile_relpath(self, path: Path) -> str:
        try:
            return path.relative_to(self._tile_dir).as_posix()
        except ValueError:
            return path.as_posix()


def _pairing_key(path: Path, layer: str) -> str:
    return path.name.replace(layer, "{layer}")


def _pair_tiles(treecover_tiles: list[Path], lossyear_tiles: list[Path]) -> list[tuple[Path, Path]]:
    if not treecover_tiles or not lossyear_tiles:
        raise RuntimeError("Missing required Hansen tiles (treecover2000/lossyear)")

    if len(treecover_tiles) == 1 and len(lossyear_tiles) == 1:
        return [(treecover_tiles[0], lossyear_tiles[0])]

    lossyear_by_key = {_pairing_key(p, LOSSYEAR_LAYER): p for p in lossyear_tiles}
    pairs: list[tuple[Path, Path]] = []
    for tree_path in treecover_tiles:
        match = lossyear_by_key.get(_pairing_key(tree_path, TREECOVER_LAYER))
        if match is None:
            raise RuntimeError(f"No matching lossyear tile for treecover2000 tile: {tree_path.name}")
        pairs.append((tree_path, match))
    return pairs


def _mask_raster(
    dataset: rasterio.io.DatasetReader,
    geom: dict[str, Any],
    *,
    all_touched: bool,
) -> tuple[np.ma.MaskedArray, Any]:
    geom_crs = dataset.crs
    if geom_crs is None:
        raise RuntimeError(f"Raster dataset has no CRS: {dataset.name}")

    geom_in_crs = transform_geom("EPSG:4326", geom_crs, geom)
    try:
        data, transform = rio_mask(
            dataset, [geom_in_crs], crop=True, filled=False, all_touched=all_touched
        )
    except ValueError:
        # No overlap between zone and raster
        return np.ma.masked_all((1, 1, 1)), dataset.transform
    return data, transform


class HansenAnnualCoverExtractor(IndicatorExtractor):
    """Annual tree-cover area from Hansen Global Forest Change tiles.

    For every year the forest is the 2000 canopy at or above `min_cover_pct`
    minus all loss recorded up to and including that year; patches smaller than
    `min_patch_size_ha` are dropped before summing geodesic pixel areas. The
    series is therefore non-increasing.
    """

    def __init__(self, config: HansenExtractorConfig) -> None:
        self._config = config
        self._tile_source = LocalTileSource(config.tile_dir)
        self.tile_provenance: list[TileProvenance] = []
        self.cache_hit = False

    @property
    def config(self) -> HansenExtractorConfig:
        return self._config

    def provenance(self) -> Mapping[str, Any]:
        return {
            "extractor": type(self).__name__,
            "dataset_version": self._config.dataset_version,
            "years": self._config.years(),
            "all_touched": self._config.all_touched,
            "cache_hit": self.cache_hit,
            "tiles": [
                {"layer": p.layer, "path": p.relpath, "sha256": p.sha256}
                for p in self.tile_provenance
            ],
        }

    def _tile_pairs(self, units: Sequence[AnalysisUnit]) -> list[tuple[Path, Path]]:
        bbox = geometries_bbox(u.geometry for u in units)
        treecover_tiles = filter_tiles_by_bbox(
            self._tile_source.list_layer_files(TREECOVER_LAYER), bbox_wgs84=bbox
        )
        lossyear_tiles = filter_tiles_by_bbox(
            self._tile_source.list_layer_files(LOSSYEAR_LAYER), bbox_wgs84=bbox
        )
        return _pair_tiles(treecover_tiles, lossyear_tiles)

    def _provenance_for(self, pairs: list[tuple[Path, Path]]) -> list[TileProvenance]:
        provenance: list[TileProvenance] = []
        for tree_path, loss_path in pairs:
            for layer, path in ((TREECOVER_LAYER, tree_path), (LOSSYEAR_LAYER, loss_path)):
                provenance.append(
                    TileProvenance(
                        layer=layer,
                        relpath=self._tile_source.tile_relpath(path),
                        sha256=sha256_file(path),
                    )
                )
        return sorted(provenance, key=lambda p: (p.layer, p.relpath))

    def _cache_path(
        self,
        units: Sequence[AnalysisUnit],
        years: list[int],
        params: Mapping[str, float],
    ) -> Path | None:
        if self._config.cache_dir is None:
            return None
        key = {
            "units": [[u.zone.value, u.area_id, u.geometry.wkt] for u in units],
            "years": years,
            "params": dict(params),
            "all_touched": self._config.all_touched,
            "tiles": [[p.layer, p.relpath, p.sha256] for p in self.tile_provenance],
        }
        return self._config.cache_dir / f"treecover_area_{sha256_bytes(canonical_json_bytes(key))}.json"

    def extract(
        self,
        units: Sequence[AnalysisUnit],
        *,
        min_patch_size_ha: float,
        min_cover_pct: float,
    ) -> list[Mapping[str, Any]]:
        years = self._config.years()
        pairs = self._tile_pairs(units)
        self.tile_provenance = self._provenance_for(pairs)
        self.cache_hit = False

        params = {"min_patch_size_ha": min_patch_size_ha, "min_cover_pct": min_cover_pct}
        cache_path = self._cache_path(units, years, params)
        if cache_path is not None and cache_path.is_file():
            LOGGER.info("Using cached tree-cover areas from %s", cache_path)
            self.cache_hit = True
            return json.loads(cache_path.read_text(encoding="utf-8"))

        totals = [dict.fromkeys(years, 0.0) for _ in units]
        for tree_path, loss_path in pairs:
            LOGGER.debug("Reading tile pair %s / %s", tree_path.name, loss_path.name)
            try:
                with rasterio.open(tree_path) as tree_ds, rasterio.open(loss_path) as loss_ds:
                    for idx, unit in enumerate(units):
                        self._accumulate_unit(
                            tree_ds,
                            loss_ds,
                            unit,
                            totals[idx],
                            min_patch_size_ha=min_patch_size_ha,
                            min_cover_pct=min_cover_pct,
                        )
            except RasterioIOError as exc:
                raise RuntimeError(f"Failed to read Hansen tile: {exc}") from exc

        rows: list[Mapping[str, Any]] = [
            {
                ZONE_FIELD: unit.zone.value,
                INDICATOR_FIELD: [
                    {YEAR_FIELD: year, AREA_FIELD: round(area_ha, 6)}
                    for year, area_ha in sorted(unit_totals.items())
                ],
            }
            for unit, unit_totals in zip(units, totals)
        ]

        if cache_path is not None:
            write_json(cache_path, rows)
        return rows

    def _accumulate_unit(
        self,
        tree_ds: rasterio.io.DatasetReader,
        loss_ds: rasterio.io.DatasetReader,
        unit: AnalysisUnit,
        totals: dict[int, float],
        *,
        min_patch_size_ha: float,
        min_cover_pct: float,
    ) -> None:
        geom = mapping(unit.geometry)
        tree_data, tree_transform = _mask_raster(tree_ds, geom, all_touched=self._config.all_touched)
        loss_data, _ = _mask_raster(loss_ds, geom, all_touched=self._config.all_touched)

        if tree_data.shape != loss_data.shape:
            raise RuntimeError("Mismatched raster shapes for treecover2000 and lossyear")

        tree_band = tree_data[0]
        loss_band = loss_data[0]
        valid = (~np.ma.getmaskarray(tree_band)) & (~np.ma.getmaskarray(loss_band))
        if not valid.any():
            LOGGER.debug("Zone %s does not overlap %s", unit.zone.value, tree_ds.name)
            return

        tree_values = np.ma.filled(tree_band, 0)
        loss_values = np.ma.filled(loss_band, 0)
        pixel_area_m2 = pixel_area_m2_raster(
            tree_transform,
            height=tree_values.shape[0],
            width=tree_values.shape[1],
            crs=tree_ds.crs,
        )
        min_pixels = min_patch_pixels(min_patch_size_ha, pixel_area_m2[valid])

        for year in totals:
            forest = forest_mask_for_year(tree_values, loss_values, min_cover_pct, year) & valid
            forest = drop_small_patches(forest, min_pixels)
            totals[year] += zonal_area_ha(forest, pixel_area_m2)
