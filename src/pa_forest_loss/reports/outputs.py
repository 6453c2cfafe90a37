from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from shapely.geometry import mapping

from pa_forest_loss.pipeline import ForestLossTrendResult
from pa_forest_loss.zones import ZONE_ORDER

from .determinism import canonical_json_bytes, sha256_file, utc_now_iso, write_csv, write_json


LOGGER = logging.getLogger(__name__)

ZONES_GEOJSON = "zones.geojson"
ANNUAL_AREA_CSV = "annual_area.csv"
FOREST_LOSS_CSV = "forest_loss.csv"
SUMMARY_JSON = "summary.json"


@dataclass(frozen=True)
class OutputPaths:
    zones_geojson: Path
    annual_area_csv: Path
    forest_loss_csv: Path
    summary_json: Path


def zones_feature_collection(result: ForestLossTrendResult) -> dict[str, Any]:
    """Map layer input: one feature per zone, protected area first."""

    features = []
    for zone in ZONE_ORDER:
        features.append(
            {
                "type": "Feature",
                "properties": {
                    "area_id": result.area_id,
                    "zone": zone.value,
                    "label": zone.label,
                    "buffer_m": result.zones.buffer_m,
                },
                "geometry": mapping(result.zones.geometry_for(zone)),
            }
        )
    # Round-trip so coordinate tuples become lists.
    return json.loads(canonical_json_bytes({"type": "FeatureCollection", "features": features}))


def annual_area_rows(result: ForestLossTrendResult) -> list[dict[str, Any]]:
    return [
        {"area_id": s.area_id, "zone": s.zone.value, "year": year, "area_ha": area_ha}
        for s in result.annual_area
        for year, area_ha in s.points
    ]


def forest_loss_rows(result: ForestLossTrendResult) -> list[dict[str, Any]]:
    return [
        {"area_id": s.area_id, "zone": s.zone.value, "year": year, "loss_ha": loss_ha}
        for s in result.losses
        for year, loss_ha in s.points
    ]


def build_summary(result: ForestLossTrendResult) -> dict[str, Any]:
    zones: dict[str, Any] = {}
    for zone in ZONE_ORDER:
        area = result.area_for(zone)
        loss = result.loss_for(zone)
        zones[zone.value] = {
            "label": zone.label,
            "annual_area_ha": [[year, value] for year, value in area.points],
            "loss_ha": [[year, value] for year, value in loss.points],
            "total_loss_ha": loss.total_loss_ha,
            "years": list(loss.years),
        }
    return {
        "area_id": result.area_id,
        "config": result.config.to_dict(),
        "extractor": dict(result.extractor_provenance),
        "zones": zones,
    }


def write_outputs(result: ForestLossTrendResult, output_dir: Path) -> OutputPaths:
    """Write map, chart and table inputs for one run into `output_dir`.

    The summary lists the sha256 of every other artifact; all files are written
    with stable ordering so reruns on the same inputs are byte-identical apart
    from `generated_utc`.
    """

    output_dir.mkdir(parents=True, exist_ok=True)
    paths = OutputPaths(
        zones_geojson=output_dir / ZONES_GEOJSON,
        annual_area_csv=output_dir / ANNUAL_AREA_CSV,
        forest_loss_csv=output_dir / FOREST_LOSS_CSV,
        summary_json=output_dir / SUMMARY_JSON,
    )

    write_json(paths.zones_geojson, zones_feature_collection(result))
    write_csv(paths.annual_area_csv, ["area_id", "zone", "year", "area_ha"], annual_area_rows(result))
    write_csv(paths.forest_loss_csv, ["area_id", "zone", "year", "loss_ha"], forest_loss_rows(result))

    summary = build_summary(result)
    summary["generated_utc"] = utc_now_iso()
    summary["artifacts"] = [
        {"path": p.name, "sha256": sha256_file(p)}
        for p in (paths.zones_geojson, paths.annual_area_csv, paths.forest_loss_csv)
    ]
    write_json(paths.summary_json, summary)
    LOGGER.info("Wrote outputs for area %s to %s", result.area_id, output_dir)
    return paths
