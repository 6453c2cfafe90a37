from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

import shapely
from pyproj import CRS, Transformer
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry
from shapely.validation import explain_validity

from pa_forest_loss.errors import GeometryError, InvalidInputError, NoDataError
from pa_forest_loss.zones import PreparedZones


LOGGER = logging.getLogger(__name__)

DEFAULT_ID_FIELD = "WDPAID"
DEFAULT_STATUS_FIELD = "STATUS"
DEFAULT_EXCLUDED_STATUSES = frozenset({"proposed"})
POLYGONAL_TYPES = ("Polygon", "MultiPolygon")

# Relative to the source area, in projected square metres.
OVERLAP_TOLERANCE = 1e-6


def load_features(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise InvalidInputError(f"Cannot read area GeoJSON {path}: {exc}") from exc


def _iter_records(data: object) -> Iterable[tuple[Mapping[str, Any], Any, Any]]:
    """Yield (properties, geometry, feature_id) for every record in `data`."""

    if isinstance(data, (list, tuple)):
        for item in data:
            yield from _iter_records(item)
        return
    if not isinstance(data, Mapping):
        raise InvalidInputError(f"Unsupported area input: {type(data).__name__}")

    kind = data.get("type")
    if kind == "FeatureCollection":
        for feat in data.get("features") or []:
            yield from _iter_records(feat)
    elif kind == "Feature":
        yield dict(data.get("properties") or {}), data.get("geometry"), data.get("id")
    elif kind in POLYGONAL_TYPES or "coordinates" in data:
        yield {}, data, None
    else:
        raise InvalidInputError(f"Unsupported GeoJSON type: {kind!r}")


def lookup_property(properties: Mapping[str, Any], field: str) -> Any:
    if field in properties:
        return properties[field]
    wanted = field.casefold()
    for key, value in properties.items():
        if str(key).casefold() == wanted:
            return value
    return None


def _coerce_area_id(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"Area identifier is missing or not an integer: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise InvalidInputError(f"Area identifier is missing or not an integer: {value!r}")


def select_active_record(
    data: object,
    *,
    status_field: str = DEFAULT_STATUS_FIELD,
    excluded_statuses: Iterable[str] = DEFAULT_EXCLUDED_STATUSES,
) -> tuple[Mapping[str, Any], Any, Any]:
    """Return the single record left after dropping non-finalized statuses."""

    records = list(_iter_records(data))
    if not records:
        raise InvalidInputError("Area input contains no records")

    excluded = {s.casefold() for s in excluded_statuses}
    kept = []
    for props, geom, feature_id in records:
        status = lookup_property(props, status_field)
        if isinstance(status, str) and status.strip().casefold() in excluded:
            LOGGER.info("Dropping area record with status %r", status)
            continue
        kept.append((props, geom, feature_id))

    if not kept:
        raise NoDataError(
            f"No usable area records: all {len(records)} record(s) have an excluded status"
        )
    if len(kept) > 1:
        raise InvalidInputError(f"Expected exactly one area record, got {len(kept)}")
    return kept[0]


def _local_crs(geom: BaseGeometry) -> CRS:
    centroid = geom.centroid
    return CRS.from_proj4(
        f"+proj=aeqd +lat_0={centroid.y} +lon_0={centroid.x} +datum=WGS84 +units=m +no_defs"
    )


def _check_ring(ring: BaseGeometry, *, where: str) -> None:
    if ring.is_empty:
        raise GeometryError(f"Buffer ring is empty ({where})")
    if ring.geom_type not in POLYGONAL_TYPES:
        raise GeometryError(f"Buffer ring is not polygonal ({where}): {ring.geom_type}")
    if not ring.is_valid:
        raise GeometryError(f"Buffer ring is invalid ({where}): {explain_validity(ring)}")


def buffer_ring(source: BaseGeometry, buffer_m: float) -> BaseGeometry:
    """Return `buffer(source, buffer_m) - source` for a WGS84 geometry.

    Buffering happens in an azimuthal-equidistant CRS centred on the source so
    the distance is in metres. The ring is differenced against the original
    source once more after reprojection, keeping the two interior-disjoint in
    EPSG:4326 as well.
    """

    if buffer_m < 0:
        raise GeometryError(f"Buffer distance must be >= 0, got {buffer_m}")

    local = _local_crs(source)
    to_local = Transformer.from_crs("EPSG:4326", local, always_xy=True).transform
    to_wgs84 = Transformer.from_crs(local, "EPSG:4326", always_xy=True).transform

    projected = shapely.transform(source, to_local, interleaved=False)
    ring_local = projected.buffer(buffer_m).difference(projected)
    _check_ring(ring_local, where="projected")

    overlap = ring_local.intersection(projected).area
    if overlap > OVERLAP_TOLERANCE * max(projected.area, 1.0):
        raise GeometryError(f"Buffer ring overlaps the source polygon by {overlap:.3f} m2")

    ring = shapely.transform(ring_local, to_wgs84, interleaved=False).difference(source)
    _check_ring(ring, where="EPSG:4326")
    LOGGER.debug(
        "Buffer ring built: buffer_m=%s ring_area_m2=%.1f", buffer_m, ring_local.area
    )
    return ring


def prepare_zones(
    data: object,
    *,
    buffer_m: float,
    id_field: str = DEFAULT_ID_FIELD,
    status_field: str = DEFAULT_STATUS_FIELD,
    excluded_statuses: Iterable[str] = DEFAULT_EXCLUDED_STATUSES,
) -> PreparedZones:
    """Build the protected-area and buffer-ring geometries from one record.

    Raises:
      InvalidInputError for zero or several records, a missing identifier or a
      non-polygonal geometry; NoDataError when status filtering leaves nothing;
      GeometryError for an invalid source or an unusable ring.
    """

    props, geom_data, feature_id = select_active_record(
        data, status_field=status_field, excluded_statuses=excluded_statuses
    )

    raw_id = lookup_property(props, id_field)
    area_id = _coerce_area_id(raw_id if raw_id is not None else feature_id)

    if not geom_data:
        raise InvalidInputError(f"Area {area_id} has no geometry")
    try:
        source = shape(geom_data)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise InvalidInputError(f"Area {area_id} geometry cannot be parsed: {exc}") from exc

    if source.geom_type not in POLYGONAL_TYPES:
        raise InvalidInputError(
            f"Area {area_id} geometry must be Polygon or MultiPolygon, got {source.geom_type}"
        )
    if source.is_empty:
        raise InvalidInputError(f"Area {area_id} geometry is empty")
    if not source.is_valid:
        raise GeometryError(f"Area {area_id} geometry is invalid: {explain_validity(source)}")

    LOGGER.info("Preparing zones for area %s (buffer %s m)", area_id, buffer_m)
    ring = buffer_ring(source, buffer_m)

    return PreparedZones(
        area_id=area_id,
        protected_area=source,
        buffer_ring=ring,
        buffer_m=float(buffer_m),
        properties=dict(props),
    )
