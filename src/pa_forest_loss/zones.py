from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from shapely.geometry.base import BaseGeometry


class Zone(str, Enum):
    """The two analysis regions.

    Closed on purpose: downstream stages rely on exactly these two members, in
    this order.
    """

    PROTECTED_AREA = "protected_area"
    BUFFER_RING = "buffer_ring"

    @property
    def label(self) -> str:
        return _ZONE_LABELS[self]


_ZONE_LABELS = {
    Zone.PROTECTED_AREA: "ProtectedArea",
    Zone.BUFFER_RING: "BufferRing",
}

ZONE_ORDER: tuple[Zone, ...] = (Zone.PROTECTED_AREA, Zone.BUFFER_RING)


@dataclass(frozen=True)
class PreparedZones:
    """Source polygon and its buffer ring, both in EPSG:4326."""

    area_id: int
    protected_area: BaseGeometry
    buffer_ring: BaseGeometry
    buffer_m: float
    properties: Mapping[str, Any]

    def geometry_for(self, zone: Zone) -> BaseGeometry:
        if zone is Zone.PROTECTED_AREA:
            return self.protected_area
        return self.buffer_ring


@dataclass(frozen=True)
class AnalysisUnit:
    zone: Zone
    area_id: int
    geometry: BaseGeometry


def bind_analysis_units(zones: PreparedZones) -> tuple[AnalysisUnit, AnalysisUnit]:
    """Tag the prepared geometries with their zones.

    Always protected area first, then buffer ring; later stages match extractor
    rows to zones by position.
    """

    protected, ring = (
        AnalysisUnit(zone=zone, area_id=zones.area_id, geometry=zones.geometry_for(zone))
        for zone in ZONE_ORDER
    )
    return protected, ring
