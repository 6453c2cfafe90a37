from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from pa_forest_loss.errors import SchemaError
from pa_forest_loss.extractors.base import (
    AREA_FIELD,
    INDICATOR_FIELD,
    YEAR_FIELD,
    ZONE_FIELD,
    IndicatorExtractor,
)
from pa_forest_loss.zones import AnalysisUnit, Zone


LOGGER = logging.getLogger(__name__)


def _zone_key(value: str) -> str:
    """Accept both zone values (``buffer_ring``) and labels (``BufferRing``)."""

    for zone in Zone:
        if value in (zone.value, zone.label):
            return zone.value
    raise SchemaError(f"Unknown zone in indicator table: {value!r}")


class TableIndicatorExtractor(IndicatorExtractor):
    """Serve precomputed annual areas keyed by zone.

    `table` maps a zone value or label to the indicator payload for that zone
    (long records or a year -> area mapping). Thresholds are recorded but not
    applied: the table is assumed to have been computed with them.
    """

    def __init__(self, table: Mapping[str, Any], *, source: str = "inline") -> None:
        self._table = {_zone_key(str(k)): v for k, v in table.items()}
        self._source = source
        self.calls: list[dict[str, Any]] = []

    @classmethod
    def from_json(cls, path: Path) -> "TableIndicatorExtractor":
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, Mapping):
            raise SchemaError(f"Indicator table {path} must be a JSON object keyed by zone")
        return cls(data, source=path.as_posix())

    @classmethod
    def from_csv(cls, path: Path) -> "TableIndicatorExtractor":
        table: dict[str, list[dict[str, str]]] = {}
        with path.open("r", encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            if reader.fieldnames is None or ZONE_FIELD not in reader.fieldnames:
                raise SchemaError(f"Indicator table {path} has no {ZONE_FIELD!r} column")
            for row in reader:
                zone = _zone_key(str(row.pop(ZONE_FIELD)))
                table.setdefault(zone, []).append(row)
        return cls(table, source=path.as_posix())

    @classmethod
    def from_path(cls, path: Path) -> "TableIndicatorExtractor":
        if path.suffix.lower() == ".csv":
            return cls.from_csv(path)
        return cls.from_json(path)

    def extract(
        self,
        units: Sequence[AnalysisUnit],
        *,
        min_patch_size_ha: float,
        min_cover_pct: float,
    ) -> list[Mapping[str, Any]]:
        self.calls.append(
            {
                "zones": [u.zone.value for u in units],
                "min_patch_size_ha": min_patch_size_ha,
                "min_cover_pct": min_cover_pct,
            }
        )
        rows: list[Mapping[str, Any]] = []
        for unit in units:
            payload = self._table.get(unit.zone.value)
            if payload is None:
                LOGGER.warning("No indicator rows for zone %s in %s", unit.zone.value, self._source)
                payload = []
            rows.append({ZONE_FIELD: unit.zone.value, INDICATOR_FIELD: payload})
        return rows

    def provenance(self) -> Mapping[str, Any]:
        return {
            "extractor": type(self).__name__,
            "source": self._source,
            "fields": [YEAR_FIELD, AREA_FIELD],
        }
