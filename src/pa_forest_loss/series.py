from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .errors import SchemaError
from .extractors.base import AREA_FIELD, INDICATOR_FIELD, YEAR_FIELD, ZONE_FIELD
from .zones import AnalysisUnit, Zone


LOGGER = logging.getLogger(__name__)

_ISO_DATE_RE = re.compile(r"^([0-9]{4})-[0-9]{2}(-[0-9]{2})?([T ].*)?$")
MIN_YEAR = 1000
MAX_YEAR = 9999


@dataclass(frozen=True)
class AnnualAreaSeries:
    """Cumulative forest-cover area per year for one zone, ascending by year."""

    zone: Zone
    area_id: int
    points: tuple[tuple[int, float], ...]

    @property
    def years(self) -> tuple[int, ...]:
        return tuple(year for year, _ in self.points)

    def __len__(self) -> int:
        return len(self.points)


def parse_year(value: Any) -> int:
    """Parse a calendar year from an int, integral float, digit string or ISO date."""

    year: int | None = None
    if isinstance(value, bool):
        year = None
    elif isinstance(value, int):
        year = value
    elif isinstance(value, float) and math.isfinite(value) and value.is_integer():
        year = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if re.fullmatch(r"[0-9]{4}(\.0+)?", text):
            year = int(text.split(".")[0])
        else:
            match = _ISO_DATE_RE.match(text)
            if match is not None:
                year = int(match.group(1))

    if year is None or not MIN_YEAR <= year <= MAX_YEAR:
        raise SchemaError(f"Cannot parse {value!r} as a calendar year")
    return year


def parse_area(value: Any) -> float:
    if isinstance(value, bool):
        raise SchemaError(f"Area value is not a number: {value!r}")
    try:
        area = float(value)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"Area value is not a number: {value!r}") from exc
    if not math.isfinite(area) or area < 0:
        raise SchemaError(f"Area value must be finite and non-negative: {value!r}")
    return area


def _iter_points(payload: Any, *, zone: Zone) -> Iterable[tuple[Any, Any]]:
    """Yield raw (year, area) pairs from long records or a wide year -> area mapping."""

    if payload is None:
        return
    if isinstance(payload, Mapping):
        yield from payload.items()
        return
    if isinstance(payload, (str, bytes)) or not isinstance(payload, Iterable):
        raise SchemaError(f"Indicator for zone {zone.value} is neither records nor a mapping")
    for record in payload:
        if not isinstance(record, Mapping):
            raise SchemaError(f"Indicator record for zone {zone.value} is not a mapping: {record!r}")
        if YEAR_FIELD not in record:
            raise SchemaError(f"Indicator record for zone {zone.value} has no {YEAR_FIELD!r} field")
        if AREA_FIELD not in record:
            raise SchemaError(f"Indicator record for zone {zone.value} has no {AREA_FIELD!r} field")
        yield record[YEAR_FIELD], record[AREA_FIELD]


def to_area_series(unit: AnalysisUnit, row: Mapping[str, Any]) -> AnnualAreaSeries:
    if not isinstance(row, Mapping):
        raise SchemaError(f"Indicator row for zone {unit.zone.value} is not a mapping")
    if INDICATOR_FIELD not in row:
        raise SchemaError(f"Indicator row for zone {unit.zone.value} has no {INDICATOR_FIELD!r} field")

    reported_zone = row.get(ZONE_FIELD)
    if reported_zone is not None and reported_zone not in (unit.zone.value, unit.zone.label):
        raise SchemaError(
            f"Indicator row reports zone {reported_zone!r} where {unit.zone.value!r} was bound"
        )

    by_year: dict[int, float] = {}
    for raw_year, raw_area in _iter_points(row[INDICATOR_FIELD], zone=unit.zone):
        year = parse_year(raw_year)
        if year in by_year:
            raise SchemaError(f"Duplicate year {year} for zone {unit.zone.value}")
        by_year[year] = parse_area(raw_area)

    if not by_year:
        LOGGER.warning("No indicator years for zone %s of area %s", unit.zone.value, unit.area_id)

    return AnnualAreaSeries(
        zone=unit.zone,
        area_id=unit.area_id,
        points=tuple(sorted(by_year.items())),
    )


def reshape_indicator_table(
    units: Sequence[AnalysisUnit],
    rows: Sequence[Mapping[str, Any]],
) -> tuple[AnnualAreaSeries, ...]:
    """Flatten the extractor output into one AnnualAreaSeries per bound unit.

    Rows are matched to units by position. Each unit yields exactly one series,
    possibly empty.
    """

    if isinstance(rows, Mapping) or len(rows) != len(units):
        raise SchemaError(f"Expected {len(units)} indicator rows, got {len(rows)}")
    return tuple(to_area_series(unit, row) for unit, row in zip(units, rows))
