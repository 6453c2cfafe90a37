from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from .errors import SchemaError
from .series import AnnualAreaSeries
from .zones import Zone


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LossSeries:
    """Whole-hectare forest loss per year for one zone; the first year is 0."""

    zone: Zone
    area_id: int
    points: tuple[tuple[int, int], ...]

    @property
    def years(self) -> tuple[int, ...]:
        return tuple(year for year, _ in self.points)

    @property
    def total_loss_ha(self) -> int:
        return sum(loss for _, loss in self.points)

    def __len__(self) -> int:
        return len(self.points)


def _ordered_points(series: AnnualAreaSeries) -> list[tuple[int, float]]:
    points = list(series.points)
    ordered = sorted(points, key=lambda p: p[0])
    if ordered != points:
        LOGGER.debug("Re-sorting area series for zone %s by year", series.zone.value)
    for (prev_year, _), (year, _) in zip(ordered, ordered[1:]):
        if year == prev_year:
            raise SchemaError(
                f"Duplicate year {year} in area series for zone {series.zone.value}", stage="derive"
            )
    return ordered


def derive_loss(series: AnnualAreaSeries) -> LossSeries:
    """Year-over-year loss magnitude for one zone.

    The cumulative metric may be reported as remaining cover (decreasing) or as
    accumulated loss (increasing); only the size of the change is reported, so
    the absolute difference is taken before rounding to whole hectares.
    """

    ordered = _ordered_points(series)
    losses: list[tuple[int, int]] = []
    previous: float | None = None
    for year, area_ha in ordered:
        loss = 0 if previous is None else int(round(abs(area_ha - previous)))
        losses.append((year, loss))
        previous = area_ha

    return LossSeries(zone=series.zone, area_id=series.area_id, points=tuple(losses))


def derive_losses(series: Iterable[AnnualAreaSeries]) -> tuple[LossSeries, ...]:
    """Derive one LossSeries per input series, keeping the input order."""

    return tuple(derive_loss(s) for s in series)
