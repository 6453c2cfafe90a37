from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .config import AnalysisConfig
from .errors import ForestLossError
from .extractors.base import IndicatorExtractor
from .geo.buffer_ring import (
    DEFAULT_EXCLUDED_STATUSES,
    DEFAULT_ID_FIELD,
    DEFAULT_STATUS_FIELD,
    prepare_zones,
)
from .loss import LossSeries, derive_losses
from .series import AnnualAreaSeries, reshape_indicator_table
from .zones import AnalysisUnit, PreparedZones, Zone, bind_analysis_units


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForestLossTrendResult:
    zones: PreparedZones
    units: tuple[AnalysisUnit, ...]
    annual_area: tuple[AnnualAreaSeries, ...]
    losses: tuple[LossSeries, ...]
    config: AnalysisConfig
    extractor_provenance: Mapping[str, Any]

    @property
    def area_id(self) -> int:
        return self.zones.area_id

    def area_for(self, zone: Zone) -> AnnualAreaSeries:
        for series in self.annual_area:
            if series.zone is zone:
                return series
        raise KeyError(zone)

    def loss_for(self, zone: Zone) -> LossSeries:
        for series in self.losses:
            if series.zone is zone:
                return series
        raise KeyError(zone)


def run_forest_loss_trends(
    features: object,
    *,
    config: AnalysisConfig,
    extractor: IndicatorExtractor,
    id_field: str = DEFAULT_ID_FIELD,
    status_field: str = DEFAULT_STATUS_FIELD,
    excluded_statuses: Iterable[str] = DEFAULT_EXCLUDED_STATUSES,
) -> ForestLossTrendResult:
    """Run geometry preparation, extraction, reshaping and loss derivation.

    Each stage consumes the full output of the previous one. Any error aborts
    the run; the extractor is never called if geometry preparation fails.
    """

    zones = prepare_zones(
        features,
        buffer_m=config.buffer_m,
        id_field=id_field,
        status_field=status_field,
        excluded_statuses=excluded_statuses,
    )
    units = bind_analysis_units(zones)

    LOGGER.info(
        "Extracting annual tree cover for area %s (min_cover_pct=%s, min_patch_size_ha=%s)",
        zones.area_id,
        config.min_cover_pct,
        config.min_patch_size_ha,
    )
    try:
        rows = extractor.extract(units, **config.extractor_params())
    except ForestLossError as exc:
        # Reported against the extract stage whatever the error class.
        exc.stage = "extract"
        raise

    annual_area = reshape_indicator_table(units, rows)
    losses = derive_losses(annual_area)
    for series in losses:
        LOGGER.info(
            "Zone %s: %d year(s), total loss %d ha",
            series.zone.value,
            len(series),
            series.total_loss_ha,
        )

    return ForestLossTrendResult(
        zones=zones,
        units=units,
        annual_area=annual_area,
        losses=losses,
        config=config,
        extractor_provenance=dict(extractor.provenance()),
    )
