from __future__ import annotations

from typing import Any, Mapping, Sequence

from pa_forest_loss.zones import AnalysisUnit


INDICATOR_FIELD = "treecover_area"
YEAR_FIELD = "year"
AREA_FIELD = "area_ha"
ZONE_FIELD = "zone"


class IndicatorExtractor:
    """Batch-extract annual forest-cover area for a set of analysis units.

    Implementations return one mapping per unit, in unit order, holding the
    zone value under ``"zone"`` and the indicator under ``"treecover_area"``:
    either a list of ``{"year": ..., "area_ha": ...}`` records or a mapping of
    year to area. The call is blocking and all-or-nothing.
    """

    def extract(
        self,
        units: Sequence[AnalysisUnit],
        *,
        min_patch_size_ha: float,
        min_cover_pct: float,
    ) -> list[Mapping[str, Any]]:
        raise NotImplementedError

    def provenance(self) -> Mapping[str, Any]:
        return {"extractor": type(self).__name__}
