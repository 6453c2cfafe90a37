from __future__ import annotations

from typing import Any, Mapping, Sequence

import pytest

from pa_forest_loss.config import AnalysisConfig
from pa_forest_loss.errors import InvalidInputError, NoDataError, SchemaError
from pa_forest_loss.extractors.base import IndicatorExtractor
from pa_forest_loss.extractors.table import TableIndicatorExtractor
from pa_forest_loss.pipeline import run_forest_loss_trends
from pa_forest_loss.zones import AnalysisUnit, Zone


CONFIG = AnalysisConfig(buffer_m=10_000, min_patch_size_ha=1, min_cover_pct=35, display_order="grouped")

SCENARIO_TABLE = {
    "ProtectedArea": [
        {"year": 2001, "area_ha": 500},
        {"year": 2002, "area_ha": 480},
        {"year": 2003, "area_ha": 480},
    ],
    "BufferRing": [
        {"year": 2001, "area_ha": 900},
        {"year": 2002, "area_ha": 850},
    ],
}


class RecordingExtractor(IndicatorExtractor):
    def __init__(self, rows: list[Mapping[str, Any]] | None = None, error: Exception | None = None) -> None:
        self.rows = rows or []
        self.error = error
        self.calls: list[tuple[tuple[AnalysisUnit, ...], dict[str, float]]] = []

    def extract(
        self,
        units: Sequence[AnalysisUnit],
        *,
        min_patch_size_ha: float,
        min_cover_pct: float,
    ) -> list[Mapping[str, Any]]:
        self.calls.append(
            (tuple(units), {"min_patch_size_ha": min_patch_size_ha, "min_cover_pct": min_cover_pct})
        )
        if self.error is not None:
            raise self.error
        return self.rows


def test_reference_scenario(area_feature, feature_collection) -> None:
    extractor = TableIndicatorExtractor(SCENARIO_TABLE)

    result = run_forest_loss_trends(
        feature_collection(area_feature(area_id=115772)),
        config=CONFIG,
        extractor=extractor,
    )

    assert result.area_id == 115772
    assert result.zones.buffer_ring.intersection(result.zones.protected_area).area == pytest.approx(
        0.0, abs=1e-12
    )
    assert result.loss_for(Zone.PROTECTED_AREA).points == ((2001, 0), (2002, 20), (2003, 0))
    assert result.loss_for(Zone.BUFFER_RING).points == ((2001, 0), (2002, 50))
    assert [s.zone for s in result.losses] == [Zone.PROTECTED_AREA, Zone.BUFFER_RING]
    assert result.area_for(Zone.BUFFER_RING).years == result.loss_for(Zone.BUFFER_RING).years
    assert result.config.display_order == "grouped"
    assert extractor.calls == [
        {
            "zones": ["protected_area", "buffer_ring"],
            "min_patch_size_ha": 1.0,
            "min_cover_pct": 35.0,
        }
    ]


def test_units_are_bound_in_fixed_order(area_feature) -> None:
    rows = [
        {"treecover_area": [{"year": 2020, "area_ha": 1.0}]},
        {"treecover_area": [{"year": 2020, "area_ha": 2.0}]},
    ]
    extractor = RecordingExtractor(rows)

    result = run_forest_loss_trends(area_feature(area_id=3), config=CONFIG, extractor=extractor)

    (units, params), = extractor.calls
    assert [u.zone for u in units] == [Zone.PROTECTED_AREA, Zone.BUFFER_RING]
    assert {u.area_id for u in units} == {3}
    assert units[0].geometry.equals(result.zones.protected_area)
    assert units[1].geometry.equals(result.zones.buffer_ring)
    assert params == {"min_patch_size_ha": 1.0, "min_cover_pct": 35.0}


def test_single_year_per_zone(area_feature) -> None:
    rows = [
        {"treecover_area": [{"year": 2024, "area_ha": 12.5}]},
        {"treecover_area": [{"year": 2024, "area_ha": 40.0}]},
    ]
    result = run_forest_loss_trends(area_feature(), config=CONFIG, extractor=RecordingExtractor(rows))

    assert [s.points for s in result.losses] == [((2024, 0),), ((2024, 0),)]


def test_multi_record_input_fails_before_extraction(area_feature, feature_collection) -> None:
    extractor = RecordingExtractor()
    data = feature_collection(
        area_feature(area_id=1),
        area_feature(area_id=2, bounds=(-59.0, -3.1, -58.9, -3.0)),
    )

    with pytest.raises(InvalidInputError):
        run_forest_loss_trends(data, config=CONFIG, extractor=extractor)
    assert extractor.calls == []


def test_proposed_only_input_is_no_data(area_feature, feature_collection) -> None:
    extractor = RecordingExtractor()

    with pytest.raises(NoDataError):
        run_forest_loss_trends(
            feature_collection(area_feature(status="Proposed")), config=CONFIG, extractor=extractor
        )
    assert extractor.calls == []


def test_schema_error_from_extractor_output(area_feature) -> None:
    rows = [{"treecover_area": [{"year": "n/a", "area_ha": 1.0}]}, {"treecover_area": []}]

    with pytest.raises(SchemaError) as excinfo:
        run_forest_loss_trends(area_feature(), config=CONFIG, extractor=RecordingExtractor(rows))
    assert excinfo.value.stage == "reshape"


def test_extractor_failure_propagates(area_feature) -> None:
    extractor = RecordingExtractor(error=RuntimeError("tiles unavailable"))

    with pytest.raises(RuntimeError, match="tiles unavailable"):
        run_forest_loss_trends(area_feature(), config=CONFIG, extractor=extractor)


def test_forest_loss_error_in_extractor_is_tagged(area_feature) -> None:
    extractor = RecordingExtractor(error=SchemaError("bad table"))

    with pytest.raises(SchemaError) as excinfo:
        run_forest_loss_trends(area_feature(), config=CONFIG, extractor=extractor)
    assert excinfo.value.stage == "extract"
