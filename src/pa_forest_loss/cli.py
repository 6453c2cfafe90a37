from __future__ import annotations

import argparse
import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence

from .config import DISPLAY_ORDERS, AnalysisConfig, config_from_env
from .errors import ForestLossError, InvalidInputError
from .extractors.base import IndicatorExtractor
from .extractors.hansen import HansenAnnualCoverExtractor, load_hansen_extractor_config
from .extractors.table import TableIndicatorExtractor
from .geo.buffer_ring import DEFAULT_ID_FIELD, DEFAULT_STATUS_FIELD, lookup_property, load_features
from .pipeline import run_forest_loss_trends
from .reports.outputs import write_outputs
from .zones import AnalysisUnit


LOGGER = logging.getLogger(__name__)
EXIT_PIPELINE_ERROR = 2


@contextmanager
def _timed(label: str) -> Iterator[None]:
    start = time.perf_counter()
    print(f"[profile] START {label}", flush=True)
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        print(f"[profile] DONE  {label} ({elapsed:.2f}s)", flush=True)


class _TimedExtractor(IndicatorExtractor):
    def __init__(self, inner: IndicatorExtractor) -> None:
        self._inner = inner

    def extract(
        self,
        units: Sequence[AnalysisUnit],
        *,
        min_patch_size_ha: float,
        min_cover_pct: float,
    ) -> list[Mapping[str, Any]]:
        with _timed(f"extract {type(self._inner).__name__}"):
            return self._inner.extract(
                units, min_patch_size_ha=min_patch_size_ha, min_cover_pct=min_cover_pct
            )

    def provenance(self) -> Mapping[str, Any]:
        return self._inner.provenance()


def select_feature(data: object, area_id: str, *, id_field: str) -> object:
    """Narrow a FeatureCollection to the records whose identifier is `area_id`."""

    if not isinstance(data, Mapping) or data.get("type") != "FeatureCollection":
        return data

    def record_id(feat: Mapping[str, Any]) -> str:
        value = lookup_property(feat.get("properties") or {}, id_field)
        if value is None:
            value = feat.get("id")
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return "" if value is None else str(value).strip()

    wanted = area_id.strip()
    selected = [feat for feat in data.get("features") or [] if record_id(feat) == wanted]
    if not selected:
        raise InvalidInputError(f"No record with {id_field}={wanted} in input")
    return {"type": "FeatureCollection", "features": selected}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m pa_forest_loss.cli",
        description=(
            "Compute annual forest cover and year-over-year forest loss for a protected area "
            "and its buffer ring."
        ),
    )

    p.add_argument("--area-geojson", required=True, help="Path to the protected-area GeoJSON")
    p.add_argument(
        "--area-id",
        help="Optional: select the record with this identifier from a multi-record GeoJSON.",
    )
    p.add_argument(
        "--id-field",
        default=DEFAULT_ID_FIELD,
        help=f"Identifier attribute (default: {DEFAULT_ID_FIELD}).",
    )
    p.add_argument(
        "--status-field",
        default=DEFAULT_STATUS_FIELD,
        help=f"Lifecycle status attribute used to drop proposed records (default: {DEFAULT_STATUS_FIELD}).",
    )

    p.add_argument("--buffer-m", type=float, help="Buffer distance in metres (env: PA_FOREST_LOSS_BUFFER_M).")
    p.add_argument(
        "--min-patch-size-ha",
        type=float,
        help="Minimum forest patch size in hectares (env: PA_FOREST_LOSS_MIN_PATCH_SIZE_HA).",
    )
    p.add_argument(
        "--min-cover-pct",
        type=float,
        help="Minimum canopy cover percent (env: PA_FOREST_LOSS_MIN_COVER_PCT).",
    )
    p.add_argument(
        "--display-order",
        choices=list(DISPLAY_ORDERS),
        help="Chart bar layout, passed through to presentation (env: PA_FOREST_LOSS_DISPLAY_ORDER).",
    )

    src = p.add_mutually_exclusive_group()
    src.add_argument(
        "--hansen-tile-dir",
        help="Hansen tile directory (defaults to PA_FOREST_LOSS_HANSEN_TILE_DIR).",
    )
    src.add_argument(
        "--indicator-table",
        help="Precomputed annual area table (JSON keyed by zone, or CSV with a zone column).",
    )

    p.add_argument("--dataset-version", help="GFC dataset version, e.g. 2024-v1.12.")
    p.add_argument("--first-year", type=int, help="First year of the series (default: 2000).")
    p.add_argument("--last-year", type=int, help="Last year (default: from the dataset version).")
    p.add_argument("--cache-dir", help="Optional cache directory for extracted areas.")

    p.add_argument("--output-dir", required=True, help="Directory for GeoJSON/CSV/JSON outputs.")
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO).",
    )
    return p


def _build_config(args: argparse.Namespace) -> AnalysisConfig:
    return config_from_env(
        {
            "buffer_m": args.buffer_m,
            "min_patch_size_ha": args.min_patch_size_ha,
            "min_cover_pct": args.min_cover_pct,
            "display_order": args.display_order,
        }
    )


def _build_extractor(args: argparse.Namespace) -> IndicatorExtractor:
    if args.indicator_table:
        return TableIndicatorExtractor.from_path(Path(args.indicator_table))
    config = load_hansen_extractor_config(
        tile_dir=Path(args.hansen_tile_dir) if args.hansen_tile_dir else None,
        cache_dir=Path(args.cache_dir) if args.cache_dir else None,
        dataset_version=args.dataset_version,
        first_year=args.first_year,
        last_year=args.last_year,
    )
    return HansenAnnualCoverExtractor(config)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _build_config(args)
        extractor = _build_extractor(args)
        data = load_features(Path(args.area_geojson))
        if args.area_id:
            data = select_feature(data, args.area_id, id_field=args.id_field)

        result = run_forest_loss_trends(
            data,
            config=config,
            extractor=_TimedExtractor(extractor),
            id_field=args.id_field,
            status_field=args.status_field,
        )
    except ForestLossError as exc:
        print(exc.describe(), file=sys.stderr)
        return EXIT_PIPELINE_ERROR
    except (RuntimeError, OSError, ValueError) as exc:
        # Unreadable tiles or tables surface from the extractor as plain errors.
        LOGGER.debug("Extraction failed", exc_info=True)
        print(f"[extract] {type(exc).__name__}: {exc}", file=sys.stderr)
        return EXIT_PIPELINE_ERROR

    paths = write_outputs(result, Path(args.output_dir))
    for series in result.losses:
        print(f"{series.zone.label}: " + ", ".join(f"{y}={v}" for y, v in series.points))
    print(f"Summary: {paths.summary_json}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
