"""Indicator extractors: the only place raster-backed values enter the pipeline."""

from .base import AREA_FIELD, INDICATOR_FIELD, YEAR_FIELD, ZONE_FIELD, IndicatorExtractor
from .hansen import HansenAnnualCoverExtractor, HansenExtractorConfig, load_hansen_extractor_config
from .table import TableIndicatorExtractor

__all__ = [
    "AREA_FIELD",
    "INDICATOR_FIELD",
    "YEAR_FIELD",
    "ZONE_FIELD",
    "HansenAnnualCoverExtractor",
    "HansenExtractorConfig",
    "IndicatorExtractor",
    "TableIndicatorExtractor",
    "load_hansen_extractor_config",
]
