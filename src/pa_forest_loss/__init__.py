"""Forest-loss trends for a protected area and its buffer ring."""

from .config import AnalysisConfig, config_from_env, load_analysis_config
from .errors import (
    ConfigError,
    ForestLossError,
    GeometryError,
    InvalidInputError,
    NoDataError,
    SchemaError,
)
from .loss import LossSeries, derive_loss, derive_losses
from .pipeline import ForestLossTrendResult, run_forest_loss_trends
from .series import AnnualAreaSeries, reshape_indicator_table
from .zones import AnalysisUnit, PreparedZones, Zone, bind_analysis_units

__all__ = [
    "AnalysisConfig",
    "AnalysisUnit",
    "AnnualAreaSeries",
    "ConfigError",
    "ForestLossError",
    "ForestLossTrendResult",
    "GeometryError",
    "InvalidInputError",
    "LossSeries",
    "NoDataError",
    "PreparedZones",
    "SchemaError",
    "Zone",
    "bind_analysis_units",
    "config_from_env",
    "derive_loss",
    "derive_losses",
    "load_analysis_config",
    "reshape_indicator_table",
    "run_forest_loss_trends",
]
