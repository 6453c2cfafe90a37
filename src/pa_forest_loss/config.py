from __future__ import annotations

import math
import os
from dataclasses import asdict, dataclass
from typing import Any, Mapping

import jsonschema
from jsonschema import Draft202012Validator

from .errors import ConfigError


ENV_PREFIX = "PA_FOREST_LOSS_"
DISPLAY_ORDERS = ("stacked", "grouped")
NUMERIC_KEYS = ("buffer_m", "min_patch_size_ha", "min_cover_pct")

ANALYSIS_CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Protected-area forest-loss analysis configuration",
    "type": "object",
    "required": ["buffer_m", "min_patch_size_ha", "min_cover_pct", "display_order"],
    "properties": {
        "buffer_m": {"type": "number", "exclusiveMinimum": 0},
        "min_patch_size_ha": {"type": "number", "minimum": 0},
        "min_cover_pct": {"type": "number", "minimum": 0, "maximum": 100},
        "display_order": {"type": "string", "enum": list(DISPLAY_ORDERS)},
    },
}


@dataclass(frozen=True)
class AnalysisConfig:
    buffer_m: float
    min_patch_size_ha: float
    min_cover_pct: float
    # Presentation only; the pipeline passes it through untouched.
    display_order: str

    def extractor_params(self) -> dict[str, float]:
        return {
            "min_patch_size_ha": self.min_patch_size_ha,
            "min_cover_pct": self.min_cover_pct,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _error_key(error: jsonschema.ValidationError) -> str:
    if error.validator == "required":
        missing = [k for k in error.validator_value if k not in (error.instance or {})]
        return ", ".join(missing) or "<unknown>"
    path = [str(p) for p in error.absolute_path]
    return ".".join(path) or "<root>"


def load_analysis_config(values: Mapping[str, Any]) -> AnalysisConfig:
    """Validate the configuration bundle and build an `AnalysisConfig`.

    All keys are required; the first violation is reported as `ConfigError`.
    """

    if not isinstance(values, Mapping):
        raise ConfigError("Configuration must be a mapping")

    data = dict(values)
    validator = Draft202012Validator(ANALYSIS_CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: (list(e.absolute_path), e.message))
    if errors:
        first = errors[0]
        raise ConfigError(f"Invalid configuration value for {_error_key(first)}: {first.message}")

    # NaN and infinity get past the schema range checks.
    for key in NUMERIC_KEYS:
        if not math.isfinite(data[key]):
            raise ConfigError(f"Invalid configuration value for {key}: {data[key]!r} is not finite")

    return AnalysisConfig(
        buffer_m=float(data["buffer_m"]),
        min_patch_size_ha=float(data["min_patch_size_ha"]),
        min_cover_pct=float(data["min_cover_pct"]),
        display_order=str(data["display_order"]),
    )


def _env_float(name: str) -> float | None:
    value = os.environ.get(ENV_PREFIX + name, "").strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{ENV_PREFIX}{name} is not a number: {value!r}") from exc


def config_from_env(overrides: Mapping[str, Any] | None = None) -> AnalysisConfig:
    """Build the configuration from PA_FOREST_LOSS_* variables.

    Explicit `overrides` win over the environment; `None` overrides are ignored.
    """

    values: dict[str, Any] = {}
    for key, env_name in (
        ("buffer_m", "BUFFER_M"),
        ("min_patch_size_ha", "MIN_PATCH_SIZE_HA"),
        ("min_cover_pct", "MIN_COVER_PCT"),
    ):
        env_value = _env_float(env_name)
        if env_value is not None:
            values[key] = env_value

    display_order = os.environ.get(ENV_PREFIX + "DISPLAY_ORDER", "").strip()
    if display_order:
        values["display_order"] = display_order

    for key, value in dict(overrides or {}).items():
        if value is not None:
            values[key] = value

    return load_analysis_config(values)
