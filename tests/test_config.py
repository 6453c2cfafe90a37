from __future__ import annotations

import math

import pytest

from pa_forest_loss.config import AnalysisConfig, config_from_env, load_analysis_config
from pa_forest_loss.errors import ConfigError


def _values(**overrides: object) -> dict[str, object]:
    values: dict[str, object] = {
        "buffer_m": 10_000,
        "min_patch_size_ha": 1,
        "min_cover_pct": 35,
        "display_order": "stacked",
    }
    values.update(overrides)
    return values


def test_load_analysis_config() -> None:
    config = load_analysis_config(_values(display_order="grouped"))

    assert config == AnalysisConfig(
        buffer_m=10_000.0,
        min_patch_size_ha=1.0,
        min_cover_pct=35.0,
        display_order="grouped",
    )
    assert config.extractor_params() == {"min_patch_size_ha": 1.0, "min_cover_pct": 35.0}


@pytest.mark.parametrize(
    "key", ["buffer_m", "min_patch_size_ha", "min_cover_pct", "display_order"]
)
def test_missing_key_is_config_error(key: str) -> None:
    values = _values()
    del values[key]
    with pytest.raises(ConfigError, match=key):
        load_analysis_config(values)


@pytest.mark.parametrize(
    "overrides",
    [
        {"buffer_m": 0},
        {"buffer_m": -1},
        {"min_patch_size_ha": -0.5},
        {"min_cover_pct": 101},
        {"min_cover_pct": -1},
        {"display_order": "sideways"},
        {"buffer_m": "10km"},
        {"min_cover_pct": True},
    ],
)
def test_out_of_range_is_config_error(overrides: dict[str, object]) -> None:
    with pytest.raises(ConfigError):
        load_analysis_config(_values(**overrides))


@pytest.mark.parametrize(
    "key, value",
    [
        ("buffer_m", math.nan),
        ("buffer_m", math.inf),
        ("min_cover_pct", math.nan),
        ("min_patch_size_ha", math.nan),
        ("min_patch_size_ha", math.inf),
    ],
)
def test_non_finite_value_is_config_error(key: str, value: float) -> None:
    with pytest.raises(ConfigError, match=key):
        load_analysis_config(_values(**{key: value}))


def test_config_from_env_rejects_nan(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PA_FOREST_LOSS_MIN_COVER_PCT", "nan")
    with pytest.raises(ConfigError, match="min_cover_pct"):
        config_from_env({"buffer_m": 1000, "min_patch_size_ha": 1, "display_order": "stacked"})


def test_config_error_carries_stage() -> None:
    with pytest.raises(ConfigError) as excinfo:
        load_analysis_config({})
    assert excinfo.value.stage == "config"
    assert excinfo.value.describe().startswith("[config] ConfigError")


def test_config_from_env_with_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PA_FOREST_LOSS_BUFFER_M", "5000")
    monkeypatch.setenv("PA_FOREST_LOSS_MIN_PATCH_SIZE_HA", "0.5")
    monkeypatch.setenv("PA_FOREST_LOSS_MIN_COVER_PCT", "10")
    monkeypatch.setenv("PA_FOREST_LOSS_DISPLAY_ORDER", "grouped")

    config = config_from_env({"buffer_m": 2500, "min_cover_pct": None})

    assert config.buffer_m == 2500.0
    assert config.min_patch_size_ha == 0.5
    assert config.min_cover_pct == 10.0
    assert config.display_order == "grouped"


def test_config_from_env_missing_value(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("BUFFER_M", "MIN_PATCH_SIZE_HA", "MIN_COVER_PCT", "DISPLAY_ORDER"):
        monkeypatch.delenv(f"PA_FOREST_LOSS_{name}", raising=False)
    monkeypatch.setenv("PA_FOREST_LOSS_BUFFER_M", "5000")

    with pytest.raises(ConfigError, match="min_cover_pct"):
        config_from_env({"display_order": "stacked", "min_patch_size_ha": 0})


def test_config_from_env_rejects_non_numeric(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PA_FOREST_LOSS_BUFFER_M", "ten")
    with pytest.raises(ConfigError, match="BUFFER_M"):
        config_from_env()


def test_display_order_has_no_default() -> None:
    with pytest.raises(TypeError):
        AnalysisConfig(buffer_m=1.0, min_patch_size_ha=0.0, min_cover_pct=10.0)
