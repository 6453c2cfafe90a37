"""Error taxonomy for the forest-loss trend pipeline.

Every error is terminal for the current run: nothing is retried and no partial
output is produced. `stage` tells the caller which step failed.
"""

from __future__ import annotations


class ForestLossError(RuntimeError):
    stage = "pipeline"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage

    def describe(self) -> str:
        return f"[{self.stage}] {type(self).__name__}: {self}"


class ConfigError(ForestLossError):
    """A configuration key is missing or out of range."""

    stage = "config"


class InvalidInputError(ForestLossError):
    """Malformed input geometry, or not exactly one record."""

    stage = "geometry"


class NoDataError(ForestLossError):
    """Status filtering removed every usable record."""

    stage = "geometry"


class GeometryError(ForestLossError):
    """Buffer/difference produced an invalid, empty or overlapping geometry."""

    stage = "geometry"


class SchemaError(ForestLossError):
    """Indicator table is missing expected fields or carries unparsable values."""

    stage = "reshape"
