"""Deterministic, presentation-ready outputs.

Map and chart rendering live outside this package; what it produces is the
input they consume: the zone geometries as GeoJSON, long CSV tables of annual
area and loss, and a JSON summary carrying checksums of everything written.

`pa_forest_loss.reports.outputs` imports the pipeline and is not re-exported
here so extractors can use the determinism helpers without an import cycle.
"""

from .determinism import canonical_json_bytes, sha256_bytes, sha256_file, write_csv, write_json

__all__ = [
    "canonical_json_bytes",
    "sha256_bytes",
    "sha256_file",
    "write_csv",
    "write_json",
]
