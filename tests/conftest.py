from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import pytest

_SRC = (Path(__file__).resolve().parents[1] / "src").as_posix()
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)


def square_polygon(minx: float, miny: float, maxx: float, maxy: float) -> dict[str, Any]:
    return {
        "type": "Polygon",
        "coordinates": [
            [
                [minx, miny],
                [maxx, miny],
                [maxx, maxy],
                [minx, maxy],
                [minx, miny],
            ]
        ],
    }


@pytest.fixture
def area_feature() -> Callable[..., dict[str, Any]]:
    """Factory for a protected-area feature near Manaus (about 11 x 11 km)."""

    def _make(
        area_id: Any = 115772,
        status: str | None = "Designated",
        bounds: tuple[float, float, float, float] = (-60.1, -3.1, -60.0, -3.0),
    ) -> dict[str, Any]:
        props: dict[str, Any] = {"WDPAID": area_id, "NAME": f"Area {area_id}"}
        if status is not None:
            props["STATUS"] = status
        return {"type": "Feature", "properties": props, "geometry": square_polygon(*bounds)}

    return _make


@pytest.fixture
def feature_collection() -> Callable[..., dict[str, Any]]:
    def _make(*features: dict[str, Any]) -> dict[str, Any]:
        return {"type": "FeatureCollection", "features": list(features)}

    return _make
