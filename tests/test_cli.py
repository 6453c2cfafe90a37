from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

from conftest import square_polygon


def _run_cli(args: list[str], *, env: dict[str, str]) -> subprocess.CompletedProcess[str]:
    repo_root = Path(__file__).resolve().parents[1]
    src_path = str(repo_root / "src")
    env = {k: v for k, v in env.items() if not k.startswith("PA_FOREST_LOSS_")}
    env["PYTHONPATH"] = src_path + (":" + env["PYTHONPATH"] if env.get("PYTHONPATH") else "")
    return subprocess.run(
        [sys.executable, "-m", "pa_forest_loss.cli", *args],
        check=False,
        text=True,
        capture_output=True,
        env=env,
    )


def _write_area(path: Path, *records: tuple[int, str]) -> None:
    features = []
    for i, (area_id, status) in enumerate(records):
        x0 = -60.1 + i * 0.5
        features.append(
            {
                "type": "Feature",
                "properties": {"WDPAID": area_id, "STATUS": status},
                "geometry": square_polygon(x0, -3.1, x0 + 0.1, -3.0),
            }
        )
    path.write_text(json.dumps({"type": "FeatureCollection", "features": features}), encoding="utf-8")


def _write_table(path: Path) -> None:
    path.write_text(
        json.dumps(
            {
                "ProtectedArea": {"2001": 500, "2002": 480, "2003": 480},
                "BufferRing": {"2001": 900, "2002": 850},
            }
        ),
        encoding="utf-8",
    )


def _config_args(display_order: str = "stacked") -> list[str]:
    return [
        "--buffer-m",
        "10000",
        "--min-patch-size-ha",
        "1",
        "--min-cover-pct",
        "35",
        "--display-order",
        display_order,
    ]


def test_cli_help() -> None:
    proc = _run_cli(["--help"], env=os.environ.copy())
    assert proc.returncode == 0
    assert "--area-geojson" in proc.stdout
    assert "--indicator-table" in proc.stdout


def test_cli_run_with_indicator_table(tmp_path: Path) -> None:
    area = tmp_path / "area.geojson"
    table = tmp_path / "table.json"
    out = tmp_path / "out"
    _write_area(area, (115772, "Designated"))
    _write_table(table)

    proc = _run_cli(
        [
            "--area-geojson",
            str(area),
            "--indicator-table",
            str(table),
            *_config_args("grouped"),
            "--output-dir",
            str(out),
        ],
        env=os.environ.copy(),
    )

    assert proc.returncode == 0, proc.stderr
    assert "ProtectedArea: 2001=0, 2002=20, 2003=0" in proc.stdout
    assert "BufferRing: 2001=0, 2002=50" in proc.stdout

    lines = (out / "forest_loss.csv").read_text(encoding="utf-8").splitlines()
    assert lines[0] == "area_id,zone,year,loss_ha"
    assert "115772,protected_area,2002,20" in lines

    summary = json.loads((out / "summary.json").read_text(encoding="utf-8"))
    assert summary["config"]["display_order"] == "grouped"
    assert summary["zones"]["protected_area"]["total_loss_ha"] == 20


def test_cli_area_id_selects_record(tmp_path: Path) -> None:
    area = tmp_path / "area.geojson"
    table = tmp_path / "table.json"
    _write_area(area, (1, "Designated"), (2, "Designated"))
    _write_table(table)

    base = ["--area-geojson", str(area), "--indicator-table", str(table), *_config_args()]

    proc = _run_cli([*base, "--output-dir", str(tmp_path / "all")], env=os.environ.copy())
    assert proc.returncode == 2
    assert "InvalidInputError" in proc.stderr

    proc = _run_cli(
        [*base, "--area-id", "2", "--output-dir", str(tmp_path / "one")], env=os.environ.copy()
    )
    assert proc.returncode == 0, proc.stderr
    summary = json.loads((tmp_path / "one" / "summary.json").read_text(encoding="utf-8"))
    assert summary["area_id"] == 2


def test_cli_proposed_only_is_no_data(tmp_path: Path) -> None:
    area = tmp_path / "area.geojson"
    table = tmp_path / "table.json"
    out = tmp_path / "out"
    _write_area(area, (7, "Proposed"))
    _write_table(table)

    proc = _run_cli(
        ["--area-geojson", str(area), "--indicator-table", str(table), *_config_args(), "--output-dir", str(out)],
        env=os.environ.copy(),
    )

    assert proc.returncode == 2
    assert "NoDataError" in proc.stderr
    assert not (out / "summary.json").exists()


def test_cli_missing_config_is_config_error(tmp_path: Path) -> None:
    area = tmp_path / "area.geojson"
    table = tmp_path / "table.json"
    _write_area(area, (7, "Designated"))
    _write_table(table)

    proc = _run_cli(
        [
            "--area-geojson",
            str(area),
            "--indicator-table",
            str(table),
            "--buffer-m",
            "10000",
            "--output-dir",
            str(tmp_path / "out"),
        ],
        env=os.environ.copy(),
    )

    assert proc.returncode == 2
    assert "[config] ConfigError" in proc.stderr


def test_cli_empty_tile_dir_fails_in_extract_stage(tmp_path: Path) -> None:
    area = tmp_path / "area.geojson"
    tiles = tmp_path / "tiles"
    tiles.mkdir()
    _write_area(area, (7, "Designated"))

    proc = _run_cli(
        [
            "--area-geojson",
            str(area),
            "--hansen-tile-dir",
            str(tiles),
            "--last-year",
            "2003",
            *_config_args(),
            "--output-dir",
            str(tmp_path / "out"),
        ],
        env=os.environ.copy(),
    )

    assert proc.returncode == 2
    assert "[extract] RuntimeError: Missing required Hansen tiles" in proc.stderr
    assert "Traceback" not in proc.stderr


def test_cli_unreadable_indicator_table_fails_in_extract_stage(tmp_path: Path) -> None:
    area = tmp_path / "area.geojson"
    table = tmp_path / "table.json"
    _write_area(area, (7, "Designated"))
    table.write_text("{not json", encoding="utf-8")

    proc = _run_cli(
        [
            "--area-geojson",
            str(area),
            "--indicator-table",
            str(table),
            *_config_args(),
            "--output-dir",
            str(tmp_path / "out"),
        ],
        env=os.environ.copy(),
    )

    assert proc.returncode == 2
    assert "[extract] JSONDecodeError" in proc.stderr
