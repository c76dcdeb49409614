"""Tests for the query runner CLI and output writers.

Tests cover:
  - the load -> build -> query -> print pipeline
  - empty data exits with status 1
  - JSON config merging and flag overrides
  - --verify / --stats diagnostics
  - GeoJSON and HTML outputs
"""

import json

import pytest

import run_query
from geonear.kd_tree import KDTree, Point
from geonear.output_writers import write_geojson, write_html_map


@pytest.fixture
def example_csv(tmp_path):
    path = tmp_path / "locations.csv"
    path.write_text("A,0,0\nB,10,10\nC,-10,-10\n")
    return path


@pytest.fixture
def divergent_csv(tmp_path):
    path = tmp_path / "divergent.csv"
    path.write_text(
        "G,55.01,0.0\nF,60.38,10.0001\nN,70.0,10.0\nR,80.0,0.0\n"
        "X1,81.0,100.0\nX2,82.0,110.0\nX3,83.0,120.0\n"
    )
    return path


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def test_prints_nearest_label(example_csv, capsys):
    code = run_query.main(["--data", str(example_csv), "--lat", "1", "--lon", "1"])
    assert code == 0
    out = capsys.readouterr().out
    assert out.strip() == "The nearest location to (1.0, 1.0) is: A"


def test_default_query_is_paris(tmp_path, capsys):
    path = tmp_path / "cities.csv"
    path.write_text("Paris,48.8566,2.3522\nLondon,51.5074,-0.1278\nBerlin,52.52,13.405\n")
    assert run_query.main(["--data", str(path)]) == 0
    assert capsys.readouterr().out.strip().endswith("is: Paris")


def test_empty_data_exits_nonzero(tmp_path, capsys):
    path = tmp_path / "empty.csv"
    path.write_text("bad line\n")
    assert run_query.main(["--data", str(path)]) == 1
    captured = capsys.readouterr()
    assert "ERROR: Could not load location data." in captured.err
    assert captured.out == ""


def test_missing_data_exits_nonzero(tmp_path, capsys):
    assert run_query.main(["--data", str(tmp_path / "missing.csv")]) == 1


def test_stats(example_csv, capsys):
    run_query.main(["--data", str(example_csv), "--lat", "1", "--lon", "1", "--stats"])
    out = capsys.readouterr().out
    assert "Distance:" in out
    assert "Nodes visited:" in out
    assert "/ 3" in out


def test_verify_reports_divergence(divergent_csv, capsys):
    run_query.main(["--data", str(divergent_csv), "--lat", "60", "--lon", "0", "--verify"])
    captured = capsys.readouterr()
    assert "is: G" in captured.out
    assert "WARNING: linear scan found F" in captured.err


def test_verify_spherical_is_silent(divergent_csv, capsys):
    run_query.main(["--data", str(divergent_csv), "--lat", "60", "--lon", "0",
                    "--pruning", "spherical", "--verify"])
    captured = capsys.readouterr()
    assert "is: F" in captured.out
    assert captured.err == ""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def test_config_file(tmp_path, divergent_csv, capsys):
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({
        "data": str(divergent_csv),
        "query": {"lat": 60.0, "lon": 0.0},
        "pruning": "spherical",
    }))
    assert run_query.main(["--config", str(cfg)]) == 0
    assert "is: F" in capsys.readouterr().out


def test_flags_override_config(tmp_path, divergent_csv, capsys):
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({
        "data": str(divergent_csv),
        "query": {"lat": 60.0, "lon": 0.0},
        "pruning": "spherical",
    }))
    run_query.main(["--config", str(cfg), "--pruning", "approximate"])
    assert "is: G" in capsys.readouterr().out


def test_config_validate_ranges(tmp_path, capsys):
    data = tmp_path / "d.csv"
    data.write_text("Bad,95.0,0.0\nGood,10.0,0.0\n")
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"data": str(data), "validate_ranges": True,
                               "query": {"lat": 90.0, "lon": 0.0}}))
    run_query.main(["--config", str(cfg)])
    assert "is: Good" in capsys.readouterr().out


def test_unknown_pruning_in_config(tmp_path):
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"pruning": "euclidean"}))
    with pytest.raises(SystemExit) as exc:
        run_query.main(["--config", str(cfg)])
    assert exc.value.code == 2


@pytest.mark.parametrize("flags", [
    ["--lat", "nan", "--lon", "0"],
    ["--lat", "0", "--lon", "inf"],
])
def test_non_finite_query_is_usage_error(example_csv, flags, capsys):
    with pytest.raises(SystemExit) as exc:
        run_query.main(["--data", str(example_csv), *flags])
    assert exc.value.code == 2
    assert "must be finite" in capsys.readouterr().err


def test_missing_config(tmp_path):
    with pytest.raises(SystemExit):
        run_query.main(["--config", str(tmp_path / "nope.json")])


# ---------------------------------------------------------------------------
# Output writers
# ---------------------------------------------------------------------------

def _example_result():
    tree = KDTree([Point("A", 0, 0), Point("B", 10, 10), Point("C", -10, -10)])
    target = Point("", 1.0, 1.0)
    return target, tree.nearest_with_stats(target)


def test_write_geojson(tmp_path):
    target, result = _example_result()
    path = tmp_path / "out.geojson"
    write_geojson(target, result, str(path))
    fc = json.loads(path.read_text())
    assert fc["type"] == "FeatureCollection"
    roles = [f["properties"]["role"] for f in fc["features"]]
    assert roles == ["query", "nearest", "link"]
    nearest = fc["features"][1]
    assert nearest["properties"]["label"] == "A"
    assert nearest["geometry"]["coordinates"] == [0.0, 0.0]
    assert 156.0 < nearest["properties"]["distance_km"] < 158.0


def test_cli_writes_geojson(example_csv, tmp_path, capsys):
    out = tmp_path / "result.geojson"
    run_query.main(["--data", str(example_csv), "--lat", "1", "--lon", "1",
                    "--geojson", str(out)])
    assert out.exists()
    assert "Wrote GeoJSON" in capsys.readouterr().out


def test_write_html_map(tmp_path):
    pytest.importorskip("folium")
    target, result = _example_result()
    path = tmp_path / "map.html"
    write_html_map(target, result, str(path), title="Example")
    html = path.read_text()
    assert "leaflet" in html.lower()
    assert "Nearest: A" in html
