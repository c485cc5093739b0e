from __future__ import annotations

import json
from pathlib import Path

import pytest

from choromap.cli import main
from choromap.config import load_config
from choromap.render import run_render_maps
from choromap.validate import Validator, format_report_lines


def _feature(name: str, x: float, pop: float | None) -> dict:
    return {
        "type": "Feature",
        "properties": {"NAME": name, "POP_EST": pop},
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[x, 0.0], [x + 1.0, 0.0], [x + 1.0, 1.0], [x, 1.0], [x, 0.0]]],
        },
    }


@pytest.fixture
def project(tmp_path: Path) -> Path:
    data = tmp_path / "data"
    data.mkdir()
    features = [
        _feature("Alpha", 0.0, 1_000_000),
        _feature("Béta", 2.0, 100_000_000),
        _feature("Gamma", 4.0, None),
    ]
    (data / "regions.geojson").write_text(
        json.dumps({"type": "FeatureCollection", "features": features}),
        encoding="utf-8",
    )
    (data / "stats.csv").write_text(
        "region,score\nalpha,3\nBeta,9\nOmega,4\n",
        encoding="utf-8",
    )
    (data / "aliases.yaml").write_text('"Omega": "Gamma"\n', encoding="utf-8")
    config = tmp_path / "config.yaml"
    config.write_text(
        """
paths:
  output_dir: build/maps
  qa_dir: build/qa
  manifests_dir: build/manifests
  logs_dir: build/logs
  name_aliases: data/aliases.yaml
interactive:
  tiles: none
static:
  width_px: 400
  height_px: 300
  dpi: 100
join:
  min_coverage: 0.5
boundaries:
  regions:
    path: data/regions.geojson
tables:
  stats:
    location: data/stats.csv
    name_column: region
maps:
  - name: Population
    label: "Population [M]"
    boundaries: regions
    value_column: POP_EST
    divisor: 1000000
  - name: Score
    label: Score
    boundaries: regions
    table: stats
    value_column: score
    formats: [html]
""",
        encoding="utf-8",
    )
    return config


def test_run_render_maps_writes_outputs(project):
    cfg = load_config(project)
    report = run_render_maps(cfg)

    assert report.ok, report.errors
    assert report.statuses == {"Population": "ok", "Score": "ok"}
    assert report.summary["maps_rendered"] == 2
    assert report.summary["files_written"] == 3
    for paths in report.outputs.values():
        assert all(path.exists() for path in paths)

    joined = report.joins["Score"]
    assert joined.matched == 3
    assert joined.unmatched_table == ()
    assert {r.name: r.value for r in joined.regions} == {"Alpha": 3.0, "Béta": 9.0, "Gamma": 4.0}


def test_run_render_maps_filters_and_overrides_format(project):
    cfg = load_config(project)
    report = run_render_maps(cfg, map_filter=["Population", "Nope"], formats=("html",))

    assert report.ok
    assert list(report.outputs) == ["Population"]
    assert [path.suffix for path in report.outputs["Population"]] == [".html"]
    assert any("Nope" in warning for warning in report.warnings)


def test_run_render_maps_collects_per_map_failures(project):
    text = project.read_text(encoding="utf-8").replace("value_column: POP_EST", "value_column: GDP_MD")
    project.write_text(text, encoding="utf-8")
    cfg = load_config(project)

    report = run_render_maps(cfg)

    assert not report.ok
    assert "Score" in report.outputs
    assert "Population" not in report.outputs
    assert report.summary["maps_failed"] == 1


def test_validator_passes_for_consistent_project(project):
    report = Validator(load_config(project)).run()
    assert report.ok, format_report_lines(report)
    assert format_report_lines(report)[-1] == "[OK] Validation passed."


def test_validator_flags_low_join_coverage(project):
    (project.parent / "data" / "aliases.yaml").write_text("", encoding="utf-8")
    (project.parent / "data" / "stats.csv").write_text("region,score\nOmega,1\n", encoding="utf-8")

    report = Validator(load_config(project)).run()

    assert not report.ok
    assert any("join coverage" in error for error in report.errors)


def test_validator_flags_missing_files_and_bad_palette(project):
    (project.parent / "data" / "regions.geojson").unlink()
    text = project.read_text(encoding="utf-8").replace("tiles: none", "tiles: none\nstyle:\n  palette: nope")
    project.write_text(text, encoding="utf-8")

    report = Validator(load_config(project)).run()

    assert any("Missing boundaries.regions" in error for error in report.errors)
    assert any("style.palette" in error for error in report.errors)


def test_cli_render_writes_qa_index_and_manifest(project):
    assert main(["render", "--config", str(project)]) == 0

    build = project.parent / "build"
    assert (build / "maps" / "population.html").exists()
    assert (build / "maps" / "population.png").exists()
    assert (build / "maps" / "score.html").exists()
    index = (build / "qa" / "index.html").read_text(encoding="utf-8")
    assert "Population [M]" in index
    assert "../maps/population.png" in index

    manifest = json.loads((build / "manifests" / "build_manifest.json").read_text(encoding="utf-8"))
    assert manifest["maps"] == {"Population": "ok", "Score": "ok"}
    assert (build / "logs" / "build.log").exists()


def test_cli_join_report(project):
    assert main(["join-report", "--config", str(project)]) == 0

    payload = json.loads(
        (project.parent / "build" / "manifests" / "join_report.json").read_text(encoding="utf-8")
    )
    assert list(payload) == ["Score"]
    assert payload["Score"]["coverage"] == 1.0


def test_cli_validate_exit_code(project):
    assert main(["validate", "--config", str(project)]) == 0
    (project.parent / "data" / "regions.geojson").unlink()
    assert main(["validate", "--config", str(project), "--skip-data"]) == 1


def test_run_render_maps_marks_write_failures_as_failed(project):
    text = project.read_text(encoding="utf-8").replace(
        "  dpi: 100\n", '  dpi: 100\n  projection: "EPSG:999999"\n'
    )
    project.write_text(text, encoding="utf-8")
    cfg = load_config(project)

    report = run_render_maps(cfg)

    assert not report.ok
    assert "Population" not in report.outputs
    assert report.statuses == {"Population": "failed", "Score": "ok"}


def test_cli_render_manifest_records_failed_maps(project):
    text = project.read_text(encoding="utf-8").replace(
        "  dpi: 100\n", '  dpi: 100\n  projection: "EPSG:999999"\n'
    )
    project.write_text(text, encoding="utf-8")

    assert main(["render", "--config", str(project)]) == 1

    build = project.parent / "build"
    manifest = json.loads((build / "manifests" / "build_manifest.json").read_text(encoding="utf-8"))
    assert manifest["maps"] == {"Population": "failed", "Score": "ok"}
    index = (build / "qa" / "index.html").read_text(encoding="utf-8")
    assert "<p class='status failed'>FAILED</p>" in index


def test_cli_render_qa_index_only_lists_selected_maps(project):
    assert main(["render", "--config", str(project), "--map", "Population"]) == 0

    index = (project.parent / "build" / "qa" / "index.html").read_text(encoding="utf-8")
    assert "<h3>Population</h3>" in index
    assert "<h3>Score</h3>" not in index
    assert "FAILED" not in index
