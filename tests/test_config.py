from __future__ import annotations

from pathlib import Path

import pytest

from choromap.config import StyleConfig, load_config


BASE_CONFIG = """
paths:
  output_dir: build/maps
  qa_dir: build/qa
  manifests_dir: build/manifests
  logs_dir: build/logs
boundaries:
  countries:
    path: data/countries.geojson
tables:
  pop:
    location: https://example.org/pop.csv
    name_column: country
maps:
  - name: world_population
    label: "Population [M]"
    boundaries: countries
    value_column: POP_EST
    divisor: 1000000
  - name: joined
    label: Joined
    boundaries: countries
    table: pop
    value_column: value
    formats: [png]
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_applies_defaults_and_resolves_paths(tmp_path):
    cfg = load_config(_write(tmp_path, BASE_CONFIG))

    assert cfg.source_path == (tmp_path / "config.yaml").resolve()
    assert cfg.paths.output_dir == tmp_path.resolve() / "build/maps"
    assert cfg.paths.name_aliases is None
    assert cfg.style == StyleConfig()
    assert cfg.interactive.tiles == "positron"
    assert cfg.join.min_coverage == 0.9
    assert cfg.boundaries["countries"].path == tmp_path.resolve() / "data/countries.geojson"
    assert cfg.boundaries["countries"].crs == "EPSG:4326"
    assert cfg.tables["pop"].is_remote
    assert cfg.tables["pop"].location == "https://example.org/pop.csv"

    population, joined = cfg.maps
    assert population.divisor == 1_000_000.0
    assert population.formats == ("html", "png")
    assert population.table is None
    assert joined.table == "pop"
    assert joined.formats == ("png",)


def test_style_section_is_parsed(tmp_path):
    text = BASE_CONFIG + """
style:
  border_weight: 2
  border_color: "#333333"
  fill_opacity: 0.8
  palette: magma
  palette_steps: 5
"""
    cfg = load_config(_write(tmp_path, text))
    assert cfg.style.border_weight == 2.0
    assert cfg.style.border_color == "#333333"
    assert cfg.style.fill_opacity == 0.8
    assert cfg.style.palette == "magma"
    assert cfg.style.palette_steps == 5


@pytest.mark.parametrize(
    ("extra", "message"),
    [
        ("style:\n  fill_opacity: 1.5\n", "style.fill_opacity"),
        ("style:\n  palette_steps: true\n", "style.palette_steps"),
        ("interactive:\n  center: [100, 0]\n", "interactive.center"),
        ("join:\n  min_coverage: 2\n", "join.min_coverage"),
        ("static:\n  dpi: 0\n", "static.dpi"),
    ],
)
def test_malformed_sections_name_the_field(tmp_path, extra, message):
    with pytest.raises(ValueError, match=message):
        load_config(_write(tmp_path, BASE_CONFIG + extra))


def test_unknown_boundary_reference_is_rejected(tmp_path):
    text = BASE_CONFIG.replace("boundaries: countries\n    table: pop", "boundaries: states\n    table: pop")
    with pytest.raises(ValueError, match="unknown boundaries 'states'"):
        load_config(_write(tmp_path, text))


def test_duplicate_map_names_are_rejected(tmp_path):
    text = BASE_CONFIG.replace("name: joined", "name: world_population")
    with pytest.raises(ValueError, match="Duplicate map name"):
        load_config(_write(tmp_path, text))


def test_zero_divisor_and_unknown_format_are_rejected(tmp_path):
    with pytest.raises(ValueError, match="divisor"):
        load_config(_write(tmp_path, BASE_CONFIG.replace("divisor: 1000000", "divisor: 0")))
    with pytest.raises(ValueError, match="formats"):
        load_config(_write(tmp_path, BASE_CONFIG.replace("formats: [png]", "formats: [svg]")))


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_top_level_must_be_mapping(tmp_path):
    with pytest.raises(ValueError, match="Top-level"):
        load_config(_write(tmp_path, "- just\n- a list\n"))
