from __future__ import annotations

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from choromap.join import join_regions, names_match, normalize_name, regions_from_frame


def _boundaries(names: list[str]) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"NAME": names},
        geometry=[box(i, 0, i + 1, 1) for i in range(len(names))],
        crs="EPSG:4326",
    )


def _join(boundaries, table, **kwargs):
    return join_regions(
        boundaries,
        table,
        boundary_name_column="NAME",
        table_name_column="country",
        value_column="value",
        **kwargs,
    )


def test_normalize_name_folds_accents_case_and_punctuation():
    assert normalize_name("Côte d'Ivoire") == "cotedivoire"
    assert names_match("São Tomé and Príncipe", "Sao Tome and Principe")
    assert not names_match("Niger", "Nigeria")


def test_join_matches_despite_accents_and_case():
    boundaries = _boundaries(["Côte d'Ivoire", "France"])
    table = pd.DataFrame({"country": ["cote d'ivoire", "FRANCE"], "value": [26.4, 68.0]})

    result = _join(boundaries, table)

    assert result.matched == 2
    assert result.coverage == 1.0
    assert {r.name: r.value for r in result.regions} == {"Côte d'Ivoire": 26.4, "France": 68.0}


def test_join_reports_unmatched_on_both_sides_without_zero_fill():
    boundaries = _boundaries(["Chile", "Peru", "Bolivia"])
    table = pd.DataFrame({"country": ["Chile", "Atlantis"], "value": [19.6, 1.0]})

    result = _join(boundaries, table)

    assert result.matched == 1
    assert result.unmatched_boundaries == ("Bolivia", "Peru")
    assert result.unmatched_table == ("Atlantis",)
    values = {r.name: r.value for r in result.regions}
    assert values["Peru"] is None
    assert values["Bolivia"] is None
    assert result.coverage == pytest.approx(1 / 3)


def test_join_honors_aliases():
    boundaries = _boundaries(["United States of America"])
    table = pd.DataFrame({"country": ["United States"], "value": [335.0]})

    result = _join(boundaries, table, aliases={"United States": "United States of America"})

    assert result.matched == 1
    assert result.regions[0].value == 335.0
    assert result.unmatched_table == ()


def test_join_keeps_first_duplicate_and_reports_it():
    boundaries = _boundaries(["Chad"])
    table = pd.DataFrame({"country": ["Chad", "chad"], "value": [18.0, 99.0]})

    result = _join(boundaries, table)

    assert result.regions[0].value == 18.0
    assert result.duplicate_table_keys == ("chad",)


def test_join_applies_divisor_and_keeps_nan_missing():
    boundaries = _boundaries(["A", "B"])
    table = pd.DataFrame({"country": ["A", "B"], "value": [2_000_000, float("nan")]})

    result = _join(boundaries, table, divisor=1e6)

    values = {r.name: r.value for r in result.regions}
    assert values == {"A": 2.0, "B": None}
    assert result.matched == 2


def test_join_skips_unnamed_boundaries():
    boundaries = _boundaries(["A", ""])
    table = pd.DataFrame({"country": ["A"], "value": [1.0]})

    result = _join(boundaries, table)

    assert [r.name for r in result.regions] == ["A"]
    assert result.skipped_boundaries == 1


def test_join_result_to_dict():
    boundaries = _boundaries(["A", "B"])
    table = pd.DataFrame({"country": ["A", "Z"], "value": [1.0, 2.0]})

    payload = _join(boundaries, table).to_dict()

    assert payload["regions"] == 2
    assert payload["matched"] == 1
    assert payload["coverage"] == 0.5
    assert payload["unmatched_boundaries"] == ["B"]
    assert payload["unmatched_table"] == ["Z"]


def test_regions_from_frame_reads_value_column():
    frame = _boundaries(["A", "B"])
    frame["POP_EST"] = [1_500_000, None]

    regions = regions_from_frame(frame, name_column="NAME", value_column="POP_EST", divisor=1e6)

    assert [(r.name, r.value) for r in regions] == [("A", 1.5), ("B", None)]


def test_regions_from_frame_requires_value_column():
    with pytest.raises(ValueError, match="GDP_MD"):
        regions_from_frame(_boundaries(["A"]), name_column="NAME", value_column="GDP_MD")
