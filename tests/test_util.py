from __future__ import annotations

import json

from choromap.util import format_name_list, sha256_file, slugify, write_json


def test_slugify():
    assert slugify("World Population [M]") == "world_population_m"
    assert slugify("  Côte d'Ivoire ") == "côte_d_ivoire"
    assert slugify("!!!") == "map"


def test_format_name_list_truncates():
    assert format_name_list(["a", "b"]) == "a, b"
    assert format_name_list([str(i) for i in range(15)], limit=3).startswith("0, 1, 2")


def test_write_json_and_hash(tmp_path):
    path = tmp_path / "nested" / "out.json"
    write_json(path, {"b": 1, "a": 2})
    assert json.loads(path.read_text(encoding="utf-8")) == {"a": 2, "b": 1}
    assert len(sha256_file(path)) == 64
