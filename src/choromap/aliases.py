"""Name alias loading for statistics-to-boundary joins."""

from __future__ import annotations

from pathlib import Path

import yaml


def load_name_aliases(path: Path | None) -> dict[str, str]:
    """Load optional table-name -> boundary-name aliases.

    Example file::

        "United States": "United States of America"
        "Congo, Dem. Rep.": "Dem. Rep. Congo"
    """
    if path is None or not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Expected mapping in {path}")

    aliases: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key.strip():
            raise ValueError(f"Alias key must be a non-empty string in {path}")
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Alias target for '{key}' must be a non-empty string in {path}")
        aliases[key.strip()] = value.strip()
    return aliases
