"""Name-keyed joins between boundaries and statistics tables."""

from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass
from typing import Any, Mapping

import pandas as pd

from .models import Region, normalize_value


_LOGGER = logging.getLogger("choromap.join")


def normalize_name(value: str) -> str:
    """Accent-, case- and punctuation-insensitive join key."""
    folded = unicodedata.normalize("NFKD", value)
    without_marks = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return "".join(ch for ch in without_marks.casefold() if ch.isalnum())


def names_match(left: str, right: str) -> bool:
    return normalize_name(left) == normalize_name(right)


def _clean_name(value: Any) -> str | None:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    name = str(value).strip()
    return name or None


def _scaled(value: Any, *, name: str, divisor: float) -> float | None:
    if value is not None and not isinstance(value, str) and pd.isna(value):
        return None
    number = normalize_value(value, name=name)
    if number is None:
        return None
    return number / divisor


@dataclass(frozen=True, slots=True)
class JoinResult:
    regions: tuple[Region, ...]
    matched: int
    unmatched_boundaries: tuple[str, ...]
    unmatched_table: tuple[str, ...]
    duplicate_table_keys: tuple[str, ...]
    skipped_boundaries: int = 0

    @property
    def coverage(self) -> float:
        if not self.regions:
            return 0.0
        return self.matched / len(self.regions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "regions": len(self.regions),
            "matched": self.matched,
            "coverage": round(self.coverage, 4),
            "unmatched_boundaries": list(self.unmatched_boundaries),
            "unmatched_table": list(self.unmatched_table),
            "duplicate_table_keys": list(self.duplicate_table_keys),
            "skipped_boundaries": self.skipped_boundaries,
        }


def join_regions(
    boundaries: Any,
    table: pd.DataFrame,
    *,
    boundary_name_column: str,
    table_name_column: str,
    value_column: str,
    aliases: Mapping[str, str] | None = None,
    divisor: float = 1.0,
) -> JoinResult:
    """Attach table values to boundary rows by region name.

    Every boundary row with a name yields one Region. Boundaries without a
    table match keep `value=None`; table rows without a boundary are reported
    in `unmatched_table`. The first table row wins for duplicate keys.
    """
    alias_map = {normalize_name(k): v for k, v in (aliases or {}).items()}

    lookup: dict[str, tuple[str, Any]] = {}
    duplicates: list[str] = []
    for raw_name, raw_value in zip(table[table_name_column], table[value_column]):
        name = _clean_name(raw_name)
        if name is None:
            continue
        target = alias_map.get(normalize_name(name), name)
        key = normalize_name(target)
        if key in lookup:
            duplicates.append(name)
            continue
        lookup[key] = (name, raw_value)

    regions: list[Region] = []
    used_keys: set[str] = set()
    unmatched_boundaries: list[str] = []
    skipped = 0
    for raw_name, geometry in zip(boundaries[boundary_name_column], boundaries.geometry):
        name = _clean_name(raw_name)
        if name is None:
            skipped += 1
            continue
        key = normalize_name(name)
        entry = lookup.get(key)
        if entry is None:
            unmatched_boundaries.append(name)
            regions.append(Region(name=name, geometry=geometry, value=None))
            continue
        used_keys.add(key)
        regions.append(
            Region(
                name=name,
                geometry=geometry,
                value=_scaled(entry[1], name=name, divisor=divisor),
            )
        )

    unmatched_table = sorted(
        source_name for key, (source_name, _) in lookup.items() if key not in used_keys
    )
    if skipped:
        _LOGGER.warning("Skipped %d boundary row(s) without a name", skipped)
    return JoinResult(
        regions=tuple(regions),
        matched=len(regions) - len(unmatched_boundaries),
        unmatched_boundaries=tuple(sorted(unmatched_boundaries)),
        unmatched_table=tuple(unmatched_table),
        duplicate_table_keys=tuple(sorted(duplicates)),
        skipped_boundaries=skipped,
    )


def regions_from_frame(
    frame: Any,
    *,
    name_column: str,
    value_column: str,
    divisor: float = 1.0,
) -> tuple[Region, ...]:
    """Project a GeoDataFrame that already carries the measure onto Regions."""
    if value_column not in frame.columns:
        raise ValueError(f"Column '{value_column}' not found in boundary data")
    regions: list[Region] = []
    for raw_name, geometry, raw_value in zip(frame[name_column], frame.geometry, frame[value_column]):
        name = _clean_name(raw_name)
        if name is None:
            continue
        regions.append(
            Region(name=name, geometry=geometry, value=_scaled(raw_value, name=name, divisor=divisor))
        )
    return tuple(regions)
