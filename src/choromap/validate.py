"""Validation layer for config and input datasets."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .aliases import load_name_aliases
from .config import AppConfig, MapSpec
from .join import join_regions
from .render import resolve_tiles
from .scale import palette_stops
from .sources import BoundaryRepository, TableSource
from .util import format_name_list


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Top-level input and schema validator."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def run(self, *, check_data: bool = True, fetch_remote: bool = False) -> ValidationReport:
        report = ValidationReport()
        self._validate_style(report)
        self._validate_input_paths(report)
        aliases = self._validate_aliases(report)
        if check_data:
            self._validate_map_data(report, aliases=aliases, fetch_remote=fetch_remote)
        return report

    def _validate_style(self, report: ValidationReport) -> None:
        try:
            palette_stops(self.cfg.style.palette, self.cfg.style.palette_steps)
        except Exception as exc:
            report.add_error(f"Invalid style.palette: {exc}")
        try:
            resolve_tiles(self.cfg.interactive.tiles)
        except Exception as exc:
            report.add_error(f"Invalid interactive.tiles: {exc}")
        if self.cfg.static.projection is not None:
            try:
                _require_pyproj_crs().from_user_input(self.cfg.static.projection)
            except Exception as exc:
                report.add_error(f"Invalid static.projection '{self.cfg.static.projection}': {exc}")

    def _validate_input_paths(self, report: ValidationReport) -> None:
        for key, source in sorted(self.cfg.boundaries.items()):
            self._check_exists(report, source.path, label=f"boundaries.{key}")
        for key, table in sorted(self.cfg.tables.items()):
            if table.is_remote:
                report.add_info(f"tables.{key} is remote: {table.location}")
                continue
            self._check_exists(report, Path(table.location), label=f"tables.{key}")

    def _validate_aliases(self, report: ValidationReport) -> dict[str, str]:
        try:
            aliases = load_name_aliases(self.cfg.paths.name_aliases)
        except Exception as exc:
            report.add_error(f"Failed parsing name aliases: {exc}")
            return {}
        report.add_info(f"Loaded {len(aliases)} name alias entries")
        return aliases

    def _validate_map_data(
        self,
        report: ValidationReport,
        *,
        aliases: dict[str, str],
        fetch_remote: bool,
    ) -> None:
        frames: dict[str, tuple[Any, str] | None] = {}
        for spec in self.cfg.maps:
            if spec.boundaries not in frames:
                frames[spec.boundaries] = self._load_boundaries(report, spec.boundaries)
            loaded = frames[spec.boundaries]
            if loaded is None:
                continue
            frame, name_column = loaded
            if spec.table is None:
                if spec.value_column not in frame.columns:
                    report.add_error(
                        f"Map '{spec.name}': column '{spec.value_column}' missing from "
                        f"boundaries '{spec.boundaries}'"
                    )
                else:
                    report.add_info(f"Map '{spec.name}': value column '{spec.value_column}' found")
                continue
            self._validate_join(
                report,
                spec=spec,
                frame=frame,
                name_column=name_column,
                aliases=aliases,
                fetch_remote=fetch_remote,
            )

    def _load_boundaries(self, report: ValidationReport, key: str) -> tuple[Any, str] | None:
        source = self.cfg.boundaries[key]
        if not source.path.exists():
            return None
        repo = BoundaryRepository.from_config(source)
        try:
            frame = repo.load()
            name_column = repo.detect_name_column(frame)
        except Exception as exc:
            report.add_error(f"Failed loading boundaries '{key}': {exc}")
            return None
        report.add_info(f"boundaries.{key}: {len(frame)} rows, name column '{name_column}'")
        return frame, name_column

    def _validate_join(
        self,
        report: ValidationReport,
        *,
        spec: MapSpec,
        frame: Any,
        name_column: str,
        aliases: dict[str, str],
        fetch_remote: bool,
    ) -> None:
        assert spec.table is not None
        table_cfg = self.cfg.tables[spec.table]
        if table_cfg.is_remote and not fetch_remote:
            report.add_info(f"Map '{spec.name}': skipping join check for remote table '{spec.table}'")
            return
        if not table_cfg.is_remote and not Path(table_cfg.location).exists():
            return
        try:
            table = TableSource.from_config(table_cfg).read(table_cfg.name_column, spec.value_column)
        except Exception as exc:
            report.add_error(f"Map '{spec.name}': failed reading table '{spec.table}': {exc}")
            return

        result = join_regions(
            frame,
            table,
            boundary_name_column=name_column,
            table_name_column=table_cfg.name_column,
            value_column=spec.value_column,
            aliases=aliases,
            divisor=spec.divisor,
        )
        report.add_info(
            f"Map '{spec.name}': join coverage {result.coverage:.1%} "
            f"({result.matched}/{len(result.regions)})"
        )
        if result.unmatched_table:
            report.add_warning(
                f"Map '{spec.name}': table rows without a boundary: "
                + format_name_list(result.unmatched_table)
            )
        if result.coverage < self.cfg.join.min_coverage:
            report.add_error(
                f"Map '{spec.name}': join coverage {result.coverage:.1%} below "
                f"join.min_coverage {self.cfg.join.min_coverage:.0%}; unmatched regions: "
                + format_name_list(result.unmatched_boundaries)
            )

    @staticmethod
    def _check_exists(report: ValidationReport, path: Path, *, label: str) -> None:
        if path.exists():
            report.add_info(f"Found {label}: {path}")
        else:
            report.add_error(f"Missing {label} file: {path}")


def format_report_lines(report: ValidationReport) -> list[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Validation passed.")
    return lines


def _require_pyproj_crs() -> Any:
    try:
        from pyproj import CRS
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required to validate map projections") from exc
    return CRS
