"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .scale import DEFAULT_PALETTE, DEFAULT_PALETTE_STEPS


OUTPUT_FORMATS = ("html", "png")


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _optional_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    return _mapping(value, field_name)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    return _str(value, field_name)


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


def _location_from_cfg(value: Any, field_name: str, root_dir: Path) -> str:
    """Resolve a local path against the config dir; URLs pass through."""
    raw = _str(value, field_name)
    if raw.startswith(("http://", "https://")):
        return raw
    return str(_path_from_cfg(raw, field_name, root_dir))


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    name: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ProjectConfig:
        return cls(name=_str(raw.get("name", "choropleth-maps"), "project.name"))


@dataclass(frozen=True, slots=True)
class PathsConfig:
    output_dir: Path
    qa_dir: Path
    manifests_dir: Path
    logs_dir: Path
    name_aliases: Path | None

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (self.output_dir, self.qa_dir, self.manifests_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        aliases_raw = raw.get("name_aliases")
        return cls(
            output_dir=_path_from_cfg(raw.get("output_dir"), "paths.output_dir", root_dir),
            qa_dir=_path_from_cfg(raw.get("qa_dir"), "paths.qa_dir", root_dir),
            manifests_dir=_path_from_cfg(raw.get("manifests_dir"), "paths.manifests_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
            name_aliases=(
                _path_from_cfg(aliases_raw, "paths.name_aliases", root_dir)
                if aliases_raw is not None
                else None
            ),
        )


@dataclass(frozen=True, slots=True)
class StyleConfig:
    """Per-region drawing rules shared by the interactive and static renderers."""

    border_weight: float = 1.0
    border_color: str = "black"
    fill_opacity: float = 0.6
    palette: str = DEFAULT_PALETTE
    palette_steps: int = DEFAULT_PALETTE_STEPS
    missing_color: str = "#d3d3d3"

    def __post_init__(self) -> None:
        if not 0.0 <= self.fill_opacity <= 1.0:
            raise ValueError("style.fill_opacity must be between 0 and 1")
        if self.border_weight < 0:
            raise ValueError("style.border_weight must be >= 0")
        if self.palette_steps < 2:
            raise ValueError("style.palette_steps must be >= 2")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> StyleConfig:
        defaults = cls()
        return cls(
            border_weight=_float(raw.get("border_weight", defaults.border_weight), "style.border_weight"),
            border_color=_str(raw.get("border_color", defaults.border_color), "style.border_color"),
            fill_opacity=_float(raw.get("fill_opacity", defaults.fill_opacity), "style.fill_opacity"),
            palette=_str(raw.get("palette", defaults.palette), "style.palette"),
            palette_steps=_int(raw.get("palette_steps", defaults.palette_steps), "style.palette_steps"),
            missing_color=_str(raw.get("missing_color", defaults.missing_color), "style.missing_color"),
        )


@dataclass(frozen=True, slots=True)
class InteractiveConfig:
    tiles: str = "positron"
    center: tuple[float, float] = (20.0, 0.0)
    zoom_start: int = 2

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> InteractiveConfig:
        defaults = cls()
        center_raw = raw.get("center", list(defaults.center))
        if not isinstance(center_raw, list) or len(center_raw) != 2:
            raise ValueError("Expected [lat, lon] list for 'interactive.center'")
        lat = _float(center_raw[0], "interactive.center[0]")
        lon = _float(center_raw[1], "interactive.center[1]")
        if lat < -90.0 or lat > 90.0:
            raise ValueError("interactive.center latitude must be between -90 and 90")
        if lon < -180.0 or lon > 180.0:
            raise ValueError("interactive.center longitude must be between -180 and 180")
        return cls(
            tiles=_str(raw.get("tiles", defaults.tiles), "interactive.tiles").casefold(),
            center=(lat, lon),
            zoom_start=_int(raw.get("zoom_start", defaults.zoom_start), "interactive.zoom_start"),
        )


@dataclass(frozen=True, slots=True)
class StaticConfig:
    width_px: int = 1600
    height_px: int = 900
    dpi: int = 200
    background: str = "white"
    projection: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> StaticConfig:
        defaults = cls()
        width_px = _int(raw.get("width_px", defaults.width_px), "static.width_px")
        height_px = _int(raw.get("height_px", defaults.height_px), "static.height_px")
        dpi = _int(raw.get("dpi", defaults.dpi), "static.dpi")
        if width_px <= 0 or height_px <= 0 or dpi <= 0:
            raise ValueError("static.width_px, static.height_px and static.dpi must be > 0")
        return cls(
            width_px=width_px,
            height_px=height_px,
            dpi=dpi,
            background=_str(raw.get("background", defaults.background), "static.background"),
            projection=_optional_str(raw.get("projection"), "static.projection"),
        )


@dataclass(frozen=True, slots=True)
class JoinConfig:
    min_coverage: float = 0.9

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> JoinConfig:
        min_coverage = _float(raw.get("min_coverage", cls().min_coverage), "join.min_coverage")
        if not 0.0 <= min_coverage <= 1.0:
            raise ValueError("join.min_coverage must be between 0 and 1")
        return cls(min_coverage=min_coverage)


@dataclass(frozen=True, slots=True)
class QaConfig:
    generate_index: bool = True
    thumbnail_width_px: int = 360
    max_columns: int = 3

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> QaConfig:
        defaults = cls()
        max_columns = _int(raw.get("max_columns", defaults.max_columns), "qa.max_columns")
        if max_columns < 1:
            raise ValueError("qa.max_columns must be >= 1")
        return cls(
            generate_index=_bool(raw.get("generate_index", defaults.generate_index), "qa.generate_index"),
            thumbnail_width_px=_int(
                raw.get("thumbnail_width_px", defaults.thumbnail_width_px), "qa.thumbnail_width_px"
            ),
            max_columns=max_columns,
        )


@dataclass(frozen=True, slots=True)
class BoundarySourceConfig:
    path: Path
    name_column: str | None
    simplify_tolerance: float | None
    crs: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], key: str, root_dir: Path) -> BoundarySourceConfig:
        prefix = f"boundaries.{key}"
        tolerance_raw = raw.get("simplify_tolerance")
        tolerance = (
            _float(tolerance_raw, f"{prefix}.simplify_tolerance")
            if tolerance_raw is not None
            else None
        )
        if tolerance is not None and tolerance < 0:
            raise ValueError(f"{prefix}.simplify_tolerance must be >= 0")
        return cls(
            path=_path_from_cfg(raw.get("path"), f"{prefix}.path", root_dir),
            name_column=_optional_str(raw.get("name_column"), f"{prefix}.name_column"),
            simplify_tolerance=tolerance,
            crs=_str(raw.get("crs", "EPSG:4326"), f"{prefix}.crs"),
        )


@dataclass(frozen=True, slots=True)
class TableSourceConfig:
    location: str
    name_column: str
    timeout_s: int

    @property
    def is_remote(self) -> bool:
        return self.location.startswith(("http://", "https://"))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], key: str, root_dir: Path) -> TableSourceConfig:
        prefix = f"tables.{key}"
        return cls(
            location=_location_from_cfg(raw.get("location"), f"{prefix}.location", root_dir),
            name_column=_str(raw.get("name_column"), f"{prefix}.name_column"),
            timeout_s=_int(raw.get("timeout_s", 30), f"{prefix}.timeout_s"),
        )


@dataclass(frozen=True, slots=True)
class MapSpec:
    """One configured choropleth: which boundaries, which measure, which label."""

    name: str
    label: str
    boundaries: str
    value_column: str
    table: str | None = None
    divisor: float = 1.0
    formats: tuple[str, ...] = OUTPUT_FORMATS

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], idx: int) -> MapSpec:
        prefix = f"maps[{idx}]"
        divisor = _float(raw.get("divisor", 1.0), f"{prefix}.divisor")
        if divisor == 0:
            raise ValueError(f"{prefix}.divisor must not be 0")
        formats_raw = raw.get("formats", list(OUTPUT_FORMATS))
        if not isinstance(formats_raw, list) or not formats_raw:
            raise ValueError(f"Expected non-empty list for '{prefix}.formats'")
        formats: list[str] = []
        for f_idx, item in enumerate(formats_raw):
            fmt = _str(item, f"{prefix}.formats[{f_idx}]").casefold()
            if fmt not in OUTPUT_FORMATS:
                raise ValueError(
                    f"{prefix}.formats[{f_idx}] must be one of: " + ", ".join(OUTPUT_FORMATS)
                )
            if fmt not in formats:
                formats.append(fmt)
        return cls(
            name=_str(raw.get("name"), f"{prefix}.name"),
            label=_str(raw.get("label"), f"{prefix}.label"),
            boundaries=_str(raw.get("boundaries"), f"{prefix}.boundaries"),
            value_column=_str(raw.get("value_column"), f"{prefix}.value_column"),
            table=_optional_str(raw.get("table"), f"{prefix}.table"),
            divisor=divisor,
            formats=tuple(formats),
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    project: ProjectConfig
    paths: PathsConfig
    style: StyleConfig
    interactive: InteractiveConfig
    static: StaticConfig
    join: JoinConfig
    qa: QaConfig
    boundaries: Mapping[str, BoundarySourceConfig]
    tables: Mapping[str, TableSourceConfig]
    maps: tuple[MapSpec, ...]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()

        boundaries = {
            _str(key, "boundaries key"): BoundarySourceConfig.from_mapping(
                _mapping(value, f"boundaries.{key}"), str(key), root_dir
            )
            for key, value in _mapping(raw.get("boundaries"), "boundaries").items()
        }
        tables = {
            _str(key, "tables key"): TableSourceConfig.from_mapping(
                _mapping(value, f"tables.{key}"), str(key), root_dir
            )
            for key, value in _optional_mapping(raw.get("tables"), "tables").items()
        }

        maps_raw = raw.get("maps")
        if not isinstance(maps_raw, list) or not maps_raw:
            raise ValueError("Expected non-empty list for 'maps'")
        maps = tuple(
            MapSpec.from_mapping(_mapping(item, f"maps[{idx}]"), idx)
            for idx, item in enumerate(maps_raw)
        )

        seen: set[str] = set()
        for spec in maps:
            if spec.name in seen:
                raise ValueError(f"Duplicate map name '{spec.name}'")
            seen.add(spec.name)
            if spec.boundaries not in boundaries:
                raise ValueError(f"Map '{spec.name}' references unknown boundaries '{spec.boundaries}'")
            if spec.table is not None and spec.table not in tables:
                raise ValueError(f"Map '{spec.name}' references unknown table '{spec.table}'")

        return cls(
            source_path=source_path.resolve(),
            project=ProjectConfig.from_mapping(_optional_mapping(raw.get("project"), "project")),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            style=StyleConfig.from_mapping(_optional_mapping(raw.get("style"), "style")),
            interactive=InteractiveConfig.from_mapping(
                _optional_mapping(raw.get("interactive"), "interactive")
            ),
            static=StaticConfig.from_mapping(_optional_mapping(raw.get("static"), "static")),
            join=JoinConfig.from_mapping(_optional_mapping(raw.get("join"), "join")),
            qa=QaConfig.from_mapping(_optional_mapping(raw.get("qa"), "qa")),
            boundaries=boundaries,
            tables=tables,
            maps=maps,
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
