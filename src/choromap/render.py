"""Choropleth building and rendering to interactive (Leaflet) and static maps."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from html import escape
from pathlib import Path
from typing import Any, Callable, Sequence

import folium

from .aliases import load_name_aliases
from .config import AppConfig, InteractiveConfig, MapSpec, StaticConfig, StyleConfig
from .join import JoinResult, join_regions, regions_from_frame
from .models import Legend, MapArtifact, Region, RenderStatus, StyledRegion
from .scale import ColorScale, compute_domain
from .sources import BoundaryRepository, TableSource
from .util import format_name_list, slugify


_LOGGER = logging.getLogger("choromap.render")

_TILES_NONE = "none"
_NO_DATA_TEXT = "no data"
_STATUS_FAILED = "failed"


def format_region_label(name: str, value: float | None) -> str:
    """Display text for one region; the value is rounded for display only."""
    if value is None:
        return f"{name}: {_NO_DATA_TEXT}"
    return f"{name}: {value:,.0f}"


def build_choropleth(
    regions: Sequence[Region],
    label: str,
    style: StyleConfig | None = None,
) -> MapArtifact:
    """Style a region collection for display.

    The color domain is computed from this collection's present values only.
    An empty or all-missing collection yields a NO_DATA artifact, and a single
    distinct value yields a CONSTANT artifact filled with the palette's low end.
    """
    style = style or StyleConfig()
    for region in regions:
        if not isinstance(region, Region):
            raise TypeError(f"Expected Region, got {type(region).__name__}")

    domain = compute_domain(region.value for region in regions)
    if domain is None:
        status = RenderStatus.NO_DATA
        scale: ColorScale | None = None
        legend: Legend | None = None
    else:
        scale = ColorScale(
            domain,
            palette=style.palette,
            steps=style.palette_steps,
            caption=label,
            opacity=style.fill_opacity,
        )
        status = RenderStatus.CONSTANT if scale.constant else RenderStatus.OK
        legend = Legend(
            title=label,
            vmin=scale.vmin,
            vmax=scale.vmax,
            colors=scale.stops,
            opacity=style.fill_opacity,
        )

    layers = tuple(
        StyledRegion(
            name=region.name,
            geometry=region.geometry,
            value=region.value,
            fill_color=(
                scale.color_of(region.value)
                if scale is not None and region.value is not None
                else style.missing_color
            ),
            fill_opacity=style.fill_opacity,
            border_color=style.border_color,
            border_weight=style.border_weight,
            label=format_region_label(region.name, region.value),
        )
        for region in regions
    )
    return MapArtifact(status=status, title=label, layers=layers, legend=legend, scale=scale)


class LeafletRenderer:
    """Interactive Leaflet map (via folium) for a choropleth artifact."""

    def __init__(
        self,
        style: StyleConfig | None = None,
        cfg: InteractiveConfig | None = None,
    ) -> None:
        self.style = style or StyleConfig()
        self.cfg = cfg or InteractiveConfig()
        self._tiles = resolve_tiles(self.cfg.tiles)

    def render(self, regions: Sequence[Region], label: str) -> folium.Map:
        return self.draw(build_choropleth(regions, label, self.style))

    def draw(self, artifact: MapArtifact) -> folium.Map:
        fmap = folium.Map(
            location=list(self.cfg.center),
            zoom_start=self.cfg.zoom_start,
            tiles=self._tiles,
        )
        for layer in artifact.layers:
            if not _is_drawable(layer.geometry):
                _LOGGER.debug("Skipping empty geometry for %s", layer.name)
                continue
            self._region_layer(layer).add_to(fmap)
        if artifact.scale is not None and artifact.legend is not None:
            fmap.add_child(artifact.scale.make_colormap(artifact.legend.title))
        return fmap

    def _region_layer(self, layer: StyledRegion) -> folium.GeoJson:
        feature = {
            "type": "Feature",
            "properties": {"name": layer.name, "label": escape(layer.label)},
            "geometry": _geometry_mapping(layer.geometry),
        }
        style = layer.leaflet_style()
        highlight = dict(style, weight=max(layer.border_weight * 2.5, 2.0))
        return folium.GeoJson(
            feature,
            name=layer.name,
            style_function=_fixed_style(style),
            highlight_function=_fixed_style(highlight),
            tooltip=folium.GeoJsonTooltip(fields=["label"], labels=False, sticky=True),
            popup=folium.GeoJsonPopup(fields=["label"], labels=False),
        )


class StaticRenderer:
    """Static matplotlib figure for a choropleth artifact."""

    def __init__(
        self,
        style: StyleConfig | None = None,
        cfg: StaticConfig | None = None,
    ) -> None:
        self.style = style or StyleConfig()
        self.cfg = cfg or StaticConfig()

    def render(self, regions: Sequence[Region], label: str, *, crs: Any = None) -> Any:
        return self.draw(build_choropleth(regions, label, self.style), crs=crs)

    def draw(self, artifact: MapArtifact, *, crs: Any = None) -> Any:
        """Return a matplotlib Figure; the caller saves and closes it."""
        plt = _require_matplotlib()
        fig, ax = plt.subplots(
            figsize=(self.cfg.width_px / self.cfg.dpi, self.cfg.height_px / self.cfg.dpi),
            dpi=self.cfg.dpi,
        )
        fig.patch.set_facecolor(self.cfg.background)
        ax.set_facecolor(self.cfg.background)
        ax.set_axis_off()

        drawable = [layer for layer in artifact.layers if _is_drawable(layer.geometry)]
        if drawable:
            try:
                self._draw_regions(ax, drawable, crs=crs)
            except Exception:
                plt.close(fig)
                raise
        if artifact.legend is not None and artifact.scale is not None:
            self._draw_colorbar(fig, ax, artifact.legend, artifact.scale)
        if any(layer.missing for layer in drawable):
            self._draw_missing_key(ax)
        if not artifact.has_data:
            ax.text(
                0.5,
                0.5,
                f"{artifact.title}: {_NO_DATA_TEXT}",
                transform=ax.transAxes,
                ha="center",
                va="center",
                color="#555555",
            )
        return fig

    def _draw_regions(self, ax: Any, layers: Sequence[StyledRegion], *, crs: Any) -> None:
        gpd = _require_geopandas()
        to_rgba = _require_to_rgba()
        frame = gpd.GeoDataFrame(
            {"name": [layer.name for layer in layers]},
            geometry=[layer.geometry for layer in layers],
            crs=crs,
        )
        if self.cfg.projection is not None and frame.crs is not None:
            frame = frame.to_crs(self.cfg.projection)
        frame.plot(
            ax=ax,
            color=[to_rgba(layer.fill_color, layer.fill_opacity) for layer in layers],
            edgecolor=self.style.border_color,
            linewidth=self.style.border_weight,
        )

    def _draw_colorbar(self, fig: Any, ax: Any, legend: Legend, scale: ColorScale) -> None:
        from matplotlib.cm import ScalarMappable
        from matplotlib.colors import LinearSegmentedColormap, Normalize

        to_rgba = _require_to_rgba()
        colors = [to_rgba(color, legend.opacity) for color in legend.colors]
        if scale.constant:
            colors = [colors[0], colors[0]]
            norm = Normalize(vmin=legend.vmin - 0.5, vmax=legend.vmax + 0.5)
        else:
            norm = Normalize(vmin=legend.vmin, vmax=legend.vmax)
        cmap = LinearSegmentedColormap.from_list(scale.palette, colors)
        colorbar = fig.colorbar(
            ScalarMappable(norm=norm, cmap=cmap),
            ax=ax,
            orientation="horizontal",
            fraction=0.04,
            pad=0.02,
            shrink=0.6,
        )
        colorbar.set_label(legend.title)
        if scale.constant:
            colorbar.set_ticks([legend.vmin])

    def _draw_missing_key(self, ax: Any) -> None:
        from matplotlib.patches import Patch

        ax.legend(
            handles=[
                Patch(
                    facecolor=self.style.missing_color,
                    edgecolor=self.style.border_color,
                    label="No data",
                )
            ],
            loc="lower left",
            frameon=False,
        )


@dataclass(slots=True)
class RenderMapsReport:
    output_dir: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)
    statuses: dict[str, str] = field(default_factory=dict)
    outputs: dict[str, list[Path]] = field(default_factory=dict)
    joins: dict[str, JoinResult] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class SourceCache:
    """Loads each configured boundary file and table at most once per run."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg
        self._boundaries: dict[str, tuple[Any, str]] = {}
        self._tables: dict[tuple[str, str], Any] = {}

    def boundaries(self, key: str) -> tuple[Any, str]:
        if key not in self._boundaries:
            repo = BoundaryRepository.from_config(self.cfg.boundaries[key])
            frame = repo.load()
            self._boundaries[key] = (frame, repo.detect_name_column(frame))
        return self._boundaries[key]

    def table(self, key: str, value_column: str) -> Any:
        cache_key = (key, value_column)
        if cache_key not in self._tables:
            table_cfg = self.cfg.tables[key]
            self._tables[cache_key] = TableSource.from_config(table_cfg).read(
                table_cfg.name_column, value_column
            )
        return self._tables[cache_key]


def select_maps(
    cfg: AppConfig,
    map_filter: Sequence[str] | None,
    report: RenderMapsReport,
) -> list[MapSpec]:
    requested = {item.strip() for item in (map_filter or ()) if item and item.strip()}
    if not requested:
        return list(cfg.maps)
    selected = [spec for spec in cfg.maps if spec.name in requested]
    unknown = sorted(requested - {spec.name for spec in selected})
    if unknown:
        report.add_warning("Requested maps not present in config: " + format_name_list(unknown))
    report.add_info(f"Map filter enabled: {len(selected)} of {len(cfg.maps)} maps selected.")
    return selected


def load_map_regions(
    spec: MapSpec,
    sources: SourceCache,
    *,
    aliases: dict[str, str],
) -> tuple[tuple[Region, ...], Any, JoinResult | None]:
    """Project one configured map's data onto Regions."""
    frame, name_column = sources.boundaries(spec.boundaries)
    if spec.table is None:
        regions = regions_from_frame(
            frame,
            name_column=name_column,
            value_column=spec.value_column,
            divisor=spec.divisor,
        )
        return regions, frame.crs, None

    table_cfg = sources.cfg.tables[spec.table]
    result = join_regions(
        frame,
        sources.table(spec.table, spec.value_column),
        boundary_name_column=name_column,
        table_name_column=table_cfg.name_column,
        value_column=spec.value_column,
        aliases=aliases,
        divisor=spec.divisor,
    )
    return result.regions, frame.crs, result


def run_render_maps(
    cfg: AppConfig,
    *,
    map_filter: Sequence[str] | None = None,
    formats: Sequence[str] | None = None,
) -> RenderMapsReport:
    """Build and write every configured choropleth."""
    report = RenderMapsReport(output_dir=cfg.paths.output_dir)
    specs = select_maps(cfg, map_filter, report)
    if not specs:
        report.add_error("No maps selected for rendering after filters.")
        return report

    try:
        aliases = load_name_aliases(cfg.paths.name_aliases)
    except Exception as exc:
        report.add_error(f"Failed loading name aliases '{cfg.paths.name_aliases}': {exc}")
        return report
    report.add_info(f"Loaded {len(aliases)} name alias entries")

    sources = SourceCache(cfg)
    leaflet = LeafletRenderer(cfg.style, cfg.interactive)
    static = StaticRenderer(cfg.style, cfg.static)
    failures: list[str] = []
    no_data: list[str] = []
    files_written = 0

    for idx, spec in enumerate(specs, start=1):
        t0 = time.perf_counter()
        wanted = tuple(fmt for fmt in spec.formats if formats is None or fmt in formats)
        try:
            regions, crs, join_result = load_map_regions(spec, sources, aliases=aliases)
            if join_result is not None:
                report.joins[spec.name] = join_result
                _report_join(report, spec, join_result, min_coverage=cfg.join.min_coverage)

            artifact = build_choropleth(regions, spec.label, cfg.style)
            if not artifact.has_data:
                no_data.append(spec.name)
                report.add_warning(f"{spec.name}: no region carries a value; rendered as no-data map.")
            elif artifact.status is RenderStatus.CONSTANT:
                report.add_warning(f"{spec.name}: all values are equal; rendered with a constant fill.")

            written = _write_outputs(
                spec,
                artifact,
                output_dir=cfg.paths.output_dir,
                formats=wanted,
                leaflet=leaflet,
                static=static,
                crs=crs,
            )
        except Exception as exc:
            failures.append(f"{spec.name}({exc})")
            report.statuses[spec.name] = _STATUS_FAILED
            _LOGGER.debug("Rendering %s failed", spec.name, exc_info=True)
            continue

        report.statuses[spec.name] = artifact.status.value
        report.outputs[spec.name] = written
        files_written += len(written)
        _LOGGER.info(
            "[render] (%d/%d) built %s in %.2fs (%d regions, %s)",
            idx,
            len(specs),
            spec.name,
            time.perf_counter() - t0,
            len(regions),
            artifact.status.value,
        )

    report.summary = {
        "maps_total": len(specs),
        "maps_rendered": len(report.outputs),
        "maps_failed": len(failures),
        "maps_no_data": len(no_data),
        "files_written": files_written,
    }
    if failures:
        report.add_error("Render failures: " + format_name_list(sorted(failures)))
    report.add_info(
        "Render summary: "
        + ", ".join(f"{key}={value}" for key, value in report.summary.items())
    )
    if report.ok:
        report.add_info(f"Rendered map files written to {cfg.paths.output_dir}")
    return report


def format_render_lines(report: RenderMapsReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Map rendering completed with no errors.")
    return lines


def output_paths(spec: MapSpec, output_dir: Path) -> dict[str, Path]:
    stem = slugify(spec.name)
    return {"html": output_dir / f"{stem}.html", "png": output_dir / f"{stem}.png"}


def _write_outputs(
    spec: MapSpec,
    artifact: MapArtifact,
    *,
    output_dir: Path,
    formats: Sequence[str],
    leaflet: LeafletRenderer,
    static: StaticRenderer,
    crs: Any,
) -> list[Path]:
    paths = output_paths(spec, output_dir)
    written: list[Path] = []
    output_dir.mkdir(parents=True, exist_ok=True)
    if "html" in formats:
        leaflet.draw(artifact).save(str(paths["html"]))
        written.append(paths["html"])
    if "png" in formats:
        plt = _require_matplotlib()
        fig = static.draw(artifact, crs=crs)
        try:
            fig.savefig(paths["png"], dpi=static.cfg.dpi, facecolor=fig.get_facecolor())
        finally:
            plt.close(fig)
        written.append(paths["png"])
    return written


def _report_join(
    report: RenderMapsReport,
    spec: MapSpec,
    result: JoinResult,
    *,
    min_coverage: float,
) -> None:
    report.add_info(
        f"{spec.name}: joined {result.matched}/{len(result.regions)} regions "
        f"(coverage {result.coverage:.1%})"
    )
    if result.unmatched_boundaries:
        report.add_warning(
            f"{spec.name}: regions without a '{spec.table}' row: "
            + format_name_list(result.unmatched_boundaries)
        )
    if result.unmatched_table:
        report.add_warning(
            f"{spec.name}: '{spec.table}' rows without a boundary: "
            + format_name_list(result.unmatched_table)
        )
    if result.duplicate_table_keys:
        report.add_warning(
            f"{spec.name}: duplicate '{spec.table}' names ignored: "
            + format_name_list(result.duplicate_table_keys)
        )
    if result.coverage < min_coverage:
        report.add_warning(
            f"{spec.name}: join coverage {result.coverage:.1%} is below {min_coverage:.0%}"
        )


def _fixed_style(style: dict[str, Any]) -> Callable[[Any], dict[str, Any]]:
    def _style(_feature: Any) -> dict[str, Any]:
        return dict(style)

    return _style


def _is_drawable(geometry: Any) -> bool:
    if geometry is None:
        return False
    return not bool(getattr(geometry, "is_empty", False))


def _geometry_mapping(geometry: Any) -> Any:
    if isinstance(geometry, dict):
        return geometry
    from shapely.geometry import mapping

    return mapping(geometry)


def resolve_tiles(name: str) -> Any | None:
    chosen = name.casefold()
    if chosen == _TILES_NONE:
        return None
    providers = _require_xyzservices_providers()
    choices = {
        "positron": providers.CartoDB.Positron,
        "positron_nolabels": providers.CartoDB.PositronNoLabels,
        "voyager": providers.CartoDB.Voyager,
        "osm": providers.OpenStreetMap.Mapnik,
        "satellite": providers.Esri.WorldImagery,
    }
    if chosen not in choices:
        raise ValueError(
            f"Unknown tiles '{name}'. Choose one of: "
            + ", ".join(sorted((*choices, _TILES_NONE)))
        )
    return choices[chosen]


def _require_matplotlib() -> Any:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for static map rendering") from exc
    return plt


@lru_cache(maxsize=1)
def _require_to_rgba() -> Any:
    try:
        from matplotlib.colors import to_rgba
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for static map rendering") from exc
    return to_rgba


@lru_cache(maxsize=1)
def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for static map rendering") from exc
    return gpd


@lru_cache(maxsize=1)
def _require_xyzservices_providers() -> Any:
    try:
        from xyzservices import providers
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("xyzservices is required for tile provider definitions") from exc
    return providers
