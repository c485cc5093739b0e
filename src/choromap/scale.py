"""Color-scale domain computation and palette mapping."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable

from branca.colormap import LinearColormap


DEFAULT_PALETTE = "viridis"
DEFAULT_PALETTE_STEPS = 9

# Half-width used for the legend widget when every value is equal; branca needs a
# non-empty span to draw a bar, the reported Legend keeps vmin == vmax.
_CONSTANT_LEGEND_PAD = 0.5


def compute_domain(values: Iterable[float | None]) -> tuple[float, float] | None:
    """Return (min, max) over the present values, or None when there are none."""
    present = [float(value) for value in values if value is not None]
    if not present:
        return None
    return (min(present), max(present))


def palette_stops(name: str, steps: int = DEFAULT_PALETTE_STEPS) -> tuple[str, ...]:
    """Sample `steps` evenly spaced hex colors from a matplotlib colormap."""
    if steps < 2:
        raise ValueError("Palette needs at least 2 steps")
    return _palette_stops(name.strip(), steps)


@lru_cache(maxsize=32)
def _palette_stops(name: str, steps: int) -> tuple[str, ...]:
    colormaps, to_hex = _require_matplotlib_colors()
    try:
        cmap = colormaps[name]
    except KeyError as exc:
        raise ValueError(f"Unknown palette '{name}'") from exc
    return tuple(to_hex(cmap(idx / (steps - 1))) for idx in range(steps))


class ColorScale:
    """Continuous value -> color mapping over one dataset's domain.

    Fills come from `color_of` on `colormap`; interactive legends are built by
    `make_colormap` over the same stops and index, so both agree on every color.
    """

    def __init__(
        self,
        domain: tuple[float, float],
        *,
        palette: str = DEFAULT_PALETTE,
        steps: int = DEFAULT_PALETTE_STEPS,
        caption: str = "",
        opacity: float = 1.0,
    ) -> None:
        vmin, vmax = float(domain[0]), float(domain[1])
        if vmin > vmax:
            raise ValueError(f"Invalid color domain: min {vmin} > max {vmax}")
        if not 0.0 <= opacity <= 1.0:
            raise ValueError("Color scale opacity must be between 0 and 1")
        self.vmin = vmin
        self.vmax = vmax
        self.palette = palette
        self.opacity = float(opacity)
        self.stops = palette_stops(palette, steps)
        self.colormap = self.make_colormap(caption)

    @property
    def constant(self) -> bool:
        return self.vmin == self.vmax

    @property
    def domain(self) -> tuple[float, float]:
        return (self.vmin, self.vmax)

    @property
    def low_color(self) -> str:
        return self.stops[0]

    @property
    def high_color(self) -> str:
        return self.stops[-1]

    def color_of(self, value: float) -> str:
        return self.colormap.rgb_hex_str(float(value))

    def _rgba(self, hex_color: str) -> tuple[float, float, float, float]:
        # Alpha only shows up in the legend bar; fills use rgb_hex_str.
        return (
            int(hex_color[1:3], 16) / 255.0,
            int(hex_color[3:5], 16) / 255.0,
            int(hex_color[5:7], 16) / 255.0,
            self.opacity,
        )

    def make_colormap(self, caption: str = "") -> LinearColormap:
        """Fresh branca colormap for this domain; each folium map needs its own."""
        if self.constant:
            low = self._rgba(self.low_color)
            return LinearColormap(
                colors=[low, low],
                index=[self.vmin - _CONSTANT_LEGEND_PAD, self.vmax + _CONSTANT_LEGEND_PAD],
                vmin=self.vmin - _CONSTANT_LEGEND_PAD,
                vmax=self.vmax + _CONSTANT_LEGEND_PAD,
                caption=caption,
            )
        n = len(self.stops)
        span = self.vmax - self.vmin
        index = [self.vmin + span * idx / (n - 1) for idx in range(n - 1)] + [self.vmax]
        return LinearColormap(
            colors=[self._rgba(stop) for stop in self.stops],
            index=index,
            vmin=self.vmin,
            vmax=self.vmax,
            caption=caption,
        )

    def __repr__(self) -> str:
        return f"ColorScale(domain=({self.vmin!r}, {self.vmax!r}), palette={self.palette!r})"


def _require_matplotlib_colors() -> tuple[Any, Any]:
    try:
        from matplotlib import colormaps
        from matplotlib.colors import to_hex
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for palette sampling") from exc
    return (colormaps, to_hex)
