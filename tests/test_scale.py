from __future__ import annotations

import pytest

from choromap.scale import ColorScale, compute_domain, palette_stops


def test_compute_domain_ignores_missing():
    assert compute_domain([10.0, None, 20.0]) == (10.0, 20.0)


def test_compute_domain_empty_or_all_missing():
    assert compute_domain([]) is None
    assert compute_domain([None, None]) is None


def test_palette_stops_sample_viridis_extremes():
    stops = palette_stops("viridis", 9)
    assert len(stops) == 9
    assert stops[0] == "#440154"
    assert stops[-1] == "#fde725"


def test_palette_stops_rejects_unknown_palette():
    with pytest.raises(ValueError, match="Unknown palette"):
        palette_stops("no-such-palette", 5)


def test_palette_stops_rejects_single_step():
    with pytest.raises(ValueError):
        palette_stops("viridis", 1)


def test_extremes_map_to_palette_ends():
    scale = ColorScale((1.0, 100.0))
    assert scale.color_of(1.0) == scale.low_color
    assert scale.color_of(100.0) == scale.high_color
    assert scale.color_of(50.0) not in {scale.low_color, scale.high_color}


def test_out_of_domain_values_clamp():
    scale = ColorScale((0.0, 10.0))
    assert scale.color_of(-5.0) == scale.low_color
    assert scale.color_of(15.0) == scale.high_color


def test_color_of_hits_every_palette_stop_in_order():
    scale = ColorScale((-3.0, 7.0))
    index = scale.colormap.index
    assert len(index) == len(scale.stops)
    assert [scale.color_of(value) for value in index] == list(scale.stops)


def _rgb(hex_color: str) -> tuple[int, int, int]:
    return (int(hex_color[1:3], 16), int(hex_color[3:5], 16), int(hex_color[5:7], 16))


def _palette_position(color: tuple[int, int, int], stops: list[tuple[int, int, int]]) -> float:
    """Closest point on the polyline through the stops, as stop index plus fraction."""
    best: tuple[float, float] | None = None
    for idx in range(len(stops) - 1):
        a, b = stops[idx], stops[idx + 1]
        d = [b[j] - a[j] for j in range(3)]
        t = sum((color[j] - a[j]) * d[j] for j in range(3)) / sum(x * x for x in d)
        t = max(0.0, min(1.0, t))
        dist = sum((color[j] - (a[j] + t * d[j])) ** 2 for j in range(3))
        if best is None or dist < best[0]:
            best = (dist, idx + t)
    assert best is not None
    return best[1]


def test_color_of_progresses_along_the_palette():
    scale = ColorScale((-3.0, 7.0))
    stops = [_rgb(stop) for stop in scale.stops]
    samples = [-3.0 + 10.0 * k / 80 for k in range(81)]

    positions = [_palette_position(_rgb(scale.color_of(value)), stops) for value in samples]

    assert positions == sorted(positions)
    assert positions[0] == 0.0
    assert positions[-1] == len(stops) - 1


def test_constant_domain_uses_low_end():
    scale = ColorScale((5.0, 5.0))
    assert scale.constant
    assert scale.domain == (5.0, 5.0)
    assert scale.color_of(5.0) == scale.low_color
    assert scale.colormap.vmin < 5.0 < scale.colormap.vmax


def test_inverted_domain_rejected():
    with pytest.raises(ValueError, match="Invalid color domain"):
        ColorScale((2.0, 1.0))


def test_legend_colormap_spans_domain_with_caption():
    scale = ColorScale((1.0, 100.0), caption="Test", opacity=0.6)
    assert scale.colormap.vmin == 1.0
    assert scale.colormap.vmax == 100.0
    assert scale.colormap.index[-1] == 100.0
    assert scale.colormap.caption == "Test"
    assert scale.colormap.rgba_floats_tuple(1.0)[3] == pytest.approx(0.6)
