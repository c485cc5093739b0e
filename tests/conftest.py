from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import pytest
from shapely.geometry import box

from choromap.models import Region


def square(x: float, y: float = 0.0, size: float = 1.0):
    return box(x, y, x + size, y + size)


@pytest.fixture
def two_regions() -> list[Region]:
    return [
        Region(name="A", geometry=square(0.0), value=1),
        Region(name="B", geometry=square(2.0), value=100),
    ]
