"""Domain models shared across pipeline modules."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from .scale import ColorScale


class RegionValueError(ValueError):
    """Raised when a region carries a value that cannot be color-encoded."""


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def normalize_value(value: Any, *, name: str = "?") -> float | None:
    """Return `value` as a float, or None when it is missing.

    None and NaN both mean "missing". Real numbers and `Decimal` are accepted;
    booleans, strings and infinities are rejected so they never reach the
    color scale.
    """
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (numbers.Real, Decimal)):
        raise RegionValueError(
            f"Region '{name}' has non-numeric value {value!r} ({type(value).__name__})"
        )
    number = float(value)
    if math.isnan(number):
        return None
    if math.isinf(number):
        raise RegionValueError(f"Region '{name}' has non-finite value {value!r}")
    return number


@dataclass(frozen=True, slots=True)
class Region:
    """One mapped geographic unit: display name, boundary, and measured value."""

    name: str
    geometry: Any
    value: float | None = None

    def __post_init__(self) -> None:
        name = _require_str(self.name, "region.name")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "value", normalize_value(self.value, name=name))

    @property
    def missing(self) -> bool:
        return self.value is None


class RenderStatus(str, Enum):
    OK = "ok"
    CONSTANT = "constant"
    NO_DATA = "no_data"


@dataclass(frozen=True, slots=True)
class StyledRegion:
    """Region plus everything a display surface needs to draw it."""

    name: str
    geometry: Any
    value: float | None
    fill_color: str
    fill_opacity: float
    border_color: str
    border_weight: float
    label: str

    @property
    def missing(self) -> bool:
        return self.value is None

    def leaflet_style(self) -> dict[str, Any]:
        return {
            "fillColor": self.fill_color,
            "fillOpacity": self.fill_opacity,
            "color": self.border_color,
            "weight": self.border_weight,
        }


@dataclass(frozen=True, slots=True)
class Legend:
    title: str
    vmin: float
    vmax: float
    colors: tuple[str, ...]
    opacity: float

    @property
    def span(self) -> tuple[float, float]:
        return (self.vmin, self.vmax)


@dataclass(frozen=True, slots=True)
class MapArtifact:
    """Display-independent result of one choropleth build."""

    status: RenderStatus
    title: str
    layers: tuple[StyledRegion, ...]
    legend: Legend | None
    scale: ColorScale | None

    @property
    def has_data(self) -> bool:
        return self.status is not RenderStatus.NO_DATA

    def fill_colors(self) -> dict[str, str]:
        """Fill color per region name; later duplicates overwrite earlier ones."""
        return {layer.name: layer.fill_color for layer in self.layers}

    def layer_names(self) -> tuple[str, ...]:
        return tuple(layer.name for layer in self.layers)

    @property
    def valued_layers(self) -> tuple[StyledRegion, ...]:
        return tuple(layer for layer in self.layers if not layer.missing)

    @property
    def missing_layers(self) -> tuple[StyledRegion, ...]:
        return tuple(layer for layer in self.layers if layer.missing)


@dataclass(frozen=True, slots=True)
class BuildManifest:
    """Build metadata used for deterministic audit trails."""

    generated_at_utc: str
    config_hash_sha256: str
    git_commit: str | None
    maps: Mapping[str, str]
    artifacts: Mapping[str, str]

    @classmethod
    def create(
        cls,
        *,
        config_hash_sha256: str,
        git_commit: str | None,
        maps: Mapping[str, str],
        artifacts: Mapping[str, str],
    ) -> BuildManifest:
        now = datetime.now(timezone.utc).isoformat()
        return cls(
            generated_at_utc=now,
            config_hash_sha256=config_hash_sha256,
            git_commit=git_commit,
            maps=maps,
            artifacts=artifacts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at_utc": self.generated_at_utc,
            "config_hash_sha256": self.config_hash_sha256,
            "git_commit": self.git_commit,
            "maps": dict(self.maps),
            "artifacts": dict(self.artifacts),
        }
