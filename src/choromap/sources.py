"""Boundary and statistics loading interfaces."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any, Iterable, Sequence

import pandas as pd
import requests

from .config import BoundarySourceConfig, TableSourceConfig


_LOGGER = logging.getLogger("choromap.sources")


def first_existing_column(columns: Iterable[Any], candidates: Sequence[str]) -> str | None:
    existing = {str(col).lower(): str(col) for col in columns}
    for candidate in candidates:
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


def _describe_columns(frame: Any) -> str:
    return ", ".join(str(c) for c in frame.columns)


class BoundaryRepository:
    """Reads region boundaries (countries, states) from a vector file.

    Geometries are reprojected to the configured CRS and optionally simplified;
    they are otherwise passed through untouched, invalid ones included.
    """

    NAME_COLUMNS = (
        "NAME",
        "ADMIN",
        "NAME_EN",
        "NAME_LONG",
        "STATE_NAME",
        "NAMELSAD",
        "GEOUNIT",
        "SOVEREIGNT",
    )

    def __init__(
        self,
        path: Path,
        *,
        name_column: str | None = None,
        simplify_tolerance: float | None = None,
        crs: str = "EPSG:4326",
    ) -> None:
        self.path = path
        self.name_column = name_column
        self.simplify_tolerance = simplify_tolerance
        self.crs = crs

    @classmethod
    def from_config(cls, cfg: BoundarySourceConfig) -> BoundaryRepository:
        return cls(
            cfg.path,
            name_column=cfg.name_column,
            simplify_tolerance=cfg.simplify_tolerance,
            crs=cfg.crs,
        )

    def load(self) -> Any:
        """Load boundaries as a GeoDataFrame in `self.crs`."""
        if not self.path.exists():
            raise FileNotFoundError(f"Boundary file not found: {self.path}")
        gpd = self._require_geopandas()
        frame = gpd.read_file(self.path)
        if frame.crs is None:
            _LOGGER.warning("%s has no CRS; assuming %s", self.path.name, self.crs)
            frame = frame.set_crs(self.crs)
        elif frame.crs != self.crs:
            frame = frame.to_crs(self.crs)
        if self.simplify_tolerance:
            frame = frame.set_geometry(
                frame.geometry.simplify(self.simplify_tolerance, preserve_topology=True)
            )
        _LOGGER.debug("Loaded %d boundary rows from %s", len(frame), self.path)
        return frame

    def detect_name_column(self, frame: Any) -> str:
        if self.name_column is not None:
            match = first_existing_column(frame.columns, [self.name_column])
            if match is None:
                raise ValueError(
                    f"Configured name column '{self.name_column}' not found in {self.path}. "
                    f"Available columns: {_describe_columns(frame)}"
                )
            return match
        match = first_existing_column(frame.columns, self.NAME_COLUMNS)
        if match is None:
            raise ValueError(
                f"Could not detect a region name column in {self.path}. "
                f"Available columns: {_describe_columns(frame)}"
            )
        return match

    @staticmethod
    def _require_geopandas() -> Any:
        try:
            import geopandas as gpd
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError("geopandas is required for boundary loading") from exc
        return gpd


class TableSource:
    """Per-region statistics from a CSV file or an HTTP(S) URL."""

    def __init__(
        self,
        location: str,
        *,
        timeout_s: int = 30,
        session: requests.Session | None = None,
    ) -> None:
        self.location = location
        self.timeout_s = timeout_s
        self._session = session

    @classmethod
    def from_config(cls, cfg: TableSourceConfig) -> TableSource:
        return cls(cfg.location, timeout_s=cfg.timeout_s)

    @property
    def is_remote(self) -> bool:
        return self.location.startswith(("http://", "https://"))

    def load(self) -> pd.DataFrame:
        if self.is_remote:
            return pd.read_csv(io.StringIO(self._download_text()))
        path = Path(self.location)
        if not path.exists():
            raise FileNotFoundError(f"Table file not found: {path}")
        return pd.read_csv(path)

    def read(self, name_column: str, value_column: str) -> pd.DataFrame:
        """Return a two-column frame with numeric values; unparseable cells become NaN."""
        frame = self.load()
        missing = [col for col in (name_column, value_column) if col not in frame.columns]
        if missing:
            raise ValueError(
                f"Missing column(s) {', '.join(missing)} in {self.location}. "
                f"Available columns: {_describe_columns(frame)}"
            )
        out = frame[[name_column, value_column]].copy()
        out[value_column] = pd.to_numeric(out[value_column], errors="coerce")
        unparsed = int(out[value_column].isna().sum() - frame[value_column].isna().sum())
        if unparsed:
            _LOGGER.warning(
                "%d non-numeric '%s' cell(s) in %s treated as missing",
                unparsed,
                value_column,
                self.location,
            )
        return out

    def _download_text(self) -> str:
        session = self._session or requests.Session()
        _LOGGER.info("Downloading table %s", self.location)
        response = session.get(self.location, timeout=self.timeout_s)
        response.raise_for_status()
        response.encoding = response.encoding or "utf-8"
        return response.text
