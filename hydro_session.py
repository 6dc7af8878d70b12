"""
Viewer Session
==============
Everything the viewer knows about one user's work: the loaded scalar and
vector files with their time indices, the time position, display choices
and the plotted points.  Routes look a session up by id and call its
methods; nothing here is global except the registry at the bottom.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from hydro_format import (SCALAR, VECTOR, EmptyDataError, FormatError,
                          check_filename, validate_text)
from hydro_grid import VARIABLES, Bounds, Grid, build_grid, percent_range
from hydro_index import TimeIndex, build_time_index, extract_time_step, nearest_time
from hydro_points import (build_time_series, parse_points, sample_points,
                          time_series_csv)
from hydro_vectors import (DEFAULT_MAX_ARROWS, DEFAULT_SCALE_EXPONENT,
                           ArrowGeometry, build_arrows, flow_components)

logger = logging.getLogger(__name__)


class NoDataLoaded(ValueError):
    pass


THEMES = ("dark", "light")
VECTOR_TYPES = ("water", "steam")


def check_variable(variable: str) -> str:
    if variable not in VARIABLES:
        raise ValueError(f"Unknown variable: {variable!r}")
    return variable


def _vector_options(vector_type: Optional[str],
                    arrow_scale: Optional[float]) -> tuple[Optional[str], Optional[float]]:
    if vector_type is not None and vector_type not in VECTOR_TYPES:
        raise ValueError(f"Unknown vector type: {vector_type!r}")
    if arrow_scale is not None:
        try:
            arrow_scale = float(arrow_scale)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid arrow scale: {arrow_scale!r}")
    return vector_type, arrow_scale


@dataclass
class LoadedFile:
    kind: str
    name: str
    lines: list[str]
    index: TimeIndex
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def times(self) -> list[float]:
        return self.index.times

    def records(self, time: float) -> list[dict]:
        return extract_time_step(self.lines, self.index, time, self.kind)

    def info(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind,
            "n_times": len(self.index),
            "t_start": self.times[0] if self.times else None,
            "t_end": self.times[-1] if self.times else None,
            "stats": self.stats,
        }


def load_file(kind: str, filename: str, text: str) -> LoadedFile:
    """Filename check, format gate, then the indexing pass."""
    check_filename(filename, kind)
    result = validate_text(text, kind)
    if not result.valid:
        label = "Invalid file format" if kind == SCALAR else "Invalid vector file format"
        raise FormatError(f"{label}: {result.error}")

    lines = text.split("\n")
    index = build_time_index(lines, kind)
    if not index.times:
        raise EmptyDataError(
            "No valid data found in file. Please ensure the file contains "
            "HYDROTHERM data with the expected format.")
    logger.info("Loaded %s file %s: %d time points", kind, filename, len(index))
    return LoadedFile(kind, filename, lines, index, result.stats)


class ViewerSession:

    def __init__(self, max_arrows: int = DEFAULT_MAX_ARROWS):
        self.scalar: Optional[LoadedFile] = None
        self.vector: Optional[LoadedFile] = None
        self.time_pos = 0
        self.variable = "temperature"
        self.colormap = "viridis"
        self.theme = "dark"
        self.color_range: Optional[Bounds] = None
        self.x_range: Optional[Bounds] = None
        self.z_range: Optional[Bounds] = None
        self.vector_type = "water"
        self.arrow_scale = DEFAULT_SCALE_EXPONENT
        self.arrow_color = "#ffffff"
        self.max_arrows = max_arrows
        self.points: list[dict] = []
        self.point_inputs: list[dict] = []

    # ── loading ────────────────────────────────────────────────────────────
    def load_scalar(self, filename: str, text: str) -> dict:
        loaded = load_file(SCALAR, filename, text)
        self.scalar = loaded
        self.time_pos = 0
        self.reset_colorbar()
        self.reset_axes()
        self.points = []
        self.point_inputs = sample_points(loaded.records(loaded.times[0]))
        return loaded.info()

    def load_vector(self, filename: str, text: str,
                    vector_type: Optional[str] = None,
                    arrow_scale: Optional[float] = None) -> dict:
        """Load a vector file; display options are applied only once it loads."""
        options = _vector_options(vector_type, arrow_scale)
        self.vector = load_file(VECTOR, filename, text)
        self._commit_vector_options(*options)
        return self.vector.info()

    def clear_vectors(self) -> None:
        self.vector = None

    def require_scalar(self) -> LoadedFile:
        if self.scalar is None:
            raise NoDataLoaded("Please load a data file first.")
        return self.scalar

    # ── time navigation ────────────────────────────────────────────────────
    @property
    def times(self) -> list[float]:
        return self.scalar.times if self.scalar else []

    @property
    def current_time(self) -> float:
        return self.require_scalar().times[self.time_pos]

    @property
    def time_label(self) -> str:
        return f"Time: {self.current_time:.5f} years"

    def set_time_position(self, pos: int) -> float:
        times = self.require_scalar().times
        self.time_pos = min(max(int(pos), 0), len(times) - 1)
        return self.current_time

    def step(self, delta: int) -> float:
        """Keyboard left/right: move one step, staying put at either end."""
        times = self.require_scalar().times
        new = self.time_pos + (1 if delta > 0 else -1)
        if 0 <= new < len(times):
            self.time_pos = new
        return self.current_time

    # ── display settings ───────────────────────────────────────────────────
    def set_variable(self, variable: str) -> None:
        check_variable(variable)
        if variable != self.variable:
            self.variable = variable
            self.reset_colorbar()
            self.reset_axes()

    def set_vector_options(self, vector_type: Optional[str] = None,
                           arrow_scale: Optional[float] = None,
                           arrow_color: Optional[str] = None) -> None:
        self._commit_vector_options(*_vector_options(vector_type, arrow_scale),
                                    arrow_color=arrow_color)

    def _commit_vector_options(self, vector_type: Optional[str],
                               arrow_scale: Optional[float],
                               arrow_color: Optional[str] = None) -> None:
        if vector_type is not None:
            self.vector_type = vector_type
        if arrow_scale is not None:
            self.arrow_scale = arrow_scale
        if arrow_color:
            self.arrow_color = arrow_color

    def apply_settings(self, variable: Optional[str] = None,
                       colormap: Optional[str] = None,
                       theme: Optional[str] = None,
                       vector_type: Optional[str] = None,
                       arrow_scale: Optional[float] = None,
                       arrow_color: Optional[str] = None) -> None:
        """Check every setting first so a rejected request changes nothing."""
        if variable:
            check_variable(variable)
        if theme and theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme!r}")
        options = _vector_options(vector_type, arrow_scale)

        if variable:
            self.set_variable(variable)
        if colormap:
            self.colormap = colormap
        if theme:
            self.theme = theme
        self._commit_vector_options(*options, arrow_color=arrow_color)

    def set_color_percent(self, lo_pct: float, hi_pct: float) -> Optional[Bounds]:
        bounds = self.current_grid().data_range
        if bounds is not None:
            self.color_range = percent_range(bounds, lo_pct, hi_pct)
        return self.color_range

    def set_axis_percent(self, axis: str, lo_pct: float, hi_pct: float) -> Optional[Bounds]:
        grid = self.current_grid()
        if axis == "x":
            if grid.x_range is not None:
                self.x_range = percent_range(grid.x_range, lo_pct, hi_pct)
            return self.x_range
        if axis == "z":
            if grid.z_range is not None:
                self.z_range = percent_range(grid.z_range, lo_pct, hi_pct)
            return self.z_range
        raise ValueError(f"Unknown axis: {axis!r}")

    def reset_colorbar(self) -> None:
        self.color_range = None

    def reset_axes(self) -> None:
        self.x_range = None
        self.z_range = None

    # ── data for the current frame ─────────────────────────────────────────
    def current_records(self) -> list[dict]:
        return self.require_scalar().records(self.current_time)

    def current_grid(self, variable: Optional[str] = None) -> Grid:
        return build_grid(self.current_records(), variable or self.variable)

    def vector_records_for(self, time: float) -> list[dict]:
        """Vector rows for *time*, falling back to the closest vector time."""
        if self.vector is None:
            return []
        key = time
        if time not in self.vector.index:
            key = nearest_time(self.vector.times, time)
            logger.debug("Vector time %s not found, using closest %s", time, key)
            if key is None:
                return []
        return self.vector.records(key)

    def current_arrows(self) -> Optional[ArrowGeometry]:
        if self.vector is None:
            return None
        samples = flow_components(self.vector_records_for(self.current_time),
                                  self.vector_type)
        if not samples:
            return None
        return build_arrows(samples, self.arrow_scale, self.max_arrows)

    def frame_payload(self) -> dict:
        """Grid, arrows, points and effective ranges for the current time step."""
        grid = self.current_grid()
        arrows = self.current_arrows()
        return {
            "time": self.current_time,
            "time_index": self.time_pos,
            "time_label": self.time_label,
            "grid": grid,
            "arrows": arrows,
            "points": list(self.points),
            "color_range": self.color_range or grid.data_range,
            "x_range": self.x_range or grid.x_range,
            "z_range": self.z_range or grid.z_range,
            "variable": self.variable,
            "colormap": self.colormap,
            "theme": self.theme,
            "vector_type": self.vector_type,
            "arrow_color": self.arrow_color,
        }

    # ── points & time series ───────────────────────────────────────────────
    def set_points(self, raw: list) -> list[dict]:
        self.points = parse_points(raw)
        self.point_inputs = [{"x": p["x"], "z": p["z"]} for p in self.points]
        return self.points

    def clear_points(self) -> None:
        self.points = []
        self.point_inputs = []

    def time_series(self, variable: Optional[str] = None) -> list[dict]:
        variable = check_variable(variable or self.variable)
        sf = self.require_scalar()
        if not self.points:
            raise ValueError("Please enter valid coordinates for at least one point.")
        series = build_time_series(sf.lines, sf.index, self.points, variable)
        if not series:
            raise ValueError("No data found near the specified coordinates. "
                             "Try different coordinates.")
        return series

    def time_series_csv(self, variable: Optional[str] = None) -> str:
        variable = check_variable(variable or self.variable)
        sf = self.require_scalar()
        if not self.points:
            raise ValueError("Please enter valid coordinates for at least one point.")
        return time_series_csv(sf.lines, sf.index, self.points, variable)

    def state(self) -> dict:
        return {
            "scalar": self.scalar.info() if self.scalar else None,
            "vector": self.vector.info() if self.vector else None,
            "times": self.times,
            "time_index": self.time_pos,
            "variable": self.variable,
            "colormap": self.colormap,
            "theme": self.theme,
            "color_range": self.color_range,
            "x_range": self.x_range,
            "z_range": self.z_range,
            "vector_type": self.vector_type,
            "arrow_scale": self.arrow_scale,
            "arrow_color": self.arrow_color,
            "points": self.points,
            "point_inputs": self.point_inputs,
        }


# ── session registry ────────────────────────────────────────────────────────
_sessions: dict[str, ViewerSession] = {}


def new_session_id() -> str:
    return uuid.uuid4().hex


def get_session(sid: str, **kwargs: Any) -> ViewerSession:
    """Return (or create) the session registered under *sid*."""
    if sid not in _sessions:
        _sessions[sid] = ViewerSession(**kwargs)
    return _sessions[sid]


def drop_session(sid: str) -> None:
    _sessions.pop(sid, None)
