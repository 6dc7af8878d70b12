"""
Grid reconstruction from scattered (x, z, value) samples.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from hydro_format import SCALAR_FIELDS

VARIABLES = ("temperature", "pressure", "saturation", "phase")

# absolute coordinate tolerance for placing a sample on an axis value
COORD_TOL = 1e-10

Bounds = tuple[float, float]


@dataclass
class Grid:
    x_axis: np.ndarray
    z_axis: np.ndarray
    matrix: np.ndarray          # shape (len(z_axis), len(x_axis)), nan = missing
    variable: str
    data_range: Optional[Bounds] = None

    @property
    def x_range(self) -> Optional[Bounds]:
        if not len(self.x_axis):
            return None
        return float(self.x_axis[0]), float(self.x_axis[-1])

    @property
    def z_range(self) -> Optional[Bounds]:
        if not len(self.z_axis):
            return None
        return float(self.z_axis[0]), float(self.z_axis[-1])

    @property
    def n_missing(self) -> int:
        return int(np.isnan(self.matrix).sum())

    def to_dict(self) -> dict:
        """JSON-serialisable form; missing cells become None."""
        rows = [[None if np.isnan(v) else float(v) for v in row] for row in self.matrix]
        return {
            "variable": self.variable,
            "x": self.x_axis.tolist(),
            "z": self.z_axis.tolist(),
            "matrix": rows,
            "data_range": list(self.data_range) if self.data_range else None,
        }


def _axis_positions(axis: np.ndarray, values: np.ndarray) -> np.ndarray:
    """Index of each value on a sorted axis, or -1 when no axis value is within tolerance."""
    idx = np.searchsorted(axis, values)
    idx = np.clip(idx, 0, len(axis) - 1)
    # the nearest axis value is either at idx or idx - 1
    left = np.clip(idx - 1, 0, len(axis) - 1)
    use_left = np.abs(axis[left] - values) < np.abs(axis[idx] - values)
    idx = np.where(use_left, left, idx)
    return np.where(np.abs(axis[idx] - values) < COORD_TOL, idx, -1)


def build_grid(records: Sequence[dict], variable: str) -> Grid:
    """
    Place scattered samples on the regular grid spanned by their unique
    sorted x and z values.  Cells with no sample hold nan.  When several
    records fall on one cell, the first in file order wins.
    """
    if variable not in SCALAR_FIELDS:
        raise ValueError(f"Unknown variable: {variable!r}")

    if not records:
        empty = np.array([], dtype=float)
        return Grid(empty, empty, np.empty((0, 0)), variable)

    xs = np.array([r["x"] for r in records], dtype=float)
    zs = np.array([r["z"] for r in records], dtype=float)
    vals = np.array([r[variable] for r in records], dtype=float)

    x_axis = np.unique(xs)
    z_axis = np.unique(zs)
    matrix = np.full((len(z_axis), len(x_axis)), np.nan)

    xi = _axis_positions(x_axis, xs)
    zi = _axis_positions(z_axis, zs)
    ok = (xi >= 0) & (zi >= 0)
    cells = zi[ok] * len(x_axis) + xi[ok]
    _, first = np.unique(cells, return_index=True)
    matrix.flat[cells[first]] = vals[ok][first]

    return Grid(x_axis, z_axis, matrix, variable, data_range(matrix))


def data_range(values: np.ndarray) -> Optional[Bounds]:
    """(min, max) of the finite values, or None when there are none."""
    arr = np.asarray(values, dtype=float)
    arr = arr[np.isfinite(arr)]
    if not arr.size:
        return None
    return float(arr.min()), float(arr.max())


def percent_range(bounds: Bounds, lo_pct: float, hi_pct: float) -> Bounds:
    """Map a 0-100 slider sub-range onto *bounds*."""
    lo_pct = min(max(float(lo_pct), 0.0), 100.0)
    hi_pct = min(max(float(hi_pct), 0.0), 100.0)
    if lo_pct > hi_pct:
        lo_pct, hi_pct = hi_pct, lo_pct
    span = bounds[1] - bounds[0]
    return bounds[0] + span * lo_pct / 100, bounds[0] + span * hi_pct / 100
