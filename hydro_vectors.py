"""
Arrow geometry for the flow-vector overlay.

Arrows are emitted as flat coordinate runs separated by ``nan`` so a single
line trace can draw every arrow (matplotlib and plotly both treat the gap
value as a path break).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from hydro_format import VECTOR_COMPONENTS

logger = logging.getLogger(__name__)

DEFAULT_MAX_ARROWS = 1000
DEFAULT_SCALE_EXPONENT = -2.0
HEAD_FRACTION = 0.2
HEAD_CAP = 0.5          # km
MAG_EPS = 1e-12


@dataclass
class ArrowGeometry:
    line_x: np.ndarray
    line_y: np.ndarray
    head_x: np.ndarray
    head_y: np.ndarray
    n_arrows: int = 0
    stride: int = 1

    def to_dict(self) -> dict:
        def _js(arr: np.ndarray) -> list:
            return [None if np.isnan(v) else float(v) for v in arr]
        return {
            "line_x": _js(self.line_x),
            "line_y": _js(self.line_y),
            "head_x": _js(self.head_x),
            "head_y": _js(self.head_y),
            "n_arrows": self.n_arrows,
            "stride": self.stride,
        }


def flow_components(records: Sequence[dict], vector_type: str = "water") -> list[dict]:
    """Project vector records onto {x, z, u, v} for one flow type; drops rows without it."""
    if vector_type not in VECTOR_COMPONENTS:
        vector_type = "water"
    ku, kv = f"{vector_type}_u", f"{vector_type}_v"
    out = []
    for r in records:
        u, v = r.get(ku, math.nan), r.get(kv, math.nan)
        if math.isnan(u) or math.isnan(v):
            continue
        out.append({"x": r["x"], "z": r["z"], "u": u, "v": v})
    return out


def sample_stride(count: int, max_arrows: int = DEFAULT_MAX_ARROWS) -> int:
    if max_arrows <= 0 or count <= max_arrows:
        return 1
    return math.ceil(count / max_arrows)


def build_arrows(samples: Sequence[dict],
                 scale_exponent: float = DEFAULT_SCALE_EXPONENT,
                 max_arrows: int = DEFAULT_MAX_ARROWS,
                 head_cap: float = HEAD_CAP) -> ArrowGeometry:
    """
    Build arrow lines and V-shaped arrowheads from {x, z, u, v} samples.

    Length is ``log10(|(u, v)| + 1e-12) * 10**scale_exponent`` along the
    unit direction, so weak flows (magnitude below 1) draw backwards.
    Samples are thinned by a fixed stride in file order when there are more
    than *max_arrows*.
    """
    stride = sample_stride(len(samples), max_arrows)
    kept = samples[::stride]
    logger.debug("Sampled %d of %d vectors (stride %d)", len(kept), len(samples), stride)

    scale = 10.0 ** scale_exponent
    line_x: list[float] = []
    line_y: list[float] = []
    head_x: list[float] = []
    head_y: list[float] = []
    nan = math.nan

    for d in kept:
        x0, y0, u, v = d["x"], d["z"], d["u"], d["v"]
        mag = math.hypot(u, v)
        ux = uy = 0.0
        if mag > 0:
            ux, uy = u / mag, v / mag
        length = math.log10(mag + MAG_EPS) * scale
        x1 = x0 + ux * length
        y1 = y0 + uy * length
        line_x += [x0, x1, nan]
        line_y += [y0, y1, nan]

        dx, dy = x1 - x0, y1 - y0
        seg = math.hypot(dx, dy)
        if seg <= 0:
            continue
        dirx, diry = dx / seg, dy / seg
        px, py = -diry, dirx
        ah = min(head_cap, seg * HEAD_FRACTION)
        hx1 = x1 - dirx * ah + px * ah * 0.5
        hy1 = y1 - diry * ah + py * ah * 0.5
        hx2 = x1 - dirx * ah - px * ah * 0.5
        hy2 = y1 - diry * ah - py * ah * 0.5
        head_x += [x1, hx1, nan, x1, hx2, nan]
        head_y += [y1, hy1, nan, y1, hy2, nan]

    return ArrowGeometry(np.array(line_x, dtype=float), np.array(line_y, dtype=float),
                         np.array(head_x, dtype=float), np.array(head_y, dtype=float),
                         n_arrows=len(kept), stride=stride)


def scale_label(scale_exponent: float) -> str:
    """Human readable arrow multiplier, e.g. 'Scale: 1.0e-02x'."""
    actual = 10.0 ** scale_exponent
    if actual >= 1_000_000:
        return f"Scale: {actual / 1_000_000:.1f}Mx"
    if actual >= 1000:
        return f"Scale: {actual / 1000:.1f}Kx"
    if actual < 1:
        return f"Scale: {actual:.1e}x"
    return f"Scale: {actual:.1f}x"
