"""
Point queries across time steps: time series, CSV export and sample points.

Two nearest-neighbour metrics are kept on purpose.  The time-series
overlay matches with Euclidean distance and a 0.1 km acceptance radius;
the CSV export matches with Manhattan distance and no radius.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from typing import Any, Optional, Sequence

from hydro_format import SCALAR, parse_number
from hydro_index import TextSource, TimeIndex, extract_time_step, split_lines

logger = logging.getLogger(__name__)

MAX_POINTS = 4
MATCH_THRESHOLD = 0.1   # km
POINT_COLORS = ["#20bf6b", "#0fb9b1", "#26de81", "#45aaf2"]


def nearest_euclidean(records: Sequence[dict], x: float,
                      z: float) -> tuple[Optional[dict], float]:
    best, best_d = None, math.inf
    for r in records:
        d = math.hypot(r["x"] - x, r["z"] - z)
        if d < best_d:
            best, best_d = r, d
    return best, best_d


def nearest_manhattan(records: Sequence[dict], x: float,
                      z: float) -> tuple[Optional[dict], float]:
    best, best_d = None, math.inf
    for r in records:
        d = abs(r["x"] - x) + abs(r["z"] - z)
        if d < best_d:
            best, best_d = r, d
    return best, best_d


# ── point input ─────────────────────────────────────────────────────────────
def parse_points(raw: Sequence[Any]) -> list[dict]:
    """
    Read up to four {x, z} inputs.  Entries that do not parse are skipped
    (an empty input box is normal); colours follow the input slot.
    """
    points: list[dict] = []
    for slot, item in enumerate(list(raw or [])[:MAX_POINTS]):
        if not isinstance(item, dict):
            continue
        x = parse_number(str(item.get("x", "")).strip())
        z = parse_number(str(item.get("z", "")).strip())
        if x is None or z is None:
            continue
        points.append({"id": slot + 1, "x": x, "z": z,
                       "color": POINT_COLORS[slot % len(POINT_COLORS)]})
    if not points:
        raise ValueError("Please enter valid coordinates for at least one point.")
    return points


def sample_points(records: Sequence[dict], count: int = MAX_POINTS) -> list[dict]:
    """Evenly spaced records (in file order) used to pre-fill the point inputs."""
    n = len(records)
    out = []
    for i in range(min(count, n)):
        r = records[(i * n) // count]
        out.append({"x": round(r["x"], 3), "z": round(r["z"], 3)})
    return out


# ═════════════════════════════════════════════════════════════════════════════
#  TIME SERIES
# ═════════════════════════════════════════════════════════════════════════════

def build_time_series(source: TextSource, index: TimeIndex, points: Sequence[dict],
                      variable: str, threshold: float = MATCH_THRESHOLD) -> list[dict]:
    """
    Value of *variable* at each point for every time step.

    A step contributes only when its nearest record lies strictly within
    *threshold*; other steps are left out of that point's series.  Points
    with no matching step at all are dropped.
    """
    lines = split_lines(source)
    per_point: list[dict] = [
        {"id": p.get("id", i + 1), "x": p["x"], "z": p["z"],
         "color": p.get("color", POINT_COLORS[i % len(POINT_COLORS)]),
         "times": [], "values": []}
        for i, p in enumerate(points)
    ]
    for t in index.times:
        records = extract_time_step(lines, index, t, SCALAR)
        for series in per_point:
            rec, dist = nearest_euclidean(records, series["x"], series["z"])
            if rec is not None and dist < threshold:
                series["times"].append(t)
                series["values"].append(rec[variable])

    result = [s for s in per_point if s["times"]]
    logger.debug("Time series: %d of %d points matched over %d steps",
                 len(result), len(per_point), len(index.times))
    return result


def time_series_csv(source: TextSource, index: TimeIndex, points: Sequence[dict],
                    variable: str) -> str:
    """CSV with one row per time step and one column per point (Manhattan nearest)."""
    lines = split_lines(source)
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(["time"] + [f"point{i + 1}" for i in range(len(points))])
    for t in index.times:
        records = extract_time_step(lines, index, t, SCALAR)
        row: list[Any] = [t]
        for p in points:
            rec, _ = nearest_manhattan(records, p["x"], p["z"])
            row.append("" if rec is None else rec[variable])
        writer.writerow(row)
    return buf.getvalue()
