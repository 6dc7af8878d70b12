"""
Time Index — streaming access to time-grouped rows
===================================================
One forward pass over a plot file records, for every time value, the
inclusive line range holding its rows.  Later lookups re-slice only that
range instead of re-scanning the whole file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from hydro_format import SCALAR, is_data_line, parse_line, parse_time_column

logger = logging.getLogger(__name__)

TextSource = Union[str, Sequence[str]]


def split_lines(source: TextSource) -> Sequence[str]:
    return source.split("\n") if isinstance(source, str) else source


@dataclass(frozen=True)
class TimeIndex:
    """time value → (start_line, end_line), both inclusive, 0-based."""
    ranges: dict[float, tuple[int, int]] = field(default_factory=dict)
    times: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.times)

    def __contains__(self, time: object) -> bool:
        return time in self.ranges

    def get(self, time: float) -> Optional[tuple[int, int]]:
        return self.ranges.get(time)

    def to_dict(self) -> dict:
        return {
            "times": list(self.times),
            "ranges": [[t, *self.ranges[t]] for t in self.times],
        }


# ═════════════════════════════════════════════════════════════════════════════
#  INDEXER
# ═════════════════════════════════════════════════════════════════════════════

def build_time_index(source: TextSource, kind: str = SCALAR) -> TimeIndex:
    """
    Partition the data rows of a file into per-time line ranges.

    Rows of one time value are expected to be contiguous.  If a time value
    shows up again after another one, the later block replaces the earlier
    range (last write wins); the earlier rows become unreachable.  The
    returned ``times`` list is de-duplicated and sorted ascending regardless
    of file order.
    """
    lines = split_lines(source)
    ranges: dict[float, tuple[int, int]] = {}
    order: list[float] = []

    current: Optional[float] = None
    start = last = 0
    for num, line in enumerate(lines):
        if not is_data_line(line, kind):
            continue
        t = parse_time_column(line, kind)
        if t is None:
            continue
        if current is None:
            current, start = t, num
        elif t != current:
            if current in ranges:
                logger.warning("Time %s reappears at line %d; replacing its "
                               "earlier range %s", current, start, ranges[current])
            ranges[current] = (start, last)
            order.append(current)
            current, start = t, num
        last = num

    if current is not None:
        if current in ranges:
            logger.warning("Time %s reappears at line %d; replacing its "
                           "earlier range %s", current, start, ranges[current])
        ranges[current] = (start, last)
        order.append(current)

    times = sorted(set(order))
    logger.info("Indexed %d %s time points over %d lines", len(times), kind, len(lines))
    return TimeIndex(ranges=ranges, times=times)


def nearest_time(times: Sequence[float], target: float) -> Optional[float]:
    """Exact match if present, otherwise the closest value (first one on ties)."""
    if not times:
        return None
    best = times[0]
    for t in times:
        if t == target:
            return t
        if abs(t - target) < abs(best - target):
            best = t
    return best


# ═════════════════════════════════════════════════════════════════════════════
#  EXTRACTOR
# ═════════════════════════════════════════════════════════════════════════════

def extract_time_step(source: TextSource, index: TimeIndex, time: float,
                      kind: str = SCALAR) -> list[dict[str, float]]:
    """Parse the rows of one time step, in file order.  Unknown time → []."""
    span = index.get(time)
    if span is None:
        return []
    start, end = span
    records: list[dict[str, float]] = []
    for line in split_lines(source)[start:end + 1]:
        trimmed = line.strip()
        if not trimmed:
            continue
        rec = parse_line(trimmed, kind)
        if rec is not None:
            records.append(rec)
    return records
