"""
HYDROTHERM Plot Files — Line Classification & Validation
=========================================================
Shared line classifier, per-line record parsing and the format gate that
runs before any time indexing.  Scalar files (``Plot_scalar.*``) carry 8
columns, vector files (``Plot_vector.*``) carry 10 or more.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional


# ── errors ──────────────────────────────────────────────────────────────────
class HydroError(ValueError):
    """Base class for every user-facing file loading error."""


class FilenameError(HydroError):
    """The selected file does not carry the expected name prefix."""


class FormatError(HydroError):
    """The file text failed the format validator."""


class EmptyDataError(HydroError):
    """The file passed validation but produced no time points."""


# ── file kinds ──────────────────────────────────────────────────────────────
SCALAR = "scalar"
VECTOR = "vector"

FILENAME_PREFIX = {
    SCALAR: "Plot_scalar.",
    VECTOR: "Plot_vector.",
}

MIN_COLUMNS = {
    SCALAR: 8,
    VECTOR: 10,
}

SCALAR_FIELDS = ("x", "y", "z", "time",
                 "temperature", "pressure", "saturation", "phase")

# name → (u column, v column), 0-based
VECTOR_COMPONENTS = {
    "water": (4, 6),
    "steam": (7, 9),
}

# Header / unit markers. Data-line skipping additionally treats "No." as noise.
_HEADER_MARKERS = {
    SCALAR: ("x  y", "(km)", "(yr)", "(Deg.C)", "(dyne/cm^2)", "(-)"),
    VECTOR: ("x  y", "(km)", "(yr)", "(m/s)", "(-)"),
}
_NOISE_MARKERS = ("No.",)

# Minimum share of parseable data lines for a file to be accepted.
MIN_VALID_PERCENTAGE = 50.0


def _check_kind(kind: str) -> str:
    if kind not in MIN_COLUMNS:
        raise ValueError(f"Unknown file kind: {kind!r}")
    return kind


def check_filename(filename: str, kind: str) -> None:
    """Raise FilenameError unless *filename* starts with the kind's prefix."""
    prefix = FILENAME_PREFIX[_check_kind(kind)]
    base = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    if not base.startswith(prefix):
        raise FilenameError(
            f'Invalid file name. Please select a file that begins with "{prefix}"')


# ═════════════════════════════════════════════════════════════════════════════
#  LINE CLASSIFIER
# ═════════════════════════════════════════════════════════════════════════════

def is_header_line(line: str, kind: str = SCALAR) -> bool:
    """True if the line carries a column-name or unit marker."""
    trimmed = line.strip()
    return any(m in trimmed for m in _HEADER_MARKERS[_check_kind(kind)])


def is_data_line(line: str, kind: str = SCALAR) -> bool:
    """True for candidate data rows; blank, '.'-prefixed and header lines are noise."""
    trimmed = line.strip()
    if not trimmed or trimmed.startswith("."):
        return False
    if is_header_line(trimmed, kind):
        return False
    return not any(m in trimmed for m in _NOISE_MARKERS)


# ═════════════════════════════════════════════════════════════════════════════
#  RECORD PARSING
# ═════════════════════════════════════════════════════════════════════════════

def parse_number(token: str) -> Optional[float]:
    """Parse a column as a finite float, or return None."""
    try:
        val = float(token)
    except (TypeError, ValueError):
        return None
    return val if math.isfinite(val) else None


def _column(parts: list[str], idx: int) -> Optional[float]:
    return parse_number(parts[idx]) if idx < len(parts) else None


def parse_scalar_line(line: str) -> Optional[dict[str, float]]:
    """Parse one scalar row into a record dict; None if any of the 8 fields fails."""
    parts = line.split()
    if len(parts) < MIN_COLUMNS[SCALAR]:
        return None
    values = [parse_number(p) for p in parts[:8]]
    if any(v is None for v in values):
        return None
    return dict(zip(SCALAR_FIELDS, values))


def parse_vector_line(line: str) -> Optional[dict[str, float]]:
    """
    Parse one vector row.  Coordinates and time must parse; at least one of
    the water / steam component pairs must parse.  A missing pair is stored
    as ``nan`` so the record still carries both keys.
    """
    parts = line.split()
    if len(parts) < MIN_COLUMNS[VECTOR]:
        return None
    head = [parse_number(p) for p in parts[:4]]
    if any(v is None for v in head):
        return None
    rec: dict[str, float] = dict(zip(("x", "y", "z", "time"), head))
    any_pair = False
    for name, (iu, iv) in VECTOR_COMPONENTS.items():
        u, v = _column(parts, iu), _column(parts, iv)
        if u is None or v is None:
            rec[f"{name}_u"] = rec[f"{name}_v"] = math.nan
        else:
            rec[f"{name}_u"], rec[f"{name}_v"] = u, v
            any_pair = True
    return rec if any_pair else None


def parse_line(line: str, kind: str = SCALAR) -> Optional[dict[str, float]]:
    if _check_kind(kind) == SCALAR:
        return parse_scalar_line(line)
    return parse_vector_line(line)


def parse_time_column(line: str, kind: str = SCALAR) -> Optional[float]:
    """Return only the time value (column 3) of a row wide enough for *kind*."""
    parts = line.split()
    if len(parts) < MIN_COLUMNS[_check_kind(kind)]:
        return None
    return parse_number(parts[3])


# ═════════════════════════════════════════════════════════════════════════════
#  FORMAT VALIDATOR
# ═════════════════════════════════════════════════════════════════════════════

_LAYOUT_HINT = {
    SCALAR: "the expected HYDROTHERM format (8 columns: x, y, z, time, "
            "temperature, pressure, saturation, phase)",
    VECTOR: "the expected vector format (10+ columns: x, y, z, time, "
            "water_u, water_v, steam_u, steam_v)",
}
_SHORT_HINT = {
    SCALAR: "the expected HYDROTHERM format",
    VECTOR: "the expected vector format",
}
_NO_HEADER = {
    SCALAR: "File does not contain HYDROTHERM header information "
            "(missing column headers or units)",
    VECTOR: "File does not contain vector header information",
}


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    stats: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "error": self.error, "stats": self.stats}


def validate_text(text: str, kind: str = SCALAR) -> ValidationResult:
    """
    Gate a whole file before indexing.

    Rejects when no header line is present, when there are no data lines,
    when none of the data lines parse, or when fewer than half of them do.
    Exactly 50 % passes.
    """
    _check_kind(kind)
    lines = text.split("\n")
    has_header = any(is_header_line(line, kind) for line in lines)

    data_lines = 0
    valid_lines = 0
    for line in lines:
        if not is_data_line(line, kind):
            continue
        data_lines += 1
        if parse_line(line.strip(), kind) is not None:
            valid_lines += 1

    if not has_header:
        return ValidationResult(False, _NO_HEADER[kind])
    if data_lines == 0:
        return ValidationResult(False, "File does not contain any data lines")
    if valid_lines == 0:
        return ValidationResult(
            False, f"File contains data lines but none match {_LAYOUT_HINT[kind]}")

    pct = valid_lines / data_lines * 100
    if pct < MIN_VALID_PERCENTAGE:
        return ValidationResult(
            False,
            f"File format appears incorrect. Only {pct:.1f}% of data lines "
            f"match {_SHORT_HINT[kind]}")

    return ValidationResult(True, None, {
        "total_lines": len(lines),
        "data_lines": data_lines,
        "valid_data_lines": valid_lines,
        "valid_percentage": pct,
    })
