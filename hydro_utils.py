"""
HYDROTHERM Viewer — Rendering & Export Helpers
===============================================
matplotlib rendering of frame payloads and time series, plus the frame
archive / GIF / CSV exports, keeping app.py thin (routes only).
"""

from __future__ import annotations

import io
import base64
import logging
import time
import zipfile
from typing import Any, Optional

import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from hydro_session import ViewerSession

logger = logging.getLogger(__name__)


# ── themes ──────────────────────────────────────────────────────────────────
_THEMES = {
    "dark": {
        "figure.facecolor": "#1a1a1a",
        "axes.facecolor": "#1a1a1a",
        "axes.edgecolor": "#444444",
        "axes.labelcolor": "#ffffff",
        "text.color": "#ffffff",
        "xtick.color": "#ffffff",
        "ytick.color": "#ffffff",
        "grid.color": "#444444",
        "legend.facecolor": "#1e1e1e",
        "legend.edgecolor": "#444444",
        "legend.labelcolor": "#ffffff",
    },
    "light": {
        "figure.facecolor": "white",
        "axes.facecolor": "white",
        "axes.edgecolor": "lightgray",
        "axes.labelcolor": "#333333",
        "text.color": "#333333",
        "xtick.color": "#333333",
        "ytick.color": "#333333",
        "grid.color": "lightgray",
        "legend.facecolor": "white",
        "legend.edgecolor": "lightgray",
        "legend.labelcolor": "#333333",
    },
}


def _apply_theme(theme: str) -> None:
    plt.rcParams.update(_THEMES.get(theme, _THEMES["dark"]))
    plt.rcParams.update({"grid.alpha": 0.5, "font.size": 11})


def _title_color(theme: str) -> str:
    return "#ffffff" if theme == "dark" else "#333333"


# ── figure → bytes ──────────────────────────────────────────────────────────
def fig_to_base64(fig: plt.Figure, dpi: int = 100) -> str:
    """Convert a matplotlib Figure to a data-URI base64 PNG string."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=dpi, bbox_inches="tight",
                facecolor=fig.get_facecolor(), edgecolor="none")
    buf.seek(0)
    b64 = base64.b64encode(buf.read()).decode()
    plt.close(fig)
    return f"data:image/png;base64,{b64}"


def _fig_to_raw_bytes(fig: plt.Figure, dpi: int = 100) -> io.BytesIO:
    """Render figure to PNG bytes at exactly figsize * dpi pixels."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=dpi,
                facecolor=fig.get_facecolor(), edgecolor="none")
    buf.seek(0)
    plt.close(fig)
    return buf


# ── labels ──────────────────────────────────────────────────────────────────
VARIABLE_LABELS = {
    "temperature": "Temperature (°C)",
    "pressure": "Pressure (Pa)",
    "saturation": "Saturation",
    "phase": "Phase",
}

COLORMAPS = [
    "viridis", "plasma", "inferno", "magma", "cividis", "jet", "hot",
    "turbo", "coolwarm", "RdYlBu_r", "Spectral_r", "RdBu", "YlOrRd",
    "Blues", "Greys",
]


def get_variable_label(variable: str) -> str:
    return VARIABLE_LABELS.get(variable, variable)


def format_value(value: float, variable: str) -> str:
    if variable == "pressure":
        return f"{value / 1e8:.2f} ×10⁸ Pa"
    if variable == "temperature":
        return f"{value:.1f} °C"
    return f"{value:.3f}"


def _range_labels(bounds, variable: str) -> Optional[list[str]]:
    if not bounds:
        return None
    return [format_value(b, variable) for b in bounds]


def parse_resolution(res: Optional[str], default: str = "900x600") -> tuple[int, int]:
    """'900x600' → (900, 600)."""
    try:
        w, h = (int(v) for v in (res or default).lower().split("x"))
    except ValueError:
        raise ValueError(f"Invalid resolution: {res!r} (expected WIDTHxHEIGHT)")
    if w <= 0 or h <= 0:
        raise ValueError(f"Invalid resolution: {res!r}")
    return w, h


# ═════════════════════════════════════════════════════════════════════════════
#  FRAME RENDERING
# ═════════════════════════════════════════════════════════════════════════════

def _draw_frame(fig: plt.Figure, ax, payload: dict) -> None:
    grid = payload["grid"]
    theme = payload.get("theme", "dark")
    label = get_variable_label(payload["variable"])

    if grid.matrix.size:
        kw: dict[str, Any] = dict(cmap=payload.get("colormap", "viridis"),
                                  shading="nearest")
        crange = payload.get("color_range")
        if crange:
            kw["vmin"], kw["vmax"] = crange
        mesh = ax.pcolormesh(grid.x_axis, grid.z_axis,
                             np.ma.masked_invalid(grid.matrix), **kw)
        cb = fig.colorbar(mesh, ax=ax)
        cb.set_label(label, color=_title_color(theme))

    for i, p in enumerate(payload.get("points", [])):
        ax.plot([p["x"]], [p["z"]], marker="o", markersize=12, linestyle="none",
                color=p.get("color"), markeredgecolor="white", markeredgewidth=2,
                label=f"Point {p.get('id', i + 1)} ({p['x']:.3f}, {p['z']:.3f})")

    arrows = payload.get("arrows")
    if arrows is not None and arrows.n_arrows:
        color = payload.get("arrow_color", "#ffffff")
        name = payload.get("vector_type", "water").capitalize()
        ax.plot(arrows.line_x, arrows.line_y, color=color, lw=2, label=f"{name} Flow")
        if arrows.head_x.size:
            ax.plot(arrows.head_x, arrows.head_y, color=color, lw=2)
    if ax.get_legend_handles_labels()[0]:
        ax.legend(loc="upper right", framealpha=0.7)

    if payload.get("x_range"):
        ax.set_xlim(*payload["x_range"])
    if payload.get("z_range"):
        ax.set_ylim(*payload["z_range"])
    ax.set_xlabel("X (km)")
    ax.set_ylabel("Z (km)")
    ax.grid(True, alpha=0.3)
    ax.set_title(f"{label} at Time: {payload['time']:.5f} years",
                 fontsize=14, color=_title_color(theme))


def render_frame(session: ViewerSession) -> dict:
    """Render the session's current time step → { image_b64, ... }."""
    payload = session.frame_payload()
    _apply_theme(session.theme)
    fig, ax = plt.subplots(figsize=(10, 6))
    _draw_frame(fig, ax, payload)
    return {
        "image_b64": fig_to_base64(fig),
        "time": payload["time"],
        "time_index": payload["time_index"],
        "time_label": payload["time_label"],
        "color_range": payload["color_range"],
        "x_range": payload["x_range"],
        "z_range": payload["z_range"],
        "n_arrows": payload["arrows"].n_arrows if payload["arrows"] else 0,
        "color_labels": _range_labels(payload["color_range"], payload["variable"]),
    }


def frame_data(session: ViewerSession) -> dict:
    """The render payload as JSON (grid + arrow geometry) for client-side plotting."""
    payload = session.frame_payload()
    out = {k: v for k, v in payload.items() if k not in ("grid", "arrows")}
    out["grid"] = payload["grid"].to_dict()
    out["arrows"] = payload["arrows"].to_dict() if payload["arrows"] else None
    out["color_labels"] = _range_labels(payload["color_range"], payload["variable"])
    return out


def render_time_series(series: list[dict], variable: str, theme: str = "dark") -> dict:
    """Plot one line per point → { image_b64, series }."""
    _apply_theme(theme)
    label = get_variable_label(variable)
    fig, ax = plt.subplots(figsize=(10, 4))
    for s in series:
        ax.plot(s["times"], s["values"], marker="o", markersize=6, lw=3,
                color=s["color"],
                label=f"Point {s['id']} ({s['x']:.3f}, {s['z']:.3f})")
    ax.set_xlabel("Time (years)")
    ax.set_ylabel(label)
    ax.legend(loc="upper left", framealpha=0.8)
    ax.grid(True, alpha=0.3)
    ax.set_title(f"{label} Time Series at Multiple Points",
                 fontsize=14, color=_title_color(theme))
    return {"image_b64": fig_to_base64(fig), "series": series}


# ═════════════════════════════════════════════════════════════════════════════
#  EXPORTS
# ═════════════════════════════════════════════════════════════════════════════

def _render_png_frames(session: ViewerSession, frame_step: int,
                       resolution: str) -> list[tuple[int, io.BytesIO]]:
    """Render every *frame_step*-th time step at the given pixel size."""
    n_times = len(session.require_scalar().times)
    frame_step = max(1, int(frame_step or 1))
    width, height = parse_resolution(resolution)
    dpi = 100
    saved_pos = session.time_pos
    frames: list[tuple[int, io.BytesIO]] = []
    _apply_theme(session.theme)
    try:
        for i in range(0, n_times, frame_step):
            session.set_time_position(i)
            fig, ax = plt.subplots(figsize=(width / dpi, height / dpi))
            _draw_frame(fig, ax, session.frame_payload())
            frames.append((i, _fig_to_raw_bytes(fig, dpi)))
            logger.info("Exported frame %d (step %d of %d)", len(frames), i + 1, n_times)
    finally:
        session.set_time_position(saved_pos)
    return frames


def export_frames_zip(session: ViewerSession, frame_step: int = 1,
                      resolution: str = "900x600") -> tuple[io.BytesIO, str]:
    """PNG per sampled time step, zipped. Returns (zip_bytes, filename)."""
    folder = f"plot_frames_{int(time.time() * 1000)}"
    frames = _render_png_frames(session, frame_step, resolution)
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for i, png in frames:
            zf.writestr(f"{folder}/frame_{i:03d}.png", png.getvalue())
    buf.seek(0)
    return buf, f"{folder}.zip"


def _make_gif(pil_frames: list, fps: int = 4) -> io.BytesIO:
    """Build an animated GIF from a list of PIL Image objects."""
    buf = io.BytesIO()
    pil_frames[0].save(buf, format="GIF", save_all=True,
                       append_images=pil_frames[1:],
                       duration=int(1000 / fps), loop=0, optimize=True)
    buf.seek(0)
    return buf


def export_gif(session: ViewerSession, frame_step: int = 1,
               resolution: str = "900x600", fps: int = 4) -> tuple[io.BytesIO, str]:
    """Animated GIF of the sampled time steps. Returns (gif_bytes, filename)."""
    from PIL import Image
    frames = _render_png_frames(session, frame_step, resolution)
    pil_frames = [Image.open(png).convert("RGB") for _, png in frames]
    fps = max(1, int(fps or 4))
    return _make_gif(pil_frames, fps), f"{session.variable}_animation.gif"


def export_time_series_csv(session: ViewerSession,
                           variable: Optional[str] = None) -> tuple[io.BytesIO, str]:
    text = session.time_series_csv(variable)
    return io.BytesIO(text.encode("utf-8")), "time_series.csv"
