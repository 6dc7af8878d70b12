"""
HYDROTHERM Viewer — Flask Web Application
==========================================
Local viewer for HYDROTHERM ``Plot_scalar.*`` / ``Plot_vector.*`` output.
Routes are kept thin; data access lives in the hydro_* modules and all
rendering in hydro_utils.py.
"""

from __future__ import annotations

import os
import logging
import traceback

from flask import (Flask, render_template, request, jsonify,
                   session, send_file)

import hydro_format
import hydro_session
import hydro_utils
from hydro_vectors import scale_label

app = Flask(__name__)
app.secret_key = os.environ.get("HYDROVIEW_SECRET_KEY") or os.urandom(24)
app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("HYDROVIEW_MAX_UPLOAD_MB", 500)) * 1024 * 1024
app.config["MAX_ARROWS"] = int(os.environ.get("HYDROVIEW_MAX_ARROWS", 1000))


def _viewer() -> hydro_session.ViewerSession:
    """The ViewerSession bound to this browser's cookie."""
    sid = session.get("viewer_id")
    if not sid:
        sid = hydro_session.new_session_id()
        session["viewer_id"] = sid
    return hydro_session.get_session(sid, max_arrows=app.config["MAX_ARROWS"])


def _as_int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {name}: {value!r}")


def _read_upload(kind: str) -> tuple[str, str]:
    f = request.files.get("file")
    if f is None or not f.filename:
        raise ValueError("Please select a file first.")
    # name check happens before the (possibly large) body is read
    hydro_format.check_filename(f.filename, kind)
    return f.filename, f.read().decode("utf-8", errors="replace")


#  PAGE ROUTES

@app.route("/")
def index():
    return render_template("index.html")


#  FILE LOADING

@app.route("/api/scalar/load", methods=["POST"])
def api_scalar_load():
    try:
        name, text = _read_upload(hydro_format.SCALAR)
        v = _viewer()
        info = v.load_scalar(name, text)
        return jsonify({"success": True, "info": info, "state": v.state()})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


@app.route("/api/vector/load", methods=["POST"])
def api_vector_load():
    try:
        name, text = _read_upload(hydro_format.VECTOR)
        v = _viewer()
        info = v.load_vector(name, text,
                             vector_type=request.form.get("vector_type") or None,
                             arrow_scale=request.form.get("arrow_scale") or None)
        return jsonify({"success": True, "info": info})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


@app.route("/api/vector/clear", methods=["POST"])
def api_vector_clear():
    _viewer().clear_vectors()
    return jsonify({"success": True})


@app.route("/api/validate", methods=["POST"])
def api_validate():
    kind = request.form.get("kind", hydro_format.SCALAR)
    try:
        _, text = _read_upload(kind)
        return jsonify(hydro_format.validate_text(text, kind).to_dict())
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


#  SESSION STATE & CONTROLS

@app.route("/api/state", methods=["GET"])
def api_state():
    return jsonify(_viewer().state())


@app.route("/api/reset", methods=["POST"])
def api_reset():
    """Forget this browser's session: loaded files, settings and points."""
    sid = session.pop("viewer_id", None)
    if sid:
        hydro_session.drop_session(sid)
    return jsonify({"success": True})


@app.route("/api/time", methods=["POST"])
def api_time():
    d = request.get_json() or {}
    try:
        v = _viewer()
        if "step" in d:
            v.step(_as_int(d["step"], "step"))
        else:
            v.set_time_position(_as_int(d.get("index", 0), "index"))
        return jsonify({"time": v.current_time, "time_index": v.time_pos,
                        "time_label": v.time_label})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


@app.route("/api/settings", methods=["POST"])
def api_settings():
    d = request.get_json() or {}
    try:
        v = _viewer()
        v.apply_settings(variable=d.get("variable"),
                         colormap=d.get("colormap"),
                         theme=d.get("theme"),
                         vector_type=d.get("vector_type"),
                         arrow_scale=d.get("arrow_scale"),
                         arrow_color=d.get("arrow_color"))
        state = v.state()
        state["arrow_scale_label"] = scale_label(v.arrow_scale)
        return jsonify(state)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


@app.route("/api/range", methods=["POST"])
def api_range():
    """Percentage sub-range of the colour bar ("color") or an axis ("x" / "z")."""
    d = request.get_json() or {}
    target = d.get("target", "color")
    try:
        v = _viewer()
        if d.get("reset"):
            if target == "color":
                v.reset_colorbar()
            else:
                v.reset_axes()
            return jsonify({"success": True})
        lo, hi = float(d.get("min_pct", 0)), float(d.get("max_pct", 100))
        if target == "color":
            rng = v.set_color_percent(lo, hi)
        else:
            rng = v.set_axis_percent(target, lo, hi)
        return jsonify({"target": target, "range": rng})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


#  FRAME API

@app.route("/api/frame/render", methods=["GET"])
def api_frame_render():
    try:
        return jsonify(hydro_utils.render_frame(_viewer()))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


@app.route("/api/frame/data", methods=["GET"])
def api_frame_data():
    try:
        return jsonify(hydro_utils.frame_data(_viewer()))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


#  POINTS & TIME SERIES

@app.route("/api/points", methods=["POST"])
def api_points():
    d = request.get_json() or {}
    try:
        return jsonify({"points": _viewer().set_points(d.get("points", []))})
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


@app.route("/api/points/clear", methods=["POST"])
def api_points_clear():
    _viewer().clear_points()
    return jsonify({"success": True})


@app.route("/api/timeseries/render", methods=["POST"])
def api_timeseries_render():
    d = request.get_json() or {}
    try:
        v = _viewer()
        variable = hydro_session.check_variable(d.get("variable") or v.variable)
        if d.get("points"):
            v.set_points(d["points"])
        series = v.time_series(variable)
        return jsonify(hydro_utils.render_time_series(series, variable, v.theme))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


#  DOWNLOAD ENDPOINTS

@app.route("/api/download/timeseries/csv", methods=["POST"])
def download_timeseries_csv():
    d = request.get_json() or {}
    try:
        v = _viewer()
        variable = hydro_session.check_variable(d.get("variable") or v.variable)
        if d.get("points"):
            v.set_points(d["points"])
        buf, fname = hydro_utils.export_time_series_csv(v, variable)
        return send_file(buf, mimetype="text/csv",
                         as_attachment=True, download_name=fname)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


@app.route("/api/download/frames", methods=["POST"])
def download_frames():
    d = request.get_json() or {}
    try:
        buf, fname = hydro_utils.export_frames_zip(
            _viewer(),
            frame_step=d.get("frame_step", 1),
            resolution=d.get("resolution", "900x600"),
        )
        return send_file(buf, mimetype="application/zip",
                         as_attachment=True, download_name=fname)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


@app.route("/api/download/gif", methods=["POST"])
def download_gif():
    d = request.get_json() or {}
    try:
        buf, fname = hydro_utils.export_gif(
            _viewer(),
            frame_step=d.get("frame_step", 1),
            resolution=d.get("resolution", "900x600"),
            fps=d.get("fps", 4),
        )
        return send_file(buf, mimetype="image/gif",
                         as_attachment=True, download_name=fname)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        traceback.print_exc()
        return jsonify({"error": str(e)}), 500


#  COLORMAPS

@app.route("/api/colormaps")
def colormaps():
    return jsonify({"colormaps": hydro_utils.COLORMAPS})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    port = int(os.environ.get("HYDROVIEW_PORT", 5000))
    print("=" * 60)
    print("  HYDROTHERM Viewer — Plot file explorer")
    print(f"  http://localhost:{port}")
    print("=" * 60)
    app.run(debug=True, host="0.0.0.0", port=port)
