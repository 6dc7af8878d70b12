import io
import zipfile

import pytest
from PIL import Image

from app import app as flask_app
from conftest import make_scalar_text, make_vector_text


@pytest.fixture
def client():
    flask_app.config["TESTING"] = True
    with flask_app.test_client() as c:
        yield c


def upload(client, url, name, text):
    return client.post(url, data={"file": (io.BytesIO(text.encode()), name)},
                       content_type="multipart/form-data")


@pytest.fixture
def loaded(client):
    res = upload(client, "/api/scalar/load", "Plot_scalar.run", make_scalar_text())
    assert res.status_code == 200
    return client


def test_load_scalar(client):
    res = upload(client, "/api/scalar/load", "Plot_scalar.run", make_scalar_text())
    body = res.get_json()
    assert body["success"]
    assert body["info"]["n_times"] == 3
    assert body["state"]["times"] == [0.0, 1.0, 2.0]


def test_load_rejects_filename(client):
    res = upload(client, "/api/scalar/load", "data.txt", make_scalar_text())
    assert res.status_code == 400
    assert "Plot_scalar." in res.get_json()["error"]


def test_load_rejects_format(client):
    res = upload(client, "/api/scalar/load", "Plot_scalar.bad", "hello\n")
    assert res.status_code == 400
    assert res.get_json()["error"].startswith("Invalid file format")


def test_load_without_file(client):
    res = client.post("/api/scalar/load", data={}, content_type="multipart/form-data")
    assert res.status_code == 400


def test_validate_endpoint(client):
    res = client.post("/api/validate",
                      data={"kind": "vector",
                            "file": (io.BytesIO(make_vector_text().encode()),
                                     "Plot_vector.run")},
                      content_type="multipart/form-data")
    body = res.get_json()
    assert body["valid"]
    assert body["stats"]["valid_data_lines"] == 12


def test_render_requires_data(client):
    res = client.get("/api/frame/render")
    assert res.status_code == 400
    assert "load a data file" in res.get_json()["error"]


def test_time_navigation(loaded):
    res = loaded.post("/api/time", json={"step": 1})
    assert res.get_json()["time"] == 1.0
    res = loaded.post("/api/time", json={"index": 2})
    assert res.get_json()["time_label"] == "Time: 2.00000 years"
    res = loaded.post("/api/time", json={"step": 1})
    assert res.get_json()["time_index"] == 2


def test_frame_render(loaded):
    upload(loaded, "/api/vector/load", "Plot_vector.run", make_vector_text())
    loaded.post("/api/points", json={"points": [{"x": 1, "z": 0}]})
    res = loaded.get("/api/frame/render")
    body = res.get_json()
    assert res.status_code == 200
    assert body["image_b64"].startswith("data:image/png;base64,")
    assert body["n_arrows"] == 4
    assert body["color_range"] == [9.0, 20.0]
    assert body["color_labels"] == ["9.0 °C", "20.0 °C"]


def test_frame_data(loaded):
    body = loaded.get("/api/frame/data").get_json()
    assert body["grid"]["x"] == [1.0, 2.0]
    assert body["grid"]["matrix"] == [[9.0, 19.0], [10.0, 20.0]]
    assert body["arrows"] is None


def test_settings_and_ranges(loaded):
    body = loaded.post("/api/settings", json={"variable": "saturation",
                                              "theme": "light",
                                              "arrow_scale": 3}).get_json()
    assert body["variable"] == "saturation"
    assert body["arrow_scale_label"] == "Scale: 1.0Kx"

    body = loaded.post("/api/range", json={"target": "x", "min_pct": 50,
                                           "max_pct": 100}).get_json()
    assert body["range"] == [1.5, 2.0]
    loaded.post("/api/range", json={"target": "x", "reset": True})
    assert loaded.get("/api/state").get_json()["x_range"] is None

    res = loaded.post("/api/settings", json={"variable": "nope"})
    assert res.status_code == 400


def test_timeseries_render(loaded):
    res = loaded.post("/api/timeseries/render",
                      json={"points": [{"x": 1, "z": -1}, {"x": "", "z": ""}],
                            "variable": "temperature"})
    body = res.get_json()
    assert res.status_code == 200
    assert body["series"][0]["values"] == [9.0, 109.0, 209.0]

    res = loaded.post("/api/timeseries/render", json={"points": [{"x": 40, "z": 40}]})
    assert res.status_code == 400


def test_csv_download(loaded):
    res = loaded.post("/api/download/timeseries/csv",
                      json={"points": [{"x": 1, "z": -1}], "variable": "temperature"})
    assert res.status_code == 200
    assert res.mimetype == "text/csv"
    assert res.data.decode().splitlines() == [
        "time,point1", "0.0,9.0", "1.0,109.0", "2.0,209.0"]


def test_frames_zip(loaded):
    res = loaded.post("/api/download/frames",
                      json={"frame_step": 2, "resolution": "200x100"})
    assert res.status_code == 200
    zf = zipfile.ZipFile(io.BytesIO(res.data))
    names = sorted(zf.namelist())
    assert [n.rsplit("/", 1)[1] for n in names] == ["frame_000.png", "frame_002.png"]
    img = Image.open(io.BytesIO(zf.read(names[0])))
    assert img.size == (200, 100)
    # exporting leaves the time position where it was
    assert loaded.get("/api/state").get_json()["time_index"] == 0


def test_frames_bad_resolution(loaded):
    res = loaded.post("/api/download/frames", json={"resolution": "big"})
    assert res.status_code == 400


def test_gif_download(loaded):
    res = loaded.post("/api/download/gif", json={"resolution": "120x80", "fps": 2})
    assert res.status_code == 200
    assert res.data[:4] == b"GIF8"


def test_colormaps(client):
    assert "viridis" in client.get("/api/colormaps").get_json()["colormaps"]


def test_rejected_vector_upload_keeps_settings(loaded):
    res = loaded.post("/api/vector/load",
                      data={"file": (io.BytesIO(b"garbage\n"), "Plot_vector.r"),
                            "vector_type": "steam", "arrow_scale": "3"},
                      content_type="multipart/form-data")
    assert res.status_code == 400
    state = loaded.get("/api/state").get_json()
    assert state["vector_type"] == "water"
    assert state["arrow_scale"] == -2.0
    assert state["vector"] is None


def test_vector_upload_applies_settings(loaded):
    res = loaded.post("/api/vector/load",
                      data={"file": (io.BytesIO(make_vector_text().encode()),
                                     "Plot_vector.run"),
                            "vector_type": "steam", "arrow_scale": "1"},
                      content_type="multipart/form-data")
    assert res.status_code == 200
    state = loaded.get("/api/state").get_json()
    assert (state["vector_type"], state["arrow_scale"]) == ("steam", 1.0)


@pytest.mark.parametrize("variable", ["x_bogus", "x", "time"])
def test_timeseries_rejects_unknown_variable(loaded, variable):
    res = loaded.post("/api/timeseries/render",
                      json={"points": [{"x": 2, "z": 0}], "variable": variable})
    assert res.status_code == 400
    assert "Unknown variable" in res.get_json()["error"]
    # the request was rejected before the points were replaced
    assert loaded.get("/api/state").get_json()["points"] == []


def test_csv_rejects_unknown_variable(loaded):
    res = loaded.post("/api/download/timeseries/csv",
                      json={"points": [{"x": 1, "z": -1}], "variable": "bogus"})
    assert res.status_code == 400
    assert "Unknown variable" in res.get_json()["error"]


@pytest.mark.parametrize("body", [{"step": None}, {"index": "two"}])
def test_time_rejects_bad_input(loaded, body):
    res = loaded.post("/api/time", json=body)
    assert res.status_code == 400
    assert "Invalid" in res.get_json()["error"]


def test_settings_are_all_or_nothing(loaded):
    res = loaded.post("/api/settings", json={"variable": "pressure",
                                             "vector_type": "steam",
                                             "arrow_scale": "huge"})
    assert res.status_code == 400
    state = loaded.get("/api/state").get_json()
    assert state["variable"] == "temperature"
    assert state["vector_type"] == "water"
    assert state["arrow_scale"] == -2.0


def test_reset_forgets_session(loaded):
    assert loaded.get("/api/state").get_json()["scalar"] is not None
    assert loaded.post("/api/reset").get_json()["success"]
    assert loaded.get("/api/state").get_json()["scalar"] is None
