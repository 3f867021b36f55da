import pytest
from fastapi.testclient import TestClient

from conftest import BRACKET_TIMES, write_bracket_pngs
from hdrcal.main import create_app


@pytest.fixture
def client(data_dir):
	return TestClient(create_app())


@pytest.fixture
def bracket(tmp_path, scene):
	paths = write_bracket_pngs(tmp_path / "bracket", scene, BRACKET_TIMES)
	return [("files", (p.name, p.read_bytes(), "image/png")) for p in paths]


def _upload(client, files, **form):
	data = {"exposure_times": ",".join(str(t) for t in BRACKET_TIMES)}
	data.update(form)
	return client.post("/calibration/upload", files=files, data=data)


def test_upload_calibrates_and_merges(client, bracket, data_dir):
	resp = _upload(client, bracket, max_iterations="30")
	assert resp.status_code == 200
	body = resp.json()
	job_id = body["job_id"]
	assert body["num_files"] == 3
	assert body["calibrate"] is True

	status = client.get(f"/calibration/status/{job_id}").json()
	assert status["status"] == "completed", status

	result = client.get(f"/calibration/result/{job_id}").json()
	assert result["channels"] == ["R", "G", "B"]
	assert result["calibrated"] is True
	assert result["exposure_times"] == list(BRACKET_TIMES)
	assert result["radiance"].endswith("radiance.hdr")
	assert result["preview"].endswith("preview.png")
	assert (data_dir / "results" / job_id / "response.m").exists()

	curve = client.get(f"/calibration/response/{job_id}")
	assert curve.status_code == 200
	assert curve.text.startswith("# Camera response curve")


def test_upload_with_response_file_skips_calibration(client, bracket):
	first = _upload(client, bracket, luminance="true", max_iterations="10").json()["job_id"]
	response_text = client.get(f"/calibration/response/{first}").content

	files = bracket + [("response_file", ("response.m", response_text, "text/plain"))]
	resp = _upload(client, files, luminance="true", output_format="npy")
	assert resp.status_code == 200
	assert resp.json()["calibrate"] is False
	job_id = resp.json()["job_id"]
	result = client.get(f"/calibration/result/{job_id}").json()
	assert result["calibrated"] is False
	assert result["channels"] == ["Y"]
	assert result["radiance"].endswith("radiance.npy")


def test_invalid_options_are_rejected(client, bracket):
	assert _upload(client, bracket, bpp="4").status_code == 400
	assert _upload(client, bracket, weighting="triangle").status_code == 400
	resp = client.post("/calibration/upload", files=bracket, data={"exposure_times": "1,2"})
	assert resp.status_code == 400
	resp = client.post("/calibration/upload", files=bracket, data={"exposure_times": "1,fast,2"})
	assert resp.status_code == 400


def test_unknown_job(client):
	assert client.get("/calibration/status/nope").json()["status"] == "unknown"
	assert client.get("/calibration/result/nope").json()["message"] == "not completed yet"
	assert client.get("/calibration/response/nope").status_code == 404


def test_failed_job_reports_error(client, bracket):
	# no exposure times and no EXIF leaves nothing to merge
	resp = client.post("/calibration/upload", files=bracket, data={})
	job_id = resp.json()["job_id"]
	status = client.get(f"/calibration/status/{job_id}").json()
	assert status["status"] == "error"
	assert status["error"]
