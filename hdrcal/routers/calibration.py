from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse

from hdrcal.config import CalibrationOptions
from hdrcal.errors import ConfigurationError
from hdrcal.services.status_store import read_status, write_status
from hdrcal.services.upload_pipeline import run_pipeline


router = APIRouter(prefix="/calibration", tags=["calibration"])


def _slugify(text: str) -> str:
	return "".join(ch if (ch.isalnum() or ch in ("-", "_")) else "-" for ch in text).strip("-_").lower()


def _parse_times(text: str) -> Optional[List[float]]:
	text = text.strip()
	if not text:
		return None
	try:
		return [float(t) for t in text.replace(";", ",").split(",") if t.strip()]
	except ValueError:
		raise HTTPException(status_code=400, detail=f"invalid exposure times: {text!r}")


@router.post("/upload", summary="Upload a bracket and start calibration / HDR merge in the background")
async def upload(
	background_tasks: BackgroundTasks,
	files: List[UploadFile] = File(...),
	exposure_times: str = Form(""),
	response_file: Optional[UploadFile] = File(None),
	bpp: int = Form(8),
	luminance: bool = Form(False),
	weighting: str = Form("composite"),
	sigma: float = Form(0.2),
	response: str = Form("linear"),
	calibrate: bool = Form(True),
	min_response: Optional[int] = Form(None),
	max_response: Optional[int] = Form(None),
	max_iterations: int = Form(100),
	epsilon: float = Form(1e-5),
	fill_gaps: bool = Form(False),
	align: bool = Form(False),
	use_aperture_iso: bool = Form(False),
	output_format: str = Form("hdr"),
):
	try:
		options = CalibrationOptions(
			bpp=bpp,
			luminance=luminance,
			weighting=weighting,
			sigma=sigma,
			response=response,
			calibrate=calibrate and response_file is None,
			min_response=min_response,
			max_response=max_response,
			max_iterations=max_iterations,
			epsilon=epsilon,
			fill_gaps=fill_gaps,
			align=align,
			use_aperture_iso=use_aperture_iso,
			output_format=output_format,
		)
	except ConfigurationError as e:
		raise HTTPException(status_code=400, detail=str(e))
	times = _parse_times(exposure_times)
	if times is not None and len(times) != len(files):
		raise HTTPException(status_code=400, detail=f"{len(times)} exposure times given for {len(files)} images")

	files_meta = []
	for f in files:
		data = await f.read()
		files_meta.append({"filename": f.filename or "image.jpg", "data": data})
	response_data = await response_file.read() if response_file is not None else None

	filenames = [m["filename"] for m in files_meta]
	first_stem = _slugify(Path(filenames[0]).stem) if filenames else "job"
	date_str = datetime.now().strftime("%d%m%Y")
	job_id = f"{first_stem}_{date_str}_{uuid.uuid4().hex[:6]}"
	write_status(job_id, {"job_id": job_id, "status": "queued", "step": "Queued"})
	background_tasks.add_task(run_pipeline, job_id, files_meta, options, times, response_data)
	return {
		"job_id": job_id,
		"status": "queued",
		"num_files": len(files_meta),
		"filenames": filenames,
		"calibrate": options.calibrate,
		"status_endpoint": f"/calibration/status/{job_id}",
		"result_endpoint": f"/calibration/result/{job_id}",
		"response_endpoint": f"/calibration/response/{job_id}",
	}


@router.get("/status/{job_id}", summary="Get job status")
def status(job_id: str):
	return read_status(job_id)


@router.get("/result/{job_id}", summary="Get calibration and merge results")
def result(job_id: str):
	data = read_status(job_id)
	if data.get("status") != "completed":
		return {"job_id": job_id, "status": data.get("status"), "message": "not completed yet"}
	return {
		"job_id": job_id,
		"metadata": data.get("metadata"),
		"exposure_times": data.get("exposure_times", []),
		"proposed_order": data.get("proposed_order", []),
		"channels": data.get("channels", []),
		"radiance": data.get("radiance"),
		"preview": data.get("preview"),
		"response": data.get("response"),
		"saturated_pixels": data.get("saturated_pixels", 0),
		"calibrated": data.get("calibrated"),
		"converged": data.get("converged"),
		"filled_levels": data.get("filled_levels", 0),
	}


@router.get("/response/{job_id}", summary="Download the response curve file of a finished job")
def response_curve(job_id: str):
	data = read_status(job_id)
	path = data.get("response")
	if data.get("status") != "completed" or not path or not Path(path).exists():
		raise HTTPException(status_code=404, detail="response curve not available")
	return FileResponse(path, media_type="text/plain", filename=f"{job_id}_response.m")
