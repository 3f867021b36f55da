from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from hdrcal.config import CalibrationOptions, get_settings
from hdrcal.errors import ConfigurationError
from hdrcal.services.alignment import align_levels, write_transforms
from hdrcal.services.calibration import load_calibration, merge_exposures, save_calibration
from hdrcal.services.hdr_io import write_radiance
from hdrcal.services.metadata import extract_metadata, metadata_frame, relative_exposure, write_metadata_json
from hdrcal.services.normalization import build_exposure_lists, load_levels
from hdrcal.services.previews import generate_preview
from hdrcal.services.status_store import update_status, write_status


logger = logging.getLogger(__name__)

RESPONSE_FILENAME = "response.m"


def resolve_exposure_times(records: List[Dict[str, Any]], supplied: Optional[List[float]], use_aperture_iso: bool) -> List[Optional[float]]:
	"""User supplied times win over EXIF; both are in upload order."""
	if supplied:
		if len(supplied) != len(records):
			raise ConfigurationError(f"{len(supplied)} exposure times given for {len(records)} images")
		return [float(t) for t in supplied]
	return [relative_exposure(r, use_aperture_iso) for r in records]


def run_pipeline(
	job_id: str,
	files_meta: List[Dict[str, Any]],
	options: CalibrationOptions,
	exposure_times: Optional[List[float]] = None,
	response_data: Optional[bytes] = None,
) -> None:
	settings = get_settings()
	try:
		# 1) Save originals
		update_status(job_id, status="saving", step="Save Images")
		in_dir = settings.input_dir / job_id
		in_dir.mkdir(parents=True, exist_ok=True)
		saved: List[Path] = []
		for fm in files_meta:
			p = in_dir / Path(fm["filename"]).name
			p.write_bytes(fm["data"])
			saved.append(p)
		response_path: Optional[Path] = None
		if response_data is not None:
			response_path = in_dir / RESPONSE_FILENAME
			response_path.write_bytes(response_data)

		# 2) Metadata and exposure table
		update_status(job_id, status="metadata", step="Extract Metadata")
		metadata = extract_metadata(saved)
		metadata_path = write_metadata_json(metadata, in_dir / "metadata.json")
		table = metadata_frame(metadata)
		table_path = in_dir / "exposures.csv"
		table.to_csv(table_path, index=False)

		# 3) Exposure times and validation
		records = metadata.get("images", [])
		times = resolve_exposure_times(records, exposure_times, options.use_aperture_iso)
		usable = [t for t in times if t is not None and t > 0]
		order = sorted(range(len(saved)), key=lambda i: float("inf") if times[i] is None else times[i])
		update_status(
			job_id,
			status="validated",
			step="Validate Inputs",
			metadata=metadata_path,
			exposure_table=str(table_path),
			exposure_times=times,
			proposed_order=[saved[i].name for i in order],
			usable_exposures=len(usable),
		)

		# 4) Camera output levels
		update_status(job_id, status="loading", step="Load Exposures")
		images = load_levels(saved, options.bpp)

		# 5) Optional MTB alignment onto the middle exposure
		if options.align and len(images) > 1:
			update_status(job_id, status="aligning", step="Align Images (MTB)")
			exposed = [i for i in order if times[i] is not None]
			ref_index = exposed[len(exposed) // 2] if exposed else len(images) // 2
			images, shifts = align_levels(images, ref_index)
			transforms = write_transforms(
				job_id, [p.name for p in saved], ref_index, shifts, settings.aligned_dir / job_id / "transforms.json"
			)
			update_status(job_id, transforms=transforms)

		channels = build_exposure_lists(images, times, options.luminance)

		# 6) Calibrate and merge
		update_status(job_id, status="merging", step="Calibrate and Merge" if options.calibrate else "Merge")
		calibration = None
		if response_path is not None:
			calibration = load_calibration(response_path, list(channels), options.levels)
		result = merge_exposures(channels, options, calibration)

		# 7) Outputs
		out_dir = settings.results_dir / job_id
		response_out = save_calibration(out_dir / RESPONSE_FILENAME, result.responses, result.weights)
		radiance_out = write_radiance(result.radiance, out_dir / f"radiance.{options.output_format}")
		preview_out = generate_preview(result.radiance, out_dir / "preview.png")

		update_status(
			job_id,
			status="completed",
			step="Done",
			response=response_out,
			radiance=radiance_out,
			preview=preview_out,
			saturated_pixels=result.saturated,
			calibrated=result.calibrated,
			converged=result.converged,
			filled_levels=result.filled,
			channels=list(channels),
		)
	except Exception as e:
		logger.exception("job %s failed", job_id)
		write_status(job_id, {"job_id": job_id, "status": "error", "error": str(e)})
