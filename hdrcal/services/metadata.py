from __future__ import annotations

import json
import logging
import math
import struct
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
import piexif
from PIL import Image

from hdrcal.services.image_utils import apply_exif_orientation


logger = logging.getLogger(__name__)

# EXIF ISO that counts as unit sensitivity
REFERENCE_ISO = 100.0


def _rational_to_float(x: Any) -> Optional[float]:
	if x is None:
		return None
	if isinstance(x, tuple) and len(x) == 2:
		num, den = x
		if not den:
			return None
		return float(num) / float(den)
	try:
		return float(x)
	except (TypeError, ValueError):
		return None


def apex_to_time(apex: Optional[float]) -> Optional[float]:
	"""APEX time value Tv (also the BV tag of bracket scripts) to seconds."""
	return 2.0 ** (-apex) if apex is not None else None


def _bytes_to_str(v: Any) -> Optional[str]:
	if v is None:
		return None
	if isinstance(v, bytes):
		return v.decode("utf-8", errors="ignore")
	return str(v)


def _to_int_safe(v: Any) -> Optional[int]:
	if v is None:
		return None
	if isinstance(v, (list, tuple)):
		v = v[0] if v else None
	if isinstance(v, bytes):
		v = v.decode("utf-8", errors="ignore").strip() or None
	try:
		return int(v) if v is not None else None
	except (TypeError, ValueError):
		return None


def _read_exif(path: Path) -> Dict[str, Any]:
	try:
		ex = piexif.load(str(path))
	except (piexif.InvalidImageDataError, ValueError, struct.error) as e:
		logger.debug("no EXIF in %s: %s", path.name, e)
		return {}
	exif = ex.get("Exif", {})
	zeroth = ex.get("0th", {})
	exposure = _rational_to_float(exif.get(piexif.ExifIFD.ExposureTime))
	if exposure is None:
		exposure = apex_to_time(_rational_to_float(exif.get(piexif.ExifIFD.ShutterSpeedValue)))
	dt = exif.get(piexif.ExifIFD.DateTimeOriginal) or zeroth.get(piexif.ImageIFD.DateTime)
	return {
		"exposure_time_s": exposure,
		"fnumber": _rational_to_float(exif.get(piexif.ExifIFD.FNumber)),
		"iso": _to_int_safe(exif.get(piexif.ExifIFD.ISOSpeedRatings)),
		"orientation": zeroth.get(piexif.ImageIFD.Orientation),
		"datetime_original": _bytes_to_str(dt),
	}


def extract_metadata(saved_paths: List[Path]) -> Dict[str, Any]:
	records: List[Dict[str, Any]] = []
	for p in saved_paths:
		with Image.open(p) as img:
			img = apply_exif_orientation(img, img.getexif())
			info: Dict[str, Any] = {
				"filename": p.name,
				"width": img.width,
				"height": img.height,
				"mode": img.mode,
				"mean_brightness": float(np.asarray(img.convert("L"), dtype=np.float64).mean()),
			}
		info.update(_read_exif(p))
		records.append(info)
	return {"images": records}


def relative_exposure(record: Dict[str, Any], use_aperture_iso: bool = False) -> Optional[float]:
	"""
	Exposure of one frame in relative units. By default only the exposure time
	counts (aperture and sensitivity assumed equal across the bracket); with
	use_aperture_iso the time is scaled by ISO/100 and 1/N^2.
	"""
	t = record.get("exposure_time_s")
	if t is None or not math.isfinite(t) or t <= 0.0:
		return None
	if use_aperture_iso:
		iso = record.get("iso")
		fnumber = record.get("fnumber")
		if iso:
			t *= float(iso) / REFERENCE_ISO
		if fnumber:
			t /= float(fnumber) ** 2
	return float(t)


def metadata_frame(metadata: Dict[str, Any]) -> pd.DataFrame:
	"""Per-image table ordered by exposure time, frames without one last."""
	columns = ["filename", "width", "height", "exposure_time_s", "fnumber", "iso", "mean_brightness"]
	df = pd.DataFrame(metadata.get("images", []))
	for c in columns:
		if c not in df.columns:
			df[c] = None
	df = df[columns].copy()
	df["exposure_time_s"] = pd.to_numeric(df["exposure_time_s"], errors="coerce")
	df["log2_exposure"] = np.log2(df["exposure_time_s"])
	return df.sort_values("exposure_time_s", kind="stable", na_position="last").reset_index(drop=True)


def write_metadata_json(metadata: Dict[str, Any], out_path: Path) -> str:
	out_path.parent.mkdir(parents=True, exist_ok=True)
	with out_path.open("w", encoding="utf-8") as f:
		json.dump(metadata, f, indent=2)
	return str(out_path)
