from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import cv2
import numpy as np
from PIL import Image

from hdrcal.errors import ConfigurationError
from hdrcal.services.exposures import Exposure, ExposureList
from hdrcal.services.image_utils import apply_exif_orientation, exif_orientation, luminance, orient_array


logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp"}
HIGH_DEPTH_EXTS = {".png", ".tif", ".tiff"}


def list_image_files(folder: Path) -> List[Path]:
	return sorted([p for p in folder.iterdir() if p.is_file() and p.suffix.lower() in SUPPORTED_IMAGE_EXTS])


def _read_high_depth(p: Path) -> Optional[np.ndarray]:
	arr = cv2.imread(str(p), cv2.IMREAD_UNCHANGED)
	if arr is None or arr.dtype != np.uint16:
		return None
	if arr.ndim == 2:
		arr = np.repeat(arr[..., np.newaxis], 3, axis=2)
	else:
		arr = cv2.cvtColor(arr[..., :3], cv2.COLOR_BGR2RGB)
	with Image.open(p) as img:
		orientation = exif_orientation(img)
	return orient_array(arr, orientation)


def read_image(p: Path) -> np.ndarray:
	"""
	Read an image as [H,W,3] float in [0,1], EXIF orientation applied.
	16-bit PNG/TIFF keep their full depth.
	"""
	if p.suffix.lower() in HIGH_DEPTH_EXTS:
		arr16 = _read_high_depth(p)
		if arr16 is not None:
			return arr16.astype(np.float64) / 65535.0
	with Image.open(p) as img:
		img = apply_exif_orientation(img, img.getexif())
		if img.mode.startswith("I;16") or img.mode == "I":
			gray = np.asarray(img).astype(np.float64) / 65535.0
			return np.repeat(gray[..., np.newaxis], 3, axis=2)
		if img.mode != "RGB":
			img = img.convert("RGB")
		return np.asarray(img).astype(np.float64) / 255.0


def to_levels(arr: np.ndarray, bpp: int) -> np.ndarray:
	"""Map [0,1] data onto integer camera output levels 0..2**bpp-1."""
	multiplier = float((1 << bpp) - 1)
	return np.clip(np.rint(arr * multiplier), 0, multiplier).astype(np.int64)


def load_levels(paths: Sequence[Path], bpp: int) -> List[np.ndarray]:
	images = []
	for p in paths:
		levels = to_levels(read_image(p), bpp)
		logger.debug("%s: %dx%d levels %d..%d", p.name, levels.shape[1], levels.shape[0], levels.min(), levels.max())
		images.append(levels)
	sizes = {img.shape for img in images}
	if len(sizes) != 1:
		raise ConfigurationError(f"bracket images differ in size: {sorted(s[:2] for s in sizes)}")
	return images


def build_exposure_lists(images: Sequence[np.ndarray], times: Sequence[Optional[float]], luminance_only: bool) -> Dict[str, ExposureList]:
	"""
	Split RGB level images into exposure lists, {"Y": ...} in luminance mode or
	{"R": ..., "G": ..., "B": ...} otherwise. Frames without a usable exposure
	time are dropped by ExposureList.
	"""
	if len(images) != len(times):
		raise ConfigurationError(f"{len(images)} images but {len(times)} exposure times")
	if luminance_only:
		channels = {"Y": [np.rint(luminance(img)).astype(np.int64) for img in images]}
	else:
		channels = {name: [img[..., c] for img in images] for c, name in enumerate("RGB")}
	return {
		name: ExposureList(Exposure(exposure_time=t, pixels=px) for t, px in zip(times, planes))
		for name, planes in channels.items()
	}
