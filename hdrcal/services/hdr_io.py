from __future__ import annotations

import logging
import os
from pathlib import Path

import numpy as np

# must be set before OpenCV first touches the EXR codec
os.environ.setdefault("OPENCV_IO_ENABLE_OPENEXR", "1")
import cv2  # noqa: E402


logger = logging.getLogger(__name__)

CV2_EXTS = {".hdr", ".pfm", ".exr"}


def _as_rgb(radiance: np.ndarray) -> np.ndarray:
	if radiance.ndim == 2:
		return np.repeat(radiance[..., np.newaxis], 3, axis=2)
	if radiance.ndim == 3 and radiance.shape[2] == 3:
		return radiance
	raise ValueError(f"expected HxW or HxWx3 radiance, got shape {radiance.shape}")


def write_radiance(radiance: np.ndarray, out_path: Path) -> str:
	"""
	Write a radiance map. .hdr (RGBE), .pfm and .exr go through OpenCV,
	.npy keeps the array as is. Luminance maps are stored as gray RGB.
	"""
	out_path.parent.mkdir(parents=True, exist_ok=True)
	ext = out_path.suffix.lower()
	if ext == ".npy":
		np.save(str(out_path), radiance.astype(np.float32))
		return str(out_path)
	if ext not in CV2_EXTS:
		raise ValueError(f"unsupported radiance format: {ext}")
	rgb = np.ascontiguousarray(_as_rgb(radiance).astype(np.float32))
	if not cv2.imwrite(str(out_path), cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)):
		raise IOError(f"could not write {out_path}")
	logger.info("radiance map saved to %s", out_path)
	return str(out_path)


def read_radiance(path: Path) -> np.ndarray:
	"""Read a radiance map written by write_radiance as float32 [H,W,3] RGB."""
	if path.suffix.lower() == ".npy":
		return _as_rgb(np.load(str(path)).astype(np.float32))
	bgr = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
	if bgr is None:
		raise IOError(f"could not read {path}")
	return cv2.cvtColor(bgr.astype(np.float32), cv2.COLOR_BGR2RGB)
