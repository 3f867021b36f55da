from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image

from hdrcal.services.filters import HDRFrame, RELATIVE, LUMINANCE_TAG, apply_gamma
from hdrcal.services.image_utils import linear_to_srgb, luminance


def display_mapping(frame: HDRFrame, percentile: float = 99.0, exposure: float = 1.0) -> np.ndarray:
	"""
	Scale relative radiance so the given luminance percentile lands on display
	white, then sRGB-encode. Returns [H,W,3] float in [0,1].
	"""
	data = frame.data if frame.data.ndim == 3 else np.repeat(frame.data[..., np.newaxis], 3, axis=2)
	lum = luminance(data)
	positive = lum[lum > 0]
	white = float(np.percentile(positive, percentile)) if positive.size else 1.0
	scaled = apply_gamma(data, 1.0, exposure / white)
	return np.clip(linear_to_srgb(np.clip(scaled, 0.0, 1.0)), 0.0, 1.0)


def generate_preview(radiance: np.ndarray, out_path: Path, max_w: int = 512) -> str:
	frame = HDRFrame(radiance, {LUMINANCE_TAG: RELATIVE})
	u8 = (display_mapping(frame) * 255.0 + 0.5).astype(np.uint8)
	img = Image.fromarray(u8)
	if img.width > max_w:
		r = max_w / float(img.width)
		img = img.resize((int(img.width * r), max(1, int(img.height * r))), Image.LANCZOS)
	out_path.parent.mkdir(parents=True, exist_ok=True)
	img.save(out_path, format="PNG", optimize=True)
	return str(out_path)
