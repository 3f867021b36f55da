from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import cv2
import numpy as np

from hdrcal.services.image_utils import luminance


logger = logging.getLogger(__name__)


@dataclass
class ShiftResult:
	dx: int
	dy: int
	level_costs: List[int]
	overlap_ratio: float


def _to_gray(levels: np.ndarray) -> np.ndarray:
	"""Luminance of an [H,W,3] level image scaled to [0,1] by its own maximum."""
	gray = luminance(levels).astype(np.float32)
	peak = float(gray.max())
	return gray / peak if peak > 0 else gray


def _build_mtb(gray: np.ndarray, exclude_band: float = 0.02) -> Tuple[np.ndarray, np.ndarray]:
	"""
	Median Threshold Bitmap and exclusion mask of a gray image in [0,1].
	Both are uint8 {0,1}; excluded pixels sit too close to the median to trust.
	"""
	median = float(np.median(gray))
	bitmap = (gray > median).astype(np.uint8)
	excl = (np.abs(gray - median) < float(exclude_band)).astype(np.uint8)
	return bitmap, excl


def _pyramid_from_gray(gray: np.ndarray, max_levels: int = 5, min_size: int = 32, exclude_band: float = 0.02) -> List[Tuple[np.ndarray, np.ndarray]]:
	# finest (level 0) to coarsest (last)
	levels: List[Tuple[np.ndarray, np.ndarray]] = []
	g = gray.astype(np.float32)
	while True:
		levels.append(_build_mtb(g, exclude_band=exclude_band))
		h, w = g.shape[:2]
		if len(levels) >= max_levels or min(h, w) // 2 < min_size:
			break
		g = cv2.pyrDown(g)
	return levels


def _mismatch_cost(b_ref: np.ndarray, e_ref: np.ndarray, b_mov: np.ndarray, e_mov: np.ndarray, dx: int, dy: int) -> Tuple[int, float]:
	"""XOR mismatch between reference and shifted moving bitmap outside excluded pixels, plus overlap ratio."""
	h, w = b_ref.shape[:2]
	xr0 = max(0, dx)
	yr0 = max(0, dy)
	xm0 = max(0, -dx)
	ym0 = max(0, -dy)
	width = min(w - xr0, w - xm0)
	height = min(h - yr0, h - ym0)
	if width <= 0 or height <= 0:
		return 10**12, 0.0
	br = b_ref[yr0:yr0 + height, xr0:xr0 + width]
	er = e_ref[yr0:yr0 + height, xr0:xr0 + width]
	bm = b_mov[ym0:ym0 + height, xm0:xm0 + width]
	em = e_mov[ym0:ym0 + height, xm0:xm0 + width]
	mask = 1 - np.minimum(1, er + em)
	xor = cv2.bitwise_xor(br, bm)
	mism = int(cv2.countNonZero(xor & mask))
	overlap = float(width * height) / float(w * h)
	return mism, overlap


def estimate_translation_mtb(
	ref_gray: np.ndarray,
	mov_gray: np.ndarray,
	max_levels: int = 5,
	base_radius: int = 4,
	exclude_band: float = 0.02,
	min_size: int = 32,
) -> ShiftResult:
	"""Integer translation (dx, dy) that maps mov_gray onto ref_gray, coarse-to-fine MTB search."""
	ref_pyr = _pyramid_from_gray(ref_gray, max_levels=max_levels, min_size=min_size, exclude_band=exclude_band)
	mov_pyr = _pyramid_from_gray(mov_gray, max_levels=max_levels, min_size=min_size, exclude_band=exclude_band)
	L = min(len(ref_pyr), len(mov_pyr))

	ox = 0
	oy = 0
	level_costs: List[int] = []
	overlap_final = 0.0

	for li in range(L - 1, -1, -1):
		b_ref, e_ref = ref_pyr[li]
		b_mov, e_mov = mov_pyr[li]
		if li != L - 1:
			ox *= 2
			oy *= 2
		radius = max(1, int(round(base_radius / max(1, 2 ** (L - 1 - li)))))

		best_cost = 10**12
		best_dx = ox
		best_dy = oy
		for dy in range(oy - radius, oy + radius + 1):
			for dx in range(ox - radius, ox + radius + 1):
				cost, _ = _mismatch_cost(b_ref, e_ref, b_mov, e_mov, dx, dy)
				if cost < best_cost:
					best_cost = cost
					best_dx = dx
					best_dy = dy
		ox, oy = best_dx, best_dy
		level_costs.append(best_cost)
		if li == 0:
			_, overlap_final = _mismatch_cost(b_ref, e_ref, b_mov, e_mov, ox, oy)

	return ShiftResult(dx=int(ox), dy=int(oy), level_costs=level_costs, overlap_ratio=overlap_final)


def _shift_levels(levels: np.ndarray, dx: int, dy: int) -> np.ndarray:
	# nearest neighbour keeps camera levels discrete
	h, w = levels.shape[:2]
	M = np.array([[1, 0, float(dx)], [0, 1, float(dy)]], dtype=np.float32)
	warped = cv2.warpAffine(levels.astype(np.float32), M, (w, h), flags=cv2.INTER_NEAREST, borderMode=cv2.BORDER_REFLECT)
	return np.rint(warped).astype(levels.dtype)


def align_levels(images: Sequence[np.ndarray], ref_index: int) -> Tuple[List[np.ndarray], List[ShiftResult]]:
	"""
	Translate every level image of a bracket onto images[ref_index].
	Median threshold bitmaps do not depend on exposure, so frames of different
	brightness can be compared directly.
	"""
	grays = [_to_gray(img) for img in images]
	aligned: List[np.ndarray] = []
	shifts: List[ShiftResult] = []
	for idx, (img, gray) in enumerate(zip(images, grays)):
		if idx == ref_index:
			shift = ShiftResult(dx=0, dy=0, level_costs=[0], overlap_ratio=1.0)
			aligned.append(img)
		else:
			shift = estimate_translation_mtb(grays[ref_index], gray)
			aligned.append(_shift_levels(img, shift.dx, shift.dy))
		logger.info("frame #%d shift dx=%d dy=%d overlap=%.3f", idx, shift.dx, shift.dy, shift.overlap_ratio)
		shifts.append(shift)
	return aligned, shifts


def write_transforms(job_id: str, names: Sequence[str], ref_index: int, shifts: Sequence[ShiftResult], out_path: Path) -> str:
	transforms: Dict[str, object] = {
		"job_id": job_id,
		"reference_index": int(ref_index),
		"reference": names[ref_index],
		"frames": [
			{
				"index": int(idx),
				"filename": name,
				"dx": int(shift.dx),
				"dy": int(shift.dy),
				"pyramid_costs": [int(c) for c in shift.level_costs],
				"overlap_ratio": float(shift.overlap_ratio),
			}
			for idx, (name, shift) in enumerate(zip(names, shifts))
		],
	}
	out_path.parent.mkdir(parents=True, exist_ok=True)
	with out_path.open("w", encoding="utf-8") as f:
		json.dump(transforms, f, indent=2)
	return str(out_path)
