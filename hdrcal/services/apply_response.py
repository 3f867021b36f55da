from __future__ import annotations

import logging
from typing import Sequence, Tuple

import numpy as np

from hdrcal.errors import ConfigurationError
from hdrcal.services.exposures import ExposureList


logger = logging.getLogger(__name__)


def _check_tables(response: np.ndarray, weights: np.ndarray) -> int:
	M = len(response)
	if M <= 0:
		raise ConfigurationError("empty response curve")
	if len(weights) != M:
		raise ConfigurationError(f"response curve has {M} levels but weights have {len(weights)}")
	return M


def fuse_levels(levels: np.ndarray, times: np.ndarray, response: np.ndarray, weights: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
	"""
	Weighted average of response[level] / t over the exposure axis of levels [N,H,W].
	Pixels where every exposure has zero weight fall back to the single exposure
	whose level is closest to mid-range. Returns (radiance [H,W], saturated mask).
	"""
	M = len(response)
	I = np.asarray(response, dtype=np.float64)[levels]
	w = np.asarray(weights, dtype=np.float64)[levels]
	t = np.asarray(times, dtype=np.float64)[:, np.newaxis, np.newaxis]

	num = np.sum(w * I / t, axis=0)
	den = np.sum(w, axis=0)
	saturated = den <= 0.0

	radiance = np.zeros(levels.shape[1:], dtype=np.float64)
	np.divide(num, den, out=radiance, where=~saturated)

	if np.any(saturated):
		mid = (M - 1) / 2.0
		best = np.argmin(np.abs(levels - mid), axis=0)[np.newaxis]
		best_I = np.take_along_axis(I, best, axis=0)[0]
		best_t = np.asarray(times, dtype=np.float64)[best[0]]
		radiance[saturated] = best_I[saturated] / best_t[saturated]
	return radiance, saturated


def apply_response(exposures: ExposureList, response: np.ndarray, weights: np.ndarray) -> Tuple[np.ndarray, int]:
	"""
	Fuse an exposure list into a radiance map using a known response curve.
	Returns (radiance [H,W] float32, number of saturated pixels).
	"""
	M = _check_tables(response, weights)
	levels = exposures.camera_levels(M)
	radiance, saturated = fuse_levels(levels, exposures.times, response, weights)
	n_saturated = int(np.count_nonzero(saturated))
	if n_saturated:
		logger.warning("%d pixels have no usable exposure, using best-guess values", n_saturated)
	return radiance.astype(np.float32), n_saturated


def apply_response_rgb(
	channels: Sequence[ExposureList],
	responses: Sequence[np.ndarray],
	weights: np.ndarray,
) -> Tuple[np.ndarray, int]:
	"""
	Apply per-channel response curves with one shared weight table.
	Returns (radiance [H,W,3], saturated count averaged over channels).
	"""
	if len(channels) != 3 or len(responses) != 3:
		raise ConfigurationError("RGB fusion needs exactly three channels and three response curves")
	out = []
	total = 0
	for name, exposures, response in zip("RGB", channels, responses):
		logger.info("applying response to %s channel...", name)
		radiance, saturated = apply_response(exposures, response, weights)
		out.append(radiance)
		total += saturated
	shapes = {r.shape for r in out}
	if len(shapes) != 1:
		raise ConfigurationError(f"RGB channels differ in size: {sorted(shapes)}")
	return np.stack(out, axis=-1), total // 3
