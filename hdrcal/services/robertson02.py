from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from hdrcal.errors import ConfigurationError
from hdrcal.services.apply_response import fuse_levels
from hdrcal.services.exposures import ExposureList


logger = logging.getLogger(__name__)

# iteration cap after which a local minimum is accepted
MAX_ITERATIONS = 100
# mean squared change of the normalized curve that counts as converged
MAX_DELTA = 1e-5
# median filter windows processed per step while smoothing
SMOOTH_CHUNK = 4096


@dataclass
class ConvergenceCriteria:
	max_iterations: int = MAX_ITERATIONS
	epsilon: float = MAX_DELTA

	def converged(self, delta: float) -> bool:
		return delta < self.epsilon

	def exhausted(self, iteration: int) -> bool:
		return iteration >= self.max_iterations


@dataclass
class CalibrationResult:
	radiance: np.ndarray
	response: np.ndarray
	saturated: int
	iterations: int
	converged: bool
	coverage: float


@dataclass
class RGBCalibrationResult:
	radiance: np.ndarray
	responses: List[np.ndarray]
	saturated: int
	converged: bool


def _anchor_level(counts: np.ndarray) -> int:
	observed = np.flatnonzero(counts)
	lo, hi = int(observed[0]), int(observed[-1])
	mid = lo + (hi - lo) // 2
	return int(observed[observed >= mid][0])


def smooth_response(I: np.ndarray, observed: np.ndarray) -> None:
	"""
	Median filter the observed levels of I in place, half-width M // 256.
	Neighbours are taken along the observed levels only, so sparse data is not
	pulled towards stale values of unobserved levels; the outermost observed
	levels are left as they are.
	"""
	half = len(I) // 256
	idx = np.flatnonzero(observed)
	if half == 0 or idx.size < 2 * half + 1:
		return
	windows = sliding_window_view(I[idx], 2 * half + 1)
	filtered = np.empty(len(windows), dtype=I.dtype)
	# np.median copies its input; bound the copy to SMOOTH_CHUNK windows
	for start in range(0, len(windows), SMOOTH_CHUNK):
		filtered[start:start + SMOOTH_CHUNK] = np.median(windows[start:start + SMOOTH_CHUNK], axis=1)
	I[idx[half:idx.size - half]] = filtered


def normalize_response(I: np.ndarray, observed: np.ndarray, anchor: int, reference: float = 1.0) -> float:
	"""
	Smooth I and rescale it so that I[anchor] == reference. The joint estimate
	is only defined up to scale; pinning one level removes that freedom.
	Returns the scale the curve was divided by (0 if the anchor is empty).
	"""
	smooth_response(I, observed)
	scale = float(I[anchor])
	if scale != 0.0 and math.isfinite(scale):
		I *= reference / scale
	return scale


def _reestimate(levels: np.ndarray, times: np.ndarray, radiance: np.ndarray, I: np.ndarray, counts: np.ndarray) -> None:
	N = levels.shape[0]
	flat = levels.reshape(N, -1)
	products = times[:, np.newaxis] * radiance.reshape(1, -1)
	sums = np.bincount(flat.ravel(), weights=products.ravel(), minlength=len(I))
	observed = counts > 0
	# unobserved levels keep their previous value until gap filling
	I[observed] = sums[observed] / counts[observed]


def calibrate_response(
	exposures: ExposureList,
	response: np.ndarray,
	weights: np.ndarray,
	criteria: Optional[ConvergenceCriteria] = None,
	reference: float = 1.0,
) -> CalibrationResult:
	"""
	Robertson et al. (2002) self-calibration: alternate weighted fusion of the
	radiance map with per-level re-estimation of the response curve until the
	curve stops changing or the iteration cap is hit.

	response is the initial guess and is not modified; the estimated curve is
	returned in the result, anchored so that the middle observed level maps to
	reference. result.saturated counts pixels without any usable exposure.
	"""
	if criteria is None:
		criteria = ConvergenceCriteria()
	if len(exposures) < 2:
		raise ConfigurationError("at least two exposures are required for calibration")
	M = len(response)
	if len(weights) != M:
		raise ConfigurationError(f"response curve has {M} levels but weights have {len(weights)}")

	levels = exposures.camera_levels(M)
	times = exposures.times
	counts = np.bincount(levels.ravel(), minlength=M)
	anchor = _anchor_level(counts)
	observed = counts > 0

	I = np.asarray(response, dtype=np.float64).copy()
	normalize_response(I, observed, anchor, reference)
	radiance, saturated = fuse_levels(levels, times, I, weights)
	prev = I.copy()

	iteration = 0
	converged = False
	coverage = 0.0
	while True:
		iteration += 1
		_reestimate(levels, times, radiance, I, counts)
		normalize_response(I, observed, anchor, reference)
		radiance, saturated = fuse_levels(levels, times, I, weights)

		hits = observed & (I != 0.0)
		n_hits = int(np.count_nonzero(hits))
		delta = float(np.mean((I[hits] - prev[hits]) ** 2)) if n_hits else 0.0
		prev[:] = I
		coverage = 100.0 * n_hits / M
		logger.info(" #%d delta=%g (coverage: %d%%)", iteration, delta, int(coverage))

		if not math.isfinite(delta):
			logger.warning("algorithm failed to converge, too noisy data in range")
			break
		if criteria.converged(delta):
			converged = True
			logger.info(" #%d delta=%g <- converged", iteration, delta)
			break
		if criteria.exhausted(iteration):
			logger.warning("algorithm failed to converge after %d iterations, too noisy data in range", iteration)
			break

	n_saturated = int(np.count_nonzero(saturated))
	if n_saturated:
		logger.warning("%d pixels have no usable exposure", n_saturated)
	return CalibrationResult(
		radiance=radiance.astype(np.float32),
		response=I.astype(np.float32),
		saturated=n_saturated,
		iterations=iteration,
		converged=converged,
		coverage=coverage,
	)


def calibrate_response_rgb(
	channels: Sequence[ExposureList],
	responses: Sequence[np.ndarray],
	weights: np.ndarray,
	criteria: Optional[ConvergenceCriteria] = None,
	reference: float = 1.0,
) -> RGBCalibrationResult:
	"""
	Calibrate R, G and B independently against the same exposure times and the
	same weight table. The saturated count is the per-channel average.
	"""
	if len(channels) != 3 or len(responses) != 3:
		raise ConfigurationError("RGB calibration needs exactly three channels and three initial responses")
	results = []
	for name, exposures, response in zip("RGB", channels, responses):
		logger.info("recovering %s channel...", name)
		results.append(calibrate_response(exposures, response, weights, criteria, reference))
	return RGBCalibrationResult(
		radiance=np.stack([r.radiance for r in results], axis=-1),
		responses=[r.response for r in results],
		saturated=sum(r.saturated for r in results) // 3,
		converged=all(r.converged for r in results),
	)
