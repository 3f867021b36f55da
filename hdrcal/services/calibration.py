from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from hdrcal.config import CalibrationOptions
from hdrcal.errors import ConfigurationError, ResponseFileError
from hdrcal.services.apply_response import apply_response, apply_response_rgb
from hdrcal.services.exposures import ExposureList
from hdrcal.services.responses import STANDARD_RESPONSES, fill_gaps, load_response, load_weights, save_response, save_weights
from hdrcal.services.robertson02 import ConvergenceCriteria, calibrate_response, calibrate_response_rgb
from hdrcal.services.weights import weights_composite, weights_gauss


logger = logging.getLogger(__name__)

WEIGHTS_NAME = "W"


@dataclass
class MergeResult:
	radiance: np.ndarray
	responses: Dict[str, np.ndarray]
	weights: np.ndarray
	saturated: int
	calibrated: bool
	converged: Optional[bool]
	filled: int


def response_name(channel: str) -> str:
	return f"I{channel}"


def weight_range(channels: Dict[str, ExposureList], options: CalibrationOptions) -> Tuple[int, int]:
	"""Weight domain: explicit options win, otherwise the observed non-zero extremes."""
	ranges = [exposures.observed_range() for exposures in channels.values()]
	m_min = options.min_response if options.min_response is not None else min(lo for lo, _ in ranges)
	m_max = options.max_response if options.max_response is not None else max(hi for _, hi in ranges)
	if m_max >= options.levels:
		raise ConfigurationError(
			"input value higher than defined number of input levels (adjust the number of bits per pixel)"
		)
	if m_min >= m_max:
		raise ConfigurationError(f"camera response range is empty: min={m_min} max={m_max}")
	logger.info("camera response range: min=%d max=%d", m_min, m_max)
	return m_min, m_max


def build_weights(options: CalibrationOptions, m_min: int, m_max: int) -> np.ndarray:
	M = options.levels
	sigma = options.sigma * (M - 1)
	if options.weighting == "gauss":
		return weights_gauss(M, m_min, m_max, sigma)
	return weights_composite(M, m_min, m_max, sigma)


def initial_responses(options: CalibrationOptions, names: Sequence[str]) -> Dict[str, np.ndarray]:
	logger.info("initial response: %s", options.response)
	make = STANDARD_RESPONSES[options.response]
	return {name: make(options.levels) for name in names}


def save_calibration(path: Path, responses: Dict[str, np.ndarray], weights: np.ndarray) -> str:
	"""Response matrices (IY, or IR IG IB) followed by the weight matrix, one text file."""
	path.parent.mkdir(parents=True, exist_ok=True)
	with path.open("w", encoding="utf-8") as fh:
		for channel, curve in responses.items():
			save_response(fh, curve, response_name(channel))
		save_weights(fh, weights, WEIGHTS_NAME)
	logger.info("response curve saved to %s", path)
	return str(path)


def load_calibration(path: Path, names: Sequence[str], M: int) -> Tuple[Dict[str, np.ndarray], np.ndarray]:
	responses: Dict[str, np.ndarray] = {}
	try:
		with path.open("r", encoding="utf-8") as fh:
			for name in names:
				curve = load_response(fh, M)
				if curve is None:
					raise ResponseFileError(f"could not load response curve {response_name(name)} from {path}")
				responses[name] = curve
			weights = load_weights(fh, M)
	except (OSError, UnicodeDecodeError) as e:
		raise ResponseFileError(f"could not read response file {path}: {e}") from e
	if weights is None:
		raise ResponseFileError(f"could not load weighting function from {path}")
	return responses, weights


def merge_exposures(
	channels: Dict[str, ExposureList],
	options: CalibrationOptions,
	calibration: Optional[Tuple[Dict[str, np.ndarray], np.ndarray]] = None,
) -> MergeResult:
	"""
	Calibrate (unless a calibration is given or options.calibrate is off) and
	fuse the exposures. channels is {"Y": ...} or {"R": ..., "G": ..., "B": ...}.
	"""
	names = list(channels)
	rgb = names == ["R", "G", "B"]
	if not rgb and names != ["Y"]:
		raise ConfigurationError(f"expected Y or R, G, B channels, got {names}")

	if calibration is not None:
		responses = {name: np.array(calibration[0][name], dtype=np.float32) for name in names}
		weights = np.array(calibration[1], dtype=np.float32)
		do_calibrate = False
		logger.info("response curve from file")
	else:
		weights = build_weights(options, *weight_range(channels, options))
		responses = initial_responses(options, names)
		do_calibrate = options.calibrate

	converged: Optional[bool] = None
	if do_calibrate:
		criteria = ConvergenceCriteria(max_iterations=options.max_iterations, epsilon=options.epsilon)
		logger.info("automatic self-calibration method: robertson")
		if rgb:
			result = calibrate_response_rgb([channels[n] for n in names], [responses[n] for n in names], weights, criteria)
			responses = dict(zip(names, result.responses))
			converged = result.converged
		else:
			result_y = calibrate_response(channels["Y"], responses["Y"], weights, criteria)
			responses = {"Y": result_y.response}
			converged = result_y.converged
	else:
		logger.info("self-calibration disabled")

	filled = 0
	if options.fill_gaps:
		for name in names:
			filled += fill_gaps(responses[name], weights)
		logger.info("interpolated %.1f%% of the response curve", 100.0 * filled / (len(names) * options.levels))

	if rgb:
		radiance, saturated = apply_response_rgb([channels[n] for n in names], [responses[n] for n in names], weights)
	else:
		radiance, saturated = apply_response(channels["Y"], responses["Y"], weights)

	if saturated:
		h, w = channels[names[0]].shape
		perc = math.ceil(100.0 * saturated / (h * w))
		logger.warning("saturated pixels found in %d%% of the image!", perc)

	return MergeResult(
		radiance=radiance,
		responses=responses,
		weights=weights,
		saturated=saturated,
		calibrated=do_calibrate,
		converged=converged,
		filled=filled,
	)
