from __future__ import annotations

import logging

import numpy as np

from hdrcal.errors import ConfigurationError


logger = logging.getLogger(__name__)

# tails beyond SIGMA_CUT*sigma keep a constant weight instead of decaying
SIGMA_CUT = 2.0

# composite regime boundaries, as fractions of [Mmin, Mmax]
DARK_END = 0.25
HIGH_CUT = 0.9
ZERO_GAMMA = 5.2
SLOPE_LINEAR = 0.2
HIGH_SIGMA = (1.0 - HIGH_CUT) * 0.2


def _check_domain(M: int, m_min: int, m_max: int, sigma: float) -> None:
	if M <= 0:
		raise ConfigurationError(f"number of camera output levels must be positive, got M={M}")
	if m_min >= m_max:
		raise ConfigurationError(f"Mmin must be lower than Mmax, got {m_min}..{m_max}")
	if m_min < 0 or m_max > M - 1:
		raise ConfigurationError(f"weight domain {m_min}..{m_max} outside camera range 0..{M - 1}")
	if sigma <= 0.0:
		raise ConfigurationError(f"sigma must be positive, got {sigma}")


def _gaussian(m: np.ndarray, mid: float, sigma: float) -> np.ndarray:
	return np.exp(-((m - mid) ** 2) / (2.0 * sigma * sigma))


def weights_gauss(M: int, m_min: int, m_max: int, sigma: float) -> np.ndarray:
	"""
	Gaussian weights centred between m_min and m_max, sigma in output levels.
	The tails are clamped to the value at SIGMA_CUT*sigma so that strongly
	over- or under-exposed but unclipped readings still contribute. Levels at
	or beyond the domain edges (black and saturation) get zero weight.
	"""
	_check_domain(M, m_min, m_max, sigma)
	m = np.arange(M, dtype=np.float64)
	mid = m_min + (m_max - m_min) / 2.0

	w = _gaussian(m, mid, sigma)
	floor = float(np.exp(-SIGMA_CUT * SIGMA_CUT / 2.0))
	w[np.abs(m - mid) >= SIGMA_CUT * sigma] = floor

	w[m <= m_min] = 0.0
	w[m >= m_max] = 0.0
	logger.debug("gauss weights: Mmin=%d mid=%.1f Mmax=%d M=%d sigma=%.2f", m_min, mid, m_max, M, sigma)
	return w.astype(np.float32)


def weights_composite(M: int, m_min: int, m_max: int, sigma: float) -> np.ndarray:
	"""
	Composite weighting: a steep gamma rise through the dark quarter, Gaussian
	up to mid-range, a gentle linear slope through medium-high values and a
	steep Gaussian fall-off above HIGH_CUT. Pieces meet continuously; only the
	saturation level itself is cut to zero.
	"""
	_check_domain(M, m_min, m_max, sigma)
	m = np.arange(M, dtype=np.float64)
	span = float(m_max - m_min)
	mid = m_min + span / 2.0
	x = (m - m_min) / span

	w = np.zeros(M, dtype=np.float64)

	dark_edge = m_min + DARK_END * span
	dark = (x >= 0.0) & (x < DARK_END)
	w[dark] = _gaussian(np.float64(dark_edge), mid, sigma) * (x[dark] / DARK_END) ** ZERO_GAMMA

	gauss = (x >= DARK_END) & (x <= 0.5)
	w[gauss] = _gaussian(m[gauss], mid, sigma)

	peak = 1.0 + SLOPE_LINEAR
	linear = (x > 0.5) & (x <= HIGH_CUT)
	w[linear] = 1.0 + SLOPE_LINEAR * (x[linear] - 0.5) / (HIGH_CUT - 0.5)

	high = (x > HIGH_CUT) & (x <= 1.0)
	w[high] = peak * np.exp(-((x[high] - HIGH_CUT) ** 2) / (2.0 * HIGH_SIGMA * HIGH_SIGMA))

	w[m >= m_max] = 0.0
	logger.debug("composite weights: Mmin=%d mid=%.1f Mmax=%d M=%d sigma=%.2f", m_min, mid, m_max, M, sigma)
	return w.astype(np.float32)
