from __future__ import annotations

import logging
import math
from typing import Optional, TextIO

import numpy as np


logger = logging.getLogger(__name__)

DEFAULT_GAMMA = 2.2
# keeps the gamma curve free of exact zeros, which would read as gaps
GAMMA_FLOOR = 1e-4
# log10 value written for non-positive responses
LOG10_FLOOR = -6.0


def response_linear(M: int) -> np.ndarray:
	m = np.arange(M, dtype=np.float64)
	return (m / max(M - 1, 1)).astype(np.float32)


def response_gamma(M: int, exponent: float = DEFAULT_GAMMA) -> np.ndarray:
	m = np.arange(M, dtype=np.float64)
	return ((m / max(M - 1, 1)) ** exponent + GAMMA_FLOOR).astype(np.float32)


def response_log10(M: int) -> np.ndarray:
	"""Response of a logarithmic camera: every M/16 levels is one decade."""
	m = np.arange(M, dtype=np.float64)
	mid = 0.5 * M
	norm = 0.0625 * M
	return np.power(10.0, (m - mid) / norm).astype(np.float32)


STANDARD_RESPONSES = {
	"linear": response_linear,
	"gamma": response_gamma,
	"log": response_log10,
}


def save_response(fh: TextIO, I: np.ndarray, name: str) -> None:
	"""Write a response curve as an Octave text matrix: log10(I) | level | I."""
	M = len(I)
	fh.write(f"# Camera response curve, channel {name}\n")
	fh.write("# data layout: log10(response) | camera output | response\n")
	fh.write(f"# name: {name}\n")
	fh.write("# type: matrix\n")
	fh.write(f"# rows: {M}\n")
	fh.write("# columns: 3\n")
	for m, value in enumerate(np.asarray(I, dtype=np.float64)):
		log_value = np.log10(value) if value > 0.0 else LOG10_FLOOR
		fh.write(f" {log_value:.9e} {m:4d} {value:.9e}\n")
	fh.write("\n")


def save_weights(fh: TextIO, w: np.ndarray, name: str) -> None:
	M = len(w)
	fh.write("# Weighting function\n")
	fh.write("# data layout: weight | camera output\n")
	fh.write(f"# name: {name}\n")
	fh.write("# type: matrix\n")
	fh.write(f"# rows: {M}\n")
	fh.write("# columns: 2\n")
	for m, value in enumerate(np.asarray(w, dtype=np.float64)):
		fh.write(f" {value:.9e} {m:4d}\n")
	fh.write("\n")


def _read_header_value(fh: TextIO, key: str) -> Optional[int]:
	prefix = f"# {key}:"
	while True:
		line = fh.readline()
		if not line:
			return None
		if line.startswith(prefix):
			try:
				return int(line[len(prefix):].strip())
			except ValueError:
				return None


def _read_matrix(fh: TextIO, M: int, columns: int, level_col: int, value_col: int) -> Optional[np.ndarray]:
	rows = _read_header_value(fh, "rows")
	if rows != M:
		logger.warning("response: number of input levels is different, M=%d m=%s", M, rows)
		return None
	cols = _read_header_value(fh, "columns")
	if cols != columns:
		logger.warning("response: expected %d columns, found %s", columns, cols)
		return None

	out = np.zeros(M, dtype=np.float32)
	seen = np.zeros(M, dtype=bool)
	read = 0
	while read < M:
		line = fh.readline()
		if not line:
			logger.warning("response: file ends after %d of %d rows", read, M)
			return None
		fields = line.split()
		if not fields:
			continue
		if len(fields) != columns:
			logger.warning("response: malformed row %r", line.strip())
			return None
		try:
			m = int(fields[level_col])
			value = float(fields[value_col])
		except ValueError:
			logger.warning("response: malformed row %r", line.strip())
			return None
		if m < 0 or m >= M:
			logger.warning("response: camera value out of range, m=%d", m)
			return None
		if seen[m]:
			logger.warning("response: camera value listed twice, m=%d", m)
			return None
		if not math.isfinite(value):
			logger.warning("response: non-finite value at m=%d", m)
			return None
		seen[m] = True
		out[m] = value
		read += 1
	return out


def load_response(fh: TextIO, M: int) -> Optional[np.ndarray]:
	"""
	Read the next response matrix written by save_response from fh.
	Returns None when the stored length differs from M or the data is malformed.
	"""
	return _read_matrix(fh, M, columns=3, level_col=1, value_col=2)


def load_weights(fh: TextIO, M: int) -> Optional[np.ndarray]:
	return _read_matrix(fh, M, columns=2, level_col=1, value_col=0)


def fill_gaps(I: np.ndarray, w: np.ndarray) -> int:
	"""
	Fill zero entries of a response curve (levels never observed during
	calibration) in place. Interior gaps are linearly interpolated between the
	nearest observed levels, leading/trailing gaps carry the nearest observed
	value. Filled levels get the smallest weight present in w.
	Returns the number of filled entries.
	"""
	if len(I) != len(w):
		raise ValueError("response curve and weights must have the same length")
	gaps = I == 0.0
	n_gaps = int(np.count_nonzero(gaps))
	if n_gaps == 0:
		return 0
	known = np.flatnonzero(~gaps)
	if known.size == 0:
		logger.warning("response curve has no observed levels, nothing to interpolate from")
		return 0

	min_weight = float(np.min(w))
	levels = np.arange(len(I))
	I[gaps] = np.interp(levels[gaps], known, I[known].astype(np.float64))
	w[gaps] = min_weight
	return n_gaps
