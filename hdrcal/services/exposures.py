from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Tuple

import numpy as np

from hdrcal.errors import ConfigurationError


logger = logging.getLogger(__name__)


@dataclass
class Exposure:
	"""One captured frame: camera output levels and the time they were exposed for."""
	exposure_time: float
	pixels: np.ndarray


class ExposureList:
	"""
	Exposures of one static scene, sorted by exposure time (stable, ties keep
	input order). Pixel arrays are referenced, never copied. Exposures with a
	missing, zero or non-finite time are dropped with a warning.
	"""

	def __init__(self, exposures: Iterable[Exposure], min_count: int = 1) -> None:
		kept: List[Exposure] = []
		for e in exposures:
			t = e.exposure_time
			if t is None or not math.isfinite(t) or t <= 0.0:
				logger.warning("skipping exposure with unusable exposure time: %r", t)
				continue
			kept.append(e)
		if len(kept) < min_count:
			raise ConfigurationError(f"at least {min_count} exposure(s) required, got {len(kept)}")

		shapes = {np.shape(e.pixels) for e in kept}
		if len(shapes) != 1:
			raise ConfigurationError(f"exposures differ in size: {sorted(shapes)}")
		shape = next(iter(shapes))
		if len(shape) != 2:
			raise ConfigurationError(f"expected 2D exposures, got shape {shape}")

		self._items = sorted(kept, key=lambda e: e.exposure_time)
		self.shape: Tuple[int, int] = (int(shape[0]), int(shape[1]))

	def __len__(self) -> int:
		return len(self._items)

	def __iter__(self) -> Iterator[Exposure]:
		return iter(self._items)

	def __getitem__(self, index: int) -> Exposure:
		return self._items[index]

	@property
	def times(self) -> np.ndarray:
		return np.array([e.exposure_time for e in self._items], dtype=np.float64)

	def camera_levels(self, M: int) -> np.ndarray:
		"""
		Stack the exposures as integer camera output levels [N,H,W].
		A reading outside [0, M) means the bit depth is configured wrong.
		"""
		if M <= 0:
			raise ConfigurationError(f"number of camera output levels must be positive, got M={M}")
		levels = np.stack([np.asarray(e.pixels) for e in self._items], axis=0)
		if np.issubdtype(levels.dtype, np.floating):
			if not np.all(np.isfinite(levels)):
				raise ConfigurationError("exposure contains non-finite pixel values")
			levels = np.floor(levels)
		levels = levels.astype(np.int64)
		lo = int(levels.min())
		hi = int(levels.max())
		if lo < 0 or hi >= M:
			raise ConfigurationError(
				f"camera output {lo}..{hi} outside 0..{M - 1} (adjust the number of bits per pixel)"
			)
		return levels

	def observed_range(self) -> Tuple[int, int]:
		"""Smallest non-zero and largest camera level over all exposures."""
		stack = np.stack([np.asarray(e.pixels) for e in self._items], axis=0)
		nonzero = stack[stack > 0]
		lo = int(np.floor(nonzero.min())) if nonzero.size else 0
		return lo, int(np.floor(stack.max()))
