from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict

import numpy as np

from hdrcal.errors import ConfigurationError
from hdrcal.services.image_utils import srgb_to_linear


logger = logging.getLogger(__name__)

LUMINANCE_TAG = "LUMINANCE"
RELATIVE = "RELATIVE"
ABSOLUTE = "ABSOLUTE"
DISPLAY = "DISPLAY"


@dataclass
class HDRFrame:
	"""Pixel data ([H,W] luminance or [H,W,3] RGB) with its string tags."""
	data: np.ndarray
	tags: Dict[str, str] = field(default_factory=dict)

	@property
	def luminance_type(self):
		return self.tags.get(LUMINANCE_TAG)


def apply_gamma(data: np.ndarray, exponent: float, multiplier: float = 1.0) -> np.ndarray:
	"""(max(v, 0) * multiplier) ** exponent, element-wise."""
	return np.power(np.maximum(data, 0.0) * multiplier, exponent).astype(np.float32)


class GammaFilter:
	"""
	Gamma correction over a stream of frames. gamma > 1 encodes linear data
	for display, gamma < 1 (inverse gamma) linearizes display data. Tag
	sanity checks run on the first frame of the stream only.
	"""

	def __init__(self, gamma: float = 1.0, multiplier: float = 1.0, set_tag: bool = True) -> None:
		if gamma <= 0.0:
			raise ConfigurationError("gamma must be positive")
		self.gamma = gamma
		self.multiplier = multiplier
		self.set_tag = set_tag
		self._first_frame = True

	@classmethod
	def inverse(cls, gamma: float, multiplier: float = 1.0) -> "GammaFilter":
		if gamma <= 0.0:
			raise ConfigurationError("gamma must be positive")
		return cls(1.0 / gamma, multiplier)

	def _check_tags(self, frame: HDRFrame) -> None:
		lum_type = frame.luminance_type
		if lum_type == DISPLAY and self.gamma > 1.0:
			logger.warning("applying gamma correction to a display referred image")
		if lum_type == RELATIVE and self.gamma < 1.0:
			logger.warning("applying inverse gamma correction to a linear luminance or radiance image")
		if lum_type == ABSOLUTE and self.multiplier == 1.0:
			logger.warning("an image should be normalized to 0-1 before applying gamma correction")

	def __call__(self, frame: HDRFrame) -> HDRFrame:
		if self._first_frame:
			self._check_tags(frame)
			self._first_frame = False
		tags = dict(frame.tags)
		if self.set_tag and self.gamma > 1.0:
			tags[LUMINANCE_TAG] = DISPLAY
		elif self.set_tag and self.gamma < 1.0:
			tags[LUMINANCE_TAG] = RELATIVE
		return HDRFrame(apply_gamma(frame.data, 1.0 / self.gamma, self.multiplier), tags)


def apply_absolute(frame: HDRFrame, dest_y: float, src_y: float = 1.0) -> HDRFrame:
	"""
	Rescale relative luminance so that src_y becomes dest_y (e.g. cd/m^2).
	Already absolute frames pass through; display referred RGB is linearized first.
	"""
	if src_y <= 0.0:
		raise ConfigurationError("source luminance level must be positive")
	lum_type = frame.luminance_type
	if lum_type == ABSOLUTE:
		logger.info("luminance is already absolute, skipping frame")
		return frame
	data = frame.data
	if lum_type == DISPLAY:
		if data.ndim != 3:
			raise ConfigurationError("cannot handle gray-level display-referred images")
		logger.info("converting from display-referred to linear luminance")
		data = srgb_to_linear(np.clip(data, 0.0, 1.0))
	scaled = (np.asarray(data, dtype=np.float32) * (dest_y / src_y)).astype(np.float32)
	tags = dict(frame.tags)
	tags[LUMINANCE_TAG] = ABSOLUTE
	return HDRFrame(scaled, tags)
