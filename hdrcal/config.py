from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from hdrcal.errors import ConfigurationError


WEIGHTINGS = ("composite", "gauss")
RESPONSES = ("linear", "gamma", "log")
OUTPUT_FORMATS = ("hdr", "pfm", "exr", "npy")


@dataclass
class Settings:
	data_dir: Path

	@property
	def input_dir(self) -> Path:
		return self.data_dir / "input"

	@property
	def aligned_dir(self) -> Path:
		return self.data_dir / "aligned"

	@property
	def results_dir(self) -> Path:
		return self.data_dir / "results"

	@property
	def jobs_dir(self) -> Path:
		return self.data_dir / "jobs"


def get_settings() -> Settings:
	# read on every call so tests and deployments can move the data root
	return Settings(data_dir=Path(os.environ.get("HDRCAL_DATA_DIR", "data")))


@dataclass
class CalibrationOptions:
	"""
	Plain configuration values injected into the calibration entry points.
	sigma is relative to the camera output range and gets scaled by M-1.
	"""
	bpp: int = 8
	luminance: bool = False
	weighting: str = "composite"
	sigma: float = 0.2
	response: str = "linear"
	calibrate: bool = True
	min_response: Optional[int] = None
	max_response: Optional[int] = None
	max_iterations: int = 100
	epsilon: float = 1e-5
	fill_gaps: bool = False
	align: bool = False
	use_aperture_iso: bool = False
	output_format: str = "hdr"

	def __post_init__(self) -> None:
		if self.bpp < 8 or self.bpp > 16:
			raise ConfigurationError("bits per pixel out of range, accepted range 8..16")
		if not (0.0 < self.sigma <= 1.0):
			raise ConfigurationError("sigma value for Gaussian out of range, accepted range 0:1")
		if self.weighting not in WEIGHTINGS:
			raise ConfigurationError(f"unknown weighting function: {self.weighting}")
		if self.response not in RESPONSES:
			raise ConfigurationError(f"unknown standard response: {self.response}")
		if self.output_format not in OUTPUT_FORMATS:
			raise ConfigurationError(f"unsupported output format: {self.output_format}")
		if self.max_iterations < 1:
			raise ConfigurationError("max_iterations must be at least 1")
		if self.epsilon <= 0.0:
			raise ConfigurationError("epsilon must be positive")
		if self.min_response is not None and self.min_response < 0:
			raise ConfigurationError("min response should be >= 0")
		if self.max_response is not None and self.max_response >= self.levels:
			raise ConfigurationError("max response exceeds the number of camera output levels")
		if (self.min_response is not None and self.max_response is not None
				and self.max_response <= self.min_response):
			raise ConfigurationError("max response should be higher than min response")

	@property
	def levels(self) -> int:
		return 1 << self.bpp
