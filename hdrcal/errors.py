from __future__ import annotations


class CalibrationError(Exception):
	"""Base class for everything the calibration toolkit raises on purpose."""


class ConfigurationError(CalibrationError, ValueError):
	"""Caller mistake detected before any computation starts."""


class ResponseFileError(CalibrationError):
	"""A persisted calibration exists but cannot be used for this input."""
