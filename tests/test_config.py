import pytest

from hdrcal.config import CalibrationOptions, get_settings
from hdrcal.errors import ConfigurationError


def test_defaults():
	options = CalibrationOptions()
	assert options.levels == 256
	assert options.weighting == "composite"
	assert options.calibrate


@pytest.mark.parametrize("kwargs", [
	{"bpp": 7},
	{"bpp": 17},
	{"sigma": 0.0},
	{"sigma": 1.5},
	{"weighting": "triangle"},
	{"response": "srgb"},
	{"output_format": "png"},
	{"max_iterations": 0},
	{"epsilon": 0.0},
	{"min_response": -1},
	{"max_response": 256},
	{"min_response": 100, "max_response": 50},
])
def test_invalid_options(kwargs):
	with pytest.raises(ConfigurationError):
		CalibrationOptions(**kwargs)


def test_configuration_error_is_a_value_error():
	with pytest.raises(ValueError):
		CalibrationOptions(bpp=4)


def test_settings_follow_environment(data_dir):
	settings = get_settings()
	assert settings.data_dir == data_dir
	assert settings.jobs_dir == data_dir / "jobs"
	assert settings.results_dir == data_dir / "results"
