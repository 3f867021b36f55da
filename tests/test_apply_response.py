import numpy as np
import pytest

from hdrcal.errors import ConfigurationError
from hdrcal.services.apply_response import apply_response, apply_response_rgb
from hdrcal.services.exposures import Exposure, ExposureList
from hdrcal.services.responses import response_linear
from hdrcal.services.weights import weights_gauss


def _exact_bracket():
	# every exposure lands exactly on a level of the linear response
	radiance = (np.arange(64, dtype=np.float64) / 255.0).reshape(8, 8)
	times = [1.0, 2.0, 4.0]
	frames = [Exposure(t, np.rint(radiance * t * 255.0).astype(np.int64)) for t in times]
	return radiance, ExposureList(frames)


def test_known_response_recovers_radiance():
	radiance, exposures = _exact_bracket()
	I = response_linear(256)
	w = weights_gauss(256, 0, 255, 0.2 * 255)
	out, saturated = apply_response(exposures, I, w)
	assert out.shape == radiance.shape
	assert np.all(np.isfinite(out))
	np.testing.assert_allclose(out, radiance, rtol=1e-5, atol=1e-7)
	# the black pixel has no usable reading anywhere
	assert saturated == 1


def test_single_exposure_without_usable_weights_has_no_nan():
	pixels = np.array([[0, 255], [128, 255]], dtype=np.int64)
	exposures = ExposureList([Exposure(0.5, pixels)])
	I = response_linear(256)
	w = weights_gauss(256, 0, 255, 40.0)
	out, saturated = apply_response(exposures, I, w)
	assert saturated == 3
	assert np.all(np.isfinite(out))
	assert out[0, 1] == pytest.approx(1.0 / 0.5)
	assert out[1, 0] == pytest.approx(I[128] / 0.5)


def test_saturated_fallback_picks_reading_closest_to_mid_range():
	short = np.array([[0]], dtype=np.int64)
	long_ = np.array([[255]], dtype=np.int64)
	exposures = ExposureList([Exposure(1.0, short), Exposure(4.0, long_)])
	I = response_linear(256) + 0.01
	w = weights_gauss(256, 0, 255, 40.0)
	out, saturated = apply_response(exposures, I, w)
	assert saturated == 1
	# both readings are equally far from mid-range, the first wins
	assert out[0, 0] == pytest.approx(I[0] / 1.0)


def test_mismatched_tables_are_rejected():
	_, exposures = _exact_bracket()
	with pytest.raises(ConfigurationError):
		apply_response(exposures, response_linear(256), weights_gauss(128, 0, 127, 20.0))


def test_rgb_uses_per_channel_curves():
	radiance, exposures = _exact_bracket()
	I = response_linear(256)
	w = weights_gauss(256, 0, 255, 0.2 * 255)
	out, saturated = apply_response_rgb([exposures] * 3, [I, I * 2.0, I * 0.5], w)
	assert out.shape == radiance.shape + (3,)
	np.testing.assert_allclose(out[..., 1], 2.0 * out[..., 0], rtol=1e-5)
	np.testing.assert_allclose(out[..., 2], 0.5 * out[..., 0], rtol=1e-5)
	assert saturated == 1


def test_rgb_needs_three_channels():
	_, exposures = _exact_bracket()
	with pytest.raises(ConfigurationError):
		apply_response_rgb([exposures] * 2, [response_linear(256)] * 2, weights_gauss(256, 0, 255, 40.0))
