import numpy as np
import pytest

from conftest import BRACKET_TIMES, make_bracket
from hdrcal.errors import ConfigurationError
from hdrcal.services.exposures import Exposure, ExposureList
from hdrcal.services.responses import response_gamma, response_linear
from hdrcal.services import robertson02
from hdrcal.services.robertson02 import (
	ConvergenceCriteria,
	calibrate_response,
	calibrate_response_rgb,
	normalize_response,
	smooth_response,
)
from hdrcal.services.weights import weights_gauss


def _true_response(exposures, radiance, M=256):
	"""Mean exposure (radiance * t) that produced each camera level."""
	levels = exposures.camera_levels(M)
	x = np.stack([radiance * t for t in exposures.times])
	counts = np.bincount(levels.ravel(), minlength=M)
	sums = np.bincount(levels.ravel(), weights=x.ravel(), minlength=M)
	return sums, counts


def test_recovers_gamma_camera_up_to_scale(scene):
	exposures = make_bracket(scene, BRACKET_TIMES)
	w = weights_gauss(256, 0, 255, 0.2 * 255)
	result = calibrate_response(
		exposures, response_linear(256), w, ConvergenceCriteria(max_iterations=500, epsilon=1e-10)
	)
	assert result.saturated == 0
	assert result.iterations >= 1

	sums, counts = _true_response(exposures, scene)
	levels = np.flatnonzero(counts)
	levels = levels[(levels > 5) & (levels < 250)]
	truth = sums[levels] / counts[levels]
	est = result.response[levels].astype(np.float64)
	scale = np.dot(est, truth) / np.dot(est, est)
	nrmse = np.sqrt(np.mean((scale * est - truth) ** 2)) / np.mean(truth)
	assert nrmse < 0.1
	assert np.corrcoef(est, truth)[0, 1] > 0.99


def test_radiance_is_consistent_with_scene_up_to_scale(scene):
	exposures = make_bracket(scene, BRACKET_TIMES)
	w = weights_gauss(256, 0, 255, 0.2 * 255)
	result = calibrate_response(exposures, response_gamma(256), w, ConvergenceCriteria(max_iterations=300))
	assert np.all(np.isfinite(result.radiance))
	ratio = result.radiance / scene
	assert np.std(ratio) / np.mean(ratio) < 0.1


def test_flat_scene_scenario():
	radiance = np.full((8, 8), 100.0)
	times = [0.01, 0.1, 1.0]
	# linear camera that saturates at an exposure of 200
	frames = [Exposure(t, np.floor(np.clip(radiance * t / 200.0, 0, 1) * 255).astype(np.int64)) for t in times]
	exposures = ExposureList(frames)
	w = weights_gauss(256, 0, 255, 0.2 * 255)
	# anchor the middle observed level (the 1.0 s frame) at its true exposure
	result = calibrate_response(exposures, response_linear(256), w, reference=100.0)
	assert result.saturated == 0
	assert result.converged
	assert np.ptp(result.radiance) == pytest.approx(0.0, abs=1e-3)
	np.testing.assert_allclose(result.radiance, 100.0, rtol=0.05)


def test_initial_response_is_not_modified(scene):
	exposures = make_bracket(scene, BRACKET_TIMES)
	I0 = response_linear(256)
	before = I0.copy()
	calibrate_response(exposures, I0, weights_gauss(256, 0, 255, 50.0), ConvergenceCriteria(max_iterations=3))
	np.testing.assert_array_equal(I0, before)


def test_iteration_cap_stops_the_loop(scene):
	exposures = make_bracket(scene, BRACKET_TIMES)
	result = calibrate_response(
		exposures, response_linear(256), weights_gauss(256, 0, 255, 50.0),
		ConvergenceCriteria(max_iterations=2, epsilon=1e-30),
	)
	assert result.iterations == 2
	assert not result.converged


def test_unobserved_levels_keep_previous_value():
	frames = [Exposure(t, np.array([[40, 80], [120, 160]]) * int(t)) for t in (1.0, 2.0)]
	exposures = ExposureList(frames)
	I0 = response_linear(1024)
	result = calibrate_response(exposures, I0, weights_gauss(1024, 0, 1023, 200.0), ConvergenceCriteria(max_iterations=5))
	observed = {40, 80, 120, 160, 240, 320}
	untouched = [m for m in range(1024) if m not in observed]
	ratio = result.response[untouched] / np.where(I0[untouched] == 0, 1, I0[untouched])
	# unobserved levels only follow the global rescaling
	nonzero = I0[untouched] != 0
	assert np.allclose(ratio[nonzero], ratio[nonzero][0], rtol=1e-4)


def test_calibration_needs_two_exposures(scene):
	exposures = make_bracket(scene, [1.0])
	with pytest.raises(ConfigurationError):
		calibrate_response(exposures, response_linear(256), weights_gauss(256, 0, 255, 50.0))


def test_rgb_calibration_runs_each_channel(scene):
	channels = [make_bracket(scene * gain, BRACKET_TIMES) for gain in (0.5, 1.0, 0.8)]
	result = calibrate_response_rgb(
		channels, [response_linear(256)] * 3, weights_gauss(256, 0, 255, 50.0), ConvergenceCriteria(max_iterations=50)
	)
	assert result.radiance.shape == scene.shape + (3,)
	assert len(result.responses) == 3
	assert result.saturated == 0
	assert np.all(np.isfinite(result.radiance))


def test_normalize_anchors_reference_level():
	I = np.linspace(0.0, 5.0, 256)
	observed = np.ones(256, dtype=bool)
	scale = normalize_response(I, observed, anchor=100, reference=2.0)
	assert scale == pytest.approx(5.0 * 100 / 255)
	assert I[100] == pytest.approx(2.0)


def test_smoothing_removes_spikes_on_observed_levels():
	I = np.linspace(0.0, 1.0, 512)
	I[200] = 10.0
	observed = np.ones(512, dtype=bool)
	smooth_response(I, observed)
	assert I[200] < 1.0
	# a monotonic curve is left alone
	J = np.linspace(0.0, 1.0, 512)
	before = J.copy()
	smooth_response(J, observed)
	np.testing.assert_allclose(J, before)


def test_smoothing_in_chunks_matches_single_pass(monkeypatch):
	rng = np.random.default_rng(3)
	I = np.sort(rng.uniform(0.0, 1.0, 2048)) + rng.normal(0.0, 0.01, 2048)
	observed = rng.uniform(size=2048) > 0.3
	whole = I.copy()
	smooth_response(whole, observed)

	monkeypatch.setattr(robertson02, "SMOOTH_CHUNK", 7)
	chunked = I.copy()
	smooth_response(chunked, observed)
	np.testing.assert_array_equal(chunked, whole)
	assert not np.array_equal(whole, I)


def test_smoothing_sixteen_bit_curve():
	I = np.linspace(0.0, 1.0, 1 << 16)
	I[30000] = 5.0
	smooth_response(I, np.ones(1 << 16, dtype=bool))
	assert I[30000] < 1.0
