import logging

import numpy as np
import pytest

from hdrcal.errors import ConfigurationError
from hdrcal.services.filters import (
	ABSOLUTE,
	DISPLAY,
	LUMINANCE_TAG,
	RELATIVE,
	GammaFilter,
	HDRFrame,
	apply_absolute,
	apply_gamma,
)


def test_apply_gamma_clamps_negatives():
	out = apply_gamma(np.array([-1.0, 0.25, 4.0]), 0.5, 1.0)
	np.testing.assert_allclose(out, [0.0, 0.5, 2.0])
	assert out.dtype == np.float32


def test_gamma_encodes_and_tags_display():
	frame = HDRFrame(np.array([[0.25, 1.0]]), {LUMINANCE_TAG: RELATIVE})
	out = GammaFilter(2.0)(frame)
	np.testing.assert_allclose(out.data, [[0.5, 1.0]])
	assert out.luminance_type == DISPLAY
	# input frame is left alone
	assert frame.luminance_type == RELATIVE


def test_inverse_gamma_tags_relative():
	frame = HDRFrame(np.array([[0.5]]), {LUMINANCE_TAG: DISPLAY})
	out = GammaFilter.inverse(2.0)(frame)
	np.testing.assert_allclose(out.data, [[0.25]])
	assert out.luminance_type == RELATIVE


def test_tag_not_set_when_disabled():
	out = GammaFilter(2.2, set_tag=False)(HDRFrame(np.ones((2, 2))))
	assert LUMINANCE_TAG not in out.tags


def test_tag_warning_only_on_first_frame(caplog):
	gamma = GammaFilter(2.2)
	frame = HDRFrame(np.ones((2, 2)), {LUMINANCE_TAG: DISPLAY})
	with caplog.at_level(logging.WARNING, logger="hdrcal.services.filters"):
		gamma(frame)
		gamma(frame)
	warnings = [r for r in caplog.records if "display referred" in r.getMessage()]
	assert len(warnings) == 1


def test_gamma_must_be_positive():
	with pytest.raises(ConfigurationError):
		GammaFilter(0.0)
	with pytest.raises(ConfigurationError):
		GammaFilter.inverse(-1.0)


def test_absolute_rescales_relative_luminance():
	frame = HDRFrame(np.array([[1.0, 2.0]]), {LUMINANCE_TAG: RELATIVE})
	out = apply_absolute(frame, dest_y=100.0, src_y=2.0)
	np.testing.assert_allclose(out.data, [[50.0, 100.0]])
	assert out.luminance_type == ABSOLUTE


def test_absolute_frames_pass_through():
	frame = HDRFrame(np.array([[3.0]]), {LUMINANCE_TAG: ABSOLUTE})
	assert apply_absolute(frame, dest_y=100.0) is frame


def test_absolute_linearizes_display_rgb():
	frame = HDRFrame(np.ones((1, 1, 3)), {LUMINANCE_TAG: DISPLAY})
	out = apply_absolute(frame, dest_y=80.0)
	np.testing.assert_allclose(out.data, np.full((1, 1, 3), 80.0), rtol=1e-5)


def test_absolute_rejects_gray_display_frames():
	with pytest.raises(ConfigurationError):
		apply_absolute(HDRFrame(np.ones((2, 2)), {LUMINANCE_TAG: DISPLAY}), dest_y=100.0)
	with pytest.raises(ConfigurationError):
		apply_absolute(HDRFrame(np.ones((2, 2))), dest_y=100.0, src_y=0.0)
