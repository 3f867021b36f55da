from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import numpy as np
import pytest
from PIL import Image

from hdrcal.services.exposures import Exposure, ExposureList


CAMERA_GAMMA = 2.2
BRACKET_TIMES = (0.25, 1.0, 4.0)


def gamma_camera(exposure: np.ndarray, M: int = 256, gamma: float = CAMERA_GAMMA) -> np.ndarray:
	"""Noise-free camera: clipped exposure through 1/gamma, quantized to M levels."""
	x = np.clip(exposure, 0.0, 1.0)
	return np.minimum(np.floor((M - 1) * x ** (1.0 / gamma)), M - 1).astype(np.int64)


def gradient_scene(h: int = 64, w: int = 64) -> np.ndarray:
	return np.logspace(-2, 0, h * w).reshape(h, w)


def make_bracket(radiance: np.ndarray, times: Sequence[float], M: int = 256) -> ExposureList:
	return ExposureList([Exposure(t, gamma_camera(radiance * t, M)) for t in times])


def write_bracket_pngs(folder: Path, radiance: np.ndarray, times: Sequence[float]) -> List[Path]:
	folder.mkdir(parents=True, exist_ok=True)
	paths = []
	for i, t in enumerate(times):
		levels = gamma_camera(radiance * t).astype(np.uint8)
		rgb = np.stack([levels, levels, levels], axis=-1)
		p = folder / f"frame_{i}.png"
		Image.fromarray(rgb).save(p)
		paths.append(p)
	return paths


@pytest.fixture
def scene() -> np.ndarray:
	return gradient_scene()


@pytest.fixture
def data_dir(tmp_path, monkeypatch) -> Path:
	monkeypatch.setenv("HDRCAL_DATA_DIR", str(tmp_path / "data"))
	return tmp_path / "data"
