from __future__ import annotations

import numpy as np
from PIL import ExifTags, Image


# Rec.709 / sRGB primaries
LUMA_709 = (0.2126, 0.7152, 0.0722)


def apply_exif_orientation(img: Image.Image, exif) -> Image.Image:
	orientation = None
	if exif:
		tags = {str(ExifTags.TAGS.get(tag_id, tag_id)): value for tag_id, value in exif.items()}
		orientation = tags.get("Orientation")
	if orientation is None:
		return img
	try:
		o = int(orientation)
	except (TypeError, ValueError):
		return img
	transforms = {
		2: lambda im: im.transpose(Image.FLIP_LEFT_RIGHT),
		3: lambda im: im.rotate(180, expand=True),
		4: lambda im: im.transpose(Image.FLIP_TOP_BOTTOM),
		5: lambda im: im.transpose(Image.FLIP_LEFT_RIGHT).rotate(90, expand=True),
		6: lambda im: im.rotate(270, expand=True),
		7: lambda im: im.transpose(Image.FLIP_LEFT_RIGHT).rotate(270, expand=True),
		8: lambda im: im.rotate(90, expand=True),
	}
	transform = transforms.get(o)
	return transform(img) if transform else img


def luminance(rgb: np.ndarray) -> np.ndarray:
	"""Y of an [H,W,3] array, in the same units as the input."""
	if rgb.ndim != 3 or rgb.shape[2] != 3:
		raise ValueError("Expected HxWx3 RGB array")
	r = rgb[..., 0].astype(np.float64)
	g = rgb[..., 1].astype(np.float64)
	b = rgb[..., 2].astype(np.float64)
	return LUMA_709[0] * r + LUMA_709[1] * g + LUMA_709[2] * b


def srgb_to_linear(arr: np.ndarray) -> np.ndarray:
	a = 0.055
	low = arr <= 0.04045
	high = ~low
	out = np.empty_like(arr, dtype=np.float32)
	out[low] = arr[low] / 12.92
	out[high] = ((arr[high] + a) / (1 + a)) ** 2.4
	return out


def linear_to_srgb(arr: np.ndarray) -> np.ndarray:
	a = 0.055
	arr = np.maximum(arr, 0.0)
	low = arr <= 0.0031308
	high = ~low
	out = np.empty_like(arr, dtype=np.float32)
	out[low] = 12.92 * arr[low]
	out[high] = (1 + a) * (arr[high] ** (1 / 2.4)) - a
	return out


def exif_orientation(img: Image.Image) -> int:
	value = img.getexif().get(0x0112)
	try:
		return int(value) if value is not None else 1
	except (TypeError, ValueError):
		return 1


def orient_array(arr: np.ndarray, orientation: int) -> np.ndarray:
	"""Array counterpart of apply_exif_orientation for data read outside PIL."""
	if orientation in (2, 5, 7):
		arr = np.fliplr(arr)
	if orientation == 3:
		return np.rot90(arr, 2)
	if orientation == 4:
		return np.flipud(arr)
	if orientation in (5, 8):
		return np.rot90(arr, 1)
	if orientation in (6, 7):
		return np.rot90(arr, -1)
	return arr
