"""Image decoding and detector input preparation.

Decoding handles format detection, size validation, EXIF orientation and
bit depth.

Detector preparation resizes to the model input and normalizes to the
NCHW float32 layout the UltraFace models expect.
"""

from __future__ import annotations

import io

import numpy as np
from numpy.typing import NDArray
from PIL import Image, ImageOps, UnidentifiedImageError

from photogate.image.surface import to_8bit

# UltraFace normalization: (pixel - 127) / 128
_MEAN: float = 127.0
_SCALE: float = 128.0


def decode_image(image_bytes: bytes, *, max_pixels: int) -> Image.Image:
    """Decode raw image bytes into an upright Pillow image.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        max_pixels: Largest accepted width * height.

    Returns:
        The decoded image, EXIF orientation applied and 16-bit or float
        samples scaled down to 8 bits.

    Raises:
        ValueError: If the bytes cannot be decoded or the image is too large.
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))
    except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise ValueError("Could not decode image") from exc

    if image.width * image.height > max_pixels:
        raise ValueError(f"Image has {image.width * image.height} pixels, limit is {max_pixels}")

    try:
        image.load()
    except OSError as exc:
        raise ValueError(f"Could not decode image: {exc}") from exc
    return to_8bit(ImageOps.exif_transpose(image))


def to_detector_input(image: Image.Image, input_size: tuple[int, int]) -> NDArray[np.float32]:
    """Resize to ``input_size`` (width, height) and return a 1x3xHxW float32 tensor."""
    rgb = to_8bit(image).convert("RGB").resize(input_size, Image.Resampling.BILINEAR)
    arr = (np.asarray(rgb, dtype=np.float32) - _MEAN) / _SCALE
    return np.ascontiguousarray(arr.transpose(2, 0, 1)[np.newaxis, ...])
