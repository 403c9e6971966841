"""Brightness classification over raw RGB samples."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

import numpy as np

from photogate.errors import InvalidArgument
from photogate.image.surface import PillowSurface

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray
    from PIL import Image

    from photogate.image.surface import RasterSurface

TOO_DARK_BELOW: int = 50
TOO_BRIGHT_ABOVE: int = 200


class BrightnessVerdict(StrEnum):
    TOO_DARK = "too_dark"
    TOO_BRIGHT = "too_bright"
    OK = "ok"


def _read_rgba(
    image: Image.Image,
    surface_factory: Callable[[int, int], RasterSurface],
) -> NDArray[np.uint8]:
    if image.width <= 0 or image.height <= 0:
        raise InvalidArgument(f"Image has zero area ({image.width}x{image.height})")
    surface = surface_factory(image.width, image.height)
    surface.draw_image(image)
    return surface.read_pixels()


def _channel_total(pixels: NDArray[np.uint8]) -> tuple[int, int]:
    """Return (sum of R+G+B over all pixels, pixel count)."""
    rgb = pixels[..., :3]
    return int(rgb.sum(dtype=np.int64)), rgb.shape[0] * rgb.shape[1]


def average_luminance(
    image: Image.Image,
    *,
    surface_factory: Callable[[int, int], RasterSurface] = PillowSurface,
) -> float:
    """Mean over all pixels of the unweighted (R + G + B) / 3, alpha ignored."""
    total, count = _channel_total(_read_rgba(image, surface_factory))
    return total / (3 * count)


def classify_pixels(pixels: NDArray[np.uint8]) -> BrightnessVerdict:
    """Classify an HxWx3 or HxWx4 uint8 array.

    The comparisons are done on integer channel totals, so ``average == 50``
    and ``average == 200`` are exact and both count as ``ok``.
    """
    total, count = _channel_total(pixels)
    if total < 3 * TOO_DARK_BELOW * count:
        return BrightnessVerdict.TOO_DARK
    if total > 3 * TOO_BRIGHT_ABOVE * count:
        return BrightnessVerdict.TOO_BRIGHT
    return BrightnessVerdict.OK


def classify_brightness(
    image: Image.Image,
    *,
    surface_factory: Callable[[int, int], RasterSurface] = PillowSurface,
) -> BrightnessVerdict:
    """Classify an image as too dark (< 50), too bright (> 200) or ok.

    Raises:
        InvalidArgument: If the image has zero area.
    """
    return classify_pixels(_read_rgba(image, surface_factory))
