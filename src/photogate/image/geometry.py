"""Square resize and center crop for uploaded photos."""

from __future__ import annotations

from typing import TYPE_CHECKING

from photogate.errors import InvalidArgument
from photogate.image.surface import PillowSurface

if TYPE_CHECKING:
    from collections.abc import Callable

    from PIL import Image

    from photogate.image.surface import EncodedImageResult, RasterSurface

DEFAULT_TARGET_SIZE: int = 361


def _check_area(image: Image.Image) -> None:
    if image.width <= 0 or image.height <= 0:
        raise InvalidArgument(f"Image has zero area ({image.width}x{image.height})")


def resize_square(
    image: Image.Image,
    target_size: int = DEFAULT_TARGET_SIZE,
    *,
    surface_factory: Callable[[int, int], RasterSurface] = PillowSurface,
) -> EncodedImageResult:
    """Stretch the whole image into a ``target_size`` square and encode it.

    The aspect ratio is not preserved: the source is scaled independently
    along each axis, with no letterboxing.

    Raises:
        InvalidArgument: If ``target_size`` is not a positive integer or the
            image has zero area.
    """
    if isinstance(target_size, bool) or not isinstance(target_size, int) or target_size <= 0:
        raise InvalidArgument(f"target_size must be a positive integer, got {target_size!r}")
    _check_area(image)

    surface = surface_factory(target_size, target_size)
    surface.draw_image(image, dest_box=(0, 0, target_size, target_size))
    return surface.encode()


def center_square_box(width: int, height: int) -> tuple[int, int, int, int]:
    """Return the (left, top, right, bottom) box of the centered square.

    Offsets are floored, so an odd leftover pixel ends up on the right or
    bottom edge.
    """
    side = min(width, height)
    left = (width - side) // 2
    top = (height - side) // 2
    return left, top, left + side, top + side


def crop_to_square(
    image: Image.Image,
    *,
    surface_factory: Callable[[int, int], RasterSurface] = PillowSurface,
) -> EncodedImageResult:
    """Cut the largest centered square out of the image and encode it, unscaled.

    Raises:
        InvalidArgument: If the image has zero area.
    """
    _check_area(image)

    box = center_square_box(image.width, image.height)
    side = box[2] - box[0]
    surface = surface_factory(side, side)
    surface.draw_image(image, src_box=box, dest_box=(0, 0, side, side))
    return surface.encode()
