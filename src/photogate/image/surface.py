"""Raster surfaces: pixel buffers the geometry and luminance code draw into.

The algorithms in ``geometry`` and ``luminance`` only talk to the
``RasterSurface`` protocol, so any backend that can allocate a buffer,
draw an image into it, read its pixels back and encode it can be swapped
in. ``PillowSurface`` is the default backend.
"""

from __future__ import annotations

import base64
import io
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np
from PIL import Image

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray

# (left, top, right, bottom) in pixels, right/bottom exclusive.
Box = tuple[int, int, int, int]

DEFAULT_JPEG_QUALITY: int = 92

# Multiplier taking a high-bit-depth sample into 0..255. Integer modes are
# treated as 16-bit, float images as 0.0..1.0.
_TO_8BIT_SCALE: dict[str, float] = {
    "I;16": 1 / 257,
    "I;16L": 1 / 257,
    "I;16B": 1 / 257,
    "I;16N": 1 / 257,
    "I": 1 / 257,
    "F": 255.0,
}


def to_8bit(image: Image.Image) -> Image.Image:
    """Return ``image`` with 16-bit, 32-bit and float samples scaled into an 8-bit "L" image.

    Other modes are returned unchanged. Pillow's own ``convert`` clips these
    modes instead of scaling them, so a mid-gray 16-bit image would come out white.
    """
    scale = _TO_8BIT_SCALE.get(image.mode)
    if scale is None:
        return image
    samples = np.asarray(image, dtype=np.float64) * scale
    return Image.fromarray(np.clip(np.rint(samples), 0, 255).astype(np.uint8))


@dataclass(frozen=True)
class EncodedImageResult:
    """A self-contained encoded still image."""

    data: bytes
    width: int
    height: int
    mime_type: str = "image/jpeg"

    @property
    def data_uri(self) -> str:
        """Return the image as a ``data:`` URI usable directly as an image source."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    def __str__(self) -> str:
        return self.data_uri


class RasterSurface(Protocol):
    """Protocol for a mutable RGBA pixel buffer."""

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def draw_image(
        self,
        source: Image.Image,
        src_box: Box | None = None,
        dest_box: Box | None = None,
    ) -> None:
        """Draw ``src_box`` of ``source`` into ``dest_box``, scaling to fit.

        ``None`` means the whole source image or the whole surface.
        """
        ...

    def read_pixels(self) -> NDArray[np.uint8]:
        """Return the surface as an HxWx4 RGBA uint8 array."""
        ...

    def encode(self) -> EncodedImageResult:
        """Encode the surface as a lossy still image."""
        ...


class PillowSurface:
    """RasterSurface backed by a Pillow RGBA image."""

    def __init__(self, width: int, height: int, *, jpeg_quality: int = DEFAULT_JPEG_QUALITY) -> None:
        self._canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        self._jpeg_quality = jpeg_quality

    @property
    def width(self) -> int:
        return self._canvas.width

    @property
    def height(self) -> int:
        return self._canvas.height

    def draw_image(
        self,
        source: Image.Image,
        src_box: Box | None = None,
        dest_box: Box | None = None,
    ) -> None:
        # to_8bit(), convert() and crop() return new images; the caller's image is never touched.
        region = to_8bit(source)
        if region.mode != "RGBA":
            region = region.convert("RGBA")
        if src_box is not None:
            region = region.crop(src_box)
        if dest_box is None:
            dest_box = (0, 0, self.width, self.height)

        left, top, right, bottom = dest_box
        size = (right - left, bottom - top)
        if region.size != size:
            region = region.resize(size, Image.Resampling.BILINEAR)
        self._canvas.paste(region, (left, top))

    def read_pixels(self) -> NDArray[np.uint8]:
        return np.asarray(self._canvas, dtype=np.uint8)

    def encode(self) -> EncodedImageResult:
        # JPEG has no alpha channel: transparent areas come out black.
        flattened = Image.new("RGB", self._canvas.size, (0, 0, 0))
        flattened.paste(self._canvas, mask=self._canvas.getchannel("A"))

        buffer = io.BytesIO()
        flattened.save(buffer, format="JPEG", quality=self._jpeg_quality)
        return EncodedImageResult(
            data=buffer.getvalue(),
            width=self.width,
            height=self.height,
        )


def pillow_surface_factory(jpeg_quality: int = DEFAULT_JPEG_QUALITY) -> Callable[[int, int], RasterSurface]:
    """Return a factory allocating Pillow surfaces with the given JPEG quality."""

    def allocate(width: int, height: int) -> RasterSurface:
        return PillowSurface(width, height, jpeg_quality=jpeg_quality)

    return allocate
