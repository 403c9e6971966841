"""Exception types raised by the photo quality gate."""

from __future__ import annotations


class PhotoGateError(Exception):
    """Base class for all PhotoGate errors."""


class InvalidArgument(PhotoGateError, ValueError):  # noqa: N818
    """A geometric parameter or image is unusable (non-positive size, zero area)."""


class ModelLoadFailure(PhotoGateError, RuntimeError):  # noqa: N818
    """The face detection model could not be loaded."""


class DetectionFailure(PhotoGateError, RuntimeError):  # noqa: N818
    """The face detector raised while processing an image."""


class DetectionQueueFull(PhotoGateError, TimeoutError):  # noqa: N818
    """No detection slot became free within the queue timeout."""
