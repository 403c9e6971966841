"""Face counting: load the detector once, then run it per image."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from photogate.config import get_settings
from photogate.ml.face_detector import DetectionConfig, UltraFaceDetector
from photogate.ml.inference import DetectionPool
from photogate.ml.loader import DetectionModelLoader
from photogate.ml.model_manager import MODEL_REGISTRY, OnnxModelStore

if TYPE_CHECKING:
    from PIL import Image

    from photogate.config import Settings
    from photogate.ml.face_detector import FaceDetector

logger = logging.getLogger(__name__)

DEFAULT_DETECTION_CONFIG = DetectionConfig()


class FaceCounter:
    """Counts faces in an image, loading the detection model on first use.

    Results are not cached; every call runs the detector.
    """

    def __init__(
        self,
        detector: FaceDetector,
        loader: DetectionModelLoader,
        pool: DetectionPool,
        config: DetectionConfig = DEFAULT_DETECTION_CONFIG,
    ) -> None:
        self._detector = detector
        self._loader = loader
        self._pool = pool
        self._config = config

    @property
    def loader(self) -> DetectionModelLoader:
        return self._loader

    @property
    def model_name(self) -> str:
        return self._detector.model_name

    async def count_faces(self, image: Image.Image) -> int:
        """Return the number of faces the detector finds in ``image``.

        Raises:
            ModelLoadFailure: If the model could not be loaded.
            DetectionFailure: If the detector raised.
            DetectionQueueFull: If no detection slot frees up in time.
        """
        await self._loader.ensure_loaded()
        detections = await self._pool.detect(self._detector, image, self._config)
        logger.debug("Detected %d face(s) with %s", len(detections), self._detector.model_name)
        return len(detections)


def build_face_counter(settings: Settings, pool: DetectionPool | None = None) -> FaceCounter:
    """Wire up the UltraFace detector, its loader and a detection pool from settings."""
    store = OnnxModelStore(settings)
    model_name = settings.detection_model if settings.detection_model in MODEL_REGISTRY else "ultraface_rfb_320"
    detector = UltraFaceDetector(store, model_name=model_name)
    loader = DetectionModelLoader(
        detector.load,
        settings.detection_model,
        timeout=settings.load_timeout,
    )
    return FaceCounter(detector, loader, pool or DetectionPool.from_settings(settings))


_default_counter: FaceCounter | None = None


def get_face_counter(settings: Settings | None = None, pool: DetectionPool | None = None) -> FaceCounter:
    """Return the process-wide FaceCounter, creating it on first call.

    ``settings`` and ``pool`` are only used by the call that creates it; the
    service lifespan makes that call so the counter shares the app's pool.
    """
    global _default_counter  # noqa: PLW0603
    if _default_counter is None:
        _default_counter = build_face_counter(settings or get_settings(), pool)
    return _default_counter
