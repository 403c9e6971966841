"""Face detection models.

Implementations: UltraFace (Ultra-Light-Fast-Generic-Face-Detector), RFB-320
and slim-320 variants, run through ONNX Runtime.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from photogate.ml.model_manager import MODEL_REGISTRY
from photogate.ml.preprocessing import to_detector_input

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession
    from PIL import Image

    from photogate.ml.model_manager import OnnxModelStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionConfig:
    """Detector thresholds. The defaults are the fast, lightweight setting."""

    score_threshold: float = 0.5
    iou_threshold: float = 0.3
    top_k: int = 750


@dataclass(frozen=True)
class RawDetection:
    """A detected face region in pixel space of the source image."""

    bbox: tuple[float, float, float, float]  # x1, y1, x2, y2
    score: float


class FaceDetector(Protocol):
    """Protocol for face detection models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    async def load(self, asset_location: str) -> None:
        """Fetch and initialize the model found at ``asset_location``."""
        ...

    def detect(self, image: Image.Image, config: DetectionConfig) -> list[RawDetection]:
        """Detect faces in an image.

        Args:
            image: Decoded image, any mode.
            config: Detection thresholds.

        Returns:
            One detection per face, highest score first.
        """
        ...


def nms(boxes: NDArray[np.float32], scores: NDArray[np.float32], threshold: float) -> list[int]:
    """Greedy non-maximum suppression on (x1, y1, x2, y2) boxes.

    Returns the kept indices, highest score first.
    """
    if len(boxes) == 0:
        return []

    x1, y1, x2, y2 = boxes[:, 0], boxes[:, 1], boxes[:, 2], boxes[:, 3]
    areas = np.maximum(0.0, x2 - x1) * np.maximum(0.0, y2 - y1)
    order = scores.argsort()[::-1]

    keep: list[int] = []
    while order.size > 0:
        i = int(order[0])
        keep.append(i)

        xx1 = np.maximum(x1[i], x1[order[1:]])
        yy1 = np.maximum(y1[i], y1[order[1:]])
        xx2 = np.minimum(x2[i], x2[order[1:]])
        yy2 = np.minimum(y2[i], y2[order[1:]])

        inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
        union = areas[i] + areas[order[1:]] - inter
        iou = np.where(union > 0, inter / np.maximum(union, 1e-12), 0.0)
        order = order[1:][iou <= threshold]
    return keep


class UltraFaceDetector:
    """UltraFace detector: fixed 320x240 input, boxes and scores with priors baked in."""

    def __init__(self, store: OnnxModelStore, model_name: str = "ultraface_rfb_320") -> None:
        self._store = store
        self._model_name = model_name
        spec = MODEL_REGISTRY.get(model_name)
        self._input_size = spec.input_size if spec is not None else (320, 240)
        self._session: InferenceSession | None = None
        self._input_name: str | None = None

    @property
    def model_name(self) -> str:
        return self._model_name

    async def load(self, asset_location: str) -> None:
        session = await asyncio.to_thread(self._store.create_session, asset_location)
        self._input_name = session.get_inputs()[0].name
        self._session = session

    def detect(self, image: Image.Image, config: DetectionConfig) -> list[RawDetection]:
        if self._session is None:
            raise RuntimeError(f"Model '{self._model_name}' is not loaded")

        tensor = to_detector_input(image, self._input_size)
        scores, boxes = self._session.run(None, {self._input_name: tensor})[:2]
        return self._postprocess(scores[0], boxes[0], image.width, image.height, config)

    @staticmethod
    def _postprocess(
        scores: NDArray[np.float32],
        boxes: NDArray[np.float32],
        width: int,
        height: int,
        config: DetectionConfig,
    ) -> list[RawDetection]:
        # scores: (N, 2) background/face; boxes: (N, 4) relative corner form
        face_scores = scores[:, 1]
        mask = face_scores > config.score_threshold
        if not np.any(mask):
            return []

        candidates = boxes[mask].astype(np.float32) * np.array([width, height, width, height], dtype=np.float32)
        candidates[:, 0::2] = np.clip(candidates[:, 0::2], 0, width)
        candidates[:, 1::2] = np.clip(candidates[:, 1::2], 0, height)
        candidate_scores = face_scores[mask].astype(np.float32)

        # Only the top_k highest scoring candidates enter NMS.
        order = candidate_scores.argsort()[::-1][: config.top_k]
        candidates = candidates[order]
        candidate_scores = candidate_scores[order]

        keep = nms(candidates, candidate_scores, config.iou_threshold)
        return [
            RawDetection(
                bbox=(
                    float(candidates[i, 0]),
                    float(candidates[i, 1]),
                    float(candidates[i, 2]),
                    float(candidates[i, 3]),
                ),
                score=float(candidate_scores[i]),
            )
            for i in keep
        ]
