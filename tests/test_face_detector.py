"""Tests for the UltraFace detector and NMS."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

from photogate.ml.face_detector import DetectionConfig, UltraFaceDetector, nms

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeSession:
    """Stands in for an onnxruntime InferenceSession with canned outputs."""

    def __init__(self, scores: list[list[float]], boxes: list[list[float]]) -> None:
        self._scores = np.array([scores], dtype=np.float32)
        self._boxes = np.array([boxes], dtype=np.float32)
        self.feeds: list[dict[str, Any]] = []

    def get_inputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name="input")]

    def run(self, output_names: object, feeds: dict[str, Any]) -> list[np.ndarray]:
        self.feeds.append(feeds)
        return [self._scores, self._boxes]


def _store_returning(session: FakeSession) -> MagicMock:
    store = MagicMock()
    store.create_session.return_value = session
    return store


# Two overlapping candidates on the left, one below threshold, one on the right.
_SCORES = [[0.1, 0.9], [0.15, 0.85], [0.7, 0.3], [0.2, 0.8]]
_BOXES = [
    [0.1, 0.1, 0.4, 0.5],
    [0.11, 0.1, 0.41, 0.5],
    [0.5, 0.5, 0.6, 0.6],
    [0.6, 0.2, 0.9, 0.6],
]


# ---------------------------------------------------------------------------
# NMS
# ---------------------------------------------------------------------------


class TestNms:
    def test_empty(self) -> None:
        assert nms(np.empty((0, 4), dtype=np.float32), np.empty(0, dtype=np.float32), 0.3) == []

    def test_suppresses_overlap_and_orders_by_score(self) -> None:
        boxes = np.array(
            [[0, 0, 10, 10], [1, 0, 11, 10], [50, 50, 60, 60]],
            dtype=np.float32,
        )
        scores = np.array([0.8, 0.9, 0.7], dtype=np.float32)
        assert nms(boxes, scores, 0.3) == [1, 2]

    def test_keeps_disjoint_boxes(self) -> None:
        boxes = np.array([[0, 0, 10, 10], [20, 20, 30, 30]], dtype=np.float32)
        scores = np.array([0.6, 0.9], dtype=np.float32)
        assert nms(boxes, scores, 0.3) == [1, 0]


# ---------------------------------------------------------------------------
# UltraFaceDetector
# ---------------------------------------------------------------------------


class TestUltraFaceDetector:
    async def test_load_opens_session_for_location(self) -> None:
        session = FakeSession(_SCORES, _BOXES)
        store = _store_returning(session)
        detector = UltraFaceDetector(store)

        await detector.load("photogate/face-models/version-RFB-320.onnx")

        store.create_session.assert_called_once_with("photogate/face-models/version-RFB-320.onnx")
        assert detector.model_name == "ultraface_rfb_320"

    def test_detect_before_load_raises(self) -> None:
        detector = UltraFaceDetector(MagicMock())
        with pytest.raises(RuntimeError, match="not loaded"):
            detector.detect(Image.new("RGB", (20, 20)), DetectionConfig())

    async def test_detect_returns_boxes_in_pixels(self) -> None:
        session = FakeSession(_SCORES, _BOXES)
        detector = UltraFaceDetector(_store_returning(session))
        await detector.load("face.onnx")

        detections = detector.detect(Image.new("RGB", (200, 100)), DetectionConfig())

        assert len(detections) == 2
        assert detections[0].score == pytest.approx(0.9)
        assert detections[0].bbox == pytest.approx((20.0, 10.0, 80.0, 50.0))
        assert detections[1].score == pytest.approx(0.8)
        assert detections[1].bbox == pytest.approx((120.0, 20.0, 180.0, 60.0))

    async def test_feeds_normalized_nchw_tensor(self) -> None:
        session = FakeSession(_SCORES, _BOXES)
        detector = UltraFaceDetector(_store_returning(session))
        await detector.load("face.onnx")

        detector.detect(Image.new("RGB", (640, 480), (255, 255, 255)), DetectionConfig())

        tensor = session.feeds[0]["input"]
        assert tensor.shape == (1, 3, 240, 320)
        assert tensor.dtype == np.float32
        assert np.allclose(tensor, 1.0)

    async def test_nothing_above_threshold(self) -> None:
        session = FakeSession([[0.9, 0.1], [0.8, 0.2]], [[0, 0, 1, 1], [0, 0, 0.5, 0.5]])
        detector = UltraFaceDetector(_store_returning(session))
        await detector.load("face.onnx")
        assert detector.detect(Image.new("RGB", (50, 50)), DetectionConfig()) == []

    async def test_top_k_limits_candidates(self) -> None:
        session = FakeSession(_SCORES, _BOXES)
        detector = UltraFaceDetector(_store_returning(session))
        await detector.load("face.onnx")

        detections = detector.detect(Image.new("RGB", (200, 100)), DetectionConfig(top_k=1))

        assert len(detections) == 1
        assert detections[0].score == pytest.approx(0.9)

    async def test_boxes_are_clipped_to_image(self) -> None:
        session = FakeSession([[0.0, 0.99]], [[-0.1, -0.2, 1.3, 1.1]])
        detector = UltraFaceDetector(_store_returning(session))
        await detector.load("face.onnx")

        (detection,) = detector.detect(Image.new("RGB", (100, 50)), DetectionConfig())
        assert detection.bbox == pytest.approx((0.0, 0.0, 100.0, 50.0))
