"""Detection pool: runs blocking ONNX face detection off the event loop.

Architecture:
    count_faces (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> FaceDetector.detect

A request that cannot get one of the N slots within ``queue_timeout``
seconds fails with ``DetectionQueueFull``. Anything the detector raises
comes back as ``DetectionFailure``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from photogate.errors import DetectionFailure, DetectionQueueFull

if TYPE_CHECKING:
    from PIL import Image

    from photogate.config import Settings
    from photogate.ml.face_detector import DetectionConfig, FaceDetector, RawDetection

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_TIMEOUT: float = 5.0


class DetectionPool:
    """Bounded pool of detector threads with queue accounting for /health."""

    def __init__(self, max_concurrent: int, queue_timeout: float = DEFAULT_QUEUE_TIMEOUT) -> None:
        self._queue_timeout = queue_timeout
        self._slots = asyncio.Semaphore(max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent,
            thread_name_prefix="face-detection",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._completed_count: int = 0
        self._counter_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> DetectionPool:
        return cls(settings.max_concurrent, settings.queue_timeout)

    async def detect(
        self,
        detector: FaceDetector,
        image: Image.Image,
        config: DetectionConfig,
    ) -> list[RawDetection]:
        """Run ``detector.detect(image, config)`` on a pool thread.

        Raises:
            DetectionQueueFull: If no slot frees up within the queue timeout.
            DetectionFailure: If the detector raised.
        """
        await self._acquire_slot()

        with self._counter_lock:
            self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            detections = await loop.run_in_executor(self._executor, detector.detect, image, config)
        except Exception as exc:
            raise DetectionFailure(f"Face detection with {detector.model_name} failed: {exc}") from exc
        finally:
            self._slots.release()
            with self._counter_lock:
                self._active_count -= 1

        with self._counter_lock:
            self._completed_count += 1
        return detections

    async def _acquire_slot(self) -> None:
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self._queue_timeout)
        except TimeoutError as exc:
            logger.warning("No detection slot free after %.1fs (queue depth %d)", self._queue_timeout, self.queue_depth)
            raise DetectionQueueFull(f"No detection slot free within {self._queue_timeout}s") from exc
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

    @property
    def active_count(self) -> int:
        """Number of detections currently running."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a detection slot."""
        with self._counter_lock:
            return self._queue_depth

    @property
    def completed_count(self) -> int:
        """Number of detections that finished without error."""
        with self._counter_lock:
            return self._completed_count

    def shutdown(self) -> None:
        """Shut down the detector threads, waiting for running detections."""
        self._executor.shutdown(wait=True)
        logger.info("Detection pool shut down after %d detection(s)", self.completed_count)
