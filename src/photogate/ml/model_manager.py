"""Model store: resolve, download and open ONNX face detection models.

A model asset location is either a path to a local ``.onnx`` file or a
``<owner>/<repo>/<filename>`` reference on the HuggingFace Hub. Registry
names are shorthands for the latter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from photogate.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX detection model."""

    name: str
    repo_id: str
    filename: str
    input_size: tuple[int, int]  # (width, height)
    license: str

    @property
    def location(self) -> str:
        return f"{self.repo_id}/{self.filename}"


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "ultraface_rfb_320": ModelSpec(
        name="ultraface_rfb_320",
        repo_id="photogate/face-models",
        filename="version-RFB-320.onnx",
        input_size=(320, 240),
        license="MIT",
    ),
    "ultraface_slim_320": ModelSpec(
        name="ultraface_slim_320",
        repo_id="photogate/face-models",
        filename="version-slim-320.onnx",
        input_size=(320, 240),
        license="MIT",
    ),
}


def resolve_asset_location(name_or_location: str) -> str:
    """Map a registry name to its hub location; pass anything else through."""
    spec = MODEL_REGISTRY.get(name_or_location)
    if spec is not None:
        return spec.location
    return name_or_location


def split_hub_location(location: str) -> tuple[str, str]:
    """Split ``<owner>/<repo>/<filename>`` into (repo_id, filename)."""
    parts = location.strip("/").split("/")
    if len(parts) < 3 or not all(parts):  # noqa: PLR2004
        raise ValueError(f"Not a local file or '<owner>/<repo>/<filename>' reference: {location!r}")
    return "/".join(parts[:2]), "/".join(parts[2:])


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class OnnxModelStore:
    """Downloads model files and creates ONNX inference sessions for them."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    def ensure_downloaded(self, location: str) -> Path:
        """Return a local path for the model, downloading it from the hub if needed.

        Raises:
            ValueError: If ``location`` is neither an existing file nor a hub reference.
        """
        location = resolve_asset_location(location)
        local = Path(location)
        if local.is_file():
            return local

        repo_id, filename = split_hub_location(location)
        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=repo_id,
                filename=filename,
                local_dir=str(self._models_dir),
            )
        )
        logger.info("Downloaded %s to %s", location, downloaded)
        return downloaded

    def create_session(self, location: str) -> InferenceSession:
        """Open an InferenceSession for the model at ``location``."""
        model_path = self.ensure_downloaded(location)
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )
        logger.info("Loaded session for %s (providers=%s)", model_path.name, session.get_providers())
        return session

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
