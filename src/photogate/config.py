"""Environment-based configuration for PhotoGate."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from PHOTOGATE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PHOTOGATE_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Detection model: registry name, local path, or "<repo_id>/<filename>"
    detection_model: str = "ultraface_rfb_320"
    models_dir: str = "models"

    # Seconds to wait for the detection model to load (0 = no limit)
    load_timeout: float = Field(default=120.0, ge=0)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency: detections running at once, and seconds a request may wait for a slot
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Geometry output
    resize_target: int = Field(default=361, ge=1)
    jpeg_quality: int = Field(default=92, ge=1, le=95)

    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
