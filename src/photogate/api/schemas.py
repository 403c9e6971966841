"""Pydantic request/response schemas for the PhotoGate API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PhotoCheckResponse(BaseModel):
    """Result of running the quality gate on one photo."""

    width: int = Field(description="Width of the decoded upload in pixels")
    height: int = Field(description="Height of the decoded upload in pixels")
    brightness: str = Field(description="'too_dark', 'too_bright', or 'ok'")
    face_count: int = Field(ge=0, description="Number of detected faces")


class EncodedImage(BaseModel):
    """A transformed image as an embeddable data URI."""

    width: int
    height: int
    data_uri: str = Field(description="data:image/jpeg;base64,... image source")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    model_state: str = Field(description="Detection model state: 'unloaded', 'loading', or 'loaded'")
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available detection model."""

    name: str
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
