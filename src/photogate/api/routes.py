"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status

from photogate.api.middleware import require_api_key
from photogate.api.schemas import (
    EncodedImage,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    PhotoCheckResponse,
)
from photogate.image.geometry import crop_to_square, resize_square
from photogate.image.luminance import classify_brightness
from photogate.image.surface import pillow_surface_factory
from photogate.ml.model_manager import MODEL_REGISTRY
from photogate.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from PIL import Image

    from photogate.config import Settings
    from photogate.image.surface import EncodedImageResult
    from photogate.ml.face_counter import FaceCounter
    from photogate.ml.inference import DetectionPool

# Image and model endpoints sit behind the API key; /health stays open for load balancer health checks.
router = APIRouter(prefix="/api/v1", dependencies=[Depends(require_api_key)])
public_router = APIRouter(prefix="/api/v1")

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_detection_pool(request: Request) -> DetectionPool:
    pool: DetectionPool = request.app.state.detection_pool
    return pool


def _get_face_counter(request: Request) -> FaceCounter:
    counter: FaceCounter = request.app.state.face_counter
    return counter


async def _read_image(file: UploadFile, settings: Settings) -> Image.Image:
    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )
    try:
        return decode_image(data, max_pixels=settings.max_image_pixels)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _to_schema(result: EncodedImageResult) -> EncodedImage:
    return EncodedImage(width=result.width, height=result.height, data_uri=result.data_uri)


@router.post(
    "/check-photo",
    response_model=PhotoCheckResponse,
    responses={
        **_ERROR_RESPONSES,
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Check brightness and count faces",
)
async def check_photo(request: Request, file: UploadFile) -> PhotoCheckResponse:
    """Classify the photo's brightness and count the faces in it."""
    image = await _read_image(file, _get_settings(request))
    brightness = classify_brightness(image)
    face_count = await _get_face_counter(request).count_faces(image)
    return PhotoCheckResponse(
        width=image.width,
        height=image.height,
        brightness=brightness.value,
        face_count=face_count,
    )


@router.post(
    "/crop",
    response_model=EncodedImage,
    responses=_ERROR_RESPONSES,
    summary="Center-crop a photo to a square",
)
async def crop(request: Request, file: UploadFile) -> EncodedImage:
    """Return the largest centered square of the photo as a JPEG data URI."""
    settings = _get_settings(request)
    image = await _read_image(file, settings)
    return _to_schema(crop_to_square(image, surface_factory=pillow_surface_factory(settings.jpeg_quality)))


@router.post(
    "/resize",
    response_model=EncodedImage,
    responses=_ERROR_RESPONSES,
    summary="Stretch a photo to a square",
)
async def resize(request: Request, file: UploadFile, size: int | None = None) -> EncodedImage:
    """Return the photo stretched to ``size`` x ``size`` as a JPEG data URI."""
    settings = _get_settings(request)
    target = settings.resize_target if size is None else size
    if target > 0 and target * target > settings.max_image_pixels:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Output of {target}x{target} pixels exceeds the limit of {settings.max_image_pixels}",
        )
    image = await _read_image(file, settings)
    return _to_schema(
        resize_square(image, target, surface_factory=pillow_surface_factory(settings.jpeg_quality)),
    )


@public_router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_detection_pool(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        model_state=_get_face_counter(request).loader.state.value,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the known detection models and which one is configured."""
    settings = _get_settings(request)
    models = [
        ModelInfo(
            name=spec.name,
            status="active" if spec.name == settings.detection_model else "available",
            license=spec.license,
        )
        for spec in MODEL_REGISTRY.values()
    ]
    return ModelsResponse(models=models)
