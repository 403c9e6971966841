"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from photogate.api.routes import public_router, router
from photogate.config import get_settings
from photogate.errors import DetectionFailure, DetectionQueueFull, InvalidArgument, ModelLoadFailure
from photogate.ml.face_counter import get_face_counter
from photogate.ml.inference import DetectionPool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting PhotoGate (device=%s, max_concurrent=%s, detection=%s)",
        settings.device,
        settings.max_concurrent,
        settings.detection_model,
    )

    detection_pool = DetectionPool.from_settings(settings)
    app.state.detection_pool = detection_pool
    # Installs the process-wide counter; the model loads on the first /check-photo request.
    app.state.face_counter = get_face_counter(settings, detection_pool)

    logger.info("PhotoGate ready")
    yield

    logger.info("Shutting down PhotoGate")
    detection_pool.shutdown()
    logger.info("PhotoGate shutdown complete")


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def _invalid_argument(request: Request, exc: Exception) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, exc)


async def _model_load_failure(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Detection model unavailable: %s", exc)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc)


async def _detection_failure(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Face detection failed: %s", exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


async def _queue_full(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Detection queue is full, retry later"},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="PhotoGate",
        description="Photo quality gate: square crop/resize, brightness check and face count",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(InvalidArgument, _invalid_argument)
    application.add_exception_handler(ModelLoadFailure, _model_load_failure)
    application.add_exception_handler(DetectionFailure, _detection_failure)
    application.add_exception_handler(DetectionQueueFull, _queue_full)

    application.include_router(public_router)
    application.include_router(router)
    return application


app = create_app()
