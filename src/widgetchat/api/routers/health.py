"""Health check router

Provides health check endpoints for monitoring and service discovery.

Endpoints:
- GET /health: Service status, version and storage reachability

Health Check Philosophy:
- Simple status indication for monitoring systems
- Rich response model (not generic dict)
- Degraded (503) when the store cannot be reached
"""

from typing import Annotated

import logfire
from fastapi import APIRouter, Depends, Response, status

from ...config import settings
from ...service.storage import StorageService
from ..contracts import HealthResponse
from ..deps import get_storage_service

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    response: Response,
    storage: Annotated[StorageService, Depends(get_storage_service)],
) -> HealthResponse:
    """API health check"""
    try:
        storage_up = await storage.get_chat_store().ping()
    except Exception as exc:
        logfire.warn("Storage ping failed: {error}", error=str(exc))
        storage_up = False

    if not storage_up:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(
        status="healthy" if storage_up else "degraded",
        service=settings.app_name,
        version=settings.app_version,
        storage="up" if storage_up else "down",
    )
