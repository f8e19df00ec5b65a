"""Health check response model"""

from typing import Literal

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """API health check response"""

    status: Literal["healthy", "degraded"]
    service: str
    version: str
    storage: Literal["up", "down"]
