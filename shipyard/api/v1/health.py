"""Health check endpoints."""

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from shipyard import __version__
from shipyard.config import settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    environment: str
    ai_recovery_available: bool
    max_attempts: int
    timestamp: datetime


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check API health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        ai_recovery_available=settings.agent_configured,
        max_attempts=settings.max_attempts,
        timestamp=datetime.utcnow(),
    )
