"""Pydantic schemas for API responses."""

from datetime import datetime
from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str
    locations_loaded: int = 0


class RootResponse(BaseModel):
    """Service banner."""
    service: str
    status: str
    version: str
