from datetime import datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    version: str
    inference_provider: str
    inference_configured: bool
    known_locations: int
    timestamp: datetime
