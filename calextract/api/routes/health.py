from fastapi import APIRouter

from calextract.core.config import get_settings
from calextract.schemas.health import HealthResponse
from calextract.services.health_service import HealthService

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, summary="Service and inference readiness")
def read_health() -> HealthResponse:
    return HealthService(get_settings()).get_status()
