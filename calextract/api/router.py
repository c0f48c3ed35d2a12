from fastapi import APIRouter

from calextract.api.routes.events import router as events_router
from calextract.api.routes.health import router as health_router

api_router = APIRouter()
v1_router = APIRouter(prefix="/v1")

api_router.include_router(health_router)

# Unversioned routes used by the bundled web client.
api_router.include_router(events_router)

v1_router.include_router(events_router)
api_router.include_router(v1_router)
