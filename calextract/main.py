import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from calextract.api.router import api_router
from calextract.core.config import get_settings
from calextract.services.location_enhancer import get_location_directory


logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_application() -> FastAPI:
    _configure_logging()
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.api_prefix)
    app.add_event_handler("startup", _log_startup_state)

    return app


def _log_startup_state() -> None:
    settings = get_settings()
    logger.info(
        "Starting event extractor env=%s provider=%s known_locations=%s",
        settings.app_env,
        settings.inference_provider,
        len(get_location_directory()),
    )


app = create_application()
