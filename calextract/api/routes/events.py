import logging

from fastapi import APIRouter, HTTPException, Response, status

from calextract.core.config import get_settings
from calextract.schemas.event import (
    EventExtractionRequest,
    EventExtractionResponse,
    ExtractedEvent,
    IcsDownloadRequest,
)
from calextract.services.event_extraction_service import (
    EventExtractionService,
    InferenceNotConfiguredError,
    ResponseFormatError,
    default_context,
)
from calextract.services.event_models import ExtractionContext
from calextract.services.event_validator import EventValidationError
from calextract.services.ics_encoder import encode
from calextract.services.inference_client import (
    InferenceError,
    RateLimitedError,
    RequestTooLargeError,
)

router = APIRouter(prefix="/events", tags=["events"])
logger = logging.getLogger(__name__)


@router.post("/extract", response_model=EventExtractionResponse)
def extract_event(payload: EventExtractionRequest) -> EventExtractionResponse:
    settings = get_settings()
    service = EventExtractionService(settings)
    context = default_context(settings, timezone=payload.timezone)
    if payload.reference_now is not None:
        context = ExtractionContext(reference_now=payload.reference_now, timezone=context.timezone)

    try:
        result = service.extract(payload.text.strip(), context)
    except EventValidationError as exc:
        logger.warning("Extracted event rejected error=%s detail=%s", type(exc).__name__, exc)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Date validation failed: {exc}",
        ) from exc
    except InferenceNotConfiguredError as exc:
        logger.error("Inference service is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not configured.",
        ) from exc
    except RateLimitedError as exc:
        logger.warning("Inference rate limited detail=%s", exc)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again later.",
        ) from exc
    except RequestTooLargeError as exc:
        logger.warning("Inference request too large detail=%s", exc)
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Content is too long. Please shorten it and try again.",
        ) from exc
    except InferenceError as exc:
        logger.exception("Inference call failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to extract calendar event due to an upstream error.",
        ) from exc
    except ResponseFormatError as exc:
        logger.warning("Inference returned unparseable output detail=%s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="The extraction service returned an unexpected response.",
        ) from exc

    if not result.has_event:
        return EventExtractionResponse(has_event=False)

    logger.info("Event extraction succeeded count=%s", len(result.events))
    return EventExtractionResponse(
        has_event=True,
        events=[ExtractedEvent.model_validate(record.to_dict()) for record in result.events],
        warnings=result.warnings,
        suggestions=result.suggestions,
        ics_content=encode(result.events),
    )


@router.post("/ics")
def download_ics(payload: IcsDownloadRequest) -> Response:
    if not payload.ics_content.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No ICS content provided.",
        )
    return Response(
        content=payload.ics_content,
        media_type="text/calendar",
        headers={"Content-Disposition": 'attachment; filename="event.ics"'},
    )
