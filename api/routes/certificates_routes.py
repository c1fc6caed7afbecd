"""Certificate generation, listing, download and issue endpoints.

All routes require the admin bearer token.

Error mapping:
- 404: participant not eligible/registered, or certificate not generated
- 422: participant data is missing a required field
- 502: the document could not be exported
- 503: the registrations service is unavailable
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response

from core.auth import require_admin
from core.config import get_settings
from core.ratelimit import BULK_GENERATE_LIMIT, GENERATE_LIMIT, limiter
from routes.dependencies import Generator
from schemas import (
    BulkGenerateRequest,
    BulkResultResponse,
    CertificateResponse,
    GenerateRequest,
)
from services.certificates_service import (
    CertificateNotFoundError,
    IncompleteBindingError,
    ParticipantNotFoundError,
)
from services.contracts import ExportError, RegistrationSourceUnavailableError

router = APIRouter(
    prefix="/api/certificates",
    tags=["certificates"],
    dependencies=[Depends(require_admin)],
)

_ERROR_RESPONSES = {
    404: {"description": "Participant or certificate not found"},
    422: {"description": "Participant data incomplete"},
    502: {"description": "Document export failed"},
    503: {"description": "Registrations service unavailable"},
}

EventId = Annotated[int, Path(ge=1)]
ParticipantId = Annotated[int, Path(ge=1)]


def _to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, ParticipantNotFoundError | CertificateNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, IncompleteBindingError):
        return HTTPException(
            status_code=422,
            detail={"message": str(exc), "missingFields": exc.missing},
        )
    if isinstance(exc, ExportError):
        return HTTPException(status_code=502, detail="Certificate export failed")
    if isinstance(exc, RegistrationSourceUnavailableError):
        return HTTPException(
            status_code=503,
            detail="Registrations service unavailable. Please retry shortly.",
            headers={"Retry-After": "30"},
        )
    return HTTPException(status_code=500, detail="Certificate operation failed")


@router.post(
    "/generate", response_model=CertificateResponse, responses=_ERROR_RESPONSES
)
@limiter.limit(GENERATE_LIMIT)
async def generate_certificate(
    request: Request,
    body: GenerateRequest,
    generator: Generator,
) -> CertificateResponse:
    """Generate (or regenerate) one participant's certificate."""
    try:
        record = await generator.generate_one(body.event_id, body.participant_id)
    except (
        ParticipantNotFoundError,
        IncompleteBindingError,
        ExportError,
        RegistrationSourceUnavailableError,
    ) as e:
        raise _to_http_exception(e) from e
    return CertificateResponse.model_validate(record)


@router.post(
    "/generate-bulk",
    response_model=BulkResultResponse,
    responses={503: _ERROR_RESPONSES[503]},
)
@limiter.limit(BULK_GENERATE_LIMIT)
async def generate_bulk(
    request: Request,
    body: BulkGenerateRequest,
    generator: Generator,
) -> BulkResultResponse:
    """Generate certificates for every eligible participant of an event.

    Always 200 once the roster is fetched: per-participant failures are listed
    in ``failed`` so they can be re-run individually.
    """
    deadline = body.deadline_seconds or get_settings().bulk_deadline_seconds or None
    try:
        result = await generator.generate_bulk(
            body.event_id, deadline_seconds=deadline
        )
    except RegistrationSourceUnavailableError as e:
        raise _to_http_exception(e) from e
    return BulkResultResponse.model_validate(result)


@router.get("/events/{event_id}", response_model=list[CertificateResponse])
async def list_event_certificates(
    generator: Generator,
    event_id: EventId,
) -> list[CertificateResponse]:
    records = await generator.list_certificates(event_id)
    return [CertificateResponse.model_validate(r) for r in records]


@router.get(
    "/events/{event_id}/participants/{participant_id}",
    response_model=CertificateResponse,
    responses={404: _ERROR_RESPONSES[404]},
)
async def get_participant_certificate(
    generator: Generator,
    event_id: EventId,
    participant_id: ParticipantId,
) -> CertificateResponse:
    try:
        record = await generator.get_certificate(event_id, participant_id)
    except CertificateNotFoundError as e:
        raise _to_http_exception(e) from e
    return CertificateResponse.model_validate(record)


@router.get(
    "/events/{event_id}/participants/{participant_id}/download",
    responses={
        200: {
            "content": {"application/pdf": {}, "image/png": {}, "image/svg+xml": {}},
            "description": "The generated certificate document",
        },
        404: _ERROR_RESPONSES[404],
        502: _ERROR_RESPONSES[502],
    },
)
async def download_certificate(
    generator: Generator,
    event_id: EventId,
    participant_id: ParticipantId,
) -> Response:
    try:
        handle = await generator.download_certificate(event_id, participant_id)
        content = await generator.open_document(handle)
    except (CertificateNotFoundError, ExportError) as e:
        raise _to_http_exception(e) from e

    return Response(
        content=content,
        media_type=handle.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{handle.filename}"',
            "Cache-Control": "private, no-store",
            "ETag": f'"{handle.sha256}"',
        },
    )


@router.post(
    "/events/{event_id}/participants/{participant_id}/issue",
    response_model=CertificateResponse,
    responses={404: _ERROR_RESPONSES[404]},
)
async def issue_certificate(
    generator: Generator,
    event_id: EventId,
    participant_id: ParticipantId,
) -> CertificateResponse:
    """Mark a generated certificate as delivered to the participant."""
    try:
        record = await generator.mark_issued(event_id, participant_id)
    except CertificateNotFoundError as e:
        raise _to_http_exception(e) from e
    return CertificateResponse.model_validate(record)
