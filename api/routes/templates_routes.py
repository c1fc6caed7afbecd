"""Certificate template endpoints: read, save, normalize, preview."""

from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from core.auth import require_admin
from core.config import get_settings
from core.ratelimit import GENERATE_LIMIT, limiter
from core.wide_event import set_wide_event_fields
from rendering.certificates import render_spec_to_svg
from routes.dependencies import Generator, Templates
from schemas import (
    PlaceholderResponse,
    PreviewRequest,
    PreviewResponse,
    TemplateResponse,
)
from services.placeholders_service import placeholder_catalog
from services.templates_service import (
    find_unknown_placeholders,
    get_effective_template,
    normalize_template,
    save_template,
)

router = APIRouter(
    prefix="/api/certificates/template",
    tags=["certificate-templates"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=TemplateResponse)
async def get_template(
    templates: Templates,
    event_id: int | None = Query(default=None, alias="eventId", ge=1),
) -> TemplateResponse:
    """Effective template: event override, organisation default, or built-in."""
    template = await get_effective_template(templates, event_id)
    return TemplateResponse(
        template=template.to_wire(),
        event_id=event_id,
        unknown_placeholders=find_unknown_placeholders(template),
    )


@router.put("", response_model=TemplateResponse)
async def put_template(
    templates: Templates,
    raw: dict[str, Any] = Body(...),
    event_id: int | None = Query(default=None, alias="eventId", ge=1),
) -> TemplateResponse:
    """Save a template. It is normalized first; invalid values are corrected."""
    template = await save_template(templates, raw, event_id)
    set_wide_event_fields(template_event_id=event_id)
    return TemplateResponse(
        template=template.to_wire(),
        event_id=event_id,
        unknown_placeholders=find_unknown_placeholders(template),
    )


@router.post("/normalize", response_model=TemplateResponse)
async def normalize(raw: dict[str, Any] = Body(...)) -> TemplateResponse:
    """Show what a partial template normalizes to, without saving it."""
    template = normalize_template(raw)
    return TemplateResponse(
        template=template.to_wire(),
        unknown_placeholders=find_unknown_placeholders(template),
    )


@router.get("/placeholders", response_model=list[PlaceholderResponse])
async def list_placeholders() -> list[PlaceholderResponse]:
    return [PlaceholderResponse(**item) for item in placeholder_catalog()]


@router.post(
    "/preview",
    response_model=PreviewResponse,
    responses={
        200: {
            "content": {"image/svg+xml": {}},
            "description": "RenderSpec as JSON, or SVG with ?format=svg",
        }
    },
)
@limiter.limit(GENERATE_LIMIT)
async def preview(
    request: Request,
    body: PreviewRequest,
    generator: Generator,
    fmt: Literal["json", "svg"] = Query(default="json", alias="format"),
) -> Response | PreviewResponse:
    """Render an unsaved template against a sample participant."""
    result = generator.preview_render(body.template, body.sample)

    if fmt == "svg":
        svg = render_spec_to_svg(
            result.spec,
            width=body.width,
            logo_href=get_settings().certificate_logo_url or None,
        )
        return Response(
            content=svg,
            media_type="image/svg+xml",
            headers={"Cache-Control": "no-store"},
        )

    spec = result.spec.scaled(body.width) if body.width else result.spec
    return PreviewResponse(
        render_spec=spec.to_dict(),
        resolved=result.resolved,
        unknown_placeholders=result.unknown_placeholders,
    )
