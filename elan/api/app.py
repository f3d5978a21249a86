"""
FastAPI application for the Elan platform.

This is the HTTP API the publication editor and export screens talk to.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel, EmailStr, Field

from elan.api.state import AppState, get_state
from elan.auth import AuthContext, Capability, auth_router, require
from elan.config import get_settings
from elan.core.blocks import ParentBlock, serialize_content
from elan.core.models import (
    AccessLevel,
    BackupType,
    Event,
    Location,
    LocationPublicationStatus,
    Publication,
    PublicationStatus,
    Umoor,
    UserRole,
)
from elan.export import (
    ArchiveError,
    EmailTemplateOptions,
    ExportFailedError,
    ExportFormat,
    ExportOptions,
    PageSize,
    RenderError,
    TemplateStyle,
    generate_email_template,
    render_publication,
)
from elan.export.renderer import resolve_blocks
from elan.integrations.compression import CompressionError
from elan.resources import TemplateNotFoundError
from elan.storage import ConflictError, NotFoundError, StorageError, create_local_storage

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup app resources."""
    settings = get_settings()

    from elan.integrations.sentry import init_sentry
    init_sentry()

    # Tests install their own state before startup
    if getattr(app.state, "elan", None) is None:
        app.state.elan = AppState(create_local_storage(settings.data_dir))

    logger.info(f"Elan API starting in {settings.environment} mode")

    yield

    logger.info("Elan API shutting down")


# =============================================================================
# App Setup
# =============================================================================


app = FastAPI(
    title="Elan API",
    description="Multi-location event publications: editing, merging and export",
    version="0.1.0",
    lifespan=lifespan,
)


# CORS
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Export-Summary", "X-Export-Failures"],
)

app.include_router(auth_router)


# =============================================================================
# Error handling
# =============================================================================


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"{request.method} {request.url.path}: {exc.message} (code={exc.code})")
    return JSONResponse(status_code=500, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(ExportFailedError)
async def export_failed_handler(request: Request, exc: ExportFailedError):
    return JSONResponse(
        status_code=422,
        content={"detail": exc.message, "failures": [f.to_dict() for f in exc.failures]},
    )


@app.exception_handler(ArchiveError)
async def archive_error_handler(request: Request, exc: ArchiveError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(RenderError)
async def render_error_handler(request: Request, exc: RenderError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(TemplateNotFoundError)
async def template_not_found_handler(request: Request, exc: TemplateNotFoundError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(CompressionError)
async def compression_error_handler(request: Request, exc: CompressionError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# =============================================================================
# Request/Response Models
# =============================================================================


class CreateEventRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    start_date: date | None = None
    end_date: date | None = None


class UpdateEventRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class CreateLocationRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    timezone: str = "UTC"
    logo_url: str | None = None
    is_host: bool = False


class UpdateLocationRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    timezone: str | None = None
    logo_url: str | None = None
    is_host: bool | None = None


class UmoorRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    order_preference: int = 0


class UpdateUmoorRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    order_preference: int | None = None


class UmoorOrderRequest(BaseModel):
    orders: dict[str, int]


class CreatePublicationRequest(BaseModel):
    title: str = "Untitled Publication"
    publication_date: date
    content: list[ParentBlock] = Field(default_factory=list)


class UpdatePublicationRequest(BaseModel):
    title: str | None = None
    publication_date: date | None = None
    content: list[ParentBlock] | None = None


class StatusRequest(BaseModel):
    status: PublicationStatus


class LocationStatusRequest(BaseModel):
    status: LocationPublicationStatus
    content: str | None = None


class FeaturedRequest(BaseModel):
    is_featured: bool = True


class InvitationRequest(BaseModel):
    email: EmailStr
    role: UserRole = UserRole.VIEWER
    event_id: str | None = None


class RoleRequest(BaseModel):
    role: UserRole


class AccessRequest(BaseModel):
    access_level: AccessLevel
    expires_at: datetime | None = None


class BulkAccessRequest(BaseModel):
    user_ids: list[str]
    access_level: AccessLevel


class MediaUsageRequest(BaseModel):
    publication_id: str | None = None
    location_id: str | None = None
    usage_type: str = "content"


class OptimizeRequest(BaseModel):
    # Unset values fall back to the event's compression settings
    max_width: int | None = Field(default=None, gt=0)
    quality: int | None = Field(default=None, ge=1, le=100)


class CompressionSettingsRequest(BaseModel):
    auto_compress: bool | None = None
    quality_images: int | None = Field(default=None, ge=1, le=100)
    quality_thumbnails: int | None = Field(default=None, ge=1, le=100)
    enable_webp: bool | None = None
    enable_progressive: bool | None = None
    max_width: int | None = Field(default=None, gt=0)
    max_height: int | None = Field(default=None, gt=0)


class BackupRequest(BaseModel):
    backup_type: BackupType = BackupType.FULL


class QuotaRequest(BaseModel):
    quota_bytes: int = Field(gt=0)
    warning_threshold: float = Field(default=0.8, gt=0, le=1)


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "elan-api"}


# =============================================================================
# Events
# =============================================================================


@app.get("/events")
async def list_events(
    ctx: AuthContext = Depends(require(Capability.EVENT_READ)),
    state: AppState = Depends(get_state),
):
    """Events newest first, with their location counts."""
    return await state.events.list_with_location_count()


@app.post("/events", status_code=201)
async def create_event(
    data: CreateEventRequest,
    ctx: AuthContext = Depends(require(Capability.EVENT_MANAGE)),
    state: AppState = Depends(get_state),
):
    event = await state.events.create(Event(**data.model_dump(), created_by=ctx.user_id))
    return _dump(event)


@app.get("/events/{event_id}")
async def get_event(
    event_id: str,
    ctx: AuthContext = Depends(require(Capability.EVENT_READ)),
    state: AppState = Depends(get_state),
):
    return _dump(await state.events.require(event_id))


@app.patch("/events/{event_id}")
async def update_event(
    event_id: str,
    data: UpdateEventRequest,
    ctx: AuthContext = Depends(require(Capability.EVENT_MANAGE)),
    state: AppState = Depends(get_state),
):
    return _dump(await state.events.update(event_id, data.model_dump(exclude_unset=True)))


@app.delete("/events/{event_id}", status_code=204)
async def delete_event(
    event_id: str,
    ctx: AuthContext = Depends(require(Capability.EVENT_MANAGE)),
    state: AppState = Depends(get_state),
):
    if not await state.events.delete(event_id):
        raise HTTPException(status_code=404, detail="Event not found")


# =============================================================================
# Locations
# =============================================================================


@app.get("/events/{event_id}/locations")
async def list_locations(
    event_id: str,
    ctx: AuthContext = Depends(require(Capability.LOCATION_READ)),
    state: AppState = Depends(get_state),
):
    return [_dump(loc) for loc in await state.locations.list_for_event(event_id)]


@app.get("/events/{event_id}/host-location")
async def get_host_location(
    event_id: str,
    ctx: AuthContext = Depends(require(Capability.LOCATION_READ)),
    state: AppState = Depends(get_state),
):
    host = await state.locations.get_host_location(event_id)
    return _dump(host) if host else None


@app.post("/events/{event_id}/locations", status_code=201)
async def create_location(
    event_id: str,
    data: CreateLocationRequest,
    ctx: AuthContext = Depends(require(Capability.LOCATION_MANAGE)),
    state: AppState = Depends(get_state),
):
    await state.events.require(event_id)
    location = await state.locations.create(Location(event_id=event_id, **data.model_dump()))
    return _dump(location)


@app.get("/locations/{location_id}")
async def get_location(
    location_id: str,
    ctx: AuthContext = Depends(require(Capability.LOCATION_READ)),
    state: AppState = Depends(get_state),
):
    return _dump(await state.locations.require(location_id))


@app.patch("/locations/{location_id}")
async def update_location(
    location_id: str,
    data: UpdateLocationRequest,
    ctx: AuthContext = Depends(require(Capability.LOCATION_MANAGE)),
    state: AppState = Depends(get_state),
):
    """Setting `is_host` clears it on the event's other locations."""
    return _dump(await state.locations.update(location_id, data.model_dump(exclude_unset=True)))


@app.delete("/locations/{location_id}", status_code=204)
async def delete_location(
    location_id: str,
    ctx: AuthContext = Depends(require(Capability.EVENT_MANAGE)),
    state: AppState = Depends(get_state),
):
    if not await state.locations.delete(location_id):
        raise HTTPException(status_code=404, detail="Location not found")


# =============================================================================
# Umoors
# =============================================================================


@app.get("/umoors")
async def list_umoors(
    ctx: AuthContext = Depends(require()),
    state: AppState = Depends(get_state),
):
    return [_dump(u) for u in await state.umoors.list()]


@app.post("/umoors", status_code=201)
async def create_umoor(
    data: UmoorRequest,
    ctx: AuthContext = Depends(require(Capability.UMOOR_MANAGE)),
    state: AppState = Depends(get_state),
):
    return _dump(await state.umoors.create(Umoor(**data.model_dump(), created_by=ctx.user_id)))


@app.patch("/umoors/{umoor_id}")
async def update_umoor(
    umoor_id: str,
    data: UpdateUmoorRequest,
    ctx: AuthContext = Depends(require(Capability.UMOOR_MANAGE)),
    state: AppState = Depends(get_state),
):
    return _dump(await state.umoors.update(umoor_id, data.model_dump(exclude_unset=True)))


@app.put("/umoors/order")
async def reorder_umoors(
    data: UmoorOrderRequest,
    ctx: AuthContext = Depends(require(Capability.UMOOR_MANAGE)),
    state: AppState = Depends(get_state),
):
    await state.umoors.update_bulk_orders(data.orders)
    return [_dump(u) for u in await state.umoors.list()]


@app.post("/umoors/{umoor_id}/logo")
async def upload_umoor_logo(
    umoor_id: str,
    file: UploadFile = File(...),
    ctx: AuthContext = Depends(require(Capability.UMOOR_MANAGE)),
    state: AppState = Depends(get_state),
):
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Logo must be an image")
    umoor = await state.umoors.upload_logo(
        state.storage.content, umoor_id, file.filename or "logo.png", await file.read(), file.content_type
    )
    return _dump(umoor)


@app.delete("/umoors/{umoor_id}", status_code=204)
async def delete_umoor(
    umoor_id: str,
    ctx: AuthContext = Depends(require(Capability.UMOOR_MANAGE)),
    state: AppState = Depends(get_state),
):
    if not await state.umoors.delete(umoor_id):
        raise HTTPException(status_code=404, detail="Umoor not found")


# =============================================================================
# Publications
# =============================================================================


@app.get("/events/{event_id}/publications")
async def list_event_publications(
    event_id: str,
    publication_date: date | None = Query(default=None, alias="date"),
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_READ)),
    state: AppState = Depends(get_state),
):
    """All locations' publications, featured first then newest first."""
    if publication_date:
        publications = await state.publications.list_by_event_and_date(event_id, publication_date)
    else:
        publications = await state.publications.list_by_event(event_id)
    return [_dump(p) for p in publications]


@app.get("/locations/{location_id}/publications")
async def list_location_publications(
    location_id: str,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_READ)),
    state: AppState = Depends(get_state),
):
    return [_dump(p) for p in await state.publications.list_by_location(location_id)]


@app.post("/locations/{location_id}/publications", status_code=201)
async def create_publication(
    location_id: str,
    data: CreatePublicationRequest,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_EDIT)),
    state: AppState = Depends(get_state),
):
    location = await state.locations.require(location_id)
    publication = await state.publications.create(Publication(
        event_id=location.event_id,
        location_id=location_id,
        title=data.title,
        publication_date=data.publication_date,
        content=serialize_content(data.content),
        created_by=ctx.user_id,
    ))
    return _dump(publication)


@app.get("/locations/{location_id}/publications/{publication_id}")
async def get_publication(
    location_id: str,
    publication_id: str,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_READ)),
    state: AppState = Depends(get_state),
):
    return _dump(await _publication_at(state, location_id, publication_id))


@app.patch("/locations/{location_id}/publications/{publication_id}")
async def update_publication(
    location_id: str,
    publication_id: str,
    data: UpdatePublicationRequest,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_EDIT)),
    state: AppState = Depends(get_state),
):
    await _publication_at(state, location_id, publication_id)
    updates = data.model_dump(exclude_unset=True, exclude={"content"})
    if data.content is not None:
        updates["content"] = serialize_content(data.content)
    return _dump(await state.publications.update(publication_id, updates))


@app.put("/locations/{location_id}/publications/{publication_id}/status")
async def update_publication_status(
    location_id: str,
    publication_id: str,
    data: StatusRequest,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_PUBLISH)),
    state: AppState = Depends(get_state),
):
    await _publication_at(state, location_id, publication_id)
    return _dump(await state.publications.update_status(publication_id, data.status))


@app.put("/locations/{location_id}/publications/{publication_id}/featured")
async def toggle_featured(
    location_id: str,
    publication_id: str,
    data: FeaturedRequest,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_PUBLISH)),
    state: AppState = Depends(get_state),
):
    """At most one publication per location is featured."""
    await _publication_at(state, location_id, publication_id)
    return _dump(await state.publications.toggle_featured(publication_id, data.is_featured))


@app.put("/locations/{location_id}/publications/{publication_id}/location-status")
async def set_location_status(
    location_id: str,
    publication_id: str,
    data: LocationStatusRequest,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_EDIT)),
    state: AppState = Depends(get_state),
):
    """Per-location sign-off (draft, mark_as_ready, archived)."""
    if data.content is not None:
        record = await state.publications.set_location_content(
            publication_id, location_id, data.content, data.status
        )
    else:
        record = await state.publications.set_location_status(publication_id, location_id, data.status)

    if data.status == LocationPublicationStatus.MARK_AS_READY:
        await _notify_ready(state, publication_id, location_id)
    return _dump(record)


async def _notify_ready(state: AppState, publication_id: str, location_id: str) -> None:
    """Email the admins that a location signed off a publication."""
    publication = await state.publications.require(publication_id)
    location = await state.locations.require(location_id)
    admins = await state.profiles.list({"role": UserRole.ADMIN.value})
    for admin in admins:
        if not admin.is_active:
            continue
        await state.email_service.send_publication_ready(
            email=admin.email,
            title=publication.title,
            location_name=location.name,
            publication_date=publication.publication_date.isoformat(),
            publication_id=publication.id,
        )


@app.delete("/locations/{location_id}/publications/{publication_id}", status_code=204)
async def delete_publication(
    location_id: str,
    publication_id: str,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_PUBLISH)),
    state: AppState = Depends(get_state),
):
    await _publication_at(state, location_id, publication_id)
    await state.publications.delete(publication_id)


async def _publication_at(state: AppState, location_id: str, publication_id: str) -> Publication:
    publication = await state.publications.require(publication_id)
    if publication.location_id != location_id:
        raise HTTPException(status_code=404, detail="Publication not found at this location")
    return publication


# =============================================================================
# Export
# =============================================================================


async def _export_options(
    state: AppState,
    publication: Publication,
    location_id: str,
    fmt: ExportFormat,
    template: TemplateStyle,
    page_size: PageSize,
    include_metadata: bool,
) -> tuple[ExportOptions, list[Publication]]:
    location = await state.locations.require(location_id)
    event = await state.events.get(publication.event_id)
    host = await state.locations.get_host_location(publication.event_id)

    host_publications: list[Publication] = []
    if host and host.id != location_id:
        host_publications = await state.publications.list_by_event_and_date(
            publication.event_id, publication.publication_date
        )

    options = ExportOptions(
        format=fmt,
        template=template,
        page_size=page_size,
        include_metadata=include_metadata,
        location_id=location_id,
        host_location_id=host.id if host else None,
        include_global_content=host is not None and host.id != location_id,
        location_name=location.name,
        location_logo=location.logo_url,
        event_name=event.name if event else None,
    )
    return options, host_publications


@app.get("/locations/{location_id}/publications/{publication_id}/preview")
async def preview_publication(
    location_id: str,
    publication_id: str,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_READ)),
    state: AppState = Depends(get_state),
):
    """The merged block list this location will export."""
    publication = await _publication_at(state, location_id, publication_id)
    options, host_publications = await _export_options(
        state, publication, location_id, ExportFormat.HTML, TemplateStyle.PROFESSIONAL, PageSize.A4, False
    )
    return serialize_content(resolve_blocks(publication, options, host_publications))


@app.get("/locations/{location_id}/publications/{publication_id}/export")
async def export_publication(
    location_id: str,
    publication_id: str,
    format: ExportFormat = ExportFormat.HTML,
    template: TemplateStyle = TemplateStyle.PROFESSIONAL,
    page_size: PageSize = PageSize.A4,
    include_metadata: bool = True,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_EXPORT)),
    state: AppState = Depends(get_state),
):
    """One location's publication as HTML or PDF, with host content merged in."""
    publication = await _publication_at(state, location_id, publication_id)
    options, host_publications = await _export_options(
        state, publication, location_id, format, template, page_size, include_metadata
    )
    rendered = await asyncio.to_thread(
        render_publication, publication, options, host_publications, pdf_writer=state.pdf_writer
    )

    filename = f"{options.location_name}-{publication.title}.{format.extension}"
    return Response(
        content=rendered,
        media_type=format.media_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{_quote(filename)}"},
    )


@app.get("/locations/{location_id}/publications/{publication_id}/email", response_class=HTMLResponse)
async def export_email(
    location_id: str,
    publication_id: str,
    style: TemplateStyle = TemplateStyle.PROFESSIONAL,
    include_images: bool = True,
    use_base64_images: bool = False,
    dark_mode_compatible: bool = True,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_EXPORT)),
    state: AppState = Depends(get_state),
):
    publication = await _publication_at(state, location_id, publication_id)
    options, host_publications = await _export_options(
        state, publication, location_id, ExportFormat.HTML, style, PageSize.A4, False
    )
    email_options = EmailTemplateOptions(
        style=style,
        include_images=include_images,
        use_base64_images=use_base64_images,
        dark_mode_compatible=dark_mode_compatible,
    )
    return generate_email_template(publication, email_options, options, host_publications)


@app.get("/events/{event_id}/export")
async def export_event_day(
    event_id: str,
    publication_date: date = Query(alias="date"),
    format: ExportFormat = ExportFormat.HTML,
    template: TemplateStyle = TemplateStyle.PROFESSIONAL,
    ctx: AuthContext = Depends(require(Capability.PUBLICATION_EXPORT)),
    state: AppState = Depends(get_state),
):
    """
    Every location's publication for a date, one file per location, zipped.

    Locations that fail to render are listed in the X-Export-Failures header.
    """
    archive = await state.exporter.export_all_for_date(event_id, publication_date, format, template)
    return Response(
        content=archive.data,
        media_type="application/zip",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{_quote(archive.filename)}",
            "X-Export-Summary": json.dumps(archive.summary),
            "X-Export-Failures": json.dumps([f.to_dict() for f in archive.failures]),
        },
    )


def _quote(value: str) -> str:
    return quote(value, safe="")


# =============================================================================
# Team & Invitations
# =============================================================================


@app.post("/invitations", status_code=201)
async def create_invitation(
    data: InvitationRequest,
    ctx: AuthContext = Depends(require(Capability.TEAM_MANAGE)),
    state: AppState = Depends(get_state),
):
    """Invite someone; inviting the same email to the same event twice is a 409."""
    event = await state.events.get(data.event_id) if data.event_id else None
    inviter = await state.profiles.get(ctx.user_id)
    try:
        invitation = await state.invitations.invite(
            email=data.email,
            role=data.role,
            event_id=data.event_id,
            invited_by=ctx.user_id,
            inviter_name=inviter.full_name if inviter else None,
            event_name=event.name if event else None,
        )
    except ConflictError:
        raise HTTPException(status_code=409, detail=f"{data.email} has already been invited")
    return _dump(invitation)


@app.get("/invitations")
async def list_invitations(
    event_id: str | None = None,
    ctx: AuthContext = Depends(require(Capability.TEAM_READ)),
    state: AppState = Depends(get_state),
):
    if event_id:
        invitations = await state.invitations.list_for_event(event_id)
    else:
        invitations = await state.invitations.list()
    return [_dump(i) for i in invitations]


@app.post("/invitations/{invitation_id}/resend")
async def resend_invitation(
    invitation_id: str,
    ctx: AuthContext = Depends(require(Capability.TEAM_MANAGE)),
    state: AppState = Depends(get_state),
):
    inviter = await state.profiles.get(ctx.user_id)
    invitation = await state.invitations.resend(invitation_id, inviter.full_name if inviter else None)
    return _dump(invitation)


@app.delete("/invitations/{invitation_id}", status_code=204)
async def delete_invitation(
    invitation_id: str,
    ctx: AuthContext = Depends(require(Capability.TEAM_MANAGE)),
    state: AppState = Depends(get_state),
):
    if not await state.invitations.delete(invitation_id):
        raise HTTPException(status_code=404, detail="Invitation not found")


@app.get("/team")
async def list_team(
    ctx: AuthContext = Depends(require(Capability.TEAM_READ)),
    state: AppState = Depends(get_state),
):
    return [_dump(p) for p in await state.profiles.list()]


@app.put("/team/{user_id}/role")
async def update_team_role(
    user_id: str,
    data: RoleRequest,
    ctx: AuthContext = Depends(require(Capability.TEAM_MANAGE)),
    state: AppState = Depends(get_state),
):
    return _dump(await state.profiles.update_role(user_id, data.role))


@app.delete("/team/{user_id}", status_code=204)
async def remove_team_member(
    user_id: str,
    ctx: AuthContext = Depends(require(Capability.TEAM_MANAGE)),
    state: AppState = Depends(get_state),
):
    if user_id == ctx.user_id:
        raise HTTPException(status_code=400, detail="You cannot remove yourself")
    if not await state.profiles.delete(user_id):
        raise HTTPException(status_code=404, detail="Team member not found")


# =============================================================================
# Location Access
# =============================================================================


@app.get("/locations/{location_id}/access")
async def list_location_access(
    location_id: str,
    ctx: AuthContext = Depends(require(Capability.TEAM_READ)),
    state: AppState = Depends(get_state),
):
    return {
        "grants": [_dump(g) for g in await state.access.location_access(location_id)],
        "stats": await state.access.location_stats(location_id),
    }


@app.put("/locations/{location_id}/access/{user_id}")
async def grant_location_access(
    location_id: str,
    user_id: str,
    data: AccessRequest,
    ctx: AuthContext = Depends(require(Capability.TEAM_MANAGE)),
    state: AppState = Depends(get_state),
):
    await state.profiles.require(user_id)
    grant = await state.access.grant(user_id, location_id, data.access_level, ctx.user_id, data.expires_at)
    return _dump(grant)


@app.post("/locations/{location_id}/access")
async def bulk_grant_location_access(
    location_id: str,
    data: BulkAccessRequest,
    ctx: AuthContext = Depends(require(Capability.TEAM_MANAGE)),
    state: AppState = Depends(get_state),
):
    grants = await state.access.bulk_grant(data.user_ids, location_id, data.access_level, ctx.user_id)
    return [_dump(g) for g in grants]


@app.delete("/locations/{location_id}/access/{user_id}", status_code=204)
async def revoke_location_access(
    location_id: str,
    user_id: str,
    ctx: AuthContext = Depends(require(Capability.TEAM_MANAGE)),
    state: AppState = Depends(get_state),
):
    if not await state.access.revoke(user_id, location_id):
        raise HTTPException(status_code=404, detail="No access grant found")


# =============================================================================
# Media
# =============================================================================


@app.post("/events/{event_id}/media", status_code=201)
async def upload_media(
    event_id: str,
    file: UploadFile = File(...),
    alt_text: str = "",
    ctx: AuthContext = Depends(require(Capability.MEDIA_UPLOAD)),
    state: AppState = Depends(get_state),
):
    await state.events.require(event_id)
    media = await state.media.upload(
        user_id=ctx.user_id,
        event_id=event_id,
        file_name=file.filename or "upload",
        data=await file.read(),
        mime_type=file.content_type or "application/octet-stream",
        alt_text=alt_text,
    )
    return _dump(media)


@app.get("/events/{event_id}/media")
async def list_media(
    event_id: str,
    unused: bool = False,
    ctx: AuthContext = Depends(require(Capability.MEDIA_READ)),
    state: AppState = Depends(get_state),
):
    files = await state.media.unused(event_id) if unused else await state.media.list_for_event(event_id)
    return [_dump(m) for m in files]


@app.post("/media/{media_id}/usage", status_code=201)
async def track_media_usage(
    media_id: str,
    data: MediaUsageRequest,
    ctx: AuthContext = Depends(require(Capability.MEDIA_UPLOAD)),
    state: AppState = Depends(get_state),
):
    usage = await state.media.track_usage(media_id, data.publication_id, data.location_id, data.usage_type)
    return _dump(usage)


@app.post("/media/{media_id}/compress")
async def compress_media(
    media_id: str,
    data: OptimizeRequest,
    ctx: AuthContext = Depends(require(Capability.MEDIA_MANAGE)),
    state: AppState = Depends(get_state),
):
    media = await state.media.require(media_id)
    saved = await state.media.optimize_file(media, data.model_dump(exclude_none=True))
    return {"media": _dump(await state.media.require(media_id)), "bytes_saved": saved}


@app.delete("/media/{media_id}", status_code=204)
async def delete_media(
    media_id: str,
    ctx: AuthContext = Depends(require(Capability.MEDIA_MANAGE)),
    state: AppState = Depends(get_state),
):
    if not await state.media.remove(media_id):
        raise HTTPException(status_code=404, detail="Media file not found")


@app.post("/events/{event_id}/media/optimize", status_code=201)
async def optimize_event_media(
    event_id: str,
    data: OptimizeRequest,
    ctx: AuthContext = Depends(require(Capability.MEDIA_MANAGE)),
    state: AppState = Depends(get_state),
):
    """Run an optimization job over the event's unoptimized images."""
    job = await state.media.create_job(event_id, settings=data.model_dump(exclude_none=True), created_by=ctx.user_id)
    job = await state.media.run_optimization(job.id)
    return {**_dump(job), "progress": job.progress}


@app.get("/events/{event_id}/media/jobs")
async def list_media_jobs(
    event_id: str,
    ctx: AuthContext = Depends(require(Capability.MEDIA_READ)),
    state: AppState = Depends(get_state),
):
    return [{**_dump(j), "progress": j.progress} for j in await state.media.jobs.list_for_event(event_id)]


@app.get("/media/{media_id}/versions")
async def list_media_versions(
    media_id: str,
    ctx: AuthContext = Depends(require(Capability.MEDIA_READ)),
    state: AppState = Depends(get_state),
):
    await state.media.require(media_id)
    return [_dump(v) for v in await state.media.versions.list_for_file(media_id)]


@app.get("/events/{event_id}/media/settings")
async def get_compression_settings(
    event_id: str,
    ctx: AuthContext = Depends(require(Capability.MEDIA_READ)),
    state: AppState = Depends(get_state),
):
    return _dump(await state.media.compression_settings.for_event(event_id))


@app.put("/events/{event_id}/media/settings")
async def update_compression_settings(
    event_id: str,
    data: CompressionSettingsRequest,
    ctx: AuthContext = Depends(require(Capability.MEDIA_MANAGE)),
    state: AppState = Depends(get_state),
):
    await state.events.require(event_id)
    settings = await state.media.compression_settings.save_for_event(event_id, data.model_dump(exclude_none=True))
    return _dump(settings)


@app.post("/events/{event_id}/media/backups", status_code=201)
async def backup_event_media(
    event_id: str,
    data: BackupRequest,
    ctx: AuthContext = Depends(require(Capability.MEDIA_MANAGE)),
    state: AppState = Depends(get_state),
):
    """Run a full or incremental backup of the event's media."""
    await state.events.require(event_id)
    job = await state.media.create_backup_job(event_id, data.backup_type, created_by=ctx.user_id)
    return _dump(await state.media.run_backup(job.id))


@app.get("/events/{event_id}/media/backups")
async def list_backup_jobs(
    event_id: str,
    ctx: AuthContext = Depends(require(Capability.MEDIA_READ)),
    state: AppState = Depends(get_state),
):
    return [_dump(j) for j in await state.media.backups.list_for_event(event_id)]


# =============================================================================
# Storage usage
# =============================================================================


@app.get("/events/{event_id}/storage")
async def get_storage_summary(
    event_id: str,
    ctx: AuthContext = Depends(require(Capability.MEDIA_READ)),
    state: AppState = Depends(get_state),
):
    return await state.media.storage_summary(event_id)


@app.put("/events/{event_id}/storage/quota")
async def set_storage_quota(
    event_id: str,
    data: QuotaRequest,
    ctx: AuthContext = Depends(require(Capability.MEDIA_MANAGE)),
    state: AppState = Depends(get_state),
):
    await state.events.require(event_id)
    return _dump(await state.media.quotas.save_for_event(event_id, data.model_dump()))


@app.post("/events/{event_id}/storage/refresh")
async def refresh_storage_usage(
    event_id: str,
    ctx: AuthContext = Depends(require(Capability.MEDIA_MANAGE)),
    state: AppState = Depends(get_state),
):
    """Recount the event's usage and record today's snapshot."""
    await state.events.require(event_id)
    quota = await state.media.refresh_storage_usage(event_id)
    return {**_dump(quota), "used_fraction": quota.used_fraction, "near_limit": quota.near_limit}


@app.get("/events/{event_id}/storage/history")
async def get_storage_history(
    event_id: str,
    days: int = Query(default=30, ge=1, le=365),
    ctx: AuthContext = Depends(require(Capability.MEDIA_READ)),
    state: AppState = Depends(get_state),
):
    return [_dump(s) for s in await state.media.history.list_for_event(event_id, days=days)]
