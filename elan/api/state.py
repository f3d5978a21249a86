"""Application state shared by the routes."""

from __future__ import annotations

from fastapi import HTTPException, Request

from elan.export.bulk import BulkExporter
from elan.export.renderer import PdfWriter
from elan.integrations.compression import CompressionClient
from elan.integrations.email import EmailService
from elan.services import (
    EventService,
    InvitationService,
    LocationAccessService,
    LocationService,
    MediaService,
    ProfileService,
    PublicationService,
    UmoorService,
)
from elan.storage import StorageProvider


class AppState:
    """Application state - initialized at startup."""

    def __init__(
        self,
        storage: StorageProvider,
        email_service: EmailService | None = None,
        compression: CompressionClient | None = None,
        pdf_writer: PdfWriter | None = None,
    ):
        self.storage = storage
        self.email_service = email_service or EmailService()
        self.compression = compression or CompressionClient()
        self.pdf_writer = pdf_writer

        self.events = EventService(storage)
        self.locations = LocationService(storage)
        self.publications = PublicationService(storage)
        self.umoors = UmoorService(storage)
        self.profiles = ProfileService(storage)
        self.invitations = InvitationService(storage, self.email_service)
        self.access = LocationAccessService(storage)
        self.media = MediaService(storage, self.compression)

        self.exporter = BulkExporter(
            self.events,
            self.locations,
            self.publications,
            renderer=self._render,
        )

    def _render(self, publication, options, host_publications):
        from elan.export.renderer import render_publication

        return render_publication(publication, options, host_publications, pdf_writer=self.pdf_writer)


def get_state(request: Request) -> AppState:
    state = getattr(request.app.state, "elan", None)
    if state is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return state
