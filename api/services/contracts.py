"""Collaborator contracts for certificate generation.

The generator only depends on these protocols. Concrete adapters live in
``repositories`` (SQL stores), ``services.registrations_service`` (HTTP) and
``services.export_service`` (file system); tests substitute in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from rendering.layout import RenderSpec
from schemas import ParticipantBinding


@dataclass(frozen=True)
class DocumentHandle:
    """Where an exported certificate lives and how to serve it."""

    key: str
    content_type: str
    filename: str
    byte_size: int
    sha256: str


@dataclass(frozen=True)
class CertificateRecord:
    """DTO for a generated certificate (service-layer return type)."""

    event_id: int
    participant_id: int
    certificate_number: str
    certificate_type: str
    state: str
    recipient_name: str
    recipient_email: str
    document_key: str
    content_type: str
    byte_size: int
    sha256: str
    render_payload: dict[str, Any]
    generated_at: datetime
    issued_at: datetime | None

    def document_handle(self, filename: str) -> DocumentHandle:
        return DocumentHandle(
            key=self.document_key,
            content_type=self.content_type,
            filename=filename,
            byte_size=self.byte_size,
            sha256=self.sha256,
        )


class ExportError(Exception):
    """Raised by a DocumentExporter when a document cannot be produced."""


class RegistrationSourceUnavailableError(Exception):
    """Raised when the registrations service cannot be reached."""


class TemplateStore(Protocol):
    async def get_template(self, event_id: int | None = None) -> dict[str, Any] | None:
        """Effective raw template for the event, or None when nothing is stored."""
        ...

    async def put_template(
        self, raw: dict[str, Any], event_id: int | None = None
    ) -> dict[str, Any]: ...


class RegistrationSource(Protocol):
    async def list_eligible_participants(
        self, event_id: int
    ) -> list[ParticipantBinding]: ...

    async def get_participant(
        self, event_id: int, participant_id: int
    ) -> ParticipantBinding | None: ...


class DocumentExporter(Protocol):
    async def export(self, spec: RenderSpec, *, filename: str) -> DocumentHandle:
        """Produce and store the document. Raises ExportError on failure."""
        ...

    async def open(self, handle: DocumentHandle) -> bytes: ...


class CertificateRecordStore(Protocol):
    async def upsert(
        self,
        *,
        event_id: int,
        participant_id: int,
        certificate_number: str,
        certificate_type: str,
        recipient_name: str,
        recipient_email: str,
        handle: DocumentHandle,
        render_payload: dict[str, Any],
    ) -> CertificateRecord:
        """Insert or overwrite the row for the key; state resets to generated."""
        ...

    async def get(
        self, event_id: int, participant_id: int
    ) -> CertificateRecord | None: ...

    async def list_by_event(self, event_id: int) -> list[CertificateRecord]: ...

    async def mark_issued(
        self, event_id: int, participant_id: int
    ) -> CertificateRecord | None: ...
