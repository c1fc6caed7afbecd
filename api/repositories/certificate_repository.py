"""Repository for generated certificate records."""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import CertificateState, GeneratedCertificate
from repositories.utils import log_slow_query, upsert_on_conflict
from services.contracts import CertificateRecord, DocumentHandle

# A certificate is identified by (event, participant); regeneration keeps its
# number and creation time and rewrites every other column.
_KEY_COLUMNS = ("event_id", "participant_id")
_PRESERVED_COLUMNS = ("certificate_number", "created_at")


class CertificateRepository:
    """Repository for GeneratedCertificate CRUD operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("certificates.get")
    async def get(
        self,
        event_id: int,
        participant_id: int,
    ) -> GeneratedCertificate | None:
        result = await self.db.execute(
            select(GeneratedCertificate)
            .where(
                GeneratedCertificate.event_id == event_id,
                GeneratedCertificate.participant_id == participant_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @log_slow_query("certificates.list_by_event")
    async def list_by_event(
        self,
        event_id: int,
    ) -> Sequence[GeneratedCertificate]:
        """All certificates for an event, ordered by participant."""
        result = await self.db.execute(
            select(GeneratedCertificate)
            .where(GeneratedCertificate.event_id == event_id)
            .order_by(GeneratedCertificate.participant_id)
        )
        return result.scalars().all()

    @log_slow_query("certificates.upsert")
    async def upsert(
        self,
        event_id: int,
        participant_id: int,
        *,
        certificate_number: str,
        certificate_type: str,
        recipient_name: str,
        recipient_email: str,
        document_key: str,
        content_type: str,
        byte_size: int,
        sha256: str,
        render_payload: dict[str, Any],
    ) -> GeneratedCertificate:
        """Insert or overwrite the certificate for (event, participant).

        Overwriting resets the state to generated and clears issued_at.
        Calls flush() but does NOT commit; the caller owns the transaction.
        """
        now = datetime.now(UTC)
        values = {
            "event_id": event_id,
            "participant_id": participant_id,
            "certificate_number": certificate_number,
            "certificate_type": certificate_type,
            "state": CertificateState.GENERATED,
            "recipient_name": recipient_name,
            "recipient_email": recipient_email,
            "document_key": document_key,
            "content_type": content_type,
            "byte_size": byte_size,
            "sha256": sha256,
            "render_payload": render_payload,
            "generated_at": now,
            "issued_at": None,
            "created_at": now,
            "updated_at": now,
        }

        handled = await upsert_on_conflict(
            self.db,
            GeneratedCertificate,
            values,
            conflict_columns=_KEY_COLUMNS,
            preserve=_PRESERVED_COLUMNS,
        )
        if handled:
            certificate = await self.get(event_id, participant_id)
            assert certificate is not None
            return certificate

        # Fallback: select then write
        certificate = await self.get(event_id, participant_id)
        if certificate is None:
            certificate = GeneratedCertificate(**values)
            self.db.add(certificate)
        else:
            for field, value in values.items():
                if field not in _KEY_COLUMNS + _PRESERVED_COLUMNS:
                    setattr(certificate, field, value)
        await self.db.flush()
        return certificate

    @log_slow_query("certificates.mark_issued")
    async def mark_issued(
        self,
        event_id: int,
        participant_id: int,
    ) -> GeneratedCertificate | None:
        """Transition generated -> issued. Issuing twice keeps the first time."""
        certificate = await self.get(event_id, participant_id)
        if certificate is None:
            return None
        if certificate.state != CertificateState.ISSUED:
            certificate.state = CertificateState.ISSUED
            certificate.issued_at = datetime.now(UTC)
            await self.db.flush()
        return certificate


def to_certificate_record(certificate: GeneratedCertificate) -> CertificateRecord:
    return CertificateRecord(
        event_id=certificate.event_id,
        participant_id=certificate.participant_id,
        certificate_number=certificate.certificate_number,
        certificate_type=certificate.certificate_type,
        state=CertificateState(certificate.state).value,
        recipient_name=certificate.recipient_name,
        recipient_email=certificate.recipient_email,
        document_key=certificate.document_key,
        content_type=certificate.content_type,
        byte_size=certificate.byte_size,
        sha256=certificate.sha256,
        render_payload=certificate.render_payload,
        generated_at=certificate.generated_at,
        issued_at=certificate.issued_at,
    )


class SqlCertificateRecordStore:
    """CertificateRecordStore over the database, one transaction per call.

    Each call opens its own short-lived session, so concurrent bulk workers
    never share a session.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

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
        async with self._session_maker() as session, session.begin():
            certificate = await CertificateRepository(session).upsert(
                event_id,
                participant_id,
                certificate_number=certificate_number,
                certificate_type=certificate_type,
                recipient_name=recipient_name,
                recipient_email=recipient_email,
                document_key=handle.key,
                content_type=handle.content_type,
                byte_size=handle.byte_size,
                sha256=handle.sha256,
                render_payload=render_payload,
            )
            return to_certificate_record(certificate)

    async def get(self, event_id: int, participant_id: int) -> CertificateRecord | None:
        async with self._session_maker() as session:
            certificate = await CertificateRepository(session).get(
                event_id, participant_id
            )
            return to_certificate_record(certificate) if certificate else None

    async def list_by_event(self, event_id: int) -> list[CertificateRecord]:
        async with self._session_maker() as session:
            certificates = await CertificateRepository(session).list_by_event(event_id)
            return [to_certificate_record(c) for c in certificates]

    async def mark_issued(
        self, event_id: int, participant_id: int
    ) -> CertificateRecord | None:
        async with self._session_maker() as session, session.begin():
            certificate = await CertificateRepository(session).mark_issued(
                event_id, participant_id
            )
            return to_certificate_record(certificate) if certificate else None
