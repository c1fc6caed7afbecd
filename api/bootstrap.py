"""Wiring of the certificate pipeline shared by the API and the CLI."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings
from repositories import SqlCertificateRecordStore, SqlTemplateStore
from services.certificates_service import CertificateGenerator
from services.export_service import FileSystemDocumentExporter
from services.registrations_service import HttpRegistrationSource


def build_certificate_generator(
    session_maker: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> CertificateGenerator:
    return CertificateGenerator(
        templates=SqlTemplateStore(session_maker),
        registrations=HttpRegistrationSource(settings.eligible_statuses),
        exporter=FileSystemDocumentExporter(
            settings.export_dir_path,
            fmt=settings.export_format,
            logo_href=settings.certificate_logo_url,
        ),
        records=SqlCertificateRecordStore(session_maker),
        max_concurrency=settings.bulk_max_concurrency,
    )
