"""SQLAlchemy models for certificate templates and generated certificates."""

from datetime import UTC, datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns.

    Use this for any model that needs audit timestamps.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class CertificateTemplateRecord(TimestampMixin, Base):
    """A stored certificate template.

    ``event_id`` NULL is the organisation-wide default; a row with an event id
    overrides the default for that event only. ``template`` always holds the
    normalized camelCase JSON form.
    """

    __tablename__ = "certificate_templates"
    __table_args__ = (
        Index("ix_certificate_templates_event_active", "event_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    template: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)


class CertificateState(str, PyEnum):
    """Lifecycle of a generated certificate. No row means not generated."""

    GENERATED = "generated"
    ISSUED = "issued"


class GeneratedCertificate(TimestampMixin, Base):
    """One rendered certificate per (event, participant).

    Regeneration overwrites the row in place; the unique constraint is what
    keeps concurrent writers from creating duplicates.
    """

    __tablename__ = "generated_certificates"
    __table_args__ = (
        UniqueConstraint(
            "event_id", "participant_id", name="uq_generated_certificate_participant"
        ),
        Index("ix_generated_certificates_event", "event_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(Integer, nullable=False)
    participant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    certificate_number: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    certificate_type: Mapped[str] = mapped_column(String(32), nullable=False)
    state: Mapped[CertificateState] = mapped_column(
        Enum(
            CertificateState,
            name="certificate_state",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=CertificateState.GENERATED,
    )
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    document_key: Mapped[str] = mapped_column(String(512), nullable=False)
    content_type: Mapped[str] = mapped_column(String(64), nullable=False)
    byte_size: Mapped[int] = mapped_column(Integer, nullable=False)
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    # RenderSpec tree, resolved text and placeholder values at generation time
    render_payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    issued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
