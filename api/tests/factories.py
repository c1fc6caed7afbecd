"""Factory Boy factories for generating test data.

Factories provide a clean way to create test objects with sensible defaults.
Override specific fields as needed in tests.

Usage:
    # A participant binding, as the registrations service would return it
    binding = ParticipantBindingFactory.build(event_id=7)

    # A roster of ten participants for one event
    roster = ParticipantBindingFactory.build_batch(10, event_id=7)

    # A persisted certificate row
    cert = await create_async(GeneratedCertificateFactory, db_session)
"""

from datetime import UTC, date, datetime

import factory
from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession

from models import CertificateState, CertificateTemplateRecord, GeneratedCertificate
from schemas import ParticipantBinding

fake = Faker()


# =============================================================================
# Async Factory Helpers
# =============================================================================


async def create_async(
    factory_class: type[factory.Factory], db: AsyncSession, **kwargs
):
    """Create an instance using a factory and persist to database.

    Usage:
        cert = await create_async(GeneratedCertificateFactory, db_session)
    """
    instance = factory_class.build(**kwargs)
    db.add(instance)
    await db.flush()
    await db.refresh(instance)
    return instance


# =============================================================================
# Participant Binding Factory
# =============================================================================


class ParticipantBindingFactory(factory.Factory):
    """Factory for eligible participants with every required field present."""

    class Meta:
        model = ParticipantBinding

    event_id = 1
    participant_id = factory.Sequence(lambda n: n + 1)
    full_name = factory.LazyAttribute(lambda _: fake.name())
    email = factory.LazyAttribute(lambda _: fake.email())
    event_title = "Tech Summit"
    event_date = date(2025, 1, 10)
    event_city = factory.LazyAttribute(lambda _: fake.city())
    organizer_name = "Komunitas Cloud Indonesia"


class IncompleteBindingFactory(ParticipantBindingFactory):
    """Participant whose event date is unknown (cannot be rendered)."""

    event_date = None


# =============================================================================
# Certificate Factories
# =============================================================================


class GeneratedCertificateFactory(factory.Factory):
    """Factory for GeneratedCertificate rows."""

    class Meta:
        model = GeneratedCertificate

    event_id = 1
    participant_id = factory.Sequence(lambda n: n + 1)
    certificate_number = factory.LazyAttribute(
        lambda o: f"EVT-{o.event_id:04d}-{o.participant_id:04d}-"
        f"{fake.hexify('^^^^', upper=True)}"
    )
    certificate_type = "achievement"
    state = CertificateState.GENERATED
    recipient_name = factory.LazyAttribute(lambda _: fake.name())
    recipient_email = factory.LazyAttribute(lambda _: fake.email())
    document_key = factory.LazyAttribute(
        lambda o: f"event-{o.event_id:04d}/{o.certificate_number}.svg"
    )
    content_type = "image/svg+xml"
    byte_size = 2048
    sha256 = factory.LazyAttribute(lambda _: fake.sha256())
    render_payload = factory.LazyFunction(dict)
    generated_at = factory.LazyFunction(lambda: datetime.now(UTC))
    issued_at = None
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))


class CertificateTemplateRecordFactory(factory.Factory):
    """Factory for stored template rows (organisation default unless overridden)."""

    class Meta:
        model = CertificateTemplateRecord

    event_id = None
    is_active = True
    template = factory.LazyFunction(lambda: {"title": "CERTIFICATE"})
    created_at = factory.LazyFunction(lambda: datetime.now(UTC))
    updated_at = factory.LazyFunction(lambda: datetime.now(UTC))
