"""Certificate generation for event participants.

This module coordinates the generation pipeline:
- template lookup and normalization
- binding the participant (certificate number, issue date)
- placeholder resolution and layout
- export through the document exporter
- persisting the certificate record

Single generation raises on failure. Bulk generation isolates failures per
participant and always returns a complete ``BulkResult``.

Routes should delegate all certificate business logic to this module.
"""

import asyncio
import logging
import secrets
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import PurePosixPath
from typing import Any

from core.wide_event import set_wide_event_fields, set_wide_event_nested
from rendering.layout import RenderSpec, render
from schemas import CertificateTemplate, ParticipantBinding, ResolvedText
from services.contracts import (
    CertificateRecord,
    CertificateRecordStore,
    DocumentExporter,
    DocumentHandle,
    ExportError,
    RegistrationSource,
    TemplateStore,
)
from services.placeholders_service import (
    SAMPLE_BINDING,
    placeholder_values,
    resolve_template_text,
)
from services.templates_service import (
    find_unknown_placeholders,
    get_effective_template,
    normalize_template,
)

logger = logging.getLogger(__name__)


class CertificateGenerationError(Exception):
    """Base class for generation failures tied to one participant."""

    def __init__(self, message: str, *, event_id: int, participant_id: int) -> None:
        super().__init__(message)
        self.event_id = event_id
        self.participant_id = participant_id


class ParticipantNotFoundError(CertificateGenerationError):
    """Participant is not registered for the event, or is not eligible."""

    def __init__(self, event_id: int, participant_id: int) -> None:
        super().__init__(
            f"Participant {participant_id} is not an eligible participant "
            f"of event {event_id}",
            event_id=event_id,
            participant_id=participant_id,
        )


class IncompleteBindingError(CertificateGenerationError):
    """Participant data lacks a field the certificate cannot be rendered without."""

    def __init__(self, event_id: int, participant_id: int, missing: list[str]) -> None:
        super().__init__(
            f"Missing required fields: {', '.join(missing)}",
            event_id=event_id,
            participant_id=participant_id,
        )
        self.missing = missing


class CertificateNotFoundError(CertificateGenerationError):
    """No certificate has been generated for this participant yet."""

    def __init__(self, event_id: int, participant_id: int) -> None:
        super().__init__(
            f"No certificate generated for participant {participant_id} "
            f"of event {event_id}",
            event_id=event_id,
            participant_id=participant_id,
        )


@dataclass(frozen=True)
class BulkFailure:
    participant_id: int
    reason: str


@dataclass
class BulkResult:
    """Outcome of a bulk run.

    ``generated`` counts participants whose certificate was (re)generated by
    this run, including ones that already had a certificate before it.
    """

    event_id: int
    eligible: int
    generated: int = 0
    failed: list[BulkFailure] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    cancelled: bool = False


@dataclass(frozen=True)
class Preview:
    template: CertificateTemplate
    resolved: ResolvedText
    spec: RenderSpec
    unknown_placeholders: list[str]


def generate_certificate_number(event_id: int, participant_id: int) -> str:
    """EVT-{event}-{participant}-{random}, e.g. EVT-0007-0042-9F3A."""
    return (
        f"EVT-{event_id:04d}-{participant_id:04d}-{secrets.token_hex(2).upper()}"
    )


def _utc_today() -> date:
    return datetime.now(UTC).date()


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, CertificateGenerationError):
        return str(exc)
    if isinstance(exc, ExportError):
        return f"Export failed: {exc}"
    return f"Unexpected error: {type(exc).__name__}"


class CertificateGenerator:
    """Generates certificates through the injected collaborators.

    Generation for the same (event, participant) key is serialized with a
    per-key lock; different keys run independently.
    """

    def __init__(
        self,
        *,
        templates: TemplateStore,
        registrations: RegistrationSource,
        exporter: DocumentExporter,
        records: CertificateRecordStore,
        max_concurrency: int = 5,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._templates = templates
        self._registrations = registrations
        self._exporter = exporter
        self._records = records
        self._max_concurrency = max_concurrency
        self._today = today
        self._key_locks: dict[tuple[int, int], _KeyLock] = {}

    @asynccontextmanager
    async def _locked(
        self, event_id: int, participant_id: int
    ) -> AsyncIterator[None]:
        """Hold the key's lock. The entry is dropped once nobody holds or awaits it."""
        key = (event_id, participant_id)
        entry = self._key_locks.get(key)
        if entry is None:
            entry = self._key_locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._key_locks[key]

    async def generate_one(self, event_id: int, participant_id: int) -> CertificateRecord:
        """Generate (or regenerate) one participant's certificate.

        Raises:
            ParticipantNotFoundError: not an eligible participant of the event
            IncompleteBindingError: participant data lacks a required field
            ExportError: the document could not be produced; not retried here
        """
        binding = await self._registrations.get_participant(event_id, participant_id)
        if binding is None:
            raise ParticipantNotFoundError(event_id, participant_id)

        template = await get_effective_template(self._templates, event_id)
        record = await self._generate(template, binding)
        set_wide_event_fields(
            event_id=event_id,
            participant_id=participant_id,
            certificate_number=record.certificate_number,
        )
        return record

    async def _generate(
        self, template: CertificateTemplate, binding: ParticipantBinding
    ) -> CertificateRecord:
        event_id, participant_id = binding.event_id, binding.participant_id

        missing = binding.missing_fields()
        if missing:
            raise IncompleteBindingError(event_id, participant_id, missing)

        async with self._locked(event_id, participant_id):
            existing = await self._records.get(event_id, participant_id)
            number = (
                existing.certificate_number
                if existing is not None
                else generate_certificate_number(event_id, participant_id)
            )
            bound = binding.model_copy(
                update={"certificate_number": number, "issue_date": self._today()}
            )
            resolved = resolve_template_text(template, bound)
            spec = render(template, resolved)

            handle = await self._exporter.export(
                spec, filename=f"event-{event_id:04d}/{number}"
            )
            record = await self._records.upsert(
                event_id=event_id,
                participant_id=participant_id,
                certificate_number=number,
                certificate_type=template.certificate_type,
                recipient_name=bound.full_name,
                recipient_email=bound.email,
                handle=handle,
                render_payload=_render_payload(template, bound, resolved, spec),
            )

        logger.info(
            "certificate.generated",
            extra={
                "event_id": event_id,
                "participant_id": participant_id,
                "certificate_number": number,
                "regenerated": existing is not None,
                "byte_size": handle.byte_size,
            },
        )
        return record

    async def generate_bulk(
        self,
        event_id: int,
        *,
        cancel: asyncio.Event | None = None,
        deadline_seconds: float | None = None,
    ) -> BulkResult:
        """Generate certificates for every eligible participant of an event.

        At most ``max_concurrency`` participants are in flight at once. A
        failure is recorded in ``failed`` and never stops the batch. Setting
        ``cancel`` (or reaching ``deadline_seconds``) stops dispatching; the
        in-flight participants finish and the rest are listed in ``skipped``.
        The result is returned only after every dispatched participant is done.
        """
        roster = await self._registrations.list_eligible_participants(event_id)
        # One attempt per participant even if the roster repeats someone
        seen: set[int] = set()
        participants: list[ParticipantBinding] = []
        for binding in roster:
            if binding.participant_id not in seen:
                seen.add(binding.participant_id)
                participants.append(binding)

        template = await get_effective_template(self._templates, event_id)
        result = BulkResult(event_id=event_id, eligible=len(participants))

        logger.info(
            "certificate.bulk.started",
            extra={
                "event_id": event_id,
                "eligible": result.eligible,
                "max_concurrency": self._max_concurrency,
            },
        )

        cancel = cancel or asyncio.Event()
        deadline_handle = None
        if deadline_seconds:
            loop = asyncio.get_running_loop()
            deadline_handle = loop.call_later(deadline_seconds, cancel.set)

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _worker(binding: ParticipantBinding) -> None:
            try:
                await self._generate(template, binding)
            except Exception as e:
                # Per-participant isolation: record and carry on
                result.failed.append(
                    BulkFailure(binding.participant_id, _failure_reason(e))
                )
                log = logger.warning
                if not isinstance(e, CertificateGenerationError | ExportError):
                    log = logger.exception
                log(
                    "certificate.bulk.participant_failed",
                    extra={
                        "event_id": event_id,
                        "participant_id": binding.participant_id,
                        "reason": str(e),
                    },
                )
            else:
                result.generated += 1
            finally:
                semaphore.release()

        try:
            async with asyncio.TaskGroup() as tg:
                for index, binding in enumerate(participants):
                    await semaphore.acquire()
                    if cancel.is_set():
                        semaphore.release()
                        result.cancelled = True
                        result.skipped = [
                            b.participant_id for b in participants[index:]
                        ]
                        break
                    tg.create_task(_worker(binding))
        finally:
            if deadline_handle is not None:
                deadline_handle.cancel()

        result.failed.sort(key=lambda f: f.participant_id)

        logger.info(
            "certificate.bulk.completed",
            extra={
                "event_id": event_id,
                "eligible": result.eligible,
                "generated": result.generated,
                "failed": len(result.failed),
                "skipped": len(result.skipped),
                "cancelled": result.cancelled,
            },
        )
        set_wide_event_nested(
            "bulk",
            event_id=event_id,
            eligible=result.eligible,
            generated=result.generated,
            failed=len(result.failed),
            skipped=len(result.skipped),
        )
        return result

    async def download_certificate(
        self, event_id: int, participant_id: int
    ) -> DocumentHandle:
        """Handle to the stored document for a generated certificate."""
        record = await self.get_certificate(event_id, participant_id)
        suffix = PurePosixPath(record.document_key).suffix
        return record.document_handle(
            filename=f"certificate-{record.certificate_number}{suffix}"
        )

    async def open_document(self, handle: DocumentHandle) -> bytes:
        return await self._exporter.open(handle)

    async def mark_issued(self, event_id: int, participant_id: int) -> CertificateRecord:
        """Record that the certificate was delivered to the participant."""
        async with self._locked(event_id, participant_id):
            record = await self._records.mark_issued(event_id, participant_id)
        if record is None:
            raise CertificateNotFoundError(event_id, participant_id)
        logger.info(
            "certificate.issued",
            extra={"event_id": event_id, "participant_id": participant_id},
        )
        return record

    async def get_certificate(
        self, event_id: int, participant_id: int
    ) -> CertificateRecord:
        record = await self._records.get(event_id, participant_id)
        if record is None:
            raise CertificateNotFoundError(event_id, participant_id)
        return record

    async def list_certificates(self, event_id: int) -> list[CertificateRecord]:
        return await self._records.list_by_event(event_id)

    def preview_render(
        self,
        template: Any,
        sample: ParticipantBinding | None = None,
    ) -> Preview:
        return render_preview(template, sample, today=self._today)


def render_preview(
    template: Any,
    sample: ParticipantBinding | None = None,
    *,
    today: Callable[[], date] = _utc_today,
) -> Preview:
    """Render an unsaved template against a sample participant.

    Touches no stored state. Missing number and issue date on the sample
    get stable stand-ins so repeated previews are identical.
    """
    normalized = normalize_template(template)
    binding = sample or SAMPLE_BINDING
    updates: dict[str, Any] = {}
    if not binding.certificate_number:
        updates["certificate_number"] = (
            f"EVT-{binding.event_id:04d}-{binding.participant_id:04d}-0000"
        )
    if binding.issue_date is None:
        updates["issue_date"] = today()
    if updates:
        binding = binding.model_copy(update=updates)

    resolved = resolve_template_text(normalized, binding)
    return Preview(
        template=normalized,
        resolved=resolved,
        spec=render(normalized, resolved),
        unknown_placeholders=find_unknown_placeholders(normalized),
    )


def _render_payload(
    template: CertificateTemplate,
    binding: ParticipantBinding,
    resolved: ResolvedText,
    spec: RenderSpec,
) -> dict[str, Any]:
    """What was rendered, kept with the record for audit and re-export."""
    return {
        "template": template.to_wire(),
        "resolved": resolved.model_dump(by_alias=True),
        "placeholders": placeholder_values(binding),
        "renderSpec": spec.to_dict(),
    }
