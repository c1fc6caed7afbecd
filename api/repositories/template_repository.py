"""Repository for stored certificate templates."""

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import CertificateTemplateRecord
from repositories.utils import log_slow_query


class TemplateRepository:
    """Repository for CertificateTemplateRecord operations."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("templates.get_active")
    async def get_active(self, event_id: int | None) -> CertificateTemplateRecord | None:
        """Newest active template for exactly this scope (None = org default)."""
        scope = (
            CertificateTemplateRecord.event_id.is_(None)
            if event_id is None
            else CertificateTemplateRecord.event_id == event_id
        )
        result = await self.db.execute(
            select(CertificateTemplateRecord)
            .where(scope, CertificateTemplateRecord.is_active.is_(True))
            .order_by(
                CertificateTemplateRecord.updated_at.desc(),
                CertificateTemplateRecord.id.desc(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_effective(self, event_id: int | None) -> CertificateTemplateRecord | None:
        """Event override if one is active, else the organisation default."""
        if event_id is not None:
            record = await self.get_active(event_id)
            if record is not None:
                return record
        return await self.get_active(None)

    @log_slow_query("templates.replace")
    async def replace(
        self,
        template: dict[str, Any],
        event_id: int | None,
    ) -> CertificateTemplateRecord:
        """Store a new active template for the scope, retiring the previous one.

        Old rows are kept inactive as history. Calls flush() but does NOT
        commit; the caller is responsible for transaction management.
        """
        scope = (
            CertificateTemplateRecord.event_id.is_(None)
            if event_id is None
            else CertificateTemplateRecord.event_id == event_id
        )
        await self.db.execute(
            update(CertificateTemplateRecord)
            .where(scope, CertificateTemplateRecord.is_active.is_(True))
            .values(is_active=False)
        )
        record = CertificateTemplateRecord(
            event_id=event_id,
            is_active=True,
            template=template,
        )
        self.db.add(record)
        await self.db.flush()
        return record


class SqlTemplateStore:
    """TemplateStore over the database, one short-lived session per call."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def get_template(self, event_id: int | None = None) -> dict[str, Any] | None:
        async with self._session_maker() as session:
            record = await TemplateRepository(session).get_effective(event_id)
            return dict(record.template) if record else None

    async def put_template(
        self, raw: dict[str, Any], event_id: int | None = None
    ) -> dict[str, Any]:
        async with self._session_maker() as session, session.begin():
            record = await TemplateRepository(session).replace(raw, event_id)
            return dict(record.template)
