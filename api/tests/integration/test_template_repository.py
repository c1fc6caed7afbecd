"""Integration tests for repositories/template_repository.py."""

import pytest
from sqlalchemy import select

from models import CertificateTemplateRecord
from repositories.template_repository import SqlTemplateStore, TemplateRepository
from services.templates_service import get_effective_template, save_template
from tests.factories import CertificateTemplateRecordFactory, create_async

pytestmark = pytest.mark.integration


class TestTemplateRepository:
    async def test_nothing_stored(self, db_session):
        assert await TemplateRepository(db_session).get_effective(7) is None

    async def test_event_override_wins(self, db_session):
        await create_async(CertificateTemplateRecordFactory, db_session)
        await create_async(
            CertificateTemplateRecordFactory,
            db_session,
            event_id=7,
            template={"title": "EVENT 7"},
        )
        repo = TemplateRepository(db_session)

        assert (await repo.get_effective(7)).template == {"title": "EVENT 7"}
        assert (await repo.get_effective(8)).template == {"title": "CERTIFICATE"}
        assert (await repo.get_effective(None)).event_id is None

    async def test_inactive_rows_are_ignored(self, db_session):
        await create_async(
            CertificateTemplateRecordFactory, db_session, event_id=7, is_active=False
        )

        assert await TemplateRepository(db_session).get_effective(7) is None

    async def test_replace_keeps_history(self, db_session):
        repo = TemplateRepository(db_session)

        await repo.replace({"title": "V1"}, 7)
        await repo.replace({"title": "V2"}, 7)

        rows = (
            await db_session.execute(
                select(CertificateTemplateRecord)
                .where(CertificateTemplateRecord.event_id == 7)
                .order_by(CertificateTemplateRecord.id)
            )
        ).scalars().all()
        assert [(r.template["title"], r.is_active) for r in rows] == [
            ("V1", False),
            ("V2", True),
        ]
        assert (await repo.get_active(7)).template == {"title": "V2"}

    async def test_replace_only_touches_its_scope(self, db_session):
        repo = TemplateRepository(db_session)
        await repo.replace({"title": "DEFAULT"}, None)

        await repo.replace({"title": "EVENT"}, 7)

        assert (await repo.get_active(None)).template == {"title": "DEFAULT"}


class TestSqlTemplateStore:
    async def test_save_and_resolve_through_store(self, session_maker):
        store = SqlTemplateStore(session_maker)

        await save_template(store, {"title": "PIAGAM", "titleFontSize": 500}, None)
        template = await get_effective_template(store, 3)

        assert template.title == "PIAGAM"
        assert template.title_font_size == 96

    async def test_get_template_returns_copy(self, session_maker):
        store = SqlTemplateStore(session_maker)
        await store.put_template({"title": "A"}, 1)

        raw = await store.get_template(1)
        raw["title"] = "mutated"

        assert (await store.get_template(1))["title"] == "A"
