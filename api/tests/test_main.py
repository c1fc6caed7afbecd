"""Unit tests for main: exception handlers, startup migrations and lifespan."""

import json
import subprocess
import sys
from unittest.mock import MagicMock, patch

import fastapi
import pytest
from fastapi import Request
from fastapi.exceptions import RequestValidationError

import main
from core.wide_event import init_wide_event

pytestmark = pytest.mark.unit


def _request(path: str = "/api/certificates/generate") -> MagicMock:
    request = MagicMock(spec=Request)
    request.url.path = path
    request.method = "POST"
    return request


class TestGlobalExceptionHandler:
    async def test_returns_500_with_request_id(self):
        init_wide_event()["request_id"] = "req-9"

        response = await main.global_exception_handler(_request(), RuntimeError("x"))

        assert response.status_code == 500
        body = json.loads(response.body)
        assert body["requestId"] == "req-9"
        assert "unexpected" in body["detail"]


class TestValidationExceptionHandler:
    async def test_drops_unserializable_context(self):
        exc = RequestValidationError(
            [
                {
                    "type": "value_error",
                    "loc": ("body", "width"),
                    "msg": "Value error, too small",
                    "input": 10,
                    "ctx": {"error": ValueError("too small")},
                }
            ]
        )

        response = await main.validation_exception_handler(_request(), exc)

        assert response.status_code == 422
        detail = json.loads(response.body)["detail"]
        assert detail[0]["loc"] == ["body", "width"]
        assert "ctx" not in detail[0]


class TestRunAlembicMigrations:
    async def test_runs_the_cli_migrate_command(self):
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="")
        with patch("main.subprocess.run", return_value=completed) as run:
            await main._run_alembic_migrations()

        cmd = run.call_args.args[0]
        assert cmd == [sys.executable, "-m", "cli", "migrate", "head"]

    async def test_failure_raises_with_stderr(self):
        failed = subprocess.CompletedProcess(
            args=[], returncode=1, stdout="", stderr="relation exists"
        )
        with patch("main.subprocess.run", return_value=failed):
            with pytest.raises(RuntimeError, match="relation exists"):
                await main._run_alembic_migrations()


class TestLifespan:
    async def test_sqlite_startup_prepares_schema_and_export_dir(
        self, tmp_path, monkeypatch
    ):
        database_url = f"sqlite+aiosqlite:///{tmp_path / 'app.db'}"
        monkeypatch.setenv("DATABASE_URL", database_url)
        monkeypatch.setenv("EXPORT_DIR", str(tmp_path / "documents"))
        app = fastapi.FastAPI()

        async with main.lifespan(app):
            assert app.state.init_done is True
            assert app.state.init_error is None
            assert (tmp_path / "documents").is_dir()
            assert app.state.certificate_generator is not None

    async def test_failed_startup_records_the_error(self, tmp_path, monkeypatch):
        database_url = f"sqlite+aiosqlite:///{tmp_path / 'app.db'}"
        monkeypatch.setenv("DATABASE_URL", database_url)
        app = fastapi.FastAPI()

        with patch.object(main, "init_db", side_effect=ConnectionError("refused")):
            with pytest.raises(ConnectionError):
                async with main.lifespan(app):
                    pass

        assert app.state.init_done is False
        assert app.state.init_error == "refused"
