"""Unit tests for core.logger module.

Tests the structlog-based logging configuration:
- configure_logging() installs one stdout handler with a structlog formatter
- LOG_FORMAT=json renders stdlib ``extra`` fields as JSON keys
- LOG_LEVEL controls the root level
- Noisy third-party loggers are quieted
- Context bound with bind_contextvars reaches stdlib and structlog lines
"""

import json
import logging

import pytest
import structlog

from core.logger import (
    bind_contextvars,
    clear_contextvars,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def _clean_root_logger():
    """Save and restore root logger state around each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    structlog.reset_defaults()


@pytest.mark.unit
class TestConfigureLogging:
    def test_installs_single_structlog_handler(self):
        configure_logging()

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_log_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        configure_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_unknown_log_level_defaults_to_info(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_quiets_third_party_loggers(self):
        configure_logging()
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("fontTools").level == logging.WARNING

    def test_json_output_includes_extra_fields(self, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging()

        logging.getLogger("services.test").info(
            "certificate.generated", extra={"event_id": 7, "participant_id": 42}
        )

        line = capsys.readouterr().out.strip().splitlines()[-1]
        parsed = json.loads(line)
        assert parsed["event"] == "certificate.generated"
        assert parsed["event_id"] == 7
        assert parsed["participant_id"] == 42
        assert parsed["level"] == "info"
        assert parsed["logger"] == "services.test"

    def test_structlog_key_value_style(self, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging()

        get_logger("core.test").warning("auth.admin.rejected", path="/api/x")

        parsed = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert parsed["event"] == "auth.admin.rejected"
        assert parsed["path"] == "/api/x"

    def test_level_argument_overrides_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        configure_logging("debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_bound_context_is_added_to_every_line(self, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging()

        bind_contextvars(request_id="req-1")
        try:
            logging.getLogger("services.test").info("first")
            get_logger("services.test").info("second")
        finally:
            clear_contextvars()

        lines = capsys.readouterr().out.strip().splitlines()[-2:]
        assert [json.loads(line)["request_id"] for line in lines] == ["req-1", "req-1"]

    def test_uvicorn_color_message_is_dropped(self, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "json")
        configure_logging()

        logging.getLogger("uvicorn.error").info(
            "Started server", extra={"color_message": "\x1b[1mStarted\x1b[0m"}
        )

        parsed = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert "color_message" not in parsed
