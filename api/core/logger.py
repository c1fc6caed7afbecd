"""Structured logging for the API and the CLI, built on structlog.

Both logging styles used in the codebase end up in the same stream:

    import logging
    logger = logging.getLogger(__name__)
    logger.info("certificate.generated", extra={"event_id": 7})

    from core import get_logger
    logger = get_logger(__name__)
    logger.info("certificate.generated", event_id=7)

``extra`` fields and keyword arguments become top-level keys. Values bound
with ``bind_contextvars`` (the request id, a bulk run's event id) are added
to every line until cleared.

Environment:
    LOG_LEVEL   root level name (default INFO)
    LOG_FORMAT  "json" for one JSON object per line, anything else for the
                colored console renderer
"""

import logging
import os
import sys

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars
from structlog.types import EventDict, Processor

__all__ = [
    "bind_contextvars",
    "clear_contextvars",
    "configure_logging",
    "get_logger",
]

# Libraries that log every request or glyph at INFO
_QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "uvicorn.access",
    "fontTools",
    "cairosvg",
)


def _level_from(name: str | None) -> int:
    name = (name or os.environ.get("LOG_LEVEL") or "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _drop_color_message(
    _logger: logging.Logger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """uvicorn duplicates its message with ANSI codes under color_message."""
    event_dict.pop("color_message", None)
    return event_dict


def configure_logging(level: str | None = None) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Safe to call more than once; the root handlers are replaced each time.
    ``level`` overrides LOG_LEVEL.
    """
    use_json = os.environ.get("LOG_FORMAT", "").lower() == "json"

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.stdlib.ExtraAdder(),
        _drop_color_message,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if use_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(_level_from(level))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Key-value logger for ``name`` (usually ``__name__``).

    Example:
        logger = get_logger(__name__)
        logger.info("certificate.bulk.started", event_id=12, eligible=240)
    """
    return structlog.stdlib.get_logger(name)
