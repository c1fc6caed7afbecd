#!/usr/bin/env python3
"""CLI for certificate service management tasks.

Usage:
    python -m cli <command>

Commands:
    migrate         Run database migrations
    generate-bulk   Generate certificates for every eligible participant of an event
    preview         Render a template JSON file to SVG with sample data
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from core.logger import bind_contextvars, clear_contextvars, configure_logging

configure_logging()
logger = logging.getLogger(__name__)


def _get_alembic_config():
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    # Make script_location absolute so it works from any working directory.
    cfg.set_main_option("script_location", str(api_dir / "alembic"))
    return cfg


def cmd_migrate(target: str) -> int:
    """Run database migrations."""
    from alembic import command

    logger.info("migrations.started", extra={"target": target})
    command.upgrade(_get_alembic_config(), target)
    logger.info("migrations.complete")
    return 0


async def _generate_bulk(event_id: int, deadline_seconds: float | None) -> int:
    from bootstrap import build_certificate_generator
    from core.config import get_settings
    from core.database import (
        create_all,
        create_engine,
        create_session_maker,
        dispose_engine,
    )
    from core.http_client import close_registrations_client
    from schemas import BulkResultResponse

    settings = get_settings()
    engine = create_engine()
    bind_contextvars(event_id=event_id)
    try:
        if settings.is_sqlite:
            await create_all(engine)
        generator = build_certificate_generator(create_session_maker(engine), settings)

        # Ctrl-C stops dispatching; in-flight participants still finish
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        try:
            result = await generator.generate_bulk(
                event_id,
                cancel=cancel,
                deadline_seconds=(
                    deadline_seconds or settings.bulk_deadline_seconds or None
                ),
            )
        finally:
            loop.remove_signal_handler(signal.SIGINT)
    finally:
        await close_registrations_client()
        await dispose_engine(engine)
        clear_contextvars()

    print(
        BulkResultResponse.model_validate(result).model_dump_json(
            by_alias=True, indent=2
        )
    )
    return 0 if not result.failed and not result.cancelled else 1


def cmd_generate_bulk(event_id: int, deadline_seconds: float | None) -> int:
    """Generate certificates for every eligible participant of an event."""
    from services.contracts import RegistrationSourceUnavailableError

    try:
        return asyncio.run(_generate_bulk(event_id, deadline_seconds))
    except RegistrationSourceUnavailableError as e:
        logger.error("certificate.bulk.unavailable", extra={"error": str(e)})
        return 2


def cmd_preview(template_path: Path, output: Path | None) -> int:
    """Render a template JSON file to SVG using the sample participant."""
    from rendering.certificates import render_spec_to_svg
    from services.certificates_service import render_preview

    raw = json.loads(template_path.read_text(encoding="utf-8"))
    preview = render_preview(raw)
    for token in preview.unknown_placeholders:
        logger.warning("template.unknown_placeholder", extra={"token": token})

    svg = render_spec_to_svg(preview.spec)
    if output is None:
        sys.stdout.write(svg)
    else:
        output.write_text(svg, encoding="utf-8")
        logger.info("preview.written", extra={"path": str(output)})
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Certificate service CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log at DEBUG level"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    migrate = subparsers.add_parser("migrate", help="Run database migrations")
    migrate.add_argument(
        "target",
        nargs="?",
        default="head",
        help="Target revision (default: head)",
    )

    bulk = subparsers.add_parser(
        "generate-bulk",
        help="Generate certificates for every eligible participant of an event",
    )
    bulk.add_argument("event_id", type=int)
    bulk.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Stop dispatching new participants after this many seconds",
    )

    preview = subparsers.add_parser(
        "preview", help="Render a template JSON file to SVG with sample data"
    )
    preview.add_argument("template", type=Path)
    preview.add_argument("-o", "--output", type=Path, default=None)

    args = parser.parse_args(argv)
    if args.verbose:
        configure_logging("DEBUG")

    if args.command == "migrate":
        return cmd_migrate(args.target)
    elif args.command == "generate-bulk":
        return cmd_generate_bulk(args.event_id, args.deadline)
    elif args.command == "preview":
        return cmd_preview(args.template, args.output)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
