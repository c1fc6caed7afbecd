"""Shared helpers for the repositories: query timing and dialect-aware upsert."""

import time
from collections.abc import Awaitable, Callable, Iterable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger
from core.wide_event import add_wide_event_counters, set_wide_event_nested

logger = get_logger(__name__)

# Repository calls slower than this are logged on their own (milliseconds)
SLOW_QUERY_THRESHOLD_MS = 500

_ON_CONFLICT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

P = ParamSpec("P")
R = TypeVar("R")


def log_slow_query(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Time a repository operation and record it on the request's wide event.

    Every call adds to the ``db`` counters (``queries``, ``duration_ms``), so a
    bulk request reports the database time of all its participants in one
    line. Slow calls are logged individually. A failing call records
    ``db.failed_operation`` and re-raises.

    Usage:
        @log_slow_query("certificates.get")
        async def get(self, event_id: int, participant_id: int) -> ...:
            ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                set_wide_event_nested(
                    "db",
                    failed_operation=operation_name,
                    error_type=type(e).__name__,
                )
                raise
            finally:
                duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
                add_wide_event_counters("db", queries=1, duration_ms=duration_ms)
                if duration_ms > SLOW_QUERY_THRESHOLD_MS:
                    logger.warning(
                        "db.query.slow",
                        operation=operation_name,
                        duration_ms=duration_ms,
                    )

        return wrapper

    return decorator


async def upsert_on_conflict[T](
    db: AsyncSession,
    model: type[T],
    values: dict[str, Any],
    *,
    conflict_columns: Iterable[str],
    preserve: Iterable[str] = (),
) -> bool:
    """INSERT ... ON CONFLICT DO UPDATE for PostgreSQL and SQLite.

    On conflict every column in ``values`` is overwritten except the conflict
    columns and those named in ``preserve``, which keep the values of the
    first insert.

    Returns False without writing anything on dialects lacking ON CONFLICT;
    the caller then falls back to select-then-write. Does NOT commit.

    Column.onupdate triggers do not fire on the update branch, so
    ``updated_at`` has to be passed in ``values``.
    """
    conflict_columns = list(conflict_columns)
    kept = set(conflict_columns) | set(preserve)
    update_set = {k: v for k, v in values.items() if k not in kept}
    if not update_set:
        raise ValueError(
            f"Nothing to update: every column of {sorted(values)} "
            f"is a conflict or preserved column"
        )

    insert = _ON_CONFLICT_INSERTS.get(db.get_bind().dialect.name)
    if insert is None:
        return False

    stmt = insert(model).values(**values)
    await db.execute(
        stmt.on_conflict_do_update(index_elements=conflict_columns, set_=update_set)
    )
    return True
