"""Wide Event context for canonical log lines.

Provides a request-scoped dict for accumulating context throughout the request
lifecycle. Middleware handles initialization at request start and emission at
request end.

This module only manages the data structure - middleware.py handles lifecycle.

Usage:
    from core.wide_event import set_wide_event_fields

    # In route handlers or services:
    set_wide_event_fields(event_id=event_id, participant_id=participant_id)

    # For nested data:
    set_wide_event_nested("bulk", eligible=240, generated=238, failed=2)

    # For counters summed over a request:
    add_wide_event_counters("db", queries=1, duration_ms=2.5)
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any]] = ContextVar("wide_event")


def init_wide_event() -> dict[str, Any]:
    """Initialize a new wide event dict for the current async context.

    Called by RequestTimingMiddleware at request start.
    """
    event: dict[str, Any] = {}
    _wide_event.set(event)
    return event


def get_wide_event() -> dict[str, Any]:
    """Get the current wide event dict. Returns empty dict if not initialized."""
    try:
        return _wide_event.get()
    except LookupError:
        return {}


def set_wide_event_fields(**kwargs: Any) -> None:
    """Set multiple fields on the current wide event.

    No-op outside a request (CLI bulk runs, tests calling services directly).
    """
    event = _wide_event.get(None)
    if event is not None:
        event.update(kwargs)


def set_wide_event_nested(category: str, **kwargs: Any) -> None:
    """Set fields in a nested category (e.g. bulk, template).

    No-op outside a request.

    Example:
        set_wide_event_nested("bulk", generated=9, failed=1)
        # Results in: {"bulk": {"generated": 9, "failed": 1}}
    """
    event = _wide_event.get(None)
    if event is None:
        return
    event.setdefault(category, {}).update(kwargs)


def add_wide_event_counters(category: str, **amounts: int | float) -> None:
    """Add to numeric counters in a nested category.

    For operations one request repeats many times, like the per-participant
    writes of a bulk run. No-op outside a request.

    Example:
        add_wide_event_counters("db", queries=1, duration_ms=3.2)
        add_wide_event_counters("db", queries=1, duration_ms=1.1)
        # Results in: {"db": {"queries": 2, "duration_ms": 4.3}}
    """
    event = _wide_event.get(None)
    if event is None:
        return
    group = event.setdefault(category, {})
    for key, amount in amounts.items():
        group[key] = round(group.get(key, 0) + amount, 2)


def clear_wide_event() -> None:
    """Clear the wide event for the current context.

    Called by RequestTimingMiddleware after emitting the event.
    """
    _wide_event.set({})
