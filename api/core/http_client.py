"""Shared HTTP client for the events/registrations service.

Provides a connection-pooled ``httpx.AsyncClient`` reused by every
registration lookup, including the fan-out of a bulk generation run.
"""

from __future__ import annotations

import asyncio

import httpx

from core.config import get_settings

_registrations_http_client: httpx.AsyncClient | None = None
_registrations_client_lock = asyncio.Lock()


async def get_registrations_client() -> httpx.AsyncClient:
    """Get or create the shared client for the registrations service.

    Uses connection pooling to reduce overhead from per-request client creation.
    Guarded by an asyncio.Lock so concurrent first calls create one client.
    """
    global _registrations_http_client

    if (
        _registrations_http_client is not None
        and not _registrations_http_client.is_closed
    ):
        return _registrations_http_client

    async with _registrations_client_lock:
        if (
            _registrations_http_client is not None
            and not _registrations_http_client.is_closed
        ):
            return _registrations_http_client

        settings = get_settings()
        headers = {"Accept": "application/json"}
        if settings.registrations_api_token:
            headers["Authorization"] = f"Bearer {settings.registrations_api_token}"

        _registrations_http_client = httpx.AsyncClient(
            base_url=settings.registrations_api_url,
            headers=headers,
            timeout=settings.http_timeout,
            follow_redirects=True,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )
        return _registrations_http_client


async def close_registrations_client() -> None:
    """Close the shared client (called on application shutdown)."""
    global _registrations_http_client
    if (
        _registrations_http_client is not None
        and not _registrations_http_client.is_closed
    ):
        await _registrations_http_client.aclose()
    _registrations_http_client = None
