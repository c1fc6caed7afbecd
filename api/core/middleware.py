"""ASGI middleware: security headers and per-request wide events."""

from __future__ import annotations

import os
import re
import time
import uuid
from typing import Any

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.logger import bind_contextvars, clear_contextvars, get_logger
from core.wide_event import clear_wide_event, get_wide_event, init_wide_event

logger = get_logger(__name__)

SERVICE_NAME = os.getenv("SERVICE_NAME", "certificate-service")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "0.1.0")

# Requests slower than this are always logged
_SLOW_REQUEST_MS = 1000

# Inbound request ids are echoed back and logged, so only short safe ones
_REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,64}")


class SecurityHeadersMiddleware:
    """Adds security headers (X-Content-Type-Options, X-Frame-Options, CSP, etc)."""

    SECURITY_HEADERS: list[tuple[bytes, bytes]] = [
        (b"x-content-type-options", b"nosniff"),
        (b"x-frame-options", b"DENY"),
        (b"x-xss-protection", b"0"),
        (b"referrer-policy", b"strict-origin-when-cross-origin"),
        (
            b"content-security-policy",
            b"default-src 'self'; img-src 'self' data: https:;"
            b" style-src 'self' 'unsafe-inline'; frame-ancestors 'none'",
        ),
        (b"strict-transport-security", b"max-age=31536000; includeSubDomains"),
    ]

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                headers: list[tuple[bytes, bytes]] = list(message.get("headers", []))
                headers.extend(self.SECURITY_HEADERS)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RequestTimingMiddleware:
    """Times each request and emits its wide event as one canonical log line.

    The request id (a well-formed inbound ``X-Request-ID`` or a fresh uuid) is
    echoed in the response and bound to the logging context, so log lines
    written while the request runs carry it too.

    Errors, slow requests and writes are always emitted; fast successful
    reads are dropped to keep the log volume down.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        method = scope.get("method", "UNKNOWN")
        client = scope.get("client")
        request_id = _request_id_from(scope)

        wide_event = init_wide_event()
        wide_event.update(
            service_name=SERVICE_NAME,
            service_version=SERVICE_VERSION,
            request_id=request_id,
            http_method=method,
            http_path=scope.get("path", ""),
            http_client_ip=client[0] if client else "unknown",
        )
        bind_contextvars(request_id=request_id)

        def elapsed_ms() -> float:
            return round((time.perf_counter() - start_time) * 1000, 2)

        status_code: int | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code

            if message["type"] == "http.response.start":
                status_code = int(message.get("status", 0))
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-request-duration-ms", f"{elapsed_ms():.2f}".encode()),
                    (b"x-request-id", request_id.encode()),
                ]
            elif message["type"] == "http.response.body" and not message.get(
                "more_body", False
            ):
                duration_ms = elapsed_ms()
                outcome = "success" if status_code and status_code < 400 else "error"
                emit = (
                    outcome == "error"
                    or duration_ms > _SLOW_REQUEST_MS
                    or method != "GET"
                )
                self._finish(
                    scope,
                    duration_ms,
                    emit,
                    http_status_code=status_code,
                    outcome=outcome,
                )

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            self._finish(
                scope,
                elapsed_ms(),
                True,
                outcome="exception",
                exception_type=type(exc).__name__,
            )
            raise

    @staticmethod
    def _finish(scope: Scope, duration_ms: float, emit: bool, **fields: Any) -> None:
        route = scope.get("route")
        event = get_wide_event()
        event.update(
            fields,
            http_route=getattr(route, "path", None) or scope.get("path", ""),
            duration_ms=duration_ms,
        )
        if emit:
            logger.info("request.completed", **event)
        clear_wide_event()
        clear_contextvars()


def _request_id_from(scope: Scope) -> str:
    for name, value in scope.get("headers", []):
        if name == b"x-request-id":
            candidate = value.decode("latin-1")
            if _REQUEST_ID_PATTERN.fullmatch(candidate):
                return candidate
            break
    return str(uuid.uuid4())
