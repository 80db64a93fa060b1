from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

ASGISend = Callable[[dict[str, Any]], Awaitable[None]]
ASGIReceive = Callable[[], Awaitable[dict[str, Any]]]
ASGIApp = Callable[[dict[str, Any], ASGIReceive, ASGISend], Awaitable[None]]


class RequestIDMiddleware:
    """Attach a request ID and structured logging context to each HTTP request."""

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID") -> None:
        self.app = app
        self.header_name = header_name
        self._header_bytes = header_name.lower().encode("latin-1")
        self.log = structlog.get_logger("g2books.request")

    async def __call__(self, scope: dict[str, Any], receive: ASGIReceive, send: ASGISend) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = self._find_header(scope.get("headers", [])) or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id

        bind_contextvars(
            request_id=request_id,
            path=scope.get("path", ""),
            method=scope.get("method", ""),
            status=None,
            latency_ms=None,
        )

        start_time = time.perf_counter()
        status_code: int | None = None
        finished = False

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code, finished

            if message["type"] == "http.response.start":
                status_code = int(message.get("status", 500))
                headers = list(message.get("headers", []))
                if not any(key.lower() == self._header_bytes for key, _ in headers):
                    headers.append(
                        (self.header_name.encode("latin-1"), request_id.encode("latin-1"))
                    )
                message["headers"] = headers
                bind_contextvars(status=status_code)
            elif message["type"] == "http.response.body" and not message.get("more_body", False):
                latency = (time.perf_counter() - start_time) * 1000
                bind_contextvars(latency_ms=round(latency, 3))
                finished = True
                self.log.info("http.request")
                clear_contextvars()

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            latency = (time.perf_counter() - start_time) * 1000
            bind_contextvars(status=status_code or 500, latency_ms=round(latency, 3))
            self.log.exception("http.request.error")
            clear_contextvars()
            raise
        finally:
            if not finished:
                clear_contextvars()

    def _find_header(self, headers: list[tuple[bytes, bytes]]) -> str | None:
        for key, value in headers:
            if key.lower() == self._header_bytes:
                return value.decode("latin-1")
        return None
