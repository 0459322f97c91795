"""ASGI middleware: request ids with access logging, and a request body cap."""

from __future__ import annotations

import time
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from tattoo_directory.core.logging import request_id_ctx_var

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextLogMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of the request and log one access line."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_ctx_var.set(request_id)
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            access = logger.bind(
                method=request.method,
                path=request.url.path,
                query=request.url.query or None,
                status=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                client=request.client.host if request.client else None,
            )
            if status_code >= 500:
                access.warning("request_completed")
            else:
                access.info("request_completed")
            request_id_ctx_var.reset(token)


class BodySizeLimitMiddleware:
    """Answer 413 when a request declares a body larger than ``max_body_bytes``.

    Submissions are small JSON documents, so the declared ``Content-Length``
    is checked before the body is read.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int):
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            declared = Headers(scope=scope).get("content-length", "")
            if declared.isdigit() and int(declared) > self.max_body_bytes:
                response = JSONResponse(
                    status_code=413,
                    content={
                        "error": "Request entity too large",
                        "details": f"limit is {self.max_body_bytes} bytes",
                    },
                )
                await response(scope, receive, send)
                return
        await self.app(scope, receive, send)
