from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..core.errors import unhandled_exception_handler

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
device_ctx_var: ContextVar[str | None] = ContextVar("device_serial", default=None)
logger = logging.getLogger("pantryscan.request")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Ensure every request has a correlation id and emit structured logs."""

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid4())
        token = request_id_ctx_var.set(request_id)
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            response = await unhandled_exception_handler(request, exc)
        finally:
            request_id_ctx_var.reset(token)
        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[self.header_name] = request_id
        response.headers.setdefault("X-Response-Time", f"{duration_ms:.2f}ms")
        extra = {
            "extra_data": {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
        }
        serial = getattr(request.state, "scanner_serial", None)
        if serial:
            extra["extra_data"]["device"] = serial
        logger.info("request.completed", extra=extra)
        return response
