from __future__ import annotations

from .request_id import RequestIdMiddleware, device_ctx_var, request_id_ctx_var

__all__ = [
    "RequestIdMiddleware",
    "request_id_ctx_var",
    "device_ctx_var",
]
