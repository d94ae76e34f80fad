"""Error taxonomy for scan ingestion and its HTTP mapping.

Scanner firmware only tells three outcomes apart: accepted, rejected and worth
retrying, or rejected because the pairing is wrong. Everything richer stays in
the server logs.
"""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


class ScanError(Exception):
    """Base class for failures of a single scan ingestion."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "scan_error"
    default_message: str = "Scan failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidRequest(ScanError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_request"
    default_message = "Missing barcode or scanner_serial"


class DeviceNotFound(ScanError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "device_not_found"
    default_message = "Scanner not found"


class CatalogUnavailable(ScanError):
    """The product catalog could not be reached; recovered by the caller."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "catalog_unavailable"
    default_message = "Product catalog unavailable"


class StorageFailure(ScanError):
    code = "storage_failure"
    default_message = "Database error"


class PartialFanoutFailure(ScanError):
    """A log or notification write failed after stock was already updated."""

    code = "partial_fanout_failure"
    default_message = "Scan log or notification write failed"


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__({"error": message}, status_code=status_code, headers=headers)


async def scan_error_handler(request: Request, exc: ScanError):
    if exc.status_code >= 500:
        logger.error("scan.failed", extra={"extra_data": {"code": exc.code, "error": exc.message}})
    else:
        logger.warning("scan.rejected", extra={"extra_data": {"code": exc.code, "error": exc.message}})
    return ErrorEnvelope(status_code=exc.status_code, message=exc.message)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("scan.unexpected_error", exc_info=exc)
    return ErrorEnvelope(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, message="Internal server error")
