from __future__ import annotations

import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..core.errors import InvalidRequest
from ..services.ingestion import ScanPipeline, parse_scan_request

router = APIRouter(tags=["scanner"])


def get_pipeline(request: Request) -> ScanPipeline:
    return request.app.state.pipeline


async def _read_json(request: Request) -> object:
    body = await request.body()
    if not body:
        raise InvalidRequest()
    try:
        return json.loads(body)
    except ValueError as exc:
        raise InvalidRequest("Request body must be valid JSON") from exc


@router.post("/api/v1/scanner/scan")
@router.post("/functions/v1/scanner-add-product", include_in_schema=False)
async def api_scan(request: Request) -> JSONResponse:
    """Ingest one barcode read reported by a paired scanner."""

    scan = parse_scan_request(await _read_json(request))
    request.state.scanner_serial = scan.scanner_serial
    result = await get_pipeline(request).ingest(scan)
    return JSONResponse(result.to_response().model_dump(by_alias=True))
