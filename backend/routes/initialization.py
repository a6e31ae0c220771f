from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse

from backend.application import get_initialization_service
from backend.core.schema import ApplyConfigRequest, InitializeDatabaseRequest
from backend.domain import UploadedFile

router = APIRouter(prefix="/data-init", tags=["initialization"])

STATUS_CODES = {
    "not_found": 404,
    "validation_error": 400,
    "external_call_failure": 502,
    "file_read_error": 422,
}


def envelope_response(payload: dict[str, Any]) -> JSONResponse:
    """Map an operation envelope onto an HTTP status code."""
    if payload.get("success"):
        return JSONResponse(payload)
    return JSONResponse(payload, status_code=STATUS_CODES.get(payload.get("error_type") or "", 500))


@router.post("/initialize-database")
async def initialize_database(payload: InitializeDatabaseRequest) -> JSONResponse:
    service = get_initialization_service()
    result = await asyncio.to_thread(service.initialize_database, payload.tenant_id)
    return envelope_response(result)


@router.post("/seed-workspace")
async def seed_workspace(
    workspace_id: str = Form(...),
    data_type: str = Form(...),
    tenant_id: str | None = Form(default=None),
    batch_size: int | None = Form(default=None),
    overwrite_existing: bool = Form(default=False),
    auto_categorize: bool = Form(default=False),
    files: list[UploadFile] = File(...),
) -> JSONResponse:
    """Receive seed files for one workspace and run the seeding stage on them."""
    received: list[UploadedFile] = []
    for upload in files:
        try:
            safe_name = Path(upload.filename or "upload").name
            content = await upload.read()
            received.append(UploadedFile(filename=safe_name, content=content, content_type=upload.content_type))
        finally:
            await upload.close()

    options = {
        "batch_size": batch_size,
        "overwrite_existing": overwrite_existing,
        "auto_categorize": auto_categorize,
    }
    service = get_initialization_service()
    result = await asyncio.to_thread(
        service.seed_workspace,
        workspace_id,
        data_type,
        received,
        options,
        tenant_id=tenant_id or None,
    )
    return envelope_response(result)


@router.post("/apply-config")
async def apply_config(payload: ApplyConfigRequest) -> JSONResponse:
    service = get_initialization_service()
    result = await asyncio.to_thread(
        service.apply_config,
        payload.workspace_id,
        payload.operations.model_dump(),
        tenant_id=payload.tenant_id,
    )
    return envelope_response(result)


@router.get("/status")
async def get_status(tenant_id: str = Query(...)) -> JSONResponse:
    service = get_initialization_service()
    return envelope_response(service.get_status(tenant_id))


@router.get("/logs")
async def get_logs(tenant_id: str | None = Query(default=None)) -> dict:
    service = get_initialization_service()
    entries = service.get_tenant_logs(tenant_id) if tenant_id else service.get_all_logs()
    return {"success": True, "data": [entry.to_dict() for entry in entries]}
