from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from backend.application import get_initialization_service
from backend.core.schema import ConnectionRegistration

router = APIRouter(prefix="/data-init/connections", tags=["connections"])


@router.post("")
async def register_connection(payload: ConnectionRegistration) -> dict:
    service = get_initialization_service()
    descriptor = service.register_connection(**payload.model_dump())
    return {"success": True, "data": descriptor.to_public_dict()}


@router.get("")
async def list_connections(tenant_id: str = Query(...)) -> dict:
    tenant_id = tenant_id.strip()
    if not tenant_id:
        raise HTTPException(status_code=400, detail="tenant_id is required")
    service = get_initialization_service()
    active = {descriptor.id for descriptor in service.registry.get_connections(tenant_id).values()}
    items = []
    for descriptor in service.list_connections(tenant_id):
        item = descriptor.to_public_dict()
        item["active"] = descriptor.id in active
        items.append(item)
    return {"success": True, "data": items}
